"""Render lessons: markdown documentation from lesson directories.

This script renders every lesson below a lessons root into finished
markdown: file embeds, self evaluations and sandboxed run outputs are
substituted for their markers and the result is written to
``<output-dir>/lessons/<lesson>/<lesson-file>``. Optionally the rendered
tree also replaces ``<site-docs>/lessons`` of a documentation site.

Usage
-----
render-lessons --lessons-dir ... --output-dir ... [--site-docs ...] [--log-level ...]

Notes
-----
Defaults come from ``lessondocs.config`` and the environment (see
``LessonBuildConfig``). The exit status is 0 on success and 1 when any
lesson fails; nothing is written in that case.
"""

from __future__ import annotations

import argparse
import logging
import os
from collections.abc import Sequence
from pathlib import Path

from rich.console import Console
from rich.table import Table

from lessondocs.config import DEFAULT_LESSONS_DIR, DEFAULT_OUTPUT_DIR
from lessondocs.exceptions import AppError
from lessondocs.pipeline.lesson_generator import (
    LessonBuildConfig,
    RenderedLesson,
    configure_logging,
    run_from_config,
)

logger = logging.getLogger(__name__)


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def parse_arguments(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments for the lesson build.

    Parameters
    ----------
    argv : Sequence[str] | None, optional
        Arguments to parse; ``None`` reads ``sys.argv``.

    Returns
    -------
    argparse.Namespace
        Parsed arguments namespace with paths and settings.
    """
    parser = argparse.ArgumentParser(
        description="Render lesson templates into markdown documentation."
    )
    parser.add_argument(
        "--lessons-dir",
        type=Path,
        default=Path(os.environ.get("LESSONS_DIR", DEFAULT_LESSONS_DIR)),
        help="Directory containing one sub-directory per lesson.",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path(os.environ.get("OUTPUT_DIR", DEFAULT_OUTPUT_DIR)),
        help="Output root; lessons are written below <output-dir>/lessons.",
    )
    parser.add_argument(
        "--lesson-file",
        type=str,
        default=None,
        help="Template file name inside each lesson (default: LESSON_FILE or lesson.md).",
    )
    parser.add_argument(
        "--site-docs",
        type=Path,
        default=None,
        help="Documentation directory whose lessons/ subtree is replaced.",
    )
    parser.add_argument(
        "--max-concurrent-runs",
        type=_positive_int,
        default=None,
        help="Maximum number of run scripts executing at once.",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=os.environ.get("LOG_LEVEL", "INFO"),
        help="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).",
    )
    return parser.parse_args(argv)


def print_summary(
    rendered: Sequence[RenderedLesson], output_dir: Path, console: Console | None = None
) -> None:
    """Print a table of rendered lessons and where they were written."""
    console = console or Console()
    table = Table(show_header=True, header_style="bold blue")
    table.add_column("Lesson")
    table.add_column("Output")
    table.add_column("Lines", justify="right")
    for lesson in rendered:
        table.add_row(
            lesson.name,
            str(output_dir / lesson.output_file_path),
            str(lesson.text.count("\n") + 1),
        )
    console.print(table)


def _build(args: argparse.Namespace) -> int:
    disable_file = bool(
        os.environ.get("DISABLE_FILE_LOGS") or os.environ.get("PYTEST_CURRENT_TEST")
    )
    configure_logging(args.log_level, enable_file=not disable_file)
    logger.info(
        f"Rendering lessons from {args.lessons_dir} into {args.output_dir}"
    )
    try:
        config = LessonBuildConfig()
        if args.lesson_file:
            config.lesson_file = args.lesson_file
        if args.max_concurrent_runs is not None:
            config.max_concurrent_runs = args.max_concurrent_runs
        rendered = run_from_config(
            lessons_dir=args.lessons_dir,
            output_dir=args.output_dir,
            site_docs=args.site_docs,
            config=config,
        )
    except AppError as exc:
        logger.error(f"Lesson build failed: {exc.to_dict()}")
        return 1
    print_summary(rendered, args.output_dir)
    logger.info(f"Done: {len(rendered)} lessons rendered.")
    return 0


def flush_and_close_log_handlers() -> None:
    """Flush and close all logging handlers to ensure logs are written."""
    for handler in logging.root.handlers:
        handler.flush()
        handler.close()


def main(argv: Sequence[str] | None = None) -> int:
    """Run the lesson build from CLI arguments.

    Log handlers are flushed and closed before returning, also when the
    program is started through the ``render-lessons`` console script.

    Returns
    -------
    int
        Process exit status: 0 on success, 1 when the build failed.
    """
    args = parse_arguments(argv)
    try:
        return _build(args)
    finally:
        flush_and_close_log_handlers()


if __name__ == "__main__":  # pragma: no cover - CLI entry
    raise SystemExit(main())
