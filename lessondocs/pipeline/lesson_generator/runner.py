"""Lesson Generator Runner Module.

Programmatic entrypoints and logging configuration for the lesson build. It
is the boundary between the CLI and the rendering pipeline: it wires the
evaluator, rewriter, sandbox runner and renderer from a
:class:`LessonBuildConfig`, writes rendered lessons below an output root and
optionally refreshes a documentation site. Rendering logic itself lives in
``processor.py`` and the modules it calls.

Examples
--------
>>> from lessondocs.pipeline.lesson_generator.runner import run_from_config, configure_logging
>>> configure_logging(log_level="INFO", enable_file=False)
>>> rendered = run_from_config(lessons_dir=Path("lessons"), output_dir=Path("result"))  # doctest: +SKIP
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from collections.abc import Sequence
from pathlib import Path

from lessondocs.config import (
    DEFAULT_LESSONS_DIR,
    DEFAULT_OUTPUT_DIR,
    LOG_DIR,
    LOG_FILENAME_RENDER_LESSONS,
    LOG_FORMAT,
    OUTPUT_LESSONS_SUBDIR,
)
from lessondocs.exceptions import ConfigurationError
from lessondocs.fs_utils import safe_rmtree

from .commands import CommandRewriter
from .config import LessonBuildConfig
from .data_loader import load_lessons
from .evaluation import Evaluator, NixEvaluator
from .processor import LessonRenderer, RenderedLesson
from .sandbox import SandboxRunner

logger = logging.getLogger(__name__)


def configure_logging(log_level: str = "INFO", enable_file: bool = True) -> None:
    r"""Configure logging for lesson builds.

    Sets up a stream handler and, optionally, a file handler in ``LOG_DIR``
    using ``LOG_FORMAT``. Existing root handlers are removed first, so the
    function is safe to call repeatedly.

    Parameters
    ----------
    log_level : str, optional
        The logging level (e.g., "INFO", "DEBUG"). Defaults to "INFO".
    enable_file : bool, optional
        Whether to also write ``render_lessons.log``. Defaults to True.

    Notes
    -----
    Failure to create the log directory or file only disables file logging.
    """
    for h in logging.root.handlers[:]:
        logging.root.removeHandler(h)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if enable_file:
        try:
            LOG_DIR.mkdir(exist_ok=True)
            handlers.insert(
                0, logging.FileHandler(LOG_DIR / LOG_FILENAME_RENDER_LESSONS, mode="a")
            )
        except OSError as exc:
            logging.getLogger(__name__).warning(f"File logging disabled: {exc}")
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
    )


def build_renderer(
    config: LessonBuildConfig, evaluator: Evaluator | None = None
) -> LessonRenderer:
    """Wire a renderer from ``config``; ``evaluator`` defaults to ``NixEvaluator``."""
    context = config.evaluation_context()
    evaluator = evaluator if evaluator is not None else NixEvaluator(context)
    return LessonRenderer(
        evaluator,
        CommandRewriter(evaluator, context),
        SandboxRunner(config.sandbox_settings()),
        lesson_file=config.lesson_file,
        eval_prefix=config.eval_prefix,
    )


def write_rendered_lessons(
    rendered: Sequence[RenderedLesson], output_dir: Path
) -> list[Path]:
    """Write each rendered lesson to ``output_dir / lessons/<name>/<file>``.

    The ``lessons`` subtree is replaced as a whole so that lessons removed
    from the source do not linger in the output.
    """
    safe_rmtree(output_dir / OUTPUT_LESSONS_SUBDIR, output_dir)
    written: list[Path] = []
    for lesson in rendered:
        target = output_dir / lesson.output_file_path
        (output_dir / lesson.output_parent_dir).mkdir(parents=True, exist_ok=True)
        with target.open("w", encoding="utf-8") as output_file:
            output_file.write(lesson.text)
        written.append(target)
    logger.info("Wrote %d lessons to %s", len(written), output_dir)
    return written


def check_site_docs(output_dir: Path, site_docs: Path) -> bool:
    """Return whether copying to ``site_docs`` is needed.

    ``False`` when the site lessons tree is the output lessons tree itself.

    Raises
    ------
    ConfigurationError
        If one lessons tree lies inside the other.
    """
    source = (output_dir / OUTPUT_LESSONS_SUBDIR).resolve()
    destination = (site_docs / OUTPUT_LESSONS_SUBDIR).resolve()
    if source == destination:
        return False
    if source.is_relative_to(destination) or destination.is_relative_to(source):
        raise ConfigurationError(
            "Site docs and output lessons trees overlap",
            context={"output_dir": str(output_dir), "site_docs": str(site_docs)},
        )
    return True


def copy_lessons_to_site(output_dir: Path, site_docs: Path) -> Path:
    """Replace ``site_docs/lessons`` with the rendered ``output_dir/lessons`` tree."""
    source = output_dir / OUTPUT_LESSONS_SUBDIR
    destination = site_docs / OUTPUT_LESSONS_SUBDIR
    if not check_site_docs(output_dir, site_docs):
        logger.info("Site docs already hold the output lessons; nothing to copy")
        return destination
    site_docs.mkdir(parents=True, exist_ok=True)
    safe_rmtree(destination, site_docs)
    shutil.copytree(source, destination)
    logger.info("Copied lessons to %s", destination)
    return destination


async def render_lessons(
    lessons_dir: Path, config: LessonBuildConfig, evaluator: Evaluator | None = None
) -> list[RenderedLesson]:
    """Load and render every lesson below ``lessons_dir``."""
    lessons = load_lessons(lessons_dir, config.lesson_file)
    renderer = build_renderer(config, evaluator)
    return await renderer.render_all(lessons)


def run_from_config(
    lessons_dir: Path | None = None,
    output_dir: Path | None = None,
    site_docs: Path | None = None,
    config: LessonBuildConfig | None = None,
    evaluator: Evaluator | None = None,
) -> list[RenderedLesson]:
    """Render all lessons and write them, using defaults from config.

    Returns
    -------
    list[RenderedLesson]
        The rendered lessons, in lesson-name order.

    Raises
    ------
    lessondocs.exceptions.AppError
        If discovery or any lesson fails; nothing is written in that case.
    """
    lessons_dir = Path(lessons_dir) if lessons_dir is not None else DEFAULT_LESSONS_DIR
    output_dir = Path(output_dir) if output_dir is not None else DEFAULT_OUTPUT_DIR
    config = config if config is not None else LessonBuildConfig()
    if site_docs is not None:
        check_site_docs(output_dir, Path(site_docs))
    rendered = asyncio.run(render_lessons(lessons_dir, config, evaluator))
    output_dir.mkdir(parents=True, exist_ok=True)
    write_rendered_lessons(rendered, output_dir)
    if site_docs is not None:
        copy_lessons_to_site(output_dir, Path(site_docs))
    return rendered


__all__ = [
    "build_renderer",
    "check_site_docs",
    "configure_logging",
    "copy_lessons_to_site",
    "render_lessons",
    "run_from_config",
    "write_rendered_lessons",
]
