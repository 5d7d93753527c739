"""Render lesson templates into finished markdown.

The renderer reads the raw template once, collects the markers of each kind
and builds one replacement per marker:

1. file embeds through :func:`templating.embed_file`,
2. self evaluations through the lesson's evaluation map,
3. run commands through the command rewriter and the sandbox runner.

The three passes are applied in that fixed order. Every pass replaces whole
lines keyed by the raw marker line; a line replaced by an earlier pass is not
looked at again, so text brought in by an embed is never treated as a
marker. Identical marker lines share one replacement: the one computed for
their first occurrence.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from lessondocs.config import DEFAULT_LESSON_FILE, EVAL_FILE_PREFIX, OUTPUT_LESSONS_SUBDIR
from lessondocs.exceptions import AppError, LessonRenderError

from .commands import CommandRewriter
from .evaluation import Evaluator, build_evaluation_map, substitute_self
from .markers import Marker, MarkerKind, find_markers
from .sandbox import SandboxRunner
from .templating import embed_file

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Lesson:
    """A lesson directory and its raw template text."""

    name: str
    path: Path
    raw: str


@dataclass(frozen=True)
class RenderedLesson:
    """Final text of a lesson and where it belongs in the output tree."""

    name: str
    output_parent_dir: PurePosixPath
    output_file_path: PurePosixPath
    text: str


def output_paths(
    lesson_name: str, lesson_file: str = DEFAULT_LESSON_FILE
) -> tuple[PurePosixPath, PurePosixPath]:
    """Return ``(lessons/<name>, lessons/<name>/<lesson_file>)``."""
    parent = PurePosixPath(OUTPUT_LESSONS_SUBDIR) / lesson_name
    return parent, parent / lesson_file


def apply_replacement_passes(
    raw: str, passes: Sequence[tuple[Sequence[str], Sequence[str]]]
) -> str:
    """Apply whole-line replacement passes to ``raw`` in order.

    Parameters
    ----------
    raw : str
        The template text.
    passes : Sequence[tuple[Sequence[str], Sequence[str]]]
        ``(marker_lines, replacements)`` pairs of equal length.

    Returns
    -------
    str
        The text with every marker line replaced.

    Raises
    ------
    ValueError
        If a pass has more markers than replacements or vice versa.
    """
    lines = raw.split("\n")
    replaced = [False] * len(lines)
    for marker_lines, replacements in passes:
        if len(marker_lines) != len(replacements):
            raise ValueError(
                f"{len(marker_lines)} marker lines but {len(replacements)} replacements"
            )
        table: dict[str, str] = {}
        for line, replacement in zip(marker_lines, replacements):
            table.setdefault(line, replacement)
        for index, line in enumerate(lines):
            if not replaced[index] and line in table:
                lines[index] = table[line]
                replaced[index] = True
    return "\n".join(lines)


class LessonRenderer:
    """Orchestrate the embed, self-eval and run passes for lessons.

    Parameters
    ----------
    evaluator : Evaluator
        Backend for evaluation files.
    rewriter : CommandRewriter
        Turns run scripts into executable ones.
    runner : SandboxRunner
        Executes rewritten scripts; shared across lessons so identical runs
        execute once.
    lesson_file : str, optional
        Template file name inside each lesson directory.
    eval_prefix : str, optional
        Prefix marking evaluation files.
    """

    def __init__(
        self,
        evaluator: Evaluator,
        rewriter: CommandRewriter,
        runner: SandboxRunner,
        *,
        lesson_file: str = DEFAULT_LESSON_FILE,
        eval_prefix: str = EVAL_FILE_PREFIX,
    ) -> None:
        self.evaluator = evaluator
        self.rewriter = rewriter
        self.runner = runner
        self.lesson_file = lesson_file
        self.eval_prefix = eval_prefix

    @staticmethod
    def _failure(lesson: Lesson, marker: Marker | None, error: AppError) -> LessonRenderError:
        where = f"marker '{marker.line}'" if marker else "evaluation files"
        return LessonRenderError(
            f"Lesson '{lesson.name}' failed at {where}: {error.message}",
            context={
                "lesson": lesson.name,
                "marker": marker.reference if marker else None,
                "kind": marker.kind.value if marker else None,
                "cause_code": error.code,
                "cause": error.to_dict(),
            },
        )

    def _embed_replacements(self, lesson: Lesson, markers: list[Marker]) -> list[str]:
        replacements: list[str] = []
        for marker in markers:
            try:
                replacements.append(embed_file(lesson.path, marker.reference))
            except AppError as exc:
                raise self._failure(lesson, marker, exc) from exc
        return replacements

    async def _self_replacements(
        self, lesson: Lesson, markers: list[Marker]
    ) -> list[str]:
        if not markers:
            return []
        try:
            evaluations: Mapping[str, str] = await asyncio.to_thread(
                build_evaluation_map, lesson.path, self.evaluator, self.eval_prefix
            )
        except AppError as exc:
            raise self._failure(lesson, None, exc) from exc
        replacements: list[str] = []
        for marker in markers:
            try:
                replacements.append(substitute_self(evaluations, marker.reference))
            except AppError as exc:
                raise self._failure(lesson, marker, exc) from exc
        return replacements

    async def _run_replacement(self, lesson: Lesson, marker: Marker) -> str:
        try:
            script = await asyncio.to_thread(
                self.rewriter.rewrite_file, lesson.path, marker.reference
            )
            logger.debug("Rewritten %s:\n%s", marker.reference, script)
            return await self.runner.run(lesson.path, script)
        except AppError as exc:
            raise self._failure(lesson, marker, exc) from exc

    async def render(self, lesson: Lesson) -> RenderedLesson:
        """Render one lesson.

        Raises
        ------
        LessonRenderError
            If any marker of the lesson cannot be substituted.
        """
        embed_markers = find_markers(MarkerKind.FILE_EMBED, lesson.raw)
        embeds = self._embed_replacements(lesson, embed_markers)

        self_markers = find_markers(MarkerKind.SELF_EVAL, lesson.raw)
        selfs = await self._self_replacements(lesson, self_markers)

        run_markers = find_markers(MarkerKind.RUN_COMMAND, lesson.raw)
        runs = list(
            await asyncio.gather(
                *(self._run_replacement(lesson, marker) for marker in run_markers)
            )
        )

        text = apply_replacement_passes(
            lesson.raw,
            [
                ([m.line for m in embed_markers], embeds),
                ([m.line for m in self_markers], selfs),
                ([m.line for m in run_markers], runs),
            ],
        )
        parent, file_path = output_paths(lesson.name, self.lesson_file)
        logger.info(
            "Rendered lesson %s (%d embeds, %d evaluations, %d runs)",
            lesson.name,
            len(embed_markers),
            len(self_markers),
            len(run_markers),
        )
        return RenderedLesson(lesson.name, parent, file_path, text)

    async def render_all(self, lessons: Sequence[Lesson]) -> list[RenderedLesson]:
        """Render lessons concurrently, preserving input order."""
        return list(await asyncio.gather(*(self.render(lesson) for lesson in lessons)))
