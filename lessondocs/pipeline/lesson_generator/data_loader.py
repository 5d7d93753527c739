"""Lesson discovery and loading.

Every direct sub-directory of the lessons root is one lesson, named after
the directory (e.g. ``010-basic-types``). Its template is the lesson file
inside it, ``lesson.md`` by default.
"""

from __future__ import annotations

import logging
from pathlib import Path

from lessondocs.config import DEFAULT_LESSON_FILE
from lessondocs.exceptions import MissingFileError

from .processor import Lesson
from .templating import load_template

logger = logging.getLogger(__name__)


def discover_lessons(lessons_dir: Path) -> dict[str, Path]:
    """Map each lesson directory name to its path, sorted by name.

    Parameters
    ----------
    lessons_dir : Path
        Root directory containing one sub-directory per lesson.

    Returns
    -------
    dict[str, Path]
        Lesson name to lesson directory.

    Raises
    ------
    MissingFileError
        If ``lessons_dir`` is not a directory.

    Examples
    --------
    >>> discover_lessons(Path("lessons"))  # doctest: +SKIP
    {'001-a-module': PosixPath('lessons/001-a-module'), ...}
    """
    if not lessons_dir.is_dir():
        raise MissingFileError(
            f"Lessons directory not found: {lessons_dir}",
            context={"path": str(lessons_dir)},
        )
    return {
        entry.name: entry
        for entry in sorted(lessons_dir.iterdir(), key=lambda p: p.name)
        if entry.is_dir()
    }


def load_lesson(
    name: str, lesson_path: Path, lesson_file: str = DEFAULT_LESSON_FILE
) -> Lesson:
    """Read one lesson's template."""
    return Lesson(name=name, path=lesson_path, raw=load_template(lesson_path / lesson_file))


def load_lessons(
    lessons_dir: Path, lesson_file: str = DEFAULT_LESSON_FILE
) -> list[Lesson]:
    """Discover and read every lesson below ``lessons_dir``."""
    lessons = [
        load_lesson(name, path, lesson_file)
        for name, path in discover_lessons(lessons_dir).items()
    ]
    logger.info(f"Loaded {len(lessons)} lessons from {lessons_dir}")
    return lessons
