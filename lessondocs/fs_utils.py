"""Filesystem utilities to validate and safely remove generated lesson trees.

Rendered lessons are written below ``<root>/lessons``; rebuilding the output
directory or refreshing a documentation site first removes that subtree.
These helpers make sure nothing else can be removed.

Functions
---------
- ``create_safe_path``: Validate and stamp a path as safe for removal.
- ``safe_rmtree``: Remove a validated directory tree.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import NewType

from lessondocs.config import OUTPUT_LESSONS_SUBDIR

logger = logging.getLogger(__name__)

# NewType used as a static "seal" to indicate the path is validated for removal.
_ValidatedPath = NewType("_ValidatedPath", Path)


def create_safe_path(path_to_validate: Path, allowed_root: Path) -> _ValidatedPath:
    r"""Validate and stamp a Path as safe for destructive operations.

    Only the generated ``lessons`` subtree of ``allowed_root`` (or something
    inside it) may be removed:

    - never ``allowed_root`` itself,
    - never anything outside ``allowed_root``,
    - nothing inside ``allowed_root`` except ``allowed_root / "lessons"``.

    Parameters
    ----------
    path_to_validate : Path
        The directory path to be validated for safe removal.
    allowed_root : Path
        Output root or documentation directory owning the lessons subtree.

    Returns
    -------
    _ValidatedPath
        The path, stamped for safe usage by removal helpers.

    Raises
    ------
    PermissionError
        If the path is the root, outside it, or not the lessons subtree.

    Examples
    --------
    >>> from pathlib import Path
    >>> create_safe_path(Path("result/lessons"), Path("result"))  # doctest: +SKIP
    PosixPath('/abs/result/lessons')
    >>> create_safe_path(Path("result"), Path("result"))  # doctest: +IGNORE_EXCEPTION_DETAIL
    Traceback (most recent call last):
      ...
    PermissionError: SECURITY STOP: Attempt to delete the output root was blocked.
    """
    root = Path(allowed_root).resolve()
    target_path = Path(path_to_validate).resolve()

    if target_path == root:
        raise PermissionError(
            "SECURITY STOP: Attempt to delete the output root was blocked."
        )
    if not target_path.is_relative_to(root):
        raise PermissionError(
            "SECURITY STOP: Attempt to delete a path outside the output root was blocked."
        )
    lessons_root = root / OUTPUT_LESSONS_SUBDIR
    if not (target_path == lessons_root or target_path.is_relative_to(lessons_root)):
        raise PermissionError(
            f"SECURITY STOP: Path '{target_path}' is not in the whitelist."
        )
    return _ValidatedPath(target_path)


def safe_rmtree(safe_path: _ValidatedPath | Path, allowed_root: Path) -> None:
    r"""Remove a directory tree after validating it with ``create_safe_path``.

    Parameters
    ----------
    safe_path : Path or _ValidatedPath
        The target directory.
    allowed_root : Path
        Root the target must belong to.

    Raises
    ------
    PermissionError
        If the supplied path fails validation.

    Notes
    -----
    If the path does not exist, the function is a no-op.
    """
    validated = create_safe_path(Path(safe_path), allowed_root)
    if validated.exists():
        logger.warning(f"Performing safe rmtree on: {validated}")
        shutil.rmtree(validated)
        logger.info(f"Removed directory: {validated}")
    else:
        logger.info(f"Path '{validated}' does not exist; nothing to remove.")


__all__ = ["create_safe_path", "safe_rmtree"]
