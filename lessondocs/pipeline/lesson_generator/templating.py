"""Templating utilities for lesson documentation.

This module handles template file loading and the fenced-code-block
rendering used to embed lesson source files. It is stateless: the only
side effect is reading files.

Boundaries
----------
- Does not write to disk or run commands.
- Only string and file Path handling; does not interpret Markdown.
- Fence and language defaults come from `lessondocs/config.py`.

Examples
--------
>>> from pathlib import Path
>>> from lessondocs.pipeline.lesson_generator.templating import get_file_extension
>>> get_file_extension(Path("archive.tar.xz"))
'tar.xz'
"""

from __future__ import annotations

import logging
from pathlib import Path, PurePath

from lessondocs.config import FENCE
from lessondocs.exceptions import MissingFileError, UnreadableFileError

logger = logging.getLogger(__name__)


def read_text_file(path: Path) -> str:
    """Read ``path`` as UTF-8 text.

    Raises
    ------
    UnreadableFileError
        If the file cannot be opened or does not decode as UTF-8.
    """
    try:
        with path.open("r", encoding="utf-8") as fh:
            return fh.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise UnreadableFileError(
            f"Cannot read {path.name} as UTF-8 text: {exc}",
            context={"path": str(path), "reason": type(exc).__name__},
        ) from exc


def load_template(path: Path) -> str:
    """Read the contents of a lesson template as a string.

    Parameters
    ----------
    path : Path
        Path to the template file to be loaded.

    Returns
    -------
    str
        Contents of the template file.

    Raises
    ------
    MissingFileError
        If the file does not exist.
    UnreadableFileError
        If the file cannot be read as UTF-8 text.
    """
    if not path.is_file():
        raise MissingFileError(
            f"Template not found: {path}", context={"path": str(path)}
        )
    return read_text_file(path)


def get_file_extension(path: PurePath | str) -> str:
    """Return the extension of a file, joining every dot-segment after the first.

    Parameters
    ----------
    path : PurePath | str
        A path, or a string containing a path, to a file.

    Returns
    -------
    str
        The extension without a leading dot, or ``""`` for names without one.

    Examples
    --------
    >>> get_file_extension("./directory/eval.nix")
    'nix'
    >>> get_file_extension("./directory/run")
    ''
    >>> get_file_extension("./directory/archive.tar.xz")
    'tar.xz'
    """
    return ".".join(PurePath(path).name.split(".")[1:])


def make_fenced_code_block(
    content: str, language: str = "", title: str | None = None
) -> str:
    """Wrap ``content`` in a fenced code block.

    The opening fence carries the optional language tag and ``title``
    attribute; the content is kept verbatim and the closing fence always sits
    on its own line. The block has no trailing newline so it can replace a
    single template line.
    """
    header = FENCE
    if language:
        header += f" {language}"
    if title is not None:
        header += f' title="{title}"'
    body = content if content.endswith("\n") or not content else content + "\n"
    return f"{header}\n{body}{FENCE}"


def embed_file(base_path: Path, relative_ref: str) -> str:
    """Render ``base_path / relative_ref`` as a titled fenced code block.

    Parameters
    ----------
    base_path : Path
        The lesson directory the reference is relative to.
    relative_ref : str
        The path captured from a file-embed marker.

    Returns
    -------
    str
        Fenced block tagged with the file extension and titled with the
        file's base name.

    Raises
    ------
    MissingFileError
        If the referenced file does not exist.
    UnreadableFileError
        If it is not UTF-8 text, e.g. a binary archive.
    """
    file_path = base_path / relative_ref
    if not file_path.is_file():
        raise MissingFileError(
            f"Embedded file not found: {relative_ref}",
            context={"path": str(file_path), "reference": relative_ref},
        )
    content = read_text_file(file_path)
    logger.debug("Embedding %s (%d bytes)", file_path, len(content))
    return make_fenced_code_block(
        content, language=get_file_extension(file_path), title=file_path.name
    )
