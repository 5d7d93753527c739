"""Whole-line marker extraction for lesson templates.

A marker is a hidden markdown comment that occupies an entire line, for
example ``[//]: # (./options.nix)``. Each marker kind has two patterns: a
line pattern that decides whether a line is a marker at all, and a companion
capture pattern with a single group holding the reference (relative path,
attribute name or script path). Both are matched against the whole line;
a marker-like fragment inside a longer line is not a marker.

Boundaries
----------
- Pure string handling, no filesystem access.
- Order of occurrence and duplicates are preserved.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass


class MarkerKind(enum.Enum):
    """The three supported marker kinds."""

    FILE_EMBED = "file_embed"
    SELF_EVAL = "self_eval"
    RUN_COMMAND = "run_command"


@dataclass(frozen=True)
class MarkerSyntax:
    """Line and capture patterns for one marker kind."""

    line_pattern: re.Pattern[str]
    capture_pattern: re.Pattern[str]


MARKER_SYNTAX: dict[MarkerKind, MarkerSyntax] = {
    MarkerKind.FILE_EMBED: MarkerSyntax(
        re.compile(r"\[//\]: # \(\./.*\)"),
        re.compile(r"\[//\]: # \(\./(.*)\)"),
    ),
    MarkerKind.SELF_EVAL: MarkerSyntax(
        re.compile(r"\[//\]: # \(self\..*\)"),
        re.compile(r"\[//\]: # \(self\.(.*)\)"),
    ),
    MarkerKind.RUN_COMMAND: MarkerSyntax(
        re.compile(r"\[//\]: # \(run .*\)"),
        re.compile(r"\[//\]: # \(run (.*)\)"),
    ),
}


@dataclass(frozen=True)
class Marker:
    """One marker occurrence in a lesson template.

    Attributes
    ----------
    kind : MarkerKind
        Which substitution the marker asks for.
    line : str
        The raw full line, used as the key to replace.
    reference : str
        The captured reference string.
    """

    kind: MarkerKind
    line: str
    reference: str


def extract(pattern: re.Pattern[str] | str, text: str) -> list[str]:
    """Return the lines of ``text`` that match ``pattern`` in their entirety.

    Parameters
    ----------
    pattern : re.Pattern[str] | str
        Line-level pattern; it must cover the whole line to count.
    text : str
        Multiline input, split on ``\\n``.

    Returns
    -------
    list[str]
        Matching lines in original order, duplicates preserved.

    Examples
    --------
    >>> extract(r"\\[//\\]: # \\(\\./.*\\)", "intro\\n[//]: # (./a.nix)\\nsee [//]: # (./b.nix)")
    ['[//]: # (./a.nix)']
    """
    compiled = re.compile(pattern) if isinstance(pattern, str) else pattern
    return [line for line in text.split("\n") if compiled.fullmatch(line)]


def extract_captures(pattern: re.Pattern[str] | str, lines: list[str]) -> list[str]:
    """Return the single capture group of ``pattern`` for every matching line."""
    compiled = re.compile(pattern) if isinstance(pattern, str) else pattern
    captures: list[str] = []
    for line in lines:
        match = compiled.fullmatch(line)
        if match:
            captures.append(match.group(1))
    return captures


def find_markers(kind: MarkerKind, text: str) -> list[Marker]:
    """Find all markers of one kind in ``text``.

    The marker list and the capture list are built by two separate whole-line
    passes; the capture pattern accepts every line the line pattern accepts,
    so both lists have the same length and order.
    """
    syntax = MARKER_SYNTAX[kind]
    lines = extract(syntax.line_pattern, text)
    references = extract_captures(syntax.capture_pattern, lines)
    if len(lines) != len(references):
        raise ValueError(
            f"Marker capture mismatch for {kind.value}: "
            f"{len(lines)} lines, {len(references)} references"
        )
    return [Marker(kind, line, ref) for line, ref in zip(lines, references)]
