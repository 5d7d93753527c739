"""Rewrite abstract lesson run scripts into concrete shell scripts.

Lesson run scripts are written the way a reader would type them, e.g.
``nix run nixpkgs#hello -- --greeting hi`` or
``nix eval -f ./eval.nix --apply 'x: x.config' --json | jq .``. Before such a
script can run inside the sandbox, those idioms are rewritten:

1. ``nix run <catalog>#<attr> [--]`` becomes the absolute path of the
   package's main executable.
2. ``nix eval <args>`` (up to the first unquoted shell operator such as
   ``|``, ``;``, ``&&`` or ``>``, or the end of the line) is evaluated right
   away and replaced by an ``echo`` of the shell-quoted result.

Rule order is the tie-break: each line is held as a list of segments, and a
segment produced by a rule is never offered to a later rule. Each rule
rewrites at most its first match per line.
"""

from __future__ import annotations

import logging
import re
import shlex
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path

from lessondocs.exceptions import (
    MalformedArgumentsError,
    MissingFileError,
    NoFileSpecifiedError,
)

from .evaluation import EvaluationContext, Evaluator, OutputMode, path_literal
from .templating import read_text_file

logger = logging.getLogger(__name__)

PACKAGE_RUN_PATTERN = re.compile(
    r"nix run (?:nixpkgs|pkgs)#([A-Za-z0-9_+\-]+(?:\.[A-Za-z0-9_+\-]+)*)(?:\s+--(?=\s|$))?"
)
# Arguments run up to the first unquoted shell operator (|, ;, &, <, >).
EVALUATION_PATTERN = re.compile(
    r"nix eval(?=\s|$)((?:[^|;&<>'\"\n]|'[^'\n]*'|\"(?:[^\"\\\n]|\\.)*\")*)"
)


@dataclass(frozen=True)
class RewriteRule:
    """A recognised command idiom and the function producing its replacement.

    ``transform`` receives the match and the lesson directory.
    """

    name: str
    pattern: re.Pattern[str]
    transform: Callable[[re.Match[str], Path], str]


@dataclass(frozen=True)
class EvalArguments:
    """Parsed arguments of an evaluation command."""

    file: str
    apply: str | None = None
    json: bool = False
    raw: bool = False

    @property
    def output(self) -> OutputMode:
        if self.json:
            return "json"
        if self.raw:
            return "raw"
        return "pretty"


def _option_value(tokens: Iterator[str], flag: str) -> str:
    try:
        return next(tokens)
    except StopIteration:
        raise MalformedArgumentsError(
            f"Option {flag} expects a value", context={"flag": flag}
        ) from None


def parse_eval_arguments(raw_args: str) -> EvalArguments:
    """Parse ``nix eval`` arguments honouring POSIX shell quoting.

    Supported: ``-f``/``--file`` (required), ``--apply``, ``--json``, ``--raw``;
    long options also accept the ``--opt=value`` form.

    Raises
    ------
    MalformedArgumentsError
        On unbalanced quotes, a missing option value or an unsupported token.
    NoFileSpecifiedError
        When no ``-f``/``--file`` option is present.

    Examples
    --------
    >>> parse_eval_arguments("-f ./eval.nix --apply 'x: x.a' --json")
    EvalArguments(file='./eval.nix', apply='x: x.a', json=True, raw=False)
    """
    try:
        tokens = shlex.split(raw_args, posix=True)
    except ValueError as exc:
        raise MalformedArgumentsError(
            f"Cannot parse arguments: {exc}", context={"arguments": raw_args}
        ) from exc

    file: str | None = None
    apply: str | None = None
    as_json = False
    as_raw = False
    remaining = iter(tokens)
    for token in remaining:
        flag, sep, inline = token.partition("=") if token.startswith("--") else (token, "", "")
        if flag in ("-f", "--file"):
            file = inline if sep else _option_value(remaining, flag)
        elif flag == "--apply":
            apply = inline if sep else _option_value(remaining, flag)
        elif token == "--json":
            as_json = True
        elif token == "--raw":
            as_raw = True
        else:
            raise MalformedArgumentsError(
                f"Unsupported nix eval argument: {token}",
                context={"arguments": raw_args, "token": token},
            )
    if not file:
        raise NoFileSpecifiedError(
            "nix eval requires -f/--file: no file specified",
            context={"arguments": raw_args},
        )
    return EvalArguments(file=file, apply=apply, json=as_json, raw=as_raw)


class CommandRewriter:
    """Apply the ordered rewrite rules to lesson run scripts.

    Parameters
    ----------
    evaluator : Evaluator
        Resolves package executables and evaluates expression files.
    context : EvaluationContext
        Supplies the catalog path substituted for the ``--apply`` placeholder.
    """

    def __init__(self, evaluator: Evaluator, context: EvaluationContext) -> None:
        self.evaluator = evaluator
        self.context = context
        self.rules: tuple[RewriteRule, ...] = (
            RewriteRule("package-run", PACKAGE_RUN_PATTERN, self._package_run),
            RewriteRule("evaluation", EVALUATION_PATTERN, self._evaluation),
        )

    def _package_run(self, match: re.Match[str], lesson_path: Path) -> str:
        return self.evaluator.package_executable(match.group(1))

    def _evaluation(self, match: re.Match[str], lesson_path: Path) -> str:
        raw_args = match.group(1)
        trailing = raw_args[len(raw_args.rstrip()):]
        args = parse_eval_arguments(raw_args)
        file_path = lesson_path / args.file
        if not file_path.is_file():
            raise MissingFileError(
                f"Evaluation file not found: {args.file}",
                context={"path": str(file_path), "reference": args.file},
            )
        apply = args.apply
        if apply is not None:
            catalog = (
                path_literal(self.context.nixpkgs)
                if self.context.nixpkgs_is_path
                else self.context.nixpkgs
            )
            apply = apply.replace(self.context.placeholder, catalog)
        value = self.evaluator.evaluate_file(file_path, apply, args.output)
        return f"echo {shlex.quote(value.rstrip(chr(10)))}{trailing}"

    def rewrite_line(self, line: str, lesson_path: Path) -> str:
        """Rewrite one script line; text no rule matches is kept verbatim."""
        segments: list[tuple[str, bool]] = [(line, False)]
        for rule in self.rules:
            for index, (text, rewritten) in enumerate(segments):
                if rewritten:
                    continue
                match = rule.pattern.search(text)
                if match is None:
                    continue
                replacement = rule.transform(match, lesson_path)
                logger.debug("Rule %s rewrote %r", rule.name, match.group(0))
                segments[index : index + 1] = [
                    (text[: match.start()], False),
                    (replacement, True),
                    (text[match.end() :], False),
                ]
                break
        return "".join(text for text, _ in segments)

    def rewrite(self, script: str, lesson_path: Path) -> str:
        """Rewrite every line of ``script``."""
        return "\n".join(
            self.rewrite_line(line, lesson_path) for line in script.split("\n")
        )

    def rewrite_file(self, lesson_path: Path, relative_script: str) -> str:
        """Read ``lesson_path / relative_script`` and rewrite it.

        Raises
        ------
        MissingFileError
            If the script does not exist.
        UnreadableFileError
            If the script is not UTF-8 text.
        """
        script_path = lesson_path / relative_script
        if not script_path.is_file():
            raise MissingFileError(
                f"Run script not found: {relative_script}",
                context={"path": str(script_path), "reference": relative_script},
            )
        return self.rewrite(read_text_file(script_path), lesson_path)
