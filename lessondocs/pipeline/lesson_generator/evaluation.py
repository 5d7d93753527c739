"""Evaluation context, Nix evaluator and the self-evaluation map.

Lessons ship companion ``eval*`` files: Nix expressions, optionally functions
of ``{ pkgs }``, whose pretty-printed value can be shown in the rendered
lesson through ``[//]: # (self.<name>)`` markers. Run scripts may also call
``nix eval`` on such files; those calls are resolved here at rewrite time.

The evaluation context is passed explicitly; nothing in this module reads
global state. ``NixEvaluator`` shells out to the ``nix`` CLI; tests and
alternative backends only need to provide the two methods of ``Evaluator``.
"""

from __future__ import annotations

import logging
import os
import subprocess
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Literal, Protocol

from lessondocs.config import (
    DEFAULT_CONTEXT_PLACEHOLDER,
    DEFAULT_EXPERIMENTAL_FEATURES,
    DEFAULT_NIX_BIN,
    DEFAULT_NIXPKGS,
    EVAL_FILE_PREFIX,
    SELF_EVAL_LANGUAGE,
)
from lessondocs.exceptions import (
    ConfigurationError,
    EvaluationError,
    MissingAttributeError,
)

from .templating import make_fenced_code_block

logger = logging.getLogger(__name__)

OutputMode = Literal["pretty", "json", "raw"]


@dataclass(frozen=True)
class EvaluationContext:
    """Everything needed to evaluate lesson expressions.

    Attributes
    ----------
    nix_bin : str
        The ``nix`` executable.
    nixpkgs : str
        The package catalog: an absolute path to a nixpkgs checkout or a
        search-path lookup such as ``<nixpkgs>``.
    system : str | None
        System identifier passed to nixpkgs (e.g. ``x86_64-linux``); ``None``
        lets nixpkgs pick the host system.
    experimental_features : tuple[str, ...]
        Features enabled for every ``nix`` invocation.
    placeholder : str
        Token in ``--apply`` expressions replaced by the real catalog path.
    """

    nix_bin: str = DEFAULT_NIX_BIN
    nixpkgs: str = DEFAULT_NIXPKGS
    system: str | None = None
    experimental_features: tuple[str, ...] = DEFAULT_EXPERIMENTAL_FEATURES
    placeholder: str = DEFAULT_CONTEXT_PLACEHOLDER

    @property
    def nixpkgs_is_path(self) -> bool:
        return not self.nixpkgs.startswith("<")

    def nix_command(self, *args: str) -> list[str]:
        """Return a ``nix`` argv with the experimental features enabled."""
        return [
            self.nix_bin,
            "--extra-experimental-features",
            " ".join(self.experimental_features),
            *args,
        ]

    def environment(self, base: Mapping[str, str] | None = None) -> dict[str, str]:
        """Return ``base`` (default ``os.environ``) with ``NIX_PATH`` pointing at the catalog."""
        env = dict(os.environ if base is None else base)
        if self.nixpkgs_is_path:
            env["NIX_PATH"] = f"nixpkgs={self.nixpkgs}"
        return env


class Evaluator(Protocol):
    """What the self evaluator and the command rewriter need from a backend."""

    def evaluate_file(
        self, path: Path, apply: str | None = None, output: OutputMode = "pretty"
    ) -> str: ...

    def package_executable(self, attribute: str) -> str: ...


def nix_string(value: str) -> str:
    """Quote ``value`` as a Nix string literal."""
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("${", "\\${")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    return f'"{escaped}"'


def path_literal(path: Path | str) -> str:
    """Return a Nix path expression for an absolute filesystem path."""
    return f"(/. + {nix_string(str(Path(path).resolve()))})"


def pkgs_expression(context: EvaluationContext) -> str:
    source = path_literal(context.nixpkgs) if context.nixpkgs_is_path else context.nixpkgs
    args = f"{{ system = {nix_string(context.system)}; }}" if context.system else "{ }"
    return f"import {source} {args}"


def file_expression(
    context: EvaluationContext,
    path: Path,
    apply: str | None = None,
    output: OutputMode = "pretty",
) -> str:
    """Build the expression that loads ``path``, applies ``apply`` and serialises.

    A file holding a function is called with ``{ inherit pkgs; }``.
    """
    value = (
        f"(let f = import {path_literal(path)}; "
        f"in if builtins.isFunction f then f {{ inherit pkgs; }} else f)"
    )
    if apply:
        value = f"(({apply}) {value})"
    if output == "json":
        result = f"builtins.toJSON {value}"
    elif output == "raw":
        result = value
    else:
        result = f"lib.generators.toPretty {{ }} {value}"
    return f"let pkgs = {pkgs_expression(context)}; lib = pkgs.lib; in {result}"


def package_expression(
    context: EvaluationContext, attribute: str, executable: bool = False
) -> str:
    """Select ``attribute`` (dotted, e.g. ``python3Packages.black``) from the catalog.

    With ``executable`` the expression yields ``lib.getExe`` of the package.
    """
    package = (
        f"(pkgs.lib.getAttrFromPath (pkgs.lib.splitString \".\" {nix_string(attribute)}) pkgs)"
    )
    if executable:
        package = f"pkgs.lib.getExe {package}"
    return f"let pkgs = {pkgs_expression(context)}; in {package}"


class NixEvaluator:
    """Evaluate lesson expressions with the ``nix`` command line tool.

    Package executables are realised once and memoised per attribute name,
    so resolution does not depend on the order lessons ask for them.
    """

    def __init__(self, context: EvaluationContext) -> None:
        self.context = context
        self._executables: dict[str, str] = {}
        self._lock = threading.Lock()

    def _run(self, *args: str) -> str:
        cmd = self.context.nix_command(*args)
        logger.debug("Running %s", " ".join(cmd[:4]))
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=False,
                env=self.context.environment(),
            )
        except FileNotFoundError as exc:
            raise ConfigurationError(
                f"Nix executable not found: {self.context.nix_bin}",
                context={"nix_bin": self.context.nix_bin},
            ) from exc
        if result.returncode != 0:
            raise EvaluationError(
                f"nix {args[0]} failed with return code {result.returncode}",
                context={
                    "returncode": result.returncode,
                    "stderr": result.stderr,
                    "args": list(args),
                },
            )
        return result.stdout

    def evaluate(self, expression: str) -> str:
        """Evaluate ``expression`` and return its string value unquoted."""
        return self._run("eval", "--impure", "--raw", "--expr", expression)

    def evaluate_file(
        self, path: Path, apply: str | None = None, output: OutputMode = "pretty"
    ) -> str:
        return self.evaluate(file_expression(self.context, path, apply, output))

    def package_executable(self, attribute: str) -> str:
        with self._lock:
            cached = self._executables.get(attribute)
            if cached is not None:
                return cached
            # The store path must exist before the sandbox can execute it.
            self._run(
                "build",
                "--impure",
                "--no-link",
                "--print-out-paths",
                "--expr",
                package_expression(self.context, attribute),
            )
            executable = self.evaluate(
                package_expression(self.context, attribute, executable=True)
            )
            self._executables[attribute] = executable.strip()
            logger.info("Resolved package %s to %s", attribute, self._executables[attribute])
            return self._executables[attribute]


def build_evaluation_map(
    lesson_path: Path, evaluator: Evaluator, prefix: str = EVAL_FILE_PREFIX
) -> Mapping[str, str]:
    """Evaluate every file under ``lesson_path`` whose name starts with ``prefix``.

    Parameters
    ----------
    lesson_path : Path
        Lesson directory, scanned recursively.
    evaluator : Evaluator
        Backend used to evaluate and pretty-print each file.
    prefix : str, optional
        Reserved evaluation-file prefix, ``"eval"`` by default.

    Returns
    -------
    Mapping[str, str]
        Read-only mapping from file name without its extension to the
        pretty-printed value.

    Notes
    -----
    Files are visited in sorted path order; when two files share a key the
    first one wins and a warning is logged.
    """
    evaluations: dict[str, str] = {}
    files = sorted(
        p for p in lesson_path.rglob("*") if p.is_file() and p.name.startswith(prefix)
    )
    for path in files:
        key = path.stem
        if key in evaluations:
            logger.warning(
                f"Duplicate evaluation key '{key}' from {path}; keeping the first file"
            )
            continue
        evaluations[key] = evaluator.evaluate_file(path).rstrip("\n")
        logger.debug("Evaluated %s as '%s'", path, key)
    return MappingProxyType(evaluations)


def substitute_self(
    evaluations: Mapping[str, str],
    attr_ref: str,
    language: str = SELF_EVAL_LANGUAGE,
) -> str:
    """Render the evaluated value named ``attr_ref`` as a fenced code block.

    Raises
    ------
    MissingAttributeError
        If ``attr_ref`` is not a key of ``evaluations``.
    """
    try:
        value = evaluations[attr_ref]
    except KeyError:
        raise MissingAttributeError(
            f"No evaluation named '{attr_ref}'",
            context={"attribute": attr_ref, "available": sorted(evaluations)},
        ) from None
    return make_fenced_code_block(value, language=language)
