"""Configuration loader for lesson builds.

This module provides LessonBuildConfig, which reads the evaluation context
and sandbox settings from environment variables and an optional ``.env``
file, and validates them.

Role in Architecture
--------------------
- Boundary between the process environment (developer shell, CI) and the
  typed ``EvaluationContext`` / ``SandboxSettings`` used by the pipeline.
- No rendering logic: only loading, structuring and validation.

Examples
--------
>>> from lessondocs.pipeline.lesson_generator.config import LessonBuildConfig
>>> cfg = LessonBuildConfig()
>>> cfg.max_concurrent_runs > 0
True
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

from lessondocs.config import (
    DEFAULT_CONTEXT_PLACEHOLDER,
    DEFAULT_EXPERIMENTAL_FEATURES,
    DEFAULT_LESSON_FILE,
    DEFAULT_MAX_CONCURRENT_RUNS,
    DEFAULT_NIX_BIN,
    DEFAULT_NIXPKGS,
    EVAL_FILE_PREFIX,
    SANDBOX_OPTIONAL_TOOLS,
    SANDBOX_REQUIRED_TOOLS,
)
from lessondocs.exceptions import ConfigurationError

from .evaluation import EvaluationContext
from .sandbox import SandboxSettings


def _split_words(value: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
    if value is None or not value.strip():
        return default
    return tuple(value.replace(",", " ").split())


class LessonBuildConfig:
    r"""Environment-driven settings for evaluation and sandboxed runs.

    Attributes
    ----------
    nix_bin : str
        ``NIX_BIN``; the nix executable.
    nixpkgs : str
        ``NIXPKGS_PATH``; absolute path of the package catalog, or a
        search-path lookup such as ``<nixpkgs>``.
    system : str | None
        ``NIX_SYSTEM``; system identifier passed to the catalog.
    experimental_features : tuple[str, ...]
        ``NIX_EXPERIMENTAL_FEATURES``; space or comma separated.
    placeholder : str
        ``NIX_CONTEXT_PLACEHOLDER``; token replaced in ``--apply`` expressions.
    extra_tools : tuple[str, ...]
        ``SANDBOX_TOOLS``; additional optional tools linked into the sandbox.
    cache_url : str | None
        ``SANDBOX_CACHE_URL``; the local read-only binary cache.
    max_concurrent_runs : int
        ``MAX_CONCURRENT_RUNS``; parallel sandboxed scripts.
    lesson_file : str
        ``LESSON_FILE``; template name inside each lesson.
    eval_prefix : str
        ``EVAL_FILE_PREFIX``; prefix marking evaluation files.

    Notes
    -----
    Instantiate once at process start; the object is not mutated afterwards.
    """

    def __init__(self, env_file: Path | None = None) -> None:
        """Load ``env_file`` (default ``./.env``) and read the environment.

        Raises
        ------
        ConfigurationError
            If ``MAX_CONCURRENT_RUNS`` is not a positive integer.
        """
        env_path = env_file if env_file is not None else Path.cwd() / ".env"
        if env_path.exists():
            load_dotenv(env_path, override=True)
        self.nix_bin: str = os.getenv("NIX_BIN", DEFAULT_NIX_BIN)
        self.nixpkgs: str = os.getenv("NIXPKGS_PATH", DEFAULT_NIXPKGS)
        self.system: str | None = os.getenv("NIX_SYSTEM") or None
        self.experimental_features = _split_words(
            os.getenv("NIX_EXPERIMENTAL_FEATURES"), DEFAULT_EXPERIMENTAL_FEATURES
        )
        self.placeholder: str = os.getenv(
            "NIX_CONTEXT_PLACEHOLDER", DEFAULT_CONTEXT_PLACEHOLDER
        )
        self.extra_tools = _split_words(os.getenv("SANDBOX_TOOLS"), ())
        self.cache_url: str | None = os.getenv("SANDBOX_CACHE_URL") or None
        self.lesson_file: str = os.getenv("LESSON_FILE", DEFAULT_LESSON_FILE)
        self.eval_prefix: str = os.getenv("EVAL_FILE_PREFIX", EVAL_FILE_PREFIX)
        raw_runs = os.getenv("MAX_CONCURRENT_RUNS", str(DEFAULT_MAX_CONCURRENT_RUNS))
        try:
            self.max_concurrent_runs = int(raw_runs)
        except ValueError:
            raise ConfigurationError(
                f"MAX_CONCURRENT_RUNS must be an integer, got {raw_runs!r}",
                context={"MAX_CONCURRENT_RUNS": raw_runs},
            ) from None
        if self.max_concurrent_runs < 1:
            raise ConfigurationError(
                "MAX_CONCURRENT_RUNS must be at least 1",
                context={"MAX_CONCURRENT_RUNS": raw_runs},
            )

    def evaluation_context(self) -> EvaluationContext:
        return EvaluationContext(
            nix_bin=self.nix_bin,
            nixpkgs=self.nixpkgs,
            system=self.system,
            experimental_features=self.experimental_features,
            placeholder=self.placeholder,
        )

    def sandbox_settings(self) -> SandboxSettings:
        optional = SANDBOX_OPTIONAL_TOOLS + tuple(
            tool for tool in self.extra_tools if tool not in SANDBOX_OPTIONAL_TOOLS
        )
        return SandboxSettings(
            required_tools=SANDBOX_REQUIRED_TOOLS,
            optional_tools=optional,
            experimental_features=self.experimental_features,
            cache_url=self.cache_url,
            nix_bin=self.nix_bin,
            nixpkgs=self.nixpkgs,
            max_concurrent_runs=self.max_concurrent_runs,
        )
