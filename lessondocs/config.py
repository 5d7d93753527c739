"""Global configuration constants for the project.

Defines paths, filenames and defaults used across the lesson pipeline.
"""

from __future__ import annotations

from pathlib import Path

# Project directories
PROJECT_ROOT: Path = Path(__file__).resolve().parents[1]
LOG_DIR: Path = PROJECT_ROOT / "logs"

# Lesson layout defaults (relative to the working directory of the build)
DEFAULT_LESSONS_DIR: Path = Path("lessons")
DEFAULT_OUTPUT_DIR: Path = Path("result")
DEFAULT_LESSON_FILE: str = "lesson.md"
OUTPUT_LESSONS_SUBDIR: str = "lessons"

# Self-evaluation files are every file whose base name starts with this prefix
EVAL_FILE_PREFIX: str = "eval"

# Fenced code blocks
FENCE: str = "```"
SELF_EVAL_LANGUAGE: str = "nix"

# Evaluation context defaults
DEFAULT_NIX_BIN: str = "nix"
DEFAULT_NIXPKGS: str = "<nixpkgs>"
DEFAULT_CONTEXT_PLACEHOLDER: str = "<nixpkgs>"
DEFAULT_EXPERIMENTAL_FEATURES: tuple[str, ...] = ("nix-command", "flakes")

# Sandbox defaults
SANDBOX_SHELL: str = "bash"
SANDBOX_REQUIRED_TOOLS: tuple[str, ...] = ("bash", "nix", "jq")
SANDBOX_OPTIONAL_TOOLS: tuple[str, ...] = (
    "cat",
    "echo",
    "ls",
    "mkdir",
    "cp",
    "mv",
    "rm",
    "touch",
    "head",
    "tail",
    "wc",
    "tr",
    "sort",
    "uniq",
    "cut",
    "grep",
    "sed",
    "env",
)
SANDBOX_SCRIPT_NAME: str = "run.sh"
DEFAULT_MAX_CONCURRENT_RUNS: int = 4

# Logging
LOG_FILENAME_RENDER_LESSONS: str = "render_lessons.log"
LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
