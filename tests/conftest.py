"""Pytest configuration for test environment setup.

- Forces ``DISABLE_FILE_LOGS=1`` to avoid writing log files during tests.
- Ensures the project root is available on ``sys.path`` for imports.
- Provides a fake evaluator and a lesson directory factory so that tests do
  not need a ``nix`` installation.
"""

import os
import sys

os.environ.setdefault("DISABLE_FILE_LOGS", "1")  # Avoid creating log files during tests
from pathlib import Path

import pytest

# Ensure project root is on sys.path
ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

# Environment variables read by LessonBuildConfig; cleared per test so a
# developer's shell or .env cannot leak into assertions.
BUILD_ENV_VARS = (
    "NIX_BIN",
    "NIXPKGS_PATH",
    "NIX_SYSTEM",
    "NIX_EXPERIMENTAL_FEATURES",
    "NIX_CONTEXT_PLACEHOLDER",
    "SANDBOX_TOOLS",
    "SANDBOX_CACHE_URL",
    "MAX_CONCURRENT_RUNS",
    "LESSON_FILE",
    "EVAL_FILE_PREFIX",
    "LESSONS_DIR",
    "OUTPUT_DIR",
)


class FakeEvaluator:
    """In-memory stand-in for ``NixEvaluator``.

    ``values`` maps an evaluation file name (e.g. ``eval.nix``) to the text
    returned for it; unknown files evaluate to ``"<name>"``. Every call is
    recorded for assertions.
    """

    def __init__(self, values=None):
        self.values = dict(values or {})
        self.file_calls = []
        self.package_calls = []

    def evaluate_file(self, path, apply=None, output="pretty"):
        self.file_calls.append((Path(path).name, apply, output))
        return self.values.get(Path(path).name, f"<{Path(path).name}>")

    def package_executable(self, attribute):
        self.package_calls.append(attribute)
        return f"/nix/store/fake-{attribute}/bin/{attribute.split('.')[-1]}"


@pytest.fixture(autouse=True)
def clean_build_env(monkeypatch):
    """Remove build configuration variables from the environment."""
    for name in BUILD_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_evaluator():
    return FakeEvaluator()


@pytest.fixture
def make_lesson(tmp_path):
    """Create ``tmp_path/lessons/<name>`` holding the given files.

    Returns the lesson directory.
    """

    def _make(name, files):
        lesson_dir = tmp_path / "lessons" / name
        lesson_dir.mkdir(parents=True, exist_ok=True)
        for relative, content in files.items():
            target = lesson_dir / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        return lesson_dir

    return _make
