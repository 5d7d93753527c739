"""Tests for the guarded removal helpers."""

from pathlib import Path

import pytest

from lessondocs.fs_utils import create_safe_path, safe_rmtree


def test_create_safe_path_accepts_lessons_subtree(tmp_path: Path):
    assert create_safe_path(tmp_path / "lessons", tmp_path) == (tmp_path / "lessons").resolve()
    inner = tmp_path / "lessons" / "001-a"
    assert create_safe_path(inner, tmp_path) == inner.resolve()


@pytest.mark.parametrize(
    "target, message",
    [
        (".", "output root"),
        ("..", "outside"),
        ("assets", "whitelist"),
    ],
)
def test_create_safe_path_blocks(tmp_path: Path, target, message):
    root = tmp_path / "out"
    root.mkdir()
    with pytest.raises(PermissionError) as excinfo:
        create_safe_path(root / target, root)
    assert message in str(excinfo.value)


def test_safe_rmtree(tmp_path: Path):
    lessons = tmp_path / "lessons" / "001-a"
    lessons.mkdir(parents=True)
    (lessons / "lesson.md").write_text("x")
    safe_rmtree(tmp_path / "lessons", tmp_path)
    assert not (tmp_path / "lessons").exists()
    # Missing trees are a no-op.
    safe_rmtree(tmp_path / "lessons", tmp_path)


def test_safe_rmtree_refuses_root(tmp_path: Path):
    with pytest.raises(PermissionError):
        safe_rmtree(tmp_path, tmp_path)
    assert tmp_path.exists()
