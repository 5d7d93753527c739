"""Runner entrypoint and logging tests for the lesson build."""

import logging
from pathlib import Path, PurePosixPath

import pytest
from conftest import FakeEvaluator

import lessondocs.pipeline.lesson_generator.runner as runner
from lessondocs.exceptions import ConfigurationError, LessonRenderError
from lessondocs.pipeline.lesson_generator.config import LessonBuildConfig
from lessondocs.pipeline.lesson_generator.processor import RenderedLesson


@pytest.fixture
def config(tmp_path: Path) -> LessonBuildConfig:
    return LessonBuildConfig(env_file=tmp_path / "missing.env")


def rendered(name: str, text: str) -> RenderedLesson:
    parent = PurePosixPath("lessons") / name
    return RenderedLesson(name, parent, parent / "lesson.md", text)


def test_configure_logging_filehandler_error(monkeypatch):
    """File handler failures only disable file logging."""

    class BadFH:
        def __init__(self, *a, **k):
            raise OSError("fh error")

    monkeypatch.setattr(runner.logging, "FileHandler", BadFH)
    runner.configure_logging("DEBUG", enable_file=True)
    assert logging.getLogger().level == logging.DEBUG
    assert all(
        not isinstance(h, logging.FileHandler) for h in logging.getLogger().handlers
    )


def test_write_rendered_lessons_replaces_tree(tmp_path: Path):
    stale = tmp_path / "out" / "lessons" / "999-old" / "lesson.md"
    stale.parent.mkdir(parents=True)
    stale.write_text("old")
    keep = tmp_path / "out" / "other.txt"
    keep.write_text("keep")

    written = runner.write_rendered_lessons([rendered("001-a", "A\n")], tmp_path / "out")

    assert written == [tmp_path / "out" / "lessons" / "001-a" / "lesson.md"]
    assert written[0].read_text() == "A\n"
    assert not stale.exists()
    assert keep.read_text() == "keep"


def test_copy_lessons_to_site(tmp_path: Path):
    out = tmp_path / "out"
    runner.write_rendered_lessons([rendered("001-a", "A")], out)
    site = tmp_path / "site" / "docs"
    (site / "lessons" / "old").mkdir(parents=True)
    (site / "index.md").parent.mkdir(parents=True, exist_ok=True)
    (site / "index.md").write_text("home")

    destination = runner.copy_lessons_to_site(out, site)

    assert destination == site / "lessons"
    assert (site / "lessons" / "001-a" / "lesson.md").read_text() == "A"
    assert not (site / "lessons" / "old").exists()
    assert (site / "index.md").read_text() == "home"


def test_run_from_config(make_lesson, tmp_path: Path, config):
    make_lesson("001-a", {"lesson.md": "# A\n[//]: # (self.eval)\n", "eval.nix": "1"})
    make_lesson("002-b", {"lesson.md": "# B\n"})
    result = runner.run_from_config(
        lessons_dir=tmp_path / "lessons",
        output_dir=tmp_path / "result",
        site_docs=tmp_path / "site",
        config=config,
        evaluator=FakeEvaluator({"eval.nix": "1\n"}),
    )
    assert [r.name for r in result] == ["001-a", "002-b"]
    out = tmp_path / "result" / "lessons" / "001-a" / "lesson.md"
    assert out.read_text() == "# A\n``` nix\n1\n```\n"
    assert (tmp_path / "site" / "lessons" / "002-b" / "lesson.md").read_text() == "# B\n"


def test_run_from_config_failure_writes_nothing(make_lesson, tmp_path: Path, config):
    make_lesson("001-a", {"lesson.md": "# A\n"})
    make_lesson("002-b", {"lesson.md": "[//]: # (./missing.nix)\n"})
    with pytest.raises(LessonRenderError):
        runner.run_from_config(
            lessons_dir=tmp_path / "lessons",
            output_dir=tmp_path / "result",
            config=config,
            evaluator=FakeEvaluator(),
        )
    assert not (tmp_path / "result").exists()


def test_build_renderer_defaults_to_nix_evaluator(config):
    renderer = runner.build_renderer(config)
    assert isinstance(renderer.evaluator, runner.NixEvaluator)
    assert renderer.runner.settings.max_concurrent_runs == config.max_concurrent_runs


def test_check_site_docs(tmp_path: Path):
    out = tmp_path / "out"
    assert runner.check_site_docs(out, tmp_path / "site") is True
    assert runner.check_site_docs(out, out) is False
    with pytest.raises(ConfigurationError):
        runner.check_site_docs(out, out / "lessons")
    with pytest.raises(ConfigurationError):
        runner.check_site_docs(out / "lessons" / "x", out)


def test_run_from_config_site_docs_is_output_dir(make_lesson, tmp_path: Path, config):
    """Pointing the site at the output root keeps the rendered lessons."""
    make_lesson("001-a", {"lesson.md": "# A\n"})
    out = tmp_path / "result"
    runner.run_from_config(
        lessons_dir=tmp_path / "lessons",
        output_dir=out,
        site_docs=out,
        config=config,
        evaluator=FakeEvaluator(),
    )
    assert (out / "lessons" / "001-a" / "lesson.md").read_text() == "# A\n"


def test_run_from_config_overlapping_site_docs(make_lesson, tmp_path: Path, config):
    make_lesson("001-a", {"lesson.md": "# A\n"})
    out = tmp_path / "result"
    with pytest.raises(ConfigurationError):
        runner.run_from_config(
            lessons_dir=tmp_path / "lessons",
            output_dir=out,
            site_docs=out / "lessons",
            config=config,
            evaluator=FakeEvaluator(),
        )
    assert not out.exists()
