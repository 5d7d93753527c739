"""Sandboxed runner tests.

Runs use the real ``bash`` of the host with a reduced tool set, so no Nix
installation is needed.
"""

import asyncio
import shutil
from pathlib import Path

import pytest

from lessondocs.exceptions import ConfigurationError, NonZeroExitError, UnreadableFileError
from lessondocs.pipeline.lesson_generator.sandbox import (
    SandboxRunner,
    SandboxSettings,
    SandboxWorkspace,
    resolve_tools,
    run_key,
    sandbox_environment,
    sandbox_workspace,
)

needs_bash = pytest.mark.skipif(shutil.which("bash") is None, reason="bash not available")


def shell_settings(**overrides) -> SandboxSettings:
    values = dict(required_tools=("bash",), optional_tools=("cat", "ls"))
    values.update(overrides)
    return SandboxSettings(**values)


@pytest.fixture
def lesson(make_lesson) -> Path:
    return make_lesson("020-run", {"data.txt": "from the lesson\n"})


def test_nix_config_with_and_without_cache():
    assert SandboxSettings().nix_config() == (
        "experimental-features = nix-command flakes\nsubstituters =\n"
    )
    cached = SandboxSettings(cache_url="file:///var/cache/lessons").nix_config()
    assert "substituters = file:///var/cache/lessons\n" in cached
    assert "require-sigs = false" in cached


def test_resolve_tools_missing_required():
    settings = shell_settings(required_tools=("definitely-not-a-tool-xyz",))
    with pytest.raises(ConfigurationError) as excinfo:
        resolve_tools(settings)
    assert excinfo.value.context["missing"] == ["definitely-not-a-tool-xyz"]


@needs_bash
def test_resolve_tools_skips_missing_optional(caplog):
    settings = shell_settings(optional_tools=("definitely-not-a-tool-xyz",))
    with caplog.at_level("WARNING"):
        tools = resolve_tools(settings)
    assert list(tools) == ["bash"]
    assert "definitely-not-a-tool-xyz" in caplog.text


def test_sandbox_environment_is_closed(tmp_path: Path, monkeypatch):
    """Only the sandbox paths and Nix settings are exported."""
    monkeypatch.setenv("SECRET_TOKEN", "x")
    ws = SandboxWorkspace(
        tmp_path, tmp_path / "bin", tmp_path / "home", tmp_path / "tmp", tmp_path / "work"
    )
    env = sandbox_environment(SandboxSettings(nixpkgs="/src/nixpkgs"), ws)
    assert env["PATH"] == str(tmp_path / "bin")
    assert env["HOME"] == str(tmp_path / "home")
    assert env["NIX_PATH"] == "nixpkgs=/src/nixpkgs"
    assert "SECRET_TOKEN" not in env
    assert "NIX_PATH" not in sandbox_environment(SandboxSettings(), ws)


def test_run_key_depends_on_path_and_script(tmp_path: Path):
    assert run_key(tmp_path, "a") == run_key(tmp_path, "a")
    assert run_key(tmp_path, "a") != run_key(tmp_path, "b")
    assert run_key(tmp_path / "x", "a") != run_key(tmp_path, "a")


def test_sandbox_workspace_copies_and_cleans_up(lesson: Path):
    with sandbox_workspace(lesson, {}) as ws:
        root = ws.root
        assert (ws.work / "data.txt").read_text() == "from the lesson\n"
        (ws.work / "scratch.txt").write_text("x")
        assert ws.home.is_dir() and ws.tmp.is_dir()
    assert not root.exists()
    assert not (lesson / "scratch.txt").exists()


def test_sandbox_workspace_cleans_up_on_error(lesson: Path):
    with pytest.raises(RuntimeError):
        with sandbox_workspace(lesson, {}) as ws:
            root = ws.root
            raise RuntimeError("boom")
    assert not root.exists()


@needs_bash
@pytest.mark.asyncio
async def test_run_returns_fenced_stdout(lesson: Path):
    runner = SandboxRunner(shell_settings())
    out = await runner.run(lesson, "cat data.txt\necho done\n")
    assert out == "```\nfrom the lesson\ndone\n```"


@needs_bash
@pytest.mark.asyncio
async def test_run_is_isolated(lesson: Path):
    """Writes stay in the copy; tools outside the allow-list are absent."""
    runner = SandboxRunner(shell_settings())
    script = "echo changed > data.txt\ncommand -v curl || echo no-curl\necho $HOME\n"
    out = await runner.run(lesson, script)
    lines = out.split("\n")
    assert lines[1] == "no-curl"
    assert lines[2].endswith("/home")
    assert (lesson / "data.txt").read_text() == "from the lesson\n"
    assert not Path(lines[2]).exists()


@needs_bash
@pytest.mark.asyncio
async def test_identical_runs_execute_once(lesson: Path):
    runner = SandboxRunner(shell_settings())
    first, second = await asyncio.gather(
        runner.run(lesson, "echo hi"), runner.run(lesson, "echo hi")
    )
    assert first == second == "```\nhi\n```"
    assert runner.executions == 1
    await runner.run(lesson, "echo other")
    assert runner.executions == 2


@needs_bash
@pytest.mark.asyncio
async def test_non_zero_exit(lesson: Path):
    """Failures carry the captured output and the sandbox is still removed."""
    runner = SandboxRunner(shell_settings())
    with pytest.raises(NonZeroExitError) as excinfo:
        await runner.run(lesson, "pwd\necho oops >&2\nexit 3\n")
    context = excinfo.value.context
    assert context["returncode"] == 3
    assert "oops" in context["stderr"]
    assert context["lesson"] == "020-run"
    assert not Path(context["stdout"].strip()).exists()


@needs_bash
@pytest.mark.asyncio
async def test_pipefail_and_errexit(lesson: Path):
    runner = SandboxRunner(shell_settings())
    with pytest.raises(NonZeroExitError):
        await runner.run(lesson, "false\necho unreachable\n")
    with pytest.raises(NonZeroExitError):
        await runner.run(lesson, "cat missing.txt | cat\n")


@needs_bash
@pytest.mark.asyncio
async def test_failed_run_is_memoised(lesson: Path):
    runner = SandboxRunner(shell_settings())
    for _ in range(2):
        with pytest.raises(NonZeroExitError):
            await runner.run(lesson, "exit 1")
    assert runner.executions == 1


def test_sandbox_workspace_copy_failure(lesson: Path, monkeypatch):
    """A lesson that cannot be copied fails with a typed error."""
    import lessondocs.pipeline.lesson_generator.sandbox as sandbox

    def broken_copytree(*args, **kwargs):
        raise PermissionError("denied")

    monkeypatch.setattr(sandbox.shutil, "copytree", broken_copytree)
    with pytest.raises(UnreadableFileError) as excinfo:
        with sandbox_workspace(lesson, {}):
            pass
    assert excinfo.value.context["path"] == str(lesson)


def test_resolve_tools_uses_absolute_nix_bin(tmp_path: Path, monkeypatch):
    """An absolute nix binary is linked even when nix is not on PATH."""
    nix = tmp_path / "opt" / "nix"
    nix.parent.mkdir()
    nix.write_text("#!/bin/sh\n")
    nix.chmod(0o755)
    monkeypatch.setenv("PATH", str(tmp_path / "empty"))
    settings = SandboxSettings(required_tools=("nix",), optional_tools=(), nix_bin=str(nix))
    assert resolve_tools(settings) == {"nix": str(nix)}
    with pytest.raises(ConfigurationError):
        resolve_tools(SandboxSettings(required_tools=("nix",), optional_tools=()))
