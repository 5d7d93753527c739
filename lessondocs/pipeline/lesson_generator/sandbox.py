"""Sandboxed execution of rewritten lesson run scripts.

Each run gets its own temporary directory holding a ``bin/`` of allowed
tools, a private ``home/`` and ``tmp/``, the script, and ``work/``: a copy of
the lesson directory that becomes the script's working directory. The
directory is removed on every exit path, including failures and
cancellation.

The script sees only the linked tools on ``PATH``, has the experimental Nix
features enabled through ``NIX_CONFIG`` and may only substitute from the
configured local binary cache.

Runs are memoised per ``(lesson path, script)``: identical requests within
one ``SandboxRunner`` share a single execution, including its failure.
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import logging
import os
import shutil
import stat
import tempfile
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path

from lessondocs.config import (
    DEFAULT_EXPERIMENTAL_FEATURES,
    DEFAULT_MAX_CONCURRENT_RUNS,
    DEFAULT_NIX_BIN,
    SANDBOX_OPTIONAL_TOOLS,
    SANDBOX_REQUIRED_TOOLS,
    SANDBOX_SCRIPT_NAME,
    SANDBOX_SHELL,
)
from lessondocs.exceptions import (
    ConfigurationError,
    NonZeroExitError,
    UnreadableFileError,
)

from .templating import make_fenced_code_block

logger = logging.getLogger(__name__)

# Host variables the nix client needs to reach the store daemon.
_PASSTHROUGH_ENV: tuple[str, ...] = ("NIX_REMOTE", "NIX_DAEMON_SOCKET_PATH")


@dataclass(frozen=True)
class SandboxSettings:
    """Toolset, Nix settings and concurrency limit for sandboxed runs.

    Attributes
    ----------
    required_tools : tuple[str, ...]
        Executables that must exist on the host ``PATH``.
    optional_tools : tuple[str, ...]
        Executables linked into the sandbox when present.
    experimental_features : tuple[str, ...]
        Nix experimental features enabled inside the sandbox.
    cache_url : str | None
        The only substituter the sandbox may use (a local, read-only binary
        cache such as ``file:///var/cache/lessons``). ``None`` disables
        substitution entirely.
    nix_bin : str | None
        Configured nix executable; when it is an absolute path it is linked
        as ``nix`` instead of searching the host ``PATH``.
    nixpkgs : str | None
        Catalog path exported as ``NIX_PATH`` when it is a filesystem path.
    max_concurrent_runs : int
        Upper bound on simultaneously running scripts.
    """

    required_tools: tuple[str, ...] = SANDBOX_REQUIRED_TOOLS
    optional_tools: tuple[str, ...] = SANDBOX_OPTIONAL_TOOLS
    experimental_features: tuple[str, ...] = DEFAULT_EXPERIMENTAL_FEATURES
    cache_url: str | None = None
    nix_bin: str | None = None
    nixpkgs: str | None = None
    max_concurrent_runs: int = DEFAULT_MAX_CONCURRENT_RUNS

    def nix_config(self) -> str:
        lines = [
            f"experimental-features = {' '.join(self.experimental_features)}",
            f"substituters = {self.cache_url or ''}".rstrip(),
        ]
        if self.cache_url:
            lines.append("require-sigs = false")
        return "\n".join(lines) + "\n"


@dataclass(frozen=True)
class SandboxWorkspace:
    """Paths of one acquired sandbox directory."""

    root: Path
    bin_dir: Path
    home: Path
    tmp: Path
    work: Path

    @property
    def script(self) -> Path:
        return self.root / SANDBOX_SCRIPT_NAME


def _locate(name: str, settings: SandboxSettings) -> str | None:
    if name == DEFAULT_NIX_BIN and settings.nix_bin and os.path.isabs(settings.nix_bin):
        return settings.nix_bin if Path(settings.nix_bin).is_file() else None
    return shutil.which(name)


def resolve_tools(settings: SandboxSettings) -> dict[str, str]:
    """Locate the sandbox tools on the host ``PATH``.

    An absolute ``settings.nix_bin`` stands in for ``nix``.

    Raises
    ------
    ConfigurationError
        If a required tool cannot be found.
    """
    tools: dict[str, str] = {}
    missing: list[str] = []
    for name in settings.required_tools:
        location = _locate(name, settings)
        if location is None:
            missing.append(name)
        else:
            tools[name] = location
    if missing:
        raise ConfigurationError(
            f"Required sandbox tools not found: {', '.join(missing)}",
            context={"missing": missing},
        )
    for name in settings.optional_tools:
        if name in tools:
            continue
        location = _locate(name, settings)
        if location is None:
            logger.warning(f"Optional sandbox tool '{name}' not found; skipping")
            continue
        tools[name] = location
    return tools


def _make_writable(root: Path) -> None:
    for dirpath, dirnames, filenames in os.walk(root):
        for name in [*dirnames, *filenames]:
            path = Path(dirpath) / name
            if not path.is_symlink():
                path.chmod(path.stat().st_mode | stat.S_IWUSR)


@contextlib.contextmanager
def sandbox_workspace(
    lesson_path: Path, tools: Mapping[str, str]
) -> Iterator[SandboxWorkspace]:
    """Acquire an isolated directory pre-populated with a copy of the lesson.

    The directory and everything in it is removed when the context exits.
    """
    with tempfile.TemporaryDirectory(prefix="lessondocs-") as tmp:
        root = Path(tmp)
        workspace = SandboxWorkspace(
            root=root,
            bin_dir=root / "bin",
            home=root / "home",
            tmp=root / "tmp",
            work=root / "work",
        )
        for directory in (workspace.bin_dir, workspace.home, workspace.tmp):
            directory.mkdir()
        for name, target in tools.items():
            (workspace.bin_dir / name).symlink_to(target)
        try:
            shutil.copytree(lesson_path, workspace.work, symlinks=True)
        except OSError as exc:
            raise UnreadableFileError(
                f"Cannot copy lesson {lesson_path.name} into the sandbox: {exc}",
                context={"path": str(lesson_path)},
            ) from exc
        _make_writable(workspace.work)
        logger.debug("Acquired sandbox %s for %s", root, lesson_path)
        yield workspace
        logger.debug("Releasing sandbox %s", root)


def sandbox_environment(
    settings: SandboxSettings, workspace: SandboxWorkspace
) -> dict[str, str]:
    """Build the complete environment of a sandboxed script."""
    env = {
        "PATH": str(workspace.bin_dir),
        "HOME": str(workspace.home),
        "TMPDIR": str(workspace.tmp),
        "LANG": "C.UTF-8",
        "NIX_CONFIG": settings.nix_config(),
    }
    if settings.nixpkgs and not settings.nixpkgs.startswith("<"):
        env["NIX_PATH"] = f"nixpkgs={settings.nixpkgs}"
    for name in _PASSTHROUGH_ENV:
        if name in os.environ:
            env[name] = os.environ[name]
    return env


def run_key(lesson_path: Path, script: str) -> str:
    """Content key identifying one concrete execution."""
    digest = hashlib.sha256()
    digest.update(str(lesson_path.resolve()).encode("utf-8"))
    digest.update(b"\0")
    digest.update(script.encode("utf-8"))
    return digest.hexdigest()


class SandboxRunner:
    """Execute rewritten run scripts in isolated workspaces.

    Parameters
    ----------
    settings : SandboxSettings | None, optional
        Toolset and limits; defaults to ``SandboxSettings()``.
    """

    def __init__(self, settings: SandboxSettings | None = None) -> None:
        self.settings = settings or SandboxSettings()
        self._semaphore = asyncio.Semaphore(self.settings.max_concurrent_runs)
        self._runs: dict[str, asyncio.Future[str]] = {}
        self._tools: dict[str, str] | None = None

    @property
    def executions(self) -> int:
        """Number of distinct executions started by this runner."""
        return len(self._runs)

    def _resolved_tools(self) -> dict[str, str]:
        if self._tools is None:
            self._tools = resolve_tools(self.settings)
        return self._tools

    async def run(self, lesson_path: Path, script: str) -> str:
        """Run ``script`` against a copy of ``lesson_path`` and return fenced stdout.

        Raises
        ------
        NonZeroExitError
            If the script exits with a non-zero status.
        ConfigurationError
            If a required tool is missing on the host.
        UnreadableFileError
            If the lesson directory cannot be copied into the sandbox.
        """
        key = run_key(lesson_path, script)
        future = self._runs.get(key)
        if future is None:
            future = asyncio.ensure_future(self._execute(lesson_path, script))
            self._runs[key] = future
        else:
            logger.info(f"Reusing sandbox output for {lesson_path.name} ({key[:12]})")
        return await asyncio.shield(future)

    async def _execute(self, lesson_path: Path, script: str) -> str:
        tools = self._resolved_tools()
        async with self._semaphore:
            with sandbox_workspace(lesson_path, tools) as workspace:
                workspace.script.write_text(script, encoding="utf-8")
                proc = await asyncio.create_subprocess_exec(
                    str(workspace.bin_dir / SANDBOX_SHELL),
                    "--noprofile",
                    "--norc",
                    "-e",
                    "-o",
                    "pipefail",
                    str(workspace.script),
                    cwd=workspace.work,
                    env=sandbox_environment(self.settings, workspace),
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
                try:
                    stdout, stderr = await proc.communicate()
                finally:
                    if proc.returncode is None:
                        proc.kill()
                        await proc.wait()
        output = stdout.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            raise NonZeroExitError(
                f"Run script for {lesson_path.name} exited with {proc.returncode}",
                context={
                    "lesson": lesson_path.name,
                    "returncode": proc.returncode,
                    "stdout": output,
                    "stderr": stderr.decode("utf-8", errors="replace"),
                },
            )
        logger.info(f"Sandbox run for {lesson_path.name} produced {len(output)} bytes")
        return make_fenced_code_block(output)
