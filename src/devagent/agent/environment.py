"""Execution environment abstraction and local implementation.

Tools never touch the filesystem or spawn processes directly; they go
through an :class:`ExecutionEnvironment`, which tests can replace. Paths
handed to the environment have already been normalized by the path
policy and are relative to the working directory.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from devagent.agent.policy import filter_env

logger = logging.getLogger(__name__)

# Directories never worth listing to the model.
_SKIPPED_DIRS = frozenset({".git", "node_modules", "__pycache__", ".venv", "dist"})


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass
class DirEntry:
    """A single entry returned by list_directory."""

    name: str
    path: str
    is_dir: bool
    size: int = 0


@dataclass
class ExecResult:
    """Result of a command execution."""

    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    timed_out: bool = False


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class ExecutionEnvironment(Protocol):
    """Interface that agent tools use to interact with the outside world."""

    async def read_file(self, path: str) -> str: ...

    async def write_file(self, path: str, content: str) -> int: ...

    async def file_exists(self, path: str) -> bool: ...

    async def list_directory(
        self, path: str, recursive: bool = False
    ) -> list[DirEntry]: ...

    async def exec_command(
        self,
        command: str,
        timeout_s: float = 120.0,
        env_vars: dict[str, str] | None = None,
    ) -> ExecResult: ...

    async def exec_argv(
        self,
        argv: Sequence[str],
        timeout_s: float = 120.0,
        env_vars: dict[str, str] | None = None,
    ) -> ExecResult: ...

    def working_directory(self) -> str: ...


# ---------------------------------------------------------------------------
# Local implementation
# ---------------------------------------------------------------------------


class LocalExecutionEnvironment:
    """ExecutionEnvironment backed by the host filesystem and OS."""

    def __init__(self, working_dir: str | os.PathLike[str] | None = None) -> None:
        self._working_dir = Path(working_dir).resolve() if working_dir else Path.cwd()

    def working_directory(self) -> str:
        return str(self._working_dir)

    # -- file operations ----------------------------------------------------

    def _resolve(self, path: str) -> Path:
        p = Path(path)
        if not p.is_absolute():
            p = self._working_dir / p
        return p.resolve()

    async def read_file(self, path: str) -> str:
        resolved = self._resolve(path)
        return await asyncio.to_thread(
            resolved.read_text, encoding="utf-8", errors="replace"
        )

    async def write_file(self, path: str, content: str) -> int:
        resolved = self._resolve(path)

        def _write() -> int:
            resolved.parent.mkdir(parents=True, exist_ok=True)
            resolved.write_text(content, encoding="utf-8")
            return len(content.encode("utf-8"))

        return await asyncio.to_thread(_write)

    async def file_exists(self, path: str) -> bool:
        return await asyncio.to_thread(self._resolve(path).exists)

    async def list_directory(
        self, path: str, recursive: bool = False
    ) -> list[DirEntry]:
        resolved = self._resolve(path)
        entries: list[DirEntry] = []
        await asyncio.to_thread(self._walk_dir, resolved, recursive, entries)
        return entries

    def _walk_dir(self, current: Path, recursive: bool, out: list[DirEntry]) -> None:
        try:
            children = sorted(current.iterdir(), key=lambda p: p.name)
        except (PermissionError, NotADirectoryError):
            return
        for child in children:
            is_dir = child.is_dir()
            if is_dir and child.name in _SKIPPED_DIRS:
                continue
            out.append(
                DirEntry(
                    name=child.name,
                    path=str(child.relative_to(self._working_dir)),
                    is_dir=is_dir,
                    size=0 if is_dir else child.stat().st_size,
                )
            )
            if is_dir and recursive:
                self._walk_dir(child, recursive, out)

    # -- command execution --------------------------------------------------

    async def exec_command(
        self,
        command: str,
        timeout_s: float = 120.0,
        env_vars: dict[str, str] | None = None,
    ) -> ExecResult:
        """Run *command* through the shell in the working directory."""
        return await self._run(command, timeout_s, env_vars, shell=True)

    async def exec_argv(
        self,
        argv: Sequence[str],
        timeout_s: float = 120.0,
        env_vars: dict[str, str] | None = None,
    ) -> ExecResult:
        """Run *argv* without a shell, so arguments are never interpreted."""
        return await self._run(list(argv), timeout_s, env_vars, shell=False)

    async def _run(
        self,
        cmd: str | list[str],
        timeout_s: float,
        env_vars: dict[str, str] | None,
        *,
        shell: bool,
    ) -> ExecResult:
        # Secrets are re-read and stripped for every spawn.
        env = filter_env(env_vars)
        cwd = str(self._working_dir)

        def _run_blocking() -> ExecResult:
            proc = subprocess.Popen(
                cmd,
                shell=shell,
                cwd=cwd,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=True,
            )
            timed_out = False
            try:
                stdout_b, stderr_b = proc.communicate(timeout=timeout_s)
            except subprocess.TimeoutExpired:
                timed_out = True
                pgid = os.getpgid(proc.pid)
                try:
                    os.killpg(pgid, signal.SIGTERM)
                except ProcessLookupError:
                    pass
                try:
                    stdout_b, stderr_b = proc.communicate(timeout=2)
                except subprocess.TimeoutExpired:
                    try:
                        os.killpg(pgid, signal.SIGKILL)
                    except ProcessLookupError:
                        pass
                    stdout_b, stderr_b = proc.communicate()

            return ExecResult(
                stdout=stdout_b.decode("utf-8", errors="replace"),
                stderr=stderr_b.decode("utf-8", errors="replace"),
                exit_code=proc.returncode or 0,
                timed_out=timed_out,
            )

        result = await asyncio.to_thread(_run_blocking)
        if result.timed_out:
            logger.warning("Command timed out after %.0fs: %s", timeout_s, cmd)
        return result
