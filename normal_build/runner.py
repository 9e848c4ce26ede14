"""Subprocess runner — run an external tool to completion.

Provides ``SubprocessRunner.run()`` which executes a command with an
argument list (never through a shell) and returns a structured
``RunResult``.  The blocking ``subprocess.run`` call is pushed onto the
default executor so the event loop keeps serving the file watcher.

Stages depend only on the ``Runner`` protocol, so tests swap in a fake.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import subprocess
import time
from typing import Protocol, Sequence

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------


class RunResult(BaseModel):
    """Structured result of a subprocess invocation."""

    model_config = ConfigDict(frozen=True)

    exit_code: int = Field(..., description="Process exit code (-1 if it never ran)")
    stdout: str = Field(default="", description="Captured stdout")
    stderr: str = Field(default="", description="Captured stderr")
    duration_ms: int = Field(default=0, ge=0, description="Wall-clock duration in ms")
    killed: bool = Field(
        default=False,
        description="True if the process was killed due to timeout",
    )
    command: str = Field(..., description="The command line that was executed")

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.killed

    @property
    def diagnostic(self) -> str:
        """Tool output to show on failure: stderr, else stdout."""
        return self.stderr if self.stderr.strip() else self.stdout


class Runner(Protocol):
    async def run(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        cwd: str | None = None,
    ) -> RunResult: ...


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def split_command(command_line: str) -> tuple[str, list[str]]:
    """Split a configured command line into ``(executable, args)``."""
    parts = shlex.split(command_line)
    if not parts:
        raise ValueError("Command is empty")
    return parts[0], parts[1:]


def _build_env(extra: dict[str, str] | None = None) -> dict[str, str]:
    """Inherit the host environment; build tools need PATH, HOME and npm vars."""
    env = dict(os.environ)
    if extra:
        env.update(extra)
    return env


def _as_text(raw: str | bytes | None) -> str:
    if raw is None:
        return ""
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return raw


# ---------------------------------------------------------------------------
# Core runner
# ---------------------------------------------------------------------------


class SubprocessRunner:
    """Runs external commands in a worker thread.

    Parameters
    ----------
    timeout_s:
        Maximum wall-clock seconds before the process is killed.
        ``0`` or ``None`` waits forever.
    env:
        Extra environment variables merged over the inherited environment.
    """

    def __init__(
        self,
        *,
        timeout_s: int | None = None,
        env: dict[str, str] | None = None,
    ) -> None:
        self.timeout_s = timeout_s or None
        self._env = env

    async def run(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        cwd: str | None = None,
    ) -> RunResult:
        argv = [command, *args]
        command_line = shlex.join(argv)
        merged_env = _build_env(self._env)
        start = time.perf_counter()

        def _sync() -> tuple[int, str, str, bool]:
            try:
                result = subprocess.run(
                    argv,
                    capture_output=True,
                    text=True,
                    cwd=cwd,
                    env=merged_env,
                    timeout=self.timeout_s,
                )
                return result.returncode, result.stdout or "", result.stderr or "", False
            except subprocess.TimeoutExpired as exc:
                return -1, _as_text(exc.stdout), _as_text(exc.stderr), True

        logger.debug("[runner] exec %s (cwd=%s)", command_line, cwd)
        loop = asyncio.get_event_loop()
        try:
            exit_code, out, err, was_killed = await loop.run_in_executor(None, _sync)
        except OSError as exc:
            # Executable missing or not runnable: report as a failed run.
            return RunResult(
                exit_code=-1,
                stderr=f"Error: {exc}",
                duration_ms=_elapsed_ms(start),
                command=command_line,
            )

        if was_killed:
            logger.warning(
                "[runner] %s killed after %ss timeout", command_line, self.timeout_s,
            )
            err = err or f"Error: '{command_line}' timed out after {self.timeout_s}s"

        return RunResult(
            exit_code=exit_code,
            stdout=out,
            stderr=err,
            duration_ms=_elapsed_ms(start),
            killed=was_killed,
            command=command_line,
        )


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


__all__ = [
    "RunResult",
    "Runner",
    "SubprocessRunner",
    "split_command",
]
