"""Shared test fixtures — reduces boilerplate across test modules.

Provides:
- ``make_project`` — writes package.json / tsconfig.json / node_modules under tmp_path
- ``FakeRunner`` — scripted ``Runner`` that records every call
- ``RecordingProgress`` — ``ProgressSink`` that keeps every call in order
- ``QueueNotifier`` — change notifier driven by the test
- ``test_settings`` — fast, deterministic ``Settings``
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Sequence

import pytest

from normal_build.config import Settings
from normal_build.runner import RunResult
from normal_build.watcher import ChangeEvent


# ---------------------------------------------------------------------------
# Marker registration
# ---------------------------------------------------------------------------


def pytest_configure(config):
    """Register custom markers.

    Tests that spawn real processes are decorated with
    ``@pytest.mark.subprocess``; run with ``-m 'not subprocess'`` to
    skip them.
    """
    config.addinivalue_line(
        "markers",
        "subprocess: tests that start real child processes",
    )


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeRunner:
    """Returns scripted results per executable+args; records each call.

    ``script`` maps a command line (``"npx tsc --noEmit"``) to a list of
    results consumed in order; the last one repeats.
    """

    def __init__(self, script: dict[str, list[RunResult]] | None = None) -> None:
        self.script = script or {}
        self.calls: list[str] = []
        self.on_call = None

    def set(self, command_line: str, *results: RunResult) -> None:
        self.script[command_line] = list(results)

    async def run(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        cwd: str | None = None,
    ) -> RunResult:
        line = " ".join([command, *args])
        self.calls.append(line)
        if self.on_call is not None:
            self.on_call(line)
        results = self.script.get(line)
        if not results:
            return RunResult(exit_code=0, command=line)
        if len(results) > 1:
            return results.pop(0)
        return results[0]


def ok(command: str = "cmd") -> RunResult:
    return RunResult(exit_code=0, command=command)


def failed(stderr: str = "boom", *, stdout: str = "", command: str = "cmd") -> RunResult:
    return RunResult(exit_code=2, stderr=stderr, stdout=stdout, command=command)


class RecordingProgress:
    """``ProgressSink`` recording ``(kind, message)`` tuples."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str]] = []
        self.status: str | None = None

    def update(self, message: str) -> None:
        self.status = message
        self.events.append(("update", message))

    def remove(self) -> None:
        self.status = None
        self.events.append(("remove", ""))

    def _log(self, kind: str, message: str) -> None:
        self.events.append((kind, message))

    def error(self, message: str) -> None:
        self._log("error", message)

    def success(self, message: str) -> None:
        self._log("success", message)

    def info(self, message: str) -> None:
        self._log("info", message)

    def warning(self, message: str) -> None:
        self._log("warning", message)

    def debug(self, message: str) -> None:
        self._log("debug", message)

    def verbose(self, message: str) -> None:
        self._log("verbose", message)

    def messages(self, kind: str) -> list[str]:
        return [m for k, m in self.events if k == kind]


class QueueNotifier:
    """Notifier whose change events are pushed by the test."""

    def __init__(self, root: Path, patterns: Sequence[str]) -> None:
        self.root = root
        self.patterns = list(patterns)
        self.queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()

    def push(self, *paths: Path) -> None:
        self.queue.put_nowait(ChangeEvent(paths=tuple(paths)))

    async def changes(self):
        while True:
            yield await self.queue.get()


# ---------------------------------------------------------------------------
# Project layout
# ---------------------------------------------------------------------------


def write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")


def install_package(root: Path, name: str, version: str = "1.0.0",
                    dependencies: dict[str, str] | None = None,
                    *, under: Path | None = None) -> Path:
    """Create ``node_modules/<name>`` with a package.json and an index.js."""
    base = (under or root) / "node_modules" / name
    write_json(base / "package.json", {
        "name": name,
        "version": version,
        "dependencies": dependencies or {},
    })
    (base / "index.js").write_text(f"module.exports = '{name}';\n", encoding="utf-8")
    return base


@pytest.fixture
def make_project(tmp_path: Path):
    """Factory writing a minimal TypeScript service project.

    Default layout: dependencies ``a`` and ``b`` (``b`` depends on
    ``d``), dev dependency ``typescript``, all installed.
    """

    def _make(
        *,
        dependencies: dict[str, str] | None = None,
        tsconfig: dict | None = None,
        bundler: dict | None = None,
        install: bool = True,
    ) -> Path:
        deps = {"a": "1.0.0", "b": "2.0.0"} if dependencies is None else dependencies
        write_json(tmp_path / "package.json", {
            "name": "demo-service",
            "version": "0.3.0",
            "scripts": {"build": "etsc"},
            "dependencies": deps,
            "devDependencies": {"typescript": "^5.0.0"},
        })
        write_json(
            tmp_path / "tsconfig.json",
            tsconfig if tsconfig is not None else {"compilerOptions": {"outDir": "dist"}},
        )
        if bundler is not None:
            write_json(tmp_path / "etsc.config.json", bundler)
        if install:
            install_package(tmp_path, "a", "1.0.0")
            install_package(tmp_path, "b", "2.0.0", {"d": "^4.0.0"})
            install_package(tmp_path, "d", "4.1.0")
            install_package(tmp_path, "typescript", "5.4.0")
        (tmp_path / "src").mkdir(exist_ok=True)
        (tmp_path / "src" / "handler.ts").write_text("export const x = 1;\n", encoding="utf-8")
        return tmp_path

    return _make


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        TYPECHECK_COMMAND="npx tsc --noEmit",
        BUNDLE_COMMAND="npx etsc",
        BUILD_TIMEOUT_S=30,
        WATCH_POLL_INTERVAL_S=0.01,
        ARTIFACT_DIR=".serverless",
    )


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def progress() -> RecordingProgress:
    return RecordingProgress()


@pytest.fixture
def notifiers() -> list[QueueNotifier]:
    """Every ``QueueNotifier`` built through ``queue_factory``."""
    return []


@pytest.fixture
def queue_factory(notifiers: list[QueueNotifier]):
    def _make(root: Path, patterns: Sequence[str]) -> QueueNotifier:
        notifier = QueueNotifier(root, patterns)
        notifiers.append(notifier)
        return notifier
    return _make
