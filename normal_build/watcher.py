"""File watcher — re-run the pipeline whenever a watched file changes.

``PollingNotifier`` is the change notifier: it snapshots the mtime and
size of every file matching the include patterns and yields a
``ChangeEvent`` whenever a later snapshot differs.  It never exhausts on
its own.

``FileWatcher`` subscribes to a notifier and drives the rebuild
callback.  Passes never overlap: a change that lands while a pass is in
flight is coalesced into exactly one follow-up pass.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Protocol, Sequence

from normal_build.errors import BuildError
from normal_build.progress import WAITING_MESSAGE, ProgressSink

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_S = 0.5

Snapshot = dict[Path, tuple[int, int]]


@dataclass(frozen=True)
class ChangeEvent:
    """Files added, modified or removed since the previous snapshot."""

    paths: tuple[Path, ...] = field(default_factory=tuple)


class Notifier(Protocol):
    def changes(self) -> AsyncIterator[ChangeEvent]: ...


# ---------------------------------------------------------------------------
# Polling change notifier
# ---------------------------------------------------------------------------


class PollingNotifier:
    """mtime-polling notifier over glob patterns relative to *root*."""

    def __init__(
        self,
        root: Path,
        patterns: Sequence[str],
        *,
        interval_s: float = DEFAULT_POLL_INTERVAL_S,
    ) -> None:
        self.root = Path(root)
        self.patterns = tuple(patterns)
        self.interval_s = interval_s

    def snapshot(self) -> Snapshot:
        files: Snapshot = {}
        for pattern in self.patterns:
            for match in self.root.glob(pattern):
                # A bare directory entry (tsconfig "include": ["src"]) covers its whole subtree.
                candidates = match.rglob("*") if match.is_dir() else (match,)
                for path in candidates:
                    try:
                        st = path.stat()
                    except OSError:
                        continue  # removed between glob and stat
                    if path.is_file():
                        files[path] = (st.st_mtime_ns, st.st_size)
        return files

    async def changes(self) -> AsyncIterator[ChangeEvent]:
        previous = self.snapshot()
        while True:
            await asyncio.sleep(self.interval_s)
            current = self.snapshot()
            if current != previous:
                changed = {
                    p for p in previous.keys() | current.keys()
                    if previous.get(p) != current.get(p)
                }
                previous = current
                yield ChangeEvent(paths=tuple(sorted(changed)))


NotifierFactory = Callable[[Path, Sequence[str]], Notifier]


def polling_factory(interval_s: float = DEFAULT_POLL_INTERVAL_S) -> NotifierFactory:
    def _make(root: Path, patterns: Sequence[str]) -> Notifier:
        return PollingNotifier(root, patterns, interval_s=interval_s)
    return _make


# ---------------------------------------------------------------------------
# Watcher
# ---------------------------------------------------------------------------


class FileWatcher:
    """Persistent subscription that re-drives the pipeline on change.

    *rebuild* runs one check → compile → package pass and returns
    ``True`` when the pass ended clean.
    """

    def __init__(
        self,
        root: Path,
        rebuild: Callable[[], Awaitable[bool]],
        *,
        progress: ProgressSink,
        notifier_factory: NotifierFactory | None = None,
        on_stopped: Callable[[], None] | None = None,
    ) -> None:
        self._root = Path(root)
        self._rebuild = rebuild
        self._progress = progress
        self._factory = notifier_factory or polling_factory()
        self._on_stopped = on_stopped
        self._lock = asyncio.Lock()
        self._pending = False
        self._task: asyncio.Task | None = None
        self._passes: set[asyncio.Task] = set()
        self.pass_count = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, patterns: Sequence[str]) -> bool:
        """Subscribe to *patterns*; returns ``False`` when there is nothing to watch."""
        patterns = [p for p in patterns if p]
        if not patterns:
            self._progress.error("Files are empty, unable to watch any files")
            return False
        if self.running:
            return True

        notifier = self._factory(self._root, patterns)
        self._task = asyncio.ensure_future(self._consume(notifier))
        self._task.add_done_callback(self._subscription_done)
        logger.info("[watch] watching %s under %s", patterns, self._root)
        return True

    async def stop(self) -> None:
        if self._task is not None:
            task, self._task = self._task, None
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        passes = list(self._passes)
        for task in passes:
            task.cancel()
        await asyncio.gather(*passes, return_exceptions=True)
        self._passes.clear()

    def _subscription_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        logger.exception("[watch] change notifier crashed", exc_info=exc)
        self._progress.error(f"Stopped watching for changes: {exc}")
        self._task = None
        if self._on_stopped is not None:
            self._on_stopped()

    async def wait_idle(self) -> None:
        """Wait until no pass is running or scheduled."""
        while self._passes:
            await asyncio.gather(*list(self._passes), return_exceptions=True)

    async def _consume(self, notifier: Notifier) -> None:
        async for event in notifier.changes():
            logger.debug("[watch] change: %s", [str(p) for p in event.paths])
            task = asyncio.ensure_future(self.trigger())
            self._passes.add(task)
            task.add_done_callback(self._passes.discard)

    async def trigger(self) -> None:
        """Run a pass now, or coalesce into the one already running."""
        if self._lock.locked():
            self._pending = True
            return
        async with self._lock:
            while True:
                self._pending = False
                await self._run_pass()
                if not self._pending:
                    break

    async def _run_pass(self) -> None:
        self.pass_count += 1
        try:
            clean = await self._rebuild()
        except BuildError as exc:
            # Fatal-class errors still must not end the watch loop.
            self._progress.error(exc.message)
            self._progress.update(WAITING_MESSAGE)
            return
        except Exception:
            logger.exception("[watch] rebuild crashed")
            self._progress.update(WAITING_MESSAGE)
            return
        if clean:
            self._progress.success("Compiled successful")
            self._progress.remove()


__all__ = [
    "ChangeEvent",
    "FileWatcher",
    "Notifier",
    "PollingNotifier",
    "polling_factory",
]
