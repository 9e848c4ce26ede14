"""Progress/log sink — the host's status indicator and leveled log.

The host supplies an object with ``update``/``remove`` for its spinner
and six leveled log calls.  ``LoggingProgress`` is the stand-alone
implementation backed by stdlib ``logging``; ``success`` maps to INFO
and ``verbose`` to DEBUG.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

WAITING_MESSAGE = "Waiting for changes"


@runtime_checkable
class ProgressSink(Protocol):
    def update(self, message: str) -> None: ...

    def remove(self) -> None: ...

    def error(self, message: str) -> None: ...

    def success(self, message: str) -> None: ...

    def info(self, message: str) -> None: ...

    def warning(self, message: str) -> None: ...

    def debug(self, message: str) -> None: ...

    def verbose(self, message: str) -> None: ...


class LoggingProgress:
    """``ProgressSink`` that writes everything to a logger.

    Tracks the current indicator text in ``status`` (``None`` once
    removed) so callers can tell whether a spinner is still showing.
    """

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger
        self.status: str | None = None

    def update(self, message: str) -> None:
        self.status = message
        self._log.info("[progress] %s", message)

    def remove(self) -> None:
        self.status = None

    def error(self, message: str) -> None:
        self._log.error(message)

    def success(self, message: str) -> None:
        self._log.info("✔ %s", message)

    def info(self, message: str) -> None:
        self._log.info(message)

    def warning(self, message: str) -> None:
        self._log.warning(message)

    def debug(self, message: str) -> None:
        self._log.debug(message)

    def verbose(self, message: str) -> None:
        self._log.debug(message)


__all__ = [
    "LoggingProgress",
    "ProgressSink",
    "WAITING_MESSAGE",
]
