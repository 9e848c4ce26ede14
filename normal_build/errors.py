"""Build pipeline error hierarchy.

Every error carries typed fields (not just a message string),
supports ``to_dict()`` for serialisation into host-facing reports,
and has a readable ``__str__`` for logging.

Fatal vs. recoverable is decided by the orchestrator, not by the error
class: ``CompileError`` and ``PackagingError`` are swallowed in watch
mode, everything else always propagates to the host.
"""

from __future__ import annotations


class BuildError(Exception):
    """Base error for all build pipeline failures."""

    def __init__(self, message: str, *, detail: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    def to_dict(self) -> dict:
        return {"error": type(self).__name__, "message": self.message, **self.detail}

    def __str__(self) -> str:
        return self.message


class ConfigurationError(BuildError):
    """Project descriptors are missing, malformed, or inconsistent."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        self.path = path or ""
        detail: dict = {}
        if path:
            detail["path"] = path
        super().__init__(message, detail=detail)


class CompileError(BuildError):
    """An external tool (type checker or bundler) exited non-zero.

    ``diagnostic`` is the tool's raw output, unmodified, and is also the
    error message so the host shows exactly what the tool printed.
    """

    def __init__(self, tool: str, diagnostic: str, exit_code: int) -> None:
        self.tool = tool
        self.diagnostic = diagnostic
        self.exit_code = exit_code
        message = diagnostic or f"{tool} exited with code {exit_code}"
        super().__init__(
            message,
            detail={"tool": tool, "exit_code": exit_code},
        )


class PackagingError(BuildError):
    """Runtime dependencies could not be materialised into the output."""

    def __init__(self, reason: str, *, package: str | None = None) -> None:
        self.reason = reason
        self.package = package
        detail: dict = {"reason": reason}
        if package:
            detail["package"] = package
        super().__init__(reason, detail=detail)


class ArtifactError(BuildError):
    """The deployment archive could not be written."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(
            f"Unable to create artifact '{path}': {reason}",
            detail={"path": path, "reason": reason},
        )


class UnsupportedOperation(BuildError):
    """A lifecycle event the orchestrator refuses to handle."""

    def __init__(self, event: str, message: str | None = None) -> None:
        self.event = event
        super().__init__(
            message or f"Lifecycle event '{event}' is not supported",
            detail={"event": event},
        )


class StateTransitionError(BuildError):
    """The orchestrator was asked to move between incompatible states."""

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(
            f"Illegal orchestrator transition {current} -> {target}",
            detail={"current": current, "target": target},
        )
