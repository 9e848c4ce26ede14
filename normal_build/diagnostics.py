"""Type-checker diagnostics — parse ``tsc`` output for log summaries.

All functions are **pure** (string in → model out).  The raw tool text
is still what the host sees on failure; these models only feed the
one-line summary logged by the type-check stage.
"""

from __future__ import annotations

import re
from collections import Counter
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

# tsc line format:  file.ts(line,col): error TS1234: message
_TSC_LINE_RE = re.compile(
    r"^(.+?)\((\d+),(\d+)\):\s+(error|warning|info)\s+(TS\d+):\s+(.+)$",
)


class Diagnostic(BaseModel):
    """A single diagnostic reported by the type checker."""

    model_config = ConfigDict(frozen=True)

    file: str
    line: int = Field(..., ge=1)
    column: int = Field(..., ge=0)
    message: str
    severity: Literal["error", "warning", "info"]
    code: str | None = None


def parse_tsc_output(raw: str) -> list[Diagnostic]:
    """Parse ``tsc --noEmit`` output into diagnostics.

    Lines that are not diagnostics (continuation lines of multi-line
    messages, summaries) are ignored.  Returns an empty list for empty
    input.
    """
    if not raw or not raw.strip():
        return []

    diagnostics: list[Diagnostic] = []
    for line in raw.splitlines():
        m = _TSC_LINE_RE.match(line.rstrip())
        if not m:
            continue
        diagnostics.append(Diagnostic(
            file=m.group(1).strip(),
            line=int(m.group(2)),
            column=int(m.group(3)),
            severity=m.group(4).lower(),
            code=m.group(5),
            message=m.group(6).strip(),
        ))
    return diagnostics


def summarise(diagnostics: list[Diagnostic]) -> str:
    """One-line count summary, e.g. ``"2 errors, 1 warning in 2 files"``."""
    if not diagnostics:
        return "no diagnostics"
    counts = Counter(d.severity for d in diagnostics)
    parts = []
    for severity in ("error", "warning", "info"):
        n = counts.get(severity, 0)
        if n:
            parts.append(f"{n} {severity}{'s' if n != 1 else ''}")
    files = len({d.file for d in diagnostics})
    return f"{', '.join(parts)} in {files} file{'s' if files != 1 else ''}"


__all__ = [
    "Diagnostic",
    "parse_tsc_output",
    "summarise",
]
