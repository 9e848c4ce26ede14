"""Build pipeline contracts — Pydantic models shared by every stage.

Descriptors are snapshots taken once at initialisation; stage results
and output descriptors are returned by value so no stage ever mutates a
host-owned object.
All models are frozen (immutable after creation).
"""

from __future__ import annotations

import enum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Descriptors (read once at initialisation)
# ---------------------------------------------------------------------------


class ProjectDescriptor(BaseModel):
    """Immutable snapshot of the on-disk project configuration."""

    model_config = ConfigDict(frozen=True)

    root: Path = Field(..., description="Absolute project root")
    output_directory: Path = Field(
        ..., description="Compiler output directory, resolved against root"
    )
    watch_patterns: tuple[str, ...] = Field(
        default=(), description="Glob patterns relative to root"
    )
    runtime_dependencies: dict[str, str] = Field(
        default_factory=dict, description="Dependency name → version spec"
    )
    service_name: str = Field(default="", description="Deployable unit name")
    manifest_path: Path = Field(..., description="Path of the project package.json")


class BundlerDirectives(BaseModel):
    """The bundler's own configuration, read as a packaging oracle."""

    model_config = ConfigDict(frozen=True)

    bundle_enabled: bool = False
    external_names: frozenset[str] = Field(default_factory=frozenset)

    @property
    def self_contained(self) -> bool:
        """True when bundling inlined every import."""
        return self.bundle_enabled and not self.external_names


# ---------------------------------------------------------------------------
# Pipeline products
# ---------------------------------------------------------------------------


class DependencyManifest(BaseModel):
    """Runtime dependencies written into the output directory."""

    model_config = ConfigDict(frozen=True)

    dependencies: dict[str, str] = Field(default_factory=dict)
    strategy: Literal["externals", "full"]


class Artifact(BaseModel):
    """A compressed deployment archive."""

    model_config = ConfigDict(frozen=True)

    path: Path
    source_directory: Path


class OutputDescriptor(BaseModel):
    """Values handed back to the host after a lifecycle event."""

    model_config = ConfigDict(frozen=True)

    artifact_path: str | None = None
    offline_location: str | None = None

    def merge(self, other: OutputDescriptor | None) -> OutputDescriptor:
        """Return a copy where non-empty fields of *other* win."""
        if other is None:
            return self
        return OutputDescriptor(
            artifact_path=other.artifact_path or self.artifact_path,
            offline_location=other.offline_location or self.offline_location,
        )


# ---------------------------------------------------------------------------
# Stage bookkeeping
# ---------------------------------------------------------------------------


class Stage(str, enum.Enum):
    """A single step of a pipeline sequence."""

    CHECK = "check"
    COMPILE = "compile"
    PACKAGE = "package"
    OFFLINE = "offline"
    WATCH = "watch"
    ARCHIVE = "archive"
    CLEANUP = "cleanup"


class StageOutcome(BaseModel):
    """Result of running (or skipping) one stage."""

    model_config = ConfigDict(frozen=True)

    stage: Stage
    ok: bool = True
    skipped: bool = False
    diagnostic: str = ""
    output: OutputDescriptor | None = None


class PipelineState:
    """Mutable flags owned by the orchestrator.

    ``build_is_clean`` starts true, drops on the first failure seen while
    watching and is restored by the next successful type check.
    """

    __slots__ = ("build_is_clean", "is_watching")

    def __init__(self, *, build_is_clean: bool = True, is_watching: bool = False) -> None:
        self.build_is_clean = build_is_clean
        self.is_watching = is_watching

    def __repr__(self) -> str:
        return (
            f"PipelineState(build_is_clean={self.build_is_clean}, "
            f"is_watching={self.is_watching})"
        )


__all__ = [
    "Artifact",
    "BundlerDirectives",
    "DependencyManifest",
    "OutputDescriptor",
    "PipelineState",
    "ProjectDescriptor",
    "Stage",
    "StageOutcome",
]
