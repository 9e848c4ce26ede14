"""Artifact packager — zip the output directory for upload."""

from __future__ import annotations

import asyncio
import logging
import os
import zipfile
from pathlib import Path

from normal_build.contracts import (
    Artifact,
    OutputDescriptor,
    PipelineState,
    ProjectDescriptor,
    Stage,
    StageOutcome,
)
from normal_build.errors import ArtifactError
from normal_build.progress import ProgressSink

logger = logging.getLogger(__name__)

COMPRESSION_LEVEL = 9


def artifact_path(descriptor: ProjectDescriptor, artifact_dir: str = ".serverless") -> Path:
    """``<root>/<artifact_dir>/<service>.zip``."""
    return descriptor.root / artifact_dir / f"{descriptor.service_name}.zip"


def write_archive(source_dir: Path, destination: Path) -> int:
    """Zip *source_dir* recursively into *destination*; returns the entry count.

    Entries are relative to *source_dir* and written in sorted order, so
    unchanged input produces the same entry list.
    """
    entries = 0
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination = destination.resolve()
    with zipfile.ZipFile(
        destination, "w",
        compression=zipfile.ZIP_DEFLATED,
        compresslevel=COMPRESSION_LEVEL,
    ) as zf:
        for dirpath, dirnames, filenames in os.walk(source_dir):
            # The artifact directory may sit inside the tree being archived.
            dirnames[:] = sorted(
                d for d in dirnames if (Path(dirpath) / d).resolve() != destination.parent
            )
            for filename in sorted(filenames):
                path = Path(dirpath) / filename
                if path.resolve() == destination:
                    continue
                zf.write(path, path.relative_to(source_dir).as_posix())
                entries += 1
    return entries


class ArtifactPackager:
    """Terminal stage of ``create-artifact``; every error is fatal."""

    stage = Stage.ARCHIVE

    def __init__(
        self,
        descriptor: ProjectDescriptor,
        *,
        state: PipelineState,
        progress: ProgressSink,
        artifact_dir: str = ".serverless",
    ) -> None:
        self._descriptor = descriptor
        self._state = state
        self._progress = progress
        self._artifact_dir = artifact_dir
        self.last_artifact: Artifact | None = None

    async def __call__(self) -> StageOutcome:
        if not self._state.build_is_clean:
            return StageOutcome(stage=self.stage, skipped=True)

        self._progress.update("Creating artifact . . .")
        source = self._descriptor.output_directory
        destination = artifact_path(self._descriptor, self._artifact_dir)

        if not source.is_dir():
            self._progress.remove()
            raise ArtifactError(str(destination), f"output directory {source} does not exist")

        loop = asyncio.get_event_loop()
        try:
            entries = await loop.run_in_executor(None, write_archive, source, destination)
        except (OSError, zipfile.BadZipFile, ValueError) as exc:
            self._progress.remove()
            raise ArtifactError(str(destination), str(exc)) from exc

        self.last_artifact = Artifact(path=destination, source_directory=source)
        relative = destination.relative_to(self._descriptor.root).as_posix()
        logger.info("[artifact] wrote %s (%d files)", relative, entries)
        return StageOutcome(
            stage=self.stage,
            output=OutputDescriptor(artifact_path=relative),
        )


__all__ = [
    "ArtifactPackager",
    "COMPRESSION_LEVEL",
    "artifact_path",
    "write_archive",
]
