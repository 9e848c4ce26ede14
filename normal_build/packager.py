"""Dependency packager — decide which runtime dependencies ship.

The bundler configuration is the oracle:

* bundling, no externals → nothing ships (the bundle is self-contained);
* bundling with externals → exactly the externals that are declared
  runtime dependencies ship, under a freshly written ``package.json``;
* not bundling → every runtime dependency ships, under a copy of the
  original ``package.json``.

The module tree is then materialised from the manifest in the output
directory, so the manifest on disk is the single source of truth.
"""

from __future__ import annotations

import asyncio
import json
import logging
import shutil

from normal_build.config import PluginOptions
from normal_build.contracts import (
    BundlerDirectives,
    DependencyManifest,
    PipelineState,
    ProjectDescriptor,
    Stage,
    StageOutcome,
)
from normal_build.errors import PackagingError
from normal_build.modules import copy_node_modules
from normal_build.progress import ProgressSink
from normal_build.stages import fail_stage

logger = logging.getLogger(__name__)

MANIFEST_NAME = "package.json"


# ---------------------------------------------------------------------------
# Pure manifest computation
# ---------------------------------------------------------------------------


def compute_manifest(
    runtime_dependencies: dict[str, str],
    directives: BundlerDirectives,
) -> DependencyManifest | None:
    """Return the manifest to ship, or ``None`` when nothing ships.

    Externals without a declared runtime dependency are dropped without
    complaint; they are usually Node built-ins or transitive packages.
    """
    if directives.self_contained:
        return None
    if directives.bundle_enabled:
        selected = {
            name: runtime_dependencies[name]
            for name in sorted(directives.external_names)
            if name in runtime_dependencies
        }
        dropped = sorted(directives.external_names - selected.keys())
        if dropped:
            logger.debug("[packager] externals without a declared dependency: %s", dropped)
        return DependencyManifest(dependencies=selected, strategy="externals")
    return DependencyManifest(dependencies=dict(runtime_dependencies), strategy="full")


def render_manifest(original: dict, manifest: DependencyManifest) -> str:
    """Serialise the reduced ``package.json`` deterministically."""
    document: dict = {}
    for key in ("name", "version"):
        if key in original:
            document[key] = original[key]
    document["dependencies"] = dict(sorted(manifest.dependencies.items()))
    return json.dumps(document, indent=2) + "\n"


# ---------------------------------------------------------------------------
# Stage
# ---------------------------------------------------------------------------


class DependencyPackager:
    """Pipeline stage that writes the manifest and copies node modules."""

    stage = Stage.PACKAGE

    def __init__(
        self,
        descriptor: ProjectDescriptor,
        directives: BundlerDirectives,
        options: PluginOptions,
        *,
        state: PipelineState,
        progress: ProgressSink,
    ) -> None:
        self._descriptor = descriptor
        self._directives = directives
        self._options = options
        self._state = state
        self._progress = progress
        self.last_manifest: DependencyManifest | None = None

    async def __call__(self) -> StageOutcome:
        if not self._state.build_is_clean:
            return StageOutcome(stage=self.stage, skipped=True)
        if not self._options.node_modules:
            logger.debug("[packager] dependency packaging disabled by options")
            return StageOutcome(stage=self.stage, skipped=True)

        manifest = compute_manifest(
            self._descriptor.runtime_dependencies, self._directives,
        )
        if manifest is None:
            logger.debug("[packager] bundle is self-contained, nothing to package")
            return StageOutcome(stage=self.stage, skipped=True)

        self._progress.update("packaging dependencies. . .")
        loop = asyncio.get_event_loop()
        try:
            copied = await loop.run_in_executor(None, self._materialise, manifest)
        except PackagingError as exc:
            return fail_stage(
                self.stage,
                exc,
                state=self._state,
                progress=self._progress,
                summary="An error occurred during dependency packaging",
                verbose=exc.message,
            )

        self.last_manifest = manifest
        logger.info(
            "[packager] %s strategy: %d declared, %d packages copied",
            manifest.strategy, len(manifest.dependencies), len(copied),
        )
        return StageOutcome(stage=self.stage)

    def _materialise(self, manifest: DependencyManifest) -> list[str]:
        out_dir = self._descriptor.output_directory
        target = out_dir / MANIFEST_NAME
        try:
            out_dir.mkdir(parents=True, exist_ok=True)
            if manifest.strategy == "externals":
                original = json.loads(self._descriptor.manifest_path.read_text(encoding="utf-8"))
                target.write_text(render_manifest(original, manifest), encoding="utf-8")
            else:
                shutil.copyfile(self._descriptor.manifest_path, target)
        except (OSError, ValueError) as exc:
            raise PackagingError(f"Unable to write {target}: {exc}") from exc

        return copy_node_modules(
            self._descriptor.root,
            out_dir,
            include_dev_dependencies=False,
            manifest_path=target,
        )


__all__ = [
    "DependencyPackager",
    "MANIFEST_NAME",
    "compute_manifest",
    "render_manifest",
]
