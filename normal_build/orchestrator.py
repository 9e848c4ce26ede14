"""Build orchestrator — map lifecycle events to stage sequences.

The orchestrator owns the pipeline state and is the only writer of it
(stages update ``PipelineState`` on its behalf).  Dispatch is a lookup
in ``LIFECYCLE_SEQUENCES`` followed by strictly sequential execution:

    dev-start             check → compile → package → offline → watch
    run                   check → compile → package
    create-artifact       check → compile → package → archive
    post-create-artifact  cleanup

Every stage except ``check`` is skipped once ``build_is_clean`` is
false.  Outside watch mode a failing stage raises and the event fails;
inside watch mode the failure is logged and the watcher waits for the
next change.
"""

from __future__ import annotations

import enum
import functools
import logging
import os
from pathlib import Path
from typing import Any, Awaitable, Callable

from normal_build.artifact import ArtifactPackager
from normal_build.config import PluginOptions, Settings, load_plugin_options
from normal_build.config import settings as default_settings
from normal_build.contracts import (
    BundlerDirectives,
    OutputDescriptor,
    PipelineState,
    ProjectDescriptor,
    Stage,
    StageOutcome,
)
from normal_build.descriptor import load_bundler_directives, load_project_descriptor
from normal_build.errors import (
    ConfigurationError,
    StateTransitionError,
    UnsupportedOperation,
)
from normal_build.packager import DependencyPackager
from normal_build.progress import LoggingProgress, ProgressSink
from normal_build.runner import Runner, SubprocessRunner
from normal_build.stages import BundleStage, TypeCheckStage
from normal_build.watcher import FileWatcher, NotifierFactory, polling_factory

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Event table
# ---------------------------------------------------------------------------

INITIALIZE = "initialize"

LIFECYCLE_SEQUENCES: dict[str, tuple[Stage, ...]] = {
    "dev-start": (Stage.CHECK, Stage.COMPILE, Stage.PACKAGE, Stage.OFFLINE, Stage.WATCH),
    "run": (Stage.CHECK, Stage.COMPILE, Stage.PACKAGE),
    "create-artifact": (Stage.CHECK, Stage.COMPILE, Stage.PACKAGE, Stage.ARCHIVE),
    "post-create-artifact": (Stage.CLEANUP,),
}

# Re-run on every file change; archiving is one-shot only.
WATCH_SEQUENCE: tuple[Stage, ...] = (Stage.CHECK, Stage.COMPILE, Stage.PACKAGE)

REJECTED_EVENTS: dict[str, str] = {
    "package-function": (
        "Packaging of function is not available, "
        "You are welcome to contribute and support this"
    ),
    "invoke-local": "This is not available, You are welcome to contribute and support this",
}

# Host hook name → lifecycle event.
HOST_HOOKS: dict[str, str] = {
    "initialize": INITIALIZE,
    "before:offline:start": "dev-start",
    "before:run:run": "run",
    "before:package:createDeploymentArtifacts": "create-artifact",
    "after:package:createDeploymentArtifacts": "post-create-artifact",
    "before:deploy:function:packageFunction": "package-function",
    "before:invoke:local:invoke": "invoke-local",
}


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


class OrchestratorState(str, enum.Enum):
    IDLE = "idle"
    INITIALIZING = "initializing"
    READY = "ready"
    RUNNING = "running"
    FAILED = "failed"


_TRANSITIONS: dict[OrchestratorState, frozenset[OrchestratorState]] = {
    OrchestratorState.IDLE: frozenset({OrchestratorState.INITIALIZING}),
    OrchestratorState.INITIALIZING: frozenset({OrchestratorState.READY, OrchestratorState.FAILED}),
    OrchestratorState.READY: frozenset({OrchestratorState.RUNNING, OrchestratorState.INITIALIZING}),
    OrchestratorState.RUNNING: frozenset({OrchestratorState.READY, OrchestratorState.FAILED}),
    OrchestratorState.FAILED: frozenset({OrchestratorState.RUNNING, OrchestratorState.INITIALIZING}),
}


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class BuildOrchestrator:
    """One build-producing plugin instance.

    Parameters
    ----------
    root:
        Project root (the host's service path).
    custom:
        The host's ``custom`` configuration section; only the
        ``normal-esbuild`` block is read.
    service_name:
        Name of the deployable unit; names the artifact.
    progress:
        Host progress/log sink.  Defaults to ``LoggingProgress``.
    runner:
        Subprocess runner for the type checker and bundler.
    notifier_factory:
        Builds the change notifier used by ``dev-start``.
    """

    def __init__(
        self,
        root: str | Path,
        *,
        custom: dict[str, Any] | None = None,
        service_name: str | None = None,
        progress: ProgressSink | None = None,
        runner: Runner | None = None,
        settings: Settings | None = None,
        notifier_factory: NotifierFactory | None = None,
    ) -> None:
        self.root = Path(root).resolve()
        self.settings = settings or default_settings
        if progress is None:
            log_level = getattr(logging, self.settings.LOG_LEVEL.upper(), logging.INFO)
            logging.getLogger("normal_build").setLevel(log_level)
            progress = LoggingProgress()
        self.progress: ProgressSink = progress
        self._custom = custom
        self._service_name = service_name
        self._runner = runner or SubprocessRunner(timeout_s=self.settings.BUILD_TIMEOUT_S)
        self._notifier_factory = notifier_factory or polling_factory(
            self.settings.WATCH_POLL_INTERVAL_S,
        )

        self.phase = OrchestratorState.IDLE
        self.state = PipelineState()
        self.output = OutputDescriptor()

        self.options: PluginOptions | None = None
        self.descriptor: ProjectDescriptor | None = None
        self.directives: BundlerDirectives | None = None
        self.watcher: FileWatcher | None = None
        self._stages: dict[Stage, Callable[[], Awaitable[StageOutcome]]] = {}

    # ------------------------------------------------------------------
    # Host surface
    # ------------------------------------------------------------------

    def hooks(self) -> dict[str, Callable[[], Awaitable[OutputDescriptor]]]:
        """Host hook name → coroutine function dispatching its event."""
        return {
            hook: functools.partial(self.dispatch, event)
            for hook, event in HOST_HOOKS.items()
        }

    async def dispatch(self, event: str) -> OutputDescriptor:
        """Run the stage sequence bound to *event*.

        Returns the output descriptor produced by this event.
        """
        if event == INITIALIZE:
            self.initialize()
            return OutputDescriptor()
        if event in REJECTED_EVENTS:
            raise UnsupportedOperation(event, REJECTED_EVENTS[event])
        sequence = LIFECYCLE_SEQUENCES.get(event)
        if sequence is None:
            raise UnsupportedOperation(event)
        if self.descriptor is None:
            raise ConfigurationError(f"'{event}' dispatched before initialization")

        logger.info("[orchestrator] %s: %s", event, " → ".join(s.value for s in sequence))
        self._transition(OrchestratorState.RUNNING)
        try:
            produced = await self.run_stages(sequence)
        except Exception:
            self.progress.remove()
            self._transition(OrchestratorState.FAILED)
            raise
        self._transition(OrchestratorState.READY)
        self.output = self.output.merge(produced)
        return produced

    async def shutdown(self) -> None:
        """Stop watching, if a watcher is running."""
        if self.watcher is not None:
            await self.watcher.stop()
        self.state.is_watching = False

    # ------------------------------------------------------------------
    # Initialisation
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Load descriptors and wire the stages.  Failures are fatal."""
        self._transition(OrchestratorState.INITIALIZING)
        self.progress.update("Getting information from tsconfig file")
        try:
            self.options = load_plugin_options(self._custom)
            self.descriptor = load_project_descriptor(
                self.root, service_name=self._service_name,
            )
            self.directives = load_bundler_directives(
                self.root, node_command=self.settings.NODE_COMMAND,
            )
            self._wire_stages()
        except Exception:
            self.descriptor = None
            self.progress.remove()
            self._transition(OrchestratorState.FAILED)
            raise

        self._transition(OrchestratorState.READY)
        logger.info(
            "[orchestrator] ready: out=%s bundle=%s externals=%s",
            self.descriptor.output_directory,
            self.directives.bundle_enabled,
            sorted(self.directives.external_names),
        )

    def _wire_stages(self) -> None:
        assert self.descriptor is not None and self.directives is not None
        assert self.options is not None
        common = {"state": self.state, "progress": self.progress}
        self.watcher = FileWatcher(
            self.root,
            self._watch_pass,
            progress=self.progress,
            notifier_factory=self._notifier_factory,
            on_stopped=self._watch_stopped,
        )
        self._stages = {
            Stage.CHECK: TypeCheckStage(
                self._runner, self.settings.TYPECHECK_COMMAND, cwd=self.root, **common,
            ),
            Stage.COMPILE: BundleStage(
                self._runner, self.settings.BUNDLE_COMMAND, cwd=self.root, **common,
            ),
            Stage.PACKAGE: DependencyPackager(
                self.descriptor, self.directives, self.options, **common,
            ),
            Stage.OFFLINE: self._set_offline_location,
            Stage.WATCH: self._begin_watch,
            Stage.ARCHIVE: ArtifactPackager(
                self.descriptor, artifact_dir=self.settings.ARTIFACT_DIR, **common,
            ),
            Stage.CLEANUP: self._cleanup,
        }

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def run_stages(self, sequence: tuple[Stage, ...]) -> OutputDescriptor:
        """Run *sequence* in order and merge the stage outputs."""
        produced = OutputDescriptor()
        for stage in sequence:
            outcome = await self._stages[stage]()
            if outcome.skipped:
                logger.debug("[orchestrator] %s skipped", stage.value)
            produced = produced.merge(outcome.output)
        return produced

    async def _watch_pass(self) -> bool:
        await self.run_stages(WATCH_SEQUENCE)
        return self.state.build_is_clean

    def _transition(self, target: OrchestratorState) -> None:
        if target not in _TRANSITIONS[self.phase]:
            raise StateTransitionError(self.phase.value, target.value)
        self.phase = target

    # ------------------------------------------------------------------
    # Small stages
    # ------------------------------------------------------------------

    async def _set_offline_location(self) -> StageOutcome:
        if not self.state.build_is_clean:
            return StageOutcome(stage=Stage.OFFLINE, skipped=True)
        assert self.descriptor is not None
        self.progress.update("Setting offline directory. . .")
        location = Path(os.path.relpath(self.descriptor.output_directory, self.root)).as_posix()
        self.progress.remove()
        return StageOutcome(
            stage=Stage.OFFLINE,
            output=OutputDescriptor(offline_location=location),
        )

    async def _begin_watch(self) -> StageOutcome:
        if not self.state.build_is_clean:
            return StageOutcome(stage=Stage.WATCH, skipped=True)
        assert self.descriptor is not None and self.watcher is not None
        if self.watcher.start(self.descriptor.watch_patterns):
            self.state.is_watching = True
        else:
            # Watching is best-effort; the event itself still succeeds.
            logger.warning("[orchestrator] not watching: no include patterns")
        return StageOutcome(stage=Stage.WATCH)

    def _watch_stopped(self) -> None:
        self.state.is_watching = False

    async def _cleanup(self) -> StageOutcome:
        self.progress.remove()
        self.progress.success("All done")
        return StageOutcome(stage=Stage.CLEANUP)


__all__ = [
    "BuildOrchestrator",
    "HOST_HOOKS",
    "INITIALIZE",
    "LIFECYCLE_SEQUENCES",
    "OrchestratorState",
    "REJECTED_EVENTS",
    "WATCH_SEQUENCE",
]
