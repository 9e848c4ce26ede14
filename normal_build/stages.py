"""Tool stages — type checking and bundling through the subprocess runner.

Both stages reduce a tool run to a ``StageOutcome``.  Failure handling
is shared with the dependency packager via ``fail_stage``:

* watching → mark the pipeline unclean, log, show "Waiting for changes",
  return a failed outcome;
* one-shot → remove the progress indicator and raise.
"""

from __future__ import annotations

import logging
from pathlib import Path

from normal_build.contracts import PipelineState, Stage, StageOutcome
from normal_build.diagnostics import parse_tsc_output, summarise
from normal_build.errors import BuildError, CompileError
from normal_build.progress import WAITING_MESSAGE, ProgressSink
from normal_build.runner import Runner, split_command

logger = logging.getLogger(__name__)


def fail_stage(
    stage: Stage,
    error: BuildError,
    *,
    state: PipelineState,
    progress: ProgressSink,
    summary: str,
    verbose: str = "",
) -> StageOutcome:
    """Apply the watch/one-shot failure duality to *error*.

    Returns a failed ``StageOutcome`` in watch mode; raises *error*
    otherwise.
    """
    if state.is_watching:
        state.build_is_clean = False
        progress.error(summary)
        if verbose:
            progress.verbose(verbose)
        progress.update(WAITING_MESSAGE)
        logger.info("[%s] failed while watching: %s", stage.value, summary)
        return StageOutcome(stage=stage, ok=False, diagnostic=verbose or error.message)

    progress.remove()
    raise error


class ToolStage:
    """Runs one external tool; exit code 0 means success."""

    stage: Stage
    tool: str
    progress_message: str
    failure_message: str
    # Gated stages are skipped once the pipeline is unclean.
    gated: bool = True

    def __init__(
        self,
        runner: Runner,
        command_line: str,
        *,
        cwd: Path,
        state: PipelineState,
        progress: ProgressSink,
    ) -> None:
        self.command, self.args = split_command(command_line)
        self._runner = runner
        self._cwd = cwd
        self._state = state
        self._progress = progress

    async def __call__(self) -> StageOutcome:
        if self.gated and not self._state.build_is_clean:
            return StageOutcome(stage=self.stage, skipped=True)

        self._progress.update(self.progress_message)
        result = await self._runner.run(self.command, self.args, cwd=str(self._cwd))

        if result.ok:
            self.on_success(result.stdout)
            return StageOutcome(stage=self.stage)

        diagnostic = result.diagnostic
        self.on_failure(diagnostic)
        return fail_stage(
            self.stage,
            CompileError(self.tool, diagnostic, result.exit_code),
            state=self._state,
            progress=self._progress,
            summary=self.failure_message,
            verbose=diagnostic,
        )

    def on_success(self, output: str) -> None:
        pass

    def on_failure(self, diagnostic: str) -> None:
        pass


class TypeCheckStage(ToolStage):
    """Always runs; a clean check restores ``build_is_clean``."""

    stage = Stage.CHECK
    tool = "tsc"
    progress_message = "Checking for errors"
    failure_message = "Unable to compile, one or more errors occurred"
    gated = False

    def on_success(self, output: str) -> None:
        self._state.build_is_clean = True

    def on_failure(self, diagnostic: str) -> None:
        found = parse_tsc_output(diagnostic)
        if found:
            logger.debug("[check] %s", summarise(found))


class BundleStage(ToolStage):
    stage = Stage.COMPILE
    tool = "etsc"
    progress_message = "Bundling. . ."
    failure_message = "Unable to bundle, one or more errors occurred"


__all__ = [
    "BundleStage",
    "ToolStage",
    "TypeCheckStage",
    "fail_stage",
]
