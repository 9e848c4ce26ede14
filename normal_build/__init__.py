"""Build orchestrator for TypeScript services — type-check, bundle, package, zip.

Public API
----------
Orchestrator::

    BuildOrchestrator, OrchestratorState,
    LIFECYCLE_SEQUENCES, WATCH_SEQUENCE, HOST_HOOKS, REJECTED_EVENTS,

Contracts (Pydantic models)::

    ProjectDescriptor, BundlerDirectives, DependencyManifest,
    Artifact, OutputDescriptor, Stage, StageOutcome, PipelineState,

Errors::

    BuildError, ConfigurationError, CompileError, PackagingError,
    ArtifactError, UnsupportedOperation, StateTransitionError,

Configuration::

    Settings, PluginOptions, load_plugin_options,

Descriptor loader::

    load_project_descriptor, load_bundler_directives,

Stages::

    TypeCheckStage, BundleStage, DependencyPackager, ArtifactPackager,
    compute_manifest, copy_node_modules,

Runner::

    SubprocessRunner, RunResult,

Watcher::

    FileWatcher, PollingNotifier, ChangeEvent,

Progress::

    ProgressSink, LoggingProgress,
"""

from normal_build.artifact import ArtifactPackager, write_archive
from normal_build.config import PluginOptions, Settings, load_plugin_options
from normal_build.contracts import (
    Artifact,
    BundlerDirectives,
    DependencyManifest,
    OutputDescriptor,
    PipelineState,
    ProjectDescriptor,
    Stage,
    StageOutcome,
)
from normal_build.diagnostics import Diagnostic, parse_tsc_output
from normal_build.descriptor import load_bundler_directives, load_project_descriptor
from normal_build.errors import (
    ArtifactError,
    BuildError,
    CompileError,
    ConfigurationError,
    PackagingError,
    StateTransitionError,
    UnsupportedOperation,
)
from normal_build.modules import copy_node_modules
from normal_build.orchestrator import (
    HOST_HOOKS,
    LIFECYCLE_SEQUENCES,
    REJECTED_EVENTS,
    WATCH_SEQUENCE,
    BuildOrchestrator,
    OrchestratorState,
)
from normal_build.packager import DependencyPackager, compute_manifest
from normal_build.progress import LoggingProgress, ProgressSink
from normal_build.runner import RunResult, SubprocessRunner
from normal_build.stages import BundleStage, TypeCheckStage
from normal_build.watcher import ChangeEvent, FileWatcher, PollingNotifier

__all__ = [
    # Orchestrator
    "BuildOrchestrator",
    "OrchestratorState",
    "LIFECYCLE_SEQUENCES",
    "WATCH_SEQUENCE",
    "HOST_HOOKS",
    "REJECTED_EVENTS",
    # Contracts
    "Artifact",
    "BundlerDirectives",
    "DependencyManifest",
    "OutputDescriptor",
    "PipelineState",
    "ProjectDescriptor",
    "Stage",
    "StageOutcome",
    # Errors
    "BuildError",
    "ConfigurationError",
    "CompileError",
    "PackagingError",
    "ArtifactError",
    "UnsupportedOperation",
    "StateTransitionError",
    # Configuration
    "Settings",
    "PluginOptions",
    "load_plugin_options",
    # Descriptor loader
    "load_project_descriptor",
    "load_bundler_directives",
    # Stages
    "TypeCheckStage",
    "BundleStage",
    "DependencyPackager",
    "ArtifactPackager",
    "compute_manifest",
    "copy_node_modules",
    "write_archive",
    # Diagnostics
    "Diagnostic",
    "parse_tsc_output",
    # Runner
    "SubprocessRunner",
    "RunResult",
    # Watcher
    "FileWatcher",
    "PollingNotifier",
    "ChangeEvent",
    # Progress
    "ProgressSink",
    "LoggingProgress",
]
