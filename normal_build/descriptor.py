"""Project descriptor loader — read on-disk manifests into snapshots.

Reads ``package.json``, ``tsconfig.json`` and the optional bundler
configuration (``etsc.config.json`` or ``etsc.config.js``) once, at
orchestrator initialisation.  Missing ``package.json`` / ``tsconfig.json``
and malformed files are fatal ``ConfigurationError``s; a missing bundler
configuration falls back to "no bundling, no externals".
"""

from __future__ import annotations

import json
import logging
import re
import subprocess
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from normal_build.contracts import BundlerDirectives, ProjectDescriptor
from normal_build.errors import ConfigurationError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

PACKAGE_MANIFEST = "package.json"
COMPILER_OPTIONS = "tsconfig.json"
BUNDLER_CONFIG_FILES: tuple[str, ...] = ("etsc.config.json", "etsc.config.js")

DEFAULT_OUT_DIR = "dist"
DEFAULT_WATCH_PATTERNS: tuple[str, ...] = ("src/**/*.ts",)

# tsconfig allows comments and trailing commas; strings are kept verbatim.
_JSONC_RE = re.compile(
    r'("(?:\\.|[^"\\])*")|//[^\n]*|/\*.*?\*/|,(?=\s*[}\]])',
    re.DOTALL,
)

# Prints {"esbuild": {...}} for a CommonJS config module.
_NODE_EXPORT_SCRIPT = (
    "const c = require(process.argv[1]);"
    "const e = (c && c.esbuild) || {};"
    "process.stdout.write(JSON.stringify({esbuild: "
    "{bundle: e.bundle, external: e.external}}));"
)


# ---------------------------------------------------------------------------
# Bundler configuration schema
# ---------------------------------------------------------------------------


class _EsbuildSection(BaseModel):
    model_config = ConfigDict(extra="ignore")

    bundle: bool | None = None
    external: list[str] | None = None


class _BundlerConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    esbuild: _EsbuildSection = Field(default_factory=_EsbuildSection)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _read_json(path: Path, *, allow_comments: bool = False) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Unable to read {path.name}: {exc}", path=str(path)) from exc
    if allow_comments:
        text = _JSONC_RE.sub(lambda m: m.group(1) or "", text)
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"{path.name} is not valid JSON: {exc}", path=str(path)) from exc


def _require(root: Path, name: str, what: str) -> Path:
    path = root / name
    if not path.is_file():
        raise ConfigurationError(
            f"{what} could not be found in your root directory",
            path=str(path),
        )
    return path


# ---------------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------------


def load_project_descriptor(
    root: str | Path,
    *,
    service_name: str | None = None,
) -> ProjectDescriptor:
    """Build a ``ProjectDescriptor`` from the manifests under *root*.

    ``service_name`` is the deployable unit name declared by the host;
    when omitted the manifest's ``name`` is used.
    """
    root = Path(root).resolve()
    package_path = _require(root, PACKAGE_MANIFEST, "package.json file")
    tsconfig_path = _require(root, COMPILER_OPTIONS, "tsconfig file")

    package = _read_json(package_path)
    tsconfig = _read_json(tsconfig_path, allow_comments=True)
    if not isinstance(package, dict):
        raise ConfigurationError("package.json must contain an object", path=str(package_path))
    if not isinstance(tsconfig, dict):
        raise ConfigurationError("tsconfig.json must contain an object", path=str(tsconfig_path))

    dependencies = package.get("dependencies") or {}
    if not isinstance(dependencies, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in dependencies.items()
    ):
        raise ConfigurationError(
            "package.json 'dependencies' must map names to version specs",
            path=str(package_path),
        )

    compiler_options = tsconfig.get("compilerOptions") or {}
    out_dir = compiler_options.get("outDir") or DEFAULT_OUT_DIR
    if not isinstance(out_dir, str):
        raise ConfigurationError("compilerOptions.outDir must be a string", path=str(tsconfig_path))

    include = tsconfig.get("include")
    if include is None:
        patterns = DEFAULT_WATCH_PATTERNS
    elif isinstance(include, list) and all(isinstance(p, str) for p in include):
        patterns = tuple(include)
    else:
        raise ConfigurationError("tsconfig 'include' must be a list of globs", path=str(tsconfig_path))

    descriptor = ProjectDescriptor(
        root=root,
        output_directory=(root / out_dir).resolve(),
        watch_patterns=patterns,
        runtime_dependencies=dict(dependencies),
        service_name=service_name or str(package.get("name") or root.name),
        manifest_path=package_path,
    )
    logger.debug(
        "[descriptor] root=%s out=%s deps=%d patterns=%s",
        root, descriptor.output_directory, len(dependencies), list(patterns),
    )
    return descriptor


def load_bundler_directives(
    root: str | Path,
    *,
    node_command: str = "node",
) -> BundlerDirectives:
    """Read the bundler configuration under *root*.

    ``etsc.config.json`` is parsed directly.  ``etsc.config.js`` is a
    CommonJS module and is evaluated with *node_command*; only its
    ``esbuild.bundle`` and ``esbuild.external`` keys are kept.
    """
    root = Path(root).resolve()
    for name in BUNDLER_CONFIG_FILES:
        path = root / name
        if path.is_file():
            break
    else:
        logger.debug("[descriptor] no bundler configuration under %s", root)
        return BundlerDirectives()

    if path.suffix == ".json":
        raw = _read_json(path)
    else:
        raw = _evaluate_js_config(path, node_command)

    try:
        config = _BundlerConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Malformed bundler configuration: {exc}", path=str(path)) from exc

    return BundlerDirectives(
        bundle_enabled=bool(config.esbuild.bundle),
        external_names=frozenset(config.esbuild.external or ()),
    )


def _evaluate_js_config(path: Path, node_command: str) -> Any:
    try:
        result = subprocess.run(
            [node_command, "-e", _NODE_EXPORT_SCRIPT, str(path)],
            capture_output=True,
            text=True,
            cwd=str(path.parent),
            timeout=60,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        raise ConfigurationError(
            f"Unable to evaluate bundler configuration: {exc}", path=str(path),
        ) from exc
    if result.returncode != 0:
        raise ConfigurationError(
            f"Malformed bundler configuration: {result.stderr.strip()}", path=str(path),
        )
    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(
            f"Bundler configuration did not export JSON-compatible data: {exc}",
            path=str(path),
        ) from exc


__all__ = [
    "BUNDLER_CONFIG_FILES",
    "COMPILER_OPTIONS",
    "DEFAULT_OUT_DIR",
    "DEFAULT_WATCH_PATTERNS",
    "PACKAGE_MANIFEST",
    "load_bundler_directives",
    "load_project_descriptor",
]
