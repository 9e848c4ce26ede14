"""Node-module tree copier.

Copies the installed packages a manifest needs, and everything they
need in turn, from ``<source>/node_modules`` into
``<dest>/node_modules``.  Resolution follows Node's lookup order: a
package's own nested ``node_modules`` first, then each ancestor
``node_modules`` up to the source root.

Synchronous and filesystem-only; callers run it in an executor.
"""

from __future__ import annotations

import json
import logging
import shutil
from collections import deque
from pathlib import Path

from normal_build.errors import PackagingError

logger = logging.getLogger(__name__)

NODE_MODULES = "node_modules"


def _read_manifest(path: Path) -> dict:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise PackagingError(f"Unable to read manifest {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise PackagingError(f"Manifest {path} must contain an object")
    return data


def _resolve(name: str, from_dir: Path, source_root: Path) -> Path | None:
    """Locate *name* as seen from the package directory *from_dir*."""
    for directory in (from_dir, *from_dir.parents):
        candidate = directory / NODE_MODULES / name
        if (candidate / "package.json").is_file():
            return candidate
        if directory == source_root:
            break
    return None


def resolve_dependency_tree(
    source_root: str | Path,
    *,
    include_dev_dependencies: bool = False,
    manifest_path: str | Path | None = None,
) -> list[Path]:
    """Return the installed package directories the manifest needs.

    Raises ``PackagingError`` when a required package is not installed.
    Optional dependencies that are not installed are skipped.
    """
    source_root = Path(source_root).resolve()
    manifest = _read_manifest(Path(manifest_path) if manifest_path else source_root / "package.json")

    wanted: dict[str, bool] = {}
    for name in manifest.get("dependencies") or {}:
        wanted[name] = False
    for name in manifest.get("optionalDependencies") or {}:
        wanted.setdefault(name, True)
    if include_dev_dependencies:
        for name in manifest.get("devDependencies") or {}:
            wanted.setdefault(name, False)

    queue: deque[tuple[str, Path, bool]] = deque(
        (name, source_root, optional) for name, optional in sorted(wanted.items())
    )
    found: set[Path] = set()

    while queue:
        name, from_dir, optional = queue.popleft()
        located = _resolve(name, from_dir, source_root)
        if located is None:
            if optional:
                logger.debug("[modules] optional dependency %s not installed", name)
                continue
            raise PackagingError(
                f"Dependency '{name}' is not installed under {source_root / NODE_MODULES}",
                package=name,
            )
        if located in found:
            continue
        found.add(located)

        package = _read_manifest(located / "package.json")
        for dep in sorted(package.get("dependencies") or {}):
            queue.append((dep, located, False))
        for dep in sorted(package.get("optionalDependencies") or {}):
            queue.append((dep, located, True))

    return sorted(found)


def copy_node_modules(
    source_root: str | Path,
    dest_root: str | Path,
    *,
    include_dev_dependencies: bool = False,
    manifest_path: str | Path | None = None,
) -> list[str]:
    """Copy the manifest's dependency tree into *dest_root*.

    The destination ``node_modules`` is replaced, never merged, so
    repeated calls produce the same tree.  Returns the copied package
    paths relative to ``node_modules``, sorted.
    """
    source_root = Path(source_root).resolve()
    dest_root = Path(dest_root)
    packages = resolve_dependency_tree(
        source_root,
        include_dev_dependencies=include_dev_dependencies,
        manifest_path=manifest_path,
    )

    source_modules = source_root / NODE_MODULES
    dest_modules = dest_root / NODE_MODULES
    # A nested package travels with the outermost package that contains it.
    roots = [p for p in packages if not any(q in p.parents for q in packages)]

    try:
        if dest_modules.exists():
            shutil.rmtree(dest_modules)
        dest_modules.mkdir(parents=True)
        copied: list[str] = []
        for package_dir in roots:
            relative = package_dir.relative_to(source_modules)
            shutil.copytree(package_dir, dest_modules / relative, symlinks=True)
            copied.append(relative.as_posix())
    except (OSError, shutil.Error, ValueError) as exc:
        raise PackagingError(f"Unable to copy node modules: {exc}") from exc

    logger.debug("[modules] copied %d packages into %s", len(copied), dest_modules)
    return copied


__all__ = [
    "NODE_MODULES",
    "copy_node_modules",
    "resolve_dependency_tree",
]
