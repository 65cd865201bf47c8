from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from pydantic import ValidationError

from ctxdocs.config import (
    CTX_DIR,
    DEFAULT_GLOBAL_CONTEXT_PATHS,
    DEFAULT_PROJECT_CONTEXT_PATHS,
    REGISTRY_FILE,
    REGISTRY_VERSION,
    IndexedContext,
    IndexRebuildReport,
    ProjectIndexEntry,
    Registry,
    RegistryKind,
    RegistrySettings,
)
from ctxdocs.exceptions import GlobalNotInitializedError, NotInitializedError
from ctxdocs.file_manipulation import atomic_write_text, now_iso
from ctxdocs.logging import logger

if TYPE_CHECKING:
    from ctxdocs.config import ContextPathConfig


def ctx_dir(base: Path) -> Path:
    return base / CTX_DIR


def registry_path(base: Path) -> Path:
    """Registry file of a project root or of the home directory."""
    return base / CTX_DIR / REGISTRY_FILE


def _same_dir(a: Path, b: Path) -> bool:
    try:
        return a.resolve() == b.resolve()
    except OSError:
        return a == b


def find_project_root(start: Path, home: Path | None = None) -> Path | None:
    """Walk up from `start` to the first directory holding ``.ctx/registry.yaml``.

    The home directory is skipped: its ``.ctx/`` holds the global registry,
    not a project.

    Args:
        start (Path): directory to start the search from
        home (Path | None): the user's home directory

    Returns:
        Path | None: the project root, or None when no ancestor is initialized
    """
    start = start.resolve()
    for candidate in (start, *start.parents):
        if home is not None and _same_dir(candidate, home):
            continue
        if registry_path(candidate).is_file():
            return candidate
    return None


def is_project_initialized(root: Path) -> bool:
    return registry_path(root).is_file()


def is_global_initialized(home: Path) -> bool:
    return registry_path(home).is_file()


def require_project_root(start: Path, home: Path | None = None) -> Path:
    root = find_project_root(start, home)
    if root is None:
        raise NotInitializedError(root=start)
    return root


def require_global(home: Path) -> Path:
    if not is_global_initialized(home):
        raise GlobalNotInitializedError(home=home)
    return ctx_dir(home)


def _normalize_layout(data: dict[str, Any]) -> dict[str, Any]:
    # Early registries kept `version`/`last_synced` at the top level.
    if "meta" not in data and "version" in data:
        data = {
            **data,
            "meta": {
                "version": str(data.get("version") or REGISTRY_VERSION),
                "last_synced": str(data.get("last_synced") or ""),
            },
        }
    if data.get("contexts") is None:
        data = {**data, "contexts": {}}
    return data


def read_registry(path: Path) -> Registry:
    """Load a registry file.

    A missing file is an empty registry. So is an unreadable or malformed one,
    after a warning: read paths never fail on a broken registry.

    Args:
        path (Path): the registry file

    Returns:
        Registry: the parsed registry
    """
    if not path.is_file():
        logger.debug("No registry at %s, starting empty", path)
        return Registry()
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
        logger.warning("Unreadable registry %s, treating as empty: %s", path, e)
        return Registry()
    if not isinstance(data, dict):
        logger.warning("Registry %s is not a mapping, treating as empty", path)
        return Registry()
    try:
        return Registry.model_validate(_normalize_layout(data))
    except ValidationError as e:
        logger.warning("Invalid registry %s, treating as empty: %s", path, e)
        return Registry()


def default_context_paths(kind: RegistryKind) -> list[ContextPathConfig]:
    defaults = DEFAULT_PROJECT_CONTEXT_PATHS if kind == RegistryKind.PROJECT else DEFAULT_GLOBAL_CONTEXT_PATHS
    return [c.model_copy() for c in defaults]


def get_context_paths(registry: Registry, kind: RegistryKind) -> list[ContextPathConfig]:
    """Discovery patterns of a registry, falling back to the kind's defaults."""
    if registry.settings and registry.settings.context_paths:
        return list(registry.settings.context_paths)
    return default_context_paths(kind)


def dump_registry(registry: Registry) -> str:
    data = registry.model_dump(mode="json", exclude_none=True)
    return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)


def write_registry(path: Path, registry: Registry, kind: RegistryKind) -> Registry:
    """Persist a registry, stamping ``meta.last_synced``.

    Optional collections are materialised on write: `settings.context_paths`
    receives the kind's defaults when missing and the global registry always
    carries an `index`.

    Args:
        path (Path): the registry file; parent directories are created
        registry (Registry): registry to write (updated in place)
        kind (RegistryKind): project or global

    Returns:
        Registry: the registry as written
    """
    registry.meta.last_synced = now_iso()
    if not registry.meta.version:
        registry.meta.version = REGISTRY_VERSION
    if registry.settings is None or not registry.settings.context_paths:
        registry.settings = RegistrySettings(context_paths=default_context_paths(kind))
    if kind == RegistryKind.GLOBAL and registry.index is None:
        registry.index = {}
    atomic_write_text(path, dump_registry(registry))
    logger.debug("Wrote %s registry %s (%d contexts)", kind, path, len(registry.contexts))
    return registry


def read_project_registry(root: Path) -> Registry:
    return read_registry(registry_path(root))


def write_project_registry(root: Path, registry: Registry) -> Registry:
    return write_registry(registry_path(root), registry, RegistryKind.PROJECT)


def read_global_registry(home: Path) -> Registry:
    return read_registry(registry_path(home))


def write_global_registry(home: Path, registry: Registry) -> Registry:
    return write_registry(registry_path(home), registry, RegistryKind.GLOBAL)


def build_project_index_entry(root: Path, registry: Registry) -> ProjectIndexEntry:
    contexts = [
        IndexedContext(path=key, what=entry.preview.what, keywords=list(entry.preview.keywords))
        for key, entry in registry.contexts.items()
    ]
    return ProjectIndexEntry(
        path=str(root),
        last_synced=now_iso(),
        context_count=len(contexts),
        contexts=contexts,
    )


def project_index_key(root: Path, index: dict[str, ProjectIndexEntry]) -> str:
    """Index key of a project: its directory name, or its full path on a name clash."""
    name = root.name or str(root)
    existing = index.get(name)
    if existing is None or existing.path == str(root):
        return name
    return str(root)


def update_global_index(root: Path, home: Path) -> str | None:
    """Refresh the global index snapshot of one project.

    Does nothing when the global registry is not initialized.

    Returns:
        str | None: the index key written, or None when skipped
    """
    if not is_global_initialized(home):
        return None
    global_registry = read_global_registry(home)
    index = global_registry.index if global_registry.index is not None else {}
    key = project_index_key(root, index)
    index[key] = build_project_index_entry(root, read_project_registry(root))
    global_registry.index = index
    write_global_registry(home, global_registry)
    logger.info("Updated global index for %s", key)
    return key


def rebuild_global_index(home: Path) -> IndexRebuildReport:
    """Rebuild every project snapshot of the global index from the projects' own registries.

    Projects whose directory vanished, or whose registry has no contexts, are
    dropped from the index.

    Raises:
        GlobalNotInitializedError: the global registry does not exist
    """
    require_global(home)
    global_registry = read_global_registry(home)
    report = IndexRebuildReport()
    new_index: dict[str, ProjectIndexEntry] = {}
    for name, entry in (global_registry.index or {}).items():
        project_root = Path(entry.path)
        if not project_root.is_dir():
            logger.warning("Skipped %s: %s not found", name, project_root)
            report.skipped[name] = "not found"
            continue
        project_registry = read_project_registry(project_root)
        if not project_registry.contexts:
            logger.warning("Skipped %s: no contexts", name)
            report.skipped[name] = "no contexts"
            continue
        new_index[name] = build_project_index_entry(project_root, project_registry)
        report.rebuilt[name] = new_index[name].context_count
    global_registry.index = new_index
    write_global_registry(home, global_registry)
    return report
