"""Sync engine (writes checksums) and freshness check (reports drift, never writes)."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import yaml

from ctxdocs.config import (
    DEFAULT_IGNORE,
    Category,
    CheckIssue,
    CheckResult,
    CheckStatus,
    ContextEntry,
    ContextScope,
    IssueReason,
    IssueType,
    RegistryKind,
    SyncReport,
)
from ctxdocs.exceptions import ContextValidationError, CtxDocsError, NotInitializedError
from ctxdocs.file_manipulation import (
    is_companion_document,
    match_any_glob,
    mtime_iso,
    relpath,
    scan_files,
    sha256_bytes,
    sha256_file,
    walk_files,
)
from ctxdocs.frontmatter import extract_preview, parse_context_file, resolve_target, validate_context_file
from ctxdocs.logging import logger
from ctxdocs.registry import (
    get_context_paths,
    is_global_initialized,
    is_project_initialized,
    read_global_registry,
    read_project_registry,
    require_global,
    update_global_index,
    write_global_registry,
    write_project_registry,
)
from ctxdocs.target_matcher import is_folder_target, is_glob_pattern

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from ctxdocs.config import Registry

DOCUMENT_ERRORS = (CtxDocsError, OSError, UnicodeDecodeError, yaml.YAMLError)


def build_entry(
    base_dir: Path,
    rel: str,
    kind: RegistryKind,
    target_root: Path | None = None,
) -> ContextEntry:
    """Read one document and turn it into a registry entry.

    Companion documents (``*.ctx.md``, ``ctx.md``) are parsed strictly and
    validated; any other markdown only needs a usable preview. The target comes
    from the frontmatter, or from companion naming when `target_root` is given.

    Args:
        base_dir (Path): directory `rel` is relative to
        rel (str): document path, also the registry key
        kind (RegistryKind): registry the entry is meant for
        target_root (Path | None): directory targets are resolved against;
            None skips target inference and target checksums

    Returns:
        ContextEntry: the entry, checksums computed

    Raises:
        ContextValidationError: the document lacks `what` or `keywords`
        FrontmatterParseError: a companion document has no readable metadata
        OSError: the document cannot be read
    """
    path = base_dir / rel
    raw = path.read_bytes()
    content = raw.decode("utf-8")
    companion = is_companion_document(rel)

    if companion:
        doc = parse_context_file(rel, content)
        result = validate_context_file(doc)
        if not result.valid:
            raise ContextValidationError(identifier=rel, errors=tuple(result.errors))
        preview = doc.preview
        explicit = doc.meta.target
    else:
        preview = extract_preview(content)
        if preview is None:
            raise ContextValidationError(identifier=rel, errors=("no valid frontmatter (what, keywords)",))
        explicit = parse_context_file(rel, content).meta.target

    target = resolve_target(rel, explicit, target_root) if target_root is not None else explicit

    target_checksum = None
    if target and target_root is not None and not is_glob_pattern(target) and not is_folder_target(target):
        target_path = target_root / target.removeprefix("/")
        if target_path.is_file():
            target_checksum = sha256_file(target_path)

    if kind == RegistryKind.GLOBAL:
        scope = None
    else:
        scope = ContextScope.LOCAL if companion else ContextScope.PROJECT

    return ContextEntry(
        scope=scope,
        source=rel,
        target=target,
        checksum=sha256_bytes(raw),
        target_checksum=target_checksum,
        last_modified=mtime_iso(path),
        preview=preview,
    )


def sync_registry(
    registry: Registry,
    base_dir: Path,
    documents: Iterable[str],
    kind: RegistryKind,
    target_root: Path | None = None,
) -> SyncReport:
    """Refresh registry entries from the documents on disk.

    Every document is processed on its own: a parse or read failure is logged
    and the loop moves on. Invalid documents are skipped with a warning and
    never written. Registered documents outside `documents` are refreshed when
    they still exist. Entries whose document is gone stay in the registry and
    are reported as orphaned.

    Args:
        registry (Registry): registry to update in place
        base_dir (Path): directory the document paths are relative to
        documents (Iterable[str]): discovered document paths
        kind (RegistryKind): project or global
        target_root (Path | None): see `build_entry`

    Returns:
        SyncReport: synced, skipped, failed and orphaned document paths
    """
    report = SyncReport(scope=kind)
    documents = list(documents)
    seen = set(documents)
    # Entries registered by hand outside the discovery patterns are refreshed too.
    documents += [key for key in registry.contexts if key not in seen and (base_dir / key).is_file()]
    seen.update(documents)
    for rel in documents:
        try:
            registry.contexts[rel] = build_entry(base_dir, rel, kind, target_root)
        except ContextValidationError as e:
            logger.warning("Skipping %s: %s", rel, e)
            report.skipped.append(rel)
        except DOCUMENT_ERRORS as e:
            logger.error("Error processing %s: %s", rel, e)  # noqa: TRY400
            report.errors.append(rel)
        else:
            report.synced.append(rel)

    report.orphaned = [key for key in registry.contexts if key not in seen]
    for key in report.orphaned:
        logger.warning("%s is registered but no longer found; run 'ctx remove %s' to unregister it", key, key)
    return report


def discover_documents(registry: Registry, base_dir: Path, kind: RegistryKind) -> list[str]:
    patterns = [c.path for c in get_context_paths(registry, kind)]
    return scan_files(base_dir, patterns, DEFAULT_IGNORE)


def sync_project(root: Path, home: Path | None = None) -> SyncReport:
    """Sync a project registry with its documents and refresh the global index.

    Raises:
        NotInitializedError: `root` holds no project registry
    """
    if not is_project_initialized(root):
        raise NotInitializedError(root=root)
    registry = read_project_registry(root)
    documents = discover_documents(registry, root, RegistryKind.PROJECT)
    logger.info("Syncing %d project context(s) under %s", len(documents), root)
    report = sync_registry(registry, root, documents, RegistryKind.PROJECT, target_root=root)
    write_project_registry(root, registry)
    if home is not None and is_global_initialized(home):
        try:
            update_global_index(root, home)
        except (CtxDocsError, OSError) as e:
            logger.warning("Failed to update global index: %s", e)
    return report


def sync_global(home: Path) -> SyncReport:
    base = require_global(home)
    registry = read_global_registry(home)
    documents = discover_documents(registry, base, RegistryKind.GLOBAL)
    logger.info("Syncing %d global context(s) under %s", len(documents), base)
    report = sync_registry(registry, base, documents, RegistryKind.GLOBAL)
    write_global_registry(home, registry)
    return report


class TargetProbe:
    """Answers "does this target exist" for a root, listing the tree at most once."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self._files: list[str] | None = None

    def _all_files(self) -> list[str]:
        if self._files is None:
            self._files = walk_files(self.root, DEFAULT_IGNORE)
        return self._files

    def exists(self, target: str) -> bool:
        if is_folder_target(target):
            return (self.root / target.strip("/")).is_dir()
        pattern = target.removeprefix("/")
        if is_glob_pattern(pattern):
            return any(match_any_glob(rel, [pattern]) for rel in self._all_files())
        return (self.root / pattern).is_file()


def _issue(
    issue_type: IssueType,
    entry: ContextEntry | None,
    key: str,
    message: str,
    reason: IssueReason | None = None,
) -> CheckIssue:
    return CheckIssue(
        type=issue_type,
        category=entry.category if entry else Category.STANDALONE,
        context_path=key,
        target_path=entry.target if entry else None,
        reason=reason,
        message=message,
        last_modified=entry.last_modified if entry and issue_type == IssueType.STALE else None,
    )


def _check_entry(
    key: str,
    entry: ContextEntry,
    base_dir: Path,
    kind: RegistryKind,
    probe: TargetProbe | None,
) -> CheckIssue | None:
    path = base_dir / key
    if not path.is_file():
        return _issue(IssueType.DELETED, entry, key, "Context file deleted from filesystem")
    try:
        current = sha256_file(path)
    except (OSError, UnicodeDecodeError) as e:
        return _issue(IssueType.ERROR, entry, key, f"Error reading context file: {e}", IssueReason.UNREADABLE)
    if current != entry.checksum:
        return _issue(IssueType.STALE, entry, key, "Context file modified since last sync", IssueReason.MODIFIED)

    if kind == RegistryKind.GLOBAL or not entry.target or probe is None:
        return None
    if not probe.exists(entry.target):
        return _issue(IssueType.ERROR, entry, key, "Target not found", IssueReason.TARGET_MISSING)
    if entry.target_checksum and not is_glob_pattern(entry.target) and not is_folder_target(entry.target):
        try:
            target_current = sha256_file(probe.root / entry.target.removeprefix("/"))
        except (OSError, UnicodeDecodeError) as e:
            return _issue(IssueType.ERROR, entry, key, f"Error reading target: {e}", IssueReason.UNREADABLE)
        if target_current != entry.target_checksum:
            return _issue(
                IssueType.STALE,
                entry,
                key,
                "Target file changed - context may need update",
                IssueReason.TARGET_CHANGED,
            )
    return None


def normalize_path_filter(path_filter: str, base_dir: Path) -> str:
    """Turn ``./src/a.ctx.md`` or an absolute path into a registry key."""
    cleaned = path_filter.strip().replace("\\", "/")
    if cleaned.startswith("/"):
        cleaned = relpath(Path(cleaned), base_dir)
    return cleaned.removeprefix("./")


def check_registry(
    registry: Registry,
    base_dir: Path,
    kind: RegistryKind,
    target_root: Path | None = None,
    path_filter: str | None = None,
    patterns: Sequence[str] | None = None,
) -> CheckResult:
    """Compare registry entries with the live files. Never writes.

    Classification per entry: `fresh`; `stale` when the document (reason
    ``modified``) or its exact target (reason ``target_changed``) changed;
    `deleted` when the document is gone; `error` when a bound target is
    missing or a file cannot be read. Discovered documents absent from the
    registry are `new`. With `path_filter` only that document is evaluated
    and nothing is discovered.

    Args:
        registry (Registry): registry to check
        base_dir (Path): directory the registry keys are relative to
        kind (RegistryKind): project or global; global entries are only
            compared on their own checksum
        target_root (Path | None): directory targets are relative to
        path_filter (str | None): restrict the check to one document
        patterns (Sequence[str] | None): discovery patterns, defaulting to the
            registry's context paths

    Returns:
        CheckResult: status, summary counts and one issue per non-fresh document
    """
    result = CheckResult(scope=kind)
    probe = TargetProbe(target_root) if target_root is not None else None
    summary = result.summary

    if path_filter:
        key = normalize_path_filter(path_filter, base_dir)
        entries = {key: registry.contexts[key]} if key in registry.contexts else {}
        discovered = [key] if not entries and (base_dir / key).is_file() else []
        if not entries and not discovered:
            summary.total += 1
            summary.errors += 1
            result.issues.append(_issue(IssueType.ERROR, None, key, "Context file not registered and not found"))
    else:
        entries = registry.contexts
        if patterns is None:
            patterns = [c.path for c in get_context_paths(registry, kind)]
        discovered = [rel for rel in scan_files(base_dir, patterns, DEFAULT_IGNORE) if rel not in entries]

    for key, entry in entries.items():
        summary.total += 1
        issue = _check_entry(key, entry, base_dir, kind, probe)
        if issue is None:
            summary.fresh += 1
            continue
        result.issues.append(issue)
        match issue.type:
            case IssueType.STALE:
                summary.stale += 1
            case IssueType.DELETED:
                summary.deleted += 1
            case _:
                summary.errors += 1

    for rel in discovered:
        summary.total += 1
        summary.new += 1
        result.issues.append(_issue(IssueType.NEW, None, rel, "Context file not in registry"))

    drift = summary.stale + summary.errors + summary.deleted
    result.status = CheckStatus.STALE if drift > 0 else CheckStatus.FRESH
    return result


def check_project(root: Path, path_filter: str | None = None) -> CheckResult:
    if not is_project_initialized(root):
        raise NotInitializedError(root=root)
    registry = read_project_registry(root)
    return check_registry(registry, root, RegistryKind.PROJECT, target_root=root, path_filter=path_filter)


def check_global(home: Path, path_filter: str | None = None) -> CheckResult:
    base = require_global(home)
    registry = read_global_registry(home)
    return check_registry(registry, base, RegistryKind.GLOBAL, path_filter=path_filter)

