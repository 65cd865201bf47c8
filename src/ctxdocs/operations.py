"""Commands that shape the registries: init, create, add, remove, save, adopt, migrate, refresh.

Also the read side used by `list`, `load`, `status` and `session`. Every
function takes the project root and the home directory explicitly.
"""

from __future__ import annotations

import json
import re
import shutil
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any

from ctxdocs.config import (
    CONTEXT_TEMPLATE,
    CONTEXTS_DIR,
    CTX_CURRENT_FILE,
    DEFAULT_GLOBAL_CONTEXT_PATHS,
    DEFAULT_IGNORE,
    DEFAULT_PROJECT_CONTEXT_PATHS,
    GENERIC_PATH_WORDS,
    GITIGNORE_ENTRIES,
    GLOB_CHARS,
    LEGACY_CONFIG_FILE,
    LEGACY_CTX_DIR,
    LEGACY_SKIP,
    LOCAL_SUFFIX,
    BatchReport,
    ContextPathConfig,
    ListEntry,
    LoadedContext,
    MigrationReport,
    ReadScope,
    Registry,
    RegistryKind,
    RegistrySettings,
    SessionMessage,
)
from ctxdocs.exceptions import (
    ContextExistsError,
    ContextValidationError,
    CtxDocsError,
    GlobalNotInitializedError,
    InvalidOptionError,
    NotInitializedError,
)
from ctxdocs.file_manipulation import (
    atomic_write_text,
    copy_markdown_tree,
    ensure_md_suffix,
    extract_document_title,
    is_companion_document,
    match_any_glob,
    relpath,
    resolve_context_path,
    scan_files,
    update_ctx_gitignore,
)
from ctxdocs.freshness import DOCUMENT_ERRORS, build_entry, sync_project
from ctxdocs.frontmatter import add_frontmatter, split_frontmatter
from ctxdocs.logging import logger
from ctxdocs.registry import (
    ctx_dir,
    find_project_root,
    get_context_paths,
    is_global_initialized,
    is_project_initialized,
    read_global_registry,
    read_project_registry,
    registry_path,
    require_global,
    update_global_index,
    write_global_registry,
    write_project_registry,
)
from ctxdocs.target_matcher import (
    find_keyword_matches,
    find_matching_contexts,
    is_glob_pattern,
    matches_target,
    rank_keyword_matches,
    rank_target_matches,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ctxdocs.config import ContextEntry, MatchedContext


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------


def parse_context_paths_option(value: str) -> list[ContextPathConfig]:
    """Parse ``--context-paths "pattern:purpose,pattern:purpose"``.

    Raises:
        InvalidOptionError: an item lacks its pattern or purpose, or nothing is given
    """
    if not value or not value.strip():
        raise InvalidOptionError(message="context-paths option cannot be empty")
    paths: list[ContextPathConfig] = []
    for item in value.split(","):
        item = item.strip()  # noqa: PLW2901
        if not item:
            continue
        pattern, sep, purpose = item.partition(":")
        if not sep:
            raise InvalidOptionError(
                message=f'Invalid format: "{item}". Expected "pattern:purpose" (e.g. "**/*.ctx.md:Bound contexts")',
            )
        if not pattern.strip():
            raise InvalidOptionError(message=f'Path cannot be empty in: "{item}"')
        if not purpose.strip():
            raise InvalidOptionError(message=f'Purpose cannot be empty in: "{item}"')
        paths.append(ContextPathConfig(path=pattern.strip(), purpose=purpose.strip()))
    if not paths:
        raise InvalidOptionError(message="At least one context path must be specified")
    return paths


def pattern_base_dir(pattern: str) -> str:
    """Literal directory prefix of a glob: ``.ctx/contexts/**/*.md`` -> ``.ctx/contexts``."""
    cut = min((i for i in (pattern.find(c) for c in GLOB_CHARS) if i != -1), default=len(pattern))
    prefix = pattern[:cut]
    if cut < len(pattern):
        prefix = prefix.rpartition("/")[0]
    else:
        prefix = str(PurePosixPath(prefix).parent)
    return "" if prefix in ("", ".") else prefix.rstrip("/")


def _create_base_dirs(base: Path, context_paths: Sequence[ContextPathConfig]) -> list[str]:
    created: list[str] = []
    for cp in context_paths:
        rel = pattern_base_dir(cp.path)
        if not rel:
            continue
        (base / rel).mkdir(parents=True, exist_ok=True)
        created.append(rel)
    return created


def _init_registry(
    base: Path,
    kind: RegistryKind,
    context_paths: Sequence[ContextPathConfig],
    *,
    force: bool,
) -> list[str]:
    path = registry_path(base)
    if path.is_file() and not force:
        logger.warning("%s ctx is already initialized at %s; use --force to reinitialize", kind, base)
        return []
    # Reinitializing replaces the settings and keeps every registered entry.
    registry = Registry()
    if path.is_file():
        registry = read_project_registry(base) if kind == RegistryKind.PROJECT else read_global_registry(base)
    registry.settings = RegistrySettings(context_paths=list(context_paths))

    ctx_dir(base).mkdir(parents=True, exist_ok=True)
    pattern_base = base if kind == RegistryKind.PROJECT else ctx_dir(base)
    created = [relpath(pattern_base / d, base) for d in _create_base_dirs(pattern_base, context_paths)]
    if kind == RegistryKind.PROJECT:
        write_project_registry(base, registry)
    else:
        write_global_registry(base, registry)
    created.append(relpath(path, base))
    logger.info("Initialized %s ctx at %s", kind, base)
    return created


def init_global(
    home: Path,
    context_paths: Sequence[ContextPathConfig] | None = None,
    *,
    force: bool = False,
) -> list[str]:
    """Create ``<home>/.ctx/registry.yaml`` and the directories its patterns need.

    Returns:
        list[str]: created paths relative to `home`; empty when already initialized
    """
    paths = list(context_paths) if context_paths else [c.model_copy() for c in DEFAULT_GLOBAL_CONTEXT_PATHS]
    return _init_registry(home, RegistryKind.GLOBAL, paths, force=force)


def init_project(
    root: Path,
    home: Path,
    context_paths: Sequence[ContextPathConfig] | None = None,
    *,
    force: bool = False,
) -> list[str]:
    """Create ``<root>/.ctx/registry.yaml``, setting up the global registry first when missing.

    Returns:
        list[str]: created paths relative to `root`; empty when already initialized
    """
    if not is_global_initialized(home):
        init_global(home)
    paths = list(context_paths) if context_paths else [c.model_copy() for c in DEFAULT_PROJECT_CONTEXT_PATHS]
    return _init_registry(root, RegistryKind.PROJECT, paths, force=force)


def refresh_gitignore(root: Path) -> int:
    if not is_project_initialized(root):
        raise NotInitializedError(root=root)
    return update_ctx_gitignore(root, GITIGNORE_ENTRIES)


def add_context_pattern(
    pattern: str,
    purpose: str,
    *,
    root: Path | None,
    home: Path,
    global_scope: bool = False,
) -> bool:
    """Append a discovery pattern to a registry's ``settings.context_paths``.

    A registry still on the built-in defaults gets them written out first, so
    adding a pattern never drops the default ones.

    Returns:
        bool: False when the pattern is already configured

    Raises:
        InvalidOptionError: `pattern` or `purpose` is empty
    """
    pattern, purpose = pattern.strip().replace("\\", "/"), purpose.strip()
    if not pattern or not purpose:
        raise InvalidOptionError(message="Both a pattern and a purpose are required")
    kind, _, registry = _open_registry(root, home, global_scope=global_scope)
    paths = get_context_paths(registry, kind)
    if any(cp.path == pattern for cp in paths):
        logger.warning("Pattern already exists: %s", pattern)
        return False
    paths.append(ContextPathConfig(path=pattern, purpose=purpose))
    registry.settings = RegistrySettings(context_paths=paths)
    if kind == RegistryKind.GLOBAL:
        write_global_registry(home, registry)
    else:
        write_project_registry(root, registry)
    logger.info("Added pattern %s to %s context_paths", pattern, kind)
    return True


# ---------------------------------------------------------------------------
# write side: create, add, remove, save, adopt
# ---------------------------------------------------------------------------


def _open_registry(root: Path | None, home: Path, *, global_scope: bool) -> tuple[RegistryKind, Path, Registry]:
    if global_scope:
        base = require_global(home)
        return RegistryKind.GLOBAL, base, read_global_registry(home)
    if root is None or not is_project_initialized(root):
        raise NotInitializedError(root=root)
    return RegistryKind.PROJECT, root, read_project_registry(root)


def _store_registry(kind: RegistryKind, registry: Registry, root: Path | None, home: Path) -> None:
    if kind == RegistryKind.GLOBAL:
        write_global_registry(home, registry)
        return
    if root is None:
        raise NotInitializedError()
    write_project_registry(root, registry)
    try:
        update_global_index(root, home)
    except (CtxDocsError, OSError) as e:
        logger.warning("Failed to update global index: %s", e)


def _target_root(kind: RegistryKind, root: Path | None) -> Path | None:
    return root if kind == RegistryKind.PROJECT else None


def _to_key(item: str, base: Path) -> str:
    """Registry key for a user-supplied path: relative to `base` when it lies inside."""
    cleaned = item.strip().replace("\\", "/")
    if Path(cleaned).expanduser().is_absolute():
        return relpath(Path(cleaned).expanduser(), base)
    return cleaned.removeprefix("./")


def _expand(patterns: Sequence[str], base: Path) -> list[tuple[str, str]]:
    """(pattern, file) pairs; a literal path that does not exist maps to an empty file."""
    pairs: list[tuple[str, str]] = []
    for pattern in patterns:
        key = _to_key(pattern, base)
        if is_glob_pattern(key):
            found = scan_files(base, [key], DEFAULT_IGNORE)
            pairs.extend((pattern, rel) for rel in found)
            if not found:
                pairs.append((pattern, ""))
        else:
            pairs.append((pattern, key if (base / key).is_file() else ""))
    return pairs


def _render_template(rel: str, target: str | None) -> str:
    title = extract_document_title(rel)
    target_line = f"target: {json.dumps(target)}\n" if target else ""
    return CONTEXT_TEMPLATE.format(
        target_line=target_line,
        what=json.dumps(title),
        keyword=json.dumps(title.lower()),
        title=title,
    )


def create_context(
    path: str,
    *,
    root: Path | None,
    home: Path,
    global_scope: bool = False,
    target: str | None = None,
    force: bool = False,
) -> ContextEntry:
    """Write a context document from the built-in template and register it.

    Args:
        path (str): document path relative to the project root (or to
            ``~/.ctx`` with `global_scope`); ``.md`` is appended when missing.
            Empty means the companion path of `target`.
        root (Path | None): project root
        home (Path): home directory
        global_scope (bool): create in the global registry
        target (str | None): target written to the frontmatter
        force (bool): overwrite an existing file

    Returns:
        ContextEntry: the registered entry

    Raises:
        InvalidOptionError: neither `path` nor `target` is given
        ContextExistsError: the file exists and `force` is not set
    """
    if not path:
        if not target:
            raise InvalidOptionError(message="Specify a document path or --target")
        path = resolve_context_path(target)
    kind, base, registry = _open_registry(root, home, global_scope=global_scope)
    rel = ensure_md_suffix(_to_key(path, base))
    doc_path = base / rel
    if doc_path.exists() and not force:
        raise ContextExistsError(path=doc_path, message=f"Context file already exists: {rel}. Use --force to overwrite.")
    atomic_write_text(doc_path, _render_template(rel, target))
    entry = build_entry(base, rel, kind, _target_root(kind, root))
    registry.contexts[rel] = entry
    _store_registry(kind, registry, root, home)
    logger.info("Created and registered %s", rel)
    return entry


def add_contexts(
    patterns: Sequence[str],
    *,
    root: Path | None,
    home: Path,
    global_scope: bool = False,
) -> BatchReport:
    """Register existing documents (paths or globs) that carry valid frontmatter.

    Already registered, missing and invalid documents are skipped with a reason.
    """
    kind, base, registry = _open_registry(root, home, global_scope=global_scope)
    report = BatchReport(scope=kind)
    for pattern, rel in _expand(patterns, base):
        if not rel:
            report.skipped[pattern] = "file not found"
            continue
        if rel in registry.contexts:
            report.skipped[rel] = "already registered"
            continue
        try:
            registry.contexts[rel] = build_entry(base, rel, kind, _target_root(kind, root))
        except ContextValidationError:
            report.skipped[rel] = "no valid frontmatter"
        except DOCUMENT_ERRORS as e:
            report.skipped[rel] = str(e)
        else:
            report.done.append(rel)
    if report.done:
        _store_registry(kind, registry, root, home)
    for rel, reason in report.skipped.items():
        logger.warning("skip: %s (%s)", rel, reason)
    return report


def remove_contexts(
    patterns: Sequence[str],
    *,
    root: Path | None,
    home: Path,
    global_scope: bool = False,
) -> BatchReport:
    """Unregister entries by exact key or glob. Files on disk are left alone."""
    kind, base, registry = _open_registry(root, home, global_scope=global_scope)
    report = BatchReport(scope=kind)
    for pattern in patterns:
        key = _to_key(pattern, base)
        if key in registry.contexts:
            matched = [key]
        elif is_glob_pattern(key):
            matched = [k for k in registry.contexts if match_any_glob(k, [key])]
        else:
            matched = []
        if not matched:
            report.skipped[pattern] = "not registered"
            continue
        for k in matched:
            del registry.contexts[k]
            report.done.append(k)
    if report.done:
        _store_registry(kind, registry, root, home)
    return report


def save_context(
    path: str,
    content: str,
    *,
    root: Path | None,
    home: Path,
    what: str = "",
    keywords: Sequence[str] = (),
    global_scope: bool = False,
    force: bool = False,
) -> ContextEntry | None:
    """Write `content` to a document, adding frontmatter from `what`/`keywords`, and register it.

    A bare file name saved with `global_scope` lands in ``~/.ctx/contexts/``.

    Returns:
        ContextEntry | None: the registered entry, or None when the saved
            document has no valid preview and was left unregistered

    Raises:
        InvalidOptionError: `content` is empty
        ContextExistsError: the file exists and `force` is not set
    """
    if not content.strip():
        raise InvalidOptionError(message="No content provided")
    kind, base, registry = _open_registry(root, home, global_scope=global_scope)
    rel = _to_key(path, base)
    if global_scope and "/" not in rel:
        rel = f"{CONTEXTS_DIR}/{rel}"
    rel = ensure_md_suffix(rel)
    doc_path = base / rel
    if doc_path.exists() and not force:
        raise ContextExistsError(path=doc_path, message=f"File already exists: {rel}. Use --force to overwrite.")

    final = content
    fields: dict[str, Any] = {"what": what, "keywords": [k.strip() for k in keywords if k.strip()]}
    if (fields["what"] or fields["keywords"]) and not content.lstrip("\ufeff").startswith("---"):
        final = add_frontmatter(content, fields)
    atomic_write_text(doc_path, final)
    logger.info("Saved %s", doc_path)

    try:
        entry = build_entry(base, rel, kind, _target_root(kind, root))
    except ContextValidationError as e:
        logger.warning("Saved %s but did not register it: %s", rel, e)
        return None
    registry.contexts[rel] = entry
    _store_registry(kind, registry, root, home)
    return entry


_CAMEL_RE = re.compile(r"([a-z])([A-Z])")


def generate_preview_fields(rel: str) -> tuple[str, list[str]]:
    """Derive `what` and `keywords` from a path: ``docs/api-guide.md`` -> ("api guide", [api, guide, docs])."""
    p = PurePosixPath(rel)
    stem = p.name.removesuffix(".md")
    words = [w for w in _CAMEL_RE.sub(r"\1 \2", re.sub(r"[-_]", " ", stem)).lower().split() if w]
    dir_words = [d.lower() for d in p.parent.parts if d and d not in GENERIC_PATH_WORDS]
    keywords = list(dict.fromkeys([*words, *dir_words]))
    what = " ".join(words) or stem
    return what, keywords or [what]


def adopt_documents(
    patterns: Sequence[str],
    *,
    root: Path | None,
    home: Path,
    global_scope: bool = False,
) -> BatchReport:
    """Give plain markdown files generated frontmatter and register them.

    Files that are not markdown, companion documents and files that already
    have frontmatter are skipped.
    """
    kind, base, registry = _open_registry(root, home, global_scope=global_scope)
    report = BatchReport(scope=kind)
    for pattern, rel in _expand(patterns, base):
        if not rel:
            report.skipped[pattern] = "file not found"
            continue
        if not rel.endswith(".md"):
            report.skipped[rel] = "not markdown"
            continue
        if rel.endswith(LOCAL_SUFFIX):
            report.skipped[rel] = "already a context file"
            continue
        doc_path = base / rel
        try:
            content = doc_path.read_text(encoding="utf-8")
            existing, _ = split_frontmatter(content)
        except DOCUMENT_ERRORS as e:
            report.skipped[rel] = str(e)
            continue
        if existing is not None:
            report.skipped[rel] = "already has frontmatter"
            continue
        what, keywords = generate_preview_fields(rel)
        atomic_write_text(doc_path, add_frontmatter(content, {"what": what, "keywords": keywords}))
        try:
            registry.contexts[rel] = build_entry(base, rel, kind, _target_root(kind, root))
        except DOCUMENT_ERRORS as e:
            report.skipped[rel] = str(e)
            continue
        report.done.append(rel)
    if report.done:
        _store_registry(kind, registry, root, home)
    return report


# ---------------------------------------------------------------------------
# migrate
# ---------------------------------------------------------------------------


def has_legacy_layout(root: Path) -> bool:
    return (root / LEGACY_CONFIG_FILE).is_file() or (root / LEGACY_CTX_DIR).is_dir()


def migrate_legacy(
    root: Path,
    home: Path,
    *,
    remove_legacy_config: bool = False,
    remove_legacy_dir: bool = False,
) -> MigrationReport:
    """Move a legacy ``ctx/`` layout to ``.ctx/contexts/`` and sync the new registry.

    An existing ``.ctx/`` is preserved. ``.ctx.current`` is removed; the legacy
    config and directory are only deleted when asked.

    Raises:
        GlobalNotInitializedError: the global registry does not exist
    """
    if not is_global_initialized(home):
        raise GlobalNotInitializedError(home=home)
    report = MigrationReport()
    if not has_legacy_layout(root):
        logger.warning("No legacy structure found in %s", root)
        return report

    legacy_dir = root / LEGACY_CTX_DIR
    contexts_dir = ctx_dir(root) / CONTEXTS_DIR
    contexts_dir.mkdir(parents=True, exist_ok=True)
    if legacy_dir.is_dir():
        report.copied = copy_markdown_tree(legacy_dir, contexts_dir, skip=LEGACY_SKIP)

    if not is_project_initialized(root):
        write_project_registry(root, Registry())

    current = root / CTX_CURRENT_FILE
    if current.is_file():
        current.unlink()
        report.removed.append(CTX_CURRENT_FILE)
    legacy_config = root / LEGACY_CONFIG_FILE
    if remove_legacy_config and legacy_config.is_file():
        legacy_config.unlink()
        report.removed.append(LEGACY_CONFIG_FILE)
    if remove_legacy_dir and legacy_dir.is_dir():
        shutil.rmtree(legacy_dir)
        report.removed.append(f"{LEGACY_CTX_DIR}/")

    report.sync = sync_project(root, home)
    return report


# ---------------------------------------------------------------------------
# read side: scope, list, load, status
# ---------------------------------------------------------------------------


def resolve_read_scope(start: Path, home: Path, *, global_scope: bool = False, all_scopes: bool = False) -> ReadScope:
    """Pick the registries a read command searches.

    Default is the project. Without a project the search falls back to the
    global registry with a warning.

    Raises:
        NotInitializedError: no project and no global registry
        GlobalNotInitializedError: the global registry is required but missing
    """
    project_root = find_project_root(start, home)
    global_ok = is_global_initialized(home)
    search_project = all_scopes or not global_scope
    search_global = all_scopes or global_scope
    warning = None

    if search_project and project_root is None:
        if not global_ok:
            raise NotInitializedError(
                root=start,
                message="Not in a ctx project and global ctx not initialized. "
                "Run 'ctx init' to initialize global, or 'ctx init .' for project.",
            )
        warning = "No project found. Falling back to global contexts."
        search_project, search_global = False, True
    if search_global and not global_ok:
        raise GlobalNotInitializedError(home=home)

    return ReadScope(
        project_root=project_root,
        effective_root=project_root or start,
        search_project=search_project,
        search_global=search_global,
        warning=warning,
    )


def _entries_of(contexts: dict[str, ContextEntry], kind: RegistryKind) -> list[ListEntry]:
    return [
        ListEntry(
            path=key,
            what=entry.preview.what,
            keywords=list(entry.preview.keywords),
            target=entry.target,
            registry=kind,
            type=entry.category,
        )
        for key, entry in contexts.items()
    ]


def list_contexts(scope: ReadScope, home: Path, target: str | None = None) -> list[ListEntry]:
    """Registered contexts of the scope, project first, then by path.

    With `target`, only bound entries whose target covers that file are kept.
    """
    entries: list[ListEntry] = []
    if scope.search_project and scope.project_root is not None:
        entries += _entries_of(read_project_registry(scope.project_root).contexts, RegistryKind.PROJECT)
    if scope.search_global:
        entries += _entries_of(read_global_registry(home).contexts, RegistryKind.GLOBAL)
    if target:
        entries = [e for e in entries if e.target and matches_target(target, e.target, scope.effective_root)]
    return sorted(entries, key=lambda e: (e.registry != RegistryKind.PROJECT, e.path))


def is_context_candidate(candidate: str) -> bool:
    """False for paths that are themselves ctx files; those never load contexts."""
    posix = candidate.replace("\\", "/")
    if is_companion_document(posix):
        return False
    return "/.ctx/" not in posix and not posix.startswith(".ctx/")


def find_target_contexts(scope: ReadScope, home: Path, candidate: str) -> list[MatchedContext]:
    matches: list[MatchedContext] = []
    if scope.search_project and scope.project_root is not None:
        registry = read_project_registry(scope.project_root)
        matches += find_matching_contexts(
            registry.contexts, candidate, scope.project_root, RegistryKind.PROJECT, scope.project_root
        )
    if scope.search_global:
        registry = read_global_registry(home)
        matches += find_matching_contexts(
            registry.contexts, candidate, scope.effective_root, RegistryKind.GLOBAL, ctx_dir(home)
        )
    return rank_target_matches(matches)


def find_keyword_contexts(scope: ReadScope, home: Path, keywords: Sequence[str]) -> list[MatchedContext]:
    matches: list[MatchedContext] = []
    if scope.search_project and scope.project_root is not None:
        registry = read_project_registry(scope.project_root)
        matches += find_keyword_matches(registry.contexts, keywords, RegistryKind.PROJECT, scope.project_root)
    if scope.search_global:
        registry = read_global_registry(home)
        matches += find_keyword_matches(registry.contexts, keywords, RegistryKind.GLOBAL, ctx_dir(home))
    return rank_keyword_matches(matches)


def load_contexts(matches: Sequence[MatchedContext], project_root: Path | None) -> list[LoadedContext]:
    """Attach document content to matches; an unreadable document loads as None."""
    loaded: list[LoadedContext] = []
    for match in matches:
        doc = Path(match.context_path)
        try:
            content = doc.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read %s: %s", doc, e)
            content = None
        shown = relpath(doc, project_root) if project_root is not None else str(doc)
        loaded.append(
            LoadedContext(
                path=shown,
                target=match.target,
                source=match.source,
                match_type=match.match_type,
                what=match.preview.what or None,
                keywords=list(match.preview.keywords),
                content=content,
            )
        )
    return loaded


def hook_candidate(stdin_text: str) -> str | None:
    """File path from a hook payload ``{"tool_input": {"file_path": ...}}``.

    Raises:
        InvalidOptionError: the payload is not JSON
    """
    if not stdin_text.strip():
        return None
    try:
        payload = json.loads(stdin_text)
    except json.JSONDecodeError as e:
        raise InvalidOptionError(message="Invalid JSON input") from e
    tool_input = payload.get("tool_input") if isinstance(payload, dict) else None
    file_path = tool_input.get("file_path") if isinstance(tool_input, dict) else None
    return file_path or None


def project_status(root: Path) -> dict[str, Any]:
    registry = read_project_registry(root)
    return {
        "project": root.name,
        "path": str(root),
        "settings": registry.settings.model_dump(mode="json") if registry.settings else None,
        "contexts": {k: v.model_dump(mode="json", exclude_none=True) for k, v in registry.contexts.items()},
        "last_synced": registry.meta.last_synced,
    }


def global_status(home: Path) -> dict[str, Any]:
    require_global(home)
    registry = read_global_registry(home)
    return {
        "scope": RegistryKind.GLOBAL.value,
        "settings": registry.settings.model_dump(mode="json") if registry.settings else None,
        "contexts": {k: v.model_dump(mode="json", exclude_none=True) for k, v in registry.contexts.items()},
        "index_project_count": len(registry.index or {}),
        "last_synced": registry.meta.last_synced,
    }


def all_status(home: Path) -> dict[str, Any]:
    require_global(home)
    registry = read_global_registry(home)
    return {
        "global_contexts": {k: v.model_dump(mode="json", exclude_none=True) for k, v in registry.contexts.items()},
        "projects": {k: v.model_dump(mode="json") for k, v in (registry.index or {}).items()},
        "last_synced": registry.meta.last_synced,
    }


def target_status(root: Path, target: str) -> dict[str, Any]:
    """Best project context for one file, for hook integrations."""
    registry = read_project_registry(root)
    ranked = rank_target_matches(
        find_matching_contexts(registry.contexts, target, root, RegistryKind.PROJECT, root)
    )
    if not ranked:
        return {"found": False, "target": target, "context_path": None}
    best = ranked[0]
    return {
        "found": True,
        "target": target,
        "context_path": best.key,
        "entry": registry.contexts[best.key].model_dump(mode="json", exclude_none=True),
    }


# ---------------------------------------------------------------------------
# session
# ---------------------------------------------------------------------------


def resolve_session_files(root: Path, session_file: str | None = None) -> list[Path]:
    """Session transcripts named on the command line, or listed in ``.ctx.current``.

    Raises:
        CtxDocsError: no file was given and ``.ctx.current`` lists none
    """
    if session_file:
        names = [session_file]
    else:
        current = root / CTX_CURRENT_FILE
        try:
            data = json.loads(current.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise CtxDocsError(message=f"Could not read {CTX_CURRENT_FILE} and no file specified") from e
        names = data.get("sessions") if isinstance(data, dict) else None
        if names is not None and not (isinstance(names, list) and all(isinstance(n, str) for n in names)):
            raise CtxDocsError(message=f"'sessions' in {CTX_CURRENT_FILE} must be a list of file paths")
        if not names:
            raise CtxDocsError(message=f"No sessions found in {CTX_CURRENT_FILE}")
    return [p if (p := Path(n).expanduser()).is_absolute() else root / p for n in names]


def _message_text(record: dict[str, Any]) -> str:
    message = record.get("message")
    content = message.get("content") if isinstance(message, dict) else None
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(
            str(part.get("text") or "") for part in content if isinstance(part, dict) and part.get("type") == "text"
        )
    if isinstance(record.get("content"), str):
        return record["content"]
    text = record.get("text")
    return text if isinstance(text, str) else ""


def read_session_messages(files: Sequence[Path], role: str | None = None) -> list[SessionMessage]:
    """User and assistant messages from JSONL transcripts.

    Metadata records, tool-only messages and lines that are not JSON are
    skipped. An unreadable file is logged and the next one is read.
    """
    messages: list[SessionMessage] = []
    for path in files:
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Error reading session file %s: %s", path, e)  # noqa: TRY400
            continue
        for line in lines:
            if not line.strip():
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(record, dict):
                continue
            kind = record.get("type")
            if kind not in ("user", "assistant") or (role and kind != role):
                continue
            text = _message_text(record)
            if text.strip():
                messages.append(SessionMessage(role=kind, content=text))
    return messages
