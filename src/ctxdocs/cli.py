# /// script
# requires-python = ">=3.13"
# dependencies = [
#     "pydantic",
#     "python-dotenv",
#     "pyyaml",
#     "structlog",
# ]
# ///
"""
ctx: keep a project's context documents registered, fresh and findable.

Overview
--------
Context documents are markdown files with a small YAML frontmatter (`what`,
`keywords`, optionally `target`) that describe a piece of a code base for an
AI coding assistant. `ctx` keeps two registries of them:

1) **Project** (`<root>/.ctx/registry.yaml`): companion files next to code
   (`foo.ctx.md`, `ctx.md`) and documents under `.ctx/contexts/`.

2) **Global** (`~/.ctx/registry.yaml`): documents under `~/.ctx/contexts/`
   plus an index of every project registry.

`sync` records checksums, `check` reports drift without writing, and `load`
finds the documents relevant to a file (`--target`) or a topic
(`--keywords`). Results are JSON unless `--pretty` is given.

Usage
-----
Run `ctx --help` for the full command list. Common examples:
    - Set up the global registry, then a project:
        ctx init && ctx init .

    - Register a document and refresh checksums:
        ctx create src/api.ctx.md --target src/api.py && ctx sync

    - Fail a CI job when documents drifted:
        ctx check --strict

    - Contexts for a file, as markdown:
        ctx load --target src/api.py --pretty
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from ctxdocs import __version__
from ctxdocs.config import CheckStatus, IssueType, RegistryKind
from ctxdocs.exceptions import CtxDocsError, InvalidOptionError
from ctxdocs.freshness import check_global, check_project, sync_global, sync_project
from ctxdocs.logging import logger, setup_logging
from ctxdocs.operations import (
    add_context_pattern,
    add_contexts,
    adopt_documents,
    all_status,
    create_context,
    find_keyword_contexts,
    find_target_contexts,
    global_status,
    hook_candidate,
    init_global,
    init_project,
    is_context_candidate,
    list_contexts,
    load_contexts,
    migrate_legacy,
    parse_context_paths_option,
    project_status,
    read_session_messages,
    refresh_gitignore,
    remove_contexts,
    resolve_read_scope,
    resolve_session_files,
    save_context,
    target_status,
)
from ctxdocs.output_construction import (
    render_batch,
    render_check,
    render_index_rebuild,
    render_list,
    render_loaded,
    render_session,
    render_status,
    render_sync,
    to_json,
)
from ctxdocs.registry import rebuild_global_index, require_project_root
from ctxdocs.settings import Settings

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from ctxdocs.config import CheckResult, SyncReport

SESSION_FORMATS = ("jsonl", "text", "markdown")


def _split_keywords(values: Sequence[str] | None) -> list[str]:
    return [k.strip() for v in values or () for k in v.split(",") if k.strip()]


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="ctx",
        description="Manage context documents for AI coding assistants.",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("--root", type=Path, default=None, help="Directory to start the project search from.")
    p.add_argument("--home", type=Path, default=None, help="Directory holding the global .ctx/ (default: ~).")
    p.add_argument("--log-file", type=str, default="", help="Log file path.")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")

    scope = argparse.ArgumentParser(add_help=False)
    scope.add_argument(
        "--global",
        dest="global_scope",
        action="store_true",
        help="Operate on the global registry.",
    )
    pretty = argparse.ArgumentParser(add_help=False)
    pretty.add_argument("--pretty", action="store_true", help="Human-readable output instead of JSON.")
    both = argparse.ArgumentParser(add_help=False)
    both.add_argument("--all", action="store_true", help="Operate on project and global registries.")

    sub = p.add_subparsers(dest="command", required=True, metavar="command")

    s = sub.add_parser("init", help="Initialize the global registry, or the project with '.'.")
    s.add_argument("init_target", nargs="?", default="", help="'.' to initialize the current project.")
    s.add_argument("--context-paths", default="", help='Discovery patterns: "pattern:purpose,...".')
    s.add_argument("--force", action="store_true", help="Reinitialize settings, keeping registered contexts.")

    s = sub.add_parser("create", parents=[scope], help="Create a context document from the template.")
    s.add_argument("path", nargs="?", default="", help="Document path (default: companion of --target).")
    s.add_argument("--target", default="", help="File, glob or folder the document describes.")
    s.add_argument("--force", action="store_true", help="Overwrite an existing file.")

    s = sub.add_parser("sync", parents=[scope, pretty], help="Record the current state of every document.")
    s.add_argument("--rebuild-index", action="store_true", help="Rebuild the global project index.")

    for name in ("check", "validate"):
        s = sub.add_parser(name, parents=[scope, both, pretty], help="Report drift between registry and files.")
        s.add_argument("--path", default="", help="Check one document only.")
        s.add_argument("--fix", action="store_true", help="Sync when drift is found.")
        s.add_argument("--strict", action="store_true", help="Exit 1 when anything is stale.")

    s = sub.add_parser("add-pattern", parents=[scope], help="Add a discovery pattern to context_paths.")
    s.add_argument("pattern", help="Glob relative to the registry base, e.g. 'docs/**/*.md'.")
    s.add_argument("purpose", help="What the matched documents are for.")

    sub.add_parser("refresh", help="Refresh the ctx section of .gitignore.")

    s = sub.add_parser("status", parents=[scope, both, pretty], help="Show registry contents.")
    s.add_argument("--target", default="", help="Show the best project context for one file.")

    s = sub.add_parser("list", parents=[scope, both, pretty], help="List registered contexts.")
    s.add_argument("--target", default="", help="Only contexts bound to this file.")
    s.add_argument("--paths", action="store_true", help="Print document paths only.")

    for name, text in (
        ("add", "Register existing documents."),
        ("remove", "Unregister documents (files are kept)."),
        ("adopt", "Add frontmatter to plain markdown files and register them."),
    ):
        s = sub.add_parser(name, parents=[scope, pretty], help=text)
        s.add_argument("patterns", nargs="+", help="Paths or glob patterns.")

    s = sub.add_parser("save", parents=[scope], help="Write a document (content from --content or stdin).")
    s.add_argument("path", help="Document path.")
    s.add_argument("--content", default="", help="Document content; read from stdin when omitted.")
    s.add_argument("--what", default="", help="Preview summary.")
    s.add_argument("--keywords", nargs="+", default=None, help="Preview keywords (space or comma separated).")
    s.add_argument("--force", action="store_true", help="Overwrite an existing file.")

    s = sub.add_parser("load", parents=[scope, both, pretty], help="Load contexts for a file or keywords.")
    s.add_argument("-k", "--keywords", nargs="+", default=None, help="Keywords to search for.")
    s.add_argument("-t", "--target", default="", help="File to find contexts for.")
    s.add_argument("--paths", action="store_true", help="Print document paths only.")

    s = sub.add_parser("migrate", parents=[pretty], help="Move a legacy ctx/ layout to .ctx/.")
    s.add_argument("--remove-legacy-config", action="store_true", help="Delete ctx.config.yaml.")
    s.add_argument("--remove-legacy-dir", action="store_true", help="Delete the legacy ctx/ directory.")

    s = sub.add_parser("session", help="Extract messages from session transcripts.")
    s.add_argument("session_file", nargs="?", default="", help="Transcript file (default: from .ctx.current).")
    s.add_argument("--role", choices=["user", "assistant"], default="", help="Only this role.")
    s.add_argument("--format", choices=SESSION_FORMATS, default="jsonl", help="Output format.")
    return p


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    args = build_parser().parse_args(argv)
    data = {k: v for k, v in vars(args).items() if v is not None}
    if "keywords" in data:
        data["keywords"] = _split_keywords(data["keywords"])
    return Settings.model_validate(data)


def read_stdin() -> str:
    """Piped stdin, or an empty string when stdin is a terminal or unavailable."""
    try:
        if sys.stdin is None or sys.stdin.isatty():
            return ""
        return sys.stdin.read()
    except (OSError, ValueError):
        return ""


def _print(text: str) -> None:
    sys.stdout.write(text if text.endswith("\n") else text + "\n")


def _project_root(settings: Settings) -> Path:
    return require_project_root(settings.root, settings.home)


def _write_root(settings: Settings) -> Path | None:
    return None if settings.global_scope else _project_root(settings)


def cmd_init(settings: Settings) -> int:
    context_paths = parse_context_paths_option(settings.context_paths) if settings.context_paths else None
    if settings.init_target == ".":
        root = settings.root.resolve()
        created = init_project(root, settings.home, context_paths, force=settings.force)
        if created:
            refresh_gitignore(root)
    elif settings.init_target:
        raise InvalidOptionError(message=f"Unknown init target: {settings.init_target!r} (use '.' or nothing)")
    else:
        created = init_global(settings.home, context_paths, force=settings.force)
    for rel in created:
        _print(f"created: {rel}")
    return 0


def cmd_create(settings: Settings) -> int:
    entry = create_context(
        settings.path,
        root=_write_root(settings),
        home=settings.home,
        global_scope=settings.global_scope,
        target=settings.target or None,
        force=settings.force,
    )
    _print(f"Created {entry.source}")
    return 0


def _emit_sync(settings: Settings, report: SyncReport) -> None:
    _print(render_sync(report) if settings.pretty else to_json(report))


def cmd_sync(settings: Settings) -> int:
    if settings.rebuild_index:
        report = rebuild_global_index(settings.home)
        _print(render_index_rebuild(report) if settings.pretty else to_json(report))
        return 0
    if settings.global_scope:
        _emit_sync(settings, sync_global(settings.home))
    else:
        _emit_sync(settings, sync_project(_project_root(settings), settings.home))
    return 0


def _run_checks(settings: Settings, path_filter: str | None) -> list[CheckResult]:
    results: list[CheckResult] = []
    if settings.all or not settings.global_scope:
        results.append(check_project(_project_root(settings), path_filter))
    if settings.all or settings.global_scope:
        results.append(check_global(settings.home, path_filter))
    return results


def _needs_sync(result: CheckResult) -> bool:
    return result.status == CheckStatus.STALE or any(i.type == IssueType.NEW for i in result.issues)


def cmd_check(settings: Settings) -> int:
    path_filter = settings.path or None
    results = _run_checks(settings, path_filter)

    if settings.fix and any(_needs_sync(r) for r in results):
        for result in results:
            if not _needs_sync(result):
                continue
            if result.scope == RegistryKind.GLOBAL:
                sync_global(settings.home)
            else:
                sync_project(_project_root(settings), settings.home)
        logger.info("Registry updated")
        results = _run_checks(settings, path_filter)

    if settings.pretty:
        _print(render_check(results))
    elif len(results) == 1:
        _print(to_json(results[0]))
    else:
        _print(to_json({r.scope.value: r.model_dump(mode="json") for r in results}))

    stale = any(r.status == CheckStatus.STALE for r in results)
    return 1 if settings.strict and stale else 0


def cmd_add_pattern(settings: Settings) -> int:
    added = add_context_pattern(
        settings.pattern,
        settings.purpose,
        root=_write_root(settings),
        home=settings.home,
        global_scope=settings.global_scope,
    )
    if not added:
        _print(f"Pattern already exists: {settings.pattern}")
        return 0
    sync_hint = "ctx sync --global" if settings.global_scope else "ctx sync"
    _print(f"Added pattern: {settings.pattern} ({settings.purpose})\nRun: {sync_hint}  (to scan with the new pattern)")
    return 0


def cmd_refresh(settings: Settings) -> int:
    written = refresh_gitignore(_project_root(settings))
    _print(f"Updated .gitignore ({written} entries)" if written else ".gitignore already up to date")
    return 0


def cmd_status(settings: Settings) -> int:
    if settings.target:
        status = target_status(_project_root(settings), settings.target)
    elif settings.all:
        status = all_status(settings.home)
    elif settings.global_scope:
        status = global_status(settings.home)
    else:
        status = project_status(_project_root(settings))
    _print(render_status(status) if settings.pretty else to_json(status))
    return 0


def cmd_list(settings: Settings) -> int:
    scope = resolve_read_scope(
        settings.root, settings.home, global_scope=settings.global_scope, all_scopes=settings.all
    )
    if scope.warning:
        logger.warning(scope.warning)
    entries = list_contexts(scope, settings.home, target=settings.target or None)
    if settings.paths:
        for entry in entries:
            _print(entry.path)
    elif settings.pretty:
        _print(render_list(entries))
    else:
        _print(to_json(entries))
    return 0


def _batch(action: str, fn: Callable[..., object], settings: Settings) -> int:
    report = fn(
        settings.patterns,
        root=_write_root(settings),
        home=settings.home,
        global_scope=settings.global_scope,
    )
    _print(render_batch(action, report) if settings.pretty else to_json(report))
    return 0


def cmd_add(settings: Settings) -> int:
    return _batch("added", add_contexts, settings)


def cmd_remove(settings: Settings) -> int:
    return _batch("removed", remove_contexts, settings)


def cmd_adopt(settings: Settings) -> int:
    return _batch("adopted", adopt_documents, settings)


def cmd_save(settings: Settings) -> int:
    content = settings.content or read_stdin()
    entry = save_context(
        settings.path,
        content,
        root=_write_root(settings),
        home=settings.home,
        what=settings.what,
        keywords=settings.keywords,
        global_scope=settings.global_scope,
        force=settings.force,
    )
    _print(f"Saved and registered {entry.source}" if entry else f"Saved {settings.path} (not registered)")
    return 0


def cmd_load(settings: Settings) -> int:
    scope = resolve_read_scope(
        settings.root, settings.home, global_scope=settings.global_scope, all_scopes=settings.all
    )
    if scope.warning:
        logger.warning(scope.warning)

    if settings.keywords:
        matches = find_keyword_contexts(scope, settings.home, settings.keywords)
    else:
        candidate = settings.target or hook_candidate(read_stdin())
        if not candidate:
            raise InvalidOptionError(message="Specify --keywords or --target (or pipe hook JSON on stdin)")
        if not is_context_candidate(candidate):
            return 0
        matches = find_target_contexts(scope, settings.home, candidate)

    if settings.paths:
        for match in matches:
            _print(match.context_path)
        return 0
    loaded = load_contexts(matches, scope.project_root)
    if settings.pretty:
        if loaded:
            _print(render_loaded(loaded))
        elif settings.keywords:
            _print("No matching contexts found.")
    else:
        _print(to_json(loaded))
    return 0


def cmd_migrate(settings: Settings) -> int:
    report = migrate_legacy(
        settings.root.resolve(),
        settings.home,
        remove_legacy_config=settings.remove_legacy_config,
        remove_legacy_dir=settings.remove_legacy_dir,
    )
    if settings.pretty:
        _print(f"Migrated {len(report.copied)} document(s)")
        for rel in report.removed:
            _print(f"  removed: {rel}")
        if report.sync is not None:
            _print(render_sync(report.sync))
    else:
        _print(to_json(report))
    return 0


def cmd_session(settings: Settings) -> int:
    files = resolve_session_files(settings.root.resolve(), settings.session_file or None)
    messages = read_session_messages(files, role=settings.role or None)
    text = render_session(messages, settings.format)
    if text:
        sys.stdout.write(text)
    return 0


COMMANDS: dict[str, Callable[[Settings], int]] = {
    "init": cmd_init,
    "create": cmd_create,
    "sync": cmd_sync,
    "check": cmd_check,
    "validate": cmd_check,
    "add-pattern": cmd_add_pattern,
    "refresh": cmd_refresh,
    "status": cmd_status,
    "list": cmd_list,
    "add": cmd_add,
    "remove": cmd_remove,
    "adopt": cmd_adopt,
    "save": cmd_save,
    "load": cmd_load,
    "migrate": cmd_migrate,
    "session": cmd_session,
}


def main(argv: Sequence[str] | None = None) -> int:
    settings = parse_args(argv)
    if settings.log_file or settings.verbose:
        setup_logging(settings.log_file or None, verbose=settings.verbose, force=True)

    try:
        return COMMANDS[settings.command](settings)
    except CtxDocsError as e:
        sys.stderr.write(f"Error: {e}\n")
        return 1
    except Exception:
        logger.exception("Unexpected failure running %s", settings.command)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
