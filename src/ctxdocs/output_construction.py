from __future__ import annotations

import io
import json
from typing import TYPE_CHECKING, Any

from ctxdocs.config import CheckStatus, IssueReason, IssueType, MatchType, RegistryKind

if TYPE_CHECKING:
    from collections.abc import Sequence

    from pydantic import BaseModel

    from ctxdocs.config import (
        BatchReport,
        CheckIssue,
        CheckResult,
        IndexRebuildReport,
        ListEntry,
        LoadedContext,
        SessionMessage,
        SyncReport,
    )

ISSUE_SECTIONS = (
    ("Errors", lambda i: i.type == IssueType.ERROR),
    ("Stale Contexts (target changed)", lambda i: i.type == IssueType.STALE and i.reason == IssueReason.TARGET_CHANGED),
    ("Modified Contexts (not synced)", lambda i: i.type == IssueType.STALE and i.reason != IssueReason.TARGET_CHANGED),
    ("New Contexts (not in registry)", lambda i: i.type == IssueType.NEW),
    ("Deleted Contexts (in registry only)", lambda i: i.type == IssueType.DELETED),
)

ISSUE_ICONS = {
    IssueType.ERROR: "x",
    IssueType.STALE: "!",
    IssueType.NEW: "+",
    IssueType.DELETED: "-",
}


def to_json(value: BaseModel | Sequence[BaseModel] | dict[str, Any]) -> str:
    """Serialize a model, a list of models or a plain mapping as indented JSON."""
    if isinstance(value, dict):
        data: Any = value
    elif isinstance(value, (list, tuple)):
        data = [v.model_dump(mode="json") for v in value]
    else:
        data = value.model_dump(mode="json")
    return json.dumps(data, indent=2, ensure_ascii=False)


def _issue_lines(issue: CheckIssue) -> list[str]:
    lines = [f"  {ISSUE_ICONS[issue.type]} {issue.context_path}"]
    if issue.target_path:
        lines.append(f"    Target: {issue.target_path}")
    lines.append(f"    {issue.message}")
    return lines


def render_check(results: Sequence[CheckResult]) -> str:
    """Human-readable report of one or more check results.

    Issues are grouped by kind: errors first, then stale and modified
    documents, then new and deleted ones.
    """
    out = io.StringIO()
    issues = [i for r in results for i in r.issues]
    totals = [(r.scope, r.summary.total, r.status) for r in results]

    if not issues:
        out.write("All contexts are fresh\n\n")
        for scope, total, _ in totals:
            out.write(f"  {scope.capitalize()}: {total} contexts\n")
        return out.getvalue()

    word = "issue" if len(issues) == 1 else "issues"
    marker = "x" if any(i.type == IssueType.ERROR for i in issues) else "!"
    out.write(f"{marker} {len(issues)} {word} found\n\n")
    for scope, total, status in totals:
        label = "stale" if status == CheckStatus.STALE else "fresh"
        out.write(f"  {scope.capitalize()}: {total} contexts ({label})\n")
    out.write("\n")

    for title, predicate in ISSUE_SECTIONS:
        section = [i for i in issues if predicate(i)]
        if not section:
            continue
        out.write(f"{title}:\n")
        for issue in section:
            out.write("\n".join(_issue_lines(issue)) + "\n")
        out.write("\n")

    out.write("Run: ctx check --fix  (to update registry)\n")
    return out.getvalue()


def render_sync(report: SyncReport) -> str:
    out = io.StringIO()
    out.write(f"Synced {len(report.synced)} {report.scope} context(s)\n")
    for label, items in (("skipped", report.skipped), ("errors", report.errors), ("orphaned", report.orphaned)):
        for rel in items:
            out.write(f"  {label}: {rel}\n")
    return out.getvalue()


def render_index_rebuild(report: IndexRebuildReport) -> str:
    out = io.StringIO()
    out.write(f"Rebuilt global index: {len(report.rebuilt)} project(s)\n")
    for name, count in report.rebuilt.items():
        out.write(f"  {name}: {count} contexts\n")
    for name, reason in report.skipped.items():
        out.write(f"  skipped {name}: {reason}\n")
    return out.getvalue()


def render_batch(action: str, report: BatchReport) -> str:
    out = io.StringIO()
    for rel in report.done:
        out.write(f"{action}: {rel}\n")
    for rel, reason in report.skipped.items():
        out.write(f"skip: {rel} ({reason})\n")
    out.write(f"{action} {len(report.done)} context(s) in the {report.scope} registry\n")
    return out.getvalue()


def _list_entry_lines(entry: ListEntry) -> list[str]:
    lines = [f"  {entry.path} [{entry.type}]"]
    if entry.what:
        lines.append(f"    {entry.what}")
    if entry.target:
        lines.append(f"    -> {entry.target}")
    return lines


def render_list(entries: Sequence[ListEntry]) -> str:
    out = io.StringIO()
    out.write(f"Contexts ({len(entries)})\n\n")
    if not entries:
        out.write("No contexts found.\n")
        return out.getvalue()
    for kind in (RegistryKind.PROJECT, RegistryKind.GLOBAL):
        group = [e for e in entries if e.registry == kind]
        if not group:
            continue
        out.write(f"{kind.capitalize()} ({len(group)})\n")
        for entry in group:
            out.write("\n".join(_list_entry_lines(entry)) + "\n")
        out.write("\n")
    return out.getvalue()


def render_loaded(contexts: Sequence[LoadedContext]) -> str:
    """Markdown blocks, one per loaded context, as injected into an assistant's prompt.

    Contexts whose document could not be read are left out.
    """
    out = io.StringIO()
    for ctx in contexts:
        if not ctx.content:
            continue
        label = "exact" if ctx.match_type == MatchType.EXACT else "pattern"
        where = f"{ctx.source.capitalize()}, {label}"
        if ctx.target:
            where += f": `{ctx.target}`"
        out.write("\n---\n")
        out.write(f"**Context loaded:** `{ctx.path}` ({where})\n")
        out.write(f"> {ctx.what}\n" if ctx.what else "\n")
        out.write(f"\n{ctx.content}\n---\n")
    return out.getvalue()


def render_status(status: dict[str, Any]) -> str:
    out = io.StringIO()
    if "found" in status:
        if status["found"]:
            out.write(f"{status['target']} -> {status['context_path']}\n")
        else:
            out.write(f"No context for {status['target']}\n")
        return out.getvalue()
    if "projects" in status:
        out.write(f"Global contexts: {len(status['global_contexts'])}\n")
        out.write(f"Indexed projects: {len(status['projects'])}\n")
        for name, entry in status["projects"].items():
            out.write(f"  {name}: {entry['context_count']} contexts ({entry['path']})\n")
        return out.getvalue()
    title = status.get("project") or status.get("scope", "")
    out.write(f"{title}: {len(status['contexts'])} contexts\n")
    if status.get("path"):
        out.write(f"  path: {status['path']}\n")
    if "index_project_count" in status:
        out.write(f"  indexed projects: {status['index_project_count']}\n")
    out.write(f"  last synced: {status.get('last_synced') or 'never'}\n")
    for key, entry in status["contexts"].items():
        target = entry.get("target")
        out.write(f"  {key}" + (f" -> {target}" if target else "") + "\n")
    return out.getvalue()


def render_session(messages: Sequence[SessionMessage], fmt: str = "jsonl") -> str:
    """Session messages as JSON lines, plain text or markdown sections."""
    out = io.StringIO()
    for msg in messages:
        match fmt:
            case "text":
                out.write(f"{msg.content}\n")
            case "markdown":
                out.write(f"### {msg.role.capitalize()}\n\n{msg.content}\n\n")
            case _:
                out.write(json.dumps({"role": msg.role, "content": msg.content}, ensure_ascii=False) + "\n")
    return out.getvalue()
