from __future__ import annotations

from enum import StrEnum, auto
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

CTX_DIR = ".ctx"
REGISTRY_FILE = "registry.yaml"
CONTEXTS_DIR = "contexts"
REGISTRY_VERSION = "2.0.0"
DEFAULT_DOCUMENT_VERSION = "1.0.0"

LOCAL_SUFFIX = ".ctx.md"
FOLDER_CONTEXT_NAME = "ctx.md"

LEGACY_CONFIG_FILE = "ctx.config.yaml"
LEGACY_CTX_DIR = "ctx"
CTX_CURRENT_FILE = ".ctx.current"
GITIGNORE_MARKER = "# generated by ctx"
GITIGNORE_ENTRIES = [CTX_CURRENT_FILE, ".worktrees"]

# Entries of a legacy ctx/ directory that are not context documents.
LEGACY_SKIP = {"templates", "README.md", "issues", "history.jsonl"}

GLOB_CHARS = ("*", "?", "[")

DEFAULT_IGNORE = [
    "node_modules/**",
    "dist/**",
    "build/**",
    ".git/**",
]

# Words that say nothing about a document when generating keywords from its path.
GENERIC_PATH_WORDS = {".", "..", "src", "lib"}


class RegistryKind(StrEnum):
    """Where a registry lives: one per working tree, or one per user."""

    PROJECT = auto()
    GLOBAL = auto()


class ContextScope(StrEnum):
    """Naming-convention tag of a context document.

    `local` documents are companion files (`<name>.ctx.md`, `ctx.md`); `project`
    documents are organized under a contexts subtree.
    """

    LOCAL = auto()
    PROJECT = auto()


class Category(StrEnum):
    BOUND = auto()
    STANDALONE = auto()


class MatchType(StrEnum):
    EXACT = auto()
    GLOB = auto()


class IssueType(StrEnum):
    NEW = auto()
    DELETED = auto()
    STALE = auto()
    ERROR = auto()


class IssueReason(StrEnum):
    MODIFIED = auto()
    TARGET_CHANGED = auto()
    TARGET_MISSING = auto()
    UNREADABLE = auto()


class CheckStatus(StrEnum):
    FRESH = auto()
    STALE = auto()


class ContextPathConfig(BaseModel):
    """A discovery pattern (relative to the registry's base directory) and what it is for."""

    path: str
    purpose: str


DEFAULT_PROJECT_CONTEXT_PATHS = [
    ContextPathConfig(path="**/*.ctx.md", purpose="Bound contexts next to code"),
    ContextPathConfig(path="**/ctx.md", purpose="Folder contexts"),
    ContextPathConfig(path=".ctx/contexts/**/*.md", purpose="Centralized project contexts"),
]

DEFAULT_GLOBAL_CONTEXT_PATHS = [
    ContextPathConfig(path="contexts/**/*.md", purpose="General context documents"),
]

CONTEXT_TEMPLATE = """---
{target_line}what: {what}
keywords:
  - {keyword}
---

# {title}

## Overview

TODO: Describe what this context covers.

## Details

TODO: Conventions, gotchas, decisions worth knowing.
"""


class ContextPreview(BaseModel):
    """Minimal summary extracted from a document's frontmatter."""

    model_config = ConfigDict(extra="ignore")

    what: str = ""
    keywords: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_when(cls, data: Any) -> Any:  # noqa: ANN401
        # Registries written before `keywords` existed stored the same list under `when`.
        if isinstance(data, dict) and "keywords" not in data and "when" in data:
            data = {**data, "keywords": data.get("when") or []}
        return data

    @property
    def is_valid(self) -> bool:
        """Both `what` and `keywords` are non-empty."""
        return bool(self.what.strip()) and bool(self.keywords)


class ContextEntry(BaseModel):
    """Registry record for one context document.

    Attributes:
        scope: Naming-convention tag (local companion file or project subtree).
        source: Path of the document relative to the registry's base directory.
        target: File, glob or folder (trailing `/`) the document describes.
        checksum: SHA-256 of the document content at last sync.
        target_checksum: SHA-256 of the exact target file at last sync.
        last_modified: ISO-8601 timestamp (informational only).
        preview: `what` and `keywords` from the frontmatter.
    """

    model_config = ConfigDict(extra="ignore")

    scope: ContextScope | None = None
    source: str
    target: str | None = None
    checksum: str
    target_checksum: str | None = None
    last_modified: str
    preview: ContextPreview = Field(default_factory=ContextPreview)

    @property
    def category(self) -> Category:
        return Category.BOUND if self.target else Category.STANDALONE


class DocumentMeta(BaseModel):
    version: str = DEFAULT_DOCUMENT_VERSION
    target: str | None = None


class DocumentFrontmatter(BaseModel):
    what: str = ""
    keywords: list[str] = Field(default_factory=list)
    future: Any = None


class ContextDocument(BaseModel):
    """A parsed context document, whichever encoding it was read from."""

    meta: DocumentMeta = Field(default_factory=DocumentMeta)
    frontmatter: DocumentFrontmatter = Field(default_factory=DocumentFrontmatter)
    body: str = ""

    @property
    def preview(self) -> ContextPreview:
        return ContextPreview(what=self.frontmatter.what, keywords=list(self.frontmatter.keywords))


class ValidationResult(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)


class RegistryMeta(BaseModel):
    version: str = REGISTRY_VERSION
    last_synced: str = ""


class RegistrySettings(BaseModel):
    context_paths: list[ContextPathConfig] = Field(default_factory=list)


class IndexedContext(BaseModel):
    path: str
    what: str = ""
    keywords: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_when(cls, data: Any) -> Any:  # noqa: ANN401
        if isinstance(data, dict) and "keywords" not in data and "when" in data:
            data = {**data, "keywords": data.get("when") or []}
        return data


class ProjectIndexEntry(BaseModel):
    """Snapshot of one project's registry kept in the global index."""

    path: str
    last_synced: str
    context_count: int = 0
    contexts: list[IndexedContext] = Field(default_factory=list)


class Registry(BaseModel):
    """On-disk registry, shared by the project and global scopes.

    `settings` and `index` stay `None` until the first write materialises them;
    `index` only ever exists on the global registry.
    """

    model_config = ConfigDict(extra="ignore")

    meta: RegistryMeta = Field(default_factory=RegistryMeta)
    settings: RegistrySettings | None = None
    contexts: dict[str, ContextEntry] = Field(default_factory=dict)
    index: dict[str, ProjectIndexEntry] | None = None


class MatchedContext(BaseModel):
    """A registry entry selected for a candidate file or a keyword query."""

    context_path: str
    key: str
    target: str | None = None
    source: RegistryKind
    match_type: MatchType
    priority: int = 0
    score: int = 0
    preview: ContextPreview = Field(default_factory=ContextPreview)


class CheckIssue(BaseModel):
    type: IssueType
    category: Category
    context_path: str
    target_path: str | None = None
    reason: IssueReason | None = None
    message: str
    last_modified: str | None = None


class CheckSummary(BaseModel):
    total: int = 0
    fresh: int = 0
    stale: int = 0
    new: int = 0
    deleted: int = 0
    errors: int = 0


class CheckResult(BaseModel):
    """Read-only freshness report for one registry."""

    scope: RegistryKind = RegistryKind.PROJECT
    status: CheckStatus = CheckStatus.FRESH
    summary: CheckSummary = Field(default_factory=CheckSummary)
    issues: list[CheckIssue] = Field(default_factory=list)


class SyncReport(BaseModel):
    """Outcome of one sync pass over a registry."""

    scope: RegistryKind = RegistryKind.PROJECT
    synced: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    orphaned: list[str] = Field(default_factory=list)


class IndexRebuildReport(BaseModel):
    """Outcome of rebuilding the global project index."""

    rebuilt: dict[str, int] = Field(default_factory=dict)
    skipped: dict[str, str] = Field(default_factory=dict)


class ListEntry(BaseModel):
    path: str
    what: str = ""
    keywords: list[str] = Field(default_factory=list)
    target: str | None = None
    registry: RegistryKind
    type: Category


class LoadedContext(BaseModel):
    """A matched context with its document content, as printed by `ctx load`."""

    path: str
    target: str | None = None
    source: RegistryKind
    match_type: MatchType
    what: str | None = None
    keywords: list[str] = Field(default_factory=list)
    content: str | None = None


class ReadScope(BaseModel):
    """Which registries a read command looks at, after the global fallback."""

    project_root: Path | None = None
    effective_root: Path
    search_project: bool = True
    search_global: bool = False
    warning: str | None = None


class BatchReport(BaseModel):
    """Outcome of add, remove and adopt over a set of paths or patterns."""

    scope: RegistryKind = RegistryKind.PROJECT
    done: list[str] = Field(default_factory=list)
    skipped: dict[str, str] = Field(default_factory=dict)


class MigrationReport(BaseModel):
    copied: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)
    sync: SyncReport | None = None


class SessionMessage(BaseModel):
    role: str
    content: str
