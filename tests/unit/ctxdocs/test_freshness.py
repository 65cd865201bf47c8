from __future__ import annotations

from pathlib import Path

import pytest
from pytest_mock import MockerFixture

from ctxdocs import freshness
from ctxdocs.config import CheckStatus, ContextScope, IssueReason, IssueType, Registry, RegistryKind
from ctxdocs.exceptions import ContextValidationError, NotInitializedError
from ctxdocs.file_manipulation import sha256_bytes, sha256_text
from ctxdocs.freshness import (
    TargetProbe,
    build_entry,
    check_global,
    check_project,
    sync_global,
    sync_project,
)
from ctxdocs.registry import (
    read_global_registry,
    read_project_registry,
    registry_path,
    write_global_registry,
    write_project_registry,
)

COMPANION = "---\nwhat: Service A\nkeywords:\n  - alpha\n---\n\n# A\n"


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "proj"
    write_project_registry(root, Registry())
    _write(root / "src" / "a.ts", "export const a = 1;\n")
    _write(root / "src" / "a.ctx.md", COMPANION)
    return root


@pytest.mark.unit
def test_build_entry_infers_companion_target(project: Path) -> None:
    entry = build_entry(project, "src/a.ctx.md", RegistryKind.PROJECT, target_root=project)

    assert entry.scope == ContextScope.LOCAL
    assert entry.target == "src/a.ts"
    assert entry.checksum == sha256_text(COMPANION)
    assert entry.target_checksum == sha256_text("export const a = 1;\n")
    assert entry.preview.keywords == ["alpha"]


@pytest.mark.unit
def test_build_entry_rejects_invalid_companion(project: Path) -> None:
    _write(project / "src" / "b.ctx.md", "---\nwhat: only what\n---\n")

    with pytest.raises(ContextValidationError):
        build_entry(project, "src/b.ctx.md", RegistryKind.PROJECT, target_root=project)


@pytest.mark.unit
def test_build_entry_for_global_has_no_scope_or_target_checksum(tmp_path: Path) -> None:
    base = tmp_path / ".ctx"
    _write(base / "contexts" / "rules.md", "---\nwhat: Rules\nkeywords: [style]\ntarget: '**/*.py'\n---\n")

    entry = build_entry(base, "contexts/rules.md", RegistryKind.GLOBAL)

    assert entry.scope is None
    assert entry.target == "**/*.py"
    assert entry.target_checksum is None


@pytest.mark.unit
def test_sync_then_check_is_fresh(project: Path) -> None:
    report = sync_project(project)

    result = check_project(project)

    assert report.synced == ["src/a.ctx.md"]
    assert result.status == CheckStatus.FRESH
    assert result.summary.total == 1
    assert result.summary.fresh == 1
    assert result.issues == []


@pytest.mark.unit
def test_sync_is_idempotent(project: Path) -> None:
    sync_project(project)
    first = read_project_registry(project).contexts
    sync_project(project)
    second = read_project_registry(project).contexts

    assert {k: v.checksum for k, v in first.items()} == {k: v.checksum for k, v in second.items()}
    assert {k: v.target_checksum for k, v in first.items()} == {k: v.target_checksum for k, v in second.items()}


@pytest.mark.unit
def test_modified_document_is_stale(project: Path) -> None:
    sync_project(project)
    _write(project / "src" / "a.ctx.md", COMPANION + "\nMore.\n")

    result = check_project(project)

    assert result.status == CheckStatus.STALE
    assert result.summary.stale == 1
    assert result.issues[0].type == IssueType.STALE
    assert result.issues[0].reason == IssueReason.MODIFIED


@pytest.mark.unit
def test_changed_target_is_stale(project: Path) -> None:
    sync_project(project)
    with (project / "src" / "a.ts").open("a", encoding="utf-8") as fh:
        fh.write("export const b = 2;\n")

    result = check_project(project)

    assert result.status == CheckStatus.STALE
    issue = result.issues[0]
    assert issue.reason == IssueReason.TARGET_CHANGED
    assert issue.target_path == "src/a.ts"


@pytest.mark.unit
def test_deleted_document(project: Path) -> None:
    sync_project(project)
    (project / "src" / "a.ctx.md").unlink()

    result = check_project(project)

    assert result.status == CheckStatus.STALE
    assert result.summary.deleted == 1
    assert result.issues[0].type == IssueType.DELETED


@pytest.mark.unit
def test_missing_target_is_an_error(project: Path) -> None:
    _write(project / "docs" / "gone.ctx.md", "---\nwhat: Gone\nkeywords: [g]\ntarget: src/gone.ts\n---\n")
    sync_project(project)

    result = check_project(project)

    errors = [i for i in result.issues if i.type == IssueType.ERROR]
    assert result.status == CheckStatus.STALE
    assert result.summary.errors == 1
    assert errors[0].reason == IssueReason.TARGET_MISSING
    assert errors[0].context_path == "docs/gone.ctx.md"


@pytest.mark.unit
def test_new_document_does_not_make_registry_stale(project: Path) -> None:
    sync_project(project)
    _write(project / "lib" / "ctx.md", "---\nwhat: Lib\nkeywords: [lib]\n---\n")

    result = check_project(project)

    assert result.status == CheckStatus.FRESH
    assert result.summary.new == 1
    assert result.issues[0].type == IssueType.NEW
    assert result.issues[0].context_path == "lib/ctx.md"


@pytest.mark.unit
def test_check_never_writes(project: Path) -> None:
    sync_project(project)
    _write(project / "src" / "a.ctx.md", COMPANION + "changed\n")
    before = registry_path(project).read_bytes()

    check_project(project)

    assert registry_path(project).read_bytes() == before


@pytest.mark.unit
def test_sync_skips_invalid_documents(project: Path) -> None:
    _write(project / "src" / "bad.ctx.md", "---\nwhat: no keywords\n---\n")
    _write(project / "src" / "broken.ctx.md", "# no frontmatter at all\n")

    report = sync_project(project)

    assert "src/bad.ctx.md" in report.skipped
    assert "src/broken.ctx.md" in report.errors
    assert set(read_project_registry(project).contexts) == {"src/a.ctx.md"}


@pytest.mark.unit
def test_sync_keeps_orphaned_entries(project: Path) -> None:
    sync_project(project)
    (project / "src" / "a.ctx.md").unlink()

    report = sync_project(project)

    assert report.orphaned == ["src/a.ctx.md"]
    assert "src/a.ctx.md" in read_project_registry(project).contexts


@pytest.mark.unit
def test_sync_refreshes_registered_documents_outside_patterns(project: Path) -> None:
    sync_project(project)
    notes = _write(project / "notes" / "design.md", "---\nwhat: Design\nkeywords: [design]\n---\n")
    registry = read_project_registry(project)
    registry.contexts["notes/design.md"] = build_entry(project, "notes/design.md", RegistryKind.PROJECT, project)
    write_project_registry(project, registry)
    notes.write_text("---\nwhat: Design v2\nkeywords: [design]\n---\n", encoding="utf-8")

    report = sync_project(project)

    assert "notes/design.md" in report.synced
    assert report.orphaned == []
    assert read_project_registry(project).contexts["notes/design.md"].preview.what == "Design v2"


@pytest.mark.unit
def test_path_filter_checks_one_document(project: Path) -> None:
    _write(project / "src" / "b.ctx.md", "---\nwhat: B\nkeywords: [b]\n---\n")
    sync_project(project)
    _write(project / "src" / "b.ctx.md", "---\nwhat: B2\nkeywords: [b]\n---\n")
    _write(project / "lib" / "ctx.md", "---\nwhat: Lib\nkeywords: [lib]\n---\n")

    only_a = check_project(project, path_filter="./src/a.ctx.md")
    missing = check_project(project, path_filter="src/nope.ctx.md")

    assert only_a.summary.total == 1
    assert only_a.status == CheckStatus.FRESH
    assert missing.summary.errors == 1
    assert missing.issues[0].message == "Context file not registered and not found"


@pytest.mark.unit
def test_global_entries_only_compare_document_checksum(tmp_path: Path) -> None:
    home = tmp_path / "home"
    write_global_registry(home, Registry())
    _write(home / ".ctx" / "contexts" / "py.md", "---\nwhat: Python\nkeywords: [py]\ntarget: src/missing.py\n---\n")

    report = sync_global(home)
    result = check_global(home)

    assert report.synced == ["contexts/py.md"]
    assert read_global_registry(home).contexts["contexts/py.md"].target == "src/missing.py"
    assert result.status == CheckStatus.FRESH


@pytest.mark.unit
def test_sync_project_requires_initialized_root(tmp_path: Path) -> None:
    with pytest.raises(NotInitializedError):
        sync_project(tmp_path)


@pytest.mark.unit
def test_target_probe(project: Path) -> None:
    probe = TargetProbe(project)

    assert probe.exists("src/a.ts")
    assert probe.exists("/src/a.ts")
    assert probe.exists("src/")
    assert probe.exists("src/**/*.ts")
    assert not probe.exists("lib/")
    assert not probe.exists("**/*.py")


@pytest.mark.unit
def test_sync_document_bound_to_binary_target(project: Path) -> None:
    logo = project / "assets" / "logo.png"
    logo.parent.mkdir(parents=True)
    logo.write_bytes(b"\x89PNG\r\n\x1a\n\x00\xff\xfe")
    _write(project / "assets" / "logo.ctx.md", "---\nwhat: Logo\nkeywords: [brand]\ntarget: assets/logo.png\n---\n")

    report = sync_project(project)
    entry = read_project_registry(project).contexts["assets/logo.ctx.md"]

    assert "assets/logo.ctx.md" in report.synced
    assert entry.target_checksum == sha256_bytes(b"\x89PNG\r\n\x1a\n\x00\xff\xfe")
    assert check_project(project).status == CheckStatus.FRESH

    logo.write_bytes(b"\x89PNG\r\n\x1a\n\x00\x00")
    issue = check_project(project).issues[0]

    assert issue.reason == IssueReason.TARGET_CHANGED


@pytest.mark.unit
def test_line_ending_change_is_stale(project: Path) -> None:
    sync_project(project)
    (project / "src" / "a.ctx.md").write_bytes(COMPANION.replace("\n", "\r\n").encode("utf-8"))

    result = check_project(project)

    assert result.status == CheckStatus.STALE
    assert result.issues[0].reason == IssueReason.MODIFIED


@pytest.mark.unit
def test_sync_crlf_document_checksums_its_bytes(project: Path) -> None:
    crlf = COMPANION.replace("\n", "\r\n").encode("utf-8")
    (project / "src" / "a.ctx.md").write_bytes(crlf)

    sync_project(project)

    entry = read_project_registry(project).contexts["src/a.ctx.md"]
    assert entry.checksum == sha256_bytes(crlf)
    assert entry.preview.what == "Service A"
    assert check_project(project).status == CheckStatus.FRESH


@pytest.mark.unit
def test_sync_continues_past_undecodable_document(project: Path) -> None:
    (project / "src" / "c.ctx.md").write_bytes(b"---\nwhat: C\nkeywords: [c]\n---\n\xff\xfe\xfa")

    report = sync_project(project)

    assert report.errors == ["src/c.ctx.md"]
    assert report.synced == ["src/a.ctx.md"]
    assert set(read_project_registry(project).contexts) == {"src/a.ctx.md"}


@pytest.mark.unit
def test_check_continues_past_unreadable_target(project: Path, mocker: MockerFixture) -> None:
    _write(project / "src" / "b.ts", "export const b = 2;\n")
    _write(project / "src" / "b.ctx.md", "---\nwhat: B\nkeywords: [b]\n---\n")
    sync_project(project)
    real_sha256_file = freshness.sha256_file

    def failing_for_a(path: Path) -> str:
        if path.name == "a.ts":
            raise PermissionError(13, "Permission denied", str(path))
        return real_sha256_file(path)

    mocker.patch.object(freshness, "sha256_file", side_effect=failing_for_a)

    result = check_project(project)

    assert result.status == CheckStatus.STALE
    assert result.summary.total == 2
    assert result.summary.errors == 1
    assert result.summary.fresh == 1
    assert result.issues[0].context_path == "src/a.ctx.md"
    assert result.issues[0].reason == IssueReason.UNREADABLE


@pytest.mark.unit
def test_target_probe_matches_hidden_files(project: Path) -> None:
    _write(project / ".github" / "workflows" / "ci.yml", "on: push\n")

    assert TargetProbe(project).exists("**/*.yml")
