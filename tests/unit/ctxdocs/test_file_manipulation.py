from pathlib import Path

import pytest

from ctxdocs.config import GITIGNORE_ENTRIES, GITIGNORE_MARKER
from ctxdocs.file_manipulation import (
    atomic_write_text,
    copy_markdown_tree,
    extract_document_title,
    is_companion_document,
    match_any_glob,
    normalize_globs,
    relpath,
    resolve_context_path,
    scan_files,
    sha256_bytes,
    sha256_file,
    sha256_text,
    update_ctx_gitignore,
    walk_files,
)

EMPTY_SHA256 = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


@pytest.mark.unit
def test_sha256_text_of_empty_string() -> None:
    assert sha256_text("") == EMPTY_SHA256


@pytest.mark.unit
def test_sha256_file_matches_sha256_text(tmp_path: Path) -> None:
    doc = tmp_path / "a.md"
    doc.write_bytes("héllo\n".encode())

    assert sha256_file(doc) == sha256_text("héllo\n")
    assert sha256_file(doc) != sha256_text("hello\n")


@pytest.mark.unit
def test_sha256_file_hashes_raw_bytes(tmp_path: Path) -> None:
    binary = tmp_path / "logo.png"
    binary.write_bytes(b"\x89PNG\r\n\x1a\n\xff")
    crlf = tmp_path / "crlf.md"
    crlf.write_bytes(b"x\r\ny\r\n")

    assert sha256_file(binary) == sha256_bytes(b"\x89PNG\r\n\x1a\n\xff")
    assert sha256_file(crlf) != sha256_text("x\ny\n")


@pytest.mark.unit
def test_relpath_outside_root_returns_original(tmp_path: Path) -> None:
    inside = tmp_path / "src" / "a.ts"
    outside = Path("/elsewhere/b.ts")

    assert relpath(inside, tmp_path) == "src/a.ts"
    assert relpath(outside, tmp_path) == "/elsewhere/b.ts"


@pytest.mark.unit
def test_normalize_globs_strips_and_normalizes() -> None:
    assert normalize_globs(["  src/**/*.md ", "docs\\*.md", ""]) == ["src/**/*.md", "docs/*.md"]


@pytest.mark.unit
@pytest.mark.parametrize(
    ("rel", "pattern", "expected"),
    [
        ("src/a/b.ts", "src/**/*.ts", True),
        ("src/b.ts", "src/**/*.ts", True),
        ("src/a/b.ts", "src/*.ts", False),
        ("a.ctx.md", "**/*.ctx.md", True),
        (".hidden/notes.ctx.md", "**/*.ctx.md", True),
        ("src/a.ts", "src/?.ts", True),
    ],
)
def test_match_any_glob_is_path_aware(rel: str, pattern: str, expected: bool) -> None:  # noqa: FBT001
    assert match_any_glob(rel, [pattern]) is expected


@pytest.mark.unit
def test_walk_files_prunes_ignored_directories(tmp_path: Path) -> None:
    (tmp_path / "node_modules" / "pkg").mkdir(parents=True)
    (tmp_path / "node_modules" / "pkg" / "x.ctx.md").write_text("x", encoding="utf-8")
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "a.ctx.md").write_text("a", encoding="utf-8")
    (tmp_path / "b.md").write_text("b", encoding="utf-8")

    assert walk_files(tmp_path, ["node_modules/**"]) == ["b.md", "src/a.ctx.md"]


@pytest.mark.unit
def test_scan_files_filters_by_pattern(tmp_path: Path) -> None:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "a.ctx.md").write_text("a", encoding="utf-8")
    (tmp_path / "src" / "a.ts").write_text("a", encoding="utf-8")

    assert scan_files(tmp_path, ["**/*.ctx.md"]) == ["src/a.ctx.md"]
    assert scan_files(tmp_path / "missing", ["**/*.md"]) == []
    assert scan_files(tmp_path, []) == []


@pytest.mark.unit
def test_is_companion_document() -> None:
    assert is_companion_document("src/a.ctx.md")
    assert is_companion_document("src/ctx.md")
    assert not is_companion_document(".ctx/contexts/rules.md")


@pytest.mark.unit
def test_resolve_context_path_for_files_and_folders() -> None:
    assert resolve_context_path("src/services/payment.ts") == "src/services/payment.ctx.md"
    assert resolve_context_path("src/services/") == "src/services/ctx.md"


@pytest.mark.unit
def test_extract_document_title() -> None:
    assert extract_document_title("rules/api-design.md") == "Api Design"
    assert extract_document_title("src/payment_flow.ctx.md") == "Payment Flow"
    assert extract_document_title("src/services/ctx.md") == "Services"


@pytest.mark.unit
def test_atomic_write_text_creates_parents_and_leaves_no_temp(tmp_path: Path) -> None:
    target = tmp_path / "deep" / "dir" / "file.yaml"

    atomic_write_text(target, "a: 1\n")
    atomic_write_text(target, "a: 2\n")

    assert target.read_text(encoding="utf-8") == "a: 2\n"
    assert [p.name for p in target.parent.iterdir()] == ["file.yaml"]


@pytest.mark.unit
def test_copy_markdown_tree_skips_entries(tmp_path: Path) -> None:
    src = tmp_path / "ctx"
    (src / "templates").mkdir(parents=True)
    (src / "templates" / "t.md").write_text("t", encoding="utf-8")
    (src / "rules").mkdir()
    (src / "rules" / "api.md").write_text("api", encoding="utf-8")
    (src / "README.md").write_text("readme", encoding="utf-8")
    (src / "data.json").write_text("{}", encoding="utf-8")
    dest = tmp_path / "out"

    copied = copy_markdown_tree(src, dest, skip={"templates", "README.md"})

    assert copied == ["rules/api.md"]
    assert (dest / "rules" / "api.md").read_text(encoding="utf-8") == "api"


@pytest.mark.unit
def test_update_ctx_gitignore_appends_section_once(tmp_path: Path) -> None:
    gitignore = tmp_path / ".gitignore"
    gitignore.write_text("node_modules/\n", encoding="utf-8")

    written = update_ctx_gitignore(tmp_path, GITIGNORE_ENTRIES)
    again = update_ctx_gitignore(tmp_path, GITIGNORE_ENTRIES)

    assert written == len(GITIGNORE_ENTRIES)
    assert again == 0
    assert gitignore.read_text(encoding="utf-8") == (
        f"node_modules/\n\n{GITIGNORE_MARKER}\n.ctx.current\n.worktrees\n"
    )


@pytest.mark.unit
def test_update_ctx_gitignore_replaces_existing_section(tmp_path: Path) -> None:
    gitignore = tmp_path / ".gitignore"
    gitignore.write_text(f"{GITIGNORE_MARKER}\nold-entry\n\n# mine\ndist/\n", encoding="utf-8")

    update_ctx_gitignore(tmp_path, [".ctx.current"])

    assert gitignore.read_text(encoding="utf-8") == f"{GITIGNORE_MARKER}\n.ctx.current\n\n# mine\ndist/\n"
