from __future__ import annotations

import hashlib
import os
import re
import shutil
import tempfile
from datetime import UTC, datetime
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from ctxdocs.config import DEFAULT_IGNORE, FOLDER_CONTEXT_NAME, GITIGNORE_MARKER, LOCAL_SUFFIX
from ctxdocs.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence


def relpath(path: Path, root: Path) -> str:
    """Send the relative path of path from root.

    Args:
        path (Path): the path to "relativise"
        root (Path): the root to relativise from

    Returns:
        str: the relative path from root to path, with POSIX separators.
            If path is not under root, returns the original path as a string.
    """
    try:
        return str(path.relative_to(root)).replace("\\", "/")
    except ValueError:
        return str(path).replace("\\", "/")


def sha256_bytes(data: bytes) -> str:
    """Compute the SHA-256 hex digest of raw bytes.

    This is the registry's drift tripwire: the same algorithm must be used for
    every checksum a registry stores, or every entry reads as stale.

    Args:
        data (bytes): the bytes to hash

    Returns:
        str: the SHA-256 hex digest
    """
    return hashlib.sha256(data).hexdigest()


def sha256_text(content: str) -> str:
    """SHA-256 of a string's UTF-8 bytes, equal to `sha256_file` of the same text written as UTF-8."""
    return sha256_bytes(content.encode("utf-8"))


def sha256_file(path: Path) -> str:
    """Compute and return the SHA-256 hex digest of a file.

    Reads the file in 1 MiB chunks to handle large files without excessive memory use.

    Args:
        path (Path): the file path to hash

    Returns:
        str: the SHA-256 hex digest of the file contents
    """
    h = hashlib.sha256()
    with path.open("rb") as f:
        for blk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(blk)
    return h.hexdigest()


def now_iso() -> str:
    """Return the current date and time in ISO 8601 format with timezone.

    Returns:
        str: the current date and time in ISO 8601 format with timezone
    """
    return datetime.now(UTC).astimezone().isoformat(timespec="seconds")


def mtime_iso(path: Path) -> str:
    """Return a file's modification time as an ISO 8601 UTC timestamp."""
    return datetime.fromtimestamp(path.stat().st_mtime, tz=UTC).isoformat(timespec="seconds")


def normalize_globs(globs: Sequence[str]) -> list[str]:
    """Normalize a sequence of path glob patterns.

    Normalize a sequence of glob patterns by stripping whitespace and
    replacing backslashes with forward slashes.

    Args:
        globs (Sequence[str]): the glob patterns to normalize

    Returns:
        list[str]: the normalized glob patterns
    """
    out: list[str] = []
    for g in globs:
        g2 = (g or "").strip()
        if not g2:
            continue
        out.append(g2.replace("\\", "/"))
    return out


def match_any_glob(rel: str, globs: Sequence[str]) -> bool:
    """Check if a relative path matches any of the provided glob patterns.

    Patterns use path-aware semantics: ``*`` stays within one path segment,
    ``**`` spans directories, and hidden files are matched like any other.

    Args:
        rel (str): the relative path to check, with POSIX separators
        globs (Sequence[str]): the glob patterns to match against

    Returns:
        bool: True if `rel` matches any pattern in `globs`, False otherwise
    """
    candidate = PurePosixPath(rel)
    return any(candidate.full_match(g) for g in globs)


def _is_ignored_dir(rel_dir: str, ignore: Sequence[str]) -> bool:
    # A directory is pruned when anything inside it would be ignored.
    return match_any_glob(f"{rel_dir}/_", ignore)


def walk_files(base: Path, ignore: Sequence[str] = ()) -> list[str]:
    """Walk the directory tree rooted at `base` and return relative file paths.

    Args:
        base (Path): the root directory to walk
        ignore (Sequence[str]): glob patterns (relative to `base`) of files and
            directories to leave out

    Returns:
        list[str]: POSIX paths relative to `base`, sorted
    """
    ignore = normalize_globs(ignore)
    results: list[str] = []
    for current, dirs, files in os.walk(base):
        rel_current = relpath(Path(current), base)
        prefix = "" if rel_current == "." else rel_current + "/"
        dirs[:] = sorted(d for d in dirs if not _is_ignored_dir(prefix + d, ignore))
        for name in files:
            rel = prefix + name
            if ignore and match_any_glob(rel, ignore):
                continue
            results.append(rel)
    return sorted(results)


def scan_files(
    base: Path,
    patterns: Sequence[str],
    ignore: Sequence[str] = tuple(DEFAULT_IGNORE),
) -> list[str]:
    """Discover files under `base` matching any of `patterns`.

    This is the filesystem scanner behind discovery of context documents.

    Args:
        base (Path): directory the patterns are relative to
        patterns (Sequence[str]): glob patterns such as ``**/*.ctx.md``
        ignore (Sequence[str]): glob patterns to exclude

    Returns:
        list[str]: matching POSIX paths relative to `base`, sorted and unique.
            An absent `base` yields an empty list.
    """
    if not base.is_dir():
        return []
    globs = normalize_globs(patterns)
    if not globs:
        return []
    return [rel for rel in walk_files(base, ignore) if match_any_glob(rel, globs)]


def is_companion_document(rel: str) -> bool:
    """Tell whether a path follows the companion naming (`*.ctx.md` or `ctx.md`)."""
    name = PurePosixPath(rel).name
    return name == FOLDER_CONTEXT_NAME or name.endswith(LOCAL_SUFFIX)


def ensure_md_suffix(rel: str) -> str:
    return rel if rel.endswith(".md") else f"{rel}.md"


def resolve_context_path(target: str) -> str:
    """Derive the companion document path for a target.

    Examples:
        ``src/services/payment.ts`` -> ``src/services/payment.ctx.md``
        ``src/services/`` -> ``src/services/ctx.md``

    Args:
        target (str): a file or directory path relative to the project root

    Returns:
        str: the companion context path, POSIX separators
    """
    normalized = target.replace("\\", "/").rstrip("/")
    p = PurePosixPath(normalized)
    if target.endswith("/") or not p.suffix:
        return str(p / FOLDER_CONTEXT_NAME)
    return str(p.with_name(p.stem + LOCAL_SUFFIX))


def extract_document_title(rel: str) -> str:
    """Turn a document path into a title: ``rules/api-design.md`` -> ``Api Design``."""
    name = PurePosixPath(rel).name
    for suffix in (LOCAL_SUFFIX, ".md"):
        if name.endswith(suffix):
            name = name[: -len(suffix)]
            break
    if not name or name == "ctx":
        name = PurePosixPath(rel).parent.name or "Context"
    words = re.split(r"[-_\s]+", name)
    return " ".join(w[:1].upper() + w[1:] for w in words if w)


def atomic_write_text(path: Path, text: str) -> None:
    """Write `text` to `path` through a temporary file in the same directory.

    Readers never observe a half-written file. Parent directories are created.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
        delete=False,
    ) as tmp:
        tmp.write(text)
        tmp.flush()
        os.fsync(tmp.fileno())
        tmp_path = Path(tmp.name)
    tmp_path.replace(path)


def copy_markdown_tree(src: Path, dest: Path, skip: Iterable[str] = ()) -> list[str]:
    """Copy markdown files (recursively) from `src` into `dest`.

    Args:
        src (Path): directory to copy from
        dest (Path): directory to copy into (created when missing)
        skip (Iterable[str]): top-level entry names of `src` to leave behind

    Returns:
        list[str]: copied paths relative to `dest`
    """
    skipped = set(skip)
    copied: list[str] = []
    for rel in walk_files(src):
        if rel.split("/", 1)[0] in skipped or not rel.endswith(".md"):
            continue
        target = dest / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src / rel, target)
        copied.append(rel)
    logger.debug("Copied %d markdown file(s) from %s", len(copied), src)
    return copied


def update_ctx_gitignore(root: Path, entries: Sequence[str]) -> int:
    """Replace the ctx-managed section of ``.gitignore`` with `entries`.

    The section starts at the ``# generated by ctx`` marker and runs until the
    next blank line or comment. It is appended when missing.

    Args:
        root (Path): project root holding ``.gitignore``
        entries (Sequence[str]): lines the section should contain

    Returns:
        int: number of entries written, 0 when the section was already up to date
    """
    gitignore = root / ".gitignore"
    content = gitignore.read_text(encoding="utf-8") if gitignore.exists() else ""
    lines = content.split("\n")
    wanted = [e.strip() for e in entries if e.strip()]

    start = next((i for i, line in enumerate(lines) if line.strip() == GITIGNORE_MARKER), -1)
    if start == -1:
        body = [line for line in lines]
        while body and not body[-1].strip():
            body.pop()
        new_lines = [*body, ""] if body else []
        new_lines += [GITIGNORE_MARKER, *wanted]
    else:
        end = start + 1
        while end < len(lines):
            stripped = lines[end].strip()
            if not stripped or stripped.startswith("#"):
                break
            end += 1
        current = {line.strip() for line in lines[start + 1 : end]}
        if current == set(wanted):
            return 0
        new_lines = [*lines[:start], GITIGNORE_MARKER, *wanted, *lines[end:]]

    cleaned: list[str] = []
    for line in new_lines:
        if not line.strip() and cleaned and not cleaned[-1].strip():
            continue
        cleaned.append(line)
    while cleaned and not cleaned[-1].strip():
        cleaned.pop()
    gitignore.write_text("\n".join(cleaned) + "\n", encoding="utf-8")
    return len(wanted)
