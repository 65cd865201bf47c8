"""Decide which registry entries apply to a file, and rank keyword lookups."""

from __future__ import annotations

from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING

from ctxdocs.config import GLOB_CHARS, MatchedContext, MatchType, RegistryKind
from ctxdocs.file_manipulation import relpath

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from ctxdocs.config import ContextEntry


def is_glob_pattern(pattern: str) -> bool:
    return any(ch in pattern for ch in GLOB_CHARS)


def is_folder_target(target: str) -> bool:
    return target.endswith("/")


def normalize_candidate(candidate: str | Path, root: Path) -> str:
    """Express `candidate` relative to `root` with POSIX separators.

    Relative candidates are taken as already relative to `root`.
    """
    path = Path(candidate)
    if path.is_absolute():
        return relpath(path, root)
    return PurePosixPath(str(candidate).replace("\\", "/")).as_posix()


def matches_target(candidate: str | Path, target: str, root: Path) -> bool:
    """Check whether a file satisfies a stored target.

    Resolution order:
        1. a target ending in ``/`` is a folder: the candidate matches when it
           is the folder itself or lies anywhere below it;
        2. a single leading ``/`` is dropped;
        3. a target holding ``*``, ``?`` or ``[`` is a glob, where ``*`` stays
           within one segment, ``**`` spans directories and dotfiles match;
        4. anything else must equal the candidate exactly.

    Args:
        candidate (str | Path): file to test, absolute or relative to `root`
        target (str): the entry's target
        root (Path): directory targets are relative to

    Returns:
        bool: True when the target covers the candidate
    """
    rel = normalize_candidate(candidate, root)
    if is_folder_target(target):
        folder = target.rstrip("/").removeprefix("/")
        if not folder:
            return True
        return rel == folder or rel.startswith(f"{folder}/")

    pattern = target.removeprefix("/")
    if is_glob_pattern(pattern):
        return PurePosixPath(rel).full_match(pattern)
    return rel == pattern


def _priority(source: RegistryKind, match_type: MatchType) -> int:
    if match_type == MatchType.EXACT:
        return 1 if source == RegistryKind.PROJECT else 2
    return 3 if source == RegistryKind.PROJECT else 4


def find_matching_contexts(
    contexts: Mapping[str, ContextEntry],
    candidate: str | Path,
    root: Path,
    source: RegistryKind,
    base_path: Path,
) -> list[MatchedContext]:
    """Collect the entries whose target covers `candidate`.

    Standalone entries never match. Each match carries its priority: 1 for an
    exact project match, 2 exact global, 3 glob or folder project, 4 glob or
    folder global.

    Args:
        contexts (Mapping[str, ContextEntry]): registry entries, in registry order
        candidate (str | Path): the file being looked up
        root (Path): directory targets are relative to
        source (RegistryKind): which registry `contexts` comes from
        base_path (Path): directory the registry keys are relative to

    Returns:
        list[MatchedContext]: matches in registry order (not yet ranked)
    """
    matches: list[MatchedContext] = []
    for key, entry in contexts.items():
        if not entry.target:
            continue
        if not matches_target(candidate, entry.target, root):
            continue
        loose = is_glob_pattern(entry.target) or is_folder_target(entry.target)
        match_type = MatchType.GLOB if loose else MatchType.EXACT
        matches.append(
            MatchedContext(
                context_path=str(base_path / key),
                key=key,
                target=entry.target,
                source=source,
                match_type=match_type,
                priority=_priority(source, match_type),
                preview=entry.preview,
            )
        )
    return matches


def rank_target_matches(matches: Iterable[MatchedContext]) -> list[MatchedContext]:
    """Best first. Equal priorities keep the order they were collected in."""
    return sorted(matches, key=lambda m: m.priority)


def score_entry(keywords: Sequence[str], entry: ContextEntry) -> int:
    """Count the query keywords found (as substrings) in the entry's preview."""
    corpus = " ".join([entry.preview.what, *entry.preview.keywords]).casefold()
    return sum(1 for kw in keywords if kw.strip() and kw.strip().casefold() in corpus)


def find_keyword_matches(
    contexts: Mapping[str, ContextEntry],
    keywords: Sequence[str],
    source: RegistryKind,
    base_path: Path,
) -> list[MatchedContext]:
    """Score every entry against `keywords`; project matches count double."""
    weight = 2 if source == RegistryKind.PROJECT else 1
    matches: list[MatchedContext] = []
    for key, entry in contexts.items():
        score = score_entry(keywords, entry)
        if score <= 0:
            continue
        matches.append(
            MatchedContext(
                context_path=str(base_path / key),
                key=key,
                target=entry.target,
                source=source,
                match_type=MatchType.EXACT,
                score=score * weight,
                preview=entry.preview,
            )
        )
    return matches


def rank_keyword_matches(matches: Iterable[MatchedContext]) -> list[MatchedContext]:
    return sorted(matches, key=lambda m: m.score, reverse=True)
