from __future__ import annotations

import re
from pathlib import Path, PurePosixPath
from typing import Any

import yaml

from ctxdocs.config import (
    DEFAULT_DOCUMENT_VERSION,
    FOLDER_CONTEXT_NAME,
    LOCAL_SUFFIX,
    ContextDocument,
    ContextPreview,
    DocumentFrontmatter,
    DocumentMeta,
    ValidationResult,
)
from ctxdocs.exceptions import FrontmatterParseError, UnsupportedFormatError

FRONTMATTER_DELIM = "---"

_FRONTMATTER_RE = re.compile(
    r"\A---[ \t]*\r?\n(?P<yaml>.*?)^---[ \t]*(?:\r?\n|\Z)",
    re.DOTALL | re.MULTILINE,
)

MARKDOWN_SUFFIXES = (".md", ".markdown")
STRUCTURED_SUFFIXES = (".yml", ".yaml")


def split_frontmatter(raw: str) -> tuple[dict[str, Any] | None, str]:
    """Split a markdown document into its frontmatter mapping and body.

    Args:
        raw (str): full document text; a leading BOM is ignored

    Returns:
        tuple[dict[str, Any] | None, str]: the frontmatter mapping (None when the
            document has no leading ``---`` block) and the remaining body

    Raises:
        yaml.YAMLError: the block exists but is not valid YAML
        FrontmatterParseError: the block is valid YAML but not a mapping
    """
    raw = raw.lstrip("\ufeff")
    m = _FRONTMATTER_RE.match(raw)
    if not m:
        return None, raw
    data = yaml.safe_load(m.group("yaml"))
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise FrontmatterParseError(message="Frontmatter is not a key/value mapping.")
    return data, raw[m.end() :]


def _as_text(value: Any) -> str:  # noqa: ANN401
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _as_keywords(value: Any) -> list[str]:  # noqa: ANN401
    if not isinstance(value, list):
        return []
    return [str(k) for k in value if k is not None and str(k).strip()]


def _as_target(value: Any) -> str | None:  # noqa: ANN401
    text = _as_text(value).strip()
    return text or None


def _normalize(meta: dict[str, Any], fields: dict[str, Any], body: str) -> ContextDocument:
    return ContextDocument(
        meta=DocumentMeta(
            version=_as_text(meta.get("version")) or DEFAULT_DOCUMENT_VERSION,
            target=_as_target(meta.get("target")),
        ),
        frontmatter=DocumentFrontmatter(
            what=_as_text(fields.get("what")),
            keywords=_as_keywords(fields.get("keywords")),
            future=fields.get("future"),
        ),
        body=body.strip(),
    )


def _parse_markdown(identifier: str, content: str) -> ContextDocument:
    try:
        data, body = split_frontmatter(content)
    except yaml.YAMLError as exc:
        raise FrontmatterParseError(identifier=identifier, message=f"Malformed frontmatter: {exc}") from exc
    except FrontmatterParseError as exc:
        raise FrontmatterParseError(identifier=identifier, message=exc.message) from exc
    if data is None:
        raise FrontmatterParseError(identifier=identifier, message="Missing frontmatter block.")
    return _normalize(data, data, body)


def _parse_structured(identifier: str, content: str) -> ContextDocument:
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise FrontmatterParseError(identifier=identifier, message=f"Malformed YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise FrontmatterParseError(identifier=identifier, message="Context file is not a key/value mapping.")
    meta = data.get("meta")
    return _normalize(meta if isinstance(meta, dict) else {}, data, "")


def parse_context_file(identifier: str, content: str) -> ContextDocument:
    """Parse a context document strictly.

    Markdown documents (``.md``, ``.markdown``) carry their metadata in a
    leading frontmatter block. Legacy structured files (``.yml``, ``.yaml``)
    hold ``meta: {version, target}`` next to top-level ``what``/``keywords``.
    Both are normalized to the same `ContextDocument`.

    Args:
        identifier (str): document path, used for format dispatch and errors
        content (str): document text

    Returns:
        ContextDocument: the normalized document

    Raises:
        FrontmatterParseError: metadata is missing or malformed
        UnsupportedFormatError: the extension is not a known encoding
    """
    suffix = PurePosixPath(identifier).suffix.lower()
    if suffix in MARKDOWN_SUFFIXES:
        return _parse_markdown(identifier, content)
    if suffix in STRUCTURED_SUFFIXES:
        return _parse_structured(identifier, content)
    raise UnsupportedFormatError(identifier=identifier, message=f"Unsupported context file format: {suffix or '(none)'}")


def validate_context_file(doc: ContextDocument) -> ValidationResult:
    """Check the fields a document needs before it can be registered.

    A missing `target` is not an error.
    """
    errors: list[str] = []
    if not doc.meta.version:
        errors.append("Missing required field: meta.version")
    if not doc.frontmatter.what.strip():
        errors.append("Missing required field: what")
    if not doc.frontmatter.keywords:
        errors.append("Missing or empty required field: keywords")
    return ValidationResult(valid=not errors, errors=errors)


def extract_preview(content: str) -> ContextPreview | None:
    """Lenient preview extraction for arbitrary markdown.

    Returns:
        ContextPreview | None: the preview, or None when the document has no
            usable frontmatter, or lacks `what` or `keywords`. Never raises on
            malformed input.
    """
    try:
        data, _ = split_frontmatter(content)
    except (yaml.YAMLError, FrontmatterParseError):
        return None
    if not data:
        return None
    what = data.get("what")
    keywords = _as_keywords(data.get("keywords"))
    if not isinstance(what, str) or not what.strip() or not keywords:
        return None
    return ContextPreview(what=what, keywords=keywords)


def render_frontmatter(fields: dict[str, Any]) -> str:
    dumped = yaml.safe_dump(fields, sort_keys=False, allow_unicode=True, default_flow_style=False)
    return f"{FRONTMATTER_DELIM}\n{dumped}{FRONTMATTER_DELIM}\n"


def add_frontmatter(content: str, fields: dict[str, Any]) -> str:
    """Give `content` a frontmatter block holding `fields`.

    Keys already present in an existing block win over `fields`.
    """
    try:
        existing, body = split_frontmatter(content)
    except (yaml.YAMLError, FrontmatterParseError):
        existing, body = None, content.lstrip("\ufeff")
    merged = {**fields, **(existing or {})}
    merged = {k: v for k, v in merged.items() if v not in (None, "", [])}
    body = body.lstrip("\n")
    return f"{render_frontmatter(merged)}\n{body}"


def resolve_target(rel: str, explicit: str | None, root: Path) -> str | None:
    """Decide which artifact a document is bound to.

    An explicit frontmatter `target` always wins. Otherwise companion naming
    decides: ``<dir>/ctx.md`` binds to the folder ``<dir>/`` and
    ``<dir>/<name>.ctx.md`` binds to the one sibling named ``<name>.<ext>``
    when exactly one exists. Anything else stays standalone.

    Args:
        rel (str): document path relative to `root`
        explicit (str | None): the `target` from the frontmatter, if any
        root (Path): project root

    Returns:
        str | None: the target, or None for a standalone document
    """
    if explicit:
        return explicit
    doc = PurePosixPath(rel)
    if doc.name == FOLDER_CONTEXT_NAME:
        parent = str(doc.parent)
        return None if parent == "." else f"{parent}/"
    if doc.name.endswith(LOCAL_SUFFIX):
        stem = doc.name[: -len(LOCAL_SUFFIX)]
        folder = root / doc.parent
        if not stem or not folder.is_dir():
            return None
        siblings = [
            p
            for p in folder.iterdir()
            if p.is_file() and p.name != doc.name and p.name.startswith(f"{stem}.") and not p.name.endswith(".md")
        ]
        if len(siblings) == 1:
            sibling = doc.parent / siblings[0].name
            return str(sibling)
    return None
