"""Canonical searchable text per entity type.

Entities arrive as database rows (mappings) or attribute objects from the
CRUD layer. Long-form fields (notes, note content) may contain HTML from the
rich-text editor or markdown; both are stripped before indexing.
"""

from __future__ import annotations

import hashlib
import re
from collections.abc import Mapping
from typing import Any

from quarry.search.models import EntityType

CHUNK_THRESHOLD_CHARS = 500

QUERY_PREFIX = "query: "
PASSAGE_PREFIX = "passage: "

_HTML_TAG = re.compile(r"<[^>]*>")
_MD_BOLD = re.compile(r"\*\*(.*?)\*\*")
_MD_ITALIC = re.compile(r"\*(.*?)\*")
_MD_LINK = re.compile(r"\[(.*?)\]\(.*?\)")
_MD_HEADING = re.compile(r"#{1,6}\s")
_MD_INLINE_CODE = re.compile(r"`(.*?)`")

# (field, is_long_form) in output order; title/name always first
_FIELDS: dict[EntityType, tuple[tuple[str, bool], ...]] = {
    EntityType.TASK: (("title", False), ("notes", True)),
    EntityType.NOTE: (("title", False), ("content", True)),
    EntityType.MEETING: (("title", False), ("location", False), ("notes", True)),
    EntityType.PROJECT: (("title", False), ("description", False)),
    EntityType.STAKEHOLDER: (
        ("name", False),
        ("organization", False),
        ("role", False),
        ("notes", True),
    ),
}


def _get_field(entity: Any, name: str) -> Any:
    if isinstance(entity, Mapping):
        return entity.get(name)
    return getattr(entity, name, None)


def strip_html(text: str) -> str:
    return _HTML_TAG.sub("", text).strip()


def strip_markdown(text: str) -> str:
    text = _MD_BOLD.sub(r"\1", text)
    text = _MD_ITALIC.sub(r"\1", text)
    text = _MD_LINK.sub(r"\1", text)
    text = _MD_HEADING.sub("", text)
    text = _MD_INLINE_CODE.sub(r"\1", text)
    return text.strip()


def clean_text(text: str | None) -> str | None:
    """Strip HTML then markdown. Falsy input yields None."""
    if not text:
        return None
    return strip_markdown(strip_html(text))


def embeddable_text(entity: Any, entity_type: EntityType | str) -> str:
    """Build the searchable text of an entity.

    Fields are joined with blank lines; empty or missing fields are skipped.
    Unknown entity types yield an empty string.
    """
    try:
        fields = _FIELDS[EntityType(entity_type)]
    except ValueError:
        return ""

    parts: list[str] = []
    for name, long_form in fields:
        value = _get_field(entity, name)
        if not value:
            continue
        value = clean_text(str(value)) if long_form else str(value)
        if value:
            parts.append(value)
    return "\n\n".join(parts)


def entity_title(entity: Any) -> str:
    """Display title: ``title`` or, for stakeholders, ``name``."""
    return str(_get_field(entity, "title") or _get_field(entity, "name") or "")


def content_hash(text: str) -> str:
    """SHA-256 hex digest. A change token, not a security boundary."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def should_chunk(text: str) -> bool:
    return len(text) > CHUNK_THRESHOLD_CHARS


def prepare_for_embedding(text: str, is_query: bool) -> str:
    """Prefix for asymmetric (query vs passage) embedding models."""
    return f"{QUERY_PREFIX if is_query else PASSAGE_PREFIX}{text}"
