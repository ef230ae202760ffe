"""Keyword index for full-text search via Tantivy.

One document per entity: (entity_id, entity_type, title, body). Title and
body use Tantivy's ``en_stem`` tokenizer, so "running" matches "run";
relevance is Tantivy's BM25.

Writes are delete-then-insert inside a single writer commit, and the reader
is reloaded before returning, so a document is searchable as soon as
``upsert`` returns.

Usage::

    index = KeywordIndex(data_dir / "keyword_index")
    index.upsert("t-1", EntityType.TASK, "Buy groceries", "Pick up milk and eggs")
    hits = index.search("groceries", limit=5)
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import structlog
import tantivy

from quarry.core.errors import IndexCorruptionError, QuerySyntaxError
from quarry.search.models import TEXT_PREVIEW_MAX_CHARS, EntityType, SearchResult

log = structlog.get_logger()

# Characters with meaning in Tantivy's query grammar; replaced by spaces
_QUERY_SYNTAX_CHARS = re.compile(r"['\"*(){}\[\]^~\\:+\-!&|?/<>=]")

_DEFAULT_FIELDS = ["title", "body"]
_PREVIEW_CONTEXT_CHARS = 80


def sanitize_query(query: str) -> list[str]:
    """Strip query-syntax characters and split into lower-cased terms.

    Lower-casing also neutralises the AND/OR/NOT operators.
    """
    cleaned = _QUERY_SYNTAX_CHARS.sub(" ", query)
    return [t.lower() for t in cleaned.split() if t]


def _build_preview(body: str, terms: Sequence[str]) -> str:
    """Window of body text around the first matching term, else the head."""
    if not body:
        return ""
    lowered = body.lower()
    pos = -1
    for term in terms:
        pos = lowered.find(term)
        if pos == -1 and len(term) > 4:
            # Stemmed matches: "running" hits a body that says "runs"
            pos = lowered.find(term[:4])
        if pos != -1:
            break

    if pos == -1 or pos < _PREVIEW_CONTEXT_CHARS:
        head = body[:TEXT_PREVIEW_MAX_CHARS]
        return head + "..." if len(body) > TEXT_PREVIEW_MAX_CHARS else head

    start = pos - _PREVIEW_CONTEXT_CHARS
    end = start + TEXT_PREVIEW_MAX_CHARS
    snippet = body[start:end].strip()
    suffix = "..." if end < len(body) else ""
    return f"...{snippet}{suffix}"


class KeywordIndex:
    """
    Persistent BM25 keyword index using Tantivy.

    Schema:
    - entity_id:   raw tokenizer (exact match, used for deletion)
    - entity_type: raw tokenizer (exact match, used for type filters)
    - title, body: en_stem tokenizer (stemmed full-text)
    """

    def __init__(self, index_path: Path | str):
        """
        Initialize the keyword index.

        Args:
            index_path: Directory to store Tantivy index files
        """
        self.index_path = Path(index_path)
        self._index: Any = None
        self._initialized = False

    def _ensure_initialized(self) -> None:
        """Lazily create or open the Tantivy index."""
        if self._initialized:
            return

        schema_builder = tantivy.SchemaBuilder()
        schema_builder.add_text_field("entity_id", stored=True, tokenizer_name="raw")
        schema_builder.add_text_field("entity_type", stored=True, tokenizer_name="raw")
        schema_builder.add_text_field("title", stored=True, tokenizer_name="en_stem")
        schema_builder.add_text_field("body", stored=True, tokenizer_name="en_stem")
        schema = schema_builder.build()

        self.index_path.mkdir(parents=True, exist_ok=True)
        try:
            self._index = tantivy.Index(schema, path=str(self.index_path))
        except (OSError, ValueError) as e:
            # ValueError: unreadable meta.json or schema mismatch
            log.error("keyword_index.open_failed", path=str(self.index_path), error=str(e))
            raise IndexCorruptionError.unreadable("keyword", str(self.index_path), str(e)) from e
        self._initialized = True

    def open(self) -> None:
        """Open the index eagerly (surfaces corruption at startup)."""
        self._ensure_initialized()

    def upsert(
        self,
        entity_id: str,
        entity_type: EntityType | str,
        title: str,
        content: str,
    ) -> None:
        """Replace the entity's document (delete-then-insert, one commit)."""
        self._ensure_initialized()

        writer = self._index.writer()
        writer.delete_documents("entity_id", entity_id)

        doc = tantivy.Document()
        doc.add_text("entity_id", entity_id)
        doc.add_text("entity_type", EntityType(entity_type).value)
        doc.add_text("title", title or "")
        doc.add_text("body", content or "")
        writer.add_document(doc)
        self._commit(writer)

        log.debug("keyword_index.upsert", entity_id=entity_id, entity_type=str(entity_type))

    def remove(self, entity_id: str) -> None:
        """Remove the entity's document, if any."""
        self._ensure_initialized()

        writer = self._index.writer()
        writer.delete_documents("entity_id", entity_id)
        self._commit(writer)

        log.debug("keyword_index.remove", entity_id=entity_id)

    def _commit(self, writer: Any) -> None:
        try:
            writer.commit()
        except (OSError, ValueError) as e:
            # OSError: filesystem errors during commit
            # ValueError: tantivy index corruption
            raise IndexCorruptionError.unreadable("keyword", str(self.index_path), str(e)) from e
        self._index.reload()

    def _build_query(self, terms: Sequence[str], entity_types: Sequence[EntityType] | None) -> str:
        text_query = " AND ".join(terms)
        if not entity_types:
            return text_query
        type_clause = " OR ".join(f"entity_type:{EntityType(t).value}" for t in entity_types)
        return f"({text_query}) AND ({type_clause})"

    def search(
        self,
        query: str,
        limit: int = 10,
        entity_types: Sequence[EntityType] | None = None,
    ) -> list[SearchResult]:
        """
        Search titles and bodies, best match first.

        All query terms must match (after stemming). Empty or unparseable
        queries return an empty list; they never raise.

        Args:
            query: Free text. Query-syntax characters are stripped.
            limit: Maximum results
            entity_types: Optional restriction to these entity types

        Returns:
            SearchResults with match_type "keyword" and a non-negative
            BM25 score (higher is better).
        """
        if not query or not query.strip() or limit <= 0:
            return []

        terms = sanitize_query(query)
        if not terms:
            return []

        self._ensure_initialized()
        tantivy_query = self._build_query(terms, entity_types)

        try:
            parsed = self._index.parse_query(tantivy_query, _DEFAULT_FIELDS)
        except ValueError as e:
            err = QuerySyntaxError.unparseable(query, str(e)[:100])
            log.debug("keyword_index.query_rejected", error=str(err))
            return []

        searcher = self._index.searcher()
        hits = searcher.search(parsed, limit=limit).hits

        results: list[SearchResult] = []
        for score, doc_addr in hits:
            doc = searcher.doc(doc_addr)
            body = doc.get_first("body") or ""
            results.append(
                SearchResult(
                    entity_id=doc.get_first("entity_id") or "",
                    entity_type=EntityType(doc.get_first("entity_type")),
                    title=doc.get_first("title") or "",
                    preview=_build_preview(body, terms),
                    score=abs(float(score)),
                    match_type="keyword",
                )
            )
        return results

    def clear(self) -> None:
        """Remove every document."""
        self._ensure_initialized()

        writer = self._index.writer()
        writer.delete_all_documents()
        self._commit(writer)

    def count(self) -> int:
        """Return number of live documents."""
        self._ensure_initialized()
        return int(self._index.searcher().num_docs)
