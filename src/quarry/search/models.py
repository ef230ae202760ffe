"""Search data model.

Single source of truth for the embeddings table schema and the result
types returned to callers.

- EmbeddingRecord: SQLModel table, one row per (entity, chunk)
- SearchResult / HybridSearchResult: query output
- SimilarityResult: raw vector-store hit (chunk granularity)
- SearchStatus: readiness + indexed entity count
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Literal
from uuid import uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

# ============================================================================
# ENUMS
# ============================================================================


class EntityType(str, Enum):
    """Searchable domain entity types.

    Each maps to one table of the application database (see sources.py).
    """

    TASK = "task"
    NOTE = "note"
    MEETING = "meeting"
    PROJECT = "project"
    STAKEHOLDER = "stakeholder"


MatchType = Literal["keyword", "semantic"]

TEXT_PREVIEW_MAX_CHARS = 200


def _utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _new_record_id() -> str:
    return uuid4().hex


# ============================================================================
# TABLES
# ============================================================================


class EmbeddingRecord(SQLModel, table=True):
    """One embedded chunk of an entity's searchable text.

    Unique on (entity_id, chunk_index). Chunks are numbered contiguously
    from 0; chunk 0 carries the entity's change fingerprint.

    content_hash: digest of the entity's full extracted text (same on every chunk)
    chunk_hash:   digest of this chunk's own text
    vector:       packed little-endian float32 (see vectors.pack_vector)
    """

    __tablename__ = "embeddings"
    __table_args__ = (UniqueConstraint("entity_id", "chunk_index", name="uq_embeddings_entity_chunk"),)

    id: str = Field(default_factory=_new_record_id, primary_key=True)
    entity_id: str = Field(index=True)
    entity_type: str = Field(index=True)
    chunk_index: int = Field(default=0, ge=0)
    content_hash: str
    chunk_hash: str | None = None
    text_preview: str | None = None
    vector: bytes
    created_at: str = Field(default_factory=_utc_now_iso)


# ============================================================================
# DATA TRANSFER OBJECTS
# ============================================================================


@dataclass(frozen=True, slots=True)
class SearchResult:
    """A single hit from either ranking path.

    Scores are path-specific: BM25 for keyword, cosine for semantic.
    They are not comparable across match types.
    """

    entity_id: str
    entity_type: EntityType
    title: str
    preview: str
    score: float
    match_type: MatchType

    def to_dict(self) -> dict[str, object]:
        return {
            "entity_id": self.entity_id,
            "entity_type": self.entity_type.value,
            "title": self.title,
            "preview": self.preview,
            "score": self.score,
            "match_type": self.match_type,
        }


@dataclass(slots=True)
class HybridSearchResult:
    """Keyword and semantic hits, kept as two separately ranked lists."""

    keyword: list[SearchResult] = field(default_factory=list)
    semantic: list[SearchResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, list[dict[str, object]]]:
        return {
            "keyword": [r.to_dict() for r in self.keyword],
            "semantic": [r.to_dict() for r in self.semantic],
        }


@dataclass(frozen=True, slots=True)
class SimilarityResult:
    """Chunk-level cosine similarity hit, higher is more similar."""

    entity_id: str
    entity_type: EntityType
    chunk_index: int
    preview: str | None
    score: float


@dataclass(frozen=True, slots=True)
class SearchStatus:
    """Search engine status."""

    ready: bool
    indexed_count: int
