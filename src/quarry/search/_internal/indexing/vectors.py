"""Vector store: embedded chunks in SQLite, brute-force cosine search.

Vectors live as packed float32 blobs in the ``embeddings`` table. Similarity
search loads every candidate row and scores it with numpy; at personal
knowledge-base scale (thousands of chunks) a full scan is fast enough and
needs no ANN index.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import numpy as np
import structlog
from sqlalchemy import delete, func
from sqlmodel import col, select

from quarry.search._internal.db import Database
from quarry.search.models import EmbeddingRecord, EntityType, SimilarityResult

log = structlog.get_logger()

_VECTOR_DTYPE = np.dtype("<f4")


def pack_vector(vector: Any) -> bytes:
    """Serialize to little-endian float32 bytes."""
    return np.asarray(vector, dtype=_VECTOR_DTYPE).tobytes()


def unpack_vector(blob: bytes) -> np.ndarray:
    return np.frombuffer(blob, dtype=_VECTOR_DTYPE).astype(np.float32)


def cosine_similarity(a: Any, b: Any) -> float:
    """Cosine similarity of two vectors.

    Returns 0.0 for empty vectors, zero-magnitude vectors and vectors of
    different lengths; never NaN and never raises.
    """
    va = np.asarray(a, dtype=np.float32).ravel()
    vb = np.asarray(b, dtype=np.float32).ravel()
    if va.size == 0 or va.size != vb.size:
        return 0.0
    denom = float(np.linalg.norm(va)) * float(np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    score = float(np.dot(va, vb)) / denom
    return score if np.isfinite(score) else 0.0


class VectorStore:
    """Chunk embeddings keyed by (entity_id, chunk_index)."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def upsert(self, record: EmbeddingRecord) -> None:
        """Insert, replacing any record with the same (entity_id, chunk_index)."""
        with self.db.immediate_transaction() as session:
            session.execute(
                delete(EmbeddingRecord).where(
                    col(EmbeddingRecord.entity_id) == record.entity_id,
                    col(EmbeddingRecord.chunk_index) == record.chunk_index,
                )
            )
            session.add(record)

    def delete_by_entity(self, entity_id: str) -> int:
        """Delete all chunks of an entity. Returns rows deleted."""
        with self.db.immediate_transaction() as session:
            result = session.execute(delete(EmbeddingRecord).where(col(EmbeddingRecord.entity_id) == entity_id))
            deleted = int(result.rowcount or 0)  # type: ignore[attr-defined]
        if deleted:
            log.debug("vector_store.delete", entity_id=entity_id, rows=deleted)
        return deleted

    def get_by_entity(self, entity_id: str) -> list[EmbeddingRecord]:
        with self.db.session() as session:
            stmt = (
                select(EmbeddingRecord)
                .where(col(EmbeddingRecord.entity_id) == entity_id)
                .order_by(col(EmbeddingRecord.chunk_index))
            )
            return list(session.exec(stmt).all())

    def get_content_hash(self, entity_id: str) -> str | None:
        """Change fingerprint of an entity (stored on chunk 0), if embedded."""
        with self.db.session() as session:
            stmt = select(EmbeddingRecord.content_hash).where(
                col(EmbeddingRecord.entity_id) == entity_id,
                col(EmbeddingRecord.chunk_index) == 0,
            )
            return session.exec(stmt).first()

    def search_similar(
        self,
        query_vector: Any,
        limit: int = 10,
        entity_types: Sequence[EntityType] | None = None,
    ) -> list[SimilarityResult]:
        """Top ``limit`` chunks by cosine similarity, highest first."""
        if limit <= 0:
            return []

        with self.db.session() as session:
            stmt = select(
                EmbeddingRecord.entity_id,
                EmbeddingRecord.entity_type,
                EmbeddingRecord.chunk_index,
                EmbeddingRecord.text_preview,
                EmbeddingRecord.vector,
            )
            if entity_types:
                stmt = stmt.where(col(EmbeddingRecord.entity_type).in_([EntityType(t).value for t in entity_types]))
            rows = list(session.exec(stmt).all())

        if not rows:
            return []

        query = np.asarray(query_vector, dtype=np.float32).ravel()
        scores = self._score_rows(query, [row[4] for row in rows])

        order = np.argsort(-scores, kind="stable")[:limit]
        return [
            SimilarityResult(
                entity_id=rows[i][0],
                entity_type=EntityType(rows[i][1]),
                chunk_index=rows[i][2],
                preview=rows[i][3],
                score=float(scores[i]),
            )
            for i in order
        ]

    @staticmethod
    def _score_rows(query: np.ndarray, blobs: list[bytes]) -> np.ndarray:
        """Cosine score per blob; rows whose dimension differs score 0."""
        scores = np.zeros(len(blobs), dtype=np.float32)
        query_norm = float(np.linalg.norm(query))
        if query.size == 0 or query_norm == 0.0:
            return scores

        matching = [i for i, blob in enumerate(blobs) if len(blob) == query.size * _VECTOR_DTYPE.itemsize]
        if not matching:
            return scores

        matrix = np.vstack([unpack_vector(blobs[i]) for i in matching])
        norms = np.linalg.norm(matrix, axis=1)
        with np.errstate(divide="ignore", invalid="ignore"):
            sims = (matrix @ query) / (norms * query_norm)
        sims = np.where(np.isfinite(sims), sims, 0.0)
        scores[matching] = sims
        return scores

    def clear(self) -> None:
        with self.db.immediate_transaction() as session:
            session.execute(delete(EmbeddingRecord))
        log.info("vector_store.cleared")

    def count(self) -> int:
        """Number of distinct embedded entities."""
        with self.db.session() as session:
            stmt = select(func.count(func.distinct(EmbeddingRecord.entity_id)))
            return int(session.exec(stmt).one())
