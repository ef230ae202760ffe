"""Hybrid search: keyword (BM25) and semantic (cosine) paths side by side.

Both paths run concurrently. Their scores live on different scales, so the
results are not fused into one ranking; instead each list keeps its own
order and the semantic list drops entities the keyword list already has.

A failure on one path is logged and that path contributes nothing; the
other path's results are still returned.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from typing import TYPE_CHECKING

import structlog

from quarry.search._internal.indexing.extractor import prepare_for_embedding
from quarry.search.models import EntityType, HybridSearchResult, SearchResult, SimilarityResult

if TYPE_CHECKING:
    from quarry.search.ops import SearchContext

log = structlog.get_logger()

DEFAULT_LIMIT = 5

# Chunks fetched per requested semantic hit, before collapsing to entities
_CHUNK_OVERFETCH = 4


def collapse_to_entities(hits: Sequence[SimilarityResult]) -> list[SimilarityResult]:
    """Keep the best-scoring chunk per entity, preserving score order."""
    best: dict[str, SimilarityResult] = {}
    for hit in hits:
        current = best.get(hit.entity_id)
        if current is None or hit.score > current.score:
            best[hit.entity_id] = hit
    return sorted(best.values(), key=lambda h: h.score, reverse=True)


class HybridSearchService:
    """Runs both ranking paths for a query and merges them."""

    def __init__(self, context: SearchContext) -> None:
        self.context = context

    async def search(
        self,
        query: str,
        limit: int = DEFAULT_LIMIT,
        entity_types: Sequence[EntityType] | None = None,
    ) -> HybridSearchResult:
        """
        Search both indexes.

        Args:
            query: Free text
            limit: Maximum hits per path (each list is bounded separately)
            entity_types: Optional restriction to these entity types

        Returns:
            HybridSearchResult. Empty or whitespace queries return two empty
            lists without touching either index or the embedder.
        """
        if not query or not query.strip() or limit <= 0:
            return HybridSearchResult()

        start = time.monotonic()
        keyword_outcome, semantic_outcome = await asyncio.gather(
            self._keyword(query, limit, entity_types),
            self._semantic(query, limit, entity_types),
            return_exceptions=True,
        )

        keyword = self._unwrap("keyword", keyword_outcome)
        semantic = self._unwrap("semantic", semantic_outcome)

        keyword_ids = {r.entity_id for r in keyword}
        semantic = [r for r in semantic if r.entity_id not in keyword_ids][:limit]

        log.debug(
            "hybrid_search.done",
            keyword=len(keyword),
            semantic=len(semantic),
            elapsed_ms=round((time.monotonic() - start) * 1000),
        )
        return HybridSearchResult(keyword=keyword, semantic=semantic)

    @staticmethod
    def _unwrap(path: str, outcome: list[SearchResult] | BaseException) -> list[SearchResult]:
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                # CancelledError / KeyboardInterrupt are not path failures
                raise outcome
            log.warning("hybrid_search.path_failed", path=path, error=str(outcome))
            return []
        return outcome

    async def _keyword(
        self,
        query: str,
        limit: int,
        entity_types: Sequence[EntityType] | None,
    ) -> list[SearchResult]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            lambda: self.context.keyword_index.search(query, limit=limit, entity_types=entity_types),
        )

    async def _semantic(
        self,
        query: str,
        limit: int,
        entity_types: Sequence[EntityType] | None,
    ) -> list[SearchResult]:
        vector = await self.context.embedder.embed(prepare_for_embedding(query, is_query=True))
        hits = self.context.vector_store.search_similar(
            vector,
            limit=limit * _CHUNK_OVERFETCH,
            entity_types=entity_types,
        )
        return [
            SearchResult(
                entity_id=hit.entity_id,
                entity_type=hit.entity_type,
                title="",
                preview=hit.preview or "",
                score=hit.score,
                match_type="semantic",
            )
            for hit in collapse_to_entities(hits)
        ]
