"""Tests for hybrid search (hybrid.py).

Tests cover:
- Empty-query short circuit (no dependency touched)
- Keyword/semantic dedup
- Best chunk per entity on the semantic path
- One path failing while the other succeeds
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import numpy as np
import pytest

from quarry.search._internal.indexing import EmbeddingQueue
from quarry.search.hybrid import HybridSearchService, collapse_to_entities
from quarry.search.models import EntityType, SearchResult, SimilarityResult
from quarry.search.ops import SearchContext


def _similarity(entity_id: str, score: float, chunk_index: int = 0) -> SimilarityResult:
    return SimilarityResult(
        entity_id=entity_id,
        entity_type=EntityType.NOTE,
        chunk_index=chunk_index,
        preview=f"{entity_id}-{chunk_index}",
        score=score,
    )


def _keyword_hit(entity_id: str) -> SearchResult:
    return SearchResult(
        entity_id=entity_id,
        entity_type=EntityType.NOTE,
        title=entity_id,
        preview="",
        score=1.0,
        match_type="keyword",
    )


def _mock_context() -> MagicMock:
    ctx = MagicMock()
    ctx.keyword_index.search = MagicMock(return_value=[])
    ctx.vector_store.search_similar = MagicMock(return_value=[])
    ctx.embedder.embed = AsyncMock(return_value=np.ones(4, dtype=np.float32))
    return ctx


class TestCollapse:
    def test_keeps_best_chunk_per_entity(self) -> None:
        hits = [_similarity("a", 0.9, 1), _similarity("b", 0.8), _similarity("a", 0.5, 0)]

        collapsed = collapse_to_entities(hits)
        assert [(h.entity_id, h.chunk_index) for h in collapsed] == [("a", 1), ("b", 0)]


class TestEmptyQuery:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("query", ["", "   ", "\n"])
    async def test_no_dependency_invoked(self, query: str) -> None:
        ctx = _mock_context()
        service = HybridSearchService(ctx)

        result = await service.search(query)

        assert result.keyword == []
        assert result.semantic == []
        ctx.keyword_index.search.assert_not_called()
        ctx.embedder.embed.assert_not_called()
        ctx.vector_store.search_similar.assert_not_called()


class TestMerging:
    @pytest.mark.asyncio
    async def test_semantic_hits_in_keyword_results_dropped(self) -> None:
        ctx = _mock_context()
        ctx.keyword_index.search.return_value = [_keyword_hit("a")]
        ctx.vector_store.search_similar.return_value = [_similarity("a", 0.9), _similarity("b", 0.7)]
        service = HybridSearchService(ctx)

        result = await service.search("query")

        assert [r.entity_id for r in result.keyword] == ["a"]
        assert [r.entity_id for r in result.semantic] == ["b"]
        assert result.semantic[0].match_type == "semantic"
        assert result.semantic[0].title == ""
        assert result.semantic[0].preview == "b-0"

    @pytest.mark.asyncio
    async def test_query_embedded_with_query_prefix(self) -> None:
        ctx = _mock_context()
        service = HybridSearchService(ctx)

        await service.search("budget review")

        ctx.embedder.embed.assert_awaited_once_with("query: budget review")

    @pytest.mark.asyncio
    async def test_limit_bounds_each_path(self) -> None:
        ctx = _mock_context()
        ctx.vector_store.search_similar.return_value = [_similarity(f"e{i}", 1 - i / 10) for i in range(8)]
        service = HybridSearchService(ctx)

        result = await service.search("q", limit=3)

        assert len(result.semantic) == 3
        assert ctx.keyword_index.search.call_args.kwargs["limit"] == 3

    @pytest.mark.asyncio
    async def test_entity_types_passed_to_both_paths(self) -> None:
        ctx = _mock_context()
        service = HybridSearchService(ctx)

        await service.search("q", entity_types=[EntityType.TASK])

        assert ctx.keyword_index.search.call_args.kwargs["entity_types"] == [EntityType.TASK]
        assert ctx.vector_store.search_similar.call_args.kwargs["entity_types"] == [EntityType.TASK]


class TestPartialFailure:
    @pytest.mark.asyncio
    async def test_semantic_failure_keeps_keyword(self) -> None:
        ctx = _mock_context()
        ctx.keyword_index.search.return_value = [_keyword_hit("a")]
        ctx.embedder.embed.side_effect = RuntimeError("model down")
        service = HybridSearchService(ctx)

        result = await service.search("q")

        assert [r.entity_id for r in result.keyword] == ["a"]
        assert result.semantic == []

    @pytest.mark.asyncio
    async def test_keyword_failure_keeps_semantic(self) -> None:
        ctx = _mock_context()
        ctx.keyword_index.search.side_effect = RuntimeError("index gone")
        ctx.vector_store.search_similar.return_value = [_similarity("b", 0.5)]
        service = HybridSearchService(ctx)

        result = await service.search("q")

        assert result.keyword == []
        assert [r.entity_id for r in result.semantic] == ["b"]


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_real_components(self, context: SearchContext) -> None:
        await context.embedder.initialize()
        queue = EmbeddingQueue(context.embedder, context.vector_store, debounce_sec=0)

        context.keyword_index.upsert("n1", EntityType.NOTE, "Garden", "tomato seedlings need water")
        await queue.process_entity("n1", EntityType.NOTE, "tomato seedlings need water")
        await queue.process_entity("n2", EntityType.NOTE, "water the tomato plants daily")

        result = await HybridSearchService(context).search("tomato water")

        assert [r.entity_id for r in result.keyword] == ["n1"]
        assert [r.entity_id for r in result.semantic] == ["n2"]
