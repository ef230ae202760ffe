"""Search module - hybrid keyword + semantic search engine.

This module provides:
- Keyword layer: Tantivy BM25 index with English stemming
- Semantic layer: chunked embeddings in SQLite, brute-force cosine search
- Embedding queue: debounced, content-hash gated re-embedding

Public API is in `quarry.search.ops`:
- SearchService: lifecycle, index/remove, search, reindex, status
- SearchContext, ReindexStats

Internal implementations are in `quarry.search._internal/`.
"""

from quarry.search.hybrid import HybridSearchService
from quarry.search.models import (
    EmbeddingRecord,
    EntityType,
    HybridSearchResult,
    SearchResult,
    SearchStatus,
    SimilarityResult,
)
from quarry.search.ops import ReindexStats, SearchContext, SearchService
from quarry.search.sources import EntitySource, InMemoryEntitySource, SqlEntitySource

__all__ = [
    # Public API (ops.py)
    "SearchService",
    "SearchContext",
    "ReindexStats",
    "HybridSearchService",
    # Sources
    "EntitySource",
    "InMemoryEntitySource",
    "SqlEntitySource",
    # Models
    "EmbeddingRecord",
    "EntityType",
    "HybridSearchResult",
    "SearchResult",
    "SearchStatus",
    "SimilarityResult",
]
