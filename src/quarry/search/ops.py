"""Search service: the single entry point for indexing and querying.

The service owns every search component for the process lifetime:

- Database (SQLite, WAL) and the VectorStore on top of it
- KeywordIndex (Tantivy directory beside the database)
- Embedder (shared model instance)
- EmbeddingQueue and HybridSearchService built from the above

Usage::

    service = SearchService(load_config())
    await service.initialize()

    service.index_entity(task["id"], EntityType.TASK, task)
    result = await service.search("quarterly budget")

    await service.reindex_all(SqlEntitySource.from_path(app_db), progress=print)
"""

from __future__ import annotations

import asyncio
import inspect
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from quarry.config.models import QuarryConfig
from quarry.core.errors import NotInitializedError, ReindexInProgressError
from quarry.core.logging import clear_request_id, set_request_id
from quarry.search._internal.db import Database
from quarry.search._internal.indexing import (
    ChunkOptions,
    Embedder,
    EmbeddingQueue,
    KeywordIndex,
    TextEmbedder,
    VectorStore,
    embeddable_text,
    entity_title,
)
from quarry.search.hybrid import HybridSearchService
from quarry.search.models import EntityType, HybridSearchResult, SearchStatus
from quarry.search.sources import EntitySource

log = structlog.get_logger()

# Receives integer percentages 0..100
ProgressSink = Callable[[int], None]


@dataclass
class SearchContext:
    """Components shared by the queue and hybrid search."""

    keyword_index: KeywordIndex
    vector_store: VectorStore
    embedder: Embedder
    db: Database | None = None


@dataclass
class ReindexStats:
    """Statistics from a full reindex."""

    entities_total: int
    entities_indexed: int
    entities_failed: int
    duration_seconds: float


class SearchService:
    """
    Facade over keyword indexing, embedding and hybrid search.

    SERIALIZATION:
    - _reindex_lock: only ONE reindex_all() at a time; a second concurrent
      call fails fast with ReindexInProgressError
    """

    def __init__(
        self,
        config: QuarryConfig | None = None,
        context: SearchContext | None = None,
        embedder: Embedder | None = None,
    ) -> None:
        self.config = config or QuarryConfig()
        self._context = context
        self._embedder = embedder
        self._queue: EmbeddingQueue | None = None
        self._hybrid: HybridSearchService | None = None
        self._reindex_lock = asyncio.Lock()
        self._initialized = False

    @property
    def context(self) -> SearchContext | None:
        return self._context

    @property
    def queue(self) -> EmbeddingQueue | None:
        return self._queue

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Open both stores, load the embedder, build queue and search. Idempotent."""
        if self._initialized:
            return

        start = time.monotonic()
        if self._context is None:
            self._context = self._build_context()
        context = self._context

        if context.db is not None:
            context.db.create_all()
        context.keyword_index.open()
        await context.embedder.initialize()

        chunking = self.config.chunking
        self._queue = EmbeddingQueue(
            context.embedder,
            context.vector_store,
            debounce_sec=self.config.embedding.debounce_sec,
            chunk_options=ChunkOptions(
                max_tokens=chunking.max_tokens,
                overlap_tokens=chunking.overlap_tokens,
                min_chunk_size=chunking.min_chunk_size,
            ),
        )
        self._hybrid = HybridSearchService(context)
        self._initialized = True

        log.info(
            "search_service.initialized",
            data_dir=str(self.config.storage.data_path),
            elapsed_s=round(time.monotonic() - start, 2),
        )

    def _components(self) -> tuple[SearchContext, EmbeddingQueue]:
        if self._context is None or self._queue is None:
            raise NotInitializedError.service()
        return self._context, self._queue

    def _build_context(self) -> SearchContext:
        storage = self.config.storage
        db = Database(storage.db_path)
        return SearchContext(
            keyword_index=KeywordIndex(storage.keyword_path),
            vector_store=VectorStore(db),
            embedder=self._embedder or TextEmbedder(self.config.embedding.model_name),
            db=db,
        )

    def index_entity(self, entity_id: str, entity_type: EntityType | str, entity: Any) -> None:
        """Index an entity after a create or update.

        The keyword document is replaced before this returns; the embedding
        is updated later by the debounced queue. Entities with no searchable
        text are skipped.
        """
        if not self._initialized or self._context is None or self._queue is None:
            log.debug("search_service.index_skipped", entity_id=entity_id, reason="not_initialized")
            return

        entity_type = EntityType(entity_type)
        text = embeddable_text(entity, entity_type)
        if not text:
            return

        self._context.keyword_index.upsert(entity_id, entity_type, entity_title(entity), text)
        self._queue.enqueue(entity_id, entity_type, text)

    def remove_entity(self, entity_id: str) -> None:
        """Drop an entity from both indexes and cancel its pending embedding."""
        if not self._initialized or self._context is None or self._queue is None:
            return
        self._context.keyword_index.remove(entity_id)
        self._queue.remove_entity(entity_id)

    async def search(
        self,
        query: str,
        limit: int | None = None,
        entity_types: Sequence[EntityType] | None = None,
    ) -> HybridSearchResult:
        """Hybrid search. Returns an empty result before initialization."""
        if self._hybrid is None:
            return HybridSearchResult()

        search_cfg = self.config.search
        effective = search_cfg.default_limit if limit is None else limit
        effective = max(1, min(effective, search_cfg.max_limit))
        set_request_id()
        try:
            return await self._hybrid.search(query, limit=effective, entity_types=entity_types)
        finally:
            clear_request_id()

    async def reindex_all(
        self,
        source: EntitySource,
        progress: ProgressSink | None = None,
    ) -> ReindexStats:
        """
        Rebuild both indexes from scratch.

        Pending embedding jobs are flushed first, then both stores are
        cleared and every live entity from ``source`` is re-indexed in
        batches. ``progress`` receives an integer percentage after each
        batch (100 once done, also for an empty source).

        Raises:
            ReindexInProgressError: another reindex is running.
        """
        if self._reindex_lock.locked():
            raise ReindexInProgressError.running()

        async with self._reindex_lock:
            set_request_id()
            try:
                return await self._reindex(source, progress)
            finally:
                clear_request_id()

    async def _reindex(self, source: EntitySource, progress: ProgressSink | None) -> ReindexStats:
        await self.initialize()
        context, queue = self._components()

        start = time.monotonic()
        await queue.flush()
        context.keyword_index.clear()
        context.vector_store.clear()

        entities = await self._gather_entities(source)
        total = len(entities)
        log.info("reindex.started", entities=total)

        indexed = failed = 0
        batch_size = self.config.reindex.batch_size
        if total == 0 and progress is not None:
            progress(100)

        for offset in range(0, total, batch_size):
            for entity_type, entity in entities[offset : offset + batch_size]:
                try:
                    if await self._reindex_one(entity_type, entity):
                        indexed += 1
                except Exception as e:
                    failed += 1
                    log.error(
                        "reindex.entity_failed",
                        entity_id=str(entity.get("id")),
                        entity_type=entity_type.value,
                        error=str(e),
                    )

            done = min(offset + batch_size, total)
            percent = done * 100 // total
            log.debug("reindex.progress", done=done, total=total, percent=percent)
            if progress is not None:
                progress(percent)

        stats = ReindexStats(
            entities_total=total,
            entities_indexed=indexed,
            entities_failed=failed,
            duration_seconds=time.monotonic() - start,
        )
        log.info(
            "reindex.complete",
            total=total,
            indexed=indexed,
            failed=failed,
            elapsed_s=round(stats.duration_seconds, 2),
        )
        return stats

    async def _gather_entities(self, source: EntitySource) -> list[tuple[EntityType, Mapping[str, Any]]]:
        entities: list[tuple[EntityType, Mapping[str, Any]]] = []
        for entity_type in EntityType:
            rows = source.fetch_all(entity_type)
            if inspect.isawaitable(rows):
                rows = await rows
            entities.extend((entity_type, row) for row in rows)
        return entities

    async def _reindex_one(self, entity_type: EntityType, entity: Mapping[str, Any]) -> bool:
        context, queue = self._components()
        entity_id = str(entity["id"])
        text = embeddable_text(entity, entity_type)
        if not text:
            return False
        context.keyword_index.upsert(entity_id, entity_type, entity_title(entity), text)
        await queue.process_entity(entity_id, entity_type, text)
        return True

    def get_status(self) -> SearchStatus:
        if not self._initialized or self._context is None:
            return SearchStatus(ready=False, indexed_count=0)
        return SearchStatus(
            ready=self._context.embedder.is_ready,
            indexed_count=self._context.vector_store.count(),
        )

    async def shutdown(self) -> None:
        """Drop pending embedding jobs and release the database."""
        if self._queue is not None:
            self._queue.destroy()
        if self._context is not None and self._context.db is not None:
            self._context.db.dispose()
        self._initialized = False
        self._hybrid = None
        log.info("search_service.shutdown")
