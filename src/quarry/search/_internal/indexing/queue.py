"""Debounced embedding queue.

Rapid edits to the same entity (typing in the note editor) collapse into one
embedding run: each enqueue restarts a per-entity timer and replaces the
pending text, so only the last text is embedded.

Processing is gated by the entity's content hash; unchanged text costs a
single SQLite lookup and no model call.
"""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field

import structlog

from quarry.search._internal.indexing.chunker import DEFAULT_CHUNK_OPTIONS, ChunkOptions, chunk_text
from quarry.search._internal.indexing.embedder import Embedder
from quarry.search._internal.indexing.extractor import content_hash, prepare_for_embedding, should_chunk
from quarry.search._internal.indexing.vectors import VectorStore, pack_vector
from quarry.search.models import TEXT_PREVIEW_MAX_CHARS, EmbeddingRecord, EntityType

logger = structlog.get_logger()


def job_key(entity_id: str, entity_type: EntityType | str) -> str:
    return f"{EntityType(entity_type).value}:{entity_id}"


@dataclass
class QueuedJob:
    """Latest pending text for one entity, plus its debounce timer."""

    entity_id: str
    entity_type: EntityType
    text: str
    generation: int = 0
    task: asyncio.Task[None] | None = field(default=None, repr=False)


class EmbeddingQueue:
    """
    Per-entity debounced embedding.

    Design:
    - One asyncio timer task per entity key; re-enqueue cancels and replaces it
    - A timer removes its job from the pending map before processing, so a
      later enqueue schedules a fresh run instead of cancelling in-flight work
    - Every enqueue and removal stamps the entity with a new generation; a
      running job whose generation is no longer current drops its result, so
      an older model call never overwrites newer text or a removal
    - One entity's failure is logged and never affects another entity
    """

    def __init__(
        self,
        embedder: Embedder,
        vector_store: VectorStore,
        debounce_sec: float = 2.0,
        chunk_options: ChunkOptions = DEFAULT_CHUNK_OPTIONS,
    ) -> None:
        self.embedder = embedder
        self.vector_store = vector_store
        self.debounce_sec = debounce_sec
        self.chunk_options = chunk_options
        self._pending: dict[str, QueuedJob] = {}
        self._inflight: set[asyncio.Task[None]] = set()
        self._generation = itertools.count(1)
        self._current: dict[str, int] = {}

    def _stamp(self, entity_id: str) -> int:
        generation = next(self._generation)
        self._current[entity_id] = generation
        return generation

    def is_current(self, entity_id: str, generation: int) -> bool:
        """True if no enqueue or removal for the entity followed ``generation``."""
        return self._current.get(entity_id) == generation

    @property
    def pending_count(self) -> int:
        """Jobs waiting on their debounce timer."""
        return len(self._pending)

    def enqueue(self, entity_id: str, entity_type: EntityType | str, text: str) -> None:
        """Schedule embedding after the debounce delay (last text wins).

        Must be called with a running event loop.
        """
        loop = asyncio.get_running_loop()
        key = job_key(entity_id, entity_type)

        existing = self._pending.get(key)
        if existing is not None and existing.task is not None:
            existing.task.cancel()

        job = QueuedJob(
            entity_id=entity_id,
            entity_type=EntityType(entity_type),
            text=text,
            generation=self._stamp(entity_id),
        )
        self._pending[key] = job
        job.task = loop.create_task(self._debounced(key))
        logger.debug("embedding_queue.enqueued", key=key, pending=len(self._pending))

    async def _debounced(self, key: str) -> None:
        await asyncio.sleep(self.debounce_sec)

        job = self._pending.get(key)
        current = asyncio.current_task()
        if job is None or job.task is not current:
            return
        del self._pending[key]

        if current is not None:
            self._inflight.add(current)
        try:
            await self._run_job(job)
        finally:
            if current is not None:
                self._inflight.discard(current)

    async def _run_job(self, job: QueuedJob) -> None:
        try:
            await self.process_entity(job.entity_id, job.entity_type, job.text, generation=job.generation)
        except Exception as e:
            logger.error(
                "embedding_queue.failed",
                entity_id=job.entity_id,
                entity_type=job.entity_type.value,
                error=str(e),
            )
        finally:
            if self.is_current(job.entity_id, job.generation):
                del self._current[job.entity_id]

    def remove_entity(self, entity_id: str) -> None:
        """Cancel pending jobs for the entity and delete its vectors now.

        A job already past its debounce delay finishes its model call but
        writes nothing.
        """
        self._stamp(entity_id)
        for key in [k for k, job in self._pending.items() if job.entity_id == entity_id]:
            job = self._pending.pop(key)
            if job.task is not None:
                job.task.cancel()
        self.vector_store.delete_by_entity(entity_id)

    async def flush(self) -> None:
        """Process every pending job now, then wait for in-flight jobs."""
        jobs = list(self._pending.values())
        self._pending.clear()
        for job in jobs:
            if job.task is not None:
                job.task.cancel()

        if jobs:
            logger.debug("embedding_queue.flush", jobs=len(jobs))
        for job in jobs:
            await self._run_job(job)

        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    def destroy(self) -> None:
        """Cancel all pending timers without running their jobs."""
        for job in self._pending.values():
            if job.task is not None:
                job.task.cancel()
        dropped = len(self._pending)
        self._pending.clear()
        if dropped:
            logger.info("embedding_queue.destroyed", dropped=dropped)

    async def process_entity(
        self,
        entity_id: str,
        entity_type: EntityType | str,
        text: str,
        generation: int | None = None,
    ) -> None:
        """Embed an entity's text and replace its vector records.

        Skipped when the text hash matches the stored fingerprint. The model
        runs before the old records are deleted, so a failed call leaves the
        previous vectors (and their fingerprint) in place for the next try.

        With a ``generation`` (queued jobs), nothing is written if a newer
        enqueue or a removal for the entity happened during the model call.
        """
        entity_type = EntityType(entity_type)
        digest = content_hash(text)

        if self.vector_store.get_content_hash(entity_id) == digest:
            logger.debug("embedding_queue.skip_unchanged", entity_id=entity_id)
            return

        if not text.strip():
            self.vector_store.delete_by_entity(entity_id)
            return

        chunks = chunk_text(text, self.chunk_options) if should_chunk(text) else [text]
        # Every window may fall under min_chunk_size; keep the entity searchable
        chunks = chunks or [text]

        vectors = await self.embedder.embed_batch([prepare_for_embedding(c, is_query=False) for c in chunks])
        if generation is not None and not self.is_current(entity_id, generation):
            logger.debug("embedding_queue.superseded", entity_id=entity_id, generation=generation)
            return

        self.vector_store.delete_by_entity(entity_id)
        for index, (chunk, vector) in enumerate(zip(chunks, vectors, strict=True)):
            self.vector_store.upsert(
                EmbeddingRecord(
                    entity_id=entity_id,
                    entity_type=entity_type.value,
                    chunk_index=index,
                    content_hash=digest,
                    chunk_hash=content_hash(chunk),
                    text_preview=chunk[:TEXT_PREVIEW_MAX_CHARS],
                    vector=pack_vector(vector),
                )
            )

        logger.debug("embedding_queue.embedded", entity_id=entity_id, chunks=len(chunks))

