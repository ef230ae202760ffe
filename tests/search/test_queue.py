"""Tests for the debounced embedding queue (queue.py).

Tests cover:
- Debounce coalescing (last text wins, one model run)
- Superseded or removed in-flight jobs write nothing
- Content-hash gating
- Chunked records (contiguous indices, entity hash on every chunk)
- flush / destroy / remove_entity
- Failure isolation between entities
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import numpy as np
import pytest

from quarry.search._internal.indexing import EmbeddingQueue, TextEmbedder, VectorStore, content_hash
from quarry.search._internal.indexing.queue import job_key
from quarry.search.models import EntityType

DEBOUNCE = 0.05


class _RecordingEmbed:
    """embed_fn that records inputs and fails on texts containing 'boom'."""

    def __init__(self, inner: Callable[[str], np.ndarray]) -> None:
        self.inner = inner
        self.calls: list[str] = []

    def __call__(self, text: str) -> np.ndarray:
        self.calls.append(text)
        if "boom" in text:
            raise RuntimeError("model failure")
        return self.inner(text)


class _SlowEmbed:
    """Async embed_fn whose latency depends on the text."""

    def __init__(self, inner: Callable[[str], np.ndarray], delays: dict[str, float]) -> None:
        self.inner = inner
        self.delays = delays

    async def __call__(self, text: str) -> np.ndarray:
        for marker, delay in self.delays.items():
            if marker in text:
                await asyncio.sleep(delay)
        return self.inner(text)


@pytest.fixture
def recorder(hash_embed: Callable[[str], np.ndarray]) -> _RecordingEmbed:
    return _RecordingEmbed(hash_embed)


async def _make_queue(
    embed_fn: Callable[[str], object],
    vector_store: VectorStore,
    debounce_sec: float = DEBOUNCE,
) -> EmbeddingQueue:
    embedder = TextEmbedder("test-model", embed_fn=embed_fn)
    await embedder.initialize()
    return EmbeddingQueue(embedder, vector_store, debounce_sec=debounce_sec)


def _long_text() -> str:
    return "".join(f"Paragraph {i} discusses the migration plan in detail. " * 4 + "\n\n" for i in range(20))


class TestJobKey:
    def test_key_format(self) -> None:
        assert job_key("abc", EntityType.NOTE) == "note:abc"
        assert job_key("abc", "task") == "task:abc"


class TestDebounce:
    @pytest.mark.asyncio
    async def test_rapid_enqueues_coalesce(self, recorder: _RecordingEmbed, vector_store: VectorStore) -> None:
        queue = await _make_queue(recorder, vector_store)

        queue.enqueue("n1", EntityType.NOTE, "first draft")
        queue.enqueue("n1", EntityType.NOTE, "second draft")
        queue.enqueue("n1", EntityType.NOTE, "final draft")
        assert queue.pending_count == 1

        await asyncio.sleep(DEBOUNCE * 4)

        assert recorder.calls == ["passage: final draft"]
        records = vector_store.get_by_entity("n1")
        assert [r.text_preview for r in records] == ["final draft"]

    @pytest.mark.asyncio
    async def test_distinct_entities_processed_independently(
        self, recorder: _RecordingEmbed, vector_store: VectorStore
    ) -> None:
        queue = await _make_queue(recorder, vector_store)

        queue.enqueue("n1", EntityType.NOTE, "alpha")
        queue.enqueue("t1", EntityType.TASK, "beta")
        assert queue.pending_count == 2

        await asyncio.sleep(DEBOUNCE * 4)

        assert vector_store.count() == 2
        assert queue.pending_count == 0

    @pytest.mark.asyncio
    async def test_enqueue_after_run_schedules_again(self, recorder: _RecordingEmbed, vector_store: VectorStore) -> None:
        queue = await _make_queue(recorder, vector_store)

        queue.enqueue("n1", EntityType.NOTE, "version one")
        await asyncio.sleep(DEBOUNCE * 4)
        queue.enqueue("n1", EntityType.NOTE, "version two")
        await asyncio.sleep(DEBOUNCE * 4)

        assert vector_store.get_content_hash("n1") == content_hash("version two")

    @pytest.mark.asyncio
    async def test_same_text_enqueued_twice_keeps_records(
        self, recorder: _RecordingEmbed, vector_store: VectorStore
    ) -> None:
        queue = await _make_queue(recorder, vector_store)

        queue.enqueue("n1", EntityType.NOTE, "unchanged body")
        await asyncio.sleep(DEBOUNCE * 4)
        before = [(r.id, r.created_at) for r in vector_store.get_by_entity("n1")]

        queue.enqueue("n1", EntityType.NOTE, "unchanged body")
        await asyncio.sleep(DEBOUNCE * 4)
        after = [(r.id, r.created_at) for r in vector_store.get_by_entity("n1")]

        assert len(before) == 1
        assert after == before
        assert recorder.calls == ["passage: unchanged body"]


class TestInFlightJobs:
    """Jobs whose model call is still running when the entity changes again."""

    @pytest.mark.asyncio
    async def test_newer_text_wins_over_slower_older_call(
        self, hash_embed: Callable[[str], np.ndarray], vector_store: VectorStore
    ) -> None:
        queue = await _make_queue(_SlowEmbed(hash_embed, {"v1": 0.3, "v2": 0.01}), vector_store)

        queue.enqueue("n1", EntityType.NOTE, "v1 text")
        await asyncio.sleep(0.1)
        queue.enqueue("n1", EntityType.NOTE, "v2 text")
        await asyncio.sleep(0.6)

        records = vector_store.get_by_entity("n1")
        assert [r.content_hash for r in records] == [content_hash("v2 text")]
        assert [r.text_preview for r in records] == ["v2 text"]

    @pytest.mark.asyncio
    async def test_remove_during_model_call_leaves_no_vectors(
        self, hash_embed: Callable[[str], np.ndarray], vector_store: VectorStore
    ) -> None:
        queue = await _make_queue(_SlowEmbed(hash_embed, {"text": 0.2}), vector_store)

        queue.enqueue("n1", EntityType.NOTE, "text")
        await asyncio.sleep(0.1)
        queue.remove_entity("n1")
        await asyncio.sleep(0.4)

        assert vector_store.get_by_entity("n1") == []

    @pytest.mark.asyncio
    async def test_enqueue_after_remove_is_embedded(
        self, hash_embed: Callable[[str], np.ndarray], vector_store: VectorStore
    ) -> None:
        queue = await _make_queue(_SlowEmbed(hash_embed, {}), vector_store)

        queue.remove_entity("n1")
        queue.enqueue("n1", EntityType.NOTE, "restored text")
        await asyncio.sleep(DEBOUNCE * 4)

        assert vector_store.get_content_hash("n1") == content_hash("restored text")


class TestFlushAndDestroy:
    @pytest.mark.asyncio
    async def test_flush_processes_pending_now(self, recorder: _RecordingEmbed, vector_store: VectorStore) -> None:
        queue = await _make_queue(recorder, vector_store, debounce_sec=60)

        queue.enqueue("n1", EntityType.NOTE, "urgent text")
        await queue.flush()

        assert queue.pending_count == 0
        assert vector_store.get_content_hash("n1") == content_hash("urgent text")

    @pytest.mark.asyncio
    async def test_flush_with_nothing_pending(self, recorder: _RecordingEmbed, vector_store: VectorStore) -> None:
        queue = await _make_queue(recorder, vector_store)
        await queue.flush()
        assert recorder.calls == []

    @pytest.mark.asyncio
    async def test_destroy_drops_pending(self, recorder: _RecordingEmbed, vector_store: VectorStore) -> None:
        queue = await _make_queue(recorder, vector_store)

        queue.enqueue("n1", EntityType.NOTE, "never embedded")
        queue.destroy()
        await asyncio.sleep(DEBOUNCE * 4)

        assert recorder.calls == []
        assert vector_store.count() == 0
        assert queue.pending_count == 0

    @pytest.mark.asyncio
    async def test_remove_entity_cancels_and_deletes(self, recorder: _RecordingEmbed, vector_store: VectorStore) -> None:
        queue = await _make_queue(recorder, vector_store)
        await queue.process_entity("n1", EntityType.NOTE, "stored text")

        queue.enqueue("n1", EntityType.NOTE, "pending edit")
        queue.remove_entity("n1")
        await asyncio.sleep(DEBOUNCE * 4)

        assert vector_store.get_by_entity("n1") == []
        assert recorder.calls == ["passage: stored text"]


class TestProcessEntity:
    @pytest.mark.asyncio
    async def test_unchanged_text_skips_model(self, recorder: _RecordingEmbed, vector_store: VectorStore) -> None:
        queue = await _make_queue(recorder, vector_store)

        await queue.process_entity("n1", EntityType.NOTE, "same text")
        await queue.process_entity("n1", EntityType.NOTE, "same text")

        assert len(recorder.calls) == 1

    @pytest.mark.asyncio
    async def test_changed_text_replaces_records(self, recorder: _RecordingEmbed, vector_store: VectorStore) -> None:
        queue = await _make_queue(recorder, vector_store)

        await queue.process_entity("n1", EntityType.NOTE, _long_text())
        assert len(vector_store.get_by_entity("n1")) > 1

        await queue.process_entity("n1", EntityType.NOTE, "now short")
        records = vector_store.get_by_entity("n1")
        assert len(records) == 1
        assert records[0].content_hash == content_hash("now short")

    @pytest.mark.asyncio
    async def test_long_text_is_chunked(self, recorder: _RecordingEmbed, vector_store: VectorStore) -> None:
        queue = await _make_queue(recorder, vector_store)
        text = _long_text()

        await queue.process_entity("n1", EntityType.NOTE, text)

        records = vector_store.get_by_entity("n1")
        assert [r.chunk_index for r in records] == list(range(len(records)))
        assert {r.content_hash for r in records} == {content_hash(text)}
        assert len({r.chunk_hash for r in records}) == len(records)
        assert all(len(r.text_preview or "") <= 200 for r in records)
        assert all(call.startswith("passage: ") for call in recorder.calls)

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_vectors(self, recorder: _RecordingEmbed, vector_store: VectorStore) -> None:
        queue = await _make_queue(recorder, vector_store)
        await queue.process_entity("n1", EntityType.NOTE, "good text")

        with pytest.raises(Exception, match="model failure"):
            await queue.process_entity("n1", EntityType.NOTE, "boom text")

        assert vector_store.get_content_hash("n1") == content_hash("good text")


class TestFailureIsolation:
    @pytest.mark.asyncio
    async def test_one_failure_does_not_block_others(
        self, recorder: _RecordingEmbed, vector_store: VectorStore
    ) -> None:
        queue = await _make_queue(recorder, vector_store, debounce_sec=60)

        queue.enqueue("bad", EntityType.NOTE, "boom")
        queue.enqueue("good", EntityType.NOTE, "fine text")
        await queue.flush()

        assert vector_store.get_content_hash("bad") is None
        assert vector_store.get_content_hash("good") == content_hash("fine text")
