"""Text -> vector embedding capability.

The embedding model is a black box: ``initialize()`` once, then ``embed`` /
``embed_batch``. Two ways to supply it:

- default: fastembed (ONNX-based) ``TextEmbedding``, loaded lazily on
  ``initialize()`` and run in a worker thread so the event loop stays free
- ``embed_fn``: any sync or async ``str -> vector`` callable (tests, hosts
  that already own a model)

One embedder instance is meant to be shared for the process lifetime.
"""

from __future__ import annotations

import asyncio
import inspect
import os
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Protocol, runtime_checkable

import numpy as np
import structlog

from quarry.core.errors import EmbeddingFailureError, NotInitializedError

log = structlog.get_logger()

DEFAULT_MODEL_NAME = "BAAI/bge-small-en-v1.5"

Vector = np.ndarray[Any, np.dtype[np.float32]]
# Sync or async; the return value is anything np.asarray accepts
EmbedFn = Callable[[str], Awaitable[Any] | Any]


@runtime_checkable
class Embedder(Protocol):
    """Capability interface consumed by the queue and the hybrid search."""

    @property
    def is_ready(self) -> bool: ...

    async def initialize(self) -> None: ...

    async def embed(self, text: str) -> Vector: ...

    async def embed_batch(self, texts: Sequence[str]) -> list[Vector]: ...


def _detect_providers() -> list[str]:
    """Detect available ONNX Runtime execution providers."""
    try:
        import onnxruntime as ort  # type: ignore[import-not-found]

        available = set(ort.get_available_providers())
    except Exception:
        return []

    providers: list[str] = []
    if "CUDAExecutionProvider" in available:
        providers.append("CUDAExecutionProvider")
    providers.append("CPUExecutionProvider")
    return providers


class TextEmbedder:
    """Embedder backed by fastembed or an injected callable."""

    def __init__(self, model_name: str = DEFAULT_MODEL_NAME, *, embed_fn: EmbedFn | None = None) -> None:
        self.model_name = model_name
        self._custom_fn = embed_fn
        self._embed_fn: EmbedFn | None = None
        self._init_lock = asyncio.Lock()

    @property
    def is_ready(self) -> bool:
        return self._embed_fn is not None

    async def initialize(self) -> None:
        """Load the model (or adopt the injected callable). Idempotent."""
        if self._embed_fn is not None:
            return
        async with self._init_lock:
            if self._embed_fn is not None:
                return
            if self._custom_fn is not None:
                self._embed_fn = self._custom_fn
                return
            loop = asyncio.get_running_loop()
            model = await loop.run_in_executor(None, self._load_model)

            def _run(text: str) -> Vector:
                return next(iter(model.embed([text])))

            async def _embed_in_thread(text: str) -> Vector:
                return await asyncio.get_running_loop().run_in_executor(None, _run, text)

            self._embed_fn = _embed_in_thread

    def _load_model(self) -> Any:
        """Construct the fastembed model with GPU auto-detect."""
        from fastembed import TextEmbedding  # type: ignore[import-not-found]

        providers = _detect_providers()
        threads = max(1, (os.cpu_count() or 4) // 2)
        start = time.monotonic()
        kwargs: dict[str, Any] = {
            "model_name": self.model_name,
            "threads": threads,
        }
        if providers:
            kwargs["providers"] = providers
        try:
            model = TextEmbedding(**kwargs)
        except Exception as e:
            log.error("embedder.model_load_failed", model=self.model_name, exc_info=True)
            raise EmbeddingFailureError.model_call(self.model_name, str(e)) from e
        log.info(
            "embedder.model_loaded",
            model=self.model_name,
            providers=providers or ["CPUExecutionProvider"],
            threads=threads,
            elapsed_s=round(time.monotonic() - start, 2),
        )
        return model

    async def embed(self, text: str) -> Vector:
        """Embed one text.

        Raises:
            NotInitializedError: initialize() has not completed.
            EmbeddingFailureError: the model call failed.
        """
        if self._embed_fn is None:
            raise NotInitializedError.embedder(self.model_name)
        try:
            result = self._embed_fn(text)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            raise EmbeddingFailureError.model_call(self.model_name, str(e)) from e
        return np.asarray(result, dtype=np.float32)

    async def embed_batch(self, texts: Sequence[str]) -> list[Vector]:
        """Embed texts one at a time, in order.

        Sequential, so peak memory stays at one text during large reindexes.
        """
        if self._embed_fn is None:
            raise NotInitializedError.embedder(self.model_name)
        results: list[Vector] = []
        for text in texts:
            results.append(await self.embed(text))
        return results
