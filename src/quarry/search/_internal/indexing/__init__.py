"""Indexing engines: chunking, extraction, embedding, keyword and vector stores."""

from quarry.search._internal.indexing.chunker import DEFAULT_CHUNK_OPTIONS, ChunkOptions, chunk_text
from quarry.search._internal.indexing.embedder import DEFAULT_MODEL_NAME, Embedder, TextEmbedder
from quarry.search._internal.indexing.extractor import (
    content_hash,
    embeddable_text,
    entity_title,
    prepare_for_embedding,
    should_chunk,
)
from quarry.search._internal.indexing.keyword import KeywordIndex
from quarry.search._internal.indexing.queue import EmbeddingQueue
from quarry.search._internal.indexing.vectors import VectorStore, cosine_similarity, pack_vector, unpack_vector

__all__ = [
    "DEFAULT_CHUNK_OPTIONS",
    "DEFAULT_MODEL_NAME",
    "ChunkOptions",
    "Embedder",
    "EmbeddingQueue",
    "KeywordIndex",
    "TextEmbedder",
    "VectorStore",
    "chunk_text",
    "content_hash",
    "cosine_similarity",
    "embeddable_text",
    "entity_title",
    "pack_vector",
    "prepare_for_embedding",
    "should_chunk",
    "unpack_vector",
]
