"""Shared fixtures for search tests."""

from __future__ import annotations

from collections.abc import Callable, Generator
from pathlib import Path

import numpy as np
import pytest

from quarry.search._internal.db import Database
from quarry.search._internal.indexing import KeywordIndex, TextEmbedder, VectorStore
from quarry.search.ops import SearchContext


@pytest.fixture
def temp_db(temp_dir: Path) -> Generator[Database, None, None]:
    """Create a temporary database with schema."""
    db = Database(temp_dir / "vectors.db")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def vector_store(temp_db: Database) -> VectorStore:
    return VectorStore(temp_db)


@pytest.fixture
def keyword_index(temp_dir: Path) -> KeywordIndex:
    """Create a fresh KeywordIndex for testing."""
    return KeywordIndex(temp_dir / "keyword_index")


@pytest.fixture
def embedder(hash_embed: Callable[[str], np.ndarray]) -> TextEmbedder:
    """Embedder backed by the hashing fake (call initialize() in the test)."""
    return TextEmbedder("test-model", embed_fn=hash_embed)


@pytest.fixture
def context(keyword_index: KeywordIndex, vector_store: VectorStore, embedder: TextEmbedder) -> SearchContext:
    return SearchContext(
        keyword_index=keyword_index,
        vector_store=vector_store,
        embedder=embedder,
        db=vector_store.db,
    )
