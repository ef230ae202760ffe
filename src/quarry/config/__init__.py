"""Config module exports."""

from quarry.config.loader import load_config
from quarry.config.models import (
    ChunkingConfig,
    EmbeddingConfig,
    LoggingConfig,
    QuarryConfig,
    ReindexConfig,
    SearchConfig,
    StorageConfig,
)

__all__ = [
    "load_config",
    "QuarryConfig",
    "ChunkingConfig",
    "EmbeddingConfig",
    "LoggingConfig",
    "ReindexConfig",
    "SearchConfig",
    "StorageConfig",
]
