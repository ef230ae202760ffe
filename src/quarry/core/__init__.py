"""Core module exports."""

from quarry.core.errors import (
    ConfigError,
    EmbeddingFailureError,
    ErrorCode,
    IndexCorruptionError,
    InternalError,
    NotInitializedError,
    QuarryError,
    QuerySyntaxError,
    ReindexInProgressError,
)
from quarry.core.logging import (
    clear_request_id,
    configure_logging,
    get_logger,
    get_request_id,
    set_request_id,
)

__all__ = [
    # Errors
    "ConfigError",
    "EmbeddingFailureError",
    "ErrorCode",
    "IndexCorruptionError",
    "InternalError",
    "NotInitializedError",
    "QuarryError",
    "QuerySyntaxError",
    "ReindexInProgressError",
    # Logging
    "clear_request_id",
    "configure_logging",
    "get_logger",
    "get_request_id",
    "set_request_id",
]
