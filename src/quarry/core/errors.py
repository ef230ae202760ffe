"""Quarry error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Search / index
- 9xxx: Internal

Propagation policy:
- NOT_INITIALIZED and INDEX_CORRUPTION are raised to the caller unchanged.
- QUERY_SYNTAX and EMBEDDING_FAILURE are absorbed where they occur
  (empty result / logged skip) and only surface in logs.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002
    CONFIG_MISSING_REQUIRED = 2003
    CONFIG_FILE_NOT_FOUND = 2004

    # Search / index (3xxx)
    EMBEDDER_NOT_INITIALIZED = 3001
    INDEX_CORRUPTION = 3002
    QUERY_SYNTAX_ERROR = 3003
    EMBEDDING_FAILURE = 3004
    REINDEX_IN_PROGRESS = 3005
    SERVICE_NOT_INITIALIZED = 3006

    # Internal (9xxx)
    INTERNAL_ERROR = 9001
    INTERNAL_TIMEOUT = 9002


@dataclass(frozen=True, slots=True)
class QuarryError(Exception):
    """Base error with structured context for callers and logs."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'INDEX_CORRUPTION')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON responses."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(QuarryError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )

    @classmethod
    def file_not_found(cls, path: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_FILE_NOT_FOUND,
            message=f"Config file not found: {path}",
            details={"path": path},
        )


class NotInitializedError(QuarryError):
    """A component was used before its one-time setup completed."""

    @classmethod
    def embedder(cls, model_name: str) -> "NotInitializedError":
        return cls(
            code=ErrorCode.EMBEDDER_NOT_INITIALIZED,
            message="Embedder not initialized. Call initialize() first.",
            details={"model": model_name},
        )

    @classmethod
    def service(cls) -> "NotInitializedError":
        return cls(
            code=ErrorCode.SERVICE_NOT_INITIALIZED,
            message="Search service not initialized. Call initialize() first.",
        )


class IndexCorruptionError(QuarryError):
    """Underlying store is unreadable. Fatal, no recovery attempted."""

    @classmethod
    def unreadable(cls, store: str, path: str, reason: str) -> "IndexCorruptionError":
        return cls(
            code=ErrorCode.INDEX_CORRUPTION,
            message=f"{store} store at {path} is unreadable: {reason}",
            details={"store": store, "path": path, "reason": reason},
        )


class QuerySyntaxError(QuarryError):
    """Malformed search query. Recovered locally as an empty result."""

    @classmethod
    def unparseable(cls, query: str, reason: str) -> "QuerySyntaxError":
        return cls(
            code=ErrorCode.QUERY_SYNTAX_ERROR,
            message=f"Could not parse query: {reason}",
            details={"query": query, "reason": reason},
        )


class EmbeddingFailureError(QuarryError):
    """The embedding model failed for one input."""

    @classmethod
    def model_call(cls, model_name: str, reason: str) -> "EmbeddingFailureError":
        return cls(
            code=ErrorCode.EMBEDDING_FAILURE,
            message=f"Embedding model '{model_name}' failed: {reason}",
            retryable=True,
            details={"model": model_name, "reason": reason},
        )


class ReindexInProgressError(QuarryError):
    """A full reindex sweep is already running."""

    @classmethod
    def running(cls) -> "ReindexInProgressError":
        return cls(
            code=ErrorCode.REINDEX_IN_PROGRESS,
            message="A full reindex is already running",
            retryable=True,
        )


class InternalError(QuarryError):
    """Internal/unexpected errors."""

    @classmethod
    def unexpected(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Internal error: {reason}",
            details=details,
        )
