"""SQLite engine for the vector store.

This module provides:
- Database: Connection manager with WAL mode, opened once at startup
- immediate_transaction: BEGIN IMMEDIATE writes with busy-retry
- corruption_guard: maps "not a database" / "malformed" errors to
  IndexCorruptionError so storage failures stay fatal and recognisable
"""

from __future__ import annotations

import time
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import event, text
from sqlalchemy.exc import DatabaseError, OperationalError
from sqlmodel import Session, SQLModel, create_engine

from quarry.core.errors import IndexCorruptionError

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = structlog.get_logger()

# Retry configuration for SQLite busy handling
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY = 0.1  # 100ms base
DEFAULT_RETRY_MAX_DELAY = 2.0  # 2s max

_CORRUPTION_MARKERS = (
    "file is not a database",
    "database disk image is malformed",
    "file is encrypted",
)


def _is_database_locked_error(error: Exception) -> bool:
    """Check if error is a SQLite database locked error."""
    error_str = str(error).lower()
    return "database is locked" in error_str or "database is busy" in error_str


def _is_corruption_error(error: Exception) -> bool:
    error_str = str(error).lower()
    return any(marker in error_str for marker in _CORRUPTION_MARKERS)


class Database:
    """SQLite connection manager with WAL mode.

    A single instance is owned by the search service for the process
    lifetime; the vector store borrows its engine.
    """

    def __init__(
        self,
        db_path: Path,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        retry_max_delay: float = DEFAULT_RETRY_MAX_DELAY,
    ) -> None:
        self.db_path = db_path
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._retry_max_delay = retry_max_delay
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.engine = self._create_engine()

    def _create_engine(self) -> Engine:
        engine = create_engine(
            f"sqlite:///{self.db_path}",
            connect_args={"check_same_thread": False},
            pool_pre_ping=True,
        )
        event.listen(engine, "connect", _configure_pragmas)
        return engine

    def create_all(self) -> None:
        """Create all tables from SQLModel metadata."""
        with self.corruption_guard():
            SQLModel.metadata.create_all(self.engine)

    @contextmanager
    def corruption_guard(self) -> Generator[None, None, None]:
        """Re-raise unreadable-file errors as IndexCorruptionError."""
        try:
            yield
        except DatabaseError as e:
            if _is_corruption_error(e):
                logger.error("database.corrupt", path=str(self.db_path), error=str(e))
                raise IndexCorruptionError.unreadable("vector", str(self.db_path), str(e)) from e
            raise

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """ORM session for reads."""
        with self.corruption_guard(), Session(self.engine) as session:
            yield session

    @contextmanager
    def immediate_transaction(
        self,
        max_retries: int | None = None,
    ) -> Generator[Session, None, None]:
        """
        Session with BEGIN IMMEDIATE for serialized writes.

        Acquiring the write lock is retried with exponential backoff on
        SQLite busy errors. The session commits on successful exit and
        rolls back on exception.

        Args:
            max_retries: Override default max retries (default: 3)
        """
        retries = max_retries if max_retries is not None else self._max_retries

        with self.corruption_guard(), Session(self.engine) as session:
            for attempt in range(retries + 1):  # +1 for initial attempt
                try:
                    session.execute(text("BEGIN IMMEDIATE"))
                    break
                except OperationalError as e:
                    if not _is_database_locked_error(e) or attempt >= retries:
                        raise
                    delay = min(
                        self._retry_base_delay * (2**attempt),
                        self._retry_max_delay,
                    )
                    logger.warning(
                        "sqlite_busy_retry",
                        attempt=attempt + 1,
                        max_retries=retries,
                        delay_sec=delay,
                    )
                    session.rollback()
                    time.sleep(delay)
            try:
                yield session
                session.commit()
            except Exception:
                session.rollback()
                raise

    def dispose(self) -> None:
        """Close pooled connections."""
        self.engine.dispose()


def _configure_pragmas(dbapi_conn: Any, _connection_record: Any) -> None:
    """Configure SQLite for WAL access and performance."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=30000")  # 30 second wait
    cursor.execute("PRAGMA synchronous=NORMAL")  # Safe with WAL
    cursor.execute("PRAGMA cache_size=-16000")  # 16MB cache
    cursor.close()
