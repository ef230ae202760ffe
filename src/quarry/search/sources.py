"""Entity sources for full reindex.

A reindex needs every live entity of every type. The search engine does not
own those entities; a source hands them over as mappings (one per row).

- SqlEntitySource: reads the application's SQLite database directly
- InMemoryEntitySource: a dict of lists, for tests and embedding hosts
"""

from __future__ import annotations

from collections.abc import Awaitable, Iterable, Mapping
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import structlog
from sqlalchemy import Engine, create_engine, inspect, text

from quarry.search.models import EntityType

log = structlog.get_logger()

ENTITY_TABLES: dict[EntityType, str] = {
    EntityType.TASK: "tasks",
    EntityType.NOTE: "notes",
    EntityType.MEETING: "meetings",
    EntityType.PROJECT: "projects",
    EntityType.STAKEHOLDER: "stakeholders",
}


@runtime_checkable
class EntitySource(Protocol):
    """Supplies all live entities of a type (sync or async)."""

    def fetch_all(
        self, entity_type: EntityType
    ) -> Iterable[Mapping[str, Any]] | Awaitable[Iterable[Mapping[str, Any]]]: ...


class SqlEntitySource:
    """Reads entity tables from the application database.

    Soft-deleted rows (``deleted_at`` set) are skipped; tables without a
    ``deleted_at`` column are read in full. Missing tables yield nothing.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    @classmethod
    def from_path(cls, db_path: Path | str) -> SqlEntitySource:
        return cls(create_engine(f"sqlite:///{db_path}"))

    def fetch_all(self, entity_type: EntityType) -> list[dict[str, Any]]:
        table = ENTITY_TABLES[EntityType(entity_type)]
        inspector = inspect(self.engine)
        if not inspector.has_table(table):
            log.warning("entity_source.missing_table", table=table)
            return []

        columns = {c["name"] for c in inspector.get_columns(table)}
        # Table names come from ENTITY_TABLES, never from input
        sql = f"SELECT * FROM {table}"
        if "deleted_at" in columns:
            sql += " WHERE deleted_at IS NULL"

        with self.engine.connect() as conn:
            rows = conn.execute(text(sql)).mappings().all()
        return [dict(row) for row in rows]

    def dispose(self) -> None:
        self.engine.dispose()


class InMemoryEntitySource:
    def __init__(self, entities: Mapping[EntityType, Iterable[Mapping[str, Any]]] | None = None) -> None:
        self._entities: dict[EntityType, list[Mapping[str, Any]]] = {
            EntityType(k): list(v) for k, v in (entities or {}).items()
        }

    def fetch_all(self, entity_type: EntityType) -> list[Mapping[str, Any]]:
        return list(self._entities.get(EntityType(entity_type), []))
