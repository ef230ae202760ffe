"""Database layer for the vector store."""

from quarry.search._internal.db.database import Database

__all__ = [
    "Database",
]
