"""
Key-value backends for day-scoped session state.

- base: KeyValueStore protocol and the in-memory store
- json_store: one JSON file per key
- sql_store: SQLAlchemy table (SQLite by default)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import KeyValueStore, MemoryKeyValueStore
from .json_store import JsonFileKeyValueStore
from .sql_store import SqlKeyValueStore

if TYPE_CHECKING:
    from config import Settings


def build_store(settings: Settings) -> KeyValueStore:
    """Create the backend selected by ``settings.store_backend``."""
    if settings.store_backend == "memory":
        return MemoryKeyValueStore()
    if settings.store_backend == "sql":
        return SqlKeyValueStore(settings.database_url)
    return JsonFileKeyValueStore(settings.store_dir)


__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "SqlKeyValueStore",
    "build_store",
]
