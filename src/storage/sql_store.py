"""
SQLAlchemy-backed key-value store.

Default location: ~/.lingo/store.db (SQLite). Any SQLAlchemy URL works; the
table is created on first use. Blocking database calls run in a worker thread.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from loguru import logger
from sqlalchemy import DateTime, String, Text, create_engine, delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    pass


class KeyValueEntry(Base):
    """One stored value."""

    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


def _create_engine(url: str) -> Engine:
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True)
    # Calls arrive from worker threads; an in-memory database must share one connection.
    connect_args = {"check_same_thread": False}
    if url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(url, connect_args=connect_args, poolclass=StaticPool)
    prefix = "sqlite:///"
    if url.startswith(prefix):
        Path(url[len(prefix):]).expanduser().parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, connect_args=connect_args)


class SqlKeyValueStore:
    """Stores JSON-encoded values in the ``kv_entries`` table."""

    def __init__(self, database_url: str | None = None, engine: Engine | None = None):
        if engine is None:
            engine = _create_engine(database_url or "sqlite:///:memory:")
        self.engine = engine
        Base.metadata.create_all(bind=self.engine)
        self._sessions = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)
        logger.debug(f"SqlKeyValueStore initialized at {self.engine.url}")

    def _read(self, key: str) -> Any | None:
        with self._sessions() as session:
            raw = session.scalar(select(KeyValueEntry.value).where(KeyValueEntry.key == key))
        return json.loads(raw) if raw is not None else None

    def _write(self, key: str, value: Any) -> None:
        encoded = json.dumps(value, ensure_ascii=False)
        with self._sessions() as session:
            self._upsert(session, key, encoded)
            session.commit()

    @staticmethod
    def _upsert(session: Session, key: str, encoded: str) -> None:
        entry = session.get(KeyValueEntry, key)
        now = datetime.now(timezone.utc)
        if entry is None:
            session.add(KeyValueEntry(key=key, value=encoded, updated_at=now))
        else:
            entry.value = encoded
            entry.updated_at = now

    def _remove(self, key: str) -> None:
        with self._sessions() as session:
            session.execute(delete(KeyValueEntry).where(KeyValueEntry.key == key))
            session.commit()

    async def get(self, key: str) -> Any | None:
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, value: Any) -> None:
        await asyncio.to_thread(self._write, key, value)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._remove, key)

    def close(self) -> None:
        self.engine.dispose()
