"""
Day-scoped session persistence.

Every artifact lives under a key built from a LearningDayKey, so a new UTC
day simply misses and yesterday's data is never consulted again. Backend
failures are logged and treated as cache misses: the engine re-fetches rather
than crashing.
"""

from __future__ import annotations

from typing import Any

from loguru import logger
from pydantic import ValidationError

from src.storage.base import KeyValueStore

from .errors import CacheMiss
from .models import LearningDayKey, SessionRecord, UserProgressStats

RECORD_PREFIX = "session_record"
INCORRECT_PREFIX = "incorrect_questions"
STATS_PREFIX = "stats"
PENDING_PREFIX = "pending_outcomes"


def record_key(day_key: LearningDayKey) -> str:
    return f"{RECORD_PREFIX}:{day_key.storage_suffix}"


def incorrect_key(day_key: LearningDayKey) -> str:
    return f"{INCORRECT_PREFIX}:{day_key.storage_suffix}"


def stats_key(user_id: str) -> str:
    return f"{STATS_PREFIX}:{user_id}"


def pending_key(user_id: str) -> str:
    return f"{PENDING_PREFIX}:{user_id}"


class SessionStore:
    """Reads and writes session records and cached stats through a KeyValueStore."""

    def __init__(self, backend: KeyValueStore):
        self.backend = backend

    async def _get(self, key: str) -> Any | None:
        try:
            return await self.backend.get(key)
        except Exception as e:  # Backend failure degrades to a miss
            logger.warning(f"Store read failed for {key}: {e}")
            return None

    async def _set(self, key: str, value: Any) -> bool:
        try:
            await self.backend.set(key, value)
            return True
        except Exception as e:  # Backend failure is logged, never raised
            logger.warning(f"Store write failed for {key}: {e}")
            return False

    async def _delete(self, key: str) -> bool:
        try:
            await self.backend.delete(key)
            return True
        except Exception as e:
            logger.warning(f"Store delete failed for {key}: {e}")
            return False

    # =========================================================================
    # Session records
    # =========================================================================

    async def _require_record(self, day_key: LearningDayKey) -> SessionRecord:
        key = record_key(day_key)
        data = await self._get(key)
        if data is None:
            raise CacheMiss(key)
        try:
            record = SessionRecord.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Discarding corrupt session record {key}: {e.error_count()} errors")
            raise CacheMiss(key) from e
        if record.day_key != day_key:
            logger.warning(f"Session record under {key} belongs to {record.day_key}; ignoring")
            raise CacheMiss(key)
        return record

    async def load_record(self, day_key: LearningDayKey) -> SessionRecord | None:
        """Cached record for ``day_key``, or None on miss, failure or corruption."""
        try:
            record = await self._require_record(day_key)
        except CacheMiss as miss:
            logger.debug(f"Cache miss for {miss}")
            return None
        logger.debug(f"Cache hit for {record_key(day_key)} (index {record.current_index}/{record.total})")
        return record

    async def save_record(self, record: SessionRecord) -> bool:
        saved = await self._set(record_key(record.day_key), record.to_store())
        if saved:
            # Kept beside the record so a review list survives even a corrupt record.
            await self._set(incorrect_key(record.day_key), list(record.incorrect_question_ids))
        return saved

    async def load_incorrect_ids(self, day_key: LearningDayKey) -> list[str]:
        data = await self._get(incorrect_key(day_key))
        if not isinstance(data, list):
            return []
        return [str(item) for item in data]

    async def clear_day(self, day_key: LearningDayKey) -> None:
        """Remove every artifact stored for ``day_key``."""
        for key in (record_key(day_key), incorrect_key(day_key)):
            await self._delete(key)
        logger.info(f"Cleared session artifacts for {day_key}")

    # =========================================================================
    # Stats
    # =========================================================================

    async def load_stats(self, user_id: str) -> UserProgressStats | None:
        data = await self._get(stats_key(user_id))
        if data is None:
            return None
        try:
            return UserProgressStats.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Discarding corrupt cached stats for {user_id}: {e.error_count()} errors")
            return None

    async def save_stats(self, user_id: str, stats: UserProgressStats) -> bool:
        return await self._set(stats_key(user_id), stats.model_dump(mode="json"))

    # =========================================================================
    # Unsent answer outcomes
    # =========================================================================

    async def load_pending(self, user_id: str) -> list[dict[str, Any]]:
        """Outcomes queued for the backend by an earlier run, oldest first."""
        data = await self._get(pending_key(user_id))
        if not isinstance(data, list):
            return []
        return [item for item in data if isinstance(item, dict)]

    async def save_pending(self, user_id: str, outcomes: list[dict[str, Any]]) -> bool:
        if not outcomes:
            return await self._delete(pending_key(user_id))
        return await self._set(pending_key(user_id), outcomes)
