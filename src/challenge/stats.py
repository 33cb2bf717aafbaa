"""
Optimistic progress stats with background reconciliation.

Every answer updates the local copy immediately so the UI never waits on the
network. Outcomes are queued and flushed to the backend in order; once the
queue drains the backend's copy replaces the local one. A failed sync leaves
the optimistic copy and the queue in place until the next answer or an
explicit ``reconcile()``. With a store attached the queue is saved beside the
stats, so unsent answers survive a restart.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any

from loguru import logger

from .clock import SessionClock
from .models import UserProgressStats, clamp_streaks
from .protocols import StatsBackend
from .store import SessionStore


@dataclass(frozen=True)
class PendingOutcome:
    user_id: str
    question_id: str
    was_correct: bool


def _coerce_stats(payload: UserProgressStats | dict[str, Any]) -> UserProgressStats:
    if isinstance(payload, UserProgressStats):
        return payload
    return UserProgressStats.model_validate(payload)


class StatsReconciler:
    """Keeps one learner's stats, optimistic locally and authoritative remotely."""

    def __init__(
        self,
        backend: StatsBackend,
        *,
        user_id: str | None = None,
        clock: SessionClock | None = None,
        store: SessionStore | None = None,
        initial: UserProgressStats | None = None,
    ):
        self.backend = backend
        self.user_id = user_id
        self.clock = clock or SessionClock()
        self.store = store
        self._stats = clamp_streaks(initial or UserProgressStats())
        self._pending: deque[PendingOutcome] = deque()
        self._flush_lock = asyncio.Lock()
        self._sync_task: asyncio.Task | None = None
        self._queue_restored = False

    @property
    def stats(self) -> UserProgressStats:
        return self._stats

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def load(self, user_id: str | None = None) -> UserProgressStats:
        """Restore the cached copy for ``user_id`` from the store, if any."""
        user_id = user_id or self.user_id
        self.user_id = user_id
        if self.store is None or user_id is None:
            return self._stats
        cached = await self.store.load_stats(user_id)
        if cached is not None:
            self._stats = clamp_streaks(cached)
            logger.debug(f"Restored cached stats for {user_id}")

        if self._queue_restored:
            return self._stats
        self._queue_restored = True
        restored = []
        for item in await self.store.load_pending(user_id):
            try:
                restored.append(PendingOutcome(**item))
            except TypeError:
                logger.warning(f"Dropping unreadable queued outcome for {user_id}: {item}")
        if restored:
            # Outcomes recorded before load() stay behind the older ones.
            self._pending = deque([*restored, *self._pending])
            logger.info(f"Restored {len(restored)} unsent outcomes for {user_id}")
        return self._stats

    # =========================================================================
    # Optimistic path
    # =========================================================================

    def apply_outcome(self, was_correct: bool) -> UserProgressStats:
        """Apply one answer to the local copy and return the new stats."""
        today = self.clock.now().date()
        stats = self._stats

        if stats.day is not None and stats.day != today:
            stats = stats.model_copy(
                update={
                    "today_correct": 0,
                    "today_incorrect": 0,
                    "current_streak": 0,
                    "has_completed_today": False,
                }
            )

        first_of_day = stats.today_answered == 0
        current = stats.current_streak + 1 if was_correct else 0
        update: dict[str, Any] = {
            "day": today,
            "current_streak": current,
            "longest_streak": max(stats.longest_streak, current),
            "has_completed_today": True,
        }
        if was_correct:
            update["today_correct"] = stats.today_correct + 1
            update["total_correct"] = stats.total_correct + 1
        else:
            update["today_incorrect"] = stats.today_incorrect + 1
            update["total_incorrect"] = stats.total_incorrect + 1
        if first_of_day:
            update["total_completed"] = stats.total_completed + 1

        self._stats = clamp_streaks(stats.model_copy(update=update))
        return self._stats

    def record_outcome(self, user_id: str, question_id: str, was_correct: bool) -> UserProgressStats:
        """Apply optimistically, queue for the backend and kick off a background sync."""
        self.user_id = user_id
        stats = self.apply_outcome(was_correct)
        self._pending.append(PendingOutcome(user_id, question_id, was_correct))
        self._schedule_sync()
        return stats

    def _schedule_sync(self) -> None:
        if self._sync_task is not None and not self._sync_task.done():
            # The running flush drains the queue, including what was just added.
            return
        self._sync_task = asyncio.create_task(self._sync())

    async def _sync(self) -> None:
        while True:
            await self._persist()
            async with self._flush_lock:
                flushed = await self._flush()
            await self._persist()
            # Outcomes recorded during the last persist found this task still running.
            if not flushed or not self._pending:
                return

    # =========================================================================
    # Backend path
    # =========================================================================

    async def _flush(self) -> bool:
        """Send queued outcomes in order. Caller must hold ``_flush_lock``."""
        latest: UserProgressStats | None = None
        while self._pending:
            outcome = self._pending[0]
            try:
                response = await self.backend.submit_answer_outcome(
                    outcome.user_id, outcome.question_id, outcome.was_correct
                )
            except Exception as e:  # Optimistic copy stands; retried at the next natural point
                logger.warning(
                    f"Stats sync failed for question {outcome.question_id} "
                    f"({len(self._pending)} pending): {e}"
                )
                return False
            self._pending.popleft()
            if response is not None:
                try:
                    latest = _coerce_stats(response)
                except ValueError as e:
                    logger.warning(f"Ignoring unreadable stats response: {e}")

        if latest is not None:
            self._replace(latest)
            logger.debug("Local stats replaced with backend copy after sync")
        return True

    def _replace(self, stats: UserProgressStats) -> None:
        if stats.day is None:
            stats = stats.model_copy(update={"day": self.clock.now().date()})
        self._stats = clamp_streaks(stats)

    async def _persist(self) -> None:
        if self.store is None or self.user_id is None:
            return
        await self.store.save_stats(self.user_id, self._stats)
        await self.store.save_pending(self.user_id, [asdict(outcome) for outcome in self._pending])

    async def reconcile(self, user_id: str | None = None) -> UserProgressStats:
        """
        Flush pending outcomes, then adopt the backend's stats.

        On any failure the current optimistic copy is returned unchanged.
        """
        user_id = user_id or self.user_id
        if user_id is None:
            return self._stats
        self.user_id = user_id

        async with self._flush_lock:
            flushed = await self._flush()
            fresh = None
            if flushed:
                try:
                    fresh = _coerce_stats(await self.backend.get_stats(user_id))
                except Exception as e:
                    logger.warning(f"Could not fetch stats for {user_id}, keeping local copy: {e}")
            if fresh is not None:
                self._replace(fresh)

        # The queue may have shrunk even when the flush stopped early.
        await self._persist()
        if fresh is None:
            return self._stats
        logger.info(
            f"Stats reconciled for {user_id}: streak {self._stats.current_streak} "
            f"(longest {self._stats.longest_streak})"
        )
        return self._stats

    async def wait_idle(self) -> None:
        """Wait for the background sync, if any, to finish."""
        while self._sync_task is not None and not self._sync_task.done():
            await self._sync_task
