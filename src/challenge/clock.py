"""
Learning-day clock.

The day boundary is fixed at UTC 00:00:00 regardless of device timezone, so
every learner's session unlocks at the same instant. The clock owns no
timer; callers poll ``time_until_next_day()`` (e.g. once per second).
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone

from loguru import logger

from .models import LearningDayKey, TimeRemaining

NowFn = Callable[[], datetime]
ServerTimeFn = Callable[[], Awaitable[datetime]]


def _system_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class SessionClock:
    """Computes day keys and the countdown to the next learning day."""

    def __init__(self, now_fn: NowFn | None = None):
        self._now_fn = now_fn or _system_now
        self._offset = timedelta(0)

    @property
    def offset(self) -> timedelta:
        """Server minus device time, applied to every read."""
        return self._offset

    def now(self) -> datetime:
        return _as_utc(self._now_fn()) + self._offset

    def current_day_key(self, user_id: str) -> LearningDayKey:
        return LearningDayKey(user_id=user_id, day=self.now().date())

    def next_boundary(self) -> datetime:
        now = self.now()
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return midnight + timedelta(days=1)

    def time_until_next_day(self) -> TimeRemaining:
        remaining = self.next_boundary() - self.now()
        total_seconds = max(0, int(remaining.total_seconds()))
        hours, rest = divmod(total_seconds, 3600)
        minutes, seconds = divmod(rest, 60)
        return TimeRemaining(
            hours=hours,
            minutes=minutes,
            seconds=seconds,
            total_seconds=total_seconds,
        )

    async def sync_with_server(self, fetch_server_time: ServerTimeFn) -> timedelta:
        """
        Align the clock with the backend to compensate for device skew.

        A failed fetch falls back to unadjusted local time; nothing is raised.
        """
        try:
            server_now = _as_utc(await fetch_server_time())
        except Exception as e:  # Any collaborator failure means "no adjustment"
            logger.warning(f"Failed to fetch server time, using device time: {e}")
            self._offset = timedelta(0)
            return self._offset

        self._offset = server_now - _as_utc(self._now_fn())
        logger.debug(f"Server clock offset set to {self._offset.total_seconds():.1f}s")
        return self._offset


def format_remaining(remaining: TimeRemaining) -> str:
    """Compact countdown label: ``5h 3m 2s``, ``3m 2s`` or ``2s``."""
    if remaining.hours > 0:
        return f"{remaining.hours}h {remaining.minutes}m {remaining.seconds}s"
    if remaining.minutes > 0:
        return f"{remaining.minutes}m {remaining.seconds}s"
    return f"{remaining.seconds}s"
