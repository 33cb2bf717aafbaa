"""
Collaborator contracts the engine depends on.

ChallengeApiClient implements all four against the REST backend; tests use
in-memory fakes.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from .models import QuestionItem, UserProgressStats


@runtime_checkable
class QuestionSource(Protocol):
    async def fetch_daily_questions(self, user_id: str) -> list[QuestionItem]:
        ...

    async def fetch_category_questions(
        self,
        category: str,
        count: int,
        difficulty: str | None = None,
    ) -> list[QuestionItem]:
        ...


@runtime_checkable
class VocabularySource(Protocol):
    async def fetch_vocabulary(self) -> list[str]:
        ...


@runtime_checkable
class StatsBackend(Protocol):
    """Authoritative stats store. ``submit_answer_outcome`` may return fresh stats."""

    async def submit_answer_outcome(
        self,
        user_id: str,
        question_id: str,
        was_correct: bool,
    ) -> UserProgressStats | dict[str, Any] | None:
        ...

    async def get_stats(self, user_id: str) -> UserProgressStats:
        ...


@runtime_checkable
class ServerTimeSource(Protocol):
    async def fetch_server_time(self) -> datetime:
        ...
