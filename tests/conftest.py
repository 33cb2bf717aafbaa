"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests:
in-memory fakes for the question source, vocabulary source and stats
backend, plus a controllable clock.
"""
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.challenge.clock import SessionClock  # noqa: E402
from src.challenge.models import QuestionItem, UserProgressStats  # noqa: E402
from src.challenge.store import SessionStore  # noqa: E402
from src.storage.base import MemoryKeyValueStore  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: End-to-end engine flows over in-memory fakes")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


# =============================================================================
# Fakes
# =============================================================================


class MutableClock:
    """Wall clock the test can move."""

    def __init__(self, now: datetime):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def set(self, now: datetime) -> None:
        self.current = now


class FakeQuestionSource:
    """QuestionSource that serves fixed question lists and counts calls."""

    def __init__(self, questions=None, category_questions=None):
        self.questions = list(questions or [])
        self.category_questions = dict(category_questions or {})
        self.daily_calls = 0
        self.category_calls = []
        self.error = None
        self.gate = None  # asyncio.Event holding the fetch open

    async def fetch_daily_questions(self, user_id):
        self.daily_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return [q.model_copy(deep=True) for q in self.questions]

    async def fetch_category_questions(self, category, count, difficulty=None):
        self.category_calls.append((category, count, difficulty))
        if self.error is not None:
            raise self.error
        return [q.model_copy(deep=True) for q in self.category_questions.get(category, [])[:count]]


class FakeVocabularySource:
    def __init__(self, words=None, error=None):
        self.words = list(words or [])
        self.error = error
        self.calls = 0

    async def fetch_vocabulary(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.words)


class FakeStatsBackend:
    """
    Authoritative stats backend.

    Keeps its own counters and returns them after every submission. Tests
    edit ``server_stats`` to simulate answers made on another device.
    """

    def __init__(self):
        self.submissions = []
        self.server_stats = UserProgressStats()
        self.fail_submit = False
        self.fail_get = False

    async def submit_answer_outcome(self, user_id, question_id, was_correct):
        if self.fail_submit:
            raise ConnectionError("backend unreachable")
        self.submissions.append((user_id, question_id, was_correct))
        stats = self.server_stats
        current = stats.current_streak + 1 if was_correct else 0
        self.server_stats = stats.model_copy(
            update={
                "current_streak": current,
                "longest_streak": max(stats.longest_streak, current),
                "total_correct": stats.total_correct + (1 if was_correct else 0),
                "total_incorrect": stats.total_incorrect + (0 if was_correct else 1),
            }
        )
        return self.server_stats

    async def get_stats(self, user_id):
        if self.fail_get:
            raise ConnectionError("backend unreachable")
        return self.server_stats


class FailingKeyValueStore:
    """Backend whose every call raises."""

    async def get(self, key):
        raise OSError("disk unavailable")

    async def set(self, key, value):
        raise OSError("disk unavailable")

    async def delete(self, key):
        raise OSError("disk unavailable")


def make_question(qid, answer, kind="multiple_choice", options=None, prompt=None):
    return QuestionItem(
        id=qid,
        kind=kind,
        prompt_sentence=prompt or f"Translate: {answer}",
        correct_answer=answer,
        options=options,
    )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def noon():
    return datetime(2024, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def wall_clock(noon):
    return MutableClock(noon)


@pytest.fixture
def clock(wall_clock):
    return SessionClock(now_fn=wall_clock)


@pytest.fixture
def sample_questions():
    """Five fill-in-the-blank questions with Lithuanian answers."""
    answers = ["katė", "šuo", "namas", "knyga", "arbata"]
    return [
        make_question(f"q{i}", answer, kind="fill_blank")
        for i, answer in enumerate(answers, start=1)
    ]


@pytest.fixture
def question_source(sample_questions):
    return FakeQuestionSource(sample_questions)


@pytest.fixture
def stats_backend():
    return FakeStatsBackend()


@pytest.fixture
def kv_backend():
    return MemoryKeyValueStore()


@pytest.fixture
def session_store(kv_backend):
    return SessionStore(kv_backend)


@pytest.fixture
def make_source():
    return FakeQuestionSource


@pytest.fixture
def make_vocabulary():
    return FakeVocabularySource


@pytest.fixture
def failing_kv():
    return FailingKeyValueStore()


@pytest.fixture
def question_factory():
    return make_question

