"""
Unit tests for the daily session engine.
"""

import asyncio
from datetime import datetime, timezone

import pytest

from src.challenge.errors import (
    AlreadyCompleted,
    EngineClosed,
    FetchFailure,
    NoQuestionsAvailable,
    ResetNotAllowed,
    SessionExpired,
    SessionNotStarted,
)
from src.challenge.models import SessionStatus
from src.challenge.session import SessionEngine
from src.challenge.stats import StatsReconciler
from src.challenge.store import SessionStore
from src.storage.base import MemoryKeyValueStore

USER = "learner-1"
NEXT_DAY = datetime(2024, 3, 16, 0, 0, 1, tzinfo=timezone.utc)


class SlowReadKeyValueStore(MemoryKeyValueStore):
    """Memory store that reads session records, then stalls before returning them."""

    def __init__(self, delay):
        super().__init__()
        self.delay = delay

    async def get(self, key):
        value = await super().get(key)
        if key.startswith("session_record"):
            await asyncio.sleep(self.delay)
        return value


@pytest.fixture
def engine(question_source, session_store, clock):
    return SessionEngine(USER, question_source, session_store, clock)


class TestStart:
    @pytest.mark.asyncio
    async def test_creates_and_persists(self, engine, question_source, session_store, clock):
        record = await engine.start()

        assert record.status is SessionStatus.IN_PROGRESS
        assert record.current_index == 0
        assert record.score == 0
        assert record.total == 5
        assert question_source.daily_calls == 1
        stored = await session_store.load_record(clock.current_day_key(USER))
        assert stored.to_store() == record.to_store()

    @pytest.mark.asyncio
    async def test_resume_after_restart(self, engine, question_source, session_store, clock):
        await engine.start()
        await engine.submit_answer("katė")
        await engine.submit_answer("wrong")
        engine.close()

        restarted = SessionEngine(USER, question_source, session_store, clock)
        record = await restarted.start()

        assert record.current_index == 2
        assert record.score == 1
        assert restarted.current_question.id == "q3"
        assert question_source.daily_calls == 1

    @pytest.mark.asyncio
    async def test_empty_question_set_is_completed(self, make_source, session_store, clock):
        engine = SessionEngine(USER, make_source([]), session_store, clock)
        record = await engine.start()
        assert record.is_completed

    @pytest.mark.asyncio
    async def test_concurrent_starts_share_one_fetch(self, engine, question_source):
        question_source.gate = asyncio.Event()

        first = asyncio.create_task(engine.start())
        second = asyncio.create_task(engine.start())
        await asyncio.sleep(0)
        question_source.gate.set()
        a, b = await asyncio.gather(first, second)

        assert question_source.daily_calls == 1
        assert a == b

    @pytest.mark.asyncio
    async def test_start_during_slow_read_joins_first(self, question_source, clock):
        store = SessionStore(SlowReadKeyValueStore(delay=0.05))
        engine = SessionEngine(USER, question_source, store, clock)

        first = asyncio.create_task(engine.start())
        await asyncio.sleep(0.04)
        second = asyncio.create_task(engine.start())
        await first
        await engine.submit_answer("katė")
        await second

        assert question_source.daily_calls == 1
        assert engine.record.current_index == 1
        stored = await store.load_record(clock.current_day_key(USER))
        assert stored.current_index == 1

    @pytest.mark.asyncio
    async def test_stale_read_never_rewinds_progress(self, question_source, clock):
        store = SessionStore(SlowReadKeyValueStore(delay=0.05))
        engine = SessionEngine(USER, question_source, store, clock)
        await engine.start()

        resuming = asyncio.create_task(engine.start())
        await asyncio.sleep(0.01)
        await engine.submit_answer("katė")
        record = await resuming

        assert record.current_index == 1
        assert engine.record.current_index == 1
        assert engine.current_question.id == "q2"
        assert question_source.daily_calls == 1

    @pytest.mark.asyncio
    async def test_fetch_failure_persists_nothing(self, engine, question_source, kv_backend):
        question_source.error = ConnectionError("offline")

        with pytest.raises(FetchFailure) as exc_info:
            await engine.start()

        assert exc_info.value.retryable is True
        assert isinstance(exc_info.value.cause, ConnectionError)
        assert len(kv_backend) == 0
        assert engine.record is None

        question_source.error = None
        record = await engine.start()
        assert record.total == 5
        assert question_source.daily_calls == 2

    @pytest.mark.asyncio
    async def test_result_for_stale_day_is_discarded(self, engine, question_source, wall_clock, kv_backend):
        question_source.gate = asyncio.Event()

        pending = asyncio.create_task(engine.start())
        await asyncio.sleep(0)
        wall_clock.set(NEXT_DAY)
        question_source.gate.set()
        record = await pending

        assert record.day_key.day.isoformat() == "2024-03-16"
        assert question_source.daily_calls == 2
        assert kv_backend.keys() == [
            "session_record:learner-1:2024-03-16",
            "incorrect_questions:learner-1:2024-03-16",
        ]

    @pytest.mark.asyncio
    async def test_close_during_fetch(self, engine, question_source, kv_backend):
        question_source.gate = asyncio.Event()

        pending = asyncio.create_task(engine.start())
        await asyncio.sleep(0)
        engine.close()
        question_source.gate.set()

        with pytest.raises(EngineClosed):
            await pending
        assert len(kv_backend) == 0

    @pytest.mark.asyncio
    async def test_store_failure_does_not_crash(self, question_source, failing_kv, clock):
        engine = SessionEngine(USER, question_source, SessionStore(failing_kv), clock)

        record = await engine.start()
        result = await engine.submit_answer("katė")

        assert record.total == 5
        assert result.was_correct


class TestSubmitAnswer:
    @pytest.mark.asyncio
    async def test_requires_start(self, engine):
        with pytest.raises(SessionNotStarted):
            await engine.submit_answer("katė")

    @pytest.mark.asyncio
    async def test_folds_diacritics(self, engine):
        await engine.start()
        result = await engine.submit_answer("  KATE ")
        assert result.was_correct
        assert result.correct_answer == "katė"
        assert engine.record.score == 1

    @pytest.mark.asyncio
    async def test_incorrect_answer_recorded(self, engine):
        await engine.start()
        result = await engine.submit_answer("šuo")
        assert not result.was_correct
        assert engine.record.incorrect_question_ids == ["q1"]
        assert engine.progress == pytest.approx(0.2)
        assert engine.remaining == 4

    @pytest.mark.asyncio
    async def test_completion_then_rejection(self, engine, session_store, clock):
        await engine.start()
        for answer in ["katė", "šuo", "namas", "knyga", "arbata"]:
            result = await engine.submit_answer(answer)

        assert result.is_completed
        assert engine.is_completed
        assert await engine.status() is SessionStatus.COMPLETED

        with pytest.raises(AlreadyCompleted):
            await engine.submit_answer("anything")
        stored = await session_store.load_record(clock.current_day_key(USER))
        assert stored.current_index == 5
        assert stored.score == 5

    @pytest.mark.asyncio
    async def test_concurrent_answers_apply_in_order(self, engine):
        await engine.start()
        results = await asyncio.gather(
            engine.submit_answer("katė"),
            engine.submit_answer("šuo"),
            engine.submit_answer("nope"),
        )
        assert [r.was_correct for r in results] == [True, True, False]
        assert engine.record.current_index == 3

    @pytest.mark.asyncio
    async def test_day_rollover_expires_session(self, engine, question_source, wall_clock):
        await engine.start()
        await engine.submit_answer("katė")
        wall_clock.set(NEXT_DAY)

        with pytest.raises(SessionExpired):
            await engine.submit_answer("šuo")
        assert engine.record is None

        record = await engine.start()
        assert record.current_index == 0
        assert question_source.daily_calls == 2

    @pytest.mark.asyncio
    async def test_outcomes_forwarded_to_reconciler(self, question_source, session_store, clock, stats_backend):
        reconciler = StatsReconciler(stats_backend, clock=clock)
        engine = SessionEngine(USER, question_source, session_store, clock, reconciler=reconciler)
        await engine.start()

        result = await engine.submit_answer("katė")
        await reconciler.wait_idle()

        assert result.stats.current_streak == 1
        assert stats_backend.submissions == [(USER, "q1", True)]


class TestStatusAndReview:
    @pytest.mark.asyncio
    async def test_status_progression(self, engine):
        assert await engine.status() is SessionStatus.NOT_STARTED
        await engine.start()
        assert await engine.status() is SessionStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_status_reads_store(self, engine, question_source, session_store, clock):
        await engine.start()
        fresh = SessionEngine(USER, question_source, session_store, clock)
        assert await fresh.status() is SessionStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_incorrect_questions(self, engine, question_source, session_store, clock):
        await engine.start()
        await engine.submit_answer("katė")
        await engine.submit_answer("wrong")
        await engine.submit_answer("also wrong")

        assert [q.id for q in await engine.incorrect_questions()] == ["q2", "q3"]

        fresh = SessionEngine(USER, question_source, session_store, clock)
        assert [q.id for q in await fresh.incorrect_questions()] == ["q2", "q3"]

    @pytest.mark.asyncio
    async def test_incorrect_questions_without_session(self, engine):
        assert await engine.incorrect_questions() == []


class TestReset:
    @pytest.mark.asyncio
    async def test_requires_developer_mode(self, engine):
        await engine.start()
        with pytest.raises(ResetNotAllowed):
            await engine.reset()

    @pytest.mark.asyncio
    async def test_forced_reset_starts_over(self, engine, question_source):
        await engine.start()
        for answer in ["katė", "šuo", "namas", "knyga", "arbata"]:
            await engine.submit_answer(answer)

        await engine.reset(force=True)

        assert await engine.status() is SessionStatus.NOT_STARTED
        record = await engine.start()
        assert record.status is SessionStatus.IN_PROGRESS
        assert record.current_index == 0
        assert question_source.daily_calls == 2

    @pytest.mark.asyncio
    async def test_dev_mode_allows_reset(self, question_source, session_store, clock):
        engine = SessionEngine(USER, question_source, session_store, clock, dev_mode=True)
        await engine.start()
        await engine.reset()
        assert engine.record is None


class TestPractice:
    @pytest.mark.asyncio
    async def test_practice_round(self, make_source, sample_questions, session_store, clock, kv_backend):
        source = make_source(category_questions={"animals": sample_questions[:2]})
        engine = SessionEngine(USER, source, session_store, clock)

        session = await engine.practice("animals", count=10)
        session.submit_answer("kate")
        result = session.submit_answer("cat")

        assert result.is_completed
        assert session.record.score == 1
        assert source.category_calls == [("animals", 10, None)]
        assert len(kv_backend) == 0

        with pytest.raises(AlreadyCompleted):
            session.submit_answer("again")

    @pytest.mark.asyncio
    async def test_empty_category(self, make_source, session_store, clock):
        engine = SessionEngine(USER, make_source(), session_store, clock)
        with pytest.raises(NoQuestionsAvailable):
            await engine.practice("unknown")

    @pytest.mark.asyncio
    async def test_closed_engine_rejects_practice(self, engine):
        engine.close()
        with pytest.raises(EngineClosed):
            await engine.practice("animals")


class TestVocabulary:
    @pytest.mark.asyncio
    async def test_multiple_choice_options_from_vocabulary(
        self, make_source, make_vocabulary, question_factory, session_store, clock
    ):
        source = make_source([question_factory("q1", "katė", options=["katė", "x", "y", "z"])])
        vocabulary = make_vocabulary(["katė", "šuo", "namas", "knyga", "arbata"])
        engine = SessionEngine(USER, source, session_store, clock, vocabulary=vocabulary)

        record = await engine.start()

        options = record.questions[0].options
        assert len(options) == 4
        assert "katė" in options
        assert not {"x", "y", "z"} & set(options)

    @pytest.mark.asyncio
    async def test_vocabulary_failure_keeps_server_options(
        self, make_source, make_vocabulary, question_factory, session_store, clock
    ):
        source = make_source([question_factory("q1", "katė", options=["katė", "šuo", "namas"])])
        vocabulary = make_vocabulary(error=ConnectionError("offline"))
        engine = SessionEngine(USER, source, session_store, clock, vocabulary=vocabulary)

        record = await engine.start()

        assert sorted(record.questions[0].options) == sorted(["katė", "šuo", "namas"])
