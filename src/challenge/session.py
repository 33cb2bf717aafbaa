"""
Daily session engine.

One learner gets one resumable question set per UTC day. The engine looks up
today's record in the SessionStore first and only asks the question source
when nothing is cached, so a restart mid-session resumes exactly where the
learner left off without re-fetching or double scoring.

State machine per day key:

    NOT_STARTED --start()--> IN_PROGRESS --last answer--> COMPLETED
         ^                                                    |
         +--------------- reset() (developer only) -----------+

Usage:
    engine = SessionEngine(user_id, api_client, SessionStore(backend))
    record = await engine.start()
    result = await engine.submit_answer("katė")
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any

from loguru import logger
from pydantic import ValidationError

from .clock import SessionClock
from .errors import (
    AlreadyCompleted,
    EngineClosed,
    FetchFailure,
    NoQuestionsAvailable,
    ResetNotAllowed,
    SessionExpired,
    SessionNotStarted,
    StaleKeyDiscard,
)
from .models import (
    AnswerResult,
    LearningDayKey,
    QuestionItem,
    SessionRecord,
    SessionStatus,
)
from .protocols import QuestionSource, VocabularySource
from .questions import QuestionBuilder
from .stats import StatsReconciler
from .store import SessionStore
from .text import answers_match

DEFAULT_PRACTICE_COUNT = 10


def _coerce_questions(payload: Sequence[Any]) -> list[QuestionItem]:
    try:
        return [
            item if isinstance(item, QuestionItem) else QuestionItem.model_validate(item)
            for item in payload
        ]
    except ValidationError as e:
        raise FetchFailure("Question source returned malformed questions", cause=e) from e


def _grade(record: SessionRecord, answer: str) -> tuple[SessionRecord, QuestionItem, bool]:
    """Score ``answer`` against the current question and return the advanced copy."""
    if record.is_completed:
        raise AlreadyCompleted(f"Session {record.day_key} is already completed")
    question = record.questions[record.current_index]
    was_correct = answers_match(answer, question.correct_answer)
    updated = record.model_copy(deep=True)
    updated.advance(was_correct)
    return updated, question, was_correct


class PracticeSession:
    """
    Ad-hoc category practice.

    Same answer semantics as the daily session, but nothing is persisted and
    it is not scoped to a day key. Outcomes still count towards stats.
    """

    def __init__(
        self,
        user_id: str,
        category: str,
        record: SessionRecord,
        reconciler: StatsReconciler | None = None,
    ):
        self.user_id = user_id
        self.category = category
        self.record = record
        self.reconciler = reconciler

    @property
    def current_question(self) -> QuestionItem | None:
        return self.record.current_question

    @property
    def is_completed(self) -> bool:
        return self.record.is_completed

    @property
    def progress(self) -> float:
        return self.record.progress

    @property
    def remaining(self) -> int:
        return self.record.total - self.record.current_index

    def submit_answer(self, answer: str) -> AnswerResult:
        self.record, question, was_correct = _grade(self.record, answer)
        stats = None
        if self.reconciler is not None:
            stats = self.reconciler.record_outcome(self.user_id, question.id, was_correct)
        return AnswerResult(
            was_correct=was_correct,
            submitted_answer=answer,
            correct_answer=question.correct_answer,
            record=self.record,
            stats=stats,
        )


class SessionEngine:
    """Drives one learner's daily session."""

    def __init__(
        self,
        user_id: str,
        source: QuestionSource,
        store: SessionStore,
        clock: SessionClock | None = None,
        *,
        reconciler: StatsReconciler | None = None,
        vocabulary: VocabularySource | None = None,
        builder: QuestionBuilder | None = None,
        dev_mode: bool = False,
    ):
        self.user_id = user_id
        self.source = source
        self.store = store
        self.clock = clock or SessionClock()
        self.reconciler = reconciler
        self.vocabulary = vocabulary
        self.builder = builder or QuestionBuilder()
        self.dev_mode = dev_mode

        self._record: SessionRecord | None = None
        self._inflight: dict[LearningDayKey, asyncio.Task[SessionRecord]] = {}
        self._answer_lock = asyncio.Lock()
        self._vocabulary_pool: list[str] | None = None
        self._closed = False

    # =========================================================================
    # Read-only views
    # =========================================================================

    @property
    def record(self) -> SessionRecord | None:
        return self._record

    @property
    def current_question(self) -> QuestionItem | None:
        return self._record.current_question if self._record else None

    @property
    def is_completed(self) -> bool:
        return self._record is not None and self._record.is_completed

    @property
    def progress(self) -> float:
        return self._record.progress if self._record else 0.0

    @property
    def remaining(self) -> int:
        if self._record is None:
            return 0
        return self._record.total - self._record.current_index

    async def status(self) -> SessionStatus:
        """Status of today's session, consulting the store if nothing is loaded."""
        day_key = self.clock.current_day_key(self.user_id)
        if self._record is not None and self._record.day_key == day_key:
            return self._record.status
        cached = await self.store.load_record(day_key)
        return cached.status if cached else SessionStatus.NOT_STARTED

    async def incorrect_questions(self) -> list[QuestionItem]:
        """Questions answered wrongly in today's session, in answer order."""
        day_key = self.clock.current_day_key(self.user_id)
        record = self._record
        if record is not None and record.day_key == day_key:
            wrong_ids = record.incorrect_question_ids
        else:
            record = await self.store.load_record(day_key)
            if record is None:
                return []
            wrong_ids = await self.store.load_incorrect_ids(day_key) or record.incorrect_question_ids
        by_id = {q.id: q for q in record.questions}
        return [by_id[qid] for qid in wrong_ids if qid in by_id]

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _ensure_open(self) -> None:
        if self._closed:
            raise EngineClosed("Session engine is closed")

    async def start(self) -> SessionRecord:
        """
        Resume today's session or create it.

        Raises:
            FetchFailure: The question source failed; nothing was persisted.
            EngineClosed: The engine was closed before a session was ready.
        """
        while True:
            self._ensure_open()
            day_key = self.clock.current_day_key(self.user_id)
            try:
                record = await self._load_or_create(day_key)
            except StaleKeyDiscard as stale:
                logger.debug(f"Discarded session built for stale key {stale}")
                continue
            current = self._record
            if (
                current is not None
                and current.day_key == record.day_key
                and current.current_index > record.current_index
            ):
                # Answers were submitted while this start() was waiting; progress only moves forward.
                return current
            self._record = record
            return record

    async def _load_or_create(self, day_key: LearningDayKey) -> SessionRecord:
        # One task per day key covers both the store read and the create.
        task = self._inflight.get(day_key)
        if task is None:
            task = asyncio.create_task(self._resolve(day_key))
            self._inflight[day_key] = task

            def _clear(done: asyncio.Task, key: LearningDayKey = day_key) -> None:
                if self._inflight.get(key) is done:
                    del self._inflight[key]

            task.add_done_callback(_clear)
        else:
            logger.debug(f"Joining in-flight fetch for {day_key}")
        # Shielded so one cancelled caller cannot abort the shared fetch.
        return await asyncio.shield(task)

    async def _resolve(self, day_key: LearningDayKey) -> SessionRecord:
        cached = await self.store.load_record(day_key)
        if cached is None:
            return await self._create(day_key)
        logger.info(
            f"Resuming session {day_key} with {cached.current_index}/{cached.total} "
            f"answered ({cached.status.value})"
        )
        return cached

    async def _create(self, day_key: LearningDayKey) -> SessionRecord:
        try:
            fetched = await self.source.fetch_daily_questions(self.user_id)
        except FetchFailure:
            raise
        except Exception as e:
            raise FetchFailure(f"Could not fetch daily questions for {self.user_id}", cause=e) from e

        questions = self.builder.build(_coerce_questions(fetched), await self._load_vocabulary())

        if self._closed or self.clock.current_day_key(self.user_id) != day_key:
            raise StaleKeyDiscard(str(day_key))

        record = SessionRecord.begin(day_key, questions)
        if not await self.store.save_record(record):
            logger.warning(f"Session {day_key} is running unsaved")
        logger.info(f"Created session {day_key} with {record.total} questions")
        return record

    async def _load_vocabulary(self) -> list[str] | None:
        if self.vocabulary is None:
            return None
        if self._vocabulary_pool is None:
            try:
                self._vocabulary_pool = list(await self.vocabulary.fetch_vocabulary())
            except Exception as e:  # Server options are used instead
                logger.warning(f"Vocabulary unavailable, keeping server options: {e}")
                return None
        return self._vocabulary_pool

    async def submit_answer(self, answer: str) -> AnswerResult:
        """
        Grade ``answer`` against the current question and persist the progress.

        Raises:
            SessionNotStarted: ``start()`` was never awaited.
            SessionExpired: The UTC day rolled over; call ``start()`` again.
            AlreadyCompleted: Today's session is finished.
        """
        async with self._answer_lock:
            self._ensure_open()
            record = self._record
            if record is None:
                raise SessionNotStarted("Call start() before submitting answers")
            if record.day_key != self.clock.current_day_key(self.user_id):
                self._record = None
                logger.info(f"Session {record.day_key} expired at the day boundary")
                raise SessionExpired(f"Session {record.day_key} belongs to a previous day")

            updated, question, was_correct = _grade(record, answer)
            self._record = updated
            await self.store.save_record(updated)

            stats = None
            if self.reconciler is not None:
                stats = self.reconciler.record_outcome(self.user_id, question.id, was_correct)

            if updated.is_completed:
                logger.info(f"Session {updated.day_key} completed: {updated.score}/{updated.total}")
            return AnswerResult(
                was_correct=was_correct,
                submitted_answer=answer,
                correct_answer=question.correct_answer,
                record=updated,
                stats=stats,
            )

    async def reset(self, force: bool = False) -> None:
        """Discard today's session so the next ``start()`` fetches a new one."""
        if not (self.dev_mode or force):
            raise ResetNotAllowed("Session reset is only available in developer mode")
        self._ensure_open()
        async with self._answer_lock:
            day_key = self.clock.current_day_key(self.user_id)
            await self.store.clear_day(day_key)
            self._record = None
            logger.info(f"Session {day_key} reset")

    def close(self) -> None:
        """Stop accepting work. In-flight fetches finish and are discarded."""
        self._closed = True
        self._record = None
        logger.debug(f"Session engine for {self.user_id} closed")

    # =========================================================================
    # Practice
    # =========================================================================

    async def practice(
        self,
        category: str,
        count: int = DEFAULT_PRACTICE_COUNT,
        difficulty: str | None = None,
    ) -> PracticeSession:
        """Build a non-persisted practice round from ``category``."""
        self._ensure_open()
        try:
            fetched = await self.source.fetch_category_questions(category, count, difficulty)
        except FetchFailure:
            raise
        except Exception as e:
            raise FetchFailure(f"Could not fetch '{category}' questions", cause=e) from e

        questions = _coerce_questions(fetched)
        if not questions:
            raise NoQuestionsAvailable(f"No questions available for category '{category}'")

        questions = self.builder.build(questions, await self._load_vocabulary())
        day_key = self.clock.current_day_key(self.user_id)
        logger.info(f"Practice round '{category}' with {len(questions)} questions")
        return PracticeSession(
            self.user_id,
            category,
            SessionRecord.begin(day_key, questions),
            reconciler=self.reconciler,
        )
