"""
Data model for the daily challenge engine.

Wire and persisted types are pydantic models: the backend speaks camelCase,
the local store keeps snake_case dumps, and both validate back into the same
objects. Plain in-process values are dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# =============================================================================
# Keys
# =============================================================================


class LearningDayKey(_WireModel):
    """One learner on one UTC calendar date.

    Two keys are equal iff user and date match. Every cached artifact is
    scoped by one, so crossing UTC midnight turns all lookups into misses.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    day: date

    @property
    def storage_suffix(self) -> str:
        return f"{self.user_id}:{self.day.isoformat()}"

    def __str__(self) -> str:
        return self.storage_suffix


# =============================================================================
# Questions
# =============================================================================


class QuestionKind(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    FILL_BLANK = "fill_blank"
    TRUE_FALSE = "true_false"

    @classmethod
    def _missing_(cls, value: object) -> QuestionKind | None:
        # Backend sends camelCase ("multipleChoice", "fillInTheBlank", ...)
        if not isinstance(value, str):
            return None
        compact = value.replace("_", "").replace("-", "").lower()
        aliases = {
            "multiplechoice": cls.MULTIPLE_CHOICE,
            "mcq": cls.MULTIPLE_CHOICE,
            "fillblank": cls.FILL_BLANK,
            "fillintheblank": cls.FILL_BLANK,
            "truefalse": cls.TRUE_FALSE,
        }
        return aliases.get(compact)


class QuestionItem(_WireModel):
    """A single challenge question."""

    id: str
    kind: QuestionKind = Field(validation_alias=AliasChoices("kind", "type", "questionType"))
    prompt_sentence: str = Field(
        default="",
        validation_alias=AliasChoices("promptSentence", "prompt_sentence", "sentenceText", "question"),
    )
    correct_answer: str = Field(
        validation_alias=AliasChoices("correctAnswer", "correct_answer", "correctAnswerText"),
    )
    options: list[str] | None = None
    question_text: str | None = None
    translation: str | None = None
    category: str | None = None

    @field_validator("kind", mode="before")
    @classmethod
    def _coerce_kind(cls, value: Any) -> Any:
        if isinstance(value, str):
            return QuestionKind(value)
        return value

    @property
    def is_multiple_choice(self) -> bool:
        return self.kind is QuestionKind.MULTIPLE_CHOICE


@dataclass(frozen=True)
class VocabularyCandidate:
    """A known word offered to the distractor selector. Never mutated."""

    surface_form: str


# =============================================================================
# Session
# =============================================================================


class SessionStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


_STATUS_ORDER = {
    SessionStatus.NOT_STARTED: 0,
    SessionStatus.IN_PROGRESS: 1,
    SessionStatus.COMPLETED: 2,
}


class SessionRecord(_WireModel):
    """Progress through one day's question set."""

    day_key: LearningDayKey
    questions: list[QuestionItem] = Field(default_factory=list)
    current_index: int = Field(default=0, ge=0)
    score: int = Field(default=0, ge=0)
    status: SessionStatus = SessionStatus.NOT_STARTED
    incorrect_question_ids: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _check_progress(self) -> SessionRecord:
        if self.current_index > len(self.questions):
            raise ValueError("current_index is past the end of the question set")
        if self.score > self.current_index:
            raise ValueError("score cannot exceed answered questions")
        if self.current_index == len(self.questions) and self.status is not SessionStatus.COMPLETED:
            raise ValueError("a record with every question answered must be completed")
        return self

    @classmethod
    def begin(cls, day_key: LearningDayKey, questions: list[QuestionItem]) -> SessionRecord:
        status = SessionStatus.IN_PROGRESS if questions else SessionStatus.COMPLETED
        return cls(day_key=day_key, questions=questions, status=status)

    @property
    def total(self) -> int:
        return len(self.questions)

    @property
    def is_completed(self) -> bool:
        return self.status is SessionStatus.COMPLETED

    @property
    def current_question(self) -> QuestionItem | None:
        if self.is_completed:
            return None
        return self.questions[self.current_index]

    @property
    def progress(self) -> float:
        if not self.questions:
            return 1.0
        return self.current_index / len(self.questions)

    def advance(self, was_correct: bool) -> None:
        """Move past the current question. Only ever moves forward."""
        question = self.current_question
        if question is None:
            raise ValueError("no question left to answer")
        if was_correct:
            self.score += 1
        else:
            self.incorrect_question_ids.append(question.id)
        self.current_index += 1
        next_status = (
            SessionStatus.COMPLETED
            if self.current_index >= len(self.questions)
            else SessionStatus.IN_PROGRESS
        )
        if _STATUS_ORDER[next_status] >= _STATUS_ORDER[self.status]:
            self.status = next_status
        self.updated_at = utcnow()

    def to_store(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


# =============================================================================
# Stats
# =============================================================================


class UserProgressStats(_WireModel):
    """Streak and answer counters. The backend copy is authoritative."""

    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    today_correct: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("todayCorrectAnswers", "todayCorrect", "today_correct"),
    )
    today_incorrect: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("todayIncorrectAnswers", "todayIncorrect", "today_incorrect"),
    )
    total_correct: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("totalCorrectAnswers", "totalCorrect", "total_correct"),
    )
    total_incorrect: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("totalIncorrectAnswers", "totalIncorrect", "total_incorrect"),
    )
    total_completed: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices(
            "totalChallengesCompleted", "totalCompleted", "total_completed"
        ),
    )
    has_completed_today: bool | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "hasCompletedTodayChallenge", "hasCompletedToday", "has_completed_today"
        ),
    )
    day: date | None = None

    @model_validator(mode="after")
    def _clamp_streaks(self) -> UserProgressStats:
        if self.longest_streak < self.current_streak:
            self.longest_streak = self.current_streak
        return self

    @property
    def today_answered(self) -> int:
        return self.today_correct + self.today_incorrect


def clamp_streaks(stats: UserProgressStats) -> UserProgressStats:
    """Return ``stats`` with ``longest_streak >= current_streak`` restored."""
    if stats.longest_streak >= stats.current_streak:
        return stats
    return stats.model_copy(update={"longest_streak": stats.current_streak})


# =============================================================================
# Plain values
# =============================================================================


@dataclass(frozen=True)
class TimeRemaining:
    hours: int
    minutes: int
    seconds: int
    total_seconds: int


@dataclass
class AnswerResult:
    """What the caller gets back from a submitted answer."""

    was_correct: bool
    submitted_answer: str
    correct_answer: str
    record: SessionRecord
    stats: UserProgressStats | None = None

    @property
    def is_completed(self) -> bool:
        return self.record.is_completed
