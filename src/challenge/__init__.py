"""
Daily learning session engine.

- clock: UTC learning-day keys and the countdown to the next session
- distractors / similarity: wrong options for multiple-choice questions
- store: day-scoped persistence over a key-value backend
- session: SessionEngine state machine and practice rounds
- stats: optimistic progress stats reconciled against the backend
"""

from .clock import SessionClock, format_remaining
from .distractors import DistractorSelector, select_distractors
from .errors import (
    AlreadyCompleted,
    ChallengeError,
    EngineClosed,
    FetchFailure,
    NoQuestionsAvailable,
    ResetNotAllowed,
    SessionExpired,
    SessionNotStarted,
)
from .models import (
    AnswerResult,
    LearningDayKey,
    QuestionItem,
    QuestionKind,
    SessionRecord,
    SessionStatus,
    TimeRemaining,
    UserProgressStats,
    VocabularyCandidate,
)
from .questions import QuestionBuilder
from .session import PracticeSession, SessionEngine
from .similarity import levenshtein, score
from .stats import StatsReconciler
from .store import SessionStore

__all__ = [
    "AlreadyCompleted",
    "AnswerResult",
    "ChallengeError",
    "DistractorSelector",
    "EngineClosed",
    "FetchFailure",
    "LearningDayKey",
    "NoQuestionsAvailable",
    "PracticeSession",
    "QuestionBuilder",
    "QuestionItem",
    "QuestionKind",
    "ResetNotAllowed",
    "SessionClock",
    "SessionEngine",
    "SessionExpired",
    "SessionNotStarted",
    "SessionRecord",
    "SessionStatus",
    "SessionStore",
    "StatsReconciler",
    "TimeRemaining",
    "UserProgressStats",
    "VocabularyCandidate",
    "format_remaining",
    "levenshtein",
    "score",
    "select_distractors",
]
