"""
Error taxonomy for the daily challenge engine.

I/O problems from collaborators are converted into these exceptions at the
SessionEngine / StatsReconciler boundary. Algorithmic helpers never raise.
"""

from __future__ import annotations


class ChallengeError(Exception):
    """Base class for every engine-level error."""


class FetchFailure(ChallengeError):
    """Question source or stats backend could not be reached.

    State is left untouched; the caller may retry.
    """

    retryable = True

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class CacheMiss(ChallengeError):
    """Nothing cached under the requested key.

    Raised inside SessionStore only; absence crosses the engine boundary as ``None``.
    """


class AlreadyCompleted(ChallengeError):
    """Answer submitted after today's session finished."""


class SessionNotStarted(ChallengeError):
    """An operation needs an active session but ``start()`` was never awaited."""


class SessionExpired(ChallengeError):
    """The UTC day rolled over since the session was loaded."""


class ResetNotAllowed(ChallengeError):
    """Session reset requested outside developer mode."""


class EngineClosed(ChallengeError):
    """The engine was torn down."""


class NoQuestionsAvailable(ChallengeError):
    """The question source returned nothing for a practice request."""


class StaleKeyDiscard(ChallengeError):
    """A background result belongs to a day key that is no longer current."""
