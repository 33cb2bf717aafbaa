"""
REST client for the language-learning backend.

Implements every remote collaborator the session engine needs (questions,
vocabulary, stats and server time) on one httpx.AsyncClient. Transient
failures (timeouts, transport errors, 5xx) are retried with exponential
backoff; 4xx responses and unreadable payloads fail immediately. Every
failure surfaces as FetchFailure carrying the underlying cause.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import TYPE_CHECKING, Any

import httpx
from loguru import logger
from pydantic import TypeAdapter, ValidationError

from src.challenge.errors import FetchFailure
from src.challenge.models import QuestionItem, UserProgressStats

if TYPE_CHECKING:
    from config import Settings

_QUESTIONS = TypeAdapter(list[QuestionItem])
_TIMESTAMP = TypeAdapter(datetime)


class ChallengeApiClient:
    """HTTP client for challenge, vocabulary and stats endpoints."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        api_token: str | None = None,
        timeout_seconds: float = 15.0,
        retry_attempts: int = 3,
        backoff_base: float = 1.0,
    ):
        """
        Initialize the client.

        Args:
            base_url: Backend root, e.g. ``https://api.example.com``
            api_key: Sent as ``X-API-Key`` when set
            api_token: Sent as a Bearer token when set
            timeout_seconds: Per-request timeout
            retry_attempts: Attempts per request for transient failures
            backoff_base: First retry delay in seconds, doubled each attempt
        """
        self.base_url = base_url.rstrip("/")
        self.retry_attempts = max(1, retry_attempts)
        self.backoff_base = backoff_base

        headers = {"Accept": "application/json"}
        if api_key:
            headers["X-API-Key"] = api_key
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"

        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            headers=headers,
            follow_redirects=True,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> ChallengeApiClient:
        return cls(
            base_url=settings.api_base_url,
            api_key=settings.api_key,
            api_token=settings.api_token,
            timeout_seconds=settings.request_timeout_seconds,
            retry_attempts=settings.retry_attempts,
        )

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> ChallengeApiClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # =========================================================================
    # Transport
    # =========================================================================

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """
        Send a request with retry and return the decoded JSON body.

        Raises:
            FetchFailure: Retries exhausted, a 4xx response, or a non-JSON body
        """
        url = f"{self.base_url}{path}"
        send = getattr(self.client, method)
        last_error: Exception | None = None

        for attempt in range(self.retry_attempts):
            wait_time = self.backoff_base * (2 ** attempt)
            try:
                response = await send(url, **kwargs)
                response.raise_for_status()
                if not response.content:
                    return None
                return response.json()

            except httpx.TimeoutException as e:
                last_error = e
                logger.warning(
                    f"Timeout on {method.upper()} {path} (attempt {attempt + 1}/{self.retry_attempts})"
                )

            except httpx.HTTPStatusError as e:
                last_error = e
                status = e.response.status_code
                if status < 500:
                    logger.error(f"{method.upper()} {path} rejected with {status}")
                    raise FetchFailure(f"{method.upper()} {path} returned {status}", cause=e) from e
                logger.warning(
                    f"Server error {status} on {method.upper()} {path} "
                    f"(attempt {attempt + 1}/{self.retry_attempts})"
                )

            except httpx.RequestError as e:
                last_error = e
                logger.warning(
                    f"Request error on {method.upper()} {path} "
                    f"(attempt {attempt + 1}/{self.retry_attempts}): {e}"
                )

            except ValueError as e:
                logger.error(f"Unreadable response from {method.upper()} {path}: {e}")
                raise FetchFailure(f"{method.upper()} {path} returned invalid JSON", cause=e) from e

            if attempt < self.retry_attempts - 1:
                await asyncio.sleep(wait_time)

        message = f"{method.upper()} {path} failed after {self.retry_attempts} attempts"
        logger.error(f"{message}: {last_error}")
        raise FetchFailure(message, cause=last_error)

    @staticmethod
    def _parse(adapter_or_model: Any, payload: Any, what: str) -> Any:
        try:
            if isinstance(adapter_or_model, TypeAdapter):
                return adapter_or_model.validate_python(payload)
            return adapter_or_model.model_validate(payload)
        except ValidationError as e:
            logger.error(f"Malformed {what} payload: {e.error_count()} errors")
            raise FetchFailure(f"Malformed {what} payload", cause=e) from e

    @staticmethod
    def _unwrap(payload: Any, *keys: str) -> Any:
        if isinstance(payload, dict):
            for key in keys:
                if key in payload:
                    return payload[key]
        return payload

    # =========================================================================
    # QuestionSource
    # =========================================================================

    async def fetch_daily_questions(self, user_id: str) -> list[QuestionItem]:
        payload = await self._request("get", "/api/v1/Challenge/daily", params={"userId": user_id})
        questions = self._parse(_QUESTIONS, self._unwrap(payload, "questions", "items") or [], "daily questions")
        logger.debug(f"Fetched {len(questions)} daily questions for {user_id}")
        return questions

    async def fetch_category_questions(
        self,
        category: str,
        count: int,
        difficulty: str | None = None,
    ) -> list[QuestionItem]:
        params: dict[str, Any] = {"category": category, "count": count}
        if difficulty:
            params["difficulty"] = difficulty
        payload = await self._request("get", "/api/v1/Challenge/category", params=params)
        return self._parse(_QUESTIONS, self._unwrap(payload, "questions", "items") or [], "category questions")

    # =========================================================================
    # VocabularySource
    # =========================================================================

    async def fetch_vocabulary(self) -> list[str]:
        payload = await self._request("get", "/api/v1/Word/vocabulary")
        words = self._unwrap(payload, "words") or []
        if not isinstance(words, list):
            raise FetchFailure("Vocabulary payload is not a list")
        return [str(word) for word in words if isinstance(word, str) and word.strip()]

    # =========================================================================
    # StatsBackend
    # =========================================================================

    async def submit_answer_outcome(
        self,
        user_id: str,
        question_id: str,
        was_correct: bool,
    ) -> UserProgressStats | None:
        payload = await self._request(
            "post",
            "/api/v1/UserChallengeStats/submit-answer",
            json={"userId": user_id, "challengeId": question_id, "wasCorrect": was_correct},
        )
        if not isinstance(payload, dict):
            return None
        return self._parse(UserProgressStats, payload, "stats")

    async def get_stats(self, user_id: str) -> UserProgressStats:
        payload = await self._request("get", f"/api/v1/UserChallengeStats/{user_id}/stats")
        return self._parse(UserProgressStats, payload, "stats")

    # =========================================================================
    # ServerTimeSource
    # =========================================================================

    async def fetch_server_time(self) -> datetime:
        payload = await self._request("get", "/api/v1/Challenge/next-challenge-time")
        raw = self._unwrap(payload, "currentTimeUtc", "currentTime")
        return self._parse(_TIMESTAMP, raw, "server time")
