"""
Configuration settings for the lingo daily challenge client.

Uses Pydantic Settings for environment variable management with .env file support.
All variables are read with the ``LINGO_`` prefix (e.g. ``LINGO_API_BASE_URL``).
"""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_HOME = Path.home() / ".lingo"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="LINGO_",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Remote API
    # ========================================
    api_base_url: str = Field(
        default="http://localhost:7016",
        description="Base URL of the challenge/stats backend",
    )
    api_key: str | None = Field(
        default=None,
        description="Optional API key sent as X-API-Key",
    )
    api_token: str | None = Field(
        default=None,
        description="Optional bearer token for the signed-in user",
    )
    request_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Per-request timeout for the HTTP client",
    )
    retry_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts per request before a fetch failure is reported",
    )

    # ========================================
    # Learner
    # ========================================
    user_id: str | None = Field(
        default=None,
        description="Default learner id used by the CLI",
    )

    # ========================================
    # Local Store
    # ========================================
    store_backend: Literal["memory", "json", "sql"] = Field(
        default="json",
        description="Key-value backend for day-scoped session state",
    )
    store_dir: Path = Field(
        default=DEFAULT_HOME / "store",
        description="Directory for the JSON file store",
    )
    database_url: str = Field(
        default=f"sqlite:///{DEFAULT_HOME / 'store.db'}",
        description="SQLAlchemy URL for the SQL key-value store",
    )

    # ========================================
    # Session Tuning
    # ========================================
    distractor_count: int = Field(
        default=3,
        ge=1,
        description="Wrong options generated per multiple-choice question",
    )
    near_miss_count: int = Field(
        default=2,
        ge=0,
        description="How many distractors are picked by similarity (rest are random)",
    )
    use_server_time: bool = Field(
        default=False,
        description="Correct device clock skew with the backend's reported time",
    )
    dev_mode: bool = Field(
        default=False,
        description="Enables developer affordances such as session reset",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    @field_validator("api_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("near_miss_count")
    @classmethod
    def _near_miss_not_negative(cls, value: int) -> int:
        return max(0, value)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
