"""
Sparkmatch — Application Configuration

Loads all configuration from environment variables (and an optional .env file)
using Pydantic Settings.  A cached ``get_settings()`` helper is provided so that
FastAPI dependency-injection (and any other call-site) always receives the same
validated instance without re-parsing the environment on every request.
"""

from __future__ import annotations

from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the Sparkmatch matching service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------ #
    # Database
    # ------------------------------------------------------------------ #
    DATABASE_URL: str
    PERSISTENCE_TIMEOUT_SECONDS: float = 10.0

    # ------------------------------------------------------------------ #
    # Redis – real-time fan-out channel
    # ------------------------------------------------------------------ #
    REDIS_URL: str
    REALTIME_KEY_PREFIX: str = "match_updates"
    REALTIME_PUBLISH_TIMEOUT_SECONDS: float = 2.0
    MATCH_REMOVAL_GRACE_SECONDS: float = 2.0  # let both clients see the removal

    # ------------------------------------------------------------------ #
    # Daily batch matching
    # ------------------------------------------------------------------ #
    DAILY_MATCH_LIMIT: int = 5
    MATCH_SCORE_THRESHOLD: int = 30
    MATCHING_TIMEZONE: str = "Asia/Kolkata"  # 00:30 UTC run == 06:00 IST

    # ------------------------------------------------------------------ #
    # Candidate scoring bonuses
    # ------------------------------------------------------------------ #
    LOCALITY_MULTIPLIER: float = 1.3

    # ------------------------------------------------------------------ #
    # Match lifecycle
    # ------------------------------------------------------------------ #
    LIFECYCLE_MAX_ATTEMPTS: int = 3

    # ------------------------------------------------------------------ #
    # Runtime environment
    # ------------------------------------------------------------------ #
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    REQUEST_TIMEOUT_SECONDS: float = 70.0

    # ------------------------------------------------------------------ #
    # CORS
    # ------------------------------------------------------------------ #
    ALLOWED_ORIGINS: str = "*"

    # ------------------------------------------------------------------ #
    # Derived helpers
    # ------------------------------------------------------------------ #
    @property
    def allowed_origins_list(self) -> list[str]:
        """Return ALLOWED_ORIGINS as a list split on commas."""
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",")]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def matching_zone(self) -> ZoneInfo:
        return ZoneInfo(self.MATCHING_TIMEZONE)

    @field_validator("DAILY_MATCH_LIMIT", "LIFECYCLE_MAX_ATTEMPTS")
    @classmethod
    def _must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Value must be at least 1, got {v}")
        return v

    @field_validator("MATCH_SCORE_THRESHOLD")
    @classmethod
    def _threshold_must_be_a_score(cls, v: int) -> int:
        if not 0 <= v <= 100:
            raise ValueError(f"Threshold must be between 0 and 100, got {v}")
        return v

    @field_validator("LOCALITY_MULTIPLIER")
    @classmethod
    def _multiplier_must_not_penalise(cls, v: float) -> float:
        if v < 1.0:
            raise ValueError(f"Locality multiplier must be >= 1, got {v}")
        return v

    @field_validator("MATCHING_TIMEZONE")
    @classmethod
    def _timezone_must_exist(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone {v!r}") from exc
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached, validated ``Settings`` instance.

    Using ``@lru_cache`` guarantees the .env file is read and validated
    exactly once per process lifetime.  Import this function anywhere you
    need access to configuration::

        from app.config import get_settings
        settings = get_settings()
    """
    return Settings()  # type: ignore[call-arg]
