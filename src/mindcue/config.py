"""Engine configuration."""

import logging
import sys
from collections.abc import Callable
from functools import lru_cache
from typing import Any, Literal

import structlog
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Study engine settings, read from ``MINDCUE_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="MINDCUE_", extra="ignore"
    )

    # Remote API
    API_BASE_URL: str = "http://localhost:3000/api/user"
    REQUEST_TIMEOUT: float = 30.0

    # Auth
    AUTH_TOKEN: str | None = None
    # Invalidate the credential on the first 401 (before the retry) rather than
    # after the retry has failed as well.
    INVALIDATE_BEFORE_RETRY: bool = True

    # Grading
    MIN_QUALITY: int = 0
    MAX_QUALITY: int = 5
    CORRECT_QUALITY_THRESHOLD: int = 3
    DEFAULT_CARD_DIFFICULTY: int = 3

    # Environment
    ENVIRONMENT: Literal["development", "production", "test"] = "development"

    @field_validator("API_BASE_URL", mode="after")
    @classmethod
    def strip_base_url(cls, value: str) -> str:
        """Strip whitespace and trailing slashes from the base URL."""
        return value.strip().rstrip("/")

    @field_validator("AUTH_TOKEN", mode="after")
    @classmethod
    def blank_token_is_none(cls, value: str | None) -> str | None:
        """Treat an empty token as no token."""
        if value is None or not value.strip():
            return None
        return value.strip()

    @model_validator(mode="after")
    def validate_ranges(self) -> "Settings":
        """Validate timeout and grading bounds."""
        if self.REQUEST_TIMEOUT <= 0:
            msg = "REQUEST_TIMEOUT must be positive"
            raise ValueError(msg)
        if self.MIN_QUALITY < 0:
            msg = "MIN_QUALITY cannot be negative"
            raise ValueError(msg)
        if not self.MIN_QUALITY <= self.CORRECT_QUALITY_THRESHOLD <= self.MAX_QUALITY:
            msg = "CORRECT_QUALITY_THRESHOLD must lie within MIN_QUALITY..MAX_QUALITY"
            raise ValueError(msg)
        return self


def configure_logging(environment: str = "development") -> None:
    """Configure structured logging with structlog."""
    # Determine if we should use JSON output (production) or console output (dev)
    use_json = environment == "production"

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=logging.DEBUG if environment == "development" else logging.INFO,
    )

    processors: list[Callable[..., Any]] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if use_json:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
