"""Environment-driven settings for QuizProctor."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from quiz_proctor.constants.network_constants import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_REMOTE_TIMEOUT_SECONDS,
    NOTIFICATION_FUNCTION_NAME,
)
from quiz_proctor.constants.session_constants import (
    FOCUS_GRACE_SECONDS,
    FULLSCREEN_GRACE_SECONDS,
    TEXT_PARTIAL_CREDIT,
    VIOLATION_LIMIT,
)


class Settings(BaseSettings):
    """Settings loaded from ``QUIZ_PROCTOR_*`` environment variables or ``.env``.

    Leaving ``remote_url`` unset runs the engine against the local cache only.
    """

    model_config = SettingsConfigDict(env_prefix="QUIZ_PROCTOR_", env_file=".env", extra="ignore")

    remote_url: str | None = Field(default=None, description="PostgREST/Supabase base URL")
    remote_api_key: str | None = Field(default=None, description="API key sent as apikey and bearer token")
    remote_timeout_seconds: float = Field(default=DEFAULT_REMOTE_TIMEOUT_SECONDS, gt=0)
    notification_function: str = NOTIFICATION_FUNCTION_NAME

    cache_path: Path = Field(default=Path("~/.quiz_proctor/cache.json"))

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = "INFO"

    violation_limit: int = Field(default=VIOLATION_LIMIT, ge=1)
    focus_grace_seconds: float = Field(default=FOCUS_GRACE_SECONDS, ge=0)
    fullscreen_grace_seconds: float = Field(default=FULLSCREEN_GRACE_SECONDS, ge=0)
    text_partial_credit: float = Field(default=TEXT_PARTIAL_CREDIT, ge=0, le=1)


@lru_cache()
def get_settings() -> Settings:
    return Settings()
