"""Application configuration — loaded from environment variables."""

from __future__ import annotations

from datetime import timedelta
from functools import lru_cache

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from repo_pulse.infrastructure.constants import (
    DEFAULT_API_HOST,
    DEFAULT_DETAIL_TTL,
    DEFAULT_USER_AGENT,
)


class Settings(BaseSettings):
    """Central configuration loaded from env vars (or ``.env`` file)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    github_token: SecretStr | None = None
    api_host: str = DEFAULT_API_HOST
    user_agent: str = DEFAULT_USER_AGENT
    request_timeout_seconds: float = 30.0
    activity_limit: int = 10
    detail_cache_ttl_seconds: float = DEFAULT_DETAIL_TTL.total_seconds()
    diagnostics_enabled: bool = True
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    @property
    def detail_cache_ttl(self) -> timedelta:
        return timedelta(seconds=self.detail_cache_ttl_seconds)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the singleton application settings (cached after first call)."""
    return Settings()
