"""Application settings loaded from environment variables."""

import logging
import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Disney AI Assistant client configuration. All values come from environment variables."""

    # Backend RAG API
    api_base_url: str = Field(default="http://localhost:8080")
    admin_api_key: str = Field(default="")
    request_timeout_seconds: float = Field(default=30.0)

    # Tier / kill-switch polling
    status_poll_interval_seconds: int = Field(default=30)

    # Session-scoped storage
    session_storage_dir: Path = Field(default=Path("data/session"))
    session_id: str = Field(default="default")

    # Analytics (GA4 Measurement Protocol) — only sent when environment is production
    environment: str = Field(default="development")
    ga_measurement_id: str = Field(default="")
    ga_api_secret: str = Field(default="")

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    @property
    def is_production(self) -> bool:
        """True when running against the deployed site (not localhost/dev)."""
        return self.environment.strip().lower() == "production"

    def get_api_base_url(self) -> str:
        """Base URL without a trailing slash."""
        return self.api_base_url.strip().rstrip("/")

    def get_log_level(self) -> int:
        """Numeric logging level; names are case-insensitive, unknown ones mean INFO."""
        return logging.getLevelNamesMapping().get(self.log_level.strip().upper(), logging.INFO)


settings = Settings()
