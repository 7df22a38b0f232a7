"""Application configuration models."""

from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="Letterplex", alias="APP_NAME")

    letterboxd_username: str | None = Field(default=None, alias="LETTERBOXD_USERNAME")
    letterboxd_password: str | None = Field(default=None, alias="LETTERBOXD_PASSWORD")
    plex_token: str | None = Field(default=None, alias="PLEX_TOKEN")

    letterboxd_url: HttpUrl = Field(
        default="https://letterboxd.com", alias="LETTERBOXD_URL"
    )
    plex_metadata_url: HttpUrl = Field(
        default="https://metadata.provider.plex.tv", alias="PLEX_METADATA_URL"
    )
    plex_discover_url: HttpUrl = Field(
        default="https://discover.provider.plex.tv", alias="PLEX_DISCOVER_URL"
    )
    plex_search_limit: int = Field(default=30, alias="PLEX_SEARCH_LIMIT", ge=1, le=100)

    sync_concurrency: int = Field(default=4, alias="SYNC_CONCURRENCY", ge=1, le=32)
    http_timeout_seconds: float = Field(default=30.0, alias="HTTP_TIMEOUT", gt=0)
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("log_level", mode="before")
    @classmethod
    def _parse_log_level(cls, value: object) -> str:
        """Accept level names in any case."""

        if value is None:
            return "INFO"
        level = str(value).strip().upper() or "INFO"
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value}")
        return level

    @field_validator(
        "letterboxd_username", "letterboxd_password", "plex_token", mode="before"
    )
    @classmethod
    def _blank_as_missing(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def require_credentials(self) -> None:
        """Raise if any credential needed for a sync run is missing."""

        required = {
            "LETTERBOXD_USERNAME": self.letterboxd_username,
            "LETTERBOXD_PASSWORD": self.letterboxd_password,
            "PLEX_TOKEN": self.plex_token,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise ConfigurationError(
                f"{', '.join(missing)} must be set in the environment or .env file"
            )

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]
