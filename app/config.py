"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, HttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="StreamShelf", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=5000, alias="PORT")

    tmdb_api_key: str | None = Field(default=None, alias="TMDB_API_KEY")
    tmdb_api_url: HttpUrl = Field(
        default="https://api.themoviedb.org/3", alias="TMDB_API_URL"
    )
    tmdb_language: str = Field(default="en-US", alias="TMDB_LANGUAGE")
    tmdb_timeout_seconds: float = Field(
        default=20.0, alias="TMDB_TIMEOUT", ge=1, le=120
    )

    listing_page_count: int = Field(default=1, alias="LISTING_PAGES", ge=1, le=10)
    local_result_limit: int = Field(
        default=50, alias="LOCAL_RESULT_LIMIT", ge=1, le=500
    )

    database_url: str = Field(
        default="sqlite+aiosqlite:///./streamshelf.db", alias="DATABASE_URL"
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("tmdb_api_key", mode="before")
    @classmethod
    def _blank_key_to_none(cls, value: object) -> object:
        """Treat empty credentials as missing."""

        if isinstance(value, str) and not value.strip():
            return None
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("tmdb_language", mode="before")
    @classmethod
    def _default_language(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            return "en-US"
        return value

    @property
    def tmdb_base_url(self) -> str:
        """Return the TMDB API root without a trailing slash."""

        return str(self.tmdb_api_url).rstrip("/")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
