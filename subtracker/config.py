from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client settings loaded from environment variables with validation."""

    model_config = SettingsConfigDict(
        env_file=(str(Path(__file__).resolve().parents[1] / ".env"), ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    app_name: str = Field(default="Subtracker", alias="APP_NAME")
    app_env: Literal["development", "staging", "production", "test"] = Field(
        default="production",
        alias="APP_ENV",
    )
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    api_base_url: AnyHttpUrl = Field(default="http://localhost:8000", alias="API_BASE_URL")
    api_timeout_seconds: float = Field(default=30.0, gt=0, le=300, alias="API_TIMEOUT_SECONDS")

    page_limit: int = Field(default=50, ge=1, le=500, alias="PAGE_LIMIT")
    cache_ttl_seconds: int = Field(default=5 * 60, ge=0, alias="CACHE_TTL_SECONDS")
    cache_dir: Path = Field(
        default_factory=lambda: Path.home() / ".subtracker" / "cache",
        alias="CACHE_DIR",
    )
    search_debounce_ms: int = Field(default=300, ge=0, le=5000, alias="SEARCH_DEBOUNCE_MS")
    undo_window_seconds: int = Field(default=10, ge=1, le=120, alias="UNDO_WINDOW_SECONDS")
    reload_after_restore: bool = Field(default=False, alias="RELOAD_AFTER_RESTORE")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Accept standard logging level names in any case."""
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError("LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG")
        return normalized

    @field_validator("cache_dir", mode="before")
    @classmethod
    def expand_cache_dir(cls, value: str | Path) -> Path:
        """Expand ``~`` so the cache directory can be given relative to home."""
        return Path(value).expanduser()

    @property
    def base_url(self) -> str:
        return str(self.api_base_url).rstrip("/")

    @property
    def search_debounce_seconds(self) -> float:
        return self.search_debounce_ms / 1000


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return Settings()
