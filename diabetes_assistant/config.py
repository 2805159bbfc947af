"""Application configuration via Pydantic settings."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator

try:  # pragma: no cover - import guard
    from pydantic_settings import BaseSettings, SettingsConfigDict
except ModuleNotFoundError as exc:  # pragma: no cover - executed at import time
    raise ImportError(
        "`pydantic-settings` is required. Install it with `pip install pydantic-settings`."
    ) from exc


class Settings(BaseSettings):
    """Runtime application configuration.

    Environment variables are loaded from ``.env`` located in the project root.
    ``DIABETES_ASSISTANT_ENV_FILE`` points to another file, which the test
    suite uses to avoid picking up local credentials.
    """

    model_config = SettingsConfigDict(
        env_file=os.environ.get("DIABETES_ASSISTANT_ENV_FILE", ".env"),
        extra="ignore",
    )

    # General application settings
    app_name: str = "diabetes-assistant"
    debug: bool = False

    # Storage
    database_url: str = Field(
        default="sqlite:///./diabetes_assistant.db",
        alias="DATABASE_URL",
    )
    storage_backend: Literal["sql", "memory"] = Field(default="sql", alias="STORAGE_BACKEND")
    memory_fallback: bool = Field(default=False, alias="MEMORY_FALLBACK")

    # Logging and runtime
    log_level: int = Field(default=logging.INFO, alias="LOG_LEVEL")
    timezone: str = Field(default="UTC", alias="TIMEZONE")
    uploads_dir: str = Field(default="./uploads", alias="UPLOADS_DIR")
    public_origin: Optional[str] = Field(default=None, alias="PUBLIC_ORIGIN")

    # Dosing engine
    tuning_window_days: int = Field(default=7, alias="TUNING_WINDOW_DAYS", ge=1)

    # Image analysis providers
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    gemini_api_key: Optional[str] = Field(default=None, alias="GEMINI_API_KEY")
    grok_api_key: Optional[str] = Field(default=None, alias="GROK_API_KEY")
    openai_proxy: Optional[str] = Field(default=None, alias="OPENAI_PROXY")
    vision_model: Optional[str] = Field(default=None, alias="VISION_MODEL")

    @field_validator("log_level", mode="before")
    @classmethod
    def parse_log_level(cls, v: str | int | float) -> int:  # pragma: no cover - simple parsing
        if isinstance(v, str):
            if v.lower() in {"1", "true", "debug"}:
                return logging.DEBUG
            named = logging.getLevelName(v.upper())
            if isinstance(named, int):
                return named
            try:
                return int(v)
            except ValueError:
                return logging.INFO
        if isinstance(v, (int, float)):
            return int(v)
        raise TypeError(f"Unsupported log level type: {type(v)!r}")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except ZoneInfoNotFoundError as exc:
            raise ValueError(f"unknown timezone: {v}") from exc
        return v

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""

    return Settings()


# Instantiate settings for external use
settings = get_settings()


def setup_logging(level: int | None = None) -> None:
    """Configure the root logger once for the API process."""

    logging.basicConfig(
        level=level if level is not None else get_settings().log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
