"""Settings for the marketplace engine and its HTTP surface.

Values come from the environment or a ``.env`` file and are validated once
at startup, so a bad fee rate or unknown backend stops the process before
any operation runs.

    settings = get_settings()
    settings.ledger_backend     # "memory" | "sql"
    settings.offer_timeout      # timedelta(days=14)
"""

from __future__ import annotations

import logging
from datetime import timedelta
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

FOURTEEN_DAYS_SECONDS = 14 * 24 * 60 * 60


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Process ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])

    # --- Ledger Store ---
    ledger_backend: Literal["memory", "sql"] = "memory"
    database_url: str = "sqlite+aiosqlite:///./midnight_markets.db"
    db_echo_sql: bool = False

    # --- Idempotency keys ---
    redis_url: str = "redis://localhost:6379/0"
    redis_idempotency_ttl_seconds: int = Field(default=86400, gt=0)

    # --- Genesis ---
    platform_owner_id: str = Field(default="1", min_length=1)
    platform_fee_bps: int = Field(default=0, ge=0, le=10_000)

    # --- Offer lifecycle ---
    offer_timeout_seconds: int = Field(default=FOURTEEN_DAYS_SECONDS, gt=0)
    change_feed_queue_size: int = Field(default=500, gt=0)

    @field_validator("app_log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level {value!r}")
        return level

    @model_validator(mode="after")
    def _sql_url_is_async(self) -> Settings:
        if self.ledger_backend == "sql" and "+" not in self.database_url.split("://", 1)[0]:
            raise ValueError(
                "database_url must name an async driver, e.g. sqlite+aiosqlite:// "
                "or postgresql+asyncpg://"
            )
        return self

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def json_logs(self) -> bool:
        return not self.is_development

    @property
    def offer_timeout(self) -> timedelta:
        return timedelta(seconds=self.offer_timeout_seconds)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, read once."""
    return Settings()
