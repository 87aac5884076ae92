"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. All settings are validated
at startup, so a malformed value fails fast with a clear error message.

Usage:
    from brewmaster_escrow.config import get_settings
    settings = get_settings()
    print(settings.escrow_max_retries)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the escrow engine."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_log_level: str = "DEBUG"
    app_json_logs: bool = False

    # --- Backends ---
    store_backend: Literal["memory", "sql"] = "memory"
    lock_backend: Literal["local", "redis"] = "local"

    # --- Database (document store adapter) ---
    database_url: str = (
        "postgresql+asyncpg://brewmaster:brewmaster_dev"
        "@localhost:5432/brewmaster"
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_echo_sql: bool = False

    # --- Redis (per-transaction locks) ---
    redis_url: str = "redis://localhost:6379/0"
    redis_lock_timeout_seconds: float = 30.0

    # --- Escrow Policy ---
    escrow_max_retries: int = Field(default=3, ge=0)
    escrow_retry_backoff_seconds: float = Field(default=2.0, ge=0)
    payment_attempt_timeout_seconds: float = Field(default=10.0, gt=0)
    release_timeout_seconds: float = Field(default=10.0, gt=0)

    # --- Simulated Gateway ---
    simulated_payment_success_rate: float = Field(default=0.90, ge=0, le=1)
    simulated_release_success_rate: float = Field(default=0.95, ge=0, le=1)

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
