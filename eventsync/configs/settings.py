"""Centralized settings management for eventsync."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from croniter import croniter
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import make_url


class Settings(BaseSettings):
    """
    Application settings powered by pydantic-settings.

    Loads configuration from environment variables and a .env file in the
    working directory.
    """

    # -------------------------------------------------------------------------
    # ENVIRONMENT
    # -------------------------------------------------------------------------
    ENV: str = "development"
    DEBUG: bool = True

    # -------------------------------------------------------------------------
    # LOGGING
    # -------------------------------------------------------------------------
    LOG_LEVEL: str = "INFO"
    JSON_LOGS: bool = False

    # -------------------------------------------------------------------------
    # STORAGE
    # -------------------------------------------------------------------------
    STORAGE_BACKEND: Literal["postgres", "memory"] = "postgres"
    DATABASE_URL: str | None = None
    DB_POOL_MIN: int = Field(default=1, ge=1)
    DB_POOL_MAX: int = Field(default=20, ge=1)

    # -------------------------------------------------------------------------
    # SCRAPER BACKENDS
    # -------------------------------------------------------------------------
    # Comma-separated host:port list, e.g. "localhost:3000,localhost:3001"
    SCRAPER_BACKENDS: str = "localhost:3000,localhost:3001"
    SCRAPER_PATH: str = "/scrape"
    SCRAPE_TARGET_URL: str = "https://www.district.in"
    # Optional YAML file that replaces SCRAPER_BACKENDS
    BACKENDS_CONFIG_PATH: Path | None = None

    CONNECT_TIMEOUT_S: float = Field(default=30.0, gt=0)
    READ_TIMEOUT_S: float = Field(default=4 * 60 * 60.0, gt=0)
    MAX_WORKERS: int | None = Field(default=None, ge=1)

    # -------------------------------------------------------------------------
    # SCHEDULING & RETENTION
    # -------------------------------------------------------------------------
    RETENTION_DAYS: int = Field(default=5, ge=1)
    SCRAPE_CRON: str = "0 0 * * *"
    CLEANUP_CRON: str = "0 4 * * *"
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_TIMEZONE: str = "UTC"

    # -------------------------------------------------------------------------
    # CONFIGURATION
    # -------------------------------------------------------------------------
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        # Allow extra fields in .env but ignore them in the model
        extra="ignore",
    )

    @field_validator("SCRAPE_CRON", "CLEANUP_CRON")
    @classmethod
    def validate_cron(cls, v: str) -> str:
        """Reject cron expressions croniter cannot parse."""
        v = v.strip()
        if len(v.split()) != 5 or not croniter.is_valid(v):
            raise ValueError(f"Invalid 5-field cron expression: {v!r}")
        return v

    @model_validator(mode="after")
    def validate_storage(self) -> "Settings":
        """DATABASE_URL is mandatory for the postgres backend."""
        if self.STORAGE_BACKEND == "postgres" and not self.DATABASE_URL:
            raise ValueError("DATABASE_URL is required when STORAGE_BACKEND=postgres")
        if self.DB_POOL_MIN > self.DB_POOL_MAX:
            raise ValueError("DB_POOL_MIN must not exceed DB_POOL_MAX")
        return self

    def backend_addresses(self) -> list[str]:
        """Return the non-empty entries of SCRAPER_BACKENDS."""
        return [part.strip() for part in self.SCRAPER_BACKENDS.split(",") if part.strip()]

    def get_psycopg2_params(self) -> dict:
        """
        Parse DATABASE_URL into psycopg2-compatible connection parameters.

        Uses sqlalchemy.make_url for robust parsing of complex connection strings.

        Returns
        -------
        dict
            psycopg2 connection arguments (host, port, dbname, user, password).
        """
        if not self.DATABASE_URL:
            raise RuntimeError("DATABASE_URL is not set.")
        url = make_url(self.DATABASE_URL)
        return {
            "host": url.host,
            "port": url.port,
            "dbname": url.database,
            "user": url.username,
            "password": url.password,
        }


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns
    -------
    Settings
        The singleton settings instance.
    """
    return Settings()
