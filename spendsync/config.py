"""
Configuration settings for spendsync.

Uses Pydantic Settings to load environment variables for the local store,
the remote store, logging, and sync scheduling. Every field can be overridden
through the environment or a `.env` file next to the working directory.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Local store (PostgreSQL backend)
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("spendsync", alias="DB_NAME")
    db_pool_min_size: int = Field(1, alias="DB_POOL_MIN_SIZE")
    db_pool_max_size: int = Field(5, alias="DB_POOL_MAX_SIZE")

    # Remote store
    remote_dsn: Optional[str] = Field(None, alias="REMOTE_DSN")
    account_id: str = Field("default", alias="ACCOUNT_ID")

    # Backends
    store_backend: Literal["memory", "postgres"] = Field("memory", alias="STORE_BACKEND")
    remote_backend: Literal["memory", "postgres"] = Field("memory", alias="REMOTE_BACKEND")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Pipeline behaviour
    sync_interval_seconds: float = Field(300.0, alias="SYNC_INTERVAL_SECONDS")
    parse_message_dates: bool = Field(True, alias="PARSE_MESSAGE_DATES")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def local_dsn(self) -> str:
        return (
            f"postgresql://{self.db_user}:{self.db_password}"
            f"@{self.db_host}:{self.db_port}/{self.db_name}"
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
