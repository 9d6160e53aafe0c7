"""
Configuration settings for widerow.

Uses Pydantic Settings to load environment variables for the default key alias,
consistency levels, driver retry policy, and logging. Per-type options (the
keyword arguments on a `Model` or `ModelArray` declaration) override these.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Dict

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Storage defaults
    key_alias: str = Field("KEY", alias="WIDEROW_KEY_ALIAS")
    consistency_select: str = Field("ONE", alias="WIDEROW_CONSISTENCY_SELECT")
    consistency_insert: str = Field("ONE", alias="WIDEROW_CONSISTENCY_INSERT")
    consistency_update: str = Field("ONE", alias="WIDEROW_CONSISTENCY_UPDATE")
    consistency_delete: str = Field("ONE", alias="WIDEROW_CONSISTENCY_DELETE")

    # Driver retry policy (transient failures only)
    retry_attempts: int = Field(3, alias="WIDEROW_RETRY_ATTEMPTS")
    retry_backoff_seconds: float = Field(0.1, alias="WIDEROW_RETRY_BACKOFF_SECONDS")
    retry_backoff_max_seconds: float = Field(2.0, alias="WIDEROW_RETRY_BACKOFF_MAX_SECONDS")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    json_logs: bool = Field(False, alias="WIDEROW_JSON_LOGS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    def consistency(self) -> Dict[str, str]:
        """Default consistency level per statement kind."""
        return {
            "select": self.consistency_select,
            "insert": self.consistency_insert,
            "update": self.consistency_update,
            "delete": self.consistency_delete,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
