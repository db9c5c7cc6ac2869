"""
Configuration settings for recordflow.

Uses Pydantic Settings to load environment variables for the record store,
logging, the generator cadence, the enrichment service, and the sync loop.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Record store
    store_backend: Literal["sqlite", "postgres"] = Field("sqlite", alias="STORE_BACKEND")
    sqlite_path: str = Field("recordflow.sqlite3", alias="SQLITE_PATH")
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("recordflow", alias="DB_NAME")
    db_pool_min_size: int = Field(1, alias="DB_POOL_MIN_SIZE")
    db_pool_max_size: int = Field(5, alias="DB_POOL_MAX_SIZE")
    db_connect_attempts: int = Field(3, alias="DB_CONNECT_ATTEMPTS")

    # Generator
    generator_interval_seconds: float = Field(1.0, alias="GENERATOR_INTERVAL_SECONDS")
    generator_value_min: int = Field(0, alias="GENERATOR_VALUE_MIN")
    generator_value_max: int = Field(100, alias="GENERATOR_VALUE_MAX")

    # Enrichment (Ollama-compatible text generation)
    enrichment_base_url: str = Field("http://localhost:11434", alias="ENRICHMENT_BASE_URL")
    enrichment_model: str = Field("tinyllama", alias="ENRICHMENT_MODEL")
    enrichment_timeout_seconds: float = Field(30.0, alias="ENRICHMENT_TIMEOUT_SECONDS")
    enrichment_threshold: int = Field(60, alias="ENRICHMENT_THRESHOLD")
    enrichment_fallback: str = Field("AI unavailable", alias="ENRICHMENT_FALLBACK")

    # Sync
    sync_interval_seconds: float = Field(100.0, alias="SYNC_INTERVAL_SECONDS")

    # Coordinator
    recent_window: int = Field(50, alias="RECENT_WINDOW")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
