from __future__ import annotations

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from config import (
    DATABASE_URL as DEFAULT_DATABASE_URL,
    DB_MAX_OVERFLOW as DEFAULT_DB_MAX_OVERFLOW,
    DB_POOL_RECYCLE_SECONDS as DEFAULT_DB_POOL_RECYCLE_SECONDS,
    DB_POOL_SIZE as DEFAULT_DB_POOL_SIZE,
    DEPTH_POOLS as DEFAULT_DEPTH_POOLS,
    HTTP_HOST as DEFAULT_HTTP_HOST,
    HTTP_PORT as DEFAULT_HTTP_PORT,
    INGESTION_INTERVAL as DEFAULT_INGESTION_INTERVAL,
    INITIAL_WATERMARK as DEFAULT_INITIAL_WATERMARK,
    INTER_PAGE_DELAY_SECONDS as DEFAULT_INTER_PAGE_DELAY_SECONDS,
    LOG_FILE_PATH as DEFAULT_LOG_FILE_PATH,
    LOG_LEVEL as DEFAULT_LOG_LEVEL,
    MIDGARD_BASE_URL as DEFAULT_MIDGARD_BASE_URL,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables (.env).

    Every field has a default from ``config.py`` so a bare checkout runs
    against a local SQLite file and the public Midgard endpoint.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Logging ---
    log_level: str = DEFAULT_LOG_LEVEL
    log_file_path: str = DEFAULT_LOG_FILE_PATH

    # --- Database ---
    database_url: str = DEFAULT_DATABASE_URL
    db_pool_size: int = DEFAULT_DB_POOL_SIZE
    db_max_overflow: int = DEFAULT_DB_MAX_OVERFLOW
    db_pool_recycle_seconds: int = DEFAULT_DB_POOL_RECYCLE_SECONDS

    # --- Upstream ---
    midgard_base_url: str = DEFAULT_MIDGARD_BASE_URL
    depth_pools: List[str] = Field(default_factory=lambda: list(DEFAULT_DEPTH_POOLS))
    ingestion_interval: str = DEFAULT_INGESTION_INTERVAL
    inter_page_delay_seconds: float = DEFAULT_INTER_PAGE_DELAY_SECONDS
    initial_watermark: int = DEFAULT_INITIAL_WATERMARK

    # --- HTTP server ---
    http_host: str = DEFAULT_HTTP_HOST
    http_port: int = DEFAULT_HTTP_PORT


def load_settings() -> Settings:
    """Load and validate settings from environment variables (.env)."""
    return Settings()
