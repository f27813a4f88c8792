"""
Application Configuration

This module provides type-safe configuration loading using Pydantic settings.
Environment variables are loaded from .env file and validated.

Usage:
    from app.config import settings

    # Access settings
    db_url = settings.POSTGRES_URL
    threshold = settings.PROGRESS_TOPIC_SUCCESS_THRESHOLD
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Fluency Progress"
    DEBUG: bool = False

    # PostgreSQL
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "fluency"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "fluency"

    # Full SQLAlchemy URL; overrides the POSTGRES_* parts when set
    DATABASE_URL: Optional[str] = None

    # Create missing tables at startup (use migrations in production)
    DB_CREATE_TABLES: bool = True

    # CORS
    CORS_ORIGINS: list[str] = ["*"]

    @property
    def POSTGRES_URL(self) -> str:
        """Async PostgreSQL connection URL."""
        return f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    @property
    def DATABASE_DSN(self) -> str:
        """Connection URL actually used by the engine."""
        return self.DATABASE_URL or self.POSTGRES_URL

    # =========================================================================
    # PROGRESS ENGINE
    # =========================================================================

    # Overall score blend: prior aggregate vs. the session just completed
    PROGRESS_HISTORY_WEIGHT: float = 0.3
    PROGRESS_SESSION_WEIGHT: float = 0.7

    # A topic session at or above this score counts as a successful exposure
    PROGRESS_TOPIC_SUCCESS_THRESHOLD: int = 70

    # Blended-score delta (points) separating accelerating/steady/plateauing
    PROGRESS_TRAJECTORY_THRESHOLD: float = 5.0

    # Strengths and weaknesses keep only this many most recent tags
    PROGRESS_TAG_HISTORY_LIMIT: int = 10

    # Upsert retries for transient storage failures (2 = one retry)
    PROGRESS_UPSERT_ATTEMPTS: int = 2
    PROGRESS_UPSERT_RETRY_WAIT_SECONDS: float = 0.05

    # Progress tracking is best-effort by default
    PROGRESS_RAISE_ON_FAILURE: bool = False

    # Upper bound on one locked update (load, stage, commit); None disables
    PROGRESS_UPDATE_TIMEOUT_SECONDS: Optional[float] = 30.0

    # Read-side limits
    PROGRESS_PRACTICE_WORDS_LIMIT: int = 100
    PROGRESS_SUMMARY_TOPICS_LIMIT: int = 20
    PROGRESS_SUMMARY_WORDS_LIMIT: int = 50

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()


@lru_cache()
def load_yaml_config() -> dict[str, Any]:
    """Load application configuration from config/default.yaml."""
    config_path = Path(__file__).parent.parent.parent.parent / "config" / "default.yaml"

    if not config_path.exists():
        return {}

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


yaml_config: dict[str, Any] = load_yaml_config()
