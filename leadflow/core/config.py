"""Configuration module for the leadflow application."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import urlparse

from dotenv import load_dotenv

from leadflow.core.exceptions import ConfigurationError

load_dotenv()


def _as_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Config:
    """Runtime configuration with validation."""

    APP_NAME: str
    APP_VERSION: str
    ENV: str
    DEBUG: bool
    DATABASE_URL: str
    LEAD_API_URL: str
    LEAD_API_TOKEN: str | None
    HTTP_TIMEOUT_SECONDS: int
    HTTP_MAX_RETRIES: int
    CELERY_BROKER_URL: str
    CELERY_RESULT_BACKEND: str
    CELERY_TASK_ALWAYS_EAGER: bool
    IMPORT_SAMPLE_ROWS: int
    IMPORT_MAX_ROWS: int
    IMPORT_POLL_INTERVAL_SECONDS: float
    IMPORT_PROGRESS_FLUSH_EVERY: int
    LOG_LEVEL: str
    LOG_FILE: str

    @property
    def is_production(self) -> bool:
        return self.ENV == "production"


def _build_config(env: str | None = None) -> Config:
    resolved_env = (env or os.getenv("ENV", "development")).strip().lower()
    debug = _as_bool(os.getenv("DEBUG"), default=(resolved_env != "production"))
    broker_url = os.getenv("CELERY_BROKER_URL", os.getenv("REDIS_URL", "redis://localhost:6379/0"))

    config = Config(
        APP_NAME="leadflow",
        APP_VERSION=os.getenv("APP_VERSION", "1.0.0"),
        ENV=resolved_env,
        DEBUG=debug if resolved_env != "production" else False,
        DATABASE_URL=os.getenv("DATABASE_URL", "sqlite:///./leadflow.db"),
        LEAD_API_URL=os.getenv("LEAD_API_URL", "http://localhost:3000/api").rstrip("/"),
        LEAD_API_TOKEN=os.getenv("LEAD_API_TOKEN"),
        HTTP_TIMEOUT_SECONDS=int(os.getenv("HTTP_TIMEOUT_SECONDS", "30")),
        HTTP_MAX_RETRIES=int(os.getenv("HTTP_MAX_RETRIES", "2")),
        CELERY_BROKER_URL=broker_url,
        CELERY_RESULT_BACKEND=os.getenv("CELERY_RESULT_BACKEND", broker_url),
        CELERY_TASK_ALWAYS_EAGER=_as_bool(os.getenv("CELERY_TASK_ALWAYS_EAGER"), default=False),
        IMPORT_SAMPLE_ROWS=int(os.getenv("IMPORT_SAMPLE_ROWS", "5")),
        IMPORT_MAX_ROWS=int(os.getenv("IMPORT_MAX_ROWS", "5000")),
        IMPORT_POLL_INTERVAL_SECONDS=float(os.getenv("IMPORT_POLL_INTERVAL_SECONDS", "1.5")),
        IMPORT_PROGRESS_FLUSH_EVERY=int(os.getenv("IMPORT_PROGRESS_FLUSH_EVERY", "1")),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO").upper(),
        LOG_FILE=os.getenv("LOG_FILE", ""),
    )
    _validate_config(config)
    return config


def _validate_database_url(database_url: str) -> None:
    parsed = urlparse(database_url)
    if parsed.scheme not in {"sqlite", "postgresql", "postgresql+psycopg2"}:
        raise ConfigurationError(
            "DATABASE_URL must use sqlite:// or postgresql:// style URL."
        )
    if parsed.scheme.startswith("postgresql") and not parsed.hostname:
        raise ConfigurationError("PostgreSQL DATABASE_URL is missing hostname.")


def _validate_config(config: Config) -> None:
    _validate_database_url(config.DATABASE_URL)

    if urlparse(config.LEAD_API_URL).scheme not in {"http", "https"}:
        raise ConfigurationError("LEAD_API_URL must be an http(s) URL.")
    if config.HTTP_TIMEOUT_SECONDS < 1:
        raise ConfigurationError("HTTP_TIMEOUT_SECONDS must be >= 1.")
    if config.HTTP_MAX_RETRIES < 0:
        raise ConfigurationError("HTTP_MAX_RETRIES must be >= 0.")
    if config.IMPORT_SAMPLE_ROWS < 1:
        raise ConfigurationError("IMPORT_SAMPLE_ROWS must be >= 1.")
    if config.IMPORT_MAX_ROWS < 1:
        raise ConfigurationError("IMPORT_MAX_ROWS must be >= 1.")
    if config.IMPORT_POLL_INTERVAL_SECONDS <= 0:
        raise ConfigurationError("IMPORT_POLL_INTERVAL_SECONDS must be > 0.")
    if config.IMPORT_PROGRESS_FLUSH_EVERY < 1:
        raise ConfigurationError("IMPORT_PROGRESS_FLUSH_EVERY must be >= 1.")
    if config.LOG_LEVEL not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        raise ConfigurationError("LOG_LEVEL must be one of DEBUG/INFO/WARNING/ERROR/CRITICAL.")
    if config.is_production and "change_me" in config.DATABASE_URL.lower():
        raise ConfigurationError("Production DATABASE_URL uses placeholder credentials.")


@lru_cache(maxsize=8)
def get_config(env: str | None = None) -> Config:
    """Get validated configuration for the requested environment."""
    return _build_config(env)
