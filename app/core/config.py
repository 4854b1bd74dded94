"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Production may inject everything through real env vars
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ up front
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


_FIFTEEN_MINUTES_MS = 15 * 60 * 1000
_ONE_HOUR_MS = 60 * 60 * 1000
_ONE_MINUTE_MS = 60 * 1000


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_key_required: bool = Field(
        True,
        description="Whether admin endpoints require an X-API-Key header",
    )
    api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid admin API keys",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Either 'json' or 'plain'")
    output: str = Field("stdout", description="Either 'stdout' or 'file'")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
    )
    backup_count: int = Field(5, description="Rotated log files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header carrying the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Fixed-window rate limiting configuration.

    Every limiter shares one store. The per-limiter thresholds below only
    change how many requests a key gets and how long its window lasts.
    """

    enabled: bool = Field(True, description="Apply the rate limit middleware")
    backend: str = Field(
        "memory",
        description="Counter store backend. Only the per-process 'memory' store exists.",
    )

    max: int = Field(100, ge=1, description="Default limiter: requests per window")
    window_ms: int = Field(
        _FIFTEEN_MINUTES_MS, ge=1, description="Default limiter: window length in ms"
    )

    api_max: int = Field(100, ge=1)
    api_window_ms: int = Field(_FIFTEEN_MINUTES_MS, ge=1)
    auth_max: int = Field(5, ge=1)
    auth_window_ms: int = Field(_FIFTEEN_MINUTES_MS, ge=1)
    upload_max: int = Field(10, ge=1)
    upload_window_ms: int = Field(_ONE_HOUR_MS, ge=1)
    search_max: int = Field(30, ge=1)
    search_window_ms: int = Field(_ONE_MINUTE_MS, ge=1)
    payment_max: int = Field(10, ge=1)
    payment_window_ms: int = Field(_ONE_HOUR_MS, ge=1)

    sweep_interval_seconds: float = Field(
        300.0,
        gt=0,
        description="How often the background sweep evicts expired entries",
    )
    include_headers: bool = Field(
        True,
        description="Attach X-RateLimit-* headers to accepted responses too",
    )
    skip_paths: list[str] = Field(
        default_factory=lambda: ["/health", "/api/health", "/api/status"],
        description="Path prefixes never rate limited",
    )
    fail_open: bool = Field(
        False,
        description="Let requests through when the limiter itself errors (default: respond 500)",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


def _build_app_settings() -> AppSettings:
    """Build app settings from environment.

    Static type checkers treat BaseSettings fields as constructor arguments,
    which is not how BaseSettings is meant to be used.
    """

    return AppSettings()  # type: ignore[call-arg]


def _build_log_settings() -> LogSettings:
    return LogSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> RateLimitSettings:
    return RateLimitSettings()  # type: ignore[call-arg]


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


settings = Settings()
