"""Client configuration using Pydantic Settings.

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


# Determine which environment to load (default: development)
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

# Only load from file if it exists (deployments might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


DEFAULT_ENDPOINT = "https://api.random.org/json-rpc/4/invoke"


class ClientSettings(BaseSettings):
    """Connection and pacing configuration for the RANDOM.ORG client."""

    api_key: str | None = Field(
        None,
        description="API key used for keyed JSON-RPC methods",
    )
    endpoint: str = Field(
        DEFAULT_ENDPOINT,
        description="JSON-RPC invoke endpoint",
    )
    blocking_timeout_ms: int = Field(
        24 * 60 * 60 * 1000,
        description="Maximum time to wait before sending a request; -1 waits forever",
        ge=-1,
    )
    http_timeout_ms: int = Field(
        120 * 1000,
        description="Maximum time to wait for the server to respond",
        ge=1,
    )
    default_cache_size: int = Field(
        20,
        description="Result sets a cache tries to keep ready",
        ge=2,
    )
    default_small_cache_size: int = Field(
        10,
        description="Default cache size for UUID and blob caches",
        ge=2,
    )
    cache_poll_interval_ms: int = Field(
        50,
        description="Delay between retries while waiting on an empty cache",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="RANDOM_ORG_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log destination: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int | None = Field(
        None,
        description="Rotate the log file after this many bytes (None disables rotation)",
    )
    backup_count: int = Field(3, description="Rotated log files to keep")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


def _build_client_settings() -> ClientSettings:
    return ClientSettings()  # type: ignore[call-arg]


def _build_log_settings() -> LogSettings:
    return LogSettings()  # type: ignore[call-arg]


class Settings(BaseSettings):
    """Main settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    """

    app_env: str = APP_ENV
    client: ClientSettings = Field(default_factory=_build_client_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


# Global settings instance - composed from domain-specific settings
settings = Settings()
