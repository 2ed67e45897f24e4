"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Durations accept plain seconds ("120") or ISO 8601 ("PT2H").
"""

from __future__ import annotations

import os
from datetime import timedelta
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

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ up front
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class StoreSettings(BaseSettings):
    """Limits enforced by the entry store and the write path."""

    max_key_size: int = Field(
        100,
        description="Maximum key length in bytes",
        ge=1,
    )
    max_value_size: int = Field(
        1000,
        description="Maximum value size in bytes, owner secret included",
        ge=1,
    )
    max_num_kv: int = Field(
        100000,
        description="Maximum number of keys held in memory",
        ge=1,
    )
    expire_duration: timedelta = Field(
        timedelta(hours=2),
        description="Time since the last write after which a key expires",
    )

    model_config = SettingsConfigDict(
        env_prefix="KV_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Per-IP token budget configuration."""

    enabled: bool = Field(
        True,
        description="Enable per-IP rate limiting",
    )
    max_requests: int = Field(
        11,
        description="Request tokens per IP per reset window (POST costs 3, GET costs 1)",
        ge=1,
        le=255,
    )
    reset_duration: timedelta = Field(
        timedelta(minutes=1),
        description="Interval between full resets of every IP budget",
    )
    post_cost: int = Field(3, description="Tokens consumed by a write", ge=1)
    get_cost: int = Field(1, description="Tokens consumed by a read", ge=1)
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers when throttling",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class PersistenceSettings(BaseSettings):
    """Snapshot location and cadence."""

    snapshot_path: Path = Field(
        Path("store.json"),
        description="Snapshot file; temp files are created next to it",
    )
    save_duration: timedelta = Field(
        timedelta(minutes=30),
        description="Interval between periodic snapshot flushes",
    )
    shutdown_grace_seconds: float = Field(
        10.0,
        description="How long shutdown waits for an in-flight flush",
        ge=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="PERSIST_",
        case_sensitive=False,
    )


class ServerSettings(BaseSettings):
    """Listener and client address handling."""

    host: str = Field("0.0.0.0", description="Interface to listen on")
    port: int = Field(80, description="Port to listen on", ge=1, le=65535)
    trust_private_proxies: bool = Field(
        True,
        description="Honour X-Forwarded-For when the peer is a private or loopback address",
    )
    disable_local_ip_warning: bool = Field(
        False,
        description="Silence warnings about requests arriving from 127.0.0.1",
    )

    model_config = SettingsConfigDict(
        env_prefix="SERVER_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="json or plain")
    output: str = Field("stdout", description="stdout or file")
    file_path: str | None = Field(None, description="Log file when output=file")
    max_bytes: int = Field(0, description="Rotate after this many bytes (0 disables)")
    backup_count: int = Field(5, description="Rotated files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read and echo the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Nested groups are created via default_factory so each one reads its own
    environment prefix.
    """

    app_env: str = APP_ENV
    store: StoreSettings = Field(default_factory=StoreSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    persistence: PersistenceSettings = Field(default_factory=PersistenceSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


settings = Settings()
