"""
Configuration management for the errand board service.

Loads configuration from YAML with ZERO defaults.
Every value must be explicitly specified or startup fails.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict

REDACTION_MARKER = "***"
_SENSITIVE_KEY_FRAGMENTS: tuple[str, ...] = ("secret", "password", "token", "key")


class ServiceConfig(BaseModel):
    """Service identity configuration."""

    model_config = ConfigDict(extra="forbid")
    name: str
    version: str


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    model_config = ConfigDict(extra="forbid")
    host: str
    port: int
    log_level: str


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(extra="forbid")
    level: str
    directory: str


class DatabaseConfig(BaseModel):
    """Document store backend selection."""

    model_config = ConfigDict(extra="forbid")
    backend: Literal["sqlite", "memory"]
    path: str


class StoreConfig(BaseModel):
    """Transaction behaviour and change-log size of the document store."""

    model_config = ConfigDict(extra="forbid")
    max_transaction_attempts: int
    change_log_retention: int


class IdentityConfig(BaseModel):
    """Identity oracle connection configuration."""

    model_config = ConfigDict(extra="forbid")
    base_url: str
    verify_path: str
    timeout_seconds: int


class RequestConfig(BaseModel):
    """Request handling configuration."""

    model_config = ConfigDict(extra="forbid")
    max_body_size: int


class LimitsConfig(BaseModel):
    """Input limits enforced by server-side validation."""

    model_config = ConfigDict(extra="forbid")
    max_title_length: int
    max_description_length: int
    max_address_length: int
    max_comment_length: int
    max_fee: float
    max_duration_hours: float


class StreamConfig(BaseModel):
    """Change stream (SSE) configuration."""

    model_config = ConfigDict(extra="forbid")
    poll_interval_seconds: float
    keepalive_interval_seconds: float


class Settings(BaseModel):
    """
    Root configuration container.

    All fields are REQUIRED. No defaults exist.
    Missing fields cause immediate startup failure.
    """

    model_config = ConfigDict(extra="forbid")
    service: ServiceConfig
    server: ServerConfig
    logging: LoggingConfig
    database: DatabaseConfig
    store: StoreConfig
    identity: IdentityConfig
    request: RequestConfig
    limits: LimitsConfig
    stream: StreamConfig


def get_config_path() -> Path:
    """Determine configuration file path from CONFIG_PATH or the working directory."""
    env_path = os.environ.get("CONFIG_PATH")
    if env_path:
        return Path(env_path)
    return Path.cwd() / "config.yaml"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load and cache settings. Raises on a missing file or an invalid document."""
    config_path = get_config_path()
    raw = yaml.safe_load(config_path.read_text())
    if not isinstance(raw, dict):
        msg = f"Invalid config file: {config_path}"
        raise ValueError(msg)
    return Settings(**raw)


def clear_settings_cache() -> None:
    """Drop the cached settings so the next call re-reads the file."""
    get_settings.cache_clear()


def _redact(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: REDACTION_MARKER
            if any(fragment in key.lower() for fragment in _SENSITIVE_KEY_FRAGMENTS)
            else _redact(item)
            for key, item in value.items()
        }
    return value


def get_safe_config() -> dict[str, Any]:
    """Get configuration with sensitive values redacted."""
    return _redact(get_settings().model_dump())
