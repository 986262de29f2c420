"""
Configuration management for the SevaSetu service.

Loads configuration from YAML. Required sections have no defaults:
a missing or unknown key fails startup.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, model_validator
from service_commons.config import (
    REDACTION_MARKER,
    create_settings_loader,
    get_safe_model_config,
)
from service_commons.config import (
    get_config_path as resolve_config_path,
)

if TYPE_CHECKING:
    from pathlib import Path


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
    directory: str | None = None


class DatabaseConfig(BaseModel):
    """Database configuration."""

    model_config = ConfigDict(extra="forbid")
    path: str


class StorageConfig(BaseModel):
    """Blob storage configuration for task documents and certificates."""

    model_config = ConfigDict(extra="forbid")
    path: str
    max_file_size: int
    max_files_per_request: int


class NotificationsConfig(BaseModel):
    """Notification delivery configuration."""

    model_config = ConfigDict(extra="forbid")
    mode: Literal["inbox", "http"]
    base_url: str | None = None
    notify_path: str | None = None
    timeout_seconds: int | None = None

    @model_validator(mode="after")
    def _check_http_fields(self) -> NotificationsConfig:
        if self.mode == "http" and (
            self.base_url is None or self.notify_path is None or self.timeout_seconds is None
        ):
            msg = "http notifications require base_url, notify_path and timeout_seconds"
            raise ValueError(msg)
        return self


class RequestConfig(BaseModel):
    """Request handling configuration."""

    model_config = ConfigDict(extra="forbid")
    max_body_size: int


class BootstrapAdmin(BaseModel):
    """Administrator account ensured at startup."""

    model_config = ConfigDict(extra="forbid")
    user_id: str
    name: str


class BootstrapConfig(BaseModel):
    """Accounts created on startup when missing."""

    model_config = ConfigDict(extra="forbid")
    admins: list[BootstrapAdmin]


class Settings(BaseModel):
    """
    Root configuration container.

    All sections are REQUIRED. Missing fields cause immediate startup failure.
    """

    model_config = ConfigDict(extra="forbid")
    service: ServiceConfig
    server: ServerConfig
    logging: LoggingConfig
    database: DatabaseConfig
    storage: StorageConfig
    notifications: NotificationsConfig
    request: RequestConfig
    bootstrap: BootstrapConfig


def get_config_path() -> Path:
    """Determine configuration file path."""
    return resolve_config_path(
        env_var_name="CONFIG_PATH",
        default_filename="config.yaml",
    )


get_settings, clear_settings_cache = create_settings_loader(Settings, get_config_path)


def get_safe_config() -> dict[str, Any]:
    """Get configuration with sensitive values redacted."""
    return get_safe_model_config(get_settings(), REDACTION_MARKER)
