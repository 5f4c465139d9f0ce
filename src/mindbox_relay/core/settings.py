"""Application settings and configuration.

This module defines all configuration options for the Mindbox relay.
Settings are loaded from environment variables with sensible defaults and
validated once, at load time.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from mindbox_relay.services.errors import ErrorKind, MindboxError

OperationMode = Literal["sync", "async"]


class QueueSettings(BaseModel):
    """Tuning of the durable retry queue."""

    retry_interval_seconds: int = Field(default=900, ge=0)
    agent_interval_seconds: int = Field(default=300, gt=0)
    batch_size: int = Field(default=50, ge=1)
    lock_seconds: int = Field(default=300, gt=0)
    log_channel: str = Field(default="mindbox", min_length=1)


class OperationSettings(BaseModel):
    """Per-operation configuration used by payload builders."""

    enabled: bool = False
    operation: str = ""
    mode: OperationMode = "sync"
    authorization: bool = False

    @field_validator("operation")
    @classmethod
    def _strip_operation(cls, value: str) -> str:
        return value.strip()

    @model_validator(mode="after")
    def _require_operation_when_enabled(self) -> OperationSettings:
        if self.enabled and not self.operation:
            raise ValueError("operation name is required for an enabled operation")
        return self


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    Complex values (``MINDBOX_SECRET_KEYS``, ``MINDBOX_QUEUE``,
    ``MINDBOX_OPERATIONS``) are given as JSON.
    """

    # Application metadata
    app_name: str = Field(default="Mindbox Relay", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Database configuration
    database_url: str = Field(default="sqlite:///./mindbox_relay.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Mindbox API connection
    api_url: str = Field(default="api.s.mindbox.ru", alias="MINDBOX_API_URL")
    endpoint_id: str = Field(default="", alias="MINDBOX_ENDPOINT_ID")
    secret_key: str | None = Field(default=None, alias="MINDBOX_SECRET_KEY")
    secret_keys: dict[str, str] = Field(default_factory=dict, alias="MINDBOX_SECRET_KEYS")
    timeout_seconds: float = Field(default=5.0, gt=0, alias="MINDBOX_TIMEOUT_SECONDS")

    # Retry queue and operations
    queue: QueueSettings = Field(default_factory=QueueSettings, alias="MINDBOX_QUEUE")
    operations: dict[str, OperationSettings] = Field(
        default_factory=dict,
        alias="MINDBOX_OPERATIONS",
    )
    worker_enabled: bool = Field(default=False, alias="MINDBOX_WORKER_ENABLED")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("api_url", "endpoint_id")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @model_validator(mode="after")
    def _merge_default_secret_key(self) -> Settings:
        if self.secret_key:
            self.secret_keys[self.endpoint_id] = self.secret_key.strip()
        return self

    def secret_key_for(self, endpoint_id: str) -> str:
        """Return the secret key configured for an endpoint, or an empty string."""
        return self.secret_keys.get(endpoint_id, "")

    def operation(self, name: str) -> OperationSettings:
        """Return the settings of an enabled operation.

        Raises:
            MindboxError: With kind ``CONFIG`` when the operation is unknown or
                disabled.
        """
        entry = self.operations.get(name)
        if entry is None or not entry.enabled:
            raise MindboxError(ErrorKind.CONFIG, f"operation {name!r} is not enabled")
        return entry

    def with_override(self, override: Mapping[str, Any] | None) -> Settings:
        """Return a validated copy with ``override`` deep-merged on top."""
        if not override:
            return self
        merged = _deep_merge(self.model_dump(), override)
        return type(self)(**merged)


def _deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            result[key] = _deep_merge(current, value)
        else:
            result[key] = value
    return result


settings = Settings()
