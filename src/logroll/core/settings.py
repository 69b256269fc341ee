"""
Configuration models for logroll using Pydantic v2 Settings.

Settings load from ``LOGROLL_``-prefixed environment variables with ``__`` as
the nested delimiter, e.g. ``LOGROLL_FILE__ROTATION__ENABLED=true`` or
``LOGROLL_FILE__PATH=/var/log/app.log``.
"""

from __future__ import annotations

import re
from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import (  # type: ignore[import-not-found]
    BaseSettings,
    SettingsConfigDict,
)

from .rotation import DISABLED, RotationConfig

_AT_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


class RotationSettings(BaseModel):
    """When and how the active file is replaced."""

    enabled: bool = Field(default=False, description="Enable file rotation")
    max_age_seconds: float | None = Field(
        default=86_400.0,
        gt=0.0,
        description="Rotate once the active file is this old; None disables",
    )
    max_size_bytes: int | None = Field(
        default=1024 * 1024 * 1024,
        ge=0,
        description="Rotate once the active file reaches this size; None or 0 disables",
    )
    at_hour: int = Field(
        default=DISABLED,
        ge=DISABLED,
        le=23,
        description="Hour of the daily rotation; -1 disables",
    )
    at_minute: int = Field(
        default=DISABLED,
        ge=DISABLED,
        le=59,
        description="Minute of the daily rotation; -1 disables",
    )
    at: str | None = Field(
        default=None,
        description="Daily rotation time as HH:MM; overrides at_hour/at_minute",
    )
    compress: bool = Field(
        default=False, description="Gzip rotated files in the background"
    )
    timestamp_format: str = Field(
        default="%Y-%m-%d_%H",
        min_length=1,
        description="strftime pattern appended to rotated file names",
    )
    zero_padding: int = Field(
        default=0,
        ge=0,
        le=10,
        description="Minimum width of the collision counter in file names",
    )

    @field_validator("at")
    @classmethod
    def _validate_at(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        if not value:
            return None
        match = _AT_PATTERN.match(value)
        if match is None:
            raise ValueError("at must use the HH:MM format")
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour > 23 or minute > 59:
            raise ValueError("at must be a valid time of day")
        return value

    @model_validator(mode="after")
    def _apply_at(self) -> RotationSettings:
        if self.at is not None:
            hour, minute = self.at.split(":")
            self.at_hour = int(hour)
            self.at_minute = int(minute)
        if (self.at_hour == DISABLED) != (self.at_minute == DISABLED):
            raise ValueError("at_hour and at_minute must be set together")
        return self

    def to_rotation_config(self) -> RotationConfig:
        return RotationConfig(
            enabled=self.enabled,
            max_age_seconds=self.max_age_seconds,
            max_size_bytes=self.max_size_bytes or None,
            at_hour=self.at_hour,
            at_minute=self.at_minute,
            compress=self.compress,
        )


class PruneSettings(BaseModel):
    """Removal of old rotated files. All limits default to disabled (0)."""

    count: int = Field(default=0, ge=0, description="Keep at most this many archives")
    after_hours: float = Field(
        default=0.0, ge=0.0, description="Delete archives older than this"
    )
    total_size_bytes: int = Field(
        default=0, ge=0, description="Cap on the combined size of archives"
    )

    @property
    def enabled(self) -> bool:
        return bool(self.count or self.after_hours or self.total_size_bytes)


class FileSinkSettings(BaseModel):
    """Settings for one rotating file destination."""

    path: Path = Field(
        default=Path("logs/logroll.log"), description="Active log file path"
    )
    batch_max_count: int = Field(
        default=8192,
        ge=1,
        description="Maximum number of buffered messages",
    )
    batch_flush_count: int = Field(
        default=4096,
        ge=1,
        description="Buffered message count that triggers an inline flush",
    )
    batch_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        description="Interval of the background flush and rotation check",
    )
    flush_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        description="Maximum wait for a pending flush during shutdown",
    )
    symlink_current: bool = Field(
        default=True,
        description="Maintain a <name>_current symlink to the active file",
    )
    rotation: RotationSettings = Field(default_factory=RotationSettings)
    prune: PruneSettings = Field(default_factory=PruneSettings)

    @field_validator("path")
    @classmethod
    def _ensure_file_name(cls, value: Path) -> Path:
        if not value.name or value.name in (".", ".."):
            raise ValueError("path must name a file")
        return value

    @model_validator(mode="after")
    def _check_batch_limits(self) -> FileSinkSettings:
        if self.batch_flush_count > self.batch_max_count:
            raise ValueError("batch_flush_count must not exceed batch_max_count")
        return self


class ObservabilitySettings(BaseModel):
    metrics_enabled: bool = Field(
        default=False, description="Enable Prometheus-compatible metrics"
    )


class ShutdownSettings(BaseModel):
    atexit_drain_enabled: bool = Field(
        default=True, description="Shut down registered sinks at interpreter exit"
    )
    atexit_drain_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Maximum time spent draining each sink at exit",
    )
    signal_handler_enabled: bool = Field(
        default=False,
        description="Drain sinks on SIGTERM/SIGINT before terminating",
    )


class Settings(BaseSettings):
    """Top-level configuration model."""

    file: FileSinkSettings = Field(default_factory=FileSinkSettings)
    observability: ObservabilitySettings = Field(
        default_factory=ObservabilitySettings
    )
    shutdown: ShutdownSettings = Field(default_factory=ShutdownSettings)

    model_config = SettingsConfigDict(
        env_prefix="LOGROLL_",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )
