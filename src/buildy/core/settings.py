"""Process settings for buildy.

Configuration is explicit, validated, and environment-driven. Settings are
read from ``BUILDY_``-prefixed environment variables and an optional
``.env`` file, and only cover process-wide concerns: logging and the
default task timeout applied to queues built with
:meth:`buildy.orchestration.queue.Queue.from_settings`.

Features:
    - **BuildySettings:** log_level, json_logs, service_name, task_timeout
    - **.env file support:** Automatic loading via pydantic-settings
    - **Extra ignore:** Unknown env vars don't cause startup failures

Examples:
    >>> from buildy.core.settings import BuildySettings
    >>> BuildySettings(task_timeout=30).task_timeout
    30.0

Tags:
    settings, configuration, pydantic, environment, buildy

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from buildy.core.errors import ConfigError


class BuildySettings(BaseSettings):
    """Settings shared by every queue in a process.

    Fields
    ──────
    log_level     : structlog log level
    json_logs     : JSON output; ``None`` auto-detects (JSON unless a tty)
    service_name  : ``service.name`` stamped on every log line
    task_timeout  : seconds to wait for a task signal; ``None`` waits forever
    """

    model_config = SettingsConfigDict(
        env_prefix="BUILDY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None
    service_name: str = "buildy"

    # ── Execution ────────────────────────────────────────────────
    task_timeout: float | None = Field(
        default=None,
        description="Seconds a dispatched task may take to signal",
    )

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        upper = value.upper()
        if upper not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {value}")
        return upper

    @field_validator("task_timeout")
    @classmethod
    def _positive_timeout(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            raise ValueError("task_timeout must be greater than zero")
        return value


@lru_cache(maxsize=1)
def get_settings() -> BuildySettings:
    """Load settings once per process.

    Raises:
        ConfigError: If the environment holds invalid values
    """
    try:
        return BuildySettings()
    except ValidationError as exc:
        raise ConfigError("Invalid BUILDY_ settings", cause=exc) from exc


def configure_from_settings(settings: BuildySettings | None = None) -> BuildySettings:
    """Apply logging settings and return the settings used."""
    from buildy.core.logging import configure_logging

    settings = settings or get_settings()
    configure_logging(
        level=settings.log_level,
        json_format=settings.json_logs,
        service=settings.service_name,
    )
    return settings


__all__ = ["BuildySettings", "get_settings", "configure_from_settings"]
