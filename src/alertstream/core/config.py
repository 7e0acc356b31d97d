"""Configuration management.

Loads from TOML config files + environment variables.
Uses pydantic-settings for validation and env var overriding.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from .enums import EventStoreBackend, ReadStoreBackend


# ---------------------------------------------------------------------------
# Sub-configs
# ---------------------------------------------------------------------------

class ProjectionConfig(BaseModel):
    batch_size: int = 100
    batch_timeout_ms: int = 120_000
    max_check_interval_ms: int = 5_000  # Timer never sleeps longer than this
    shutdown_timeout_s: float = 10.0
    requeue_on_failure: bool = False
    max_queue_size: int = 10_000  # Cap when failed batches are re-queued

    @field_validator("batch_size")
    @classmethod
    def _positive_batch(cls, v: int) -> int:
        if v < 1:
            raise ValueError("batch_size must be >= 1")
        return v

    @field_validator("batch_timeout_ms")
    @classmethod
    def _positive_timeout(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("batch_timeout_ms must be > 0")
        return v

    @property
    def batch_timeout(self) -> float:
        """Batch timeout in seconds."""
        return self.batch_timeout_ms / 1000.0

    @property
    def check_interval(self) -> float:
        """Timer period in seconds: at most half the timeout."""
        return min(self.batch_timeout_ms / 2, self.max_check_interval_ms) / 1000.0


class ElasticsearchConfig(BaseModel):
    url: str = "http://localhost:9200"
    username: str = ""
    password: str = ""
    verify_certs: bool = False
    index: str = "alerts"
    request_timeout: int = 20
    retry_on_conflict: int = 3


class EventStoreConfig(BaseModel):
    backend: EventStoreBackend = EventStoreBackend.MEMORY
    path: str = "data/events.jsonl"
    snapshot_every: int = 0  # 0 disables snapshots


class ObservabilityConfig(BaseModel):
    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "console"


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class Settings(BaseSettings):
    """Top-level application settings.

    Loaded from TOML config files, overridden by environment variables.
    """

    read_store: ReadStoreBackend = ReadStoreBackend.MEMORY
    default_source: str = "system"

    projection: ProjectionConfig = Field(default_factory=ProjectionConfig)
    elasticsearch: ElasticsearchConfig = Field(default_factory=ElasticsearchConfig)
    event_store: EventStoreConfig = Field(default_factory=EventStoreConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    model_config = {"env_prefix": "ALERTSTREAM_", "env_nested_delimiter": "__"}


def load_settings(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Load settings from TOML file + env vars.

    Args:
        config_path: Path to TOML config file (optional).
        overrides: Dict of overrides to apply on top.

    Raises:
        ConfigError: If the TOML file cannot be parsed.
    """
    data: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            import tomli

            from .errors import ConfigError

            try:
                with open(path, "rb") as f:
                    data = tomli.load(f)
            except tomli.TOMLDecodeError as exc:
                raise ConfigError(f"Invalid config file {path}: {exc}") from exc

    if overrides:
        data.update(overrides)

    return Settings(**data)
