"""Context engine configuration.

Settings are read from the environment (and ``.env``) via pydantic-settings.
The user-editable sections (context engine and memory auto-upgrade) can
also be persisted to a YAML file through :class:`SettingsStore`.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Self

import structlog
import yaml
from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

logger = structlog.get_logger()


class DatabaseSettings(BaseSettings):
    """Relational store settings."""

    url: str = Field(
        default="sqlite+aiosqlite:///./context_engine.db",
        description="SQLAlchemy async URL (postgresql+asyncpg:// in production)",
    )
    pool_size: int = Field(default=10, description="Persistent pool connections")
    max_overflow: int = Field(default=20, description="Extra connections beyond pool")
    echo: bool = Field(default=False, description="Log SQL statements")

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        env_file=".env",
        extra="ignore",
    )


class SummarizerSettings(BaseSettings):
    """LLM settings for the summarizer collaborator."""

    model: str = Field(default="gpt-4o-mini", description="LiteLLM model name")
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1024, gt=0, description="Summary output limit")
    timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Upper bound on a single summarize call",
    )
    api_base: str | None = Field(default=None, description="Custom API base URL")
    api_key: str | None = Field(default=None, description="API key override")

    model_config = SettingsConfigDict(
        env_prefix="SUMMARIZER_",
        env_file=".env",
        extra="ignore",
    )


class EmbeddingSettings(BaseSettings):
    """Embedding model settings for long-term memories."""

    model: str = Field(default="text-embedding-3-small")
    dimension: int = Field(default=1536, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="EMBEDDING_",
        env_file=".env",
        extra="ignore",
    )


class ContextEngineConfig(BaseSettings):
    """Token budget and compression configuration.

    Thresholds are fractions of the effective limit and must satisfy
    ``0 < prune <= compact <= truncate <= 1``. Invalid orderings raise
    :class:`ConfigurationError` at construction and are never clamped.
    """

    enabled: bool = Field(default=True, description="Master switch for compression")
    max_tokens: int = Field(default=200_000, gt=0)
    model_context_limit: int = Field(default=200_000, gt=0)
    model_output_limit: int = Field(default=16_000, ge=0)
    prune_threshold: float = Field(default=0.70, gt=0.0, le=1.0)
    compact_threshold: float = Field(default=0.85, gt=0.0, le=1.0)
    truncate_threshold: float = Field(default=0.90, gt=0.0, le=1.0)
    messages_to_keep: int = Field(
        default=3,
        ge=0,
        description="Most recent messages never touched by compression",
    )
    checkpoint_interval: int = Field(
        default=20,
        ge=0,
        description="Appended messages between automatic checkpoints (0 disables)",
    )
    prune_min_tokens: int = Field(
        default=200,
        ge=0,
        description="Tool outputs above this size are pruned",
    )
    min_messages_to_compact: int = Field(default=4, ge=1)
    checkpoint_after_compression: bool = Field(
        default=False,
        description="Snapshot the transcript after each compression pass",
    )

    model_config = SettingsConfigDict(
        env_prefix="CONTEXT_",
        env_file=".env",
        extra="ignore",
    )

    @model_validator(mode="after")
    def check_threshold_order(self) -> Self:
        # Raised directly (not ValueError) so pydantic does not wrap it
        if not self.prune_threshold <= self.compact_threshold <= self.truncate_threshold:
            raise ConfigurationError(
                "Thresholds must be ordered prune <= compact <= truncate "
                f"(got {self.prune_threshold}, {self.compact_threshold}, "
                f"{self.truncate_threshold})"
            )
        return self

    @classmethod
    def load(cls, **values: Any) -> ContextEngineConfig:
        """Build a validated config, mapping any validation failure.

        Raises:
            ConfigurationError: If a value is out of range or misordered
        """
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid context engine config: {e}", e) from e


class MemoryAutoUpgradeConfig(BaseSettings):
    """Promotion (mid-term to long-term) settings."""

    enabled: bool = True
    days_threshold: int = Field(
        default=30,
        ge=0,
        description="Days since last access before a memory is promotable",
    )
    min_access_count: int = Field(default=3, ge=0)
    batch_size: int = Field(default=10, gt=0, description="Candidates per run")
    check_interval_seconds: float = Field(default=3600.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="MEMORY_UPGRADE_",
        env_file=".env",
        extra="ignore",
    )

    @classmethod
    def load(cls, **values: Any) -> MemoryAutoUpgradeConfig:
        """Build a validated config, mapping any validation failure."""
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid memory upgrade config: {e}", e) from e


class CleanupConfig(BaseSettings):
    """Mid-term expiry and repair settings."""

    retention_days: int = Field(default=30, ge=0)
    min_access_count: int = Field(
        default=1,
        ge=0,
        description="Records accessed fewer times than this may expire",
    )
    check_interval_seconds: float = Field(default=86400.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="MEMORY_CLEANUP_",
        env_file=".env",
        extra="ignore",
    )


class APISettings(BaseSettings):
    """HTTP surface settings."""

    title: str = "Context Engine API"
    description: str = "Conversational context management and tiered memory"
    version: str = "0.1.0"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    prefix: str = "/api/v1"
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    settings_file: str = Field(
        default="context_engine_settings.yaml",
        description="YAML file holding user-edited settings",
    )
    log_json: bool = True
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="API_",
        env_file=".env",
        extra="ignore",
    )


class SettingsStore:
    """User-editable configuration persisted to YAML.

    Lifecycle is load at startup, mutate via ``update_*``, persist on
    change. Updates are validated against the merged values before
    anything is written, so an invalid edit leaves both the in-memory
    and the on-disk configuration untouched.
    """

    CONTEXT_SECTION = "context_engine"
    UPGRADE_SECTION = "memory_auto_upgrade"

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self.context = ContextEngineConfig.load()
        self.auto_upgrade = MemoryAutoUpgradeConfig.load()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> None:
        """Load persisted sections, keeping defaults for missing ones.

        Raises:
            ConfigurationError: If the file is unreadable or invalid
        """
        if not self._path.exists():
            logger.debug("settings_file_missing", path=str(self._path))
            return

        try:
            data = yaml.safe_load(self._path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read settings file {self._path}", e) from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Settings file {self._path} must hold a mapping")

        self.context = ContextEngineConfig.load(**data.get(self.CONTEXT_SECTION, {}))
        self.auto_upgrade = MemoryAutoUpgradeConfig.load(**data.get(self.UPGRADE_SECTION, {}))
        logger.info("settings_loaded", path=str(self._path))

    def update_context(self, **changes: Any) -> ContextEngineConfig:
        """Apply and persist context engine changes."""
        merged = {**self.context.model_dump(), **changes}
        self.context = ContextEngineConfig.load(**merged)
        self._save()
        return self.context

    def update_auto_upgrade(self, **changes: Any) -> MemoryAutoUpgradeConfig:
        """Apply and persist memory auto-upgrade changes."""
        merged = {**self.auto_upgrade.model_dump(), **changes}
        self.auto_upgrade = MemoryAutoUpgradeConfig.load(**merged)
        self._save()
        return self.auto_upgrade

    def _save(self) -> None:
        data = {
            self.CONTEXT_SECTION: self.context.model_dump(),
            self.UPGRADE_SECTION: self.auto_upgrade.model_dump(),
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Cannot write settings file {self._path}", e) from e
        logger.info("settings_saved", path=str(self._path))


@lru_cache
def get_database_settings() -> DatabaseSettings:
    """Get cached database settings."""
    return DatabaseSettings()


@lru_cache
def get_summarizer_settings() -> SummarizerSettings:
    """Get cached summarizer settings."""
    return SummarizerSettings()


@lru_cache
def get_embedding_settings() -> EmbeddingSettings:
    """Get cached embedding settings."""
    return EmbeddingSettings()


@lru_cache
def get_cleanup_config() -> CleanupConfig:
    """Get cached cleanup settings."""
    return CleanupConfig()


@lru_cache
def get_api_settings() -> APISettings:
    """Get cached API settings."""
    return APISettings()
