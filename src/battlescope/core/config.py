"""
BattleScope Centralized Configuration

Provides validated, type-safe access to all environment variables using Pydantic Settings.

Usage:
    from battlescope.core.config import get_settings

    settings = get_settings()
    interval = settings.ingest_poll_interval_ms

Data Paths:
    All data is stored in {instance_root}/cache/ unless overridden:
    - cache/battlescope.db: Killmail, battle, enrichment and ship-history store

Environment Variables:
    BATTLESCOPE_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    BATTLESCOPE_LOG_JSON: Output logs as JSON
    BATTLESCOPE_DATABASE_PATH: SQLite database path override
    BATTLESCOPE_REDIS_URL: Redis connection URL (cache, pub/sub, queue)
    BATTLESCOPE_INGEST_POLL_INTERVAL_MS: Ingestion poll interval
    BATTLESCOPE_ENRICHMENT_CONCURRENCY: Simultaneous enrichment fetches
    BATTLESCOPE_ENRICHMENT_THROTTLE_MS: Delay before each enrichment fetch
    BATTLESCOPE_RULESET_CACHE_TTL_SECONDS: Ruleset cache TTL
    BATTLESCOPE_CLUSTER_BATCH_SIZE: Events per clustering batch
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_project_root() -> Path | None:
    """
    Search upward from this file for the directory holding pyproject.toml.

    Returns:
        Project root path, or None if not found
    """
    current = Path(__file__).resolve().parent
    for _ in range(10):
        if (current / "pyproject.toml").exists():
            return current
        parent = current.parent
        if parent == current:
            break
        current = parent
    return None


def _find_project_env_file() -> Path | None:
    root = _find_project_root()
    if root is None:
        return None
    env_file = root / ".env"
    return env_file if env_file.exists() else None


def _find_instance_root() -> Path:
    """
    Find the BattleScope instance root directory.

    Resolution order:
    1. BATTLESCOPE_INSTANCE_ROOT environment variable (explicit override)
    2. Project root (directory containing pyproject.toml)
    3. Current working directory (fallback)
    """
    override = os.environ.get("BATTLESCOPE_INSTANCE_ROOT")
    if override:
        return Path(override)
    return _find_project_root() or Path.cwd()


_ENV_FILE = _find_project_env_file()
_INSTANCE_ROOT = _find_instance_root()


class BattlescopeSettings(BaseSettings):
    """
    BattleScope configuration settings with validation.

    Environment variables are automatically loaded with the BATTLESCOPE_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="BATTLESCOPE_",
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # =========================================================================
    # Logging Configuration
    # =========================================================================

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Log level for BattleScope components",
    )

    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format for machine parsing",
    )

    # =========================================================================
    # Storage
    # =========================================================================

    instance_root: Path = Field(
        default=_INSTANCE_ROOT,
        description="Instance root directory (project root containing pyproject.toml)",
    )

    database_path: Optional[Path] = Field(
        default=None,
        description="SQLite database path (default: {instance_root}/cache/battlescope.db)",
    )

    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis URL used for the ruleset cache, invalidation channel and queues",
    )

    # =========================================================================
    # Upstream Feeds
    # =========================================================================

    redisq_url: str = Field(
        default="https://zkillredisq.stream/listen.php",
        description="RedisQ long-poll endpoint",
    )

    redisq_queue_id: Optional[str] = Field(
        default=None,
        description="RedisQ queue identifier (persistent cursor on the upstream side)",
    )

    redisq_ttw_seconds: int = Field(
        default=10,
        ge=1,
        le=10,
        description="Seconds RedisQ may hold a request open waiting for a kill",
    )

    upstream_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Client-side timeout for upstream HTTP requests",
    )

    user_agent: str = Field(
        default="BattleScope/1.0 (battle clustering)",
        description="User-Agent sent to zKillboard and ESI",
    )

    # =========================================================================
    # Ingestion
    # =========================================================================

    ingest_poll_interval_ms: int = Field(
        default=5000,
        ge=500,
        description="Delay after an empty poll or a feed error",
    )

    backfill_request_delay_ms: int = Field(
        default=1000,
        ge=0,
        description="Minimum delay between history endpoint requests",
    )

    # =========================================================================
    # Enrichment
    # =========================================================================

    enrichment_concurrency: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Maximum simultaneous enrichment fetches",
    )

    enrichment_throttle_ms: int = Field(
        default=0,
        ge=0,
        description="Delay before each enrichment fetch",
    )

    # =========================================================================
    # Ruleset Cache
    # =========================================================================

    ruleset_cache_ttl_seconds: int = Field(
        default=300,
        ge=1,
        description="Seconds a cached ruleset stays valid without invalidation",
    )

    # =========================================================================
    # Clustering
    # =========================================================================

    cluster_window_minutes: int = Field(default=30, ge=1)
    cluster_gap_max_minutes: int = Field(default=15, ge=1)
    cluster_min_kills: int = Field(default=2, ge=1)
    cluster_processing_delay_minutes: int = Field(
        default=30,
        ge=0,
        description="Only cluster events older than this, so late arrivals can join",
    )
    cluster_batch_size: int = Field(default=500, ge=1)
    cluster_interval_ms: int = Field(default=10000, ge=100)

    # =========================================================================
    # Ship History
    # =========================================================================

    ship_history_batch_size: int = Field(default=1000, ge=1)

    # =========================================================================
    # Health Endpoint
    # =========================================================================

    health_host: str = Field(default="0.0.0.0")
    health_port: int = Field(default=3002, ge=1, le=65535)

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level", mode="before")
    @classmethod
    def uppercase_log_level(cls, v: str) -> str:
        """Normalize log level to uppercase."""
        if isinstance(v, str):
            return v.upper()
        return v

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def log_level_int(self) -> int:
        """Get log level as logging constant."""
        return getattr(logging, self.log_level)

    @property
    def cache_dir(self) -> Path:
        """Path to cache directory."""
        return self.instance_root / "cache"

    @property
    def db_path(self) -> Path:
        """Path to the SQLite database."""
        if self.database_path is not None:
            return self.database_path
        return self.cache_dir / "battlescope.db"


# =============================================================================
# Singleton Accessor
# =============================================================================


@lru_cache(maxsize=1)
def get_settings() -> BattlescopeSettings:
    """
    Get the singleton settings instance.

    Returns:
        BattlescopeSettings instance with validated configuration
    """
    return BattlescopeSettings()


def reset_settings() -> None:
    """
    Reset the settings cache (for testing).

    After calling this, the next get_settings() call will
    reload settings from environment variables.
    """
    get_settings.cache_clear()
