"""Core configuration - centralized config for the xlnsync package.

All environment-based configuration should flow through this module.
This provides a single source of truth and consistent defaults.

Usage:
    from xlnsync.core.config import get_config
    config = get_config()

    server_url = config.server_url
    pacing = config.consensus_pacing_interval
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SyncSettings(BaseSettings):
    """Configuration settings for the sync engine.

    Settings can be configured via environment variables with the
    XLNSYNC_ prefix, or from a ``.env`` file in the working directory.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ==========================================================================
    # TRANSPORT SETTINGS
    # ==========================================================================

    server_url: str = Field(
        default="ws://localhost:4001/ws",
        description="WebSocket endpoint of the network update stream",
        validation_alias="XLNSYNC_SERVER_URL",
    )
    reconnection_attempts: int = Field(
        default=5,
        ge=0,
        description="Retries after the first failed attempt before falling back",
        validation_alias="XLNSYNC_RECONNECTION_ATTEMPTS",
    )
    reconnection_delay: float = Field(
        default=1.0,
        ge=0.0,
        description="Fixed delay between connection attempts (seconds)",
        validation_alias="XLNSYNC_RECONNECTION_DELAY",
    )
    connect_timeout: float = Field(
        default=10.0,
        gt=0.0,
        description="Timeout for a single connection attempt (seconds)",
        validation_alias="XLNSYNC_CONNECT_TIMEOUT",
    )
    heartbeat_interval: float = Field(
        default=30.0,
        gt=0.0,
        description="WebSocket heartbeat interval (seconds)",
        validation_alias="XLNSYNC_HEARTBEAT_INTERVAL",
    )

    # ==========================================================================
    # DELIVERY SETTINGS
    # ==========================================================================

    consensus_pacing_interval: float = Field(
        default=0.5,
        ge=0.0,
        description="Pause between successive consensus event deliveries (seconds)",
        validation_alias="XLNSYNC_CONSENSUS_PACING_INTERVAL",
    )

    # ==========================================================================
    # FALLBACK SIMULATION SETTINGS
    # ==========================================================================

    fallback_tick_interval: float = Field(
        default=2.0,
        gt=0.0,
        description="Interval between synthetic updates in fallback mode (seconds)",
        validation_alias="XLNSYNC_FALLBACK_TICK_INTERVAL",
    )
    fallback_seed: int | None = Field(
        default=None,
        description="Seed for the synthetic feed (unset = nondeterministic)",
        validation_alias="XLNSYNC_FALLBACK_SEED",
    )
    fallback_metrics_weight: float = Field(
        default=0.3,
        ge=0.0,
        validation_alias="XLNSYNC_FALLBACK_METRICS_WEIGHT",
    )
    fallback_delta_weight: float = Field(
        default=0.2,
        ge=0.0,
        validation_alias="XLNSYNC_FALLBACK_DELTA_WEIGHT",
    )
    fallback_consensus_weight: float = Field(
        default=0.1,
        ge=0.0,
        validation_alias="XLNSYNC_FALLBACK_CONSENSUS_WEIGHT",
    )
    fallback_idle_weight: float = Field(
        default=0.4,
        ge=0.0,
        description="Relative weight of ticks that emit nothing",
        validation_alias="XLNSYNC_FALLBACK_IDLE_WEIGHT",
    )

    # ==========================================================================
    # LOGGING SETTINGS
    # ==========================================================================

    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
        validation_alias="XLNSYNC_LOG_LEVEL",
    )
    log_format: str = Field(
        default="",
        description="Log format: 'json', 'text', or '' (auto-detect)",
        validation_alias="XLNSYNC_LOG_FORMAT",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (optional)",
        validation_alias="XLNSYNC_LOG_FILE",
    )


# ==========================================================================
# GLOBAL CONFIG INSTANCE (lazy loaded)
# ==========================================================================

_config: SyncSettings | None = None


def get_config() -> SyncSettings:
    """Get the global configuration instance.

    Returns:
        The singleton SyncSettings instance.
    """
    global _config
    if _config is None:
        _config = SyncSettings()
    return _config


def clear_config_cache() -> None:
    """Clear the config cache. Useful for testing."""
    global _config
    _config = None
