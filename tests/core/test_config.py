"""Tests for xlnsync.core.config - SyncSettings and global config management.

Tests cover:
- Settings loading with defaults
- Environment variable overrides
- Range validation
- Singleton behavior (get_config / clear_config_cache)
- Component configs built from settings
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from xlnsync.core.config import SyncSettings, clear_config_cache, get_config
from xlnsync.core.exceptions import ConfigException
from xlnsync.network.connection_manager import ConnectionManagerConfig
from xlnsync.network.consensus import ConsensusSchedulerConfig
from xlnsync.network.simulator import SimulatorConfig

# ============================================================================
# SyncSettings - Default Values
# ============================================================================


class TestSyncSettingsDefaults:
    """Test that SyncSettings loads with correct default values."""

    def test_transport_defaults(self, clean_env):
        settings = SyncSettings()

        assert settings.server_url == "ws://localhost:4001/ws"
        assert settings.reconnection_attempts == 5
        assert settings.reconnection_delay == 1.0
        assert settings.connect_timeout == 10.0
        assert settings.heartbeat_interval == 30.0

    def test_delivery_defaults(self, clean_env):
        settings = SyncSettings()

        assert settings.consensus_pacing_interval == 0.5
        assert settings.fallback_tick_interval == 2.0
        assert settings.fallback_seed is None

    def test_fallback_weight_defaults(self, clean_env):
        """Weights match the mock-mode mix: metrics, delta, consensus, idle."""
        settings = SyncSettings()

        assert settings.fallback_metrics_weight == 0.3
        assert settings.fallback_delta_weight == 0.2
        assert settings.fallback_consensus_weight == 0.1
        assert settings.fallback_idle_weight == 0.4

    def test_logging_defaults(self, clean_env):
        settings = SyncSettings()

        assert settings.log_level == "INFO"
        assert settings.log_format == ""
        assert settings.log_file is None


# ============================================================================
# SyncSettings - Environment Overrides
# ============================================================================


class TestSyncSettingsEnvironment:
    """Test that XLNSYNC_ environment variables override defaults."""

    def test_transport_overrides(self, clean_env, monkeypatch):
        monkeypatch.setenv("XLNSYNC_SERVER_URL", "ws://example.org:9000/ws")
        monkeypatch.setenv("XLNSYNC_RECONNECTION_ATTEMPTS", "2")
        monkeypatch.setenv("XLNSYNC_RECONNECTION_DELAY", "0.25")

        settings = SyncSettings()

        assert settings.server_url == "ws://example.org:9000/ws"
        assert settings.reconnection_attempts == 2
        assert settings.reconnection_delay == 0.25

    def test_fallback_overrides(self, clean_env, monkeypatch):
        monkeypatch.setenv("XLNSYNC_FALLBACK_SEED", "42")
        monkeypatch.setenv("XLNSYNC_FALLBACK_IDLE_WEIGHT", "0")

        settings = SyncSettings()

        assert settings.fallback_seed == 42
        assert settings.fallback_idle_weight == 0.0

    def test_negative_attempts_rejected(self, clean_env, monkeypatch):
        monkeypatch.setenv("XLNSYNC_RECONNECTION_ATTEMPTS", "-1")

        with pytest.raises(ValidationError):
            SyncSettings()

    def test_zero_tick_rejected(self, clean_env, monkeypatch):
        monkeypatch.setenv("XLNSYNC_FALLBACK_TICK_INTERVAL", "0")

        with pytest.raises(ValidationError):
            SyncSettings()


# ============================================================================
# Global config
# ============================================================================


class TestGetConfig:
    """Test the lazily created singleton."""

    def test_returns_same_instance(self, clean_env):
        assert get_config() is get_config()

    def test_clear_cache_reloads(self, clean_env, monkeypatch):
        first = get_config()
        monkeypatch.setenv("XLNSYNC_LOG_LEVEL", "DEBUG")

        assert get_config() is first
        clear_config_cache()

        second = get_config()
        assert second is not first
        assert second.log_level == "DEBUG"


# ============================================================================
# Component configs
# ============================================================================


class TestFromSettings:
    """Component dataclass configs read their fields from settings."""

    def test_connection_config(self, clean_env, monkeypatch):
        monkeypatch.setenv("XLNSYNC_RECONNECTION_ATTEMPTS", "3")
        config = ConnectionManagerConfig.from_settings(SyncSettings())

        assert config.reconnection_attempts == 3
        assert config.reconnection_delay == 1.0
        assert config.server_url == "ws://localhost:4001/ws"

    def test_consensus_config(self, clean_env, monkeypatch):
        monkeypatch.setenv("XLNSYNC_CONSENSUS_PACING_INTERVAL", "0.1")
        config = ConsensusSchedulerConfig.from_settings(SyncSettings())

        assert config.pacing_interval == 0.1

    def test_simulator_config(self, clean_env, monkeypatch):
        monkeypatch.setenv("XLNSYNC_FALLBACK_SEED", "7")
        config = SimulatorConfig.from_settings(SyncSettings())

        assert config.seed == 7
        assert config.tick_interval == 2.0
        assert config.metrics_weight == 0.3

    def test_simulator_rejects_all_zero_weights(self, clean_env, monkeypatch):
        for name in ("METRICS", "DELTA", "CONSENSUS", "IDLE"):
            monkeypatch.setenv(f"XLNSYNC_FALLBACK_{name}_WEIGHT", "0")

        with pytest.raises(ConfigException) as exc_info:
            SimulatorConfig.from_settings(SyncSettings())
        assert exc_info.value.setting == "weights"
