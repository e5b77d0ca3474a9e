"""Tests for Settings — environment loading and tracking configuration."""

from __future__ import annotations

import pytest

from drivelog.core.config.settings import Settings, get_settings
from drivelog.domains.driving.domain_logic.tracking_models import (
    MPH_5,
    ConfigurationInvalid,
)


class TestDefaults:
    def test_loopback_by_default(self):
        settings = Settings(_env_file=None)
        assert settings.drivelog_host == "127.0.0.1"
        assert settings.drivelog_allow_insecure_bind is False

    def test_default_tracking_config(self):
        config = Settings(_env_file=None).tracking_config()
        assert config.speed_threshold == MPH_5
        assert config.trip_separator_seconds == 210.0
        assert config.sample_rate_seconds == 5.0
        assert config.trip_entries_min == 12
        assert config.journal_limit == 1000
        assert config.trip_history_limit == 20


class TestEnvironment:
    def test_tracking_values_from_env(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("TRACKING_SPEED_THRESHOLD", "3.5")
        monkeypatch.setenv("TRACKING_JOURNAL_LIMIT", "250")
        monkeypatch.setenv("GEOCODER", "mock")
        settings = get_settings()
        assert settings.geocoder == "mock"
        config = settings.tracking_config()
        assert config.speed_threshold == 3.5
        assert config.journal_limit == 250

    def test_invalid_tracking_value_rejected(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("TRACKING_TRIP_SEPARATOR_SECONDS", "0")
        with pytest.raises(ConfigurationInvalid, match="trip_separator_seconds"):
            get_settings().tracking_config()

    def test_unknown_timezone_rejected(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("TRACKING_PERIOD_TIMEZONE", "Mars/Olympus_Mons")
        with pytest.raises(ConfigurationInvalid, match="period_timezone"):
            get_settings().tracking_config()
