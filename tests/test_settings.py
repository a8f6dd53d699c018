"""
Tests for settings validation.
"""

import pytest
from pydantic import ValidationError

from shared.config.settings import Settings


class TestSettingsBounds:
    """Out-of-range values fail when settings load, not later."""

    def test_defaults_are_valid(self):
        settings = Settings(_env_file=None)
        assert settings.ws_reconnect_attempts == 5
        assert settings.validate_production() == []

    def test_zero_reconnect_attempts_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, ws_reconnect_attempts=0)

    def test_reconnect_attempts_from_env_rejected(self, monkeypatch):
        monkeypatch.setenv("KITCHEN_WS_RECONNECT_ATTEMPTS", "0")
        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    @pytest.mark.parametrize(
        "field",
        [
            "ws_reconnect_delay",
            "ws_open_timeout",
            "ws_max_message_size",
            "http_timeout",
            "sla_tick_interval",
        ],
    )
    def test_non_positive_values_rejected(self, field):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **{field: 0})

    def test_backoff_cap_below_initial_delay_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, ws_reconnect_delay=10.0, ws_max_reconnect_delay=5.0)

    def test_volume_bounds(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, volume=1.5)
