"""Tests for configuration loading and validation."""

from dataclasses import replace

import pytest

from availability_engine.config import (
    AppConfig,
    BookingPolicyConfig,
    BusinessHoursConfig,
    PatternConfig,
    _safe_int,
    _validate_config,
)


class TestConfigValidation:
    def test_default_config_passes_validation(self):
        config = AppConfig()
        _validate_config(config)  # should not raise

    def test_open_after_close_rejected(self):
        config = replace(
            AppConfig(),
            business=replace(BusinessHoursConfig(), open_time="22:00", close_time="08:00"),
        )
        with pytest.raises(ValueError, match="BUSINESS_OPEN_TIME"):
            _validate_config(config)

    def test_bad_time_format_rejected(self):
        config = replace(AppConfig(), business=replace(BusinessHoursConfig(), close_time="11pm"))
        with pytest.raises(ValueError, match="BUSINESS_CLOSE_TIME"):
            _validate_config(config)

    def test_max_below_min_rejected(self):
        config = replace(
            AppConfig(),
            business=replace(BusinessHoursConfig(), min_slot_minutes=60, max_slot_minutes=30),
        )
        with pytest.raises(ValueError, match="MAX_SLOT_MINUTES"):
            _validate_config(config)

    def test_unknown_auto_decline_policy_rejected(self):
        config = replace(
            AppConfig(), booking=replace(BookingPolicyConfig(), auto_decline_policy="sometimes")
        )
        with pytest.raises(ValueError, match="AUTO_DECLINE_POLICY"):
            _validate_config(config)

    def test_zero_pattern_range_rejected(self):
        config = replace(AppConfig(), patterns=PatternConfig(max_pattern_range_days=0))
        with pytest.raises(ValueError, match="MAX_PATTERN_RANGE_DAYS"):
            _validate_config(config)

    def test_safe_int_parsing(self):
        assert _safe_int("NONEXISTENT_VAR_12345", "42") == 42

    def test_safe_int_names_variable(self, monkeypatch):
        monkeypatch.setenv("AVAIL_TEST_BAD_INT", "abc")
        with pytest.raises(ValueError, match="AVAIL_TEST_BAD_INT"):
            _safe_int("AVAIL_TEST_BAD_INT", "1")
