"""
Module: test_settings.py
Description: Unit tests for environment-driven settings.
"""

import pytest
from pydantic import ValidationError

from webhook_relay.config.settings import Settings


class TestSettings:

    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.delivery_timeout == 7
        assert settings.max_attempts == 5
        assert settings.backoff_delay_seconds == 60
        assert settings.lease_seconds == 60
        assert settings.default_target_url is None
        assert settings.metrics_enabled is False

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("MAX_ATTEMPTS", "3")
        monkeypatch.setenv("DELIVERY_QUEUE_URL", "https://sqs.us-east-1.amazonaws.com/1/q")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        settings = Settings(_env_file=None)

        assert settings.max_attempts == 3
        assert settings.delivery_queue_url.endswith("/q")
        assert settings.log_level == "DEBUG"

    def test_empty_default_target_is_unset(self):
        assert Settings(_env_file=None, default_target_url="").default_target_url is None

    def test_invalid_default_target(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, default_target_url="mailto:ops@example.com")

    def test_invalid_table_name(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, events_table_name="events table")

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_level="LOUD")

    def test_lease_must_outlive_delivery_timeout(self):
        with pytest.raises(ValidationError, match="lease_seconds must be greater"):
            Settings(_env_file=None, lease_seconds=7, delivery_timeout=7)
