"""Tests for environment-based settings."""

from slokeeper.config import Settings, get_settings


def test_defaults(monkeypatch):
    monkeypatch.delenv("SLOKEEPER_DATABASE_URL", raising=False)
    settings = Settings(_env_file=None)

    assert settings.query_timeout_seconds == 120.0
    assert settings.realert_interval_minutes == 60
    assert settings.advance_alert_state_on_delivery_failure is True
    assert settings.raw_timestamp_column == "Timestamp"
    assert settings.aggregation_timeout_seconds == 60.0
    assert settings.aggregation_max_buckets == 1440
    assert settings.effective_telemetry_url == settings.database_url


def test_env_prefix(monkeypatch):
    monkeypatch.setenv("SLOKEEPER_MAX_CONCURRENCY", "16")
    monkeypatch.setenv("SLOKEEPER_ADVANCE_ALERT_STATE_ON_DELIVERY_FAILURE", "false")
    monkeypatch.setenv("SLOKEEPER_TELEMETRY_DATABASE_URL", "postgresql+psycopg://ch/telemetry")

    settings = Settings(_env_file=None)

    assert settings.max_concurrency == 16
    assert settings.advance_alert_state_on_delivery_failure is False
    assert settings.effective_telemetry_url == "postgresql+psycopg://ch/telemetry"


def test_get_settings_cached():
    get_settings.cache_clear()
    assert get_settings() is get_settings()
    get_settings.cache_clear()
