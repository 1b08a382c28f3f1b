"""
Tests for environment-driven configuration.
"""
import pytest

from waitlist_alerts.config import AgentDirectory, AppConfig
from waitlist_alerts.errors import ConfigurationError


def test_agent_directory_from_env(monkeypatch):
    monkeypatch.setenv("AGENT_EMAILS", '{"Jane Agent": "jane@example.com"}')
    monkeypatch.setenv("LEASING_EMAIL", "leasing@example.com")

    directory = AgentDirectory.from_env()

    assert directory.resolve("Jane Agent") == "jane@example.com"
    assert directory.resolve("Unassigned") is None
    assert directory.resolve("Ghost") is None
    assert directory.resolve_with_fallback("Ghost") == "leasing@example.com"


@pytest.mark.parametrize("raw", ["not json", '["jane@example.com"]'])
def test_agent_directory_rejects_bad_json(monkeypatch, raw):
    monkeypatch.setenv("AGENT_EMAILS", raw)
    with pytest.raises(ConfigurationError):
        AgentDirectory.from_env()


def test_app_config_defaults(monkeypatch):
    for name in ("FLEX_WINDOW_DAYS", "MIN_POLL_INTERVAL_MINUTES", "POLL_INTERVAL_HOURS", "UNIT_SHEET_NAME"):
        monkeypatch.delenv(name, raising=False)

    config = AppConfig.from_env()

    assert config.flex_window_days == 30
    assert config.min_poll_interval_minutes == 0
    assert config.poll_interval_hours == 3
    assert config.sheet_name == "DASH"


def test_app_config_overrides(monkeypatch):
    monkeypatch.setenv("FLEX_WINDOW_DAYS", "14")
    monkeypatch.setenv("CRON_SECRET", "abc")

    config = AppConfig.from_env()

    assert config.flex_window_days == 14
    assert config.cron_secret == "abc"
