"""Relay settings loading and validation."""
from __future__ import annotations

import pytest

from tiktok.core.config import TikTokRelaySettings, get_settings, validate_env_vars


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db:5432/relay")
    for name in ("ROUND_TIMEOUT_SECONDS", "MAX_HEARTS", "HEALTH_PORT", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)

    settings = TikTokRelaySettings(_env_file=None)

    assert settings.round_timeout_seconds == 15.0
    assert settings.max_hearts == 5
    assert settings.cleanup_interval_seconds == 30.0
    assert settings.stale_session_seconds == 30.0
    assert settings.health_port == 4345
    assert settings.sign_api_key == ""


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db:5432/relay")
    monkeypatch.setenv("ROUND_TIMEOUT_SECONDS", "0.5")
    monkeypatch.setenv("MAX_HEARTS", "3")

    settings = TikTokRelaySettings(_env_file=None)

    assert settings.round_timeout_seconds == 0.5
    assert settings.max_hearts == 3


def test_invalid_log_level_falls_back(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db:5432/relay")
    monkeypatch.setenv("LOG_LEVEL", "chatty")

    assert TikTokRelaySettings(_env_file=None).log_level == "INFO"


def test_log_level_is_uppercased(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db:5432/relay")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    assert TikTokRelaySettings(_env_file=None).log_level == "DEBUG"


def test_validate_env_vars_rejects_bad_database_url(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "mysql://u:p@db/relay")

    with pytest.raises(ValueError):
        validate_env_vars()


def test_validate_env_vars_returns_settings(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db:5432/relay")

    settings = validate_env_vars()

    assert settings.database_url == "postgresql://u:p@db:5432/relay"
    assert settings is get_settings()
