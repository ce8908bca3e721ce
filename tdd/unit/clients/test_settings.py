"""
Tests for settings loaded from the environment.
"""

from envsetup.config import (
    DEFAULT_DIALOG_PORT,
    FALLBACK_DIALOG_PORTS,
    HELP_URL,
    get_settings,
)


def test_defaults():
    settings = get_settings()

    assert settings.headless is False
    assert settings.help_url == HELP_URL
    assert settings.dialog_port == DEFAULT_DIALOG_PORT == 3721
    assert settings.dialog_fallback_ports == FALLBACK_DIALOG_PORTS
    assert FALLBACK_DIALOG_PORTS[0] == 3722 and FALLBACK_DIALOG_PORTS[-1] == 3735
    assert settings.free_env_alias == "ai-native"
    assert settings.promotion_names == ["NewUser", "ReturningUser", "BaasFree"]
    assert settings.dialog_timeout is None


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("CLOUDENV_CLOUD_MODE", "true")
    monkeypatch.setenv("CLOUDENV_DIALOG_PORT", "4000")
    monkeypatch.setenv("CLOUDENV_DIALOG_TIMEOUT", "600")
    monkeypatch.setenv("CLOUDENV_VERIFY_TIMEOUT", "0")
    monkeypatch.setenv("CLOUDENV_TELEMETRY_DISABLED", "TRUE")
    get_settings.cache_clear()

    settings = get_settings()

    assert settings.headless is True
    assert settings.dialog_port == 4000
    assert settings.dialog_timeout == 600.0
    assert settings.verify_timeout == 0.0
    assert settings.telemetry_disabled is True


def test_cached():
    assert get_settings() is get_settings()
