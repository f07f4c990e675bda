"""
Tests for environment-driven settings
"""
from tabulation.config import Settings


def test_defaults(monkeypatch):
    for key in ("AUTOSAVE_DELAY_MS", "DEFAULT_AGGREGATION_MODE", "FEATURE_SCORE_CHANGE_AUDIT"):
        monkeypatch.delenv(key, raising=False)

    settings = Settings.from_env()
    assert settings.autosave_delay_ms == 500
    assert settings.autosave_delay == 0.5
    assert settings.default_aggregation_mode == "rank"
    assert settings.score_change_audit is True


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("AUTOSAVE_DELAY_MS", "250")
    monkeypatch.setenv("DEFAULT_AGGREGATION_MODE", "Score")
    monkeypatch.setenv("FEATURE_SCORE_CHANGE_AUDIT", "off")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = Settings.from_env()
    assert settings.autosave_delay == 0.25
    assert settings.default_aggregation_mode == "score"
    assert settings.score_change_audit is False
    assert settings.log_level == "DEBUG"


def test_bad_values_fall_back(monkeypatch):
    monkeypatch.setenv("AUTOSAVE_DELAY_MS", "soon")
    monkeypatch.setenv("DEFAULT_AGGREGATION_MODE", "median")

    settings = Settings.from_env()
    assert settings.autosave_delay_ms == 500
    assert settings.default_aggregation_mode == "rank"
