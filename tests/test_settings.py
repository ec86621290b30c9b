import pytest

from budget_engine.settings import (
    DEFAULT_CURRENCY_ENV,
    DEFAULT_UNIT_ENV,
    MAX_DEPTH_ENV,
    SEARCH_LIMIT_ENV,
    SNAPSHOT_LIMIT_ENV,
    EngineSettings,
    SettingsError,
    load_engine_settings,
)

ALL_KEYS = (MAX_DEPTH_ENV, SNAPSHOT_LIMIT_ENV, SEARCH_LIMIT_ENV, DEFAULT_UNIT_ENV, DEFAULT_CURRENCY_ENV)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ALL_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults_when_environment_is_empty():
    assert load_engine_settings() == EngineSettings()


def test_values_are_read_from_environment(monkeypatch):
    monkeypatch.setenv(MAX_DEPTH_ENV, "5")
    monkeypatch.setenv(SNAPSHOT_LIMIT_ENV, "10")
    monkeypatch.setenv(SEARCH_LIMIT_ENV, " ")
    monkeypatch.setenv(DEFAULT_UNIT_ENV, "Mes")
    monkeypatch.setenv(DEFAULT_CURRENCY_ENV, "usd")

    settings = load_engine_settings()

    assert settings.max_depth == 5
    assert settings.snapshot_limit == 10
    assert settings.search_limit == 10
    assert settings.default_unit == "Mes"
    assert settings.default_currency == "USD"


@pytest.mark.parametrize("raw", ["three", "0", "-2"])
def test_invalid_limits_raise(monkeypatch, raw):
    monkeypatch.setenv(MAX_DEPTH_ENV, raw)

    with pytest.raises(SettingsError):
        load_engine_settings()
