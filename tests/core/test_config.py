from __future__ import annotations

import pytest

from coursecache.core.config import AppEnv, Settings, load_settings

_VARS = (
    "APP_ENV",
    "LOG_LEVEL",
    "LOG_JSON",
    "API_BASE_URL",
    "API_TIMEOUT",
    "ACTIVITY_LOG_CAPACITY",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)


# ---- valid values ----


def test_load_settings_defaults() -> None:
    settings = load_settings()
    assert settings.app_env == "dev"
    assert settings.log_level == "info"
    assert settings.log_json is False
    assert settings.api_base_url == "http://localhost:5000"
    assert settings.api_timeout == 10.0
    assert settings.activity_log_capacity == 20


def test_load_settings_respects_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "prod")
    monkeypatch.setenv("LOG_LEVEL", "error")
    monkeypatch.setenv("LOG_JSON", "yes")
    monkeypatch.setenv("API_BASE_URL", "https://lms.example.com/")
    monkeypatch.setenv("API_TIMEOUT", "2.5")
    monkeypatch.setenv("ACTIVITY_LOG_CAPACITY", "5")
    settings = load_settings()
    assert settings.app_env == "prod"
    assert settings.log_level == "error"
    assert settings.log_json is True
    assert settings.api_base_url == "https://lms.example.com"
    assert settings.api_timeout == 2.5
    assert settings.activity_log_capacity == 5


def test_load_settings_normalizes_case_and_whitespace(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "  TEST ")
    monkeypatch.setenv("LOG_LEVEL", " Warning")
    settings = load_settings()
    assert settings.app_env == "test"
    assert settings.log_level == "warning"


# ---- invalid values ----


@pytest.mark.parametrize(
    ("name", "value", "message"),
    [
        ("APP_ENV", "staging", "APP_ENV must be dev|test|prod"),
        ("APP_ENV", "", "APP_ENV must be dev|test|prod"),
        ("LOG_LEVEL", "verbose", "LOG_LEVEL must be debug|info|warning|error"),
        ("LOG_JSON", "maybe", "LOG_JSON must be true|false"),
        ("API_TIMEOUT", "soon", "API_TIMEOUT must be a number"),
        ("API_TIMEOUT", "0", "API_TIMEOUT must be positive"),
        ("ACTIVITY_LOG_CAPACITY", "ten", "ACTIVITY_LOG_CAPACITY must be an integer"),
        ("ACTIVITY_LOG_CAPACITY", "-1", "ACTIVITY_LOG_CAPACITY must be positive"),
    ],
)
def test_load_settings_rejects_invalid_values(
    monkeypatch: pytest.MonkeyPatch, name: str, value: str, message: str
) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError, match=message.replace("|", r"\|")):
        load_settings()


# ---- Settings properties ----


def _make_settings(app_env: AppEnv = "dev") -> Settings:
    return Settings(
        app_env=app_env,
        log_level="info",
        log_json=False,
        api_base_url="http://localhost:5000",
        api_timeout=10.0,
        activity_log_capacity=20,
    )


def test_settings_is_dev() -> None:
    s = _make_settings("dev")
    assert (s.is_dev, s.is_test, s.is_prod) == (True, False, False)


def test_settings_is_test() -> None:
    s = _make_settings("test")
    assert (s.is_dev, s.is_test, s.is_prod) == (False, True, False)


def test_settings_is_prod() -> None:
    s = _make_settings("prod")
    assert (s.is_dev, s.is_test, s.is_prod) == (False, False, True)


def test_settings_is_frozen() -> None:
    s = _make_settings()
    with pytest.raises(AttributeError):
        s.app_env = "prod"  # type: ignore[misc]
