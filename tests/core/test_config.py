from __future__ import annotations

import pytest

from accounting.core.config import AppEnv, Settings, load_settings

_ACCOUNTING_VARS = (
    "ACCOUNTING_ENABLED",
    "ACCOUNTING_REAP_CHILDREN",
    "ACCOUNTING_MAX_REDIRECTS",
    "LOG_JSON",
)


@pytest.fixture(autouse=True)
def _clean_accounting_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ACCOUNTING_VARS:
        monkeypatch.delenv(name, raising=False)


# ---- valid values ----


def test_load_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("APP_ENV", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    settings = load_settings()
    assert settings.app_env == "dev"
    assert settings.log_level == "info"
    assert settings.log_json is False
    assert settings.accounting_enabled is True
    assert settings.accounting_reap_children is True
    assert settings.accounting_max_redirects == 10


def test_load_settings_respects_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "prod")
    monkeypatch.setenv("LOG_LEVEL", "error")
    monkeypatch.setenv("ACCOUNTING_ENABLED", "false")
    monkeypatch.setenv("ACCOUNTING_REAP_CHILDREN", "0")
    monkeypatch.setenv("ACCOUNTING_MAX_REDIRECTS", "3")
    settings = load_settings()
    assert settings.app_env == "prod"
    assert settings.log_level == "error"
    assert settings.accounting_enabled is False
    assert settings.accounting_reap_children is False
    assert settings.accounting_max_redirects == 3


def test_load_settings_normalizes_case(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "PROD")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("LOG_JSON", "TRUE")
    settings = load_settings()
    assert settings.app_env == "prod"
    assert settings.log_level == "debug"
    assert settings.log_json is True


def test_load_settings_strips_whitespace(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "  test  ")
    monkeypatch.setenv("LOG_LEVEL", "  warning  ")
    monkeypatch.setenv("ACCOUNTING_ENABLED", "  yes ")
    settings = load_settings()
    assert settings.app_env == "test"
    assert settings.log_level == "warning"
    assert settings.accounting_enabled is True


# ---- invalid values ----


def test_load_settings_rejects_invalid_app_env(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("APP_ENV", "staging")
    monkeypatch.setenv("LOG_LEVEL", "info")
    with pytest.raises(ValueError, match="APP_ENV must be dev|test|prod"):
        load_settings()


def test_load_settings_rejects_invalid_log_level(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("APP_ENV", "dev")
    monkeypatch.setenv("LOG_LEVEL", "verbose")
    with pytest.raises(ValueError, match="LOG_LEVEL must be debug|info|warning|error"):
        load_settings()


def test_load_settings_rejects_non_boolean_flag(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.delenv("APP_ENV", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.setenv("ACCOUNTING_ENABLED", "maybe")
    with pytest.raises(ValueError, match="ACCOUNTING_ENABLED must be true|false"):
        load_settings()


def test_load_settings_rejects_non_integer_redirect_limit(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.delenv("APP_ENV", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.setenv("ACCOUNTING_MAX_REDIRECTS", "many")
    with pytest.raises(ValueError, match="ACCOUNTING_MAX_REDIRECTS must be an integer"):
        load_settings()


def test_load_settings_rejects_zero_redirect_limit(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.delenv("APP_ENV", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.setenv("ACCOUNTING_MAX_REDIRECTS", "0")
    with pytest.raises(ValueError, match="ACCOUNTING_MAX_REDIRECTS must be positive"):
        load_settings()


# ---- Settings properties ----


def _make_settings(app_env: AppEnv = "dev") -> Settings:
    return Settings(  # type: ignore[arg-type]
        app_env=app_env,
        log_level="info",
        log_json=False,
        port=8000,
        accounting_enabled=True,
        accounting_reap_children=True,
        accounting_max_redirects=10,
    )


def test_settings_env_properties() -> None:
    assert _make_settings("dev").is_dev is True
    assert _make_settings("test").is_test is True
    assert _make_settings("prod").is_prod is True
    assert _make_settings("prod").is_dev is False


def test_settings_is_frozen() -> None:
    s = _make_settings()
    with pytest.raises(AttributeError):
        s.accounting_enabled = False  # type: ignore[misc]
