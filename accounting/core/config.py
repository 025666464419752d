from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


def _getenv(name: str, default: str) -> str:
    # Centralize env access so it’s easy to extend later (type casting, required vars)
    return os.environ.get(name, default).strip()


def _getbool(name: str, default: str) -> bool:
    raw = _getenv(name, default).lower()
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    raise ValueError(f"{name} must be true|false (got {raw!r})")


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    accounting_enabled: bool
    accounting_reap_children: bool
    accounting_max_redirects: int

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    port_raw = _getenv("PORT", "8000")
    max_redirects_raw = _getenv("ACCOUNTING_MAX_REDIRECTS", "10")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    try:
        max_redirects = int(max_redirects_raw)
    except ValueError:
        raise ValueError(
            f"ACCOUNTING_MAX_REDIRECTS must be an integer (got {max_redirects_raw!r})"
        ) from None
    if max_redirects < 1:
        raise ValueError(
            f"ACCOUNTING_MAX_REDIRECTS must be positive (got {max_redirects})"
        )

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getbool("LOG_JSON", "false"),
        port=port,
        accounting_enabled=_getbool("ACCOUNTING_ENABLED", "true"),
        # Turn off when the app waits on its own subprocesses (see system_probe).
        accounting_reap_children=_getbool("ACCOUNTING_REAP_CHILDREN", "true"),
        accounting_max_redirects=max_redirects,
    )


# Optional: module-level singleton so imports are cheap
SETTINGS = load_settings()
