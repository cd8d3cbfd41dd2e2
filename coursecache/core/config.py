"""Environment-driven settings, read once at import into SETTINGS.

  APP_ENV                dev | test | prod                 (dev)
  LOG_LEVEL              debug | info | warning | error    (info)
  LOG_JSON               true/false, 1/0, yes/no           (false)
  API_BASE_URL           remote API root, no trailing /    (http://localhost:5000)
  API_TIMEOUT            seconds per request, > 0          (10)
  ACTIVITY_LOG_CAPACITY  recent-activity entries kept      (20)

A bad value raises ValueError naming the variable, at import time.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal, TypeVar

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

N = TypeVar("N", int, float)

_TRUE = ("1", "true", "yes")
_FALSE = ("0", "false", "no")


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    api_base_url: str
    api_timeout: float
    activity_log_capacity: int

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def _env(name: str, default: str) -> str:
    return os.environ.get(name, default).strip()


def _one_of(name: str, default: str, allowed: tuple[str, ...]) -> str:
    raw = _env(name, default).lower()
    if raw not in allowed:
        raise ValueError(f"{name} must be {'|'.join(allowed)} (got {raw!r})")
    return raw


def _flag(name: str, default: bool) -> bool:
    raw = _env(name, "true" if default else "false").lower()
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    raise ValueError(f"{name} must be true|false (got {raw!r})")


def _positive(name: str, default: str, cast: Callable[[str], N], kind: str) -> N:
    raw = _env(name, default)
    try:
        value = cast(raw)
    except ValueError:
        raise ValueError(f"{name} must be {kind} (got {raw!r})") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive (got {raw!r})")
    return value


def load_settings() -> Settings:
    return Settings(  # type: ignore[arg-type]
        app_env=_one_of("APP_ENV", "dev", ("dev", "test", "prod")),
        log_level=_one_of("LOG_LEVEL", "info", ("debug", "info", "warning", "error")),
        log_json=_flag("LOG_JSON", False),
        api_base_url=_env("API_BASE_URL", "http://localhost:5000").rstrip("/"),
        api_timeout=_positive("API_TIMEOUT", "10", float, "a number"),
        activity_log_capacity=_positive("ACTIVITY_LOG_CAPACITY", "20", int, "an integer"),
    )


SETTINGS = load_settings()
