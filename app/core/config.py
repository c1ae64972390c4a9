"""Process configuration, read once from the environment at import.

Every knob has a dev-friendly default, so ``uvicorn app.main:app`` runs
with no environment at all: in-memory storage, no Redis, plain-text logs.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_APP_ENVS = ("dev", "test", "prod")
_LOG_LEVELS = ("debug", "info", "warning", "error")
_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off", ""})


def _env(name: str, default: str = "") -> str:
    return os.environ.get(name, default).strip()


def _env_choice(name: str, default: str, allowed: tuple[str, ...]) -> str:
    raw = _env(name, default).lower()
    if raw not in allowed:
        raise ValueError(f"{name} must be {'|'.join(allowed)} (got {raw!r})")
    return raw


def _env_bool(name: str) -> bool:
    raw = _env(name).lower()
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


def _env_int(name: str, default: int) -> int:
    raw = _env(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None  # None: in-memory repositories
    redis_url: str | None  # None: in-memory cache, rate limiter and queue
    frontend_url: str = "http://localhost:5173"
    smtp_host: str = "localhost"
    smtp_port: int = 1025
    smtp_from: str = "noreply@training.local"

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
    return Settings(  # type: ignore[arg-type]
        app_env=_env_choice("APP_ENV", "dev", _APP_ENVS),
        log_level=_env_choice("LOG_LEVEL", "info", _LOG_LEVELS),
        log_json=_env_bool("LOG_JSON"),
        port=_env_int("PORT", 8000),
        database_url=_env("DATABASE_URL") or None,
        redis_url=_env("REDIS_URL") or None,
        # links in emails are built as f"{frontend_url}/courses/..."
        frontend_url=_env("FRONTEND_URL", "http://localhost:5173").rstrip("/"),
        smtp_host=_env("SMTP_HOST", "localhost"),
        smtp_port=_env_int("SMTP_PORT", 1025),
        smtp_from=_env("SMTP_FROM", "noreply@training.local"),
    )


SETTINGS = load_settings()
