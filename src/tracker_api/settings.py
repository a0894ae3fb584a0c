from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List

from .core.tzcalendar import TimeZoneCalendar, get_calendar


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    Env vars:
    - PERSISTENCE_BACKEND: 'memory' (default) or 'sqlite'
    - SQLITE_DB_PATH: path to sqlite db file. Default './data/tracker.db'
    - CORS_ALLOW_ORIGINS: comma-separated list of allowed origins; '*' by default
    - APP_TIME_ZONE: IANA zone for calorie and weight day keys (default 'Australia/Brisbane')
    - TASK_TIME_ZONE: IANA zone for task day keys and week/month windows (default 'UTC')
    - LOG_LEVEL: logging level name (default 'INFO')
    """

    persistence_backend: str
    sqlite_db_path: str
    cors_allow_origins: List[str]
    app_time_zone: str
    task_time_zone: str
    log_level: str


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _parse_origins(origins_value: str) -> List[str]:
    """
    Parse CORS origins from env. Supports:
    - '*' to allow all origins
    - Comma-separated list of origins
    """
    value = origins_value.strip()
    if value == "*":
        return ["*"]
    return [o.strip() for o in value.split(",") if o.strip()]


# PUBLIC_INTERFACE
def get_settings() -> Settings:
    """Return application settings loaded from environment variables."""
    backend = _get_env("PERSISTENCE_BACKEND", "memory").strip().lower()
    if backend not in {"memory", "sqlite"}:
        # Fallback to memory if unsupported
        backend = "memory"

    return Settings(
        persistence_backend=backend,
        sqlite_db_path=_get_env("SQLITE_DB_PATH", "./data/tracker.db").strip(),
        cors_allow_origins=_parse_origins(_get_env("CORS_ALLOW_ORIGINS", "*")),
        app_time_zone=_get_env("APP_TIME_ZONE", "Australia/Brisbane").strip(),
        task_time_zone=_get_env("TASK_TIME_ZONE", "UTC").strip(),
        log_level=_get_env("LOG_LEVEL", "INFO").strip().upper(),
    )


# PUBLIC_INTERFACE
def get_app_calendar() -> TimeZoneCalendar:
    """Calendar for calorie and weight day boundaries."""
    return get_calendar(get_settings().app_time_zone)


# PUBLIC_INTERFACE
def get_task_calendar() -> TimeZoneCalendar:
    """Calendar for task due dates and the week/month windows."""
    return get_calendar(get_settings().task_time_zone)
