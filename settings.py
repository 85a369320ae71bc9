from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional
from urllib.parse import quote


_DATABASE_URL_ENV = "DATABASE_URL"
_DB_HOST_ENV = "DB_HOST"
_DB_PORT_ENV = "DB_PORT"
_DB_USER_ENV = "DB_USER"
_DB_PASSWORD_ENV = "DB_PASSWORD"
_DB_NAME_ENV = "DB_NAME"
_DB_SSL_ENV = "DB_SSL"
_DB_SSL_CA_ENV = "DB_SSL_CA"
_HOST_ENV = "HOST"
_PORT_ENV = "PORT"
_QUEUE_SIZE_ENV = "SUBSCRIBER_QUEUE_SIZE"
_SEND_TIMEOUT_ENV = "SUBSCRIBER_SEND_TIMEOUT"
_WORKER_COUNT_ENV = "PERSISTENCE_WORKER_COUNT"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_DEFAULT_SQLITE_URL = "sqlite:///./tmp/readings.db"

REPORTS_LIMIT = 50


@dataclass(frozen=True)
class Settings:
    database_url: str
    db_ssl: bool
    db_ssl_ca: Optional[str]
    host: str
    port: int
    subscriber_queue_size: int
    subscriber_send_timeout: float
    persistence_workers: int
    log_level: str

    @property
    def uses_mysql(self) -> bool:
        return self.database_url.startswith("mysql")


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in {"1", "true", "yes", "on"}:
        return True
    if candidate in {"0", "false", "no", "off"}:
        return False
    return default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


def _read_database_url() -> str:
    explicit = _read_optional_env(_DATABASE_URL_ENV, None)
    if explicit:
        return explicit

    host = _read_optional_env(_DB_HOST_ENV, None)
    if host is None:
        return _DEFAULT_SQLITE_URL

    port = _read_positive_int(_DB_PORT_ENV, 3306)
    user = quote(_read_str_env(_DB_USER_ENV, "root"), safe="")
    password = _read_optional_env(_DB_PASSWORD_ENV, None)
    database = _read_str_env(_DB_NAME_ENV, "readings")
    credentials = f"{user}:{quote(password, safe='')}" if password else user
    return f"mysql+pymysql://{credentials}@{host}:{port}/{database}"


@lru_cache
def get_settings() -> Settings:
    return Settings(
        database_url=_read_database_url(),
        db_ssl=_read_bool(_DB_SSL_ENV, True),
        db_ssl_ca=_read_optional_env(_DB_SSL_CA_ENV, None),
        host=_read_str_env(_HOST_ENV, "0.0.0.0"),
        port=_read_positive_int(_PORT_ENV, 3000),
        subscriber_queue_size=_read_positive_int(_QUEUE_SIZE_ENV, 100),
        subscriber_send_timeout=_read_positive_float(_SEND_TIMEOUT_ENV, 5.0),
        persistence_workers=_read_positive_int(_WORKER_COUNT_ENV, 4),
        log_level=_read_log_level("INFO"),
    )
