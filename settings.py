from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_SOURCE_URL_ENV = "READINGS_SOURCE_URL"
_SOURCE_KEY_ENV = "READINGS_SOURCE_API_KEY"
_TABLE_NAME_ENV = "READINGS_TABLE_NAME"
_FETCH_LIMIT_ENV = "READINGS_FETCH_LIMIT"
_TABLE_PATH_ENV = "MOCK_TABLE_PERSISTENCE_PATH"
_REFRESH_INTERVAL_ENV = "REFRESH_INTERVAL_SECONDS"
_MAP_TILE_URL_ENV = "MAP_TILE_URL"
_MAP_TOKEN_ENV = "MAP_ACCESS_TOKEN"
_LOG_LEVEL_ENV = "LOG_LEVEL"

DEFAULT_TILE_URL = "https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png"


@dataclass(frozen=True)
class Settings:
    source_url: Optional[str]
    source_api_key: Optional[str]
    table_name: str
    fetch_limit: int
    table_persistence_path: Optional[str]
    refresh_interval: float
    map_tile_url: str
    map_access_token: Optional[str]
    log_level: str


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


def _read_fetch_limit(default: int) -> int:
    value = os.getenv(_FETCH_LIMIT_ENV)
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


def _read_refresh_interval(default: float) -> float:
    value = os.getenv(_REFRESH_INTERVAL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    # Zero disables periodic refresh.
    return parsed if parsed >= 0 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        source_url=_read_optional_env(_SOURCE_URL_ENV, None),
        source_api_key=_read_optional_env(_SOURCE_KEY_ENV, None),
        table_name=_read_str_env(_TABLE_NAME_ENV, "sensor_readings"),
        fetch_limit=_read_fetch_limit(50),
        table_persistence_path=_read_optional_env(_TABLE_PATH_ENV, "./tmp/readings.json"),
        refresh_interval=_read_refresh_interval(30.0),
        map_tile_url=_read_str_env(_MAP_TILE_URL_ENV, DEFAULT_TILE_URL),
        map_access_token=_read_optional_env(_MAP_TOKEN_ENV, None),
        log_level=_read_log_level("INFO"),
    )
