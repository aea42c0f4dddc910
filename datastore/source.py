"""Collaborator contract for the remote table of sensor readings."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, List, Protocol

from settings import get_settings

RawRow = Dict[str, Any]


class SourceError(RuntimeError):
    """Raised when a snapshot cannot be fetched from a reading source."""


class ReadingSource(Protocol):
    name: str

    def fetch(self, limit: int) -> List[RawRow]:
        """Return at most ``limit`` raw rows, newest first."""

    def close(self) -> None:
        ...


@lru_cache
def build_default_source() -> ReadingSource:
    """Use the REST table when a URL is configured, else the local mock table."""
    settings = get_settings()
    if settings.source_url:
        from datastore.rest_source import RestReadingSource

        return RestReadingSource(
            base_url=settings.source_url,
            table=settings.table_name,
            api_key=settings.source_api_key,
        )

    from datastore.mock_table import build_default_table

    return build_default_table()
