"""In-process stand-in for the hosted readings table, with optional JSON persistence."""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Iterable, List, Mapping, Optional

from datastore.source import RawRow
from settings import get_settings


class MockReadingTable:
    """In-process stand-in for the hosted readings table.

    Rows are kept as raw JSON objects keyed by ``id``; ``fetch`` returns the
    most recently stored rows first.
    """

    def __init__(self, name: str, persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._items: Dict[str, RawRow] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def put_item(self, item: Mapping[str, Any]) -> None:
        key = item.get("id")
        if key is None or str(key).strip() == "":
            raise ValueError("Reading row is missing an 'id'.")
        with self._lock:
            # Re-inserting moves the row to the newest position.
            self._items.pop(str(key), None)
            self._items[str(key)] = json.loads(json.dumps(dict(item), default=str))
            self._persist()

    def put_items(self, items: Iterable[Mapping[str, Any]]) -> int:
        batch = list(items)
        for position, item in enumerate(batch):
            if item.get("id") is None or str(item["id"]).strip() == "":
                raise ValueError(f"Reading row at position {position} is missing an 'id'.")
        for item in batch:
            self.put_item(item)
        return len(batch)

    def get_item(self, key: str) -> Optional[RawRow]:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            return dict(item)

    def scan(self) -> List[RawRow]:
        """Return copies of all stored rows in insertion order."""

        with self._lock:
            return [dict(item) for item in self._items.values()]

    def fetch(self, limit: int) -> List[RawRow]:
        rows = self.scan()
        rows.reverse()
        return rows[:limit]

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
            self._persist()

    def close(self) -> None:
        return None

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = list(self._items.values())
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "[]"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = []

        for payload in data:
            if isinstance(payload, dict) and payload.get("id") is not None:
                self._items[str(payload["id"])] = payload


@lru_cache
def build_default_table(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> MockReadingTable:
    settings = get_settings()
    table_name = settings.table_name if name is None else name
    table_path = settings.table_persistence_path if path is None else path
    persistence = Path(table_path) if table_path else None
    return MockReadingTable(name=table_name, persistence_path=persistence)
