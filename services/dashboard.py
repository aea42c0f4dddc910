"""Snapshot orchestration between the reading source and the dashboard."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from threading import Event, Lock
from typing import Any, Callable, Iterable, List, Mapping, Optional, Tuple

from datastore.source import ReadingSource, SourceError, build_default_source
from services.aggregator import Aggregator, DashboardSnapshot
from services.ingest import normalize_rows
from settings import get_settings

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[DashboardSnapshot], None]


@dataclass(frozen=True)
class ConnectionStatus:
    connected: bool
    last_update: Optional[datetime]
    last_error: Optional[str]
    source: str


class DashboardService:
    """Keeps the most recent snapshot and replaces it wholesale on each update.

    A failed fetch leaves the previous snapshot in place and only flips the
    connection status.
    """

    def __init__(
        self,
        source: ReadingSource,
        aggregator: Aggregator,
        fetch_limit: int = 50,
        refresh_interval: float = 0.0,
    ) -> None:
        self.source = source
        self.aggregator = aggregator
        self.fetch_limit = fetch_limit
        self.refresh_interval = refresh_interval
        self._snapshot = DashboardSnapshot()
        self._connected = False
        self._last_update: Optional[datetime] = None
        self._last_error: Optional[str] = None
        self._listeners: List[SnapshotListener] = []
        self._lock = Lock()
        self._apply_lock = Lock()
        self._generation = 0
        self._stop = Event()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._poller: Optional[Future[None]] = None

    def current(self) -> DashboardSnapshot:
        with self._lock:
            return self._snapshot

    def status(self) -> ConnectionStatus:
        with self._lock:
            return ConnectionStatus(
                connected=self._connected,
                last_update=self._last_update,
                last_error=self._last_error,
                source=self.source.name,
            )

    def subscribe(self, listener: SnapshotListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: SnapshotListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def refresh(self) -> bool:
        """Fetch a fresh snapshot from the source; ``False`` if the fetch failed.

        A fetched batch is dropped when a newer snapshot (for example a pushed
        one) was applied while the fetch was in flight.
        """
        with self._lock:
            generation = self._generation
        try:
            rows = self.source.fetch(self.fetch_limit)
        except SourceError as exc:
            logger.warning(
                "Failed to fetch sensor readings",
                extra={"source": self.source.name, "reason": str(exc)},
            )
            with self._lock:
                self._connected = False
                self._last_error = str(exc)
            return False

        with self._apply_lock:
            with self._lock:
                superseded = generation != self._generation
            if superseded:
                logger.info(
                    "Discarded fetched readings superseded by a newer snapshot",
                    extra={"source": self.source.name},
                )
                return True
            snapshot, listeners = self._replace(rows)
        self._notify(snapshot, listeners)
        return True

    def apply_snapshot(self, rows: Iterable[Mapping[str, Any]]) -> DashboardSnapshot:
        """Replace the current snapshot with one built from ``rows``."""
        with self._apply_lock:
            snapshot, listeners = self._replace(rows)
        self._notify(snapshot, listeners)
        return snapshot

    def _replace(
        self, rows: Iterable[Mapping[str, Any]]
    ) -> Tuple[DashboardSnapshot, List[SnapshotListener]]:
        # Callers hold _apply_lock so snapshots land in the order they were built.
        ingested = normalize_rows(rows)
        received_at = datetime.now(timezone.utc)
        snapshot = self.aggregator.build_snapshot(
            ingested.readings, rejected=ingested.errors, received_at=received_at
        )

        with self._lock:
            self._snapshot = snapshot
            self._generation += 1
            self._connected = True
            self._last_update = received_at
            self._last_error = None
            listeners = list(self._listeners)
        return snapshot, listeners

    def _notify(self, snapshot: DashboardSnapshot, listeners: List[SnapshotListener]) -> None:
        logger.info(
            "Applied sensor snapshot",
            extra={
                "source": self.source.name,
                "reading_count": snapshot.reading_count,
                "device_count": snapshot.device_count,
                "rejected_count": len(snapshot.rejected) or None,
            },
        )

        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:  # noqa: BLE001 - one listener must not block the others
                logger.exception("Snapshot listener failed")

    def start(self) -> None:
        """Begin periodic refreshes when an interval is configured."""
        if self.refresh_interval <= 0 or self._poller is not None:
            return
        self._stop.clear()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="refresh")
        self._poller = self._executor.submit(self._poll_loop)

    def shutdown(self) -> None:
        """Stop the refresh loop and release the source."""
        self._stop.set()
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        self._poller = None
        self.source.close()

    @property
    def polling(self) -> bool:
        return self._poller is not None and not self._stop.is_set()

    def _poll_loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.refresh()
            except Exception:  # pragma: no cover - keep polling after unexpected errors
                logger.exception("Periodic refresh failed", extra={"source": self.source.name})
            self._stop.wait(self.refresh_interval)


@lru_cache
def build_default_service() -> DashboardService:
    """Factory that wires the service with the configured source."""
    settings = get_settings()
    return DashboardService(
        source=build_default_source(),
        aggregator=Aggregator(),
        fetch_limit=settings.fetch_limit,
        refresh_interval=settings.refresh_interval,
    )
