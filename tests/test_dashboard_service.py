from __future__ import annotations

import time
from typing import Any, Dict, List

import pytest

from datastore.mock_table import MockReadingTable
from datastore.source import SourceError
from services.aggregator import Aggregator, DashboardSnapshot
from services.dashboard import DashboardService


class FlakySource:
    """Reading source whose next fetch can be told to fail."""

    name = "flaky"

    def __init__(self, rows: List[Dict[str, Any]]) -> None:
        self.rows = rows
        self.fail = False
        self.fetch_limits: List[int] = []
        self.closed = False

    def fetch(self, limit: int) -> List[Dict[str, Any]]:
        self.fetch_limits.append(limit)
        if self.fail:
            raise SourceError("connection refused")
        return list(self.rows)

    def close(self) -> None:
        self.closed = True


def _row(reading_id: str, device_key, timestamp: str, **values: Any) -> Dict[str, Any]:
    key_field = "node_id" if isinstance(device_key, int) else "device_id"
    return {"id": reading_id, key_field: device_key, "timestamp": timestamp, **values}


@pytest.fixture()
def source() -> FlakySource:
    return FlakySource(
        [
            _row("b", "dev-1", "2024-01-01T00:02:00Z", temperature=31.0),
            _row("a", "dev-1", "2024-01-01T00:01:00Z", temperature=20.0),
            _row("c", "dev-2", "2024-01-01T00:00:30Z", soil_moisture=50.0),
        ]
    )


@pytest.fixture()
def service(source: FlakySource) -> DashboardService:
    service = DashboardService(source=source, aggregator=Aggregator(), fetch_limit=25)
    yield service
    service.shutdown()


def test_initial_snapshot_is_empty_and_disconnected(service: DashboardService) -> None:
    snapshot = service.current()
    status = service.status()

    assert snapshot.latest == {}
    assert snapshot.series == []
    assert status.connected is False
    assert status.last_update is None
    assert status.source == "flaky"


def test_refresh_builds_snapshot(service: DashboardService, source: FlakySource) -> None:
    assert service.refresh() is True

    snapshot = service.current()
    assert source.fetch_limits == [25]
    assert {key: reading.id for key, reading in snapshot.latest.items()} == {
        "dev-1": "b",
        "dev-2": "c",
    }
    assert [reading.id for reading in snapshot.series] == ["c", "a", "b"]
    assert service.status().connected is True
    assert service.status().last_update is not None


def test_failed_refresh_keeps_previous_snapshot(service: DashboardService, source: FlakySource) -> None:
    service.refresh()
    previous = service.current()

    source.fail = True
    assert service.refresh() is False

    assert service.current() is previous
    status = service.status()
    assert status.connected is False
    assert status.last_error == "connection refused"
    assert status.last_update is not None


def test_snapshot_fully_replaces_previous_state(service: DashboardService) -> None:
    service.refresh()

    snapshot = service.apply_snapshot([_row("z", 9, "2024-01-02T00:00:00Z", pitch=40.0)])

    assert list(snapshot.latest) == [9]
    assert service.current() is snapshot
    assert [card.severity.value for card in snapshot.cards[9]] == ["critical"]


def test_rejected_rows_are_reported(service: DashboardService) -> None:
    snapshot = service.apply_snapshot(
        [
            _row("ok", "dev-1", "2024-01-01T00:00:00Z"),
            _row("bad", "dev-1", "31/02/2024 25:00"),
        ]
    )

    assert [reading.id for reading in snapshot.series] == ["ok"]
    assert [(error.reading_id, error.reason) for error in snapshot.rejected] == [
        ("bad", "invalid timestamp")
    ]


def test_listeners_receive_each_snapshot(service: DashboardService) -> None:
    received: List[DashboardSnapshot] = []

    def broken(_snapshot: DashboardSnapshot) -> None:
        raise RuntimeError("listener bug")

    service.subscribe(broken)
    service.subscribe(received.append)
    service.refresh()
    service.apply_snapshot([])
    service.unsubscribe(received.append)
    service.apply_snapshot([])

    assert len(received) == 2
    assert received[1].latest == {}


def test_pushed_snapshot_wins_over_fetch_in_flight(source: FlakySource) -> None:
    service = DashboardService(source=source, aggregator=Aggregator(), fetch_limit=25)
    pushed_rows = [_row("p", "dev-9", "2024-01-03T00:00:00Z", temperature=21.0)]
    fetch = source.fetch

    def fetch_while_pushed(limit: int) -> List[Dict[str, Any]]:
        rows = fetch(limit)
        service.apply_snapshot(pushed_rows)
        return rows

    source.fetch = fetch_while_pushed  # type: ignore[method-assign]

    assert service.refresh() is True

    assert list(service.current().latest) == ["dev-9"]
    assert service.status().connected is True

    source.fetch = fetch  # type: ignore[method-assign]
    service.refresh()

    assert sorted(service.current().latest) == ["dev-1", "dev-2"]


def test_start_is_noop_without_interval(service: DashboardService) -> None:
    service.start()

    assert service.polling is False


def test_polling_refreshes_until_shutdown(source: FlakySource) -> None:
    service = DashboardService(
        source=source, aggregator=Aggregator(), fetch_limit=5, refresh_interval=0.01
    )
    service.start()
    try:
        deadline = time.monotonic() + 5.0
        while len(source.fetch_limits) < 2 and time.monotonic() < deadline:
            time.sleep(0.01)
        assert service.polling is True
    finally:
        service.shutdown()

    assert len(source.fetch_limits) >= 2
    assert service.polling is False
    assert source.closed is True


def test_service_reads_from_mock_table() -> None:
    table = MockReadingTable(name="readings")
    table.put_items(
        [
            _row("1", "dev-1", "2024-01-01T00:00:00Z", temperature=22.0),
            _row("2", "dev-1", "2024-01-01T00:05:00Z", temperature=29.0),
        ]
    )
    service = DashboardService(source=table, aggregator=Aggregator(), fetch_limit=1)

    service.refresh()

    assert [reading.id for reading in service.current().series] == ["2"]
    assert service.current().cards["dev-1"][0].severity.value == "warning"
