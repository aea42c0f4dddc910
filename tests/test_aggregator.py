"""Unit tests for the aggregation logic."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from models.records import Metric, Reading, Severity
from services.aggregator import (
    Aggregator,
    build_cards,
    latest_per_device,
    metric_series,
    project_locations,
    project_time_series,
    series_by_device,
)
from services.ingest import IngestError

_BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _reading(
    reading_id: str,
    device_key,
    seconds: int,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    **metrics: float,
) -> Reading:
    """Helper to build deterministic sensor readings."""

    return Reading(
        id=reading_id,
        device_key=device_key,
        timestamp=_BASE + timedelta(seconds=seconds),
        metrics={Metric(name): value for name, value in metrics.items()},
        latitude=latitude,
        longitude=longitude,
    )


def test_latest_per_device_empty_input_returns_empty_mapping() -> None:
    assert latest_per_device([]) == {}


def test_latest_per_device_scenario() -> None:
    a = _reading("a", 1, 100, temperature=32)
    b = _reading("b", 1, 200, temperature=12)
    c = _reading("c", 2, 150, soil_moisture=15)

    latest = latest_per_device([a, b, c])

    assert latest == {1: b, 2: c}


def test_latest_per_device_ignores_input_order() -> None:
    older = _reading("old", "dev-1", 10)
    newer = _reading("new", "dev-1", 20)

    assert latest_per_device([newer, older])["dev-1"] is newer
    assert latest_per_device([older, newer])["dev-1"] is newer


def test_latest_per_device_tie_prefers_later_input() -> None:
    first = _reading("first", "dev-1", 50, temperature=20)
    second = _reading("second", "dev-1", 50, temperature=21)

    assert latest_per_device([first, second])["dev-1"] is second
    assert latest_per_device([second, first])["dev-1"] is first
    for _ in range(3):
        assert latest_per_device([first, second])["dev-1"] is second


def test_latest_per_device_is_idempotent() -> None:
    readings = [
        _reading("a", "dev-1", 3),
        _reading("b", "dev-2", 1),
        _reading("c", "dev-1", 2),
    ]

    assert latest_per_device(readings) == latest_per_device(readings)


def test_latest_per_device_one_entry_per_key_with_max_timestamp() -> None:
    readings = [
        _reading(f"r{index}", index % 3, seconds=(index * 7) % 11)
        for index in range(12)
    ]

    latest = latest_per_device(readings)

    assert set(latest) == {0, 1, 2}
    for device_key, chosen in latest.items():
        same_device = [reading for reading in readings if reading.device_key == device_key]
        assert all(reading.timestamp <= chosen.timestamp for reading in same_device)


def test_string_and_integer_keys_are_distinct_devices() -> None:
    readings = [_reading("a", 1, 1), _reading("b", "1", 2)]

    assert len(latest_per_device(readings)) == 2


def test_project_locations_requires_both_coordinates() -> None:
    full = _reading("full", "dev-1", 1, latitude=59.9, longitude=10.7, temperature=21.5)
    lat_only = _reading("lat", "dev-2", 1, latitude=59.9)
    lon_only = _reading("lon", "dev-3", 1, longitude=10.7)
    none = _reading("none", "dev-4", 1)

    points = project_locations(latest_per_device([full, lat_only, lon_only, none]))

    assert [point.device_key for point in points] == ["dev-1"]
    point = points[0]
    assert point.reading_id == "full"
    assert (point.latitude, point.longitude) == (59.9, 10.7)
    assert point.temperature == 21.5
    assert point.soil_moisture is None


def test_project_locations_keeps_zero_coordinates() -> None:
    reading = _reading("equator", "dev-1", 1, latitude=0.0, longitude=0.0)

    points = project_locations({"dev-1": reading})

    assert len(points) == 1


def test_project_time_series_sorts_stably_and_keeps_every_reading() -> None:
    late = _reading("late", "dev-1", 30, temperature=20)
    tie_a = _reading("tie-a", "dev-2", 10)
    early = _reading("early", "dev-1", 5, soil_moisture=40)
    tie_b = _reading("tie-b", "dev-1", 10, pitch=3)

    series = project_time_series([late, tie_a, early, tie_b])

    assert [reading.id for reading in series] == ["early", "tie-a", "tie-b", "late"]
    assert len(series) == 4
    assert series[1].metrics == {}


def test_metric_series_leaves_gaps_for_unreported_values() -> None:
    readings = [
        _reading("b", "dev-1", 20),
        _reading("a", "dev-1", 10, temperature=18.0),
        _reading("c", "dev-1", 30, temperature=0.0),
    ]

    points = metric_series(readings, Metric.temperature)

    assert [value for _, value in points] == [18.0, None, 0.0]
    assert [timestamp for timestamp, _ in points] == sorted(r.timestamp for r in readings)


def test_series_by_device_groups_in_time_order() -> None:
    readings = [
        _reading("b", "dev-1", 20),
        _reading("x", "dev-2", 5),
        _reading("a", "dev-1", 10),
    ]

    grouped = series_by_device(readings)

    assert [reading.id for reading in grouped["dev-1"]] == ["a", "b"]
    assert [reading.id for reading in grouped["dev-2"]] == ["x"]


def test_build_cards_omits_unreported_metrics() -> None:
    reading = _reading("a", "dev-1", 1, roll=-40.0, temperature=22.0, gyro_z=120.0)

    cards = build_cards(reading)

    assert [card.metric for card in cards] == [Metric.temperature, Metric.roll, Metric.gyro_z]
    assert [card.severity for card in cards] == [
        Severity.normal,
        Severity.critical,
        Severity.warning,
    ]
    assert cards[1].title == "Roll"
    assert cards[1].unit == "°"


def test_build_snapshot_combines_projections() -> None:
    aggregator = Aggregator()
    readings = [
        _reading("a", 1, 100, temperature=32),
        _reading("b", 1, 200, temperature=12, latitude=1.0, longitude=2.0),
        _reading("c", 2, 150, soil_moisture=15),
    ]
    rejected = [IngestError(index=3, reason="invalid timestamp", reading_id="d")]

    snapshot = aggregator.build_snapshot(readings, rejected=rejected)

    assert snapshot.reading_count == 3
    assert snapshot.device_count == 2
    assert snapshot.latest[1].id == "b"
    assert [card.severity for card in snapshot.cards[1]] == [Severity.warning]
    assert [card.severity for card in snapshot.cards[2]] == [Severity.critical]
    assert [point.device_key for point in snapshot.locations] == [1]
    assert [reading.id for reading in snapshot.series] == ["a", "c", "b"]
    assert snapshot.rejected == rejected
    assert snapshot.received_at is not None


def test_build_snapshot_empty_input() -> None:
    snapshot = Aggregator().build_snapshot([])

    assert snapshot.latest == {}
    assert snapshot.cards == {}
    assert snapshot.locations == []
    assert snapshot.series == []
