"""Aggregation and severity classification for sensor reading snapshots."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from models.records import (
    DeviceKey,
    LocationPoint,
    Metric,
    MetricKind,
    MetricStatus,
    Reading,
    Severity,
)
from services.ingest import IngestError

SeriesPoint = Tuple[datetime, Optional[float]]

# (critical_low, critical_high, warning_low, warning_high); None means unbounded.
_BANDS: Dict[MetricKind, Tuple[Optional[float], Optional[float], Optional[float], Optional[float]]] = {
    MetricKind.temperature: (10.0, 30.0, 15.0, 28.0),
    MetricKind.moisture: (20.0, 80.0, 30.0, 70.0),
}

# Symmetric bands compare the absolute value: (critical, warning).
_ABS_BANDS: Dict[MetricKind, Tuple[float, float]] = {
    MetricKind.orientation: (30.0, 15.0),
    MetricKind.acceleration: (2000.0, 1000.0),
    MetricKind.angular_rate: (250.0, 100.0),
}


def _outside(value: float, low: Optional[float], high: Optional[float]) -> bool:
    return (low is not None and value < low) or (high is not None and value > high)


def classify(kind: Union[MetricKind, str], value: Optional[float]) -> Severity:
    """Classify a metric value; absent values are always ``normal``.

    Raises ``ValueError`` for a kind outside :class:`MetricKind`.
    """
    metric_kind = MetricKind(kind)
    if value is None:
        return Severity.normal

    if metric_kind in _ABS_BANDS:
        critical, warning = _ABS_BANDS[metric_kind]
        magnitude = abs(value)
        if magnitude > critical:
            return Severity.critical
        if magnitude > warning:
            return Severity.warning
        return Severity.normal

    critical_low, critical_high, warning_low, warning_high = _BANDS[metric_kind]
    if _outside(value, critical_low, critical_high):
        return Severity.critical
    if _outside(value, warning_low, warning_high):
        return Severity.warning
    return Severity.normal


def latest_per_device(readings: Iterable[Reading]) -> Dict[DeviceKey, Reading]:
    """Keep the newest reading per device.

    When two readings of a device share the maximal timestamp, the one that
    appears later in ``readings`` wins.
    """
    latest: Dict[DeviceKey, Reading] = {}
    for reading in readings:
        current = latest.get(reading.device_key)
        if current is None or reading.timestamp >= current.timestamp:
            latest[reading.device_key] = reading
    return latest


def project_locations(latest: Mapping[DeviceKey, Reading]) -> List[LocationPoint]:
    points: List[LocationPoint] = []
    for device_key, reading in latest.items():
        if not reading.has_location:
            continue
        points.append(
            LocationPoint(
                device_key=device_key,
                reading_id=reading.id,
                latitude=reading.latitude,  # type: ignore[arg-type]
                longitude=reading.longitude,  # type: ignore[arg-type]
                timestamp=reading.timestamp,
                temperature=reading.value(Metric.temperature),
                soil_moisture=reading.value(Metric.soil_moisture),
            )
        )
    return points


def project_time_series(readings: Iterable[Reading]) -> List[Reading]:
    """Return every reading sorted ascending by timestamp (stable)."""
    return sorted(readings, key=lambda reading: reading.timestamp)


def metric_series(readings: Iterable[Reading], metric: Metric) -> List[SeriesPoint]:
    """Chart points for one metric; unreported values stay ``None`` as gaps."""
    return [(reading.timestamp, reading.value(metric)) for reading in project_time_series(readings)]


def series_by_device(readings: Iterable[Reading]) -> Dict[DeviceKey, List[Reading]]:
    grouped: Dict[DeviceKey, List[Reading]] = {}
    for reading in project_time_series(readings):
        grouped.setdefault(reading.device_key, []).append(reading)
    return grouped


def build_cards(reading: Reading) -> List[MetricStatus]:
    return [
        MetricStatus(
            device_key=reading.device_key,
            metric=metric,
            value=reading.metrics[metric],
            severity=classify(metric.kind, reading.metrics[metric]),
        )
        for metric in Metric
        if metric in reading.metrics
    ]


@dataclass
class DashboardSnapshot:
    """Everything the dashboard renders for one batch of readings."""

    latest: Dict[DeviceKey, Reading] = field(default_factory=dict)
    cards: Dict[DeviceKey, List[MetricStatus]] = field(default_factory=dict)
    locations: List[LocationPoint] = field(default_factory=list)
    series: List[Reading] = field(default_factory=list)
    rejected: List[IngestError] = field(default_factory=list)
    received_at: Optional[datetime] = None

    @property
    def reading_count(self) -> int:
        return len(self.series)

    @property
    def device_count(self) -> int:
        return len(self.latest)


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def build_snapshot(
        self,
        readings: Sequence[Reading],
        rejected: Iterable[IngestError] = (),
        received_at: Optional[datetime] = None,
    ) -> DashboardSnapshot:
        latest = latest_per_device(readings)
        return DashboardSnapshot(
            latest=latest,
            cards={device_key: build_cards(reading) for device_key, reading in latest.items()},
            locations=project_locations(latest),
            series=project_time_series(readings),
            rejected=list(rejected),
            received_at=received_at or datetime.now(timezone.utc),
        )
