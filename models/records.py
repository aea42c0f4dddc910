"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Union

DeviceKey = Union[str, int]


class MetricKind(str, Enum):
    """Threshold families used for severity classification."""

    temperature = "temperature"
    moisture = "moisture"
    orientation = "orientation"
    acceleration = "acceleration"
    angular_rate = "angular_rate"


class Severity(str, Enum):
    normal = "normal"
    warning = "warning"
    critical = "critical"


class Metric(str, Enum):
    """Values a reading may report, in dashboard display order."""

    temperature = "temperature"
    soil_moisture = "soil_moisture"
    pitch = "pitch"
    roll = "roll"
    accel_x = "accel_x"
    accel_y = "accel_y"
    accel_z = "accel_z"
    gyro_x = "gyro_x"
    gyro_y = "gyro_y"
    gyro_z = "gyro_z"

    @property
    def kind(self) -> MetricKind:
        return _METRIC_INFO[self][0]

    @property
    def title(self) -> str:
        return _METRIC_INFO[self][1]

    @property
    def unit(self) -> str:
        return _METRIC_INFO[self][2]


_METRIC_INFO: dict[Metric, tuple[MetricKind, str, str]] = {
    Metric.temperature: (MetricKind.temperature, "Temperature", "°C"),
    Metric.soil_moisture: (MetricKind.moisture, "Soil Moisture", "%"),
    Metric.pitch: (MetricKind.orientation, "Pitch", "°"),
    Metric.roll: (MetricKind.orientation, "Roll", "°"),
    Metric.accel_x: (MetricKind.acceleration, "Accel X", "raw"),
    Metric.accel_y: (MetricKind.acceleration, "Accel Y", "raw"),
    Metric.accel_z: (MetricKind.acceleration, "Accel Z", "raw"),
    Metric.gyro_x: (MetricKind.angular_rate, "Gyro X", "°/s"),
    Metric.gyro_y: (MetricKind.angular_rate, "Gyro Y", "°/s"),
    Metric.gyro_z: (MetricKind.angular_rate, "Gyro Z", "°/s"),
}


def _freeze(metrics: Mapping[Metric, float]) -> Mapping[Metric, float]:
    return MappingProxyType(dict(metrics))


@dataclass(frozen=True, slots=True)
class Reading:
    """A single normalized sensor reading.

    ``metrics`` only holds values the device actually reported; a metric that
    is missing from the mapping was not reported and is distinct from zero.
    """

    id: str
    device_key: DeviceKey
    timestamp: datetime
    metrics: Mapping[Metric, float] = field(default_factory=dict)
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "metrics", _freeze(self.metrics))

    def value(self, metric: Metric) -> Optional[float]:
        return self.metrics.get(metric)

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None


@dataclass(frozen=True, slots=True)
class LocationPoint:
    """Map marker for the latest reading of a device."""

    device_key: DeviceKey
    reading_id: str
    latitude: float
    longitude: float
    timestamp: datetime
    temperature: Optional[float] = None
    soil_moisture: Optional[float] = None


@dataclass(frozen=True, slots=True)
class MetricStatus:
    """One status card: a reported metric value and its severity."""

    device_key: DeviceKey
    metric: Metric
    value: float
    severity: Severity

    @property
    def kind(self) -> MetricKind:
        return self.metric.kind

    @property
    def title(self) -> str:
        return self.metric.title

    @property
    def unit(self) -> str:
        return self.metric.unit
