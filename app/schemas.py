"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from models.records import LocationPoint, Metric, MetricKind, MetricStatus, Reading, Severity
from services.aggregator import DashboardSnapshot
from services.dashboard import ConnectionStatus
from services.ingest import IngestError

DeviceKeyField = Union[int, str]


class ReadingOut(BaseModel):
    """A normalized reading; unreported metrics are omitted from ``metrics``."""

    id: str
    device_key: DeviceKeyField
    timestamp: datetime
    metrics: Dict[Metric, float] = Field(default_factory=dict)
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @classmethod
    def from_reading(cls, reading: Reading) -> "ReadingOut":
        return cls(
            id=reading.id,
            device_key=reading.device_key,
            timestamp=reading.timestamp,
            metrics=dict(reading.metrics),
            latitude=reading.latitude,
            longitude=reading.longitude,
        )


class MetricCard(BaseModel):
    metric: Metric
    kind: MetricKind
    title: str
    unit: str
    value: float
    severity: Severity

    @classmethod
    def from_status(cls, status: MetricStatus) -> "MetricCard":
        return cls(
            metric=status.metric,
            kind=status.kind,
            title=status.title,
            unit=status.unit,
            value=status.value,
            severity=status.severity,
        )


class DeviceStatus(BaseModel):
    """Latest reading of one device with a card per reported metric."""

    device_key: DeviceKeyField
    reading_id: str
    timestamp: datetime
    cards: List[MetricCard] = Field(default_factory=list)


class LocationOut(BaseModel):
    device_key: DeviceKeyField
    reading_id: str
    latitude: float
    longitude: float
    timestamp: datetime
    temperature: Optional[float] = None
    soil_moisture: Optional[float] = None

    @classmethod
    def from_point(cls, point: LocationPoint) -> "LocationOut":
        return cls(
            device_key=point.device_key,
            reading_id=point.reading_id,
            latitude=point.latitude,
            longitude=point.longitude,
            timestamp=point.timestamp,
            temperature=point.temperature,
            soil_moisture=point.soil_moisture,
        )


class RejectedRow(BaseModel):
    """Details about a row that failed normalization."""

    index: int = Field(..., ge=0)
    reason: str
    reading_id: Optional[str] = None

    @classmethod
    def from_error(cls, error: IngestError) -> "RejectedRow":
        return cls(index=error.index, reason=error.reason, reading_id=error.reading_id)


class StatusOut(BaseModel):
    connected: bool
    source: str
    last_update: Optional[datetime] = None
    last_error: Optional[str] = None

    @classmethod
    def from_status(cls, status: ConnectionStatus) -> "StatusOut":
        return cls(
            connected=status.connected,
            source=status.source,
            last_update=status.last_update,
            last_error=status.last_error,
        )


class DashboardResponse(BaseModel):
    status: StatusOut
    reading_count: int = Field(..., ge=0)
    devices: List[DeviceStatus] = Field(default_factory=list)
    locations: List[LocationOut] = Field(default_factory=list)
    rejected: List[RejectedRow] = Field(default_factory=list)

    @classmethod
    def build(cls, snapshot: DashboardSnapshot, status: ConnectionStatus) -> "DashboardResponse":
        devices = [
            DeviceStatus(
                device_key=device_key,
                reading_id=reading.id,
                timestamp=reading.timestamp,
                cards=[MetricCard.from_status(card) for card in snapshot.cards.get(device_key, [])],
            )
            for device_key, reading in snapshot.latest.items()
        ]
        return cls(
            status=StatusOut.from_status(status),
            reading_count=snapshot.reading_count,
            devices=devices,
            locations=[LocationOut.from_point(point) for point in snapshot.locations],
            rejected=[RejectedRow.from_error(error) for error in snapshot.rejected],
        )


class SeriesPointOut(BaseModel):
    """A chart point; ``value`` is null where the reading did not report the metric."""

    timestamp: datetime
    device_key: DeviceKeyField
    value: Optional[float] = None


class MetricSeriesResponse(BaseModel):
    metric: Metric
    title: str
    unit: str
    points: List[SeriesPointOut] = Field(default_factory=list)


class ClassificationResponse(BaseModel):
    kind: MetricKind
    value: Optional[float] = None
    severity: Severity


class SnapshotAccepted(BaseModel):
    """Response payload after a pushed snapshot replaced the current one."""

    accepted: int = Field(..., ge=0)
    rejected: int = Field(..., ge=0)
    device_count: int = Field(..., ge=0)


class RefreshResponse(BaseModel):
    status: StatusOut
    reading_count: int = Field(..., ge=0)


class StoredRows(BaseModel):
    stored: int = Field(..., ge=0)


RawRows = List[Dict[str, Any]]
