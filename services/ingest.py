"""Normalization of raw reading rows into :class:`Reading` objects."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from models.records import DeviceKey, Metric, Reading

logger = logging.getLogger(__name__)

# Accepted field names per metric, covering the device-keyed and node-keyed row shapes.
_METRIC_ALIASES: Dict[Metric, Tuple[str, ...]] = {
    Metric.temperature: ("temperature", "temp"),
    Metric.soil_moisture: ("soil_moisture", "soilMoisture", "moisture"),
    Metric.pitch: ("pitch",),
    Metric.roll: ("roll",),
    Metric.accel_x: ("accel_x", "accelX", "ax"),
    Metric.accel_y: ("accel_y", "accelY", "ay"),
    Metric.accel_z: ("accel_z", "accelZ", "az"),
    Metric.gyro_x: ("gyro_x", "gyroX", "gx"),
    Metric.gyro_y: ("gyro_y", "gyroY", "gy"),
    Metric.gyro_z: ("gyro_z", "gyroZ", "gz"),
}

_DEVICE_KEY_FIELDS = ("device_id", "deviceId", "node_id", "nodeId")


class InvalidRow(ValueError):
    """Raised when a raw row cannot be normalized."""


@dataclass(frozen=True)
class IngestError:
    """A raw row rejected at the ingestion boundary."""

    index: int
    reason: str
    reading_id: Optional[str] = None


@dataclass
class IngestResult:
    readings: List[Reading] = field(default_factory=list)
    errors: List[IngestError] = field(default_factory=list)


def parse_timestamp(value: Any) -> datetime:
    """Parse ISO-8601 strings, datetimes or epoch seconds into aware UTC datetimes."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, bool):
        raise ValueError("Invalid timestamp format")
    elif isinstance(value, (int, float)):
        if not math.isfinite(value):
            raise ValueError("Invalid timestamp format")
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError) as exc:
            raise ValueError("Timestamp out of range") from exc
    elif isinstance(value, str):
        candidate = value.strip()
        if not candidate:
            raise ValueError("Timestamp is empty.")
        if candidate.endswith("Z"):
            candidate = candidate[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(candidate)
        except ValueError as exc:
            raise ValueError("Invalid timestamp format") from exc
    else:
        raise ValueError("Invalid timestamp format")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)

    return parsed.astimezone(timezone.utc)


def _first_present(row: Mapping[str, Any], names: Iterable[str]) -> Any:
    for name in names:
        value = row.get(name)
        if value is not None:
            return value
    return None


def _parse_number(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise InvalidRow(f"invalid numeric value for {name}")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise InvalidRow(f"invalid numeric value for {name}") from exc
    if not math.isfinite(number):
        raise InvalidRow(f"invalid numeric value for {name}")
    return number


def _parse_device_key(row: Mapping[str, Any]) -> DeviceKey:
    value = _first_present(row, _DEVICE_KEY_FIELDS)
    if value is None or isinstance(value, bool):
        raise InvalidRow("missing device key")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        if not value.strip():
            raise InvalidRow("missing device key")
        return value.strip()
    raise InvalidRow("invalid device key")


def normalize_row(row: Mapping[str, Any]) -> Reading:
    """Convert one raw row into a :class:`Reading` or raise :class:`InvalidRow`."""
    raw_id = row.get("id")
    if raw_id is None or str(raw_id).strip() == "":
        raise InvalidRow("missing id")
    reading_id = str(raw_id).strip()

    device_key = _parse_device_key(row)

    raw_timestamp = row.get("timestamp")
    if raw_timestamp is None:
        raise InvalidRow("missing timestamp")
    try:
        timestamp = parse_timestamp(raw_timestamp)
    except ValueError as exc:
        raise InvalidRow("invalid timestamp") from exc

    metrics: Dict[Metric, float] = {}
    for metric, aliases in _METRIC_ALIASES.items():
        value = _first_present(row, aliases)
        if value is not None:
            metrics[metric] = _parse_number(metric.value, value)

    latitude = row.get("latitude")
    longitude = row.get("longitude")
    return Reading(
        id=reading_id,
        device_key=device_key,
        timestamp=timestamp,
        metrics=metrics,
        latitude=_parse_number("latitude", latitude) if latitude is not None else None,
        longitude=_parse_number("longitude", longitude) if longitude is not None else None,
    )


def normalize_rows(rows: Iterable[Mapping[str, Any]]) -> IngestResult:
    """Normalize a snapshot, collecting rejected rows instead of raising."""
    result = IngestResult()
    seen_ids: set[str] = set()

    for index, row in enumerate(rows):
        raw_id = row.get("id") if isinstance(row, Mapping) else None
        reading_id = str(raw_id) if raw_id is not None else None
        try:
            if not isinstance(row, Mapping):
                raise InvalidRow("row is not an object")
            reading = normalize_row(row)
            if reading.id in seen_ids:
                raise InvalidRow("duplicate id")
        except InvalidRow as exc:
            reason = str(exc)
            logger.warning(
                "Rejected sensor reading",
                extra={
                    "reading_id": reading_id,
                    "reason": reason,
                    "invalid_value": row.get("timestamp") if reason == "invalid timestamp" else None,
                },
            )
            result.errors.append(IngestError(index=index, reason=reason, reading_id=reading_id))
            continue

        seen_ids.add(reading.id)
        result.readings.append(reading)

    return result
