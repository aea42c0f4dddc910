"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from app.schemas import (
    ClassificationResponse,
    DashboardResponse,
    LocationOut,
    MetricSeriesResponse,
    RawRows,
    ReadingOut,
    RefreshResponse,
    SeriesPointOut,
    SnapshotAccepted,
    StatusOut,
    StoredRows,
)
from datastore.mock_table import MockReadingTable
from models.records import DeviceKey, Metric, MetricKind, Reading
from services.aggregator import classify, series_by_device
from services.dashboard import DashboardService, build_default_service

router = APIRouter()


def get_service() -> DashboardService:
    return build_default_service()


def device_readings(readings: Sequence[Reading], raw_key: str) -> Tuple[DeviceKey, List[Reading]]:
    """Look up a device from a path or query string, trying node ids before device ids."""
    grouped = series_by_device(readings)
    candidate = raw_key.strip()
    try:
        node_id: Optional[int] = int(candidate)
    except ValueError:
        node_id = None
    if node_id is not None and node_id in grouped:
        return node_id, grouped[node_id]
    return candidate, grouped.get(candidate, [])


@router.get(
    "/dashboard",
    response_model=DashboardResponse,
    summary="Latest status cards, map points and rejected rows.",
)
async def get_dashboard(
    service: DashboardService = Depends(get_service),
) -> DashboardResponse:
    return DashboardResponse.build(service.current(), service.status())


@router.get(
    "/readings/latest",
    response_model=List[ReadingOut],
    summary="Most recent reading for every device.",
)
async def get_latest_readings(
    service: DashboardService = Depends(get_service),
) -> List[ReadingOut]:
    return [ReadingOut.from_reading(reading) for reading in service.current().latest.values()]


@router.get(
    "/readings/series",
    response_model=List[ReadingOut],
    summary="All readings of the current snapshot in ascending time order.",
)
async def get_reading_series(
    device_key: Optional[str] = Query(None, description="Restrict to a single device."),
    service: DashboardService = Depends(get_service),
) -> List[ReadingOut]:
    readings = service.current().series
    if device_key is not None:
        _, readings = device_readings(readings, device_key)
    return [ReadingOut.from_reading(reading) for reading in readings]


@router.get(
    "/readings/series/{metric}",
    response_model=MetricSeriesResponse,
    summary="Chart points for one metric; unreported values are returned as null.",
)
async def get_metric_series(
    metric: str,
    service: DashboardService = Depends(get_service),
) -> MetricSeriesResponse:
    try:
        selected = Metric(metric)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown metric {metric!r}.",
        ) from exc
    points = [
        SeriesPointOut(
            timestamp=reading.timestamp,
            device_key=reading.device_key,
            value=reading.value(selected),
        )
        for reading in service.current().series
    ]
    return MetricSeriesResponse(
        metric=selected, title=selected.title, unit=selected.unit, points=points
    )


@router.get(
    "/locations",
    response_model=List[LocationOut],
    summary="Map points for devices whose latest reading has coordinates.",
)
async def get_locations(
    service: DashboardService = Depends(get_service),
) -> List[LocationOut]:
    return [LocationOut.from_point(point) for point in service.current().locations]


@router.get(
    "/classify/{kind}",
    response_model=ClassificationResponse,
    summary="Classify a single metric value.",
)
async def classify_value(
    kind: str,
    value: Optional[float] = Query(None),
) -> ClassificationResponse:
    try:
        severity = classify(kind, value)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown metric kind {kind!r}.",
        ) from exc
    return ClassificationResponse(kind=MetricKind(kind), value=value, severity=severity)


@router.post(
    "/refresh",
    response_model=RefreshResponse,
    summary="Fetch a new snapshot from the reading source.",
)
def refresh(
    service: DashboardService = Depends(get_service),
) -> RefreshResponse:
    if not service.refresh():
        detail = service.status().last_error or "Reading source unavailable."
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail,
        )
    return RefreshResponse(
        status=StatusOut.from_status(service.status()),
        reading_count=service.current().reading_count,
    )


@router.post(
    "/snapshots",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=SnapshotAccepted,
    summary="Replace the current snapshot with a pushed batch of raw rows.",
)
def push_snapshot(
    rows: RawRows = Body(..., description="Complete batch of raw reading rows."),
    service: DashboardService = Depends(get_service),
) -> SnapshotAccepted:
    snapshot = service.apply_snapshot(rows)
    return SnapshotAccepted(
        accepted=snapshot.reading_count,
        rejected=len(snapshot.rejected),
        device_count=snapshot.device_count,
    )


@router.post(
    "/readings",
    status_code=status.HTTP_201_CREATED,
    response_model=StoredRows,
    summary="Store raw rows in the local mock table.",
)
def store_readings(
    rows: RawRows = Body(...),
    service: DashboardService = Depends(get_service),
) -> StoredRows:
    table = service.source
    if not isinstance(table, MockReadingTable):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Readings can only be stored when the local mock table is active.",
        )
    try:
        stored = table.put_items(rows)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return StoredRows(stored=stored)


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /dashboard for sensor status."}
