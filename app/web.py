from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from app.api import device_readings
from models.records import Metric
from services.aggregator import build_cards, metric_series
from services.dashboard import DashboardService, build_default_service
from settings import get_settings


templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))

_CHART_METRICS = (Metric.temperature, Metric.soil_moisture, Metric.pitch, Metric.roll)


@dataclass(frozen=True)
class MapConfig:
    """Map widget settings handed to the page; opaque to the aggregation code."""

    tile_url: str
    access_token: Optional[str]


def get_service() -> DashboardService:
    return build_default_service()


def get_map_config() -> MapConfig:
    settings = get_settings()
    return MapConfig(tile_url=settings.map_tile_url, access_token=settings.map_access_token)


router = APIRouter(include_in_schema=False)


@router.get("/ui", name="ui_index", response_class=HTMLResponse)
async def ui_index(
    request: Request,
    service: DashboardService = Depends(get_service),
    map_config: MapConfig = Depends(get_map_config),
) -> HTMLResponse:
    snapshot = service.current()
    devices = sorted(snapshot.cards.items(), key=lambda item: str(item[0]))
    return templates.TemplateResponse(
        "ui/index.html",
        {
            "request": request,
            "status": service.status(),
            "snapshot": snapshot,
            "devices": devices,
            "map_config": map_config,
        },
    )


@router.get("/ui/devices/{device_key}", name="ui_device_detail", response_class=HTMLResponse)
async def ui_device_detail(
    request: Request,
    device_key: str,
    service: DashboardService = Depends(get_service),
) -> HTMLResponse:
    snapshot = service.current()
    key, readings = device_readings(snapshot.series, device_key)
    if not readings:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No readings for device {device_key!r}.",
        )

    latest = snapshot.latest[key]
    charts = [
        (metric, metric_series(readings, metric))
        for metric in _CHART_METRICS
        if any(metric in reading.metrics for reading in readings)
    ]
    return templates.TemplateResponse(
        "ui/detail.html",
        {
            "request": request,
            "device_key": key,
            "latest": latest,
            "cards": build_cards(latest),
            "charts": charts,
            "status": service.status(),
        },
    )
