from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer

_SEVERITY_COLORS = {
    "normal": typer.colors.GREEN,
    "warning": typer.colors.YELLOW,
    "critical": typer.colors.RED,
}


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_card(card: Dict[str, Any]) -> None:
    severity = card.get("severity", "normal")
    value = card.get("value")
    shown = f"{value:.1f}" if isinstance(value, (int, float)) else value
    typer.echo(f"  {card.get('title')}: {shown} {card.get('unit')} ", nl=False)
    typer.secho(f"[{severity}]", fg=_SEVERITY_COLORS.get(severity))


def render_status(status: Dict[str, Any]) -> None:
    echo_key_values(
        [
            ("connected", status.get("connected")),
            ("source", status.get("source")),
            ("last_update", status.get("last_update")),
        ]
    )
    if status.get("last_error"):
        typer.secho(f"last_error: {status['last_error']}", fg=typer.colors.RED)


def render_locations(locations: List[Dict[str, Any]]) -> None:
    echo_heading("Locations")
    if not locations:
        typer.echo("No GPS data available.")
        return
    for point in locations:
        typer.echo(
            f"  - {point.get('device_key')}: "
            f"{point.get('latitude')}, {point.get('longitude')} at {point.get('timestamp')}"
        )


def render_dashboard(payload: Dict[str, Any]) -> None:
    echo_heading("Connection")
    render_status(payload.get("status") or {})
    typer.echo(f"reading_count: {payload.get('reading_count')}")

    typer.echo()
    echo_heading("Latest Sensor Readings")
    devices = payload.get("devices") or []
    if not devices:
        typer.echo("No sensor data available.")
    for device in devices:
        typer.echo(f"device {device.get('device_key')} ({device.get('timestamp')})")
        for card in device.get("cards") or []:
            render_card(card)

    typer.echo()
    render_locations(payload.get("locations") or [])

    rejected = payload.get("rejected") or []
    if rejected:
        typer.echo()
        echo_heading("Rejected Rows")
        for error in rejected:
            typer.echo(f"  - row {error.get('index')}: {error.get('reason')}")
