from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import echo_key_values, render_dashboard, render_locations, render_status
from models.records import MetricKind
from services.aggregator import classify


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the sensor dashboard service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Dashboard API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Request timeout in seconds.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("status")
def status_command(ctx: typer.Context) -> None:
    """Show the latest cards per device, map points and rejected rows."""
    state = _get_state(ctx)
    render_dashboard(state.client.get_dashboard())


@app.command("refresh")
def refresh_command(ctx: typer.Context) -> None:
    """Ask the service to fetch a new snapshot from its reading source."""
    state = _get_state(ctx)
    payload = state.client.refresh()
    typer.secho(
        f"Snapshot refreshed. reading_count={payload.get('reading_count')}",
        fg=typer.colors.GREEN,
    )
    render_status(payload.get("status") or {})


@app.command("locations")
def locations_command(ctx: typer.Context) -> None:
    """List devices whose latest reading carries GPS coordinates."""
    state = _get_state(ctx)
    render_locations(state.client.get_locations())


@app.command("push")
def push_command(
    ctx: typer.Context,
    file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="JSON array of raw readings."
    ),
) -> None:
    """Replace the service's snapshot with the readings in FILE."""
    state = _get_state(ctx)
    typer.echo(f"Pushing {file} to {state.config.base_url} ...")
    payload = state.client.push_snapshot(file)
    typer.secho("Snapshot accepted.", fg=typer.colors.GREEN)
    echo_key_values(
        [
            ("accepted", payload.get("accepted")),
            ("rejected", payload.get("rejected")),
            ("device_count", payload.get("device_count")),
        ]
    )


@app.command("classify", context_settings={"ignore_unknown_options": True})
def classify_command(
    kind: MetricKind = typer.Argument(..., help="Metric kind to classify."),
    value: float = typer.Argument(..., help="Metric value."),
) -> None:
    """Classify a value locally without contacting the service."""
    typer.echo(classify(kind, value).value)
