from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_alerts, render_analytics, render_import, render_reading


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the field sensor analytics service.",
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
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each HTTP request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("submit")
def submit_command(
    ctx: typer.Context,
    sensor_id: str = typer.Argument(..., help="Identifier of a registered sensor."),
    value: float = typer.Argument(..., help="Reading value."),
    unit: Optional[str] = typer.Option(None, "--unit", help="Unit, defaults to the sensor type's."),
    quality_score: Optional[float] = typer.Option(
        None, "--quality", min=0.0, max=1.0, help="Quality score between 0 and 1."
    ),
) -> None:
    """Submit a single reading and show its anomaly check."""
    state = _get_state(ctx)
    payload = state.client.submit_reading(
        sensor_id, value, unit=unit, quality_score=quality_score
    )
    render_reading(payload)


@app.command("analytics")
def analytics_command(
    ctx: typer.Context,
    sensor_id: Optional[str] = typer.Option(None, "--sensor-id"),
    field_id: Optional[str] = typer.Option(None, "--field-id"),
    sensor_type: Optional[str] = typer.Option(None, "--sensor-type"),
    period: Optional[str] = typer.Option(None, "--period", help="24h, 7d, 30d or 90d."),
    aggregation: str = typer.Option("hourly", "--aggregation", help="hourly, daily or weekly."),
) -> None:
    """Show aggregated analytics for a query window."""
    state = _get_state(ctx)
    payload = state.client.get_analytics(
        sensor_id=sensor_id,
        field_id=field_id,
        sensor_type=sensor_type,
        period=period,
        aggregation=aggregation,
    )
    render_analytics(payload)


@app.command("alerts")
def alerts_command(
    ctx: typer.Context,
    sensor_id: Optional[str] = typer.Option(None, "--sensor-id"),
    severity: Optional[str] = typer.Option(None, "--severity"),
    limit: int = typer.Option(50, "--limit", min=1),
) -> None:
    """List recent sensor alerts."""
    state = _get_state(ctx)
    payload = state.client.list_alerts(sensor_id=sensor_id, severity=severity, limit=limit)
    render_alerts(payload)


@app.command("import")
def import_command(
    ctx: typer.Context,
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="Path to CSV file."),
) -> None:
    """Import readings from a CSV file."""
    state = _get_state(ctx)
    typer.echo(f"Importing {file} to {state.config.base_url} ...")
    payload = state.client.import_file(file)
    render_import(payload)
