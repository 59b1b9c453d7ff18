from __future__ import annotations

from typing import Any, Dict, Iterable

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_reading(payload: Dict[str, Any]) -> None:
    reading = payload.get("reading") or {}
    anomaly = payload.get("anomaly") or {}
    echo_heading("Stored Reading")
    echo_key_values(
        [
            ("reading_id", reading.get("reading_id")),
            ("sensor_id", reading.get("sensor_id")),
            ("reading_value", reading.get("reading_value")),
            ("unit", reading.get("unit")),
            ("timestamp", reading.get("timestamp")),
            ("anomaly_detected", reading.get("anomaly_detected")),
        ]
    )
    if anomaly.get("checked"):
        typer.echo()
        echo_heading("Anomaly Check")
        echo_key_values(
            [
                ("deviation", anomaly.get("deviation")),
                ("standard_deviations", anomaly.get("standard_deviations")),
                ("recent_average", anomaly.get("recent_average")),
            ]
        )
    if reading.get("anomaly_detected"):
        typer.secho("Reading flagged as anomalous.", fg=typer.colors.YELLOW)


def render_analytics(payload: Dict[str, Any]) -> None:
    analytics = payload.get("analytics") or {}
    parameters = payload.get("parameters") or {}
    echo_heading("Sensor Analytics")
    echo_key_values(
        [
            ("period", parameters.get("period")),
            ("aggregation", parameters.get("aggregation")),
        ]
    )
    if payload.get("message"):
        typer.echo(payload["message"])

    summary = analytics.get("summary") or {}
    typer.echo()
    echo_heading("Summary")
    if summary:
        echo_key_values(
            [
                ("total_readings", summary.get("total_readings")),
                ("average_value", summary.get("average_value")),
                ("min_value", summary.get("min_value")),
                ("max_value", summary.get("max_value")),
                ("anomaly_count", summary.get("anomaly_count")),
            ]
        )
    else:
        typer.echo("No readings in window.")

    trends = analytics.get("trends") or {}
    typer.echo()
    echo_heading("Trends")
    if trends:
        for sensor_type, trend in trends.items():
            typer.echo(
                f"  - {sensor_type}: {trend.get('direction')} "
                f"({trend.get('change_percent')}%, confidence {trend.get('confidence')})"
            )
    else:
        typer.echo("No trends available.")

    time_series = analytics.get("timeSeries") or []
    if time_series:
        typer.echo()
        echo_heading("Time Series")
        for point in time_series:
            typer.echo(
                f"  - {point.get('timestamp')} {point.get('sensor_id')}: "
                f"mean={point.get('reading_value')} "
                f"min={point.get('min_value')} max={point.get('max_value')} "
                f"n={point.get('reading_count')}"
            )


def render_alerts(payload: Dict[str, Any]) -> None:
    alerts = payload.get("alerts") or []
    echo_heading(f"Alerts ({payload.get('total', len(alerts))})")
    if not alerts:
        typer.echo("No alerts recorded.")
        return
    for alert in alerts:
        marker = "ack" if alert.get("acknowledged") else "new"
        typer.echo(
            f"  - [{alert.get('severity')}] {alert.get('sensor_id')} "
            f"{alert.get('alert_type')}: {alert.get('message')} ({marker})"
        )


def render_import(payload: Dict[str, Any]) -> None:
    echo_heading("Import Result")
    echo_key_values(
        [
            ("status", payload.get("status")),
            ("accepted", payload.get("accepted")),
            ("anomalies", payload.get("anomalies")),
        ]
    )
    errors = payload.get("errors") or []
    typer.echo()
    echo_heading("Errors")
    if errors:
        for error in errors:
            typer.echo(f"  - row {error.get('row_number')}: {error.get('reason')}")
    else:
        typer.echo("No errors recorded.")
