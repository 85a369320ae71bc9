from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _reading_pairs(reading: Dict[str, Any]) -> List[tuple[str, Any]]:
    return [
        ("timestamp", reading.get("timestamp")),
        ("heartRate", reading.get("heartRate")),
        ("temperature", reading.get("temperature")),
        ("sugarLevel", reading.get("sugarLevel")),
    ]


def render_reading(reading: Dict[str, Any]) -> None:
    echo_heading("Latest Reading")
    echo_key_values(_reading_pairs(reading))


def render_ingest(payload: Dict[str, Any]) -> None:
    echo_heading("Reading Accepted")
    echo_key_values(_reading_pairs(payload.get("data") or {}))
    if payload.get("persisted"):
        typer.secho(f"persisted: yes (id={payload.get('id')})", fg=typer.colors.GREEN)
    else:
        typer.secho(
            f"persisted: no ({payload.get('error') or 'unknown error'})",
            fg=typer.colors.YELLOW,
        )


def render_reports(rows: List[Dict[str, Any]], limit: int | None = None) -> None:
    echo_heading("Recent Reports")
    shown = rows[:limit] if limit else rows
    if not shown:
        typer.echo("No readings stored yet.")
        return
    for row in shown:
        typer.echo(
            f"  - #{row.get('id')} {row.get('timestamp')} "
            f"heartRate={row.get('heartRate')} "
            f"temperature={row.get('temperature')} "
            f"sugarLevel={row.get('sugarLevel')}"
        )
