from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Optional

import typer
import uvicorn

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_ingest, render_reading, render_reports
from logging_config import build_logging_config
from settings import get_settings


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for feeding and inspecting the vitals relay service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Relay base URL (defaults to API_BASE_URL env or http://localhost:3000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each HTTP request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, request_timeout=timeout)
    if ctx.invoked_subcommand == "serve":
        return
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("send")
def send_command(
    ctx: typer.Context,
    heart_rate: Optional[float] = typer.Option(None, "--heart-rate", help="Heart rate in bpm."),
    temperature: Optional[float] = typer.Option(None, "--temperature", help="Body temperature."),
    sugar_level: Optional[float] = typer.Option(None, "--sugar-level", help="Blood sugar level."),
) -> None:
    """Post a single reading; omitted fields are stored as 0."""
    state = _get_state(ctx)
    payload = state.client.send_reading(
        heart_rate=heart_rate,
        temperature=temperature,
        sugar_level=sugar_level,
    )
    render_ingest(payload)


@app.command("latest")
def latest_command(ctx: typer.Context) -> None:
    """Show the most recent reading held by the service."""
    state = _get_state(ctx)
    render_reading(state.client.get_latest())


@app.command("reports")
def reports_command(
    ctx: typer.Context,
    limit: Optional[int] = typer.Option(
        None, "--limit", "-n", min=1, max=50, help="Show only the newest N rows."
    ),
) -> None:
    """List recently stored readings, newest first."""
    state = _get_state(ctx)
    render_reports(state.client.get_reports(), limit=limit)


@app.command("simulate")
def simulate_command(
    ctx: typer.Context,
    count: int = typer.Option(0, "--count", "-c", min=0, help="Readings to send (0 = forever)."),
    interval: Optional[float] = typer.Option(
        None, "--interval", help="Seconds between readings."
    ),
    seed: Optional[int] = typer.Option(None, "--seed", help="Seed for reproducible values."),
) -> None:
    """Act as a device and post randomized readings on a fixed cadence."""
    state = _get_state(ctx)
    delay = interval if interval is not None else state.config.simulate_interval
    rng = random.Random(seed)
    sent = 0
    while count == 0 or sent < count:
        if sent:
            time.sleep(delay)
        payload = state.client.send_reading(
            heart_rate=rng.randint(55, 110),
            temperature=round(rng.uniform(36.0, 38.5), 1),
            sugar_level=rng.randint(70, 160),
        )
        sent += 1
        data = payload.get("data") or {}
        marker = "" if payload.get("persisted") else " (not persisted)"
        typer.echo(
            f"[{sent}] heartRate={data.get('heartRate')} "
            f"temperature={data.get('temperature')} "
            f"sugarLevel={data.get('sugarLevel')}{marker}"
        )


@app.command("serve")
def serve_command(
    host: Optional[str] = typer.Option(None, "--host", help="Interface to bind (defaults to HOST env)."),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port to bind (defaults to PORT env)."),
) -> None:
    """Run the relay service with uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=host or settings.host,
        port=port or settings.port,
        log_config=build_logging_config(),
    )
