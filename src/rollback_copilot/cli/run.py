"""Worker commands: run the copilot, inspect its effective configuration."""

import json
import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from rollback_copilot.errors import ConfigurationError
from rollback_copilot.models import CopilotConfig, load_config
from rollback_copilot.worker import build_copilot, run_forever

console = Console()


def _load(overrides: dict[str, object]) -> CopilotConfig:
    try:
        return load_config(**{k: v for k, v in overrides.items() if v is not None})
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None


def _flatten(data: dict, prefix: str = "") -> list[tuple[str, object]]:
    rows: list[tuple[str, object]] = []
    for key, value in data.items():
        name = f"{prefix}{key}"
        if isinstance(value, dict):
            rows.extend(_flatten(value, f"{name}."))
        else:
            rows.append((name, value))
    return rows


def run(
    metrics_endpoint: Annotated[
        str | None, typer.Option("--metrics-endpoint", "-m", help="Base URL serving /observations")
    ] = None,
    change_log: Annotated[
        str | None, typer.Option("--change-log", help="JSONL change log file")
    ] = None,
    decision_log: Annotated[
        str | None, typer.Option("--decision-log", help="JSONL decision log file")
    ] = None,
    poll_interval: Annotated[
        float | None, typer.Option("--poll-interval", help="Seconds between cycles")
    ] = None,
    api_port: Annotated[
        int | None, typer.Option("--api-port", "-p", help="Serve the status API on this port")
    ] = None,
) -> None:
    """Run the copilot until interrupted.

    Options override ROLLBACK_COPILOT_* environment variables.
    """
    config = _load(
        {
            "metrics_endpoint": metrics_endpoint,
            "change_log_path": change_log,
            "decision_log_path": decision_log,
            "poll_interval_seconds": poll_interval,
            "api_port": api_port,
        }
    )

    try:
        copilot = build_copilot(config)
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    console.print(Panel.fit("Rollback Copilot", style="bold blue"))
    console.print(f"  Metrics:  [cyan]{config.metrics_endpoint}[/cyan]")
    console.print(f"  Interval: [cyan]{config.poll_interval_seconds:.0f}s[/cyan]")
    if config.api_port is not None:
        console.print(f"  API:      [cyan]http://{config.api_host}:{config.api_port}[/cyan]")
    console.print()

    run_forever(copilot)


def show_config(
    as_json: Annotated[bool, typer.Option("--json", help="Print as JSON")] = False,
) -> None:
    """Show the effective configuration (defaults + environment)."""
    config = _load({})
    data = config.model_dump(mode="json")

    if as_json:
        console.print_json(json.dumps(data))
        return

    table = Table(title="Effective configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for name, value in _flatten(data):
        table.add_row(name, "[dim]unset[/dim]" if value is None else str(value))
    console.print(table)
