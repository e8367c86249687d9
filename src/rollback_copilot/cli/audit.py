"""Read the decision log for postmortems."""

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table
from whenever import Instant, TimeDelta

from rollback_copilot.adapters import JsonlDecisionLog
from rollback_copilot.models import RemediationAction, load_config

console = Console()


def decisions(
    log: Annotated[
        Path | None,
        typer.Option("--log", "-l", help="JSONL decision log (default: configured path)"),
    ] = None,
    hours: Annotated[float, typer.Option("--hours", help="Look back this many hours")] = 24.0,
    action: Annotated[
        RemediationAction | None, typer.Option("--action", "-a", help="Only this action")
    ] = None,
) -> None:
    """List remediation decisions from the decision log."""
    path = log
    if path is None:
        configured = load_config().decision_log_path
        if configured is None:
            console.print("[red]Error:[/red] no --log given and no decision_log_path configured")
            raise typer.Exit(1)
        path = Path(configured)

    if not path.exists():
        console.print(f"[red]Error:[/red] Decision log not found: {path}")
        raise typer.Exit(1)

    end = Instant.now()
    start = end - TimeDelta(seconds=hours * 3600)
    rows = JsonlDecisionLog(path).between(start, end)
    if action is not None:
        rows = [d for d in rows if d.action == action]

    if not rows:
        console.print(f"[yellow]No decisions in the last {hours:g}h[/yellow]")
        return

    table = Table(title=f"Decisions in the last {hours:g}h ({path})")
    table.add_column("Time (UTC)", style="dim")
    table.add_column("Health")
    table.add_column("Deviation", justify="right")
    table.add_column("Action")
    table.add_column("Reason")
    for d in rows:
        deviation = "n/a" if d.deviation_percent is None else f"{d.deviation_percent:.1f}%"
        table.add_row(d.timestamp.format_iso(), d.health_state, deviation, d.action, d.reason)
    console.print(table)
