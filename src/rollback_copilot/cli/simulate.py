"""Replay the built-in scenarios against a real copilot on virtual time."""

import asyncio
import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from rollback_copilot.models import CopilotConfig, RemediationAction, SwapResult
from rollback_copilot.simulation import SCENARIOS, ScenarioResult, run_scenario

console = Console()

_ACTION_STYLE = {
    RemediationAction.NO_ACTION: "green",
    RemediationAction.WARN: "yellow",
    RemediationAction.ROLLBACK: "red",
}


def _render(results: list[ScenarioResult]) -> Table:
    table = Table(title="Scenario results")
    table.add_column("Scenario", style="cyan")
    table.add_column("Health")
    table.add_column("Deviation", justify="right")
    table.add_column("Action")
    table.add_column("Follow-up")
    table.add_column("Swaps", justify="right")
    table.add_column("Result")

    for r in results:
        style = _ACTION_STYLE[r.action]
        deviation = "n/a" if r.deviation_percent is None else f"{r.deviation_percent:.0f}%"
        table.add_row(
            r.name,
            r.health_state,
            deviation,
            f"[{style}]{r.action}[/{style}]",
            str(r.followup_action),
            str(r.swap_calls),
            "[green]✓[/green]" if r.passed else f"[red]✗ expected {r.expected_action}[/red]",
        )
    return table


def simulate(
    scenario: Annotated[
        str | None,
        typer.Argument(help=f"One of: {', '.join(SCENARIOS)} (default: all)"),
    ] = None,
    transient_failures: Annotated[
        int,
        typer.Option("--transient-failures", "-t", min=0, help="Swap calls that fail transiently"),
    ] = 0,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Show copilot logs")] = False,
) -> None:
    """Run the healthy / regression / external scenarios and show what the copilot did."""
    names = [scenario] if scenario else list(SCENARIOS)
    unknown = [n for n in names if n not in SCENARIOS]
    if unknown:
        console.print(f"[red]Error:[/red] unknown scenario {unknown[0]!r}")
        raise typer.Exit(1)

    logging.basicConfig(
        level=logging.INFO if verbose else logging.ERROR,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    failures = [
        SwapResult.failure("simulated throttling", transient=True)
        for _ in range(transient_failures)
    ]
    config = CopilotConfig()

    console.print(Panel.fit("Rollback Copilot scenarios", style="bold blue"))
    results = [
        asyncio.run(run_scenario(name, config=config, swap_results=failures)) for name in names
    ]
    console.print(_render(results))

    if not all(r.passed for r in results):
        raise typer.Exit(1)
