"""Rollback Copilot CLI."""

import typer

from rollback_copilot.cli.audit import decisions
from rollback_copilot.cli.run import run, show_config
from rollback_copilot.cli.simulate import simulate

app = typer.Typer(
    name="rollback-copilot",
    help="Rollback Copilot - automated latency regression detection and slot-swap rollback",
    no_args_is_help=True,
)

app.command("run")(run)
app.command("config")(show_config)
app.command("simulate")(simulate)
app.command("decisions")(decisions)


@app.callback()
def main() -> None:
    """Rollback Copilot CLI."""
    pass


if __name__ == "__main__":
    app()
