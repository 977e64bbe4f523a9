"""Root CLI app - entry point and command registration."""

from pathlib import Path

import typer

from parimarket.config import configure_logging, get_settings

app = typer.Typer(
    name="parimarket",
    help="PariMarket - pari-mutuel yes/no prediction markets: events, bets, settlement, live odds.",
    no_args_is_help=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    config_dir: Path | None = typer.Option(
        None, "--config-dir", "-C", help="Config directory (default: ./config or package config)"
    ),
    profile: str | None = typer.Option(
        None, "--profile", "-p", help="Config profile (e.g. dev) to overlay on default.toml"
    ),
) -> None:
    """Configure logging and store options in context."""
    settings = get_settings(profile, config_dir)
    configure_logging(settings)
    ctx.obj = {"settings": settings, "config_dir": config_dir, "profile": profile}


# Subcommands registered from other modules
from parimarket.cli import api_cmd, coins, events, ledger, scheduler  # noqa: E402

app.add_typer(api_cmd.app, name="api")
app.add_typer(events.app, name="events")
app.add_typer(ledger.app, name="ledger")
app.add_typer(coins.app, name="coins")
app.add_typer(scheduler.app, name="scheduler")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
