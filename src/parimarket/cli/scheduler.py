"""Scheduler subcommand: run-once, run."""

from __future__ import annotations

import asyncio
import signal
import sys

import typer

from parimarket.cli.common import open_service
from parimarket.oracle import DexScreenerOracle
from parimarket.scheduler import SettlementScheduler

app = typer.Typer(help="Settle expired events through the oracle")


async def _run(scheduler: SettlementScheduler, oracle: DexScreenerOracle, stop_event: asyncio.Event | None) -> None:
    try:
        if stop_event is None:
            report = await scheduler.run_once()
            for key, ids in report.as_dict().items():
                typer.echo(f"  {key:<10} {len(ids):>4}  {ids}")
        else:
            await scheduler.run(stop_event=stop_event)
    finally:
        await oracle.aclose()


@app.command("run-once")
def run_once(ctx: typer.Context) -> None:
    """Run a single settlement sweep and print what happened."""
    settings = ctx.obj["settings"]
    with open_service(settings) as service:
        oracle = DexScreenerOracle.from_settings(settings)
        scheduler = SettlementScheduler.from_settings(service, oracle, settings)
        asyncio.run(_run(scheduler, oracle, None))


@app.command("run")
def run(ctx: typer.Context) -> None:
    """Sweep every scheduler.interval_sec until interrupted."""
    settings = ctx.obj["settings"]
    with open_service(settings) as service:
        oracle = DexScreenerOracle.from_settings(settings)
        scheduler = SettlementScheduler.from_settings(service, oracle, settings)
        stop_event = asyncio.Event()
        loop = asyncio.new_event_loop()
        if sys.platform != "win32":
            loop.add_signal_handler(signal.SIGINT, stop_event.set)
            loop.add_signal_handler(signal.SIGTERM, stop_event.set)
        try:
            typer.echo(f"Settling every {settings.scheduler_interval_sec:.0f}s (Ctrl+C to stop)...")
            loop.run_until_complete(_run(scheduler, oracle, stop_event))
        except KeyboardInterrupt:
            pass
        finally:
            loop.close()
        typer.echo(f"Stopped after {scheduler.ticks} ticks.")
