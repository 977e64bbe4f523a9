"""Events subcommand: list, show, create, bet, settle, cancel, purge, watch."""

from __future__ import annotations

import asyncio
import json
import time

import typer
import websockets

from parimarket.cli.common import fmt_ts, open_service
from parimarket.errors import OracleIndeterminate
from parimarket.models import Event, TokenLaunch
from parimarket.oracle import DexScreenerOracle

app = typer.Typer(help="Create, bet on, settle and inspect events")


def _describe(event: Event) -> str:
    r = event.resolution
    if isinstance(r, TokenLaunch):
        return f"launch {r.platform}:{r.contract_address[:12]}"
    return f"price {r.reference_asset[:12]} >= {r.target_price}"


@app.command("list")
def list_events(
    ctx: typer.Context,
    status: str | None = typer.Option(None, "--status", "-s", help="Filter by status"),
    kind: str | None = typer.Option(None, "--kind", help="token_launch or price_target"),
    limit: int = typer.Option(20, "--limit", "-n"),
    offset: int = typer.Option(0, "--offset"),
) -> None:
    """List events, newest first."""
    with open_service(ctx.obj["settings"]) as service:
        events, total = service.list_events(status=status, kind=kind, limit=limit, offset=offset)
        for e in events:
            typer.echo(
                f"  #{e.event_id:<6} {e.status:<13} yes {e.yes_odds:>6} / no {e.no_odds:>6}  "
                f"pool {e.total_pool:>14}  closes {fmt_ts(e.closes_at)}  {_describe(e)}"
            )
        typer.echo(f"Total: {total} events")


@app.command("show")
def show(ctx: typer.Context, event_id: int = typer.Argument(..., help="Event id")) -> None:
    """Show one event and its bets."""
    with open_service(ctx.obj["settings"]) as service:
        e = service.get_event(event_id)
        typer.echo(f"Event #{e.event_id} ({e.kind}) - {_describe(e)}")
        typer.echo(f"  status:   {e.status}  creator {e.creator_id} on {e.creator_side}")
        typer.echo(f"  pools:    yes {e.yes_pool}  no {e.no_pool}  ({e.total_yes_bets}/{e.total_no_bets} bets)")
        typer.echo(f"  odds:     yes {e.yes_odds}  no {e.no_odds}")
        typer.echo(f"  deadline: {fmt_ts(e.deadline)}  settled: {fmt_ts(e.settled_at)}")
        if e.resolved_outcome is not None:
            typer.echo(f"  outcome:  {'yes' if e.resolved_outcome else 'no'}")
        for b in service.list_bets(event_id=event_id, limit=1000):
            payout = f" payout {b.payout}" if b.payout is not None else ""
            typer.echo(f"    bet #{b.bet_id} {b.user_id} {b.side} {b.amount} @ {b.odds_at_placement} {b.status}{payout}")


@app.command("create")
def create(
    ctx: typer.Context,
    creator: str = typer.Option(..., "--creator", help="Creator user id"),
    side: str = typer.Option(..., "--side", help="yes or no"),
    stake: str = typer.Option(..., "--stake", help="Stake amount"),
    duration: str = typer.Option(..., "--duration", "-d", help="e.g. 30minutes, 5h, 2d"),
    contract: str = typer.Option(..., "--contract", help="Token contract address"),
    platform: str | None = typer.Option(None, "--platform", help="pumpfun or bonk (token launch events)"),
    target_price: str | None = typer.Option(None, "--target-price", help="USD target (price target events)"),
    chain: str | None = typer.Option(None, "--chain", help="Chain (default from config)"),
) -> None:
    """Create a token-launch (--platform) or price-target (--target-price) event."""
    settings = ctx.obj["settings"]
    chain = chain or settings.oracle_default_chain
    if (platform is None) == (target_price is None):
        typer.echo("Give exactly one of --platform or --target-price", err=True)
        raise typer.Exit(2)
    if platform is not None:
        resolution: dict = {"kind": "token_launch", "platform": platform, "contract_address": contract, "chain": chain}
    else:
        resolution = {"kind": "price_target", "target_price": target_price, "reference_asset": contract, "chain": chain}
    with open_service(settings) as service:
        e = service.create_event(creator, side, resolution, stake, duration)
        typer.echo(f"Created event #{e.event_id} ({e.status}), deadline {fmt_ts(e.deadline)}")


@app.command("bet")
def bet(
    ctx: typer.Context,
    event_id: int = typer.Argument(...),
    user: str = typer.Option(..., "--user", help="Bettor user id"),
    side: str = typer.Option(..., "--side", help="yes or no"),
    amount: str = typer.Option(..., "--amount"),
) -> None:
    """Place a bet."""
    with open_service(ctx.obj["settings"]) as service:
        b = service.place_bet(user, event_id, side, amount)
        typer.echo(f"Bet #{b.bet_id}: {b.side} {b.amount} @ {b.odds_at_placement} (potential {b.potential_payout})")


@app.command("settle")
def settle(
    ctx: typer.Context,
    event_id: int = typer.Argument(...),
    outcome: str | None = typer.Option(None, "--outcome", help="yes or no; omit to ask the oracle"),
) -> None:
    """Settle an event with an explicit outcome, or resolve it through the oracle."""
    settings = ctx.obj["settings"]
    with open_service(settings) as service:
        if outcome is not None:
            if outcome.lower() not in ("yes", "no"):
                typer.echo("--outcome must be yes or no", err=True)
                raise typer.Exit(2)
            e = service.settle_event(event_id, outcome.lower() == "yes")
        else:
            e = asyncio.run(_resolve(service, event_id, settings))
        result = "-" if e.resolved_outcome is None else ("yes" if e.resolved_outcome else "no")
        typer.echo(f"Event #{e.event_id}: {e.status}, outcome {result}")


async def _resolve(service, event_id: int, settings) -> Event:
    oracle = DexScreenerOracle.from_settings(settings)
    try:
        return await service.resolve_and_settle(event_id, oracle)
    except OracleIndeterminate as e:
        typer.echo(f"Oracle could not resolve event #{event_id}: {e.message}", err=True)
        raise typer.Exit(1) from None
    finally:
        await oracle.aclose()


@app.command("cancel")
def cancel(ctx: typer.Context, event_id: int = typer.Argument(...)) -> None:
    """Cancel an event and refund every pending bet."""
    with open_service(ctx.obj["settings"]) as service:
        e = service.cancel_event(event_id)
        typer.echo(f"Event #{e.event_id}: {e.status}")


@app.command("purge")
def purge(
    ctx: typer.Context,
    older_than_days: float | None = typer.Option(
        None, "--older-than-days", help="Only events closed more than N days ago (default: all)"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete settled and cancelled events with their bets and odds samples."""
    before_ms = None
    if older_than_days is not None:
        before_ms = int(time.time() * 1000 - older_than_days * 86_400_000)
    if not yes:
        typer.confirm("Delete closed events and their bets?", abort=True)
    with open_service(ctx.obj["settings"]) as service:
        n = service.purge_settled(before_ms)
        typer.echo(f"Purged {n} events.")


@app.command("watch")
def watch(
    event_id: int = typer.Argument(...),
    url: str = typer.Option("ws://127.0.0.1:8000", "--url", help="API base WebSocket URL"),
) -> None:
    """Print the live odds feed of an event from a running API (Ctrl+C to stop)."""
    try:
        asyncio.run(_watch(f"{url.rstrip('/')}/ws/events/{event_id}"))
    except KeyboardInterrupt:
        pass


async def _watch(ws_url: str) -> None:
    async with websockets.connect(ws_url, ping_interval=20, ping_timeout=20, close_timeout=5) as ws:
        async for raw in ws:
            msg = json.loads(raw)
            data = msg.get("data") or {}
            if msg.get("type") in ("initial", "odds_update"):
                typer.echo(
                    f"[{msg['type']}] {data.get('status')} yes {data.get('yes_odds')} no {data.get('no_odds')}  "
                    f"pools {data.get('yes_pool')} / {data.get('no_pool')}"
                )
            elif msg.get("type") == "bet_placed":
                typer.echo(f"[bet] {data.get('side')} {data.get('amount')} @ {data.get('odds_at_bet')}")
            else:
                typer.echo(raw)
