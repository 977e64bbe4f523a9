"""Coins subcommand: add, list."""

from __future__ import annotations

import asyncio

import typer

from parimarket.cli.common import open_service
from parimarket.oracle import DexScreenerOracle

app = typer.Typer(help="Known-coin registry (token launch events must reference an active coin)")


async def _lookup(settings, address: str, chain: str) -> dict[str, str] | None:
    oracle = DexScreenerOracle.from_settings(settings)
    try:
        return await oracle.token_metadata(address, chain)
    finally:
        await oracle.aclose()


@app.command("add")
def add(
    ctx: typer.Context,
    contract_address: str = typer.Argument(...),
    symbol: str | None = typer.Option(None, "--symbol", help="Ticker; looked up on DexScreener when omitted"),
    name: str | None = typer.Option(None, "--name"),
    chain: str | None = typer.Option(None, "--chain", help="Chain (default from config)"),
    inactive: bool = typer.Option(False, "--inactive", help="Register as inactive"),
) -> None:
    """Register or update a coin."""
    settings = ctx.obj["settings"]
    chain = chain or settings.oracle_default_chain
    if symbol is None:
        meta = asyncio.run(_lookup(settings, contract_address, chain))
        if meta is None:
            typer.echo("Token not found on DexScreener; pass --symbol", err=True)
            raise typer.Exit(1)
        symbol, name = meta["symbol"], name or meta["name"]
    with open_service(settings) as service:
        coin = service.register_coin(contract_address, symbol, name, chain, is_active=not inactive)
        typer.echo(f"Registered {coin.symbol} ({coin.name}) {coin.contract_address} on {coin.chain}")


@app.command("list")
def list_coins(
    ctx: typer.Context,
    active_only: bool = typer.Option(False, "--active", help="Only active coins"),
) -> None:
    """List registered coins."""
    with open_service(ctx.obj["settings"]) as service:
        coins = service.list_coins(active_only=active_only)
        for c in coins:
            flag = "" if c.is_active else "  (inactive)"
            typer.echo(f"  {c.symbol:<10} {c.contract_address}  {c.chain}{flag}")
        typer.echo(f"Total: {len(coins)} coins")
