"""Ledger subcommand: deposit, balance."""

from __future__ import annotations

import typer

from parimarket.cli.common import open_service

app = typer.Typer(help="Reference ledger balances")


@app.command("deposit")
def deposit(
    ctx: typer.Context,
    user_id: str = typer.Argument(...),
    amount: str = typer.Argument(..., help="Amount to credit"),
) -> None:
    """Credit a user's spendable balance."""
    with open_service(ctx.obj["settings"]) as service:
        balance = service.deposit(user_id, amount)
        typer.echo(f"{user_id}: {balance}")


@app.command("balance")
def balance(ctx: typer.Context, user_id: str = typer.Argument(...)) -> None:
    """Show a user's spendable balance."""
    with open_service(ctx.obj["settings"]) as service:
        typer.echo(f"{user_id}: {service.balance(user_id)}")
