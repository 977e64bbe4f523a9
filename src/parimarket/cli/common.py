"""Shared helpers for commands that work on the market database directly."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Iterator

import typer

from parimarket.engine import MarketService
from parimarket.errors import MarketError
from parimarket.storage import Database

if TYPE_CHECKING:
    from parimarket.config import Settings


@contextmanager
def open_service(settings: Settings) -> Iterator[MarketService]:
    """Service over the configured database; market errors exit with status 1."""
    db = Database.open(settings.db_path)
    try:
        yield MarketService.from_settings(db, settings)
    except MarketError as e:
        typer.echo(f"Error ({e.code}): {e.message}", err=True)
        raise typer.Exit(1) from None
    finally:
        db.close()


def fmt_ts(ts_ms: int | None) -> str:
    if ts_ms is None:
        return "-"
    return datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
