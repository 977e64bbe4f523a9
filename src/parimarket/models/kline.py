"""OddsSample (kline), OddsSnapshot - derived time series of quoted odds."""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel

MINUTE_MS = 60 * 1000

INTERVAL_MS: dict[str, int] = {
    "1m": MINUTE_MS,
    "5m": 5 * MINUTE_MS,
    "15m": 15 * MINUTE_MS,
    "30m": 30 * MINUTE_MS,
    "1h": 60 * MINUTE_MS,
    "4h": 4 * 60 * MINUTE_MS,
    "1d": 24 * 60 * MINUTE_MS,
    "1w": 7 * 24 * 60 * MINUTE_MS,
}


def bucket_start(ts_ms: int, interval: str) -> int:
    """Start of the wall-clock bucket containing ts_ms."""
    size = INTERVAL_MS[interval]
    return (ts_ms // size) * size


class OddsSnapshot(BaseModel):
    """Current odds/pool state of an event; the live feed payload."""

    event_id: int
    status: str
    yes_odds: Decimal
    no_odds: Decimal
    yes_pool: Decimal
    no_pool: Decimal
    total_yes_bets: int
    total_no_bets: int
    timestamp: int  # ms epoch


class OddsSample(BaseModel):
    """Open/high/low/close of both sides' odds within one time bucket."""

    event_id: int
    interval: str
    bucket_start: int  # ms epoch
    open_yes: Decimal
    high_yes: Decimal
    low_yes: Decimal
    close_yes: Decimal
    open_no: Decimal
    high_no: Decimal
    low_no: Decimal
    close_no: Decimal
    yes_pool: Decimal
    no_pool: Decimal
    bet_count: int
    updated_at: int
