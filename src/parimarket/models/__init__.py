"""Canonical schema (Pydantic) - Event, Bet, OddsSample."""

from parimarket.models.event import (
    Bet,
    BuyPoint,
    Coin,
    Event,
    PriceTarget,
    ResolutionParams,
    TokenLaunch,
    opposite,
)
from parimarket.models.kline import INTERVAL_MS, OddsSample, OddsSnapshot, bucket_start

__all__ = [
    "Event",
    "Bet",
    "BuyPoint",
    "Coin",
    "TokenLaunch",
    "PriceTarget",
    "ResolutionParams",
    "OddsSample",
    "OddsSnapshot",
    "INTERVAL_MS",
    "bucket_start",
    "opposite",
]
