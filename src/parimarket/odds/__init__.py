"""Odds calculator and duration parsing."""

from parimarket.odds.calculator import (
    calculate_odds,
    parse_amount,
    potential_payout,
    quantize_money,
    winner_payout,
)
from parimarket.odds.duration import deadline_from_duration, parse_duration

__all__ = [
    "calculate_odds",
    "parse_amount",
    "potential_payout",
    "quantize_money",
    "winner_payout",
    "deadline_from_duration",
    "parse_duration",
]
