"""Pari-mutuel odds and payout arithmetic. Pure functions over Decimal."""

from __future__ import annotations

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation, localcontext

from parimarket.errors import ValidationError

HUNDRED = Decimal("100")
EVEN_ODDS = Decimal("50.00")
ODDS_QUANTUM = Decimal("0.01")
MONEY_QUANTUM = Decimal("0.00000001")  # matches DECIMAL(38, 8) columns
MONEY_PRECISION = 38
MAX_AMOUNT = Decimal("1e20")


def money_context():
    """Decimal context wide enough for any DECIMAL(38, 8) value; intermediates round toward zero."""
    return localcontext(prec=MONEY_PRECISION, rounding=ROUND_DOWN)


def calculate_odds(yes_pool: Decimal, no_pool: Decimal) -> tuple[Decimal, Decimal]:
    """
    Quoted (yes_odds, no_odds) percentages for the given pools.

    A side's odds are the opposing pool's share of the total, so the smaller
    side quotes higher. Each side is rounded independently to 2 places and the
    pair may miss 100 by a cent of rounding slack.
    """
    with money_context():
        total = yes_pool + no_pool
        if total == 0:
            return EVEN_ODDS, EVEN_ODDS
        yes_odds = (HUNDRED * no_pool / total).quantize(ODDS_QUANTUM, rounding=ROUND_HALF_UP)
        no_odds = (HUNDRED * yes_pool / total).quantize(ODDS_QUANTUM, rounding=ROUND_HALF_UP)
    return yes_odds, no_odds


def potential_payout(amount: Decimal, odds: Decimal) -> Decimal:
    """Informational quote shown at placement: amount * odds / 100."""
    with money_context():
        return quantize_money(amount * odds / HUNDRED)


def winner_payout(amount: Decimal, winner_pool: Decimal, total_pool: Decimal) -> Decimal:
    """
    Share of the total pool owed to one winning stake: amount / winner_pool * total_pool.

    Rounded down so the payouts of all winners never exceed total_pool.
    """
    if winner_pool <= 0:
        raise ValueError("winner_pool must be positive")
    with money_context():
        return (amount * total_pool / winner_pool).quantize(MONEY_QUANTUM, rounding=ROUND_DOWN)


def add_money(a: Decimal, b: Decimal) -> Decimal:
    with money_context():
        return a + b


def quantize_money(value: Decimal) -> Decimal:
    with money_context():
        return value.quantize(MONEY_QUANTUM, rounding=ROUND_DOWN)


def parse_amount(value: Decimal | str | int | float, field: str = "amount") -> Decimal:
    """Parse a positive monetary amount; floats go through str() to avoid binary noise."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number, got {value!r}") from None
    if not amount.is_finite():
        raise ValidationError(f"{field} must be finite")
    if amount <= 0:
        raise ValidationError(f"{field} must be positive")
    if amount >= MAX_AMOUNT:
        raise ValidationError(f"{field} is too large")
    if amount != quantize_money(amount):
        raise ValidationError(f"{field} has more than 8 decimal places")
    return amount
