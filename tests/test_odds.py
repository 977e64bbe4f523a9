"""Odds calculator, payout arithmetic and duration parsing."""

from decimal import Decimal

import pytest

from parimarket.errors import ValidationError
from parimarket.odds import (
    calculate_odds,
    deadline_from_duration,
    parse_amount,
    parse_duration,
    potential_payout,
    winner_payout,
)

D = Decimal


def test_empty_pools_quote_even():
    assert calculate_odds(D(0), D(0)) == (D("50.00"), D("50.00"))


@pytest.mark.parametrize("pool", ["1", "0.00000001", "12345.678"])
def test_equal_pools_quote_even(pool):
    assert calculate_odds(D(pool), D(pool)) == (D("50.00"), D("50.00"))


def test_smaller_side_quotes_higher():
    yes, no = calculate_odds(D(100), D(50))
    assert yes == D("33.33")
    assert no == D("66.67")


def test_one_sided_pool():
    assert calculate_odds(D(100), D(0)) == (D("0.00"), D("100.00"))
    assert calculate_odds(D(0), D(7)) == (D("100.00"), D("0.00"))


def test_rounding_slack_is_accepted():
    # Each side rounds half-up on its own; 12.345 and 87.655 both round up
    yes, no = calculate_odds(D(87655), D(12345))
    assert (yes, no) == (D("12.35"), D("87.66"))
    assert yes + no == D("100.01")


def test_potential_payout():
    assert potential_payout(D(50), D("66.67")) == D("33.335")
    assert potential_payout(D(100), D("0.00")) == D(0)


def test_winner_payout_full_pool_to_sole_winner():
    assert winner_payout(D(100), D(100), D(150)) == D(150)


def test_winner_payouts_never_exceed_total():
    stakes = [D(1), D(1), D(1)]
    total = D(10)
    payouts = [winner_payout(s, D(3), total) for s in stakes]
    assert all(p == D("3.33333333") for p in payouts)
    assert sum(payouts) <= total


def test_winner_payout_rejects_empty_pool():
    with pytest.raises(ValueError):
        winner_payout(D(1), D(0), D(5))


@pytest.mark.parametrize("raw", ["0", "-1", "abc", "NaN", "Infinity", "1.123456789", "1e20", "1e40", True, None])
def test_parse_amount_rejects(raw):
    with pytest.raises(ValidationError):
        parse_amount(raw)


def test_parse_amount_accepts_numbers_and_strings():
    assert parse_amount("12.5") == D("12.5")
    assert parse_amount(3) == D(3)
    assert parse_amount(0.1) == D("0.1")


@pytest.mark.parametrize(
    "text,ms",
    [
        ("30minutes", 30 * 60_000),
        ("1minute", 60_000),
        ("45m", 45 * 60_000),
        ("5hours", 5 * 3_600_000),
        ("72H", 72 * 3_600_000),
        ("2d", 2 * 86_400_000),
        ("1Days", 86_400_000),
    ],
)
def test_parse_duration(text, ms):
    assert parse_duration(text) == ms


@pytest.mark.parametrize(
    "text",
    ["", "10", "m", "10 minutes", "1.5h", "3w", "0m", "-1h", "10secs", "\uff15h", "5h\n", "366d", "999999999999999d"],
)
def test_parse_duration_rejects(text):
    with pytest.raises(ValidationError):
        parse_duration(text)


def test_deadline_from_duration():
    assert deadline_from_duration("10minutes", 1_000) == 1_000 + 600_000


def test_parse_duration_allows_one_year():
    assert parse_duration("365d") == 365 * 86_400_000
    assert parse_duration("8760h") == 365 * 86_400_000


def test_large_pool_arithmetic_beyond_default_precision():
    stake = D("90000000000000000000")
    assert parse_amount(stake) == stake
    total = stake * 3
    assert winner_payout(stake, stake * 2, total) == D("135000000000000000000")
    assert calculate_odds(stake, stake * 2) == (D("66.67"), D("33.33"))
    assert potential_payout(stake, D("66.67")) == D("60003000000000000000")
