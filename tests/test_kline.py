"""Odds klines: bucket folding and history reads."""

from decimal import Decimal

import pytest

from conftest import MINUTE, T0, launch
from parimarket.errors import EventNotFound, ValidationError
from parimarket.kline import OddsRecorder
from parimarket.models import bucket_start

D = Decimal


def test_bucket_start():
    assert bucket_start(T0 + 59_999, "1m") == T0
    assert bucket_start(T0 + 60_000, "1m") == T0 + 60_000
    assert bucket_start(T0, "1w") % (7 * 86_400_000) == 0


def test_recorder_rejects_unknown_interval(db):
    with pytest.raises(ValidationError):
        OddsRecorder(db, ["2m"])


@pytest.fixture
def traded(service, clock):
    """Creation at T0, a bet 10s later in the same bucket, another in the next minute."""
    event = service.create_event("alice", "yes", launch(), "100", "1h")
    clock.advance(10_000)
    service.place_bet("bob", event.event_id, "no", "50")
    clock.advance(60_000)
    service.place_bet("carol", event.event_id, "no", "50")
    return event.event_id


def test_samples_fold_within_bucket(service, traded):
    first, second = service.get_odds_history(traded, "1m")
    assert first.bucket_start == T0
    assert (first.open_yes, first.high_yes, first.low_yes, first.close_yes) == (
        D("0.00"),
        D("33.33"),
        D("0.00"),
        D("33.33"),
    )
    assert (first.open_no, first.high_no, first.low_no, first.close_no) == (
        D("100.00"),
        D("100.00"),
        D("66.67"),
        D("66.67"),
    )
    assert first.bet_count == 2
    assert (first.yes_pool, first.no_pool) == (D(100), D(50))


def test_new_bucket_opens_at_previous_close(service, traded):
    _, second = service.get_odds_history(traded, "1m")
    assert second.bucket_start == T0 + MINUTE
    assert second.open_yes == D("33.33")
    assert second.close_yes == D("50.00")
    assert (second.low_yes, second.high_yes) == (D("33.33"), D("50.00"))
    assert second.open_no == D("66.67")
    assert (second.low_no, second.high_no) == (D("50.00"), D("66.67"))
    assert second.bet_count == 3


def test_coarser_interval_has_one_bucket(service, traded):
    [sample] = service.get_odds_history(traded, "1h")
    assert sample.open_yes == D("0.00")
    assert sample.close_yes == D("50.00")
    assert sample.high_no == D("100.00")


def test_history_range_and_limit(service, traded):
    assert [s.bucket_start for s in service.get_odds_history(traded, "1m", limit=1)] == [T0 + MINUTE]
    assert [s.bucket_start for s in service.get_odds_history(traded, "1m", start_ms=T0 + MINUTE)] == [T0 + MINUTE]
    assert [s.bucket_start for s in service.get_odds_history(traded, "1m", end_ms=T0 + MINUTE)] == [T0]
    assert service.get_odds_history(traded, "1m", start_ms=T0 + 2 * MINUTE) == []


def test_history_validation(service, traded):
    with pytest.raises(ValidationError):
        service.get_odds_history(traded, "3m")
    with pytest.raises(ValidationError):
        service.get_odds_history(traded, "1m", limit=0)
    with pytest.raises(EventNotFound):
        service.get_odds_history(999, "1m")


def test_cancel_records_reset_odds(service, clock, traded):
    clock.advance(MINUTE)
    service.cancel_event(traded)
    last = service.get_odds_history(traded, "1m")[-1]
    assert last.close_yes == D("50.00")
    assert (last.yes_pool, last.no_pool) == (D(0), D(0))
