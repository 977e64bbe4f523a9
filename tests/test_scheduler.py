"""Settlement scheduler with a fake oracle."""

import asyncio
from decimal import Decimal

import pytest

from conftest import MINUTE, price_target
from parimarket.oracle import OracleResult
from parimarket.scheduler import SettlementScheduler

D = Decimal


class FakeOracle:
    """Answers by reference asset: a price, None (indeterminate), an exception, or a delay."""

    def __init__(self, answers, delay=0.0):
        self.answers = answers
        self.delay = delay
        self.calls = []

    async def resolve(self, params):
        self.calls.append(params.reference_asset)
        if self.delay:
            await asyncio.sleep(self.delay)
        answer = self.answers.get(params.reference_asset)
        if isinstance(answer, Exception):
            raise answer
        if answer is None:
            return OracleResult.indeterminate()
        return OracleResult.priced(D(answer))


def _matched(service, asset, minutes=5):
    event = service.create_event("alice", "yes", price_target(asset=asset, target="2"), "10", f"{minutes}m")
    service.place_bet("bob", event.event_id, "no", "10")
    return event.event_id


def test_tick_settles_due_events_only(service, clock):
    up = _matched(service, "UP")
    down = _matched(service, "DOWN")
    later = _matched(service, "LATER", minutes=60)
    clock.advance(5 * MINUTE)
    oracle = FakeOracle({"UP": "2.5", "DOWN": "1.99", "LATER": "3"})

    report = asyncio.run(SettlementScheduler(service, oracle).run_once())

    assert sorted(report.settled) == sorted([up, down])
    assert "LATER" not in oracle.calls
    assert service.get_event(later).status == "active"
    up_event, down_event = service.get_event(up), service.get_event(down)
    assert up_event.resolved_outcome is True
    assert up_event.settlement_price == D("2.5")
    assert down_event.resolved_outcome is False
    # alice won UP (20), bob won DOWN (20)
    assert service.balance("alice") == D(1000 - 30 + 20)
    assert service.balance("bob") == D(1000 - 30 + 20)


def test_indeterminate_leaves_event_active_then_review(service, clock):
    event_id = _matched(service, "FOGGY")
    clock.advance(5 * MINUTE)
    scheduler = SettlementScheduler(service, FakeOracle({"FOGGY": None}))

    report = asyncio.run(scheduler.run_once())
    assert report.skipped == [event_id]
    event = service.get_event(event_id)
    assert event.status == "active"
    assert event.settle_attempts == 1

    asyncio.run(scheduler.run_once())
    asyncio.run(scheduler.run_once())
    assert service.get_event(event_id).status == "review"
    assert asyncio.run(scheduler.run_once()).skipped == []


def test_one_failure_does_not_block_others(service, clock):
    bad = _matched(service, "BROKEN")
    good = _matched(service, "FINE")
    clock.advance(5 * MINUTE)
    oracle = FakeOracle({"BROKEN": RuntimeError("upstream 500"), "FINE": "5"})

    report = asyncio.run(SettlementScheduler(service, oracle).run_once())

    assert report.failed == [bad]
    assert report.settled == [good]
    assert service.get_event(bad).status == "active"
    assert service.get_event(bad).settle_attempts == 1


def test_slow_oracle_times_out(service, clock):
    event_id = _matched(service, "SLOW")
    clock.advance(5 * MINUTE)
    scheduler = SettlementScheduler(service, FakeOracle({"SLOW": "9"}, delay=1.0), settle_timeout_sec=0.05)

    report = asyncio.run(scheduler.run_once())

    assert report.failed == [event_id]
    assert service.get_event(event_id).status == "active"


@pytest.mark.parametrize("refund", [True, False])
def test_expired_unmatched_events(service, clock, refund):
    event = service.create_event("alice", "yes", price_target(asset="LONELY"), "25", "5m")
    clock.advance(5 * MINUTE)
    scheduler = SettlementScheduler(service, FakeOracle({}), refund_unmatched=refund)

    report = asyncio.run(scheduler.run_once())

    if refund:
        assert report.cancelled == [event.event_id]
        assert service.get_event(event.event_id).status == "cancelled"
        assert service.balance("alice") == D(1000)
    else:
        assert report.cancelled == []
        assert service.get_event(event.event_id).status == "pending_match"


def test_run_loop_stops(service):
    scheduler = SettlementScheduler(service, FakeOracle({}), interval_sec=0.01)

    async def main():
        stop = asyncio.Event()
        task = asyncio.create_task(scheduler.run(stop_event=stop))
        await asyncio.sleep(0.1)
        stop.set()
        await asyncio.wait_for(task, timeout=2)

    asyncio.run(main())
    assert scheduler.ticks >= 2
