"""Subscription registry and broadcaster."""

import asyncio
import json
from decimal import Decimal

from conftest import T0, launch
from parimarket.models import OddsSnapshot
from parimarket.realtime import Broadcaster, SubscriptionRegistry


class FakeSubscriber:
    def __init__(self, is_open=True, fail=False):
        self.is_open = is_open
        self.fail = fail
        self.messages = []

    async def send(self, message):
        if self.fail:
            raise ConnectionError("peer went away")
        self.messages.append(json.loads(message))


def _snapshot(event_id):
    return OddsSnapshot(
        event_id=event_id,
        status="active",
        yes_odds=Decimal("33.33"),
        no_odds=Decimal("66.67"),
        yes_pool=Decimal(100),
        no_pool=Decimal(50),
        total_yes_bets=1,
        total_no_bets=1,
        timestamp=T0,
    )


def test_unsubscribe_drops_empty_event():
    registry = SubscriptionRegistry()
    a, b = FakeSubscriber(), FakeSubscriber()
    registry.subscribe(1, a)
    registry.subscribe(1, b)
    registry.subscribe(2, a)
    assert registry.count(1) == 2
    assert registry.count() == 3
    registry.unsubscribe(1, a)
    registry.unsubscribe(1, b)
    assert registry.event_ids() == [2]
    registry.unsubscribe(1, b)  # already gone
    assert registry.count(1) == 0


def test_broadcast_skips_closed_and_failing_subscribers():
    registry = SubscriptionRegistry()
    live, closed, broken = FakeSubscriber(), FakeSubscriber(is_open=False), FakeSubscriber(fail=True)
    for sub in (live, closed, broken):
        registry.subscribe(5, sub)
    broadcaster = Broadcaster(registry, snapshot_fn=_snapshot)

    sent = asyncio.run(broadcaster.broadcast(5))

    assert sent == 1
    assert closed.messages == []
    [msg] = live.messages
    assert msg["type"] == "odds_update"
    assert msg["data"]["event_id"] == 5
    assert msg["data"]["yes_odds"] == "33.33"


def test_broadcast_without_subscribers_does_not_snapshot():
    calls = []
    broadcaster = Broadcaster(SubscriptionRegistry(), snapshot_fn=lambda eid: calls.append(eid))
    assert asyncio.run(broadcaster.broadcast(1)) == 0
    assert calls == []


def test_notify_from_worker_thread():
    async def main():
        registry = SubscriptionRegistry()
        sub = FakeSubscriber()
        registry.subscribe(3, sub)
        broadcaster = Broadcaster(registry, snapshot_fn=_snapshot, loop=asyncio.get_running_loop())
        await asyncio.to_thread(broadcaster.notify, 3)
        for _ in range(100):
            if sub.messages:
                break
            await asyncio.sleep(0.01)
        return sub.messages

    messages = asyncio.run(main())
    assert [m["type"] for m in messages] == ["odds_update"]


def test_notify_without_loop_is_a_no_op():
    registry = SubscriptionRegistry()
    registry.subscribe(1, FakeSubscriber())
    Broadcaster(registry, snapshot_fn=_snapshot).notify(1)


def test_service_pushes_bet_and_snapshot(db, clock):
    from parimarket.engine import MarketService

    async def main():
        registry = SubscriptionRegistry()
        broadcaster = Broadcaster(registry, loop=asyncio.get_running_loop())
        service = MarketService(db, clock=clock, broadcaster=broadcaster)
        assert broadcaster.snapshot_fn == service.snapshot
        service.deposit("alice", "100")
        service.deposit("bob", "100")
        service.register_coin(launch()["contract_address"], "MEME")
        event = service.create_event("alice", "yes", launch(), "10", "1h")
        sub = FakeSubscriber()
        registry.subscribe(event.event_id, sub)
        await asyncio.to_thread(service.place_bet, "bob", event.event_id, "no", "10")
        for _ in range(100):
            if len(sub.messages) >= 2:
                break
            await asyncio.sleep(0.01)
        return sub.messages

    messages = asyncio.run(main())
    assert [m["type"] for m in messages] == ["bet_placed", "odds_update"]
    assert messages[0]["data"]["side"] == "no"
    assert messages[0]["data"]["odds_at_bet"] == "50.00"
    assert messages[1]["data"]["status"] == "active"
