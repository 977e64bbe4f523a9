"""Live odds feed: per-event subscriber registry and fire-and-forget broadcast."""

from __future__ import annotations

import asyncio
import json
import threading
from typing import Any, Callable, Protocol

import structlog

from parimarket.models import Bet, OddsSnapshot

log = structlog.get_logger(__name__)


class Subscriber(Protocol):
    """A live connection. FastAPI WebSockets are adapted to this in the API layer."""

    @property
    def is_open(self) -> bool: ...

    async def send(self, message: str) -> None: ...


def snapshot_message(snapshot: OddsSnapshot, msg_type: str = "odds_update") -> str:
    return json.dumps({"type": msg_type, "data": snapshot.model_dump(mode="json")})


def bet_message(bet: Bet) -> str:
    return json.dumps(
        {
            "type": "bet_placed",
            "data": {
                "event_id": bet.event_id,
                "side": bet.side,
                "amount": str(bet.amount),
                "odds_at_bet": str(bet.odds_at_placement),
                "timestamp": bet.created_at,
            },
        }
    )


class SubscriptionRegistry:
    """Event id -> set of live subscribers. One per process, shared by the API and the broadcaster."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subs: dict[int, set[Subscriber]] = {}

    def subscribe(self, event_id: int, sub: Subscriber) -> None:
        with self._lock:
            self._subs.setdefault(event_id, set()).add(sub)

    def unsubscribe(self, event_id: int, sub: Subscriber) -> None:
        with self._lock:
            subs = self._subs.get(event_id)
            if subs is None:
                return
            subs.discard(sub)
            if not subs:
                del self._subs[event_id]

    def subscribers(self, event_id: int) -> list[Subscriber]:
        with self._lock:
            return list(self._subs.get(event_id, ()))

    def count(self, event_id: int | None = None) -> int:
        with self._lock:
            if event_id is not None:
                return len(self._subs.get(event_id, ()))
            return sum(len(s) for s in self._subs.values())

    def event_ids(self) -> list[int]:
        with self._lock:
            return list(self._subs)


class Broadcaster:
    """
    Pushes odds snapshots and bet notices to an event's subscribers.

    `notify` may be called from any thread (request handlers run in a worker
    pool); it schedules the push on the bound event loop and returns at once.
    Send failures are logged and never reach the caller.
    """

    def __init__(
        self,
        registry: SubscriptionRegistry,
        snapshot_fn: Callable[[int], OddsSnapshot | None] | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.registry = registry
        self.snapshot_fn = snapshot_fn
        self._loop = loop

    async def _send_all(self, event_id: int, message: str) -> int:
        sent = 0
        for sub in self.registry.subscribers(event_id):
            if not sub.is_open:
                continue
            try:
                await sub.send(message)
                sent += 1
            except Exception as e:
                log.warning("broadcast_failed", event_id=event_id, error=str(e))
        return sent

    async def broadcast(self, event_id: int) -> int:
        """Send the current snapshot to every open subscriber. Returns the number reached."""
        if self.snapshot_fn is None or not self.registry.count(event_id):
            return 0
        snapshot = await asyncio.to_thread(self.snapshot_fn, event_id)
        if snapshot is None:
            return 0
        return await self._send_all(event_id, snapshot_message(snapshot))

    async def broadcast_bet(self, bet: Bet) -> int:
        return await self._send_all(bet.event_id, bet_message(bet))

    async def _publish(self, event_id: int, bet: Bet | None) -> None:
        try:
            if bet is not None:
                await self.broadcast_bet(bet)
            await self.broadcast(event_id)
        except Exception as e:
            log.warning("broadcast_failed", event_id=event_id, error=str(e))

    def notify(self, event_id: int, bet: Bet | None = None) -> None:
        """Schedule a push without waiting for it."""
        loop = self._loop
        if loop is None or loop.is_closed() or not self.registry.count(event_id):
            return
        try:
            running: Any = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            loop.create_task(self._publish(event_id, bet))
        else:
            asyncio.run_coroutine_threadsafe(self._publish(event_id, bet), loop)
