"""In-process exclusive locks keyed by event id and ledger account."""

from __future__ import annotations

import threading
import time
from contextlib import AbstractContextManager, ExitStack, contextmanager
from typing import Hashable, Iterable, Iterator

from parimarket.errors import ConcurrencyTimeout


class _Entry:
    __slots__ = ("lock", "refs")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.refs = 0


class KeyedLocks:
    """
    One blocking mutex per key, created on demand and dropped once no thread holds or waits on it.

    A wait longer than `timeout` seconds raises ConcurrencyTimeout.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._guard = threading.Lock()
        self._entries: dict[Hashable, _Entry] = {}

    def _checkout(self, key: Hashable) -> _Entry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.refs += 1
            return entry

    def _checkin(self, key: Hashable, entry: _Entry) -> None:
        with self._guard:
            entry.refs -= 1
            if entry.refs == 0:
                self._entries.pop(key, None)

    @contextmanager
    def hold(self, key: Hashable, timeout: float) -> Iterator[None]:
        entry = self._checkout(key)
        if not entry.lock.acquire(timeout=max(timeout, 0)):
            self._checkin(key, entry)
            raise ConcurrencyTimeout(f"timed out after {timeout:.1f}s waiting for {self.name} {key}")
        try:
            yield
        finally:
            entry.lock.release()
            self._checkin(key, entry)

    @contextmanager
    def hold_many(self, keys: Iterable[Hashable], timeout: float) -> Iterator[None]:
        """Acquire every key in sorted order within one overall timeout."""
        deadline = time.monotonic() + timeout
        with ExitStack() as stack:
            for key in sorted(set(keys)):
                stack.enter_context(self.hold(key, deadline - time.monotonic()))
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


class MarketLocks:
    """
    Event locks serialize every mutation of one event and its bets.

    Account locks are taken after the event lock, so no transaction waits on
    an event while holding an account.
    """

    def __init__(self, timeout: float = 10.0) -> None:
        self.timeout = timeout
        self.events = KeyedLocks("event")
        self.accounts = KeyedLocks("account")

    def event(self, event_id: int) -> AbstractContextManager[None]:
        return self.events.hold(event_id, self.timeout)

    def accounts_for(self, user_ids: Iterable[str]) -> AbstractContextManager[None]:
        return self.accounts.hold_many(user_ids, self.timeout)
