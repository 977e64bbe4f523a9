"""Keyed locks: mutual exclusion, timeouts, cleanup."""

import threading

import pytest

from parimarket.engine import KeyedLocks, MarketLocks
from parimarket.errors import ConcurrencyTimeout


def test_lock_entries_are_dropped_after_release():
    locks = KeyedLocks("event")
    with locks.hold(1, timeout=1.0):
        assert len(locks) == 1
    assert len(locks) == 0


def test_wait_beyond_timeout_is_busy():
    locks = MarketLocks(timeout=0.05)
    held = threading.Event()
    release = threading.Event()

    def holder():
        with locks.event(7):
            held.set()
            release.wait(2)

    t = threading.Thread(target=holder)
    t.start()
    held.wait(2)
    try:
        with pytest.raises(ConcurrencyTimeout) as exc:
            with locks.event(7):
                pass
        assert exc.value.retryable
        assert exc.value.code == "busy"
        # other keys are not blocked
        with locks.event(8):
            pass
    finally:
        release.set()
        t.join()
    assert len(locks.events) == 0


def test_hold_many_orders_keys():
    locks = KeyedLocks("account")
    results = []

    def worker(keys):
        for _ in range(50):
            with locks.hold_many(keys, timeout=5.0):
                results.append(tuple(keys))

    threads = [threading.Thread(target=worker, args=(k,)) for k in (["a", "b"], ["b", "a"], ["b", "c", "a"])]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(results) == 150
    assert len(locks) == 0
