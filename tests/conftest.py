"""Shared fixtures: in-memory market database, controllable clock, funded users."""

from __future__ import annotations

import pytest

from parimarket.engine import MarketService
from parimarket.storage import Database

# Aligned to a 1m bucket boundary
T0 = 1_699_999_980_000
MINUTE = 60_000
COIN = "MemeCoin1111111111111111111111111111111pump"
USERS = ("alice", "bob", "carol", "dave")


class FakeClock:
    """Callable epoch-ms clock that only moves when told to."""

    def __init__(self, now: int = T0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


def launch(address: str = COIN, platform: str = "pumpfun") -> dict:
    return {"kind": "token_launch", "platform": platform, "contract_address": address}


def price_target(asset: str = "RefAsset", target: str = "1.5") -> dict:
    return {"kind": "price_target", "target_price": target, "reference_asset": asset}


@pytest.fixture
def db():
    database = Database.open(":memory:")
    yield database
    database.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(db, clock):
    svc = MarketService(db, clock=clock, lock_timeout_sec=5.0, max_oracle_attempts=3)
    for user in USERS:
        svc.deposit(user, "1000")
    svc.register_coin(COIN, "MEME", "Meme Coin")
    return svc
