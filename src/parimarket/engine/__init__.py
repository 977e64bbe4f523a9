"""Event lifecycle engine: per-event locking and the transactional market service."""

from parimarket.engine.locks import KeyedLocks, MarketLocks
from parimarket.engine.service import MarketService, now_ms, parse_resolution, parse_side

__all__ = ["KeyedLocks", "MarketLocks", "MarketService", "now_ms", "parse_resolution", "parse_side"]
