"""Background settlement of expired events."""

from parimarket.scheduler.settlement import SettlementScheduler, TickReport

__all__ = ["SettlementScheduler", "TickReport"]
