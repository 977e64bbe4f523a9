"""Settlement scheduler - periodic sweep of expired events."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from parimarket.errors import MarketError, OracleIndeterminate

if TYPE_CHECKING:
    from parimarket.config import Settings
    from parimarket.engine import MarketService
    from parimarket.oracle import Oracle

log = structlog.get_logger(__name__)


@dataclass
class TickReport:
    """Event ids by outcome of one sweep."""

    settled: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    cancelled: list[int] = field(default_factory=list)

    def as_dict(self) -> dict[str, list[int]]:
        return {
            "settled": self.settled,
            "skipped": self.skipped,
            "failed": self.failed,
            "cancelled": self.cancelled,
        }


class SettlementScheduler:
    """
    Each tick settles every active event past its deadline via the oracle.

    Events are settled independently, at most `max_concurrency` at once and
    each within `settle_timeout_sec`; a failure leaves the event active for the
    next tick. Expired events that never matched are cancelled and refunded
    when `refund_unmatched` is on.
    """

    def __init__(
        self,
        service: MarketService,
        oracle: Oracle,
        *,
        interval_sec: float = 60.0,
        settle_timeout_sec: float = 30.0,
        max_concurrency: int = 4,
        refund_unmatched: bool = True,
    ) -> None:
        self.service = service
        self.oracle = oracle
        self.interval_sec = interval_sec
        self.settle_timeout_sec = settle_timeout_sec
        self.max_concurrency = max(1, max_concurrency)
        self.refund_unmatched = refund_unmatched
        self.ticks = 0

    @classmethod
    def from_settings(cls, service: MarketService, oracle: Oracle, settings: Settings) -> SettlementScheduler:
        return cls(
            service,
            oracle,
            interval_sec=settings.scheduler_interval_sec,
            settle_timeout_sec=settings.settle_timeout_sec,
            max_concurrency=settings.scheduler_max_concurrency,
            refund_unmatched=settings.refund_unmatched,
        )

    async def _settle_one(self, event_id: int, sem: asyncio.Semaphore, report: TickReport) -> None:
        async with sem:
            try:
                event = await asyncio.wait_for(
                    self.service.resolve_and_settle(event_id, self.oracle),
                    timeout=self.settle_timeout_sec,
                )
            except OracleIndeterminate as e:
                log.info("settlement_skipped", event_id=event_id, reason=e.message)
                report.skipped.append(event_id)
                return
            except TimeoutError:
                log.warning("settlement_timeout", event_id=event_id, timeout_sec=self.settle_timeout_sec)
                report.failed.append(event_id)
                await self._count_failure(event_id)
                return
            except MarketError as e:
                log.warning("settlement_failed", event_id=event_id, code=e.code, error=e.message)
                report.failed.append(event_id)
                return
            except Exception as e:
                log.error("settlement_failed", event_id=event_id, error=str(e), exc_info=True)
                report.failed.append(event_id)
                await self._count_failure(event_id)
                return
            if event.status == "settled":
                report.settled.append(event_id)
            else:
                report.skipped.append(event_id)

    async def _count_failure(self, event_id: int) -> None:
        try:
            await asyncio.to_thread(self.service.record_failed_attempt, event_id)
        except MarketError as e:
            log.warning("attempt_not_recorded", event_id=event_id, error=e.message)

    async def _cancel_one(self, event_id: int, report: TickReport) -> None:
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self.service.cancel_event, event_id),
                timeout=self.settle_timeout_sec,
            )
        except (MarketError, TimeoutError) as e:
            log.warning("unmatched_cancel_failed", event_id=event_id, error=str(e))
            report.failed.append(event_id)
            return
        report.cancelled.append(event_id)

    async def run_once(self) -> TickReport:
        """One sweep. Never raises for a single event's failure."""
        self.ticks += 1
        report = TickReport()
        start = time.monotonic()
        due = await asyncio.to_thread(self.service.due_events)
        sem = asyncio.Semaphore(self.max_concurrency)
        await asyncio.gather(*(self._settle_one(e.event_id, sem, report) for e in due))
        if self.refund_unmatched:
            unmatched = await asyncio.to_thread(self.service.expired_unmatched)
            for event in unmatched:
                await self._cancel_one(event.event_id, report)
        log.info(
            "settlement_tick",
            tick=self.ticks,
            due=len(due),
            settled=len(report.settled),
            skipped=len(report.skipped),
            failed=len(report.failed),
            cancelled=len(report.cancelled),
            elapsed_ms=round((time.monotonic() - start) * 1000, 1),
        )
        return report

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """Tick every interval_sec until stop_event is set."""
        stop = stop_event or asyncio.Event()
        log.info("scheduler_started", interval_sec=self.interval_sec)
        while not stop.is_set():
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except MarketError as e:
                # due-event query failed; try again next tick
                log.warning("settlement_tick_failed", code=e.code, error=e.message)
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.interval_sec)
            except TimeoutError:
                pass
        log.info("scheduler_stopped", ticks=self.ticks)
