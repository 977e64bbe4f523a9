"""Odds time-series recorder - folds every pool change into per-interval OHLC buckets."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from parimarket.errors import PersistenceFailure, ValidationError
from parimarket.models import INTERVAL_MS, Event, OddsSample, bucket_start
from parimarket.storage import klines

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

    from parimarket.storage import Database

log = structlog.get_logger(__name__)


def validate_interval(interval: str) -> str:
    if interval not in INTERVAL_MS:
        raise ValidationError(f"unknown interval {interval!r}; expected one of {', '.join(INTERVAL_MS)}")
    return interval


def fold_sample(
    event: Event,
    interval: str,
    now_ms: int,
    current: OddsSample | None,
    previous: OddsSample | None,
) -> OddsSample:
    """
    Apply the event's current odds to the bucket containing now_ms.

    `current` is the existing sample for that bucket, if any. A new bucket opens
    at the previous bucket's close, or at the current odds for the first sample.
    """
    yes, no = event.yes_odds, event.no_odds
    if current is not None:
        return current.model_copy(
            update={
                "high_yes": max(current.high_yes, yes),
                "low_yes": min(current.low_yes, yes),
                "close_yes": yes,
                "high_no": max(current.high_no, no),
                "low_no": min(current.low_no, no),
                "close_no": no,
                "yes_pool": event.yes_pool,
                "no_pool": event.no_pool,
                "bet_count": event.bet_count,
                "updated_at": now_ms,
            }
        )
    open_yes = previous.close_yes if previous is not None else yes
    open_no = previous.close_no if previous is not None else no
    return OddsSample(
        event_id=event.event_id,
        interval=interval,
        bucket_start=bucket_start(now_ms, interval),
        open_yes=open_yes,
        high_yes=max(open_yes, yes),
        low_yes=min(open_yes, yes),
        close_yes=yes,
        open_no=open_no,
        high_no=max(open_no, no),
        low_no=min(open_no, no),
        close_no=no,
        yes_pool=event.yes_pool,
        no_pool=event.no_pool,
        bet_count=event.bet_count,
        updated_at=now_ms,
    )


class OddsRecorder:
    """
    Owns the odds_samples table; never touches events or bets.

    Recording is best-effort: a storage failure is logged and swallowed so it
    cannot fail the bet or settlement that triggered it. Callers hold the
    event lock, so samples of one event are applied in commit order.
    """

    def __init__(self, db: Database, intervals: list[str] | None = None) -> None:
        self.db = db
        self.intervals = [validate_interval(i) for i in (intervals or list(INTERVAL_MS))]

    def record(self, event: Event, now_ms: int) -> None:
        try:
            with self.db.transaction() as tx:
                for interval in self.intervals:
                    self._record_one(tx, event, interval, now_ms)
        except PersistenceFailure as e:
            log.warning("odds_sample_failed", event_id=event.event_id, error=str(e))

    def _record_one(self, conn: DuckDBPyConnection, event: Event, interval: str, now_ms: int) -> None:
        start = bucket_start(now_ms, interval)
        current = klines.get_sample(conn, event.event_id, interval, start)
        previous = None if current is not None else klines.latest_sample_before(conn, event.event_id, interval, start)
        sample = fold_sample(event, interval, now_ms, current, previous)
        if current is None:
            klines.insert_sample(conn, sample)
        else:
            klines.update_sample(conn, sample)

    def history(
        self,
        event_id: int,
        interval: str,
        start_ms: int | None = None,
        end_ms: int | None = None,
        limit: int | None = None,
    ) -> list[OddsSample]:
        validate_interval(interval)
        if limit is not None and limit <= 0:
            raise ValidationError("limit must be positive")
        with self.db.read() as conn:
            return klines.list_samples(conn, event_id, interval, start_ms=start_ms, end_ms=end_ms, limit=limit)
