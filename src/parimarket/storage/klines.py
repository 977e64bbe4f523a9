"""Odds sample (kline) persistence."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from parimarket.models import OddsSample

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

SAMPLE_COLUMNS = [
    "event_id",
    "kline_interval",
    "bucket_start",
    "open_yes",
    "high_yes",
    "low_yes",
    "close_yes",
    "open_no",
    "high_no",
    "low_no",
    "close_no",
    "yes_pool",
    "no_pool",
    "bet_count",
    "updated_at",
]
_SELECT = f"SELECT {', '.join(SAMPLE_COLUMNS)} FROM odds_samples"


def _row_to_sample(row: tuple[Any, ...]) -> OddsSample:
    d = dict(zip(SAMPLE_COLUMNS, row))
    d["interval"] = d.pop("kline_interval")
    return OddsSample(**d)


def get_sample(conn: DuckDBPyConnection, event_id: int, interval: str, bucket_start: int) -> OddsSample | None:
    row = conn.execute(
        f"{_SELECT} WHERE event_id = ? AND kline_interval = ? AND bucket_start = ?",
        [event_id, interval, bucket_start],
    ).fetchone()
    return _row_to_sample(row) if row else None


def latest_sample_before(
    conn: DuckDBPyConnection, event_id: int, interval: str, bucket_start: int
) -> OddsSample | None:
    row = conn.execute(
        f"{_SELECT} WHERE event_id = ? AND kline_interval = ? AND bucket_start < ? ORDER BY bucket_start DESC LIMIT 1",
        [event_id, interval, bucket_start],
    ).fetchone()
    return _row_to_sample(row) if row else None


def insert_sample(conn: DuckDBPyConnection, sample: OddsSample) -> None:
    d = sample.model_dump()
    d["kline_interval"] = d.pop("interval")
    conn.execute(
        f"INSERT INTO odds_samples ({', '.join(SAMPLE_COLUMNS)}) VALUES ({', '.join('?' for _ in SAMPLE_COLUMNS)})",
        [d[c] for c in SAMPLE_COLUMNS],
    )


def update_sample(conn: DuckDBPyConnection, sample: OddsSample) -> None:
    """Rewrite high/low/close, pools and bet count of an open bucket."""
    conn.execute(
        """
        UPDATE odds_samples SET high_yes = ?, low_yes = ?, close_yes = ?, high_no = ?, low_no = ?, close_no = ?,
                                yes_pool = ?, no_pool = ?, bet_count = ?, updated_at = ?
        WHERE event_id = ? AND kline_interval = ? AND bucket_start = ?
        """,
        [
            sample.high_yes,
            sample.low_yes,
            sample.close_yes,
            sample.high_no,
            sample.low_no,
            sample.close_no,
            sample.yes_pool,
            sample.no_pool,
            sample.bet_count,
            sample.updated_at,
            sample.event_id,
            sample.interval,
            sample.bucket_start,
        ],
    )


def list_samples(
    conn: DuckDBPyConnection,
    event_id: int,
    interval: str,
    start_ms: int | None = None,
    end_ms: int | None = None,
    limit: int | None = None,
) -> list[OddsSample]:
    """Samples in [start_ms, end_ms) ascending; with limit, the most recent `limit` of them."""
    sql = f"{_SELECT} WHERE event_id = ? AND kline_interval = ?"
    params: list[Any] = [event_id, interval]
    if start_ms is not None:
        sql += " AND bucket_start >= ?"
        params.append(start_ms)
    if end_ms is not None:
        sql += " AND bucket_start < ?"
        params.append(end_ms)
    sql += " ORDER BY bucket_start DESC"
    if limit is not None:
        sql += " LIMIT ?"
        params.append(limit)
    rows = conn.execute(sql, params).fetchall()
    return [_row_to_sample(r) for r in reversed(rows)]
