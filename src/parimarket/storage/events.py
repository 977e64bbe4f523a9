"""Event persistence. Callers hold the event lock for every mutating call."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any

from parimarket.models import Event, PriceTarget, TokenLaunch

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

    from parimarket.models import ResolutionParams

EVENT_COLUMNS = [
    "event_id",
    "kind",
    "platform",
    "contract_address",
    "chain",
    "target_price",
    "creator_id",
    "creator_side",
    "initial_stake",
    "yes_pool",
    "no_pool",
    "yes_odds",
    "no_odds",
    "total_yes_bets",
    "total_no_bets",
    "status",
    "deadline",
    "resolved_outcome",
    "settlement_price",
    "settle_attempts",
    "created_at",
    "matched_at",
    "settled_at",
]
_SELECT = f"SELECT {', '.join(EVENT_COLUMNS)} FROM events"


def _row_to_event(row: tuple[Any, ...]) -> Event:
    d = dict(zip(EVENT_COLUMNS, row))
    if d["kind"] == "token_launch":
        resolution: ResolutionParams = TokenLaunch(
            platform=d["platform"], contract_address=d["contract_address"], chain=d["chain"]
        )
    else:
        resolution = PriceTarget(
            target_price=d["target_price"], reference_asset=d["contract_address"], chain=d["chain"]
        )
    for key in ("kind", "platform", "contract_address", "chain", "target_price"):
        d.pop(key)
    return Event(resolution=resolution, **d)


def _filters(
    status: str | None = None,
    kind: str | None = None,
    creator_id: str | None = None,
) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    if status:
        clauses.append("status = ?")
        params.append(status)
    if kind:
        clauses.append("kind = ?")
        params.append(kind)
    if creator_id:
        clauses.append("creator_id = ?")
        params.append(creator_id)
    where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, params


def insert_event(
    conn: DuckDBPyConnection,
    resolution: ResolutionParams,
    creator_id: str,
    creator_side: str,
    stake: Decimal,
    yes_odds: Decimal,
    no_odds: Decimal,
    deadline: int,
    created_at: int,
) -> int:
    """Insert a pending_match event with the full stake on the creator's side. Returns event_id."""
    if isinstance(resolution, TokenLaunch):
        platform, address, target = resolution.platform, resolution.contract_address, None
    else:
        platform, address, target = None, resolution.reference_asset, resolution.target_price
    yes_pool = stake if creator_side == "yes" else Decimal("0")
    no_pool = stake if creator_side == "no" else Decimal("0")
    row = conn.execute(
        """
        INSERT INTO events (kind, platform, contract_address, chain, target_price, creator_id, creator_side,
                            initial_stake, yes_pool, no_pool, yes_odds, no_odds, total_yes_bets, total_no_bets,
                            status, deadline, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 'pending_match', ?, ?)
        RETURNING event_id
        """,
        [
            resolution.kind,
            platform,
            address,
            resolution.chain,
            target,
            creator_id,
            creator_side,
            stake,
            yes_pool,
            no_pool,
            yes_odds,
            no_odds,
            1 if creator_side == "yes" else 0,
            1 if creator_side == "no" else 0,
            deadline,
            created_at,
        ],
    ).fetchone()
    return int(row[0])


def get_event(conn: DuckDBPyConnection, event_id: int) -> Event | None:
    row = conn.execute(f"{_SELECT} WHERE event_id = ?", [event_id]).fetchone()
    return _row_to_event(row) if row else None


def list_events(
    conn: DuckDBPyConnection,
    status: str | None = None,
    kind: str | None = None,
    creator_id: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> list[Event]:
    """Newest first."""
    where, params = _filters(status, kind, creator_id)
    rows = conn.execute(
        f"{_SELECT}{where} ORDER BY created_at DESC, event_id DESC LIMIT ? OFFSET ?",
        params + [limit, offset],
    ).fetchall()
    return [_row_to_event(r) for r in rows]


def count_events(
    conn: DuckDBPyConnection,
    status: str | None = None,
    kind: str | None = None,
    creator_id: str | None = None,
) -> int:
    where, params = _filters(status, kind, creator_id)
    return int(conn.execute(f"SELECT COUNT(*) FROM events{where}", params).fetchone()[0])


def list_due_events(conn: DuckDBPyConnection, status: str, now_ms: int) -> list[Event]:
    """Events in `status` whose deadline has passed, oldest deadline first."""
    rows = conn.execute(
        f"{_SELECT} WHERE status = ? AND deadline <= ? ORDER BY deadline ASC, event_id ASC",
        [status, now_ms],
    ).fetchall()
    return [_row_to_event(r) for r in rows]


def add_stake(conn: DuckDBPyConnection, event_id: int, side: str, amount: Decimal) -> tuple[Decimal, Decimal]:
    """Add amount to one side's pool and bump its counter. Returns the new (yes_pool, no_pool)."""
    pool_col, counter_col = ("yes_pool", "total_yes_bets") if side == "yes" else ("no_pool", "total_no_bets")
    row = conn.execute(
        f"""
        UPDATE events SET {pool_col} = {pool_col} + ?, {counter_col} = {counter_col} + 1
        WHERE event_id = ?
        RETURNING yes_pool, no_pool
        """,
        [amount, event_id],
    ).fetchone()
    return row[0], row[1]


def set_odds(
    conn: DuckDBPyConnection,
    event_id: int,
    yes_odds: Decimal,
    no_odds: Decimal,
) -> None:
    conn.execute(
        "UPDATE events SET yes_odds = ?, no_odds = ? WHERE event_id = ?",
        [yes_odds, no_odds, event_id],
    )


def mark_active(conn: DuckDBPyConnection, event_id: int, matched_at: int) -> None:
    conn.execute(
        "UPDATE events SET status = 'active', matched_at = ? WHERE event_id = ? AND status = 'pending_match'",
        [matched_at, event_id],
    )


def mark_settled(
    conn: DuckDBPyConnection,
    event_id: int,
    outcome: bool,
    settled_at: int,
    settlement_price: Decimal | None = None,
) -> None:
    conn.execute(
        """
        UPDATE events SET status = 'settled', resolved_outcome = ?, settlement_price = ?, settled_at = ?
        WHERE event_id = ?
        """,
        [outcome, settlement_price, settled_at, event_id],
    )


def mark_cancelled(conn: DuckDBPyConnection, event_id: int, settled_at: int) -> None:
    conn.execute(
        "UPDATE events SET status = 'cancelled', settled_at = ? WHERE event_id = ?",
        [settled_at, event_id],
    )


def reset_pools(conn: DuckDBPyConnection, event_id: int, yes_odds: Decimal, no_odds: Decimal) -> None:
    """Zero both pools after every stake was refunded."""
    conn.execute(
        "UPDATE events SET yes_pool = 0, no_pool = 0, yes_odds = ?, no_odds = ? WHERE event_id = ?",
        [yes_odds, no_odds, event_id],
    )


def increment_settle_attempts(conn: DuckDBPyConnection, event_id: int) -> int:
    row = conn.execute(
        "UPDATE events SET settle_attempts = settle_attempts + 1 WHERE event_id = ? RETURNING settle_attempts",
        [event_id],
    ).fetchone()
    return int(row[0])


def mark_review(conn: DuckDBPyConnection, event_id: int) -> None:
    conn.execute("UPDATE events SET status = 'review' WHERE event_id = ? AND status = 'active'", [event_id])


def terminal_event_ids(conn: DuckDBPyConnection, before_ms: int | None = None) -> list[int]:
    """Settled or cancelled events, optionally closed before before_ms."""
    sql = "SELECT event_id FROM events WHERE status IN ('settled', 'cancelled')"
    params: list[Any] = []
    if before_ms is not None:
        sql += " AND settled_at < ?"
        params.append(before_ms)
    return [int(r[0]) for r in conn.execute(sql + " ORDER BY event_id", params).fetchall()]


def delete_events(conn: DuckDBPyConnection, event_ids: list[int]) -> None:
    """Delete events with their bets, buy points and odds samples."""
    if not event_ids:
        return
    placeholders = ",".join("?" for _ in event_ids)
    for table in ("odds_samples", "buy_points", "bets", "events"):
        conn.execute(f"DELETE FROM {table} WHERE event_id IN ({placeholders})", event_ids)
