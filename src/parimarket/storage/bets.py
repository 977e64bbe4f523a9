"""Bet and buy-point persistence."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any

from parimarket.models import Bet, BuyPoint

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

BET_COLUMNS = [
    "bet_id",
    "event_id",
    "user_id",
    "side",
    "amount",
    "odds_at_placement",
    "potential_payout",
    "status",
    "payout",
    "created_at",
    "settled_at",
]
_SELECT = f"SELECT {', '.join(BET_COLUMNS)} FROM bets"

BUY_POINT_COLUMNS = [
    "bet_id",
    "event_id",
    "user_id",
    "side",
    "amount",
    "yes_odds_at_bet",
    "no_odds_at_bet",
    "created_at",
]


def _row_to_bet(row: tuple[Any, ...]) -> Bet:
    return Bet(**dict(zip(BET_COLUMNS, row)))


def insert_bet(
    conn: DuckDBPyConnection,
    event_id: int,
    user_id: str,
    side: str,
    amount: Decimal,
    odds_at_placement: Decimal,
    potential_payout: Decimal,
    created_at: int,
) -> Bet:
    row = conn.execute(
        f"""
        INSERT INTO bets (event_id, user_id, side, amount, odds_at_placement, potential_payout, status, created_at)
        VALUES (?, ?, ?, ?, ?, ?, 'pending', ?)
        RETURNING {', '.join(BET_COLUMNS)}
        """,
        [event_id, user_id, side, amount, odds_at_placement, potential_payout, created_at],
    ).fetchone()
    return _row_to_bet(row)


def list_bets(
    conn: DuckDBPyConnection,
    user_id: str | None = None,
    event_id: int | None = None,
    status: str | None = None,
    limit: int | None = 20,
    offset: int = 0,
) -> list[Bet]:
    """Newest first. limit=None returns every match."""
    clauses: list[str] = []
    params: list[Any] = []
    if user_id:
        clauses.append("user_id = ?")
        params.append(user_id)
    if event_id is not None:
        clauses.append("event_id = ?")
        params.append(event_id)
    if status:
        clauses.append("status = ?")
        params.append(status)
    where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
    sql = f"{_SELECT}{where} ORDER BY created_at DESC, bet_id DESC"
    if limit is not None:
        sql += " LIMIT ? OFFSET ?"
        params += [limit, offset]
    return [_row_to_bet(r) for r in conn.execute(sql, params).fetchall()]


def pending_bets(conn: DuckDBPyConnection, event_id: int) -> list[Bet]:
    """Pending bets of one event in placement order."""
    rows = conn.execute(
        f"{_SELECT} WHERE event_id = ? AND status = 'pending' ORDER BY bet_id",
        [event_id],
    ).fetchall()
    return [_row_to_bet(r) for r in rows]


def mark_won(conn: DuckDBPyConnection, bet_id: int, payout: Decimal, settled_at: int) -> None:
    conn.execute(
        "UPDATE bets SET status = 'won', payout = ?, settled_at = ? WHERE bet_id = ? AND status = 'pending'",
        [payout, settled_at, bet_id],
    )


def mark_refunded(conn: DuckDBPyConnection, bet_id: int, settled_at: int) -> None:
    conn.execute(
        "UPDATE bets SET status = 'refunded', settled_at = ? WHERE bet_id = ? AND status = 'pending'",
        [settled_at, bet_id],
    )


def mark_pending_lost(conn: DuckDBPyConnection, event_id: int, settled_at: int) -> int:
    """Mark the remaining pending bets of an event as lost. Returns the number updated."""
    rows = conn.execute(
        "UPDATE bets SET status = 'lost', settled_at = ? WHERE event_id = ? AND status = 'pending' RETURNING bet_id",
        [settled_at, event_id],
    ).fetchall()
    return len(rows)


def staked_total(conn: DuckDBPyConnection, event_id: int) -> Decimal:
    """Sum of every non-refunded stake on the event; equals yes_pool + no_pool."""
    row = conn.execute(
        "SELECT COALESCE(SUM(amount), 0) FROM bets WHERE event_id = ? AND status != 'refunded'",
        [event_id],
    ).fetchone()
    return Decimal(row[0])


def insert_buy_point(
    conn: DuckDBPyConnection,
    bet: Bet,
    yes_odds: Decimal,
    no_odds: Decimal,
) -> None:
    conn.execute(
        """
        INSERT INTO buy_points (bet_id, event_id, user_id, side, amount, yes_odds_at_bet, no_odds_at_bet, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        [bet.bet_id, bet.event_id, bet.user_id, bet.side, bet.amount, yes_odds, no_odds, bet.created_at],
    )


def list_buy_points(conn: DuckDBPyConnection, event_id: int, user_id: str | None = None) -> list[BuyPoint]:
    """Oldest first."""
    sql = f"SELECT {', '.join(BUY_POINT_COLUMNS)} FROM buy_points WHERE event_id = ?"
    params: list[Any] = [event_id]
    if user_id:
        sql += " AND user_id = ?"
        params.append(user_id)
    rows = conn.execute(sql + " ORDER BY created_at ASC, bet_id ASC", params).fetchall()
    return [BuyPoint(**dict(zip(BUY_POINT_COLUMNS, r))) for r in rows]
