"""Ledger gateway: spendable balances debited and credited inside the caller's transaction."""

from __future__ import annotations

import time
from decimal import Decimal
from typing import TYPE_CHECKING, Protocol

from parimarket.errors import InsufficientFunds

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


class LedgerGateway(Protocol):
    """Balance capability consumed by the market engine. `conn` is the open transaction."""

    def debit(self, conn: DuckDBPyConnection, user_id: str, amount: Decimal) -> Decimal: ...
    def credit(self, conn: DuckDBPyConnection, user_id: str, amount: Decimal) -> Decimal: ...
    def balance(self, conn: DuckDBPyConnection, user_id: str) -> Decimal: ...


class DuckDBLedger:
    """Reference ledger on the `balances` table of the market database."""

    def debit(self, conn: DuckDBPyConnection, user_id: str, amount: Decimal) -> Decimal:
        """Debit if sufficient, else raise InsufficientFunds. Returns the new balance."""
        row = conn.execute(
            """
            UPDATE balances SET balance = balance - ?, updated_at = ?
            WHERE user_id = ? AND balance >= ?
            RETURNING balance
            """,
            [amount, _now_ms(), user_id, amount],
        ).fetchone()
        if row is None:
            raise InsufficientFunds(f"insufficient balance for {user_id} to stake {amount}")
        return row[0]

    def credit(self, conn: DuckDBPyConnection, user_id: str, amount: Decimal) -> Decimal:
        """Credit amount, opening the account if needed. Returns the new balance."""
        now = _now_ms()
        row = conn.execute(
            "UPDATE balances SET balance = balance + ?, updated_at = ? WHERE user_id = ? RETURNING balance",
            [amount, now, user_id],
        ).fetchone()
        if row is not None:
            return row[0]
        conn.execute(
            "INSERT INTO balances (user_id, balance, updated_at) VALUES (?, ?, ?)",
            [user_id, amount, now],
        )
        return amount

    def balance(self, conn: DuckDBPyConnection, user_id: str) -> Decimal:
        row = conn.execute("SELECT balance FROM balances WHERE user_id = ?", [user_id]).fetchone()
        return row[0] if row else Decimal("0")


def _now_ms() -> int:
    return int(time.time() * 1000)
