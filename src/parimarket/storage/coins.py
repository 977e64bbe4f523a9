"""Known-coin registry persistence."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from parimarket.models import Coin

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

COIN_COLUMNS = ["contract_address", "symbol", "name", "chain", "is_active", "created_at"]


def upsert_coin(conn: DuckDBPyConnection, coin: Coin) -> None:
    """Insert or replace a coin in the registry."""
    conn.execute(
        """
        INSERT INTO coins (contract_address, symbol, name, chain, is_active, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT (contract_address) DO UPDATE SET
            symbol = excluded.symbol,
            name = excluded.name,
            chain = excluded.chain,
            is_active = excluded.is_active
        """,
        [
            coin.contract_address,
            coin.symbol,
            coin.name,
            coin.chain,
            coin.is_active,
            coin.created_at or int(time.time() * 1000),
        ],
    )


def get_coin(conn: DuckDBPyConnection, contract_address: str) -> Coin | None:
    row = conn.execute(
        f"SELECT {', '.join(COIN_COLUMNS)} FROM coins WHERE contract_address = ?",
        [contract_address],
    ).fetchone()
    return Coin(**dict(zip(COIN_COLUMNS, row))) if row else None


def list_coins(conn: DuckDBPyConnection, active_only: bool = False, chain: str | None = None) -> list[Coin]:
    sql = f"SELECT {', '.join(COIN_COLUMNS)} FROM coins WHERE 1=1"
    params: list[object] = []
    if active_only:
        sql += " AND is_active = true"
    if chain:
        sql += " AND chain = ?"
        params.append(chain)
    rows = conn.execute(sql + " ORDER BY symbol", params).fetchall()
    return [Coin(**dict(zip(COIN_COLUMNS, r))) for r in rows]
