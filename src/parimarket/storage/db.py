"""DuckDB connection, schema init and transaction scoping."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterator

import duckdb
import structlog

from parimarket.errors import PersistenceFailure

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)

SCHEMA_SQL = """
-- Sequences for auto-increment IDs
CREATE SEQUENCE IF NOT EXISTS event_seq START 1;
CREATE SEQUENCE IF NOT EXISTS bet_seq START 1;

-- Markets. contract_address is the launch token or the priced reference asset.
CREATE TABLE IF NOT EXISTS events (
    event_id         BIGINT PRIMARY KEY DEFAULT nextval('event_seq'),
    kind             VARCHAR NOT NULL,
    platform         VARCHAR,
    contract_address VARCHAR NOT NULL,
    chain            VARCHAR NOT NULL,
    target_price     DECIMAL(38, 8),
    creator_id       VARCHAR NOT NULL,
    creator_side     VARCHAR NOT NULL,
    initial_stake    DECIMAL(38, 8) NOT NULL,
    yes_pool         DECIMAL(38, 8) NOT NULL DEFAULT 0,
    no_pool          DECIMAL(38, 8) NOT NULL DEFAULT 0,
    yes_odds         DECIMAL(5, 2) NOT NULL DEFAULT 50,
    no_odds          DECIMAL(5, 2) NOT NULL DEFAULT 50,
    total_yes_bets   INTEGER NOT NULL DEFAULT 0,
    total_no_bets    INTEGER NOT NULL DEFAULT 0,
    status           VARCHAR NOT NULL,
    deadline         BIGINT NOT NULL,
    resolved_outcome BOOLEAN,
    settlement_price DECIMAL(38, 8),
    settle_attempts  INTEGER NOT NULL DEFAULT 0,
    created_at       BIGINT NOT NULL,
    matched_at       BIGINT,
    settled_at       BIGINT
);

-- Stakes
CREATE TABLE IF NOT EXISTS bets (
    bet_id            BIGINT PRIMARY KEY DEFAULT nextval('bet_seq'),
    event_id          BIGINT NOT NULL,
    user_id           VARCHAR NOT NULL,
    side              VARCHAR NOT NULL,
    amount            DECIMAL(38, 8) NOT NULL,
    odds_at_placement DECIMAL(5, 2) NOT NULL,
    potential_payout  DECIMAL(38, 8),
    status            VARCHAR NOT NULL,
    payout            DECIMAL(38, 8),
    created_at        BIGINT NOT NULL,
    settled_at        BIGINT
);

-- Odds of both sides at each bet (chart buy markers)
CREATE TABLE IF NOT EXISTS buy_points (
    bet_id          BIGINT PRIMARY KEY,
    event_id        BIGINT NOT NULL,
    user_id         VARCHAR NOT NULL,
    side            VARCHAR NOT NULL,
    amount          DECIMAL(38, 8) NOT NULL,
    yes_odds_at_bet DECIMAL(5, 2) NOT NULL,
    no_odds_at_bet  DECIMAL(5, 2) NOT NULL,
    created_at      BIGINT NOT NULL
);

-- Spendable balances (reference ledger)
CREATE TABLE IF NOT EXISTS balances (
    user_id    VARCHAR PRIMARY KEY,
    balance    DECIMAL(38, 8) NOT NULL DEFAULT 0,
    updated_at BIGINT NOT NULL
);

-- Known-coin registry
CREATE TABLE IF NOT EXISTS coins (
    contract_address VARCHAR PRIMARY KEY,
    symbol           VARCHAR NOT NULL,
    name             VARCHAR NOT NULL,
    chain            VARCHAR NOT NULL,
    is_active        BOOLEAN NOT NULL DEFAULT TRUE,
    created_at       BIGINT NOT NULL
);

-- Odds klines, one row per (event, interval, bucket)
CREATE TABLE IF NOT EXISTS odds_samples (
    event_id       BIGINT NOT NULL,
    kline_interval VARCHAR NOT NULL,
    bucket_start   BIGINT NOT NULL,
    open_yes       DECIMAL(5, 2) NOT NULL,
    high_yes       DECIMAL(5, 2) NOT NULL,
    low_yes        DECIMAL(5, 2) NOT NULL,
    close_yes      DECIMAL(5, 2) NOT NULL,
    open_no        DECIMAL(5, 2) NOT NULL,
    high_no        DECIMAL(5, 2) NOT NULL,
    low_no         DECIMAL(5, 2) NOT NULL,
    close_no       DECIMAL(5, 2) NOT NULL,
    yes_pool       DECIMAL(38, 8) NOT NULL,
    no_pool        DECIMAL(38, 8) NOT NULL,
    bet_count      INTEGER NOT NULL,
    updated_at     BIGINT NOT NULL,
    PRIMARY KEY (event_id, kline_interval, bucket_start)
);
"""


def get_connection(db_path: str | Path, read_only: bool = False) -> DuckDBPyConnection:
    """Return a DuckDB connection. Caller must close or use as context manager."""
    if str(db_path) == ":memory:":
        return duckdb.connect(":memory:")
    path = Path(db_path)
    if not read_only:
        path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(path), read_only=read_only)


def init_schema(conn: DuckDBPyConnection) -> None:
    """Create tables and sequences if they do not exist."""
    for stmt in SCHEMA_SQL.split(";"):
        stmt = stmt.strip()
        if stmt:
            try:
                conn.execute(stmt)
            except duckdb.Error as e:
                if "already exists" not in str(e).lower():
                    raise


class Database:
    """
    Owns the root DuckDB connection and hands out one cursor per unit of work.

    DuckDB connections are not thread-safe; each cursor is an independent
    connection to the same database, so every thread works on its own cursor.
    """

    def __init__(self, conn: DuckDBPyConnection):
        self.conn = conn
        self._cursor_lock = threading.Lock()

    @classmethod
    def open(cls, db_path: str | Path) -> Database:
        conn = get_connection(db_path)
        init_schema(conn)
        return cls(conn)

    def _cursor(self) -> DuckDBPyConnection:
        with self._cursor_lock:
            return self.conn.cursor()

    @contextmanager
    def transaction(self) -> Iterator[DuckDBPyConnection]:
        """Commit on success, roll back on any exception. Driver errors become PersistenceFailure."""
        cur = self._cursor()
        try:
            cur.begin()
            yield cur
            cur.commit()
        except duckdb.Error as e:
            _rollback(cur)
            raise PersistenceFailure(f"storage error: {e}") from e
        except BaseException:
            _rollback(cur)
            raise
        finally:
            cur.close()

    @contextmanager
    def read(self) -> Iterator[DuckDBPyConnection]:
        """Autocommit cursor for queries."""
        cur = self._cursor()
        try:
            yield cur
        except duckdb.Error as e:
            raise PersistenceFailure(f"storage error: {e}") from e
        finally:
            cur.close()

    def close(self) -> None:
        self.conn.close()


def _rollback(cur: DuckDBPyConnection) -> None:
    try:
        cur.rollback()
    except duckdb.Error as e:
        # A failed commit has already discarded the transaction
        log.debug("rollback_skipped", error=str(e))
