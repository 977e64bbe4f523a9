"""DuckDB persistence for events, bets, ledger, coins and odds samples."""

from parimarket.storage.db import Database, get_connection, init_schema

__all__ = ["Database", "get_connection", "init_schema"]
