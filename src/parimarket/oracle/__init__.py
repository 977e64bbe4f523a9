"""Oracle clients: resolve an event's real-world condition."""

from parimarket.oracle.base import Oracle, OracleResult, outcome_for
from parimarket.oracle.dexscreener import DexScreenerOracle, launch_outcome

__all__ = ["Oracle", "OracleResult", "outcome_for", "DexScreenerOracle", "launch_outcome"]
