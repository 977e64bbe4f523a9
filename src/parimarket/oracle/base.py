"""Oracle protocol - resolves an event's real-world condition."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from parimarket.models import PriceTarget, ResolutionParams


@dataclass(frozen=True)
class OracleResult:
    """Either a resolved boolean, an observed price, or neither (indeterminate)."""

    outcome: bool | None = None
    price: Decimal | None = None

    @classmethod
    def resolved(cls, outcome: bool) -> OracleResult:
        return cls(outcome=outcome)

    @classmethod
    def priced(cls, price: Decimal) -> OracleResult:
        return cls(price=price)

    @classmethod
    def indeterminate(cls) -> OracleResult:
        return cls()

    @property
    def is_indeterminate(self) -> bool:
        return self.outcome is None and self.price is None


class Oracle(Protocol):
    async def resolve(self, params: ResolutionParams) -> OracleResult: ...


def outcome_for(params: ResolutionParams, result: OracleResult) -> bool | None:
    """Resolved boolean for the event, or None when the oracle could not decide."""
    if result.outcome is not None:
        return result.outcome
    if result.price is not None and isinstance(params, PriceTarget):
        return result.price >= params.target_price
    return None
