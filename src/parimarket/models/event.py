"""Event, Bet, BuyPoint, Coin - canonical market entities."""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Literal

from pydantic import BaseModel, Field, computed_field

from parimarket.odds.calculator import add_money

Side = Literal["yes", "no"]
EventStatus = Literal["pending_match", "active", "review", "settled", "cancelled"]
BetStatus = Literal["pending", "won", "lost", "refunded"]
LaunchPlatform = Literal["pumpfun", "bonk"]

SIDES: tuple[str, ...] = ("yes", "no")
TERMINAL_STATUSES: tuple[str, ...] = ("settled", "cancelled")


def opposite(side: str) -> str:
    return "no" if side == "yes" else "yes"


class TokenLaunch(BaseModel):
    """Resolves yes if the token graduated from its launch platform."""

    kind: Literal["token_launch"] = "token_launch"
    platform: LaunchPlatform
    contract_address: str
    chain: str = "solana"


class PriceTarget(BaseModel):
    """Resolves yes if the reference asset trades at or above target_price."""

    kind: Literal["price_target"] = "price_target"
    target_price: Decimal
    reference_asset: str  # contract address of the asset being priced
    chain: str = "solana"


ResolutionParams = Annotated[TokenLaunch | PriceTarget, Field(discriminator="kind")]


class Event(BaseModel):
    """A binary pari-mutuel market."""

    event_id: int
    resolution: ResolutionParams
    creator_id: str
    creator_side: Side
    initial_stake: Decimal
    yes_pool: Decimal = Decimal("0")
    no_pool: Decimal = Decimal("0")
    yes_odds: Decimal = Decimal("50")
    no_odds: Decimal = Decimal("50")
    total_yes_bets: int = 0
    total_no_bets: int = 0
    status: EventStatus = "pending_match"
    deadline: int  # ms epoch
    resolved_outcome: bool | None = None
    settlement_price: Decimal | None = None
    settle_attempts: int = 0
    created_at: int
    matched_at: int | None = None
    settled_at: int | None = None

    @computed_field
    @property
    def kind(self) -> str:
        return self.resolution.kind

    @computed_field
    @property
    def total_pool(self) -> Decimal:
        return add_money(self.yes_pool, self.no_pool)

    @property
    def bet_count(self) -> int:
        return self.total_yes_bets + self.total_no_bets

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @computed_field
    @property
    def closes_at(self) -> int:
        """settled_at once settled, otherwise the deadline."""
        if self.status == "settled" and self.settled_at is not None:
            return self.settled_at
        return self.deadline

    def pool(self, side: str) -> Decimal:
        return self.yes_pool if side == "yes" else self.no_pool


class Bet(BaseModel):
    """A single stake on one side of an event."""

    bet_id: int
    event_id: int
    user_id: str
    side: Side
    amount: Decimal
    odds_at_placement: Decimal
    potential_payout: Decimal | None = None
    status: BetStatus = "pending"
    payout: Decimal | None = None
    created_at: int
    settled_at: int | None = None


class BuyPoint(BaseModel):
    """Odds of both sides at the moment a bet was placed (chart marker)."""

    bet_id: int
    event_id: int
    user_id: str
    side: Side
    amount: Decimal
    yes_odds_at_bet: Decimal
    no_odds_at_bet: Decimal
    created_at: int


class Coin(BaseModel):
    """Known-coin registry entry."""

    contract_address: str
    symbol: str
    name: str
    chain: str = "solana"
    is_active: bool = True
    created_at: int | None = None
