"""Pydantic schemas for API request/response consistency and OpenAPI docs."""

from __future__ import annotations

from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from parimarket.models import Bet, BuyPoint, Coin, Event, OddsSample, ResolutionParams


# --- Health ---
class HealthResponse(BaseModel):
    status: str = "ok"
    subscribers: int = 0
    scheduler_running: bool = False


# --- Error (consistent shape for 4xx/5xx) ---
class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Human-readable message")
    code: str | None = Field(None, description="Machine-readable code, e.g. event_not_found, insufficient_funds")


# --- Events ---
class CreateEventRequest(BaseModel):
    creator_id: str
    side: Literal["yes", "no"]
    resolution: ResolutionParams
    stake: Decimal = Field(..., description="Amount debited from the creator and placed on their side")
    duration: str = Field(..., description="e.g. 30minutes, 5h, 2d")


class EventsListResponse(BaseModel):
    events: list[Event]
    total: int


class PlaceBetRequest(BaseModel):
    user_id: str
    side: Literal["yes", "no"]
    amount: Decimal


class SettleRequest(BaseModel):
    outcome: bool = Field(..., description="true resolves yes, false resolves no")
    settlement_price: Decimal | None = None


# --- Bets ---
class BetsListResponse(BaseModel):
    bets: list[Bet]


class BuyPointsResponse(BaseModel):
    event_id: int
    buy_points: list[BuyPoint]


# --- Klines ---
class KlinesResponse(BaseModel):
    event_id: int
    interval: str
    samples: list[OddsSample]


# --- Coins ---
class RegisterCoinRequest(BaseModel):
    contract_address: str
    symbol: str
    name: str | None = None
    chain: str = "solana"
    is_active: bool = True


class CoinsListResponse(BaseModel):
    coins: list[Coin]


# --- Ledger ---
class DepositRequest(BaseModel):
    amount: Decimal


class BalanceResponse(BaseModel):
    user_id: str
    balance: Decimal
