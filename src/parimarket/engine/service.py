"""
Event lifecycle: create, bet, settle, cancel.

Every mutation of an event runs under that event's lock, and the ledger
debit/credit shares one transaction with the pool and bet writes it pays for.
Odds samples and live pushes happen after commit and are best-effort.
"""

from __future__ import annotations

import asyncio
import time
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Callable

import structlog
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from parimarket.engine.locks import MarketLocks
from parimarket.errors import (
    EventClosed,
    EventExpired,
    EventNotFound,
    OracleIndeterminate,
    SettlementTooEarly,
    ValidationError,
    WrongSideForUnmatchedMarket,
)
from parimarket.kline import OddsRecorder
from parimarket.models import (
    Bet,
    BuyPoint,
    Coin,
    Event,
    OddsSample,
    OddsSnapshot,
    PriceTarget,
    ResolutionParams,
    TokenLaunch,
    opposite,
)
from parimarket.models.event import SIDES, TERMINAL_STATUSES
from parimarket.odds import calculate_odds, deadline_from_duration, parse_amount, potential_payout, winner_payout
from parimarket.odds.calculator import EVEN_ODDS, add_money
from parimarket.oracle import Oracle, outcome_for
from parimarket.storage import bets, coins, events
from parimarket.storage.ledger import DuckDBLedger, LedgerGateway

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

    from parimarket.config import Settings
    from parimarket.realtime import Broadcaster
    from parimarket.storage import Database

log = structlog.get_logger(__name__)

EMPTY_WINNER_POLICIES = ("forfeit", "refund")

_RESOLUTION = TypeAdapter(ResolutionParams)


def now_ms() -> int:
    return int(time.time() * 1000)


def parse_side(side: str) -> str:
    value = str(side or "").strip().lower()
    if value not in SIDES:
        raise ValidationError(f"side must be 'yes' or 'no', got {side!r}")
    return value


def parse_user(user_id: str) -> str:
    value = str(user_id or "").strip()
    if not value:
        raise ValidationError("user id is required")
    return value


def parse_resolution(resolution: ResolutionParams | dict[str, Any]) -> ResolutionParams:
    """Validate the shape of resolution parameters. Registry checks happen inside the create transaction."""
    if isinstance(resolution, dict):
        try:
            resolution = _RESOLUTION.validate_python(resolution)
        except PydanticValidationError as e:
            raise ValidationError(f"invalid resolution parameters: {e.errors()[0]['msg']}") from None
    if isinstance(resolution, TokenLaunch):
        if not resolution.contract_address.strip():
            raise ValidationError("contract_address is required")
    elif isinstance(resolution, PriceTarget):
        parse_amount(resolution.target_price, "target_price")
        if not resolution.reference_asset.strip():
            raise ValidationError("reference_asset is required")
    else:
        raise ValidationError("unknown resolution kind")
    return resolution


class MarketService:
    """The transactional core; every public method is one unit of work."""

    def __init__(
        self,
        db: Database,
        ledger: LedgerGateway | None = None,
        *,
        recorder: OddsRecorder | None = None,
        broadcaster: Broadcaster | None = None,
        lock_timeout_sec: float = 10.0,
        empty_winner_policy: str = "forfeit",
        min_stake: Decimal = Decimal("0.01"),
        max_oracle_attempts: int = 30,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        if empty_winner_policy not in EMPTY_WINNER_POLICIES:
            raise ValueError(f"empty_winner_policy must be one of {EMPTY_WINNER_POLICIES}")
        self.db = db
        self.ledger = ledger or DuckDBLedger()
        self.recorder = recorder or OddsRecorder(db)
        self.broadcaster = broadcaster
        if broadcaster is not None and broadcaster.snapshot_fn is None:
            broadcaster.snapshot_fn = self.snapshot
        self.locks = MarketLocks(timeout=lock_timeout_sec)
        self.empty_winner_policy = empty_winner_policy
        self.min_stake = min_stake
        self.max_oracle_attempts = max_oracle_attempts
        self.clock = clock

    @classmethod
    def from_settings(
        cls,
        db: Database,
        settings: Settings,
        broadcaster: Broadcaster | None = None,
    ) -> MarketService:
        return cls(
            db,
            recorder=OddsRecorder(db, settings.kline_intervals),
            broadcaster=broadcaster,
            lock_timeout_sec=settings.lock_timeout_sec,
            empty_winner_policy=settings.empty_winner_policy,
            min_stake=settings.min_stake,
            max_oracle_attempts=settings.max_oracle_attempts,
        )

    # ------------------------------------------------------------------ helpers

    def _stake(self, amount: Decimal | str | int | float, field: str = "amount") -> Decimal:
        value = parse_amount(amount, field)
        if value < self.min_stake:
            raise ValidationError(f"{field} must be at least {self.min_stake}")
        return value

    @staticmethod
    def _load(conn: DuckDBPyConnection, event_id: int) -> Event:
        event = events.get_event(conn, event_id)
        if event is None:
            raise EventNotFound(f"event {event_id} not found")
        return event

    @staticmethod
    def _check_bettable(event: Event, side: str, now: int) -> None:
        if now >= event.deadline:
            raise EventExpired(f"event {event.event_id} closed for betting at {event.deadline}")
        if event.status not in ("pending_match", "active"):
            raise EventClosed(f"event {event.event_id} is {event.status}")
        if event.status == "pending_match" and side == event.creator_side:
            raise WrongSideForUnmatchedMarket(
                f"event {event.event_id} is unmatched; only '{opposite(side)}' may bet"
            )

    def _record(self, event: Event, now: int) -> None:
        self.recorder.record(event, now)

    def _notify(self, event_id: int, bet: Bet | None = None) -> None:
        if self.broadcaster is None:
            return
        try:
            self.broadcaster.notify(event_id, bet)
        except Exception as e:
            log.warning("broadcast_failed", event_id=event_id, error=str(e))

    # --------------------------------------------------------------- lifecycle

    def create_event(
        self,
        creator_id: str,
        side: str,
        resolution: ResolutionParams | dict[str, Any],
        stake: Decimal | str | int | float,
        duration: str,
    ) -> Event:
        """Debit the creator's stake and open a pending_match event with the creator's bet."""
        creator_id = parse_user(creator_id)
        side = parse_side(side)
        params = parse_resolution(resolution)
        amount = self._stake(stake, "stake")
        now = self.clock()
        deadline = deadline_from_duration(duration, now)
        yes_odds, no_odds = calculate_odds(
            amount if side == "yes" else Decimal("0"),
            amount if side == "no" else Decimal("0"),
        )
        odds = yes_odds if side == "yes" else no_odds

        with self.locks.accounts_for([creator_id]):
            with self.db.transaction() as tx:
                if isinstance(params, TokenLaunch):
                    coin = coins.get_coin(tx, params.contract_address)
                    if coin is None or not coin.is_active:
                        raise ValidationError(f"unknown or inactive coin {params.contract_address}")
                self.ledger.debit(tx, creator_id, amount)
                event_id = events.insert_event(
                    tx, params, creator_id, side, amount, yes_odds, no_odds, deadline, now
                )
                bet = bets.insert_bet(
                    tx, event_id, creator_id, side, amount, odds, potential_payout(amount, odds), now
                )
                bets.insert_buy_point(tx, bet, yes_odds, no_odds)
                event = self._load(tx, event_id)

        with self.locks.event(event_id):
            self._record(event, now)
        log.info(
            "event_created",
            event_id=event_id,
            kind=params.kind,
            creator_id=creator_id,
            side=side,
            stake=str(amount),
            deadline=deadline,
        )
        self._notify(event_id)
        return event

    def place_bet(
        self,
        user_id: str,
        event_id: int,
        side: str,
        amount: Decimal | str | int | float,
    ) -> Bet:
        """Stake on one side; the first opposing stake on an unmatched event activates it."""
        user_id = parse_user(user_id)
        side = parse_side(side)
        value = self._stake(amount)

        with self.locks.event(event_id):
            now = self.clock()
            with self.locks.accounts_for([user_id]):
                with self.db.transaction() as tx:
                    event = self._load(tx, event_id)
                    self._check_bettable(event, side, now)
                    self.ledger.debit(tx, user_id, value)
                    yes_pool, no_pool = events.add_stake(tx, event_id, side, value)
                    yes_odds, no_odds = calculate_odds(yes_pool, no_pool)
                    events.set_odds(tx, event_id, yes_odds, no_odds)
                    matched = event.status == "pending_match"
                    if matched:
                        events.mark_active(tx, event_id, now)
                    odds = yes_odds if side == "yes" else no_odds
                    bet = bets.insert_bet(
                        tx, event_id, user_id, side, value, odds, potential_payout(value, odds), now
                    )
                    bets.insert_buy_point(tx, bet, yes_odds, no_odds)
                    updated = self._load(tx, event_id)
            self._record(updated, now)

        log.info(
            "bet_placed",
            event_id=event_id,
            bet_id=bet.bet_id,
            user_id=user_id,
            side=side,
            amount=str(value),
            odds=str(odds),
        )
        if matched:
            log.info("event_matched", event_id=event_id, matched_at=now)
        self._notify(event_id, bet)
        return bet

    def settle_event(
        self,
        event_id: int,
        outcome: bool,
        *,
        settlement_price: Decimal | None = None,
        automatic: bool = False,
    ) -> Event:
        """
        Resolve the event and pay winners pro rata from the total pool.

        Already settled or cancelled events are returned unchanged. Automatic
        settlement only touches active events; an admin may also settle one in
        review. Settling before the deadline raises SettlementTooEarly.
        """
        if not isinstance(outcome, bool):
            raise ValidationError("outcome must be true or false")
        with self.locks.event(event_id):
            now = self.clock()
            with self.db.read() as conn:
                event = self._load(conn, event_id)
                pending = bets.pending_bets(conn, event_id)
            if event.is_terminal:
                log.info("settle_noop", event_id=event_id, status=event.status)
                return event
            if automatic and event.status != "active":
                log.info("settle_skipped", event_id=event_id, status=event.status)
                return event
            if now < event.deadline:
                raise SettlementTooEarly(f"event {event_id} cannot settle before {event.deadline}")

            winner = "yes" if outcome else "no"
            total_pool = event.total_pool
            winner_pool = event.pool(winner)
            refund = winner_pool == 0 and self.empty_winner_policy == "refund"
            if winner_pool > 0:
                payees = {b.user_id for b in pending if b.side == winner}
            elif refund:
                payees = {b.user_id for b in pending}
            else:
                payees = set()

            paid = Decimal("0")
            with self.locks.accounts_for(payees):
                with self.db.transaction() as tx:
                    events.mark_settled(tx, event_id, outcome, now, settlement_price)
                    if winner_pool > 0:
                        for bet in pending:
                            if bet.side != winner:
                                continue
                            payout = winner_payout(bet.amount, winner_pool, total_pool)
                            bets.mark_won(tx, bet.bet_id, payout, now)
                            self.ledger.credit(tx, bet.user_id, payout)
                            paid = add_money(paid, payout)
                    elif refund:
                        for bet in pending:
                            bets.mark_refunded(tx, bet.bet_id, now)
                            self.ledger.credit(tx, bet.user_id, bet.amount)
                        events.reset_pools(tx, event_id, EVEN_ODDS, EVEN_ODDS)
                    lost = bets.mark_pending_lost(tx, event_id, now)
                    settled = self._load(tx, event_id)
            if refund:
                self._record(settled, now)

        log.info(
            "event_settled",
            event_id=event_id,
            outcome=outcome,
            total_pool=str(total_pool),
            winner_pool=str(winner_pool),
            paid=str(paid),
            lost=lost,
            refunded=refund,
            automatic=automatic,
        )
        if winner_pool == 0 and not refund:
            log.warning("empty_winner_pool_forfeited", event_id=event_id, total_pool=str(total_pool))
        self._notify(event_id)
        return settled

    async def resolve_and_settle(self, event_id: int, oracle: Oracle) -> Event:
        """Ask the oracle, then settle. Indeterminate answers count toward the review bound."""
        event = await asyncio.to_thread(self.get_event, event_id)
        if event.status != "active":
            return event
        result = await oracle.resolve(event.resolution)
        outcome = outcome_for(event.resolution, result)
        if outcome is None:
            await asyncio.to_thread(self.record_failed_attempt, event_id)
            raise OracleIndeterminate(f"oracle could not resolve event {event_id}")
        return await asyncio.to_thread(
            self.settle_event, event_id, outcome, settlement_price=result.price, automatic=True
        )

    def record_failed_attempt(self, event_id: int) -> Event:
        """Count a failed automatic settlement; active events move to review at the bound."""
        with self.locks.event(event_id):
            with self.db.transaction() as tx:
                event = self._load(tx, event_id)
                if event.status != "active":
                    return event
                attempts = events.increment_settle_attempts(tx, event_id)
                if self.max_oracle_attempts and attempts >= self.max_oracle_attempts:
                    events.mark_review(tx, event_id)
                    log.warning("event_review", event_id=event_id, attempts=attempts)
                event = self._load(tx, event_id)
        return event

    def cancel_event(self, event_id: int) -> Event:
        """Refund every pending stake and close the event. Terminal events are returned unchanged."""
        with self.locks.event(event_id):
            now = self.clock()
            with self.db.read() as conn:
                event = self._load(conn, event_id)
                pending = bets.pending_bets(conn, event_id)
            if event.is_terminal:
                log.info("cancel_noop", event_id=event_id, status=event.status)
                return event
            refunded = Decimal("0")
            with self.locks.accounts_for({b.user_id for b in pending}):
                with self.db.transaction() as tx:
                    for bet in pending:
                        bets.mark_refunded(tx, bet.bet_id, now)
                        self.ledger.credit(tx, bet.user_id, bet.amount)
                        refunded = add_money(refunded, bet.amount)
                    events.reset_pools(tx, event_id, EVEN_ODDS, EVEN_ODDS)
                    events.mark_cancelled(tx, event_id, now)
                    cancelled = self._load(tx, event_id)
            self._record(cancelled, now)
        log.info("event_cancelled", event_id=event_id, bets=len(pending), refunded=str(refunded))
        self._notify(event_id)
        return cancelled

    # -------------------------------------------------------------------- reads

    def get_event(self, event_id: int) -> Event:
        with self.db.read() as conn:
            return self._load(conn, event_id)

    def list_events(
        self,
        status: str | None = None,
        kind: str | None = None,
        creator_id: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Event], int]:
        """Page of events (newest first) and the total matching the filter."""
        if limit <= 0 or offset < 0:
            raise ValidationError("limit must be positive and offset non-negative")
        with self.db.read() as conn:
            page = events.list_events(conn, status, kind, creator_id, limit=limit, offset=offset)
            total = events.count_events(conn, status, kind, creator_id)
        return page, total

    def list_bets(
        self,
        user_id: str | None = None,
        event_id: int | None = None,
        status: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Bet]:
        if limit <= 0 or offset < 0:
            raise ValidationError("limit must be positive and offset non-negative")
        with self.db.read() as conn:
            return bets.list_bets(conn, user_id, event_id, status, limit=limit, offset=offset)

    def get_odds_history(
        self,
        event_id: int,
        interval: str,
        start_ms: int | None = None,
        end_ms: int | None = None,
        limit: int | None = None,
    ) -> list[OddsSample]:
        self.get_event(event_id)
        return self.recorder.history(event_id, interval, start_ms=start_ms, end_ms=end_ms, limit=limit)

    def list_buy_points(self, event_id: int, user_id: str | None = None) -> list[BuyPoint]:
        with self.db.read() as conn:
            self._load(conn, event_id)
            return bets.list_buy_points(conn, event_id, user_id)

    def snapshot(self, event_id: int) -> OddsSnapshot | None:
        with self.db.read() as conn:
            event = events.get_event(conn, event_id)
        if event is None:
            return None
        return OddsSnapshot(
            event_id=event.event_id,
            status=event.status,
            yes_odds=event.yes_odds,
            no_odds=event.no_odds,
            yes_pool=event.yes_pool,
            no_pool=event.no_pool,
            total_yes_bets=event.total_yes_bets,
            total_no_bets=event.total_no_bets,
            timestamp=self.clock(),
        )

    def due_events(self, now: int | None = None) -> list[Event]:
        """Active events whose deadline has passed."""
        with self.db.read() as conn:
            return events.list_due_events(conn, "active", self.clock() if now is None else now)

    def expired_unmatched(self, now: int | None = None) -> list[Event]:
        with self.db.read() as conn:
            return events.list_due_events(conn, "pending_match", self.clock() if now is None else now)

    # -------------------------------------------------------------------- admin

    def purge_settled(self, before_ms: int | None = None) -> int:
        """Delete settled and cancelled events with their bets and samples. Returns the count."""
        with self.db.read() as conn:
            ids = events.terminal_event_ids(conn, before_ms)
        if not ids:
            return 0
        with self.locks.events.hold_many(ids, self.locks.timeout):
            with self.db.transaction() as tx:
                ids = [i for i in ids if (e := events.get_event(tx, i)) is not None and e.status in TERMINAL_STATUSES]
                events.delete_events(tx, ids)
        log.info("events_purged", count=len(ids), before_ms=before_ms)
        return len(ids)

    def register_coin(
        self,
        contract_address: str,
        symbol: str,
        name: str | None = None,
        chain: str = "solana",
        is_active: bool = True,
    ) -> Coin:
        address = str(contract_address or "").strip()
        if not address or not str(symbol or "").strip():
            raise ValidationError("contract_address and symbol are required")
        coin = Coin(
            contract_address=address,
            symbol=symbol.strip(),
            name=(name or symbol).strip(),
            chain=chain,
            is_active=is_active,
            created_at=self.clock(),
        )
        with self.db.transaction() as tx:
            coins.upsert_coin(tx, coin)
            stored = coins.get_coin(tx, address)
        log.info("coin_registered", contract_address=address, symbol=coin.symbol, active=is_active)
        return stored or coin

    def get_coin(self, contract_address: str) -> Coin | None:
        with self.db.read() as conn:
            return coins.get_coin(conn, contract_address)

    def list_coins(self, active_only: bool = False, chain: str | None = None) -> list[Coin]:
        with self.db.read() as conn:
            return coins.list_coins(conn, active_only=active_only, chain=chain)

    def deposit(self, user_id: str, amount: Decimal | str | int | float) -> Decimal:
        user_id = parse_user(user_id)
        value = parse_amount(amount)
        with self.locks.accounts_for([user_id]):
            with self.db.transaction() as tx:
                balance = self.ledger.credit(tx, user_id, value)
        log.info("deposit", user_id=user_id, amount=str(value), balance=str(balance))
        return balance

    def balance(self, user_id: str) -> Decimal:
        with self.db.read() as conn:
            return self.ledger.balance(conn, parse_user(user_id))
