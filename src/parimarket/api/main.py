"""FastAPI app: market endpoints plus the live odds WebSocket."""

from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import Depends, FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.websockets import WebSocketState

from parimarket.api.schemas import (
    BalanceResponse,
    BetsListResponse,
    BuyPointsResponse,
    CoinsListResponse,
    CreateEventRequest,
    DepositRequest,
    ErrorResponse,
    EventsListResponse,
    HealthResponse,
    KlinesResponse,
    PlaceBetRequest,
    RegisterCoinRequest,
    SettleRequest,
)
from parimarket.config import Settings, get_settings
from parimarket.engine import MarketService
from parimarket.errors import MarketError
from parimarket.models import Bet, Coin, Event
from parimarket.oracle import DexScreenerOracle, Oracle
from parimarket.realtime import Broadcaster, SubscriptionRegistry, snapshot_message
from parimarket.scheduler import SettlementScheduler
from parimarket.storage import Database

log = structlog.get_logger(__name__)

_ERRORS: dict[int | str, dict[str, Any]] = {
    404: {"description": "Event not found", "model": ErrorResponse},
    409: {"description": "Event closed, expired or unmatched", "model": ErrorResponse},
    422: {"description": "Validation error", "model": ErrorResponse},
    503: {"description": "Busy or storage unavailable; retry", "model": ErrorResponse},
}


def _error_json(code: str, message: str, status_code: int = 404, retryable: bool = False) -> JSONResponse:
    """Return consistent error JSON: { detail, code }."""
    return JSONResponse(
        status_code=status_code,
        content={"detail": message, "code": code},
        headers={"Retry-After": "1"} if retryable else None,
    )


class WebSocketSubscriber:
    """Adapts a FastAPI WebSocket to the broadcaster's Subscriber protocol."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    @property
    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send(self, message: str) -> None:
        await self.websocket.send_text(message)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings or get_settings()
    db = Database.open(settings.db_path)
    registry = SubscriptionRegistry()
    broadcaster = Broadcaster(registry, loop=asyncio.get_running_loop())
    service = MarketService.from_settings(db, settings, broadcaster)
    owns_oracle = app.state.oracle is None
    oracle: Oracle = app.state.oracle or DexScreenerOracle.from_settings(settings)

    app.state.db = db
    app.state.registry = registry
    app.state.broadcaster = broadcaster
    app.state.service = service

    scheduler_task = None
    scheduler_stop = asyncio.Event()
    if settings.scheduler_enabled:
        scheduler = SettlementScheduler.from_settings(service, oracle, settings)
        scheduler_task = asyncio.create_task(scheduler.run(stop_event=scheduler_stop))
    app.state.scheduler_task = scheduler_task
    log.info("api_started", db_path=settings.db_path, scheduler=settings.scheduler_enabled)

    yield

    if scheduler_task is not None:
        scheduler_stop.set()
        await scheduler_task
    if owns_oracle and isinstance(oracle, DexScreenerOracle):
        await oracle.aclose()
    db.close()
    log.info("api_stopped")


def get_service(request: Request) -> MarketService:
    return request.app.state.service


def create_app(settings: Settings | None = None, oracle: Oracle | None = None) -> FastAPI:
    """Build the app. Storage, service and scheduler are created on startup."""
    app = FastAPI(title="PariMarket API", version="0.1.0", lifespan=lifespan)
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
    app.state.settings = settings
    app.state.oracle = oracle

    @app.exception_handler(MarketError)
    async def market_error(request: Request, exc: MarketError) -> JSONResponse:
        return _error_json(exc.code, exc.message, exc.status_code, exc.retryable)

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        if errors:
            loc = ".".join(str(p) for p in errors[0].get("loc", ()) if p != "body")
            message = f"{loc}: {errors[0].get('msg')}" if loc else str(errors[0].get("msg"))
        else:
            message = "invalid request"
        return _error_json("validation_error", message, 422)

    @app.get("/health", response_model=HealthResponse)
    def health(request: Request) -> HealthResponse:
        task = request.app.state.scheduler_task
        return HealthResponse(
            status="ok",
            subscribers=request.app.state.registry.count(),
            scheduler_running=task is not None and not task.done(),
        )

    @app.post("/events", response_model=Event, status_code=201, responses=_ERRORS)
    def create_event(body: CreateEventRequest, service: MarketService = Depends(get_service)) -> Event:
        """Debit the creator's stake and open a pending_match event."""
        return service.create_event(body.creator_id, body.side, body.resolution, body.stake, body.duration)

    @app.get("/events", response_model=EventsListResponse)
    def events_list(
        status: str | None = Query(None, description="pending_match, active, review, settled or cancelled"),
        kind: str | None = Query(None, description="token_launch or price_target"),
        creator_id: str | None = None,
        limit: int = Query(20, ge=1, le=100),
        offset: int = Query(0, ge=0),
        service: MarketService = Depends(get_service),
    ) -> EventsListResponse:
        """List events newest first with optional filters and limit/offset."""
        events, total = service.list_events(status, kind, creator_id, limit=limit, offset=offset)
        return EventsListResponse(events=events, total=total)

    @app.get("/events/{event_id}", response_model=Event, responses=_ERRORS)
    def event_detail(event_id: int, service: MarketService = Depends(get_service)) -> Event:
        return service.get_event(event_id)

    @app.post("/events/{event_id}/bets", response_model=Bet, status_code=201, responses=_ERRORS)
    def place_bet(event_id: int, body: PlaceBetRequest, service: MarketService = Depends(get_service)) -> Bet:
        """Stake on one side at the odds after this bet is added to the pool."""
        return service.place_bet(body.user_id, event_id, body.side, body.amount)

    @app.post("/events/{event_id}/settle", response_model=Event, responses=_ERRORS)
    def settle_event(event_id: int, body: SettleRequest, service: MarketService = Depends(get_service)) -> Event:
        """Admin settlement with an explicit outcome. No-op on an already settled event."""
        return service.settle_event(event_id, body.outcome, settlement_price=body.settlement_price)

    @app.post("/events/{event_id}/cancel", response_model=Event, responses=_ERRORS)
    def cancel_event(event_id: int, service: MarketService = Depends(get_service)) -> Event:
        """Refund every pending bet and cancel the event."""
        return service.cancel_event(event_id)

    @app.get("/events/{event_id}/klines", response_model=KlinesResponse, responses=_ERRORS)
    def event_klines(
        event_id: int,
        interval: str = Query("1m", description="1m, 5m, 15m, 30m, 1h, 4h, 1d or 1w"),
        start: int | None = Query(None, description="Bucket start lower bound (ms, inclusive)"),
        end: int | None = Query(None, description="Bucket start upper bound (ms, exclusive)"),
        limit: int | None = Query(None, ge=1, le=1000, description="Most recent N samples"),
        service: MarketService = Depends(get_service),
    ) -> KlinesResponse:
        samples = service.get_odds_history(event_id, interval, start_ms=start, end_ms=end, limit=limit)
        return KlinesResponse(event_id=event_id, interval=interval, samples=samples)

    @app.get("/events/{event_id}/buy-points", response_model=BuyPointsResponse, responses=_ERRORS)
    def event_buy_points(
        event_id: int,
        user_id: str | None = None,
        service: MarketService = Depends(get_service),
    ) -> BuyPointsResponse:
        """Odds of both sides at each bet, oldest first (chart markers)."""
        return BuyPointsResponse(event_id=event_id, buy_points=service.list_buy_points(event_id, user_id))

    @app.get("/bets", response_model=BetsListResponse)
    def bets_list(
        user_id: str | None = None,
        event_id: int | None = None,
        status: str | None = Query(None, description="pending, won, lost or refunded"),
        limit: int = Query(20, ge=1, le=100),
        offset: int = Query(0, ge=0),
        service: MarketService = Depends(get_service),
    ) -> BetsListResponse:
        return BetsListResponse(bets=service.list_bets(user_id, event_id, status, limit=limit, offset=offset))

    @app.get("/coins", response_model=CoinsListResponse)
    def coins_list(
        active_only: bool = False,
        chain: str | None = None,
        service: MarketService = Depends(get_service),
    ) -> CoinsListResponse:
        return CoinsListResponse(coins=service.list_coins(active_only=active_only, chain=chain))

    @app.post("/coins", response_model=Coin, status_code=201, responses=_ERRORS)
    def coins_register(body: RegisterCoinRequest, service: MarketService = Depends(get_service)) -> Coin:
        return service.register_coin(body.contract_address, body.symbol, body.name, body.chain, body.is_active)

    @app.get("/ledger/{user_id}", response_model=BalanceResponse)
    def ledger_balance(user_id: str, service: MarketService = Depends(get_service)) -> BalanceResponse:
        return BalanceResponse(user_id=user_id, balance=service.balance(user_id))

    @app.post("/ledger/{user_id}/deposit", response_model=BalanceResponse, responses=_ERRORS)
    def ledger_deposit(
        user_id: str, body: DepositRequest, service: MarketService = Depends(get_service)
    ) -> BalanceResponse:
        return BalanceResponse(user_id=user_id, balance=service.deposit(user_id, body.amount))

    @app.websocket("/ws/events/{event_id}")
    async def event_feed(websocket: WebSocket, event_id: int) -> None:
        """Initial snapshot, then odds_update / bet_placed pushes; answers ping with pong."""
        state = websocket.app.state
        await websocket.accept()
        snapshot = await asyncio.to_thread(state.service.snapshot, event_id)
        if snapshot is None:
            await websocket.send_text(
                json.dumps({"type": "error", "code": "event_not_found", "detail": f"event {event_id} not found"})
            )
            await websocket.close(code=4404)
            return
        sub = WebSocketSubscriber(websocket)
        state.registry.subscribe(event_id, sub)
        log.info("ws_subscribed", event_id=event_id, subscribers=state.registry.count(event_id))
        try:
            await websocket.send_text(snapshot_message(snapshot, "initial"))
            while True:
                raw = await websocket.receive_text()
                try:
                    msg = json.loads(raw)
                except json.JSONDecodeError:
                    continue
                if isinstance(msg, dict) and msg.get("type") == "ping":
                    await websocket.send_text(json.dumps({"type": "pong"}))
        except WebSocketDisconnect:
            pass
        finally:
            state.registry.unsubscribe(event_id, sub)
            log.info("ws_unsubscribed", event_id=event_id)

    return app


app = create_app()


def run_api(host: str = "127.0.0.1", port: int = 8000, profile: str | None = None) -> None:
    import uvicorn

    uvicorn.run(create_app(get_settings(profile)), host=host, port=port, reload=False)
