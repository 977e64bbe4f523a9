"""HTTP and WebSocket surface via FastAPI TestClient."""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from conftest import COIN, MINUTE, FakeClock, launch, price_target
from parimarket.api.main import create_app
from parimarket.config import Settings

D = Decimal


@pytest.fixture
def client():
    settings = Settings.from_dict({"storage": {"db_path": ":memory:"}, "scheduler": {"enabled": False}})
    with TestClient(create_app(settings)) as c:
        c.app.state.service.clock = FakeClock()
        for user in ("alice", "bob"):
            assert c.post(f"/ledger/{user}/deposit", json={"amount": "1000"}).status_code == 200
        assert c.post("/coins", json={"contract_address": COIN, "symbol": "MEME"}).status_code == 201
        yield c


def _create(client, **overrides):
    body = {"creator_id": "alice", "side": "yes", "resolution": launch(), "stake": "100", "duration": "10minutes"}
    body.update(overrides)
    return client.post("/events", json=body)


def test_health(client):
    body = client.get("/health").json()
    assert body == {"status": "ok", "subscribers": 0, "scheduler_running": False}


def test_event_flow(client):
    resp = _create(client)
    assert resp.status_code == 201
    event = resp.json()
    assert event["status"] == "pending_match"
    assert event["kind"] == "token_launch"
    assert event["closes_at"] == event["deadline"]
    event_id = event["event_id"]

    resp = client.post(f"/events/{event_id}/bets", json={"user_id": "bob", "side": "no", "amount": 50})
    assert resp.status_code == 201
    assert D(resp.json()["odds_at_placement"]) == D("66.67")

    event = client.get(f"/events/{event_id}").json()
    assert event["status"] == "active"
    assert (D(event["yes_odds"]), D(event["no_odds"])) == (D("33.33"), D("66.67"))
    assert D(event["total_pool"]) == D(150)

    resp = client.post(f"/events/{event_id}/settle", json={"outcome": True})
    assert resp.status_code == 409
    assert resp.json()["code"] == "settlement_too_early"

    client.app.state.service.clock.advance(10 * MINUTE)
    settled = client.post(f"/events/{event_id}/settle", json={"outcome": True}).json()
    assert settled["status"] == "settled"
    assert settled["resolved_outcome"] is True
    assert D(client.get("/ledger/alice").json()["balance"]) == D(1050)

    bets = client.get("/bets", params={"event_id": event_id, "status": "won"}).json()["bets"]
    assert [(b["user_id"], D(b["payout"])) for b in bets] == [("alice", D(150))]


def test_list_and_detail(client):
    _create(client)
    _create(client, resolution=price_target(), side="no", stake="5")
    body = client.get("/events", params={"kind": "price_target"}).json()
    assert body["total"] == 1
    assert body["events"][0]["resolution"]["kind"] == "price_target"
    assert client.get("/events", params={"limit": 1}).json()["total"] == 2


@pytest.mark.parametrize(
    "overrides,status,code",
    [
        ({"duration": "soon"}, 422, "validation_error"),
        ({"side": "maybe"}, 422, "validation_error"),
        ({"resolution": launch(address="Unknown")}, 422, "validation_error"),
        ({"stake": "5000"}, 402, "insufficient_funds"),
    ],
)
def test_create_errors(client, overrides, status, code):
    resp = _create(client, **overrides)
    assert resp.status_code == status
    assert resp.json()["code"] == code
    assert "detail" in resp.json()


def test_bet_errors(client):
    assert client.post("/events/42/bets", json={"user_id": "bob", "side": "no", "amount": 1}).json()["code"] == (
        "event_not_found"
    )
    event_id = _create(client).json()["event_id"]
    resp = client.post(f"/events/{event_id}/bets", json={"user_id": "bob", "side": "yes", "amount": 1})
    assert resp.status_code == 409
    assert resp.json()["code"] == "wrong_side_for_unmatched_market"


def test_cancel(client):
    event_id = _create(client).json()["event_id"]
    assert client.post(f"/events/{event_id}/cancel").json()["status"] == "cancelled"
    assert D(client.get("/ledger/alice").json()["balance"]) == D(1000)


def test_klines_and_buy_points(client):
    event_id = _create(client).json()["event_id"]
    client.post(f"/events/{event_id}/bets", json={"user_id": "bob", "side": "no", "amount": "50"})
    klines = client.get(f"/events/{event_id}/klines", params={"interval": "5m"}).json()
    assert klines["interval"] == "5m"
    assert len(klines["samples"]) == 1
    assert D(klines["samples"][0]["close_yes"]) == D("33.33")
    assert client.get(f"/events/{event_id}/klines", params={"interval": "7m"}).status_code == 422

    points = client.get(f"/events/{event_id}/buy-points").json()["buy_points"]
    assert [p["user_id"] for p in points] == ["alice", "bob"]


def test_coins(client):
    coins = client.get("/coins").json()["coins"]
    assert [c["symbol"] for c in coins] == ["MEME"]
    assert client.post("/coins", json={"contract_address": "", "symbol": "X"}).status_code == 422


def test_websocket_feed(client):
    event_id = _create(client).json()["event_id"]
    with client.websocket_connect(f"/ws/events/{event_id}") as ws:
        initial = ws.receive_json()
        assert initial["type"] == "initial"
        assert initial["data"]["status"] == "pending_match"
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}
        assert client.get("/health").json()["subscribers"] == 1

        client.post(f"/events/{event_id}/bets", json={"user_id": "bob", "side": "no", "amount": "50"})
        bet_msg = ws.receive_json()
        update = ws.receive_json()
        assert bet_msg["type"] == "bet_placed"
        assert bet_msg["data"]["odds_at_bet"] == "66.67"
        assert update["type"] == "odds_update"
        assert update["data"]["status"] == "active"


def test_websocket_unknown_event(client):
    with client.websocket_connect("/ws/events/999") as ws:
        assert ws.receive_json()["code"] == "event_not_found"
