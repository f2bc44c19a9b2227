"""Tests for the HTTP API: auth, engine operations and read endpoints."""

import pytest
from fastapi.testclient import TestClient

from conftest import (
    FakeGateway,
    FakePriceSource,
    FakeSignalSource,
    InMemoryLoopLock,
    add_venue,
    configure,
    seed_position,
)
from tradecore.api.deps import get_execution_service, get_loop, get_reconciler, get_store
from tradecore.engine.reconciliation import Reconciler
from tradecore.engine.trading_loop import TradingLoop
from tradecore.main import app
from tradecore.services.auth import create_access_token
from tradecore.services.execution import OrderExecutionService


@pytest.fixture
def venue_gateway():
    gateway = FakeGateway()
    gateway.balances = {"BTC": 0.008, "USDT": 1_000.0}
    return gateway


@pytest.fixture
def client(store, venue_gateway):
    prices = FakePriceSource(50_250.0)

    def factory(venue):
        return venue_gateway

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_execution_service] = lambda: OrderExecutionService(
        store, prices, gateway_factory=factory
    )
    app.dependency_overrides[get_reconciler] = lambda: Reconciler(store, gateway_factory=factory)
    app.dependency_overrides[get_loop] = lambda: TradingLoop(
        store,
        InMemoryLoopLock(),
        OrderExecutionService(store, prices, gateway_factory=factory),
        Reconciler(store, gateway_factory=factory),
        FakeSignalSource([]),
    )
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth():
    return {"Authorization": f"Bearer {create_access_token('tests')}"}


# ---------------------------------------------------------------------------
# 1. Auth
# ---------------------------------------------------------------------------

def test_health_needs_no_token(client):
    assert client.get("/api/system/health").json() == {"status": "ok"}


def test_engine_requires_token(client):
    response = client.post("/api/engine/run-cycle")
    assert response.status_code in (401, 403)


def test_invalid_token_rejected(client):
    response = client.post("/api/engine/run-cycle", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_expired_token_rejected(client):
    token = create_access_token("tests", expire_minutes=-1)
    response = client.get("/api/positions", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


# ---------------------------------------------------------------------------
# 2. Engine operations
# ---------------------------------------------------------------------------

class TestEngineEndpoints:

    def test_run_cycle(self, client, auth):
        response = client.post("/api/engine/run-cycle", json={"triggeredBy": "cron"}, headers=auth)
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["status"] == "bot_stopped"
        assert body["cycleId"].startswith("loop-")

    def test_open_position_defaults_from_settings(self, client, auth, db_engine, venue_gateway):
        configure(db_engine, is_paper_trading=False)
        venue = add_venue(db_engine)
        response = client.post(
            "/api/engine/open-position",
            json={
                "venueId": venue.id,
                "symbol": "btc-usdt",
                "direction": "long",
                "orderSizeUsd": 400,
                "entryPrice": 50_000,
            },
            headers=auth,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["trade"]["isPaperTrade"] is False
        assert body["position"]["profitTarget"] == 1.0
        assert body["position"]["takeProfitPrice"] == pytest.approx(50_225.0)
        assert venue_gateway.called("limit")[0]["symbol"] == "BTC/USDT"

    def test_open_position_unknown_venue(self, client, auth):
        response = client.post(
            "/api/engine/open-position",
            json={"venueId": 99, "symbol": "BTC/USDT", "direction": "long", "orderSizeUsd": 400, "entryPrice": 1},
            headers=auth,
        )
        assert response.status_code == 404
        assert response.json()["errors"][0]["errorType"] == "NOT_FOUND"

    def test_open_position_validates_body(self, client, auth):
        response = client.post(
            "/api/engine/open-position",
            json={"venueId": 1, "symbol": "BTC/USDT", "direction": "sideways", "orderSizeUsd": 400, "entryPrice": 1},
            headers=auth,
        )
        assert response.status_code == 422

    def test_close_position(self, client, auth, store, db_engine):
        position = seed_position(store, add_venue(db_engine))
        response = client.post("/api/engine/close-position", json={"positionId": position.id}, headers=auth)

        body = response.json()
        assert body["success"] is True
        assert body["status"] == "closed"
        assert body["netProfit"] == pytest.approx(1.2)

        again = client.post("/api/engine/close-position", json={"positionId": position.id}, headers=auth).json()
        assert again["success"] is True
        assert again["alreadyClosed"] is True

    def test_close_unknown_position(self, client, auth):
        response = client.post("/api/engine/close-position", json={"positionId": 404}, headers=auth)
        assert response.status_code == 404

    def test_reconcile_defaults_to_report_only(self, client, auth, store, db_engine, venue_gateway):
        position = seed_position(store, add_venue(db_engine))
        venue_gateway.balances["BTC"] = 0.0

        body = client.post("/api/engine/reconcile", headers=auth).json()
        assert body["mismatched"] == 1
        assert body["mismatches"][0]["kind"] == "MISSING"
        assert store.get_position(position.id).status == "open"

        body = client.post("/api/engine/reconcile", json={"autoFix": True}, headers=auth).json()
        assert body["fixed"] == 1
        assert store.get_position(position.id).status == "orphaned"

    def test_retry_take_profits(self, client, auth, store, db_engine):
        seed_position(store, add_venue(db_engine), take_profit_order_id=None, take_profit_status="error")
        body = client.post("/api/engine/retry-take-profits", headers=auth).json()
        assert (body["retried"], body["succeeded"]) == (1, 1)


# ---------------------------------------------------------------------------
# 3. Read endpoints
# ---------------------------------------------------------------------------

class TestReadEndpoints:

    def test_positions_active_by_default(self, client, auth, store, db_engine):
        venue = add_venue(db_engine)
        open_position = seed_position(store, venue)
        closed = seed_position(store, venue, symbol="ETH/USDT")
        store.transition(closed.id, "open", "closed")

        active = client.get("/api/positions", headers=auth).json()
        assert [p["id"] for p in active] == [open_position.id]
        everything = client.get("/api/positions", params={"status": "all"}, headers=auth).json()
        assert len(everything) == 2

    def test_position_detail(self, client, auth, store, db_engine):
        position = seed_position(store, add_venue(db_engine))
        assert client.get(f"/api/positions/{position.id}", headers=auth).json()["symbol"] == "BTC/USDT"
        assert client.get("/api/positions/999", headers=auth).status_code == 404

    def test_trades_and_logs(self, client, auth, store, db_engine):
        seed_position(store, add_venue(db_engine))
        client.post("/api/engine/run-cycle", headers=auth)

        trades = client.get("/api/trades", headers=auth).json()
        assert len(trades) == 1
        logs = client.get("/api/system/logs", headers=auth).json()
        assert logs[0]["status"] == "bot_stopped"
