from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from cryptodesk.config import Settings
from cryptodesk.db import session_scope
from cryptodesk.ledger import LedgerStore
from cryptodesk.main import create_app
from cryptodesk.models import Asset, User
from cryptodesk.price_feed import StaticPriceSource


@pytest.fixture
def app(tmp_path):
    settings = Settings(database_url=f"sqlite:///{tmp_path / 'api.db'}", log_level="WARNING")
    app = create_app(settings, price_source=StaticPriceSource({"bitcoin": "50000"}))
    with session_scope(app.state.session_factory) as db:
        db.add(Asset(id="bitcoin", symbol="BTC", name="Bitcoin"))
        db.add(User(id=1, username="alice"))
        db.flush()
        LedgerStore(db).adjust_holding(1, "bitcoin", "0.5", txn_type="opening")
    yield app
    app.state.db_engine.dispose()


@pytest.fixture
def client(app):
    return TestClient(app)


def _submit(client, **overrides):
    body = {"user_id": 1, "asset_id": "bitcoin", "type": "sell", "amount": "0.2", "price": "50000", "wallet": "bc1q"}
    body.update(overrides)
    return client.post("/api/transactions", json=body)


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json()["db"] == "connected"


def test_submit_and_approve_flow(client):
    res = _submit(client)
    assert res.status_code == 201
    tx = res.json()
    assert tx["status"] == "pending"

    res = client.patch(f"/api/transactions/{tx['id']}/approve")
    assert res.status_code == 200
    assert res.json()["status"] == "completed"

    assert Decimal(client.get("/api/users/1/balance").json()["cash_balance"]) == Decimal("10000")
    holdings = client.get("/api/users/1/holdings").json()["holdings"]
    assert [(h["asset_id"], Decimal(h["amount"])) for h in holdings] == [("bitcoin", Decimal("0.3"))]

    res = client.patch(f"/api/transactions/{tx['id']}/approve")
    assert res.status_code == 409
    assert res.json()["error"] == "InvalidStateError"


def test_cancel_with_reason(client):
    tx = _submit(client).json()
    res = client.patch(f"/api/transactions/{tx['id']}/cancel", json={"reason": "wallet mismatch"})
    assert res.status_code == 200
    assert res.json()["status"] == "cancelled"
    assert res.json()["cancellation_reason"] == "wallet mismatch"

    res = client.patch(f"/api/transactions/{tx['id']}/cancel")
    assert res.status_code == 409


def test_insufficient_holding_is_conflict(client):
    tx = _submit(client, type="withdrawal", amount="0.5").json()
    res = client.patch(f"/api/transactions/{tx['id']}/approve")
    assert res.status_code == 409
    assert res.json()["error"] == "InsufficientBalanceError"
    assert client.get(f"/api/transactions/{tx['id']}").json()["status"] == "pending"


def test_price_taken_from_quote(client):
    res = _submit(client, type="buy", price=None)
    assert res.status_code == 201
    assert Decimal(res.json()["price"]) == Decimal("50000")


def test_validation_and_not_found(client):
    assert _submit(client, amount="-1").status_code == 422
    assert _submit(client, type="transfer").status_code == 422
    assert _submit(client, user_id=99).status_code == 404
    assert client.get("/api/transactions/nope").status_code == 404
    assert client.patch("/api/transactions/nope/approve").status_code == 404
    assert client.get("/api/users/99/balance").status_code == 404
    assert client.get("/api/users/99/holdings").status_code == 404


def test_list_filters(client):
    first = _submit(client).json()
    _submit(client, type="buy")
    client.patch(f"/api/transactions/{first['id']}/cancel")

    pending = client.get("/api/transactions", params={"user_id": 1, "status": "pending"}).json()
    assert [t["type"] for t in pending] == ["buy"]
    sells = client.get("/api/transactions", params={"type": "sell"}).json()
    assert [t["status"] for t in sells] == ["cancelled"]
    assert client.get("/api/transactions", params={"status": "bogus"}).status_code == 422


def test_ledger_endpoints(client):
    tx = _submit(client).json()
    client.patch(f"/api/transactions/{tx['id']}/approve")

    ledger = client.get("/api/ledger/user/1").json()
    assert ledger["count"] == 3  # opening holding, sell holding, sell cash
    assert {e["currency"] for e in ledger["entries"]} == {"bitcoin", "CASH"}

    assert client.get("/api/ledger/reconcile").json() == {"status": "ok", "mismatches": []}
