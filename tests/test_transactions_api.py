import logging
from decimal import Decimal

import deps.engine as engine_deps
from app.errors import AuthenticationError, GatewayError
from tests.conftest import airtel_body


def _create_user(client, balance="100.00", msisdn="0712345678"):
    r = client.post(
        "/users",
        json={"email": "Player@Example.com", "username": "player", "msisdn": msisdn, "balance": balance},
    )
    assert r.status_code == 201, r.text
    return r.json()


def test_create_and_get_user(client):
    user = _create_user(client)
    assert user["email"] == "player@example.com"
    assert Decimal(user["balance"]) == Decimal("100.00")

    r = client.get(f"/users/{user['id']}")
    assert r.status_code == 200, r.text
    assert r.json()["username"] == "player"

    r = client.get(f"/users/{user['id']}/balance")
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["userId"] == user["id"]
    assert body["currency"] == "KES"


def test_list_users_returns_every_user(client):
    assert client.get("/users").json() == []

    first = _create_user(client)
    second = client.post(
        "/users", json={"email": "other@example.com", "username": "other", "balance": "5.00"}
    ).json()

    r = client.get("/users")
    assert r.status_code == 200, r.text
    assert [u["id"] for u in r.json()] == [first["id"], second["id"]]
    assert Decimal(r.json()[1]["balance"]) == Decimal("5.00")


def test_list_transactions_is_a_bare_array(client):
    user = _create_user(client)
    client.post("/transactions/deposit", json={"userId": user["id"], "amount": "5"})

    r = client.get("/transactions")
    assert r.status_code == 200, r.text
    body = r.json()
    assert isinstance(body, list)
    assert body[0]["userId"] == user["id"]


def test_unknown_user_is_404(client):
    r = client.get("/users/999")
    assert r.status_code == 404
    assert r.json()["detail"] == "User not found"


def test_deposit_endpoint_creates_and_processes(client, gateway):
    user = _create_user(client)

    r = client.post("/transactions/deposit", json={"userId": user["id"], "amount": "50.00"})

    assert r.status_code == 200, r.text
    tx = r.json()
    assert tx["status"] == "COMPLETED"
    assert tx["type"] == "DEPOSIT"
    assert tx["description"] == "Deposit to betting account"
    assert tx["transactionId"].startswith("TXN")
    assert tx["msisdn"] == "712345678"
    assert len(gateway.collects) == 1

    balance = client.get(f"/users/{user['id']}/balance").json()
    assert Decimal(balance["balance"]) == Decimal("150.00")


def test_withdrawal_insufficient_balance_is_400(client, gateway):
    user = _create_user(client, balance="30.00")

    r = client.post(
        "/transactions/withdrawal",
        json={"userId": user["id"], "amount": 50, "description": "cash out"},
    )

    assert r.status_code == 400
    assert r.json()["detail"] == "Insufficient balance"
    assert gateway.calls == 0

    listed = client.get("/transactions", params={"userId": user["id"]}).json()
    assert len(listed) == 1
    assert listed[0]["status"] == "FAILED"
    assert listed[0]["description"] == "cash out"


def test_gateway_error_is_502(client, gateway):
    user = _create_user(client)
    gateway.next_error = GatewayError("Airtel collect returned HTTP 503", http_status=503)

    r = client.post("/transactions/deposit", json={"userId": user["id"], "amount": "10"})

    assert r.status_code == 502
    assert "503" in r.json()["detail"]


def test_auth_error_is_502(client, gateway):
    user = _create_user(client)
    gateway.next_error = AuthenticationError("Failed to authenticate with Airtel Money API")

    r = client.post("/transactions/withdrawal", json={"userId": user["id"], "amount": "10"})

    assert r.status_code == 502


def test_invalid_amount_is_422(client):
    user = _create_user(client)
    for amount in ("0", "-5", "1.234"):
        r = client.post("/transactions/deposit", json={"userId": user["id"], "amount": amount})
        assert r.status_code == 422, amount


def test_process_endpoint_and_state_errors(client, engine, gateway):
    user = _create_user(client)
    gateway.next_body = airtel_body(None, "TIP")
    pending = client.post("/transactions/deposit", json={"userId": user["id"], "amount": "5"}).json()
    assert pending["status"] == "PROCESSING"

    r = client.post(f"/transactions/deposit/{pending['transactionId']}/process")
    assert r.status_code == 400

    r = client.post(f"/transactions/withdrawal/{pending['transactionId']}/process")
    assert r.status_code == 400
    assert "Invalid transaction type" in r.json()["detail"]

    r = client.post("/transactions/deposit/TXN0000/process")
    assert r.status_code == 404


def test_get_transaction_by_internal_id(client):
    user = _create_user(client)
    created = client.post("/transactions/deposit", json={"userId": user["id"], "amount": "5"}).json()

    r = client.get(f"/transactions/{created['id']}")
    assert r.status_code == 200, r.text
    assert r.json()["transactionId"] == created["transactionId"]

    assert client.get("/transactions/9999").status_code == 404


def test_callback_always_acknowledged(client, gateway):
    user = _create_user(client, balance="0")
    gateway.next_body = airtel_body(None, "TIP")
    tx = client.post("/transactions/deposit", json={"userId": user["id"], "amount": "50"}).json()

    r = client.post("/airtel/callback", json={"transaction": {"id": tx["transactionId"], "status": "TS"}})
    assert r.status_code == 200
    assert r.json() == {"message": "Callback received successfully"}
    assert Decimal(client.get(f"/users/{user['id']}/balance").json()["balance"]) == Decimal("50.00")

    # duplicate, garbage and unmatched deliveries are all acknowledged
    for body in (
        {"transaction": {"id": tx["transactionId"], "status": "TS"}},
        {"transaction": {"id": "nope", "status": "TS"}},
        {"unexpected": True},
    ):
        r = client.post("/airtel/callback", json=body)
        assert r.status_code == 200
    r = client.post("/airtel/callback", content=b"not json", headers={"Content-Type": "application/json"})
    assert r.status_code == 200

    assert Decimal(client.get(f"/users/{user['id']}/balance").json()["balance"]) == Decimal("50.00")


def test_callback_acknowledged_when_engine_blows_up(client, engine, monkeypatch):
    def _boom(payload):
        raise RuntimeError("db down")

    monkeypatch.setattr(engine, "handle_airtel_callback", _boom)

    r = client.post("/airtel/callback", json={"transaction": {"id": "X", "status": "TS"}})
    assert r.status_code == 200
    assert r.json()["message"] == "Callback received successfully"


def test_metrics_endpoint_exposes_counters(client):
    user = _create_user(client)
    client.post("/transactions/deposit", json={"userId": user["id"], "amount": "5"})

    r = client.get("/metrics")
    assert r.status_code == 200
    assert "transaction_outcomes_total" in r.text
    assert "airtel_calls_total" not in r.text  # fake gateway bypasses the client


def test_callback_acknowledged_when_engine_cannot_be_built(client, monkeypatch, caplog):
    def _no_database():
        raise RuntimeError("database unreachable")

    monkeypatch.setattr(engine_deps, "_engine", None)
    monkeypatch.setattr(engine_deps, "PgTransactionStore", _no_database)
    caplog.set_level(logging.INFO, logger="minibet.callbacks")

    r = client.post("/airtel/callback", json={"transaction": {"id": "X", "status": "TS"}})

    assert r.status_code == 200
    assert r.json() == {"message": "Callback received successfully"}
    assert any(rec.getMessage() == "callback_processing_error" for rec in caplog.records)
    assert engine_deps._engine is None
