# tests/conftest.py

from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

import deps.engine as engine_deps
from app.airtel.client import CollectRequest, DisburseRequest, ProviderResponse
from app.transactions.engine import TransactionEngine
from app.transactions.memory import InMemoryTransactionStore
from main import app
from services.metrics import reset_counters


def airtel_body(
    success: Optional[bool] = True,
    status: Optional[str] = "TS",
    *,
    txn_id: Optional[str] = None,
    airtel_money_id: Optional[str] = None,
    reference_id: Optional[str] = None,
    message: str = "ok",
) -> Dict[str, Any]:
    txn: Dict[str, Any] = {}
    if status is not None:
        txn["status"] = status
    if txn_id is not None:
        txn["id"] = txn_id
    if airtel_money_id is not None:
        txn["airtel_money_id"] = airtel_money_id
    if reference_id is not None:
        txn["reference_id"] = reference_id
    body: Dict[str, Any] = {"data": {"transaction": txn}, "status": {"message": message, "response_code": "DP00800001001"}}
    if success is not None:
        body["status"]["success"] = success
    return body


class FakeGateway:
    """
    Scripted stand-in for AirtelMoneyClient.

    `next_body` is turned into a ProviderResponse; `next_error` is raised instead.
    """

    def __init__(self) -> None:
        self.next_body: Dict[str, Any] = airtel_body()
        self.next_error: Optional[Exception] = None
        # called with the request before answering, e.g. to deliver a callback mid-call
        self.on_call: Optional[Callable[[Any], None]] = None
        self.collects: List[CollectRequest] = []
        self.disbursements: List[DisburseRequest] = []
        self.closed = False

    @property
    def calls(self) -> int:
        return len(self.collects) + len(self.disbursements)

    def _answer(self, req: Any) -> ProviderResponse:
        if self.on_call is not None:
            self.on_call(req)
        if self.next_error is not None:
            raise self.next_error
        return ProviderResponse.from_json(self.next_body)

    def collect_payment(self, req: CollectRequest) -> ProviderResponse:
        self.collects.append(req)
        return self._answer(req)

    def disburse_funds(self, req: DisburseRequest) -> ProviderResponse:
        self.disbursements.append(req)
        return self._answer(req)

    def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def _reset_metrics():
    reset_counters()
    yield
    reset_counters()


@pytest.fixture()
def store():
    return InMemoryTransactionStore()


@pytest.fixture()
def gateway():
    return FakeGateway()


@pytest.fixture()
def engine(store, gateway):
    return TransactionEngine(store, gateway, currency="KES", country="KE")


@pytest.fixture()
def make_user(engine):
    counter = {"n": 0}

    def _make(balance="0", msisdn: Optional[str] = "0712345678"):
        counter["n"] += 1
        n = counter["n"]
        return engine.create_user(
            email=f"player{n}@example.com",
            username=f"player{n}",
            msisdn=msisdn,
            balance=Decimal(str(balance)),
        )

    return _make


@pytest.fixture()
def client(engine, monkeypatch):
    # every route resolves the process engine through deps.engine
    monkeypatch.setattr(engine_deps, "_engine", engine)
    return TestClient(app, raise_server_exceptions=False)
