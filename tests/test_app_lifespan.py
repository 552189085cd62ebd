from fastapi.testclient import TestClient

import deps.engine as engine_deps
from main import create_app


def test_shutdown_closes_the_engine_gateway(engine, gateway, monkeypatch):
    monkeypatch.setattr(engine_deps, "_engine", engine)

    with TestClient(create_app()) as client:
        assert client.get("/health").status_code == 200
        assert gateway.closed is False

    assert gateway.closed is True
    assert engine_deps._engine is None


def test_shutdown_without_engine_is_a_no_op(monkeypatch):
    monkeypatch.setattr(engine_deps, "_engine", None)

    with TestClient(create_app()) as client:
        assert client.get("/health").status_code == 200

    assert engine_deps._engine is None
