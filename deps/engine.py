# deps/engine.py
from threading import Lock

from app.airtel.client import AirtelMoneyClient
from app.transactions.engine import TransactionEngine
from app.transactions.repository import PgTransactionStore
from settings import settings

_lock = Lock()
_engine: TransactionEngine | None = None


def get_engine() -> TransactionEngine:
    # one client (and one token cache) per process
    global _engine
    with _lock:
        if _engine is None:
            _engine = TransactionEngine(
                PgTransactionStore(),
                AirtelMoneyClient(),
                currency=settings.AIRTEL_CURRENCY,
                country=settings.AIRTEL_COUNTRY,
            )
        return _engine


def close_engine() -> None:
    global _engine
    with _lock:
        engine, _engine = _engine, None
    if engine is not None:
        engine.close()
