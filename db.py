# db.py
from contextlib import contextmanager

from psycopg2.extras import RealDictCursor
from psycopg2.pool import ThreadedConnectionPool

from settings import settings

_pool: ThreadedConnectionPool | None = None

APPLICATION_NAME = "minibet_payments"


def init_pool(dsn: str | None = None) -> None:
    """
    Create the process-wide pool. FastAPI runs sync handlers on a threadpool,
    so connections are handed out by a ThreadedConnectionPool.
    """
    global _pool
    if _pool is None:
        _pool = ThreadedConnectionPool(
            minconn=settings.DB_POOL_MIN,
            maxconn=settings.DB_POOL_MAX,
            dsn=dsn or settings.DATABASE_URL,
            connect_timeout=5,
            application_name=APPLICATION_NAME,
        )


def close_pool() -> None:
    global _pool
    if _pool:
        _pool.closeall()
        _pool = None


def _prepare_session(conn) -> None:
    timeout = f"{int(settings.DB_STATEMENT_TIMEOUT_MS)}ms"
    with conn.cursor() as cur:
        cur.execute("SELECT set_config('statement_timeout', %s, false);", (timeout,))
        cur.execute("SELECT set_config('idle_in_transaction_session_timeout', %s, false);", (timeout,))


@contextmanager
def get_conn():
    """
    One database transaction: commit when the block exits cleanly, roll back
    on any exception. The connection always goes back to the pool.
    """
    if _pool is None:
        init_pool()

    conn = _pool.getconn()
    try:
        _prepare_session(conn)
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        _pool.putconn(conn)


def dict_cursor(conn):
    return conn.cursor(cursor_factory=RealDictCursor)
