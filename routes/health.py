# routes/health.py
from __future__ import annotations

import os

from fastapi import APIRouter

from db import get_conn
from settings import settings

router = APIRouter(tags=["health"])

MIGRATION_REVISION = "0001_baseline_schema"


def _check_db() -> tuple[bool, str | None]:
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
        return True, None
    except Exception as exc:
        return False, f"{type(exc).__name__}: {exc}"


def _check_migrations() -> bool:
    """True once alembic has stamped a revision and both tables exist."""
    try:
        with get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT
                      to_regclass('public.alembic_version') IS NOT NULL,
                      to_regclass('public.users') IS NOT NULL,
                      to_regclass('public.transactions') IS NOT NULL;
                    """
                )
                if not all(cur.fetchone()):
                    return False
                cur.execute("SELECT version_num FROM alembic_version LIMIT 1;")
                row = cur.fetchone()
                return bool(row and row[0])
    except Exception:
        return False


@router.get("/health")
def health():
    # liveness only, never touches the database
    return {
        "ok": True,
        "env": settings.ENV,
        "country": settings.AIRTEL_COUNTRY,
        "currency": settings.AIRTEL_CURRENCY,
        "git_sha": (os.getenv("GIT_SHA") or "").strip() or None,
    }


@router.get("/readyz")
def readyz():
    db_ok, db_error = _check_db()
    migrations_ok = db_ok and _check_migrations()
    return {
        "ready": bool(db_ok and migrations_ok),
        "db_ok": db_ok,
        "db_error": db_error,
        "migrations_ok": migrations_ok,
        "migration_revision": MIGRATION_REVISION,
    }
