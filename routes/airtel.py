# routes/airtel.py
from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Request
from starlette.concurrency import run_in_threadpool

from deps.engine import get_engine
from schemas import CallbackAck

logger = logging.getLogger("minibet.callbacks")
router = APIRouter(prefix="/airtel", tags=["airtel"])


def _parse_body(raw: bytes) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        logger.warning("callback_body_unparseable size=%s", len(raw))
        return None


@router.post("/callback", response_model=CallbackAck)
async def airtel_callback(request: Request):
    """
    Airtel posts the final outcome here. The provider always gets a 200 so it
    stops retrying; anything that goes wrong is logged.
    """
    raw = await request.body()
    payload = _parse_body(raw)
    logger.info("callback_received size=%s", len(raw))

    try:
        # engine construction and store calls block
        engine = await run_in_threadpool(get_engine)
        outcome = await run_in_threadpool(engine.handle_airtel_callback, payload)
        logger.info(
            "callback_handled matched=%s applied=%s reason=%s",
            outcome.matched,
            outcome.applied,
            outcome.reason,
        )
    except Exception:
        logger.exception("callback_processing_error")

    return CallbackAck()
