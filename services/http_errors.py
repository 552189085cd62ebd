# services/http_errors.py
from __future__ import annotations

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from app.errors import (
    AuthenticationError,
    GatewayError,
    InsufficientBalance,
    InvalidState,
    NotFound,
    TransactionServiceError,
)

logger = logging.getLogger("minibet.http")

# most specific first
DOMAIN_ERROR_HTTP_MAP: tuple[tuple[type[Exception], int], ...] = (
    (NotFound, 404),
    (InsufficientBalance, 400),
    (InvalidState, 400),
    (AuthenticationError, 502),
    (GatewayError, 502),
)


def status_for(exc: Exception) -> int:
    for cls, status in DOMAIN_ERROR_HTTP_MAP:
        if isinstance(exc, cls):
            return status
    return 500


async def domain_error_handler(request: Request, exc: TransactionServiceError):
    status = status_for(exc)
    if status == 500:
        logger.error("domain_error_unmapped path=%s err=%s: %s", request.url.path, type(exc).__name__, exc)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})
    return JSONResponse(status_code=status, content={"detail": str(exc)})


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error path=%s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )
