#main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.errors import TransactionServiceError
from db import close_pool
from deps.engine import close_engine
from middleware import RequestContextMiddleware
from routes.airtel import router as airtel_router
from routes.health import router as health_router
from routes.metrics import router as metrics_router
from routes.transactions import router as transactions_router
from routes.users import router as users_router
from services.http_errors import domain_error_handler, unhandled_error_handler
from services.observability import configure_logging
from settings import settings, validate_env_settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    close_engine()
    close_pool()


def create_app() -> FastAPI:
    configure_logging(settings.LOG_LEVEL)
    validate_env_settings()

    app = FastAPI(title="MiniBet Payments API", version="1.0.0", lifespan=lifespan)

    # -----------------------------
    # MIDDLEWARE
    # -----------------------------
    app.add_middleware(RequestContextMiddleware)

    # -----------------------------
    # ROUTERS
    # -----------------------------
    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(users_router)
    app.include_router(transactions_router)
    app.include_router(airtel_router)

    # -----------------------------
    # ERRORS
    # -----------------------------
    app.add_exception_handler(TransactionServiceError, domain_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    return app


app = create_app()
