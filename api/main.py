"""
api/main.py -- FastAPI application for the School Records account core.

Gives a UI (or any other client) HTTP access to account creation, login
verification and student record maintenance.

Run with:      uvicorn asgi:app --reload

Request path, outside in:
  TrustedHostMiddleware  only localhost Host headers are served
  CORSMiddleware         browser access for the local UI origins
  SlowAPIMiddleware      per-route limits declared with api.limiter
  log_requests           one access-log line per request

The AccountStore (and with it the connection pool) is created by lifespan()
at startup and disposed there at shutdown. Importing this module opens no
database connections.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from slowapi.middleware import SlowAPIMiddleware

from accounts.service import AccountService
from accounts.store import AccountStore
from api.errors import install_error_handlers
from api.limiter import limiter
from api.models import HealthResponse
from api.routes.v1.accounts import router as accounts_router
from api.routes.v1.auth import router as auth_router
from core.config import Settings, get_settings

_VERSION = "0.3.0"

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("schoolrecords.api")


def build_service(settings: Settings) -> AccountService:
    """Create the store from Settings and wrap it in an AccountService."""
    store = AccountStore(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
    )
    return AccountService(
        store,
        enforce_policy=settings.min_password_policy,
        temp_password_length=settings.temp_password_length,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    service = build_service(get_settings())
    app.state.account_service = service
    logger.info("Account store ready; API accepting requests")
    try:
        yield
    finally:
        service.store.close()
        logger.info("Account store closed")


app = FastAPI(
    title="School Records API",
    description="Account provisioning and authentication for the School Records application.",
    version=_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=["localhost", "127.0.0.1", "*.localhost"],
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type"],
    max_age=3600,
)
app.add_middleware(SlowAPIMiddleware)
app.state.limiter = limiter  # slowapi reads the limiter from app.state

install_error_handlers(app)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "%s %s -> %d in %.1fms (%s)",
        request.method,
        request.url.path,
        response.status_code,
        (time.perf_counter() - started) * 1000,
        request.client.host if request.client else "-",
    )
    return response


app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(accounts_router, prefix="/api/v1", tags=["Accounts"])


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Liveness plus a database round-trip. Not rate limited."""
    service: AccountService = request.app.state.account_service
    database = "ok" if service.store.ping() else "error"
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=_VERSION,
        components={"app": "ok", "database": database},
    )
