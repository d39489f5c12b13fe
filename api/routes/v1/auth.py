"""
api/routes/v1/auth.py -- Password login endpoint.

Routes:
  POST /api/v1/auth/login -- verify username/password; returns the principal

There is no session or token issued: the caller receives a verdict and the
principal's public fields, nothing more.

Security:
  POST /login is rate-limited per client IP (LOGIN_RATE_LIMIT, default 10/minute).
  AccountService.authenticate() provides timing equalization -- use it, never inline
  a lookup + verify_password() pair here.
  Cache-Control: no-store on every login response.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from accounts.results import ErrorKind
from accounts.service import AccountService
from api.limiter import limiter
from api.models import ErrorDetail, LoginRequest, PrincipalResponse
from core.config import get_settings

router = APIRouter()


@limiter.limit(get_settings().login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=PrincipalResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password.

    Returns the same generic error for an unknown username and a wrong
    password ("bad_credentials") so the response does not reveal which
    usernames exist. A store outage is reported separately as 503.

    Declared as a sync def so FastAPI runs the bcrypt work in its threadpool
    instead of on the event loop.
    """
    service: AccountService = request.app.state.account_service
    outcome = service.authenticate(body.username, body.password)
    if outcome.error is ErrorKind.AUTH_FAILED:
        resp = JSONResponse(
            status_code=401,
            content={"error": ErrorDetail(code="bad_credentials", message="Invalid username or password.").model_dump()},
        )
    elif outcome.error is not None:
        resp = JSONResponse(
            status_code=503,
            content={"error": ErrorDetail(code=outcome.error.value, message="Login is temporarily unavailable.").model_dump()},
        )
    else:
        resp = JSONResponse(
            status_code=200,
            content=PrincipalResponse.from_principal(outcome.value).model_dump(mode="json"),
        )
    resp.headers["Cache-Control"] = "no-store"
    return resp
