"""
api/errors.py -- HTTP error mapping for the School Records API.

Two jobs live here:
  raise_for_outcome() turns a failed account Outcome into an HTTPException,
      so the status code for each ErrorKind is decided in one table.
  install_error_handlers() makes every error response, including framework
      validation errors and rate-limit rejections, share one JSON envelope.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from accounts.results import ErrorKind, Outcome
from api.models import ErrorDetail, ErrorResponse

logger = logging.getLogger("schoolrecords.api.errors")

_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.INVALID_INPUT: 422,
    ErrorKind.CONSTRAINT_VIOLATION: 409,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.AUTH_FAILED: 401,
    ErrorKind.STORE_UNAVAILABLE: 503,
    ErrorKind.INDETERMINATE: 503,
}


def http_error(kind: ErrorKind, message: str) -> HTTPException:
    return HTTPException(
        status_code=_STATUS_BY_KIND[kind],
        detail=ErrorDetail(code=kind.value, message=message).model_dump(),
    )


def raise_for_outcome(outcome: Outcome) -> None:
    """Raise the HTTPException matching a failed Outcome. No-op on success."""
    if outcome.error is not None:
        raise http_error(outcome.error, outcome.message or outcome.error.value)


# ---------------------------------------------------------------------------
# Application-wide handlers
# ---------------------------------------------------------------------------


def _envelope(status_code: int, code: str, message: str, detail: Optional[str] = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def _on_rate_limited(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    response = _envelope(429, "rate_limited", "Too many login attempts. Try again later.", str(exc))
    response.headers["Retry-After"] = str(int(getattr(exc, "retry_after", 60)))
    return response


async def _on_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Field locations only: a rejected password value must never be echoed.
    fields = ", ".join(".".join(str(part) for part in err.get("loc", ())) for err in exc.errors())
    return _envelope(422, "validation_error", "Invalid request.", fields or None)


async def _on_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return _envelope(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


async def _on_unhandled(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error in %s %s", request.method, request.url.path)
    return _envelope(500, "internal_error", "Internal server error.")


def install_error_handlers(app: FastAPI) -> None:
    """Register handlers so every error response uses the ErrorResponse envelope.

    Raw exception text is logged and never returned to the client.
    """
    app.add_exception_handler(RateLimitExceeded, _on_rate_limited)
    app.add_exception_handler(RequestValidationError, _on_validation_error)
    app.add_exception_handler(StarletteHTTPException, _on_http_exception)
    app.add_exception_handler(Exception, _on_unhandled)
