"""
Error handlers: map gateway errors to the gateway error envelope.

Body shape for every error::

    {"success": false, "status": 503, "error_message": "...",
     "errorCodes": "CIRCUIT_OPEN", "errorDetails": null}
"""

from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from govgate.api.schemas.common import ErrorBody
from govgate.core.errors import (
    ClientRequestError,
    GatewayError,
    ProviderProtocolError,
    RateLimitError,
)
from govgate.core.logging import get_logger

logger = get_logger(__name__)


def error_response(
    *,
    status: int,
    message: str,
    codes: str | None = None,
    details: Any = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorBody(status=status, error_message=message, errorCodes=codes, errorDetails=details)
    return JSONResponse(status_code=status, content=jsonable_encoder(body), headers=headers)


def status_for(exc: GatewayError) -> int:
    if isinstance(exc, ClientRequestError):
        return exc.status_code
    return exc.http_status


async def gateway_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, GatewayError)
    status = status_for(exc)
    details: Any = None
    if isinstance(exc, ProviderProtocolError):
        details = exc.details
    elif isinstance(exc, ClientRequestError):
        details = exc.detail

    log = logger.warning if status < 500 else logger.error
    log(
        "request_failed",
        error_type=exc.__class__.__name__,
        error_code=exc.error_code,
        status=status,
        error=exc.message,
    )

    headers = None
    if isinstance(exc, RateLimitError) and exc.retry_after:
        headers = {"Retry-After": str(exc.retry_after)}
    return error_response(
        status=status,
        message=exc.message,
        codes=exc.error_code,
        details=details,
        headers=headers,
    )


async def validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, RequestValidationError)
    return error_response(
        status=400,
        message="Validation Error",
        codes="VALIDATION_FAILED",
        details=jsonable_encoder(exc.errors()),
    )


async def http_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, StarletteHTTPException)
    message = exc.detail if isinstance(exc.detail, str) else "HTTP error"
    if exc.status_code == 404 and message == "Not Found":
        message = "Route not found"
    return error_response(status=exc.status_code, message=message, headers=getattr(exc, "headers", None))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions; 500 without internals unless debug."""
    logger.error("unhandled_exception", error_type=exc.__class__.__name__, error=str(exc), exc_info=exc)
    debug = request.app.state.settings.debug
    return error_response(
        status=500,
        message=str(exc) if debug else "Internal Server Error",
        codes="UNKNOWN",
    )
