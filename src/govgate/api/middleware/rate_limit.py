"""
Per-dispatcher rate limiting.

Each provider family has its own sliding one-minute budget (vahan 100,
eway 200, einvoice 150 by default) and a global budget caps one caller
across all of them. Callers are keyed by ``X-Dispatcher-ID``, falling back
to the client IP. Excess requests get 429 with a ``Retry-After`` header.

Limits are per process.
"""

from __future__ import annotations

import math

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from govgate.core.logging import get_logger
from govgate.resilience.rate_limit import KeyedRateLimiter

logger = get_logger(__name__)

FAMILIES = ("vahan", "eway", "einvoice")


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding-window limiter per dispatcher and provider family.

    Parameters
    ----------
    app:
        The ASGI application to wrap.
    limiters:
        ``{"vahan": ..., "eway": ..., "einvoice": ..., "global": ...}``
    enabled:
        Master switch; when ``False`` all requests pass through.
    prefix:
        API prefix the family segment follows.
    """

    def __init__(
        self,
        app: object,
        limiters: dict[str, KeyedRateLimiter],
        enabled: bool = True,
        prefix: str = "/api/v1",
    ) -> None:
        super().__init__(app)  # type: ignore[arg-type]
        self._limiters = limiters
        self._enabled = enabled
        self._prefix = prefix.rstrip("/")

    def _client_key(self, request: Request) -> str:
        dispatcher_id = request.headers.get("X-Dispatcher-ID")
        if dispatcher_id:
            return dispatcher_id
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    def _family(self, path: str) -> str | None:
        if not path.startswith(self._prefix + "/"):
            return None
        segment = path[len(self._prefix) + 1 :].split("/", 1)[0]
        return segment if segment in FAMILIES else None

    def _reject(self, limiter: KeyedRateLimiter, key: str, label: str) -> JSONResponse:
        retry_after = max(1, math.ceil(limiter.get_wait_time(key)))
        return JSONResponse(
            status_code=429,
            content={"success": False, "error_message": f"Too many {label}requests, please try again later."},
            headers={"Retry-After": str(retry_after)},
        )

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        family = self._family(request.url.path)
        if not self._enabled or family is None:
            return await call_next(request)

        key = self._client_key(request)
        global_limiter = self._limiters["global"]
        if not global_limiter.acquire(key):
            logger.warning("rate_limit_exceeded", scope="global", client=key, path=request.url.path)
            return self._reject(global_limiter, key, "")

        limiter = self._limiters[family]
        if not limiter.acquire(key):
            logger.warning("rate_limit_exceeded", scope=family, client=key, path=request.url.path)
            return self._reject(limiter, key, f"{family} ")

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(limiter.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(limiter.remaining(key))
        return response
