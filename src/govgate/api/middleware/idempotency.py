"""
Idempotency middleware for side-effecting POST endpoints.

A client that may resend a request attaches ``X-Idempotency-Key``. The
first request with a key reserves it; a duplicate that arrives while the
first is still running gets 409; once the first completes with a 2xx, its
JSON body and status are replayed for 24 hours with
``X-Idempotency-Cached: true``. Non-2xx outcomes are not stored, so a
failed request can be retried with the same key.

With ``auto_generate`` enabled, requests without a header get a key
derived from the document they carry (e-way bill number, invoice number,
IRN), so a blind resubmission is still caught.
"""

from __future__ import annotations

import json
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from govgate.core.errors import DuplicateInFlightError
from govgate.core.logging import get_logger
from govgate.resilience.idempotency import IdempotencyCache, LookupStatus, derive_key

logger = get_logger(__name__)

KEY_HEADER = "X-Idempotency-Key"
CACHED_HEADER = "X-Idempotency-Cached"


def auto_key(route: str, body: Any) -> str | None:
    """Derive a key from the document in *body*, or None if it has none.

    *route* is the path below the API prefix, e.g. ``/eway/cancel``.
    """
    if not isinstance(body, dict):
        return None

    if route == "/eway/cancel":
        return f"eway-cancel-{body['ewayBillNo']}" if body.get("ewayBillNo") else None
    if route == "/einvoice/cancel":
        return f"einvoice-cancel-{body['irn']}" if body.get("irn") else None
    if route == "/einvoice/generate":
        invoice = body.get("invoiceData") or {}
        doc_no = (invoice.get("DocDtls") or {}).get("No") if isinstance(invoice, dict) else None
        return f"einvoice-{doc_no}" if doc_no else None

    doc = body.get("ewayData") if isinstance(body.get("ewayData"), dict) else body
    return derive_key(doc.get("docNo"), doc.get("fromGstin"), doc.get("toGstin"))


async def _json_body(request: Request) -> Any:
    try:
        return json.loads(await request.body() or b"null")
    except ValueError:
        return None


class IdempotencyMiddleware(BaseHTTPMiddleware):
    """Replay completed responses and reject in-flight duplicates.

    Parameters
    ----------
    app:
        The ASGI application to wrap.
    cache:
        Route-scoped idempotency store.
    enabled:
        Master switch.
    auto_generate:
        Derive keys from request bodies when the header is absent.
    prefix:
        Only POSTs under this prefix are considered.
    """

    def __init__(
        self,
        app: object,
        cache: IdempotencyCache,
        enabled: bool = True,
        auto_generate: bool = False,
        prefix: str = "/api/v1",
    ) -> None:
        super().__init__(app)  # type: ignore[arg-type]
        self._cache = cache
        self._enabled = enabled
        self._auto_generate = auto_generate
        self._prefix = prefix.rstrip("/")

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if not self._enabled or request.method != "POST" or not path.startswith(self._prefix + "/"):
            return await call_next(request)

        key = request.headers.get(KEY_HEADER)
        if not key and self._auto_generate:
            key = auto_key(path[len(self._prefix) :], await _json_body(request))
        if not key:
            return await call_next(request)

        try:
            lookup = self._cache.reserve(path, key)
        except Exception as e:
            logger.error("idempotency_cache_failed", path=path, error=str(e))
            return await call_next(request)

        if lookup.status == LookupStatus.HIT:
            logger.info("idempotency_replayed", path=path, key=key[:16])
            return JSONResponse(
                lookup.response,
                status_code=lookup.status_code or 200,
                headers={CACHED_HEADER: "true"},
            )
        if lookup.status == LookupStatus.IN_PROGRESS:
            logger.warning("idempotency_in_progress", path=path, key=key[:16])
            error = DuplicateInFlightError(key=key)
            return JSONResponse(
                status_code=error.http_status,
                content={"success": False, "status": error.http_status, "error_message": error.message},
            )
        if lookup.status == LookupStatus.BYPASS:
            return await call_next(request)

        # Only a stored 2xx keeps the key; every other exit releases it.
        stored = False
        try:
            response = await call_next(request)
            if not 200 <= response.status_code < 300:
                return response

            body = b"".join([chunk async for chunk in response.body_iterator])  # type: ignore[attr-defined]
            replay = Response(
                content=body,
                status_code=response.status_code,
                headers=dict(response.headers),
                media_type=response.media_type,
            )
            try:
                payload = json.loads(body)
            except ValueError:
                return replay

            self._cache.complete(path, key, payload, response.status_code)
            stored = True
            return replay
        finally:
            if not stored:
                self._cache.abandon(path, key)
