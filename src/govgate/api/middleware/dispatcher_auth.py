"""
Dispatcher identity middleware.

Every gateway call is made on behalf of a dispatcher working for a mine
(the tenant usage is billed to) within an organisation, identified by the
``X-Dispatcher-ID``, ``X-Mine-ID`` and ``X-Org-ID`` headers. Requests under
the API prefix without all three are rejected with 401.

Bypass paths: ``/health`` and the OpenAPI docs.
"""

from __future__ import annotations

import re

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from govgate.core.logging import get_logger
from govgate.dispatch.dispatcher import Tenant

logger = get_logger(__name__)

IDENTITY_HEADERS = ("X-Dispatcher-ID", "X-Mine-ID", "X-Org-ID")

_BYPASS_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"^/health"),
    re.compile(r"/docs$"),
    re.compile(r"/redoc$"),
    re.compile(r"/openapi\.json$"),
]


def _is_bypass(path: str) -> bool:
    return any(p.search(path) for p in _BYPASS_PATTERNS)


class DispatcherAuthMiddleware(BaseHTTPMiddleware):
    """Resolve the calling dispatcher into ``request.state.tenant``.

    Parameters
    ----------
    app:
        The ASGI application to wrap.
    prefix:
        Only paths under this prefix require identity headers.
    """

    def __init__(self, app: object, prefix: str = "/api/v1") -> None:
        super().__init__(app)  # type: ignore[arg-type]
        self._prefix = prefix

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if not path.startswith(self._prefix) or _is_bypass(path):
            return await call_next(request)

        dispatcher_id, mine_id, org_id = (request.headers.get(h) for h in IDENTITY_HEADERS)
        if not (dispatcher_id and mine_id and org_id):
            logger.warning("dispatcher_auth_failed", path=path)
            return JSONResponse(
                status_code=401,
                content={
                    "success": False,
                    "status": 401,
                    "error_message": (
                        "Missing required dispatcher identity headers "
                        "(X-Dispatcher-ID, X-Mine-ID, X-Org-ID)"
                    ),
                },
            )

        request.state.tenant = Tenant(tenant_id=mine_id, org_id=org_id, dispatcher_id=dispatcher_id)
        return await call_next(request)
