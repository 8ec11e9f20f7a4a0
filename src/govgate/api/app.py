"""
FastAPI application factory.

``create_app()`` builds the :class:`~govgate.api.gateway.Gateway` and wires
middleware, routers, error handlers and lifespan events into a single
``FastAPI`` instance.

Manifesto:
    The app factory is the single composition root. Providers, breakers,
    caches and stores are built here from settings and reached through
    ``app.state.gateway``, so two apps in one process never share state.

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from govgate.api.deps import get_settings
from govgate.api.gateway import build_gateway
from govgate.api.middleware.dispatcher_auth import DispatcherAuthMiddleware
from govgate.api.middleware.errors import (
    gateway_error_handler,
    http_error_handler,
    unhandled_exception_handler,
    validation_error_handler,
)
from govgate.api.middleware.idempotency import IdempotencyMiddleware
from govgate.api.middleware.rate_limit import RateLimitMiddleware
from govgate.api.middleware.request_id import RequestIDMiddleware
from govgate.core.errors import GatewayError
from govgate.core.logging import configure_logging, get_logger
from govgate.core.settings import GatewaySettings


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup / shutdown hooks."""
    settings: GatewaySettings = app.state.settings
    configure_logging(level=settings.log_level, json_format=settings.log_json)
    log = get_logger("govgate.api")

    gateway = app.state.gateway
    gateway.idempotency.start()
    log.info(
        "govgate_starting",
        version=app.version,
        providers=gateway.provider_status(),
        usage_store=type(gateway.usage_store).__name__,
    )
    try:
        yield
    finally:
        await gateway.aclose()
        log.info("govgate_stopped")


def create_app(
    *,
    settings: GatewaySettings | None = None,
    http: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Build and return a fully-configured FastAPI application.

    Parameters
    ----------
    settings : GatewaySettings | None
        Override settings (useful for testing). When ``None`` the cached
        singleton from :func:`get_settings` is used.
    http : httpx.AsyncClient | None
        Outbound client shared by every provider; tests pass one mounted
        on a mock transport.
    """
    settings = settings or get_settings()
    gateway = build_gateway(settings, http=http)

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
        openapi_url=f"{settings.api_prefix}/openapi.json",
    )

    app.state.settings = settings
    app.state.gateway = gateway
    app.dependency_overrides[get_settings] = lambda: settings

    prefix = settings.api_prefix
    features = settings.features

    # ── Middleware (innermost first; the last added runs first) ──────
    app.add_middleware(
        IdempotencyMiddleware,
        cache=gateway.idempotency,
        enabled=features.enable_idempotency,
        auto_generate=features.auto_generate_idempotency_keys,
        prefix=prefix,
    )
    app.add_middleware(
        RateLimitMiddleware,
        limiters=gateway.rate_limiters,
        enabled=settings.rate_limit.enabled,
        prefix=prefix,
    )
    app.add_middleware(DispatcherAuthMiddleware, prefix=prefix)
    app.add_middleware(RequestIDMiddleware)

    # ── Exception handlers ───────────────────────────────────────────
    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # ── Routers ──────────────────────────────────────────────────────
    from govgate.api.routers import einvoice, eway, health, stats, vahan

    app.include_router(health.router, tags=["health"])
    app.include_router(vahan.router, prefix=prefix, tags=["vahan"])
    app.include_router(eway.router, prefix=prefix, tags=["eway"])
    app.include_router(einvoice.router, prefix=prefix, tags=["einvoice"])
    app.include_router(stats.router, prefix=prefix, tags=["stats"])

    return app
