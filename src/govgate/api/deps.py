"""
FastAPI dependency injection.

Usage in routers::

    from govgate.api.deps import CurrentTenant, Dispatcher

    @router.post("/vehicle")
    async def vehicle(body: VehicleRequest, tenant: CurrentTenant, dispatcher: Dispatcher):
        ...

Settings are loaded once per process; everything else comes from the
:class:`~govgate.api.gateway.Gateway` stored on ``app.state`` by
``create_app``.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Request

from govgate.api.gateway import Gateway
from govgate.core.errors import ClientRequestError
from govgate.core.settings import GatewaySettings
from govgate.dispatch.dispatcher import ProviderDispatcher, Tenant

# ── Settings (singleton) ─────────────────────────────────────────────────


@lru_cache(maxsize=1)
def get_settings() -> GatewaySettings:
    """Cached settings, loaded once per process."""
    return GatewaySettings()


# ── Gateway objects ──────────────────────────────────────────────────────


def get_gateway(request: Request) -> Gateway:
    return request.app.state.gateway


def get_dispatcher(gateway: Annotated[Gateway, Depends(get_gateway)]) -> ProviderDispatcher:
    return gateway.dispatcher


def get_tenant(request: Request) -> Tenant:
    """Tenant resolved by the dispatcher-auth middleware."""
    tenant = getattr(request.state, "tenant", None)
    if tenant is None:
        raise ClientRequestError("Dispatcher identity headers are required", status_code=401)
    return tenant


# ── Convenience type aliases ─────────────────────────────────────────────

Settings = Annotated[GatewaySettings, Depends(get_settings)]
CurrentGateway = Annotated[Gateway, Depends(get_gateway)]
Dispatcher = Annotated[ProviderDispatcher, Depends(get_dispatcher)]
CurrentTenant = Annotated[Tenant, Depends(get_tenant)]
