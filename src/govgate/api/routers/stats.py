"""
Stats router: usage counters, breaker state and idempotency cache size.

Endpoints:
    GET  /stats/usage                    Counters, optionally for one tenant/period
    GET  /stats/usage/summary            Per-tenant roll-up
    GET  /stats/circuits                 State and counters of every breaker
    POST /stats/circuits/{name}/reset    Force a breaker closed
    GET  /stats/idempotency              Cache entry counts

Manifesto:
    Operators need to see which portal is failing and who is calling it
    without reading logs. Everything here is read from in-process state
    or the usage store; nothing calls a provider.

Doc-Types: API_REFERENCE
"""

from __future__ import annotations

from fastapi import APIRouter, Query

from govgate.api.deps import CurrentGateway
from govgate.api.schemas.common import ok
from govgate.core.errors import ClientRequestError
from govgate.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/stats")


@router.get("/usage")
def usage_stats(
    gateway: CurrentGateway,
    tenant_id: str | None = Query(default=None, alias="tenantId"),
    year: int | None = Query(default=None, ge=2000),
    month: int | None = Query(default=None, ge=1, le=12),
):
    """Usage counters per tenant × operation × month.

    Example:
        GET /api/v1/stats/usage?tenantId=MINE-7&year=2026&month=3
    """
    store = gateway.usage_store
    if tenant_id:
        counters = store.stats_for_tenant(tenant_id, year=year, month=month)
    else:
        counters = store.all_stats(year=year, month=month)
    return ok([c.to_dict() for c in counters])


@router.get("/usage/summary")
def usage_summary(
    gateway: CurrentGateway,
    year: int | None = Query(default=None, ge=2000),
    month: int | None = Query(default=None, ge=1, le=12),
):
    return ok(gateway.usage_store.summary_by_tenant(year=year, month=month))


@router.get("/circuits")
def circuit_stats(gateway: CurrentGateway):
    return ok(gateway.breakers.all_stats())


@router.post("/circuits/{name}/reset")
def reset_circuit(name: str, gateway: CurrentGateway):
    breaker = gateway.breakers.get(name)
    if breaker is None:
        raise ClientRequestError(f"Unknown circuit breaker: {name}", status_code=404)
    breaker.reset()
    logger.warning("circuit_reset_by_operator", breaker=name)
    return ok(breaker.stats(), f"Circuit {name} reset")


@router.get("/idempotency")
def idempotency_stats(gateway: CurrentGateway):
    return ok(gateway.idempotency.stats())
