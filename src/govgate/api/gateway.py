"""
Gateway composition: builds every long-lived object from settings.

``build_gateway`` is called once by :func:`govgate.api.app.create_app`.
Nothing here is a module-level singleton; tests build as many isolated
gateways as they like.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import httpx

from govgate.core.logging import get_logger
from govgate.core.orm import create_gateway_engine, gateway_session_factory
from govgate.core.settings import GatewaySettings
from govgate.core.snapshots import InMemorySnapshotStore, SnapshotStore, SqlSnapshotStore
from govgate.core.usage import InMemoryUsageStore, SqlUsageStore, UsageRecorder, UsageStore
from govgate.dispatch.dispatcher import ProviderDispatcher
from govgate.providers.nic import NicEwayClient
from govgate.providers.vahan import VahanClient
from govgate.providers.whitebooks import WhitebooksEinvoiceClient, WhitebooksEwayClient
from govgate.resilience.circuit_breaker import CircuitBreakerRegistry
from govgate.resilience.idempotency import IdempotencyCache
from govgate.resilience.rate_limit import KeyedRateLimiter
from govgate.resilience.retry import RetryPolicy

logger = get_logger(__name__)


@dataclass
class Gateway:
    settings: GatewaySettings
    http: httpx.AsyncClient
    breakers: CircuitBreakerRegistry
    idempotency: IdempotencyCache
    usage_store: UsageStore
    usage: UsageRecorder
    snapshots: SnapshotStore
    dispatcher: ProviderDispatcher
    rate_limiters: dict[str, KeyedRateLimiter] = field(default_factory=dict)

    def provider_status(self) -> dict[str, bool]:
        d = self.dispatcher
        return {p.name: p.configured for p in (d.vahan, d.nic, d.whitebooks_eway, d.whitebooks_einvoice)}

    async def aclose(self) -> None:
        await self.idempotency.stop()
        await self.http.aclose()


def _stores(settings: GatewaySettings) -> tuple[UsageStore, SnapshotStore]:
    if not settings.database_url:
        return InMemoryUsageStore(), InMemorySnapshotStore()
    engine = create_gateway_engine(settings.database_url)
    session_factory = gateway_session_factory(engine)
    logger.info("usage_store_sql", backend=engine.dialect.name)
    return SqlUsageStore(session_factory), SqlSnapshotStore(session_factory)


def _rate_limiters(settings: GatewaySettings) -> dict[str, KeyedRateLimiter]:
    rl = settings.rate_limit
    return {
        "vahan": KeyedRateLimiter(rl.vahan, rl.window_seconds),
        "eway": KeyedRateLimiter(rl.eway, rl.window_seconds),
        "einvoice": KeyedRateLimiter(rl.einvoice, rl.window_seconds),
        "global": KeyedRateLimiter(rl.global_limit, rl.window_seconds),
    }


def build_gateway(settings: GatewaySettings, *, http: httpx.AsyncClient | None = None) -> Gateway:
    """Wire providers, resilience registries and stores from *settings*."""
    http = http or httpx.AsyncClient()
    cb = settings.circuit_breaker
    breakers = CircuitBreakerRegistry(
        failure_threshold=cb.failure_threshold,
        success_threshold=cb.success_threshold,
        reset_timeout=cb.reset_timeout,
    )
    idem = settings.idempotency
    idempotency = IdempotencyCache(
        ttl=idem.ttl_seconds,
        max_entries=idem.max_entries,
        sweep_interval=idem.sweep_interval,
    )
    usage_store, snapshots = _stores(settings)
    usage = UsageRecorder(usage_store)
    policy = RetryPolicy(
        max_attempts=settings.retry.max_attempts,
        base_delay=settings.retry.base_delay,
        max_delay=settings.retry.max_delay,
    )

    dispatcher = ProviderDispatcher(
        vahan=VahanClient(settings.vahan, http),
        nic=NicEwayClient(settings.nic, http),
        whitebooks_eway=WhitebooksEwayClient(settings.whitebooks_eway, http),
        whitebooks_einvoice=WhitebooksEinvoiceClient(settings.whitebooks_einvoice, http),
        breakers=breakers,
        usage=usage,
        snapshots=snapshots,
        policy=policy,
        features=settings.features,
    )

    return Gateway(
        settings=settings,
        http=http,
        breakers=breakers,
        idempotency=idempotency,
        usage_store=usage_store,
        usage=usage,
        snapshots=snapshots,
        dispatcher=dispatcher,
        rate_limiters=_rate_limiters(settings),
    )


__all__ = ["Gateway", "build_gateway"]
