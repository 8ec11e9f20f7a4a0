"""
Health endpoint, mounted at the root for container healthchecks.

``GET /health`` reports which providers are configured and which breakers
are open. It answers 200 whenever the process is serving; an open breaker
degrades the status but does not fail the check.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone

from fastapi import APIRouter

from govgate import __version__
from govgate.api.deps import CurrentGateway
from govgate.resilience.circuit_breaker import CircuitState

router = APIRouter()

_STARTED = time.monotonic()


@router.get("/health")
def health(gateway: CurrentGateway):
    breakers = gateway.breakers.all_stats()
    open_circuits = sorted(name for name, s in breakers.items() if s["state"] != CircuitState.CLOSED.value)
    return {
        "status": "DEGRADED" if open_circuits else "UP",
        "service": "govgate",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime_seconds": round(time.monotonic() - _STARTED, 1),
        "providers": gateway.provider_status(),
        "open_circuits": open_circuits,
    }
