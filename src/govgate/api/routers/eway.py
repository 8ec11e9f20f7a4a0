"""
E-way bill router.

Endpoints:
    POST /eway/generate    NIC when ``isMasterEway`` is true, Whitebooks otherwise
    POST /eway/cancel      Whitebooks cancellation
    POST /eway/extend      Whitebooks validity extension

All three are covered by the idempotency middleware.

Doc-Types: API_REFERENCE
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body

from govgate.api.deps import CurrentTenant, Dispatcher
from govgate.api.schemas.common import EwayCancelRequest, EwayGenerateRequest, ok

router = APIRouter(prefix="/eway")


@router.post("/generate")
async def generate(body: EwayGenerateRequest, tenant: CurrentTenant, dispatcher: Dispatcher):
    """Generate an e-way bill.

    The body carries the bill in the common gateway shape; it is normalized
    for the selected portal before being sent.

    Example:
        POST /api/v1/eway/generate
        {"isMasterEway": false, "ewayData": {"supplyType": "O", "docNo": "INV-1", ...}}
    """
    result = await dispatcher.generate_eway_bill(tenant, body.ewayData, body.isMasterEway)
    body_out = ok(result.data, "eWay Bill generated successfully")
    body_out["provider"] = result.provider
    return body_out


@router.post("/cancel")
async def cancel(body: EwayCancelRequest, tenant: CurrentTenant, dispatcher: Dispatcher):
    result = await dispatcher.cancel_eway_bill(tenant, body.ewayBillNo, body.cancelRsnCode, body.cancelRmrk)
    return ok(result.data, "eWay Bill cancelled successfully")


@router.post("/extend")
async def extend(tenant: CurrentTenant, dispatcher: Dispatcher, payload: dict[str, Any] = Body(...)):
    """Extend validity; the body is forwarded to Whitebooks as-is."""
    result = await dispatcher.extend_eway_bill(tenant, payload)
    return ok(result.data, "eWay Bill validity extended successfully")
