"""
E-invoice router (Whitebooks IRP).

Endpoints:
    POST /einvoice/generate                        Generate an IRN
    POST /einvoice/cancel                          Cancel an IRN
    GET  /einvoice/irn/{irn}                       Fetch by IRN
    GET  /einvoice/details?docType&docNo&docDate   Fetch by document details

Doc-Types: API_REFERENCE
"""

from __future__ import annotations

from fastapi import APIRouter, Query

from govgate.api.deps import CurrentTenant, Dispatcher
from govgate.api.schemas.common import EinvoiceCancelRequest, EinvoiceGenerateRequest, ok

router = APIRouter(prefix="/einvoice")


@router.post("/generate")
async def generate(body: EinvoiceGenerateRequest, tenant: CurrentTenant, dispatcher: Dispatcher):
    result = await dispatcher.generate_einvoice(tenant, body.invoiceData)
    return ok(result.data, "eInvoice generated successfully")


@router.post("/cancel")
async def cancel(body: EinvoiceCancelRequest, tenant: CurrentTenant, dispatcher: Dispatcher):
    result = await dispatcher.cancel_einvoice(tenant, body.irn, body.cancelReason, body.cancelRemarks)
    return ok(result.data, "eInvoice cancelled successfully")


@router.get("/irn/{irn}")
async def get_by_irn(irn: str, tenant: CurrentTenant, dispatcher: Dispatcher):
    result = await dispatcher.get_einvoice_by_irn(tenant, irn)
    return ok(result.data, "eInvoice fetched successfully")


@router.get("/details")
async def get_by_doc_details(
    tenant: CurrentTenant,
    dispatcher: Dispatcher,
    docType: str = Query(..., description="INV, CRN or DBN"),
    docNo: str = Query(...),
    docDate: str = Query(..., description="DD/MM/YYYY"),
):
    result = await dispatcher.get_einvoice_by_doc_details(tenant, docType, docNo, docDate)
    return ok(result.data, "eInvoice fetched successfully")
