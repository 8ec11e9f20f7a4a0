"""API schemas package: envelopes and request bodies."""

from govgate.api.schemas.common import (
    DriverRequest,
    EinvoiceCancelRequest,
    EinvoiceGenerateRequest,
    ErrorBody,
    EwayCancelRequest,
    EwayGenerateRequest,
    GatewayResponse,
    VehicleRequest,
    ok,
)

__all__ = [
    "DriverRequest",
    "EinvoiceCancelRequest",
    "EinvoiceGenerateRequest",
    "ErrorBody",
    "EwayCancelRequest",
    "EwayGenerateRequest",
    "GatewayResponse",
    "VehicleRequest",
    "ok",
]
