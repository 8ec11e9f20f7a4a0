"""
Common API schemas: response envelopes and request bodies.

Every 2xx answer is ``{success: true, status, message, data}``; every error
is ``{success: false, status, error_message, errorCodes, errorDetails}``.
Field names are camelCase because existing dispatcher clients send and
read them that way.

Doc-Types: API_REFERENCE
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


# ── Envelopes ───────────────────────────────────────────────────────────


class GatewayResponse(BaseModel, Generic[T]):
    """Success envelope."""

    success: bool = True
    status: int = 200
    message: str = Field(default="", description="Human-readable outcome")
    data: T = Field(description="Provider payload or gateway data")


class ErrorBody(BaseModel):
    """Error envelope.

    Error Codes:
        ``errorCodes`` carries the provider's own code for provider
        rejections (e.g. a NIC code such as ``"238,"``) and a gateway code
        such as ``CIRCUIT_OPEN`` or ``NOT_CONFIGURED`` otherwise.
    """

    success: bool = False
    status: int
    error_message: str
    errorCodes: str | None = None
    errorDetails: Any = None


def ok(data: Any, message: str = "", status: int = 200) -> dict[str, Any]:
    """Build a success envelope as a plain dict."""
    return GatewayResponse[Any](status=status, message=message, data=data).model_dump()


# ── Request bodies ──────────────────────────────────────────────────────


class _Passthrough(BaseModel):
    """Unknown fields are kept and forwarded to the provider."""

    model_config = ConfigDict(extra="allow")


class VehicleRequest(_Passthrough):
    vehicleNumber: str = Field(min_length=1, description="Registration number, e.g. MH12AB1234")


class DriverRequest(_Passthrough):
    dlNumber: str = Field(min_length=1, description="Driving licence number")
    dob: str | None = Field(default=None, description="Date of birth as the provider expects it")


class VehicleRecord(_Passthrough):
    """Vehicle details stored by hand; every field besides ``truckNo`` is kept as sent."""

    truckNo: str = Field(min_length=1, description="Registration number the record is keyed by")


class DriverRecord(_Passthrough):
    dlNumber: str = Field(min_length=1, description="Licence number the record is keyed by")


class EwayGenerateRequest(BaseModel):
    ewayData: dict[str, Any] = Field(description="E-way bill in the common gateway shape")
    isMasterEway: bool = Field(default=False, description="True routes to NIC, False to Whitebooks")


class EwayCancelRequest(BaseModel):
    ewayBillNo: int | str
    cancelRsnCode: int | str
    cancelRmrk: str | None = None


class EinvoiceGenerateRequest(BaseModel):
    invoiceData: dict[str, Any] = Field(description="IRP invoice JSON (Version, TranDtls, DocDtls, ...)")


class EinvoiceCancelRequest(BaseModel):
    irn: str = Field(min_length=1)
    cancelReason: int | str
    cancelRemarks: str | None = None
