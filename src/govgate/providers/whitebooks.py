"""Whitebooks GSP clients for e-way bills and e-invoices.

Both APIs authenticate the same way (a GET with the account credentials in
the query string and the client identity in headers) and wrap every answer
in ``{status_cd, status_desc, data, error}``. ``status_cd == 1`` means
success; anything else is a business rejection described by
``error.message`` / ``error.errorCodes``.
"""

from __future__ import annotations

import functools
from typing import Any

import httpx

from govgate.core.errors import AuthenticationError, ClientRequestError
from govgate.core.logging import get_logger
from govgate.core.settings import WhitebooksSettings
from govgate.providers.base import (
    BusinessError,
    Credential,
    Exchange,
    ProviderClient,
    ProviderResponse,
    Success,
    TransportError,
    parse_provider_expiry,
    response_json,
)

logger = get_logger(__name__)


def _succeeded(body: dict[str, Any], *, accept_status: bool = False) -> bool:
    if str(body.get("status_cd")) == "1":
        return True
    # extendvalidity answers with ``status`` instead of ``status_cd``
    return accept_status and str(body.get("status")) == "1"


def decode_whitebooks(
    response: httpx.Response,
    *,
    label: str,
    accept_status: bool = False,
) -> ProviderResponse:
    """Decode a Whitebooks answer into a :data:`ProviderResponse`."""
    if response.status_code in (401, 403):
        return TransportError(f"{label}: provider rejected the token", status_code=response.status_code)

    body = response_json(response)
    if not isinstance(body, dict):
        return TransportError(
            f"{label}: provider returned a non-JSON response",
            status_code=response.status_code,
        )

    if _succeeded(body, accept_status=accept_status):
        return Success(body, raw=body)

    error = body.get("error") or {}
    if not isinstance(error, dict):
        error = {"message": str(error)}
    message = error.get("message") or body.get("status_desc") or "Unknown error"
    code = error.get("errorCodes") or error.get("error_cd") or "UNKNOWN"
    return BusinessError(str(code), f"{label} failed: {message}", details=error or body)


class WhitebooksClient(ProviderClient):
    """Shared handshake and request building for the two Whitebooks APIs."""

    auth_path = ""
    settings: WhitebooksSettings

    def __init__(self, settings: WhitebooksSettings, http: httpx.AsyncClient):
        super().__init__(settings, http)

    def _identity_headers(self) -> dict[str, str]:
        s = self.settings
        return {
            "ip_address": s.ip_address,
            "client_id": s.client_id,
            "client_secret": s.client_secret,
            "gstin": s.gstin,
            "Accept": "application/json",
        }

    def _url(self, path: str) -> str:
        return f"{(self.settings.url or '').rstrip('/')}{path}"

    async def authenticate(self) -> Credential:
        self.require_configured()
        s = self.settings
        response = await self._handshake(
            "GET",
            self._url(self.auth_path),
            params={"email": s.email, "username": s.username, "password": s.password},
            headers=self._identity_headers(),
        )
        body = response_json(response)
        if not isinstance(body, dict) or not _succeeded(body):
            desc = body.get("status_desc") if isinstance(body, dict) else None
            raise AuthenticationError(
                f"Whitebooks authentication failed: {desc or f'HTTP {response.status_code}'}",
                provider=self.name,
            )
        data = body.get("data") or {}
        return Credential(data.get("AuthToken") or "", parse_provider_expiry(data.get("TokenExpiry")))

    def _exchange(
        self,
        method: str,
        path: str,
        token: str,
        *,
        label: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
        accept_status: bool = False,
    ) -> Exchange:
        self.require_configured()
        return Exchange(
            method,
            self._url(path),
            decode=functools.partial(decode_whitebooks, label=label, accept_status=accept_status),
            params={"email": self.settings.email, **(params or {})},
            json=json,
            headers={**self._identity_headers(), "Authorization": f"Bearer {token}"},
        )


def as_int(value: Any, field: str) -> int:
    """Coerce a numeric request field, rejecting the request if it is not one."""
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ClientRequestError(f"{field} must be a number", detail={"field": field}) from e


class WhitebooksEwayClient(WhitebooksClient):
    """E-way bill generation, cancellation and validity extension."""

    name = "whitebooks-eway"
    auth_path = "/ewaybillapi/v1.03/authenticate"

    def generate(self, token: str, payload: dict[str, Any]) -> Exchange:
        """``payload`` must already be normalized for Whitebooks."""
        return self._exchange(
            "POST", "/ewayapi/genewaybill", token, label="Whitebooks eWay Bill generation", json=payload
        )

    def cancel(self, token: str, ewb_no: Any, reason_code: Any, remark: str | None) -> Exchange:
        body = {
            "ewbNo": as_int(ewb_no, "ewayBillNo"),
            "cancelRsnCode": as_int(reason_code, "cancelRsnCode"),
            "cancelRmrk": remark or "",
        }
        return self._exchange("POST", "/ewayapi/canewb", token, label="eWay Bill cancellation", json=body)

    def extend(self, token: str, payload: dict[str, Any]) -> Exchange:
        return self._exchange(
            "POST",
            "/ewayapi/extendvalidity",
            token,
            label="eWay Bill validity extension",
            json=payload,
            accept_status=True,
        )


class WhitebooksEinvoiceClient(WhitebooksClient):
    """IRN generation, cancellation and lookups."""

    name = "whitebooks-einvoice"
    auth_path = "/irnapi/v1.03/authenticate"

    def generate(self, token: str, payload: dict[str, Any]) -> Exchange:
        return self._exchange("POST", "/irnapi/genirn", token, label="eInvoice generation", json=payload)

    def cancel(self, token: str, irn: str, reason: Any, remark: str | None) -> Exchange:
        body = {"Irn": irn, "CnlRsn": str(reason), "CnlRem": remark or ""}
        return self._exchange("POST", "/irnapi/cancelirn", token, label="eInvoice cancellation", json=body)

    def get_by_irn(self, token: str, irn: str) -> Exchange:
        return self._exchange("GET", "/irnapi/getirn", token, label="Get eInvoice by IRN", params={"irn": irn})

    def get_by_doc_details(self, token: str, doc_type: str, doc_no: str, doc_date: str) -> Exchange:
        return self._exchange(
            "GET",
            "/irnapi/getdetails",
            token,
            label="Get eInvoice by document details",
            params={"doctype": doc_type, "docno": doc_no, "docdate": doc_date},
        )


__all__ = [
    "WhitebooksClient",
    "WhitebooksEwayClient",
    "WhitebooksEinvoiceClient",
    "as_int",
    "decode_whitebooks",
]
