"""VAHAN (Protean) vehicle registration and driving licence lookups.

Tokens come from an OAuth2 client-credentials grant. Lookup bodies and
answers travel inside the encrypted envelope from
:mod:`govgate.providers.envelope`; error answers use the same envelope, so
they are decrypted before being classified.
"""

from __future__ import annotations

import base64
import json
from datetime import datetime, timedelta
from typing import Any

import httpx

from govgate.core.errors import AuthenticationError, EnvelopeError, GatewayError
from govgate.core.logging import get_logger
from govgate.core.settings import VahanSettings
from govgate.providers.base import (
    BusinessError,
    Credential,
    Exchange,
    ProviderClient,
    ProviderResponse,
    Success,
    TransportError,
    response_json,
)
from govgate.providers.envelope import VahanEnvelope

logger = get_logger(__name__)

VEHICLE_PATH = "/protean/vehicle-detailed-advanced"
DRIVER_PATH = "/retail/dl"


class VahanClient(ProviderClient):
    name = "vahan"
    settings: VahanSettings

    def __init__(self, settings: VahanSettings, http: httpx.AsyncClient, **kwargs: Any):
        super().__init__(settings, http, **kwargs)
        self._envelope: VahanEnvelope | None = None

    @property
    def envelope(self) -> VahanEnvelope:
        if self._envelope is None:
            s = self.settings
            self._envelope = VahanEnvelope(s.ss_key, s.public_key, s.private_key or None)
        return self._envelope

    async def authenticate(self) -> Credential:
        self.require_configured()
        s = self.settings
        basic = base64.b64encode(f"{s.api_key}:{s.secret_key}".encode()).decode("ascii")
        response = await self._handshake(
            "POST",
            f"{(s.url or '').rstrip('/')}/oauth/token",
            data={"grant_type": "client_credentials"},
            headers={"Authorization": f"Basic {basic}"},
        )
        body = response_json(response)
        if not isinstance(body, dict) or not body.get("access_token"):
            raise AuthenticationError(
                f"VAHAN token request failed (HTTP {response.status_code})", provider=self.name
            )

        expires_at = None
        expires_in = body.get("expires_in")
        if isinstance(expires_in, (int, float)) or (isinstance(expires_in, str) and expires_in.isdigit()):
            expires_at = self._clock() + timedelta(seconds=int(expires_in))
        return Credential(body["access_token"], expires_at)

    def _lookup(self, path: str, token: str, payload: dict[str, Any]) -> Exchange:
        self.require_configured()
        s = self.settings
        return Exchange(
            "POST",
            f"{(s.lookup_url or '').rstrip('/')}{path}",
            decode=self.decode,
            json=self.envelope.seal(payload),
            headers={"apikey": s.api_key, "Authorization": f"Bearer {token}"},
        )

    def vehicle(self, token: str, payload: dict[str, Any]) -> Exchange:
        return self._lookup(VEHICLE_PATH, token, payload)

    def driver(self, token: str, payload: dict[str, Any]) -> Exchange:
        return self._lookup(DRIVER_PATH, token, payload)

    def decode(self, response: httpx.Response) -> ProviderResponse:
        body = response_json(response)
        is_envelope = isinstance(body, dict) and "symmetricKey" in body
        if response.status_code in (401, 403) and not is_envelope:
            return TransportError("VAHAN rejected the token", status_code=response.status_code)
        if not is_envelope:
            return TransportError(
                "VAHAN returned a response outside the envelope",
                status_code=response.status_code,
                error=EnvelopeError("Response is not a VAHAN envelope"),
            )

        try:
            plaintext = self.envelope.open(body)
        except GatewayError as e:
            logger.error("vahan_envelope_invalid", error=e.message)
            return TransportError(e.message, status_code=response.status_code, error=e)

        try:
            decrypted: Any = json.loads(plaintext)
        except ValueError:
            decrypted = plaintext

        if response.status_code >= 400:
            code, message = _error_fields(decrypted, response.status_code)
            return BusinessError(code, f"VAHAN lookup failed: {message}", details=decrypted)
        return Success(decrypted, raw=body)


def _error_fields(decrypted: Any, status_code: int) -> tuple[str, str]:
    if isinstance(decrypted, dict):
        error = decrypted.get("error")
        if isinstance(error, dict):
            decrypted = {**decrypted, **error}
        code = decrypted.get("code") or decrypted.get("errorCode") or decrypted.get("statusCode")
        message = decrypted.get("message") or decrypted.get("errorMessage") or decrypted.get("status")
        return str(code or f"HTTP_{status_code}"), str(message or "Unknown error")
    return f"HTTP_{status_code}", str(decrypted)[:200]


# ── Snapshots ────────────────────────────────────────────────────────────


def _value(obj: Any, key: str) -> Any:
    if not isinstance(obj, dict):
        return None
    value = obj.get(key)
    return None if value in (None, "") else value


def _iso_date(value: Any) -> Any:
    """``DD-MM-YYYY`` → ``YYYY-MM-DD``; other values pass through."""
    if not isinstance(value, str):
        return value
    try:
        return datetime.strptime(value, "%d-%m-%Y").strftime("%Y-%m-%d")
    except ValueError:
        return value


def driver_snapshot(decrypted: Any) -> dict[str, Any] | None:
    """Flatten a licence lookup result for the driver snapshot store.

    Returns None when the answer has no ``result.dlNumber``.
    """
    result = _value(decrypted, "result")
    dl_number = _value(result, "dlNumber")
    if not dl_number:
        return None

    addresses = _value(result, "address") or []
    first_address = addresses[0] if isinstance(addresses, list) and addresses else {}
    validity = _value(result, "validity") or {}
    image = _value(result, "img")

    return {
        "dlNumber": dl_number,
        "fullName": _value(result, "name"),
        "fatherOrHusband": _value(result, "father/husband") or _value(result, "fatherOrHusband"),
        "dob": _iso_date(_value(result, "dob")),
        "bloodGroup": _value(result, "bloodGroup"),
        "driverImage": f"data:image/jpeg;base64,{image}" if image else None,
        "dlIssueDate": _value(result, "issueDate"),
        "dlValidityNonTransport": _value(validity, "nonTransport"),
        "dlValidityTransport": _value(validity, "transport"),
        "dlValidUpto": _value(validity, "nonTransport") or _value(validity, "transport"),
        "covDetails": _value(result, "covDetails"),
        "state": _value(first_address, "state"),
        "district": _value(first_address, "district"),
        "pincode": _value(first_address, "pin"),
        "completeAddress": _value(first_address, "completeAddress"),
        "dlStatus": _value(result, "status"),
        "statusDetails": _value(result, "statusDetails"),
        "endorsementAndHazardousDetails": _value(result, "endorsementAndHazardousDetails"),
        "fullDataJson": result,
    }


def vehicle_snapshot(decrypted: Any, vehicle_number: str) -> dict[str, Any] | None:
    """Snapshot of a registration lookup, keyed by the requested number."""
    if not isinstance(decrypted, dict) or not vehicle_number:
        return None
    result = decrypted.get("result", decrypted)
    return {"truckNo": vehicle_number, "fullDataJson": result}


__all__ = ["VahanClient", "driver_snapshot", "vehicle_snapshot", "VEHICLE_PATH", "DRIVER_PATH"]
