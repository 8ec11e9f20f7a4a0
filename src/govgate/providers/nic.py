"""NIC e-way bill client.

Every request (the handshake included) carries its own session key: the
payload is encrypted with it and the key itself travels RSA-encrypted in
the ``SEK`` header. Answers are ``{status, data, error}`` where
``status == 0`` means rejection and ``error`` is usually base64 JSON.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any

import httpx

from govgate.core.errors import AuthenticationError, ConfigError
from govgate.core.logging import get_logger
from govgate.core.settings import NicSettings
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
from govgate.providers.envelope import ecb_encrypt, generate_sek, load_public_key, wrap_sek

logger = get_logger(__name__)

# NIC rejections surface as 406 Not Acceptable
NIC_REJECTION_STATUS = 406


def decode_nic_error(error: Any) -> tuple[str, str]:
    """Return ``(code, message)`` for a NIC ``error`` field.

    The field is normally base64 JSON such as ``{"errorCodes": "238,"}``;
    when it does not decode, the raw value is the message and the code is
    ``UNKNOWN``.
    """
    if isinstance(error, str):
        try:
            message = base64.b64decode(error, validate=True).decode("utf-8")
            parsed = json.loads(message)
        except (binascii.Error, UnicodeDecodeError, ValueError):
            return "UNKNOWN", error
        code = parsed.get("errorCodes") if isinstance(parsed, dict) else None
        return (str(code) if code else "UNKNOWN"), message
    return "UNKNOWN", json.dumps(error)


def decode_nic(response: httpx.Response) -> ProviderResponse:
    if response.status_code in (401, 403):
        return TransportError("NIC rejected the token", status_code=response.status_code)

    body = response_json(response)
    if not isinstance(body, dict):
        return TransportError("NIC returned a non-JSON response", status_code=response.status_code)

    if str(body.get("status")) == "0":
        code, message = decode_nic_error(body.get("error"))
        logger.warning("nic_rejected", error_code=code)
        return BusinessError(
            code,
            f"NIC eWay Bill generation failed: {message}",
            details=body.get("error"),
        )
    return Success(body, raw=body)


class NicEwayClient(ProviderClient):
    """NIC e-way bill generation (used for master e-way bills)."""

    name = "nic"
    settings: NicSettings

    def __init__(self, settings: NicSettings, http: httpx.AsyncClient):
        super().__init__(settings, http)
        self._public_key: Any = None

    def _key(self) -> Any:
        if self._public_key is None:
            if not self.settings.public_key:
                raise ConfigError("NIC public key is not configured")
            self._public_key = load_public_key(self.settings.public_key)
        return self._public_key

    def _sealed(self, payload: Any) -> tuple[dict[str, str], dict[str, str]]:
        """Encrypt *payload* under a fresh SEK; returns ``(body, headers)``."""
        sek = generate_sek()
        headers = {"SEK": wrap_sek(sek, self._key()), "Appkey": self.settings.asp_id}
        return {"Data": ecb_encrypt(payload, sek)}, headers

    async def authenticate(self) -> Credential:
        self.require_configured()
        s = self.settings
        body, headers = self._sealed({"UserName": s.username, "Password": s.password, "AppKey": s.asp_id})
        response = await self._handshake("POST", f"{s.url}authenticate", json=body, headers=headers)

        answer = response_json(response)
        if not isinstance(answer, dict) or str(answer.get("status")) != "1":
            raise AuthenticationError("NIC eWay Bill authentication failed", provider=self.name)
        data = answer.get("data") or {}
        return Credential(data.get("AuthToken") or "", parse_provider_expiry(data.get("TokenExpiry")))

    def generate(self, token: str, payload: dict[str, Any]) -> Exchange:
        """``payload`` must already be normalized for NIC."""
        self.require_configured()
        s = self.settings
        body, headers = self._sealed(payload)
        headers.update({"AuthToken": token, "username": s.username, "gstin": s.gstin})
        return Exchange("POST", f"{s.url}genewaybill", decode=decode_nic, json=body, headers=headers)


__all__ = ["NicEwayClient", "NIC_REJECTION_STATUS", "decode_nic", "decode_nic_error"]
