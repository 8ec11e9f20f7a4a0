"""Tests for the NIC e-way bill client."""

import base64
import json

import httpx
import pytest
import pytest_asyncio
import respx
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from govgate.core.errors import AuthenticationError, ConfigError
from govgate.core.settings import NicSettings
from govgate.providers.base import BusinessError, Success, TransportError
from govgate.providers.envelope import OAEP_SHA256, load_private_key
from govgate.providers.nic import NicEwayClient, decode_nic, decode_nic_error

NIC = "https://nic.test/ewaybillapi/v1.03/"


@pytest_asyncio.fixture
async def http():
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture
def nic(settings, http):
    return NicEwayClient(settings.nic, http)


def open_sealed(request: httpx.Request, provider_private_pem: str) -> dict:
    """Decrypt a NIC request the way the portal does."""
    wrapped = base64.b64decode(request.headers["SEK"])
    sek = bytes.fromhex(load_private_key(provider_private_pem).decrypt(wrapped, OAEP_SHA256).decode())
    data = base64.b64decode(json.loads(request.content)["Data"])
    decryptor = Cipher(algorithms.AES(sek + sek), modes.ECB()).decryptor()
    padded = decryptor.update(data) + decryptor.finalize()
    unpadder = padding.PKCS7(128).unpadder()
    return json.loads(unpadder.update(padded) + unpadder.finalize())


def _reply(status: int, body) -> httpx.Response:
    return httpx.Response(status, json=body, request=httpx.Request("POST", NIC))


class TestDecodeError:
    def test_base64_json(self):
        encoded = base64.b64encode(json.dumps({"errorCodes": "238,"}).encode()).decode()
        code, message = decode_nic_error(encoded)
        assert code == "238,"
        assert "238" in message

    def test_plain_string(self):
        assert decode_nic_error("Invalid token!") == ("UNKNOWN", "Invalid token!")

    def test_object(self):
        assert decode_nic_error({"x": 1}) == ("UNKNOWN", '{"x": 1}')


class TestDecode:
    def test_rejection(self):
        encoded = base64.b64encode(b'{"errorCodes":"604,"}').decode()
        outcome = decode_nic(_reply(200, {"status": "0", "error": encoded}))
        assert isinstance(outcome, BusinessError)
        assert outcome.code == "604,"
        assert outcome.message.startswith("NIC eWay Bill generation failed: ")

    def test_success(self):
        outcome = decode_nic(_reply(200, {"status": "1", "data": "encrypted"}))
        assert isinstance(outcome, Success)

    def test_unauthorized(self):
        assert isinstance(decode_nic(_reply(403, {})), TransportError)


class TestAuthenticate:
    @pytest.mark.asyncio
    @respx.mock
    async def test_handshake_is_encrypted(self, nic, provider_keys):
        route = respx.post(f"{NIC}authenticate").mock(
            return_value=httpx.Response(
                200, json={"status": "1", "data": {"AuthToken": "nic-token", "TokenExpiry": "2026-03-14 18:00:00"}}
            )
        )
        credential = await nic.authenticate()
        assert credential.token == "nic-token"

        request = route.calls.last.request
        assert request.headers["Appkey"] == "asp-1"
        assert open_sealed(request, provider_keys[1]) == {
            "UserName": "nic-user",
            "Password": "nic-pass",
            "AppKey": "asp-1",
        }

    @pytest.mark.asyncio
    @respx.mock
    async def test_rejected(self, nic):
        respx.post(f"{NIC}authenticate").mock(return_value=httpx.Response(200, json={"status": "0"}))
        with pytest.raises(AuthenticationError):
            await nic.authenticate()

    @pytest.mark.asyncio
    async def test_missing_public_key(self, http):
        client = NicEwayClient(NicSettings(url=NIC), http)
        with pytest.raises(ConfigError):
            await client.authenticate()


class TestGenerate:
    @pytest.mark.asyncio
    @respx.mock
    async def test_generate_headers_and_payload(self, nic, provider_keys):
        route = respx.post(f"{NIC}genewaybill").mock(
            return_value=httpx.Response(200, json={"status": "1", "data": "x"})
        )
        exchange = nic.generate("nic-token", {"docNo": "INV-1"})
        outcome = exchange.decode(await nic.send(exchange))

        assert isinstance(outcome, Success)
        request = route.calls.last.request
        assert request.headers["AuthToken"] == "nic-token"
        assert request.headers["username"] == "nic-user"
        assert request.headers["gstin"] == "29ABCDE1234F1Z5"
        assert open_sealed(request, provider_keys[1]) == {"docNo": "INV-1"}

    def test_fresh_session_key_per_request(self, nic):
        first = nic.generate("t", {"a": 1})
        second = nic.generate("t", {"a": 1})
        assert first.headers["SEK"] != second.headers["SEK"]
