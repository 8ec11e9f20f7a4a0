"""Tests for the VAHAN client and snapshot extraction."""

import base64
from datetime import datetime, timedelta, timezone

import httpx
import pytest
import pytest_asyncio
import respx

from govgate.core.errors import AuthenticationError, EnvelopeError
from govgate.providers.base import BusinessError, Success, TransportError
from govgate.providers.vahan import (
    DRIVER_PATH,
    VEHICLE_PATH,
    VahanClient,
    driver_snapshot,
    vehicle_snapshot,
)

TOKEN_URL = "https://vahan.test/oauth/token"
LOOKUP = "https://vahan-api.test"


@pytest_asyncio.fixture
async def http():
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture
def vahan(settings, http):
    return VahanClient(settings.vahan, http)


def _reply(status: int, body) -> httpx.Response:
    return httpx.Response(status, json=body, request=httpx.Request("POST", LOOKUP))


class TestAuthenticate:
    @pytest.mark.asyncio
    @respx.mock
    async def test_client_credentials_grant(self, vahan):
        route = respx.post(TOKEN_URL).mock(
            return_value=httpx.Response(200, json={"access_token": "oauth-token", "expires_in": 3600})
        )
        credential = await vahan.authenticate()
        assert credential.token == "oauth-token"
        assert credential.expires_at is not None

        request = route.calls.last.request
        expected = base64.b64encode(b"vahan-key:vahan-secret").decode()
        assert request.headers["Authorization"] == f"Basic {expected}"
        assert request.content == b"grant_type=client_credentials"

    @pytest.mark.asyncio
    @respx.mock
    async def test_expiry_follows_injected_clock(self, settings, http):
        now = datetime(2026, 3, 14, 10, 0, tzinfo=timezone.utc)
        vahan = VahanClient(settings.vahan, http, clock=lambda: now)
        respx.post(TOKEN_URL).mock(
            return_value=httpx.Response(200, json={"access_token": "oauth-token", "expires_in": "900"})
        )
        credential = await vahan.authenticate()
        assert credential.expires_at == now + timedelta(seconds=900)

    @pytest.mark.asyncio
    @respx.mock
    async def test_missing_access_token(self, vahan):
        respx.post(TOKEN_URL).mock(return_value=httpx.Response(400, json={"error": "invalid_client"}))
        with pytest.raises(AuthenticationError):
            await vahan.authenticate()


class TestLookup:
    @pytest.mark.asyncio
    @respx.mock
    async def test_vehicle_round_trip(self, vahan, vahan_reply):
        answer = {"result": {"regNo": "MH12AB1234", "owner": "A"}}
        route = respx.post(f"{LOOKUP}{VEHICLE_PATH}").mock(return_value=httpx.Response(200, json=vahan_reply(answer)))

        exchange = vahan.vehicle("oauth-token", {"vehicleNumber": "MH12AB1234"})
        outcome = exchange.decode(await vahan.send(exchange))

        assert isinstance(outcome, Success)
        assert outcome.payload == answer
        request = route.calls.last.request
        assert request.headers["apikey"] == "vahan-key"
        assert request.headers["Authorization"] == "Bearer oauth-token"

    def test_driver_path(self, vahan):
        assert vahan.driver("t", {"dlNumber": "X"}).url == f"{LOOKUP}{DRIVER_PATH}"

    def test_error_envelope_is_business_error(self, vahan, vahan_reply):
        body = vahan_reply({"error": {"code": "RC404", "message": "Vehicle not found"}})
        outcome = vahan.decode(_reply(404, body))
        assert isinstance(outcome, BusinessError)
        assert outcome.code == "RC404"
        assert outcome.message == "VAHAN lookup failed: Vehicle not found"

    def test_plain_unauthorized(self, vahan):
        outcome = vahan.decode(_reply(401, {"message": "Unauthorized"}))
        assert isinstance(outcome, TransportError)
        assert outcome.status_code == 401
        assert outcome.error is None

    def test_answer_outside_envelope(self, vahan):
        outcome = vahan.decode(_reply(200, {"result": {}}))
        assert isinstance(outcome, TransportError)
        assert isinstance(outcome.error, EnvelopeError)

    def test_tampered_envelope(self, vahan, vahan_reply):
        body = vahan_reply({"result": {}})
        body["hash"] = "AAAA"
        outcome = vahan.decode(_reply(200, body))
        assert isinstance(outcome.error, EnvelopeError)


class TestSnapshots:
    def test_driver_snapshot(self):
        decrypted = {
            "result": {
                "dlNumber": "MH1420110062821",
                "name": "R SHARMA",
                "father/husband": "K SHARMA",
                "dob": "02-05-1988",
                "img": "aGVsbG8=",
                "validity": {"nonTransport": "2030-01-01", "transport": "2027-01-01"},
                "address": [{"state": "MH", "district": "Pune", "pin": "411001"}],
                "status": "ACTIVE",
            }
        }
        snapshot = driver_snapshot(decrypted)
        assert snapshot["dlNumber"] == "MH1420110062821"
        assert snapshot["fatherOrHusband"] == "K SHARMA"
        assert snapshot["dob"] == "1988-05-02"
        assert snapshot["driverImage"] == "data:image/jpeg;base64,aGVsbG8="
        assert snapshot["dlValidUpto"] == "2030-01-01"
        assert snapshot["district"] == "Pune"
        assert snapshot["dlStatus"] == "ACTIVE"
        assert snapshot["fullDataJson"] == decrypted["result"]

    def test_driver_snapshot_requires_number(self):
        assert driver_snapshot({"result": {"name": "x"}}) is None
        assert driver_snapshot("not json") is None

    def test_vehicle_snapshot(self):
        assert vehicle_snapshot({"result": {"a": 1}}, "MH12AB1234") == {
            "truckNo": "MH12AB1234",
            "fullDataJson": {"a": 1},
        }
        assert vehicle_snapshot(None, "MH12AB1234") is None
