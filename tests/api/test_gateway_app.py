"""Tests for the assembled gateway application."""

import httpx

from govgate.providers.vahan import VEHICLE_PATH

WB = "https://wb-eway.test"

EWAY = {
    "supplyType": "O",
    "docType": "INV",
    "docNo": "INV-1",
    "docDate": "14/03/2026",
    "fromGstin": "29ABCDE1234F1Z5",
    "toGstin": "27XYZAB1234C1Z1",
    "itemList": [{"productName": "Iron ore"}],
}


def mock_whitebooks(router, generate_response):
    router.get(f"{WB}/ewaybillapi/v1.03/authenticate").mock(
        return_value=httpx.Response(200, json={"status_cd": "1", "data": {"AuthToken": "wb-token"}})
    )
    return router.post(f"{WB}/ewayapi/genewaybill").mock(return_value=generate_response)


class TestHealth:
    def test_health_without_identity(self, anonymous):
        response = anonymous.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "UP"
        assert body["service"] == "govgate"
        assert body["providers"] == {
            "vahan": True,
            "nic": True,
            "whitebooks-eway": True,
            "whitebooks-einvoice": True,
        }

    def test_request_id_echoed(self, anonymous):
        response = anonymous.get("/health", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"


class TestDispatcherIdentity:
    def test_missing_headers_rejected(self, anonymous, provider_mock):
        route = mock_whitebooks(provider_mock, httpx.Response(200, json={"status_cd": "1"}))
        response = anonymous.post("/api/v1/eway/generate", json={"ewayData": EWAY})
        assert response.status_code == 401
        assert response.json()["success"] is False
        assert route.call_count == 0

    def test_partial_headers_rejected(self, anonymous):
        response = anonymous.get("/api/v1/stats/circuits", headers={"X-Dispatcher-ID": "D-7"})
        assert response.status_code == 401


class TestEwayEndpoints:
    def test_generate(self, client, provider_mock):
        mock_whitebooks(provider_mock, httpx.Response(200, json={"status_cd": "1", "data": {"ewayBillNo": 1}}))
        response = client.post("/api/v1/eway/generate", json={"ewayData": EWAY})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "eWay Bill generated successfully"
        assert body["provider"] == "whitebooks-eway"
        assert body["data"]["data"]["ewayBillNo"] == 1

    def test_provider_rejection_envelope(self, client, provider_mock):
        mock_whitebooks(
            provider_mock,
            httpx.Response(200, json={"status_cd": "0", "error": {"message": "Invalid GSTIN", "errorCodes": "238"}}),
        )
        response = client.post("/api/v1/eway/generate", json={"ewayData": EWAY})

        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert body["status"] == 422
        assert body["errorCodes"] == "238"
        assert "Invalid GSTIN" in body["error_message"]

    def test_provider_down_is_502(self, client, provider_mock):
        route = mock_whitebooks(provider_mock, httpx.Response(503))
        response = client.post("/api/v1/eway/generate", json={"ewayData": EWAY})
        assert response.status_code == 502
        assert route.call_count == 3

    def test_missing_fields_is_400(self, client):
        response = client.post("/api/v1/eway/generate", json={"ewayData": {"docNo": "INV-1"}})
        assert response.status_code == 400
        assert "supplyType" in response.json()["errorDetails"]["missing"]

    def test_schema_validation_error(self, client):
        response = client.post("/api/v1/eway/cancel", json={})
        assert response.status_code == 400
        body = response.json()
        assert body["error_message"] == "Validation Error"
        assert body["errorCodes"] == "VALIDATION_FAILED"


class TestVahanEndpoints:
    def test_lookup_then_snapshot(self, client, provider_mock, vahan_reply):
        provider_mock.post("https://vahan.test/oauth/token").mock(
            return_value=httpx.Response(200, json={"access_token": "t", "expires_in": 3600})
        )
        provider_mock.post(f"https://vahan-api.test{VEHICLE_PATH}").mock(
            return_value=httpx.Response(200, json=vahan_reply({"result": {"regNo": "MH12AB1234"}}))
        )

        live = client.post("/api/v1/vahan/vehicle", json={"vehicleNumber": "MH12AB1234"})
        assert live.status_code == 200
        assert live.json()["fromSnapshot"] is False
        assert live.json()["data"] == {"result": {"regNo": "MH12AB1234"}}

        stored = client.get("/api/v1/vahan/vehicle/mh12ab1234")
        assert stored.status_code == 200
        assert stored.json()["data"]["truckNo"] == "MH12AB1234"

    def test_unknown_snapshot_is_404(self, client):
        response = client.get("/api/v1/vahan/driver/DL0000")
        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_save_vehicle_then_update(self, client):
        first = client.post("/api/v1/vahan/save-vehicle", json={"truckNo": "MH12AB1234", "ownerName": "A Rao"})
        assert first.status_code == 200
        client.post("/api/v1/vahan/save-vehicle", json={"truckNo": "mh12ab1234", "fitnessUpto": "2027-01-31"})

        stored = client.get("/api/v1/vahan/vehicle/MH12AB1234").json()["data"]
        assert stored["ownerName"] == "A Rao"
        assert stored["fitnessUpto"] == "2027-01-31"

    def test_save_driver(self, client):
        response = client.post("/api/v1/vahan/save-driver", json={"dlNumber": "MH1420110062821", "name": "S Patil"})
        assert response.status_code == 200
        assert response.json()["data"]["name"] == "S Patil"
        assert client.get("/api/v1/vahan/driver/MH1420110062821").json()["data"]["name"] == "S Patil"

    def test_save_requires_key(self, client):
        assert client.post("/api/v1/vahan/save-vehicle", json={"ownerName": "A Rao"}).status_code == 400
        assert client.post("/api/v1/vahan/save-driver", json={"dlNumber": ""}).status_code == 400


class TestStatsEndpoints:
    def test_usage_counted(self, client, provider_mock):
        mock_whitebooks(provider_mock, httpx.Response(200, json={"status_cd": "1", "data": {}}))
        client.post("/api/v1/eway/generate", json={"ewayData": EWAY})

        rows = client.get("/api/v1/stats/usage", params={"tenantId": "MINE-1"}).json()["data"]
        assert len(rows) == 1
        assert rows[0]["operation"] == "eway_generate"
        assert rows[0]["success_count"] == 1

        summary = client.get("/api/v1/stats/usage/summary").json()["data"]
        assert summary["MINE-1"]["total"] == 1
        assert summary["MINE-1"]["avg_response_ms"] is not None
        assert rows[0]["avg_response_ms"] >= 0

    def test_circuits_and_reset(self, client, provider_mock):
        mock_whitebooks(provider_mock, httpx.Response(200, json={"status_cd": "1", "data": {}}))
        client.post("/api/v1/eway/generate", json={"ewayData": EWAY})

        circuits = client.get("/api/v1/stats/circuits").json()["data"]
        assert circuits["eway-generate-whitebooks"]["state"] == "closed"

        assert client.post("/api/v1/stats/circuits/eway-generate-whitebooks/reset").status_code == 200
        assert client.post("/api/v1/stats/circuits/no-such-breaker/reset").status_code == 404

    def test_open_circuit_degrades_health(self, client, app):
        breaker = app.state.gateway.breakers.get_or_create("eway-cancel")
        for _ in range(5):
            breaker.record_failure()

        body = client.get("/health").json()
        assert body["status"] == "DEGRADED"
        assert body["open_circuits"] == ["eway-cancel"]


class TestFallbackHandlers:
    def test_unknown_route(self, anonymous):
        response = anonymous.get("/nowhere")
        assert response.status_code == 404
        assert response.json()["error_message"] == "Route not found"
