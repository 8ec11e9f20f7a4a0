"""Tests for per-dispatcher rate limiting."""

import pytest
from fastapi.testclient import TestClient

from govgate.api.app import create_app
from govgate.core.settings import RateLimitSettings

IDENTITY = {"X-Dispatcher-ID": "D-7", "X-Mine-ID": "MINE-1", "X-Org-ID": "ORG-1"}


@pytest.fixture
def limited(settings, provider_mock):
    limits = RateLimitSettings(enabled=True, window_seconds=60, vahan=5, eway=2, einvoice=5, global_limit=4)
    app = create_app(settings=settings.model_copy(update={"rate_limit": limits}))
    with TestClient(app, headers=IDENTITY) as client:
        yield client


class TestRateLimit:
    def test_family_limit(self, limited):
        for _ in range(2):
            assert limited.post("/api/v1/eway/cancel", json={}).status_code == 400

        rejected = limited.post("/api/v1/eway/cancel", json={})
        assert rejected.status_code == 429
        assert rejected.json()["error_message"] == "Too many eway requests, please try again later."
        assert int(rejected.headers["Retry-After"]) >= 1

    def test_limit_headers(self, limited):
        response = limited.get("/api/v1/vahan/vehicle/MH12AB1234")
        assert response.headers["X-RateLimit-Limit"] == "5"
        assert response.headers["X-RateLimit-Remaining"] == "4"

    def test_other_family_unaffected(self, limited):
        for _ in range(3):
            limited.post("/api/v1/eway/cancel", json={})
        assert limited.get("/api/v1/vahan/vehicle/MH12AB1234").status_code == 404

    def test_global_limit(self, limited):
        for _ in range(4):
            limited.get("/api/v1/vahan/vehicle/MH12AB1234")
        rejected = limited.get("/api/v1/vahan/vehicle/MH12AB1234")
        assert rejected.status_code == 429
        assert rejected.json()["error_message"] == "Too many requests, please try again later."

    def test_keyed_by_dispatcher(self, limited):
        for _ in range(2):
            limited.post("/api/v1/eway/cancel", json={})
        other = limited.post("/api/v1/eway/cancel", json={}, headers={"X-Dispatcher-ID": "D-8"})
        assert other.status_code == 400

    def test_health_not_limited(self, limited):
        for _ in range(10):
            assert limited.get("/health").status_code == 200
