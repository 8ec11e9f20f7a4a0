"""Fixtures for API tests: an app wired to mocked provider hosts."""

import pytest
import respx
from fastapi.testclient import TestClient

from govgate.api.app import create_app

IDENTITY = {"X-Dispatcher-ID": "D-7", "X-Mine-ID": "MINE-1", "X-Org-ID": "ORG-1"}


@pytest.fixture
def provider_mock():
    """respx router every outbound provider call goes through."""
    with respx.mock(assert_all_called=False) as router:
        yield router


@pytest.fixture
def app(settings, provider_mock):
    return create_app(settings=settings)


@pytest.fixture
def client(app):
    with TestClient(app, headers=IDENTITY) as c:
        yield c


@pytest.fixture
def anonymous(app):
    """Client that sends no dispatcher identity headers."""
    with TestClient(app) as c:
        yield c
