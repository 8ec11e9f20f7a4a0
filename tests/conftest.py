"""
Shared pytest fixtures and configuration for govgate tests.

This module provides:
- Auto-markers by test location
- Gateway settings with every provider configured against fake hosts
- RSA key pairs for envelope tests
- A no-wait sleep for retry tests

Usage:
    Fixtures are auto-discovered by pytest; request them as arguments.
"""

import sys
from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

# Ensure govgate package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from govgate.core.settings import (  # noqa: E402
    FeatureFlags,
    GatewaySettings,
    NicSettings,
    RateLimitSettings,
    RetrySettings,
    VahanSettings,
    WhitebooksSettings,
)

VAHAN_URL = "https://vahan.test"
VAHAN_LOOKUP_URL = "https://vahan-api.test"
NIC_URL = "https://nic.test/ewaybillapi/v1.03/"
WB_EWAY_URL = "https://wb-eway.test"
WB_EINVOICE_URL = "https://wb-einvoice.test"


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)
        if "integration" in str(test_path) or test_path.parts[0] == "api":
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Keys
# =============================================================================


def _pem_pair() -> tuple[str, str]:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    public_pem = key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    return public_pem, private_pem


@pytest.fixture(scope="session")
def provider_keys() -> tuple[str, str]:
    """(public, private) PEM of the provider's key pair."""
    return _pem_pair()


@pytest.fixture(scope="session")
def gateway_keys() -> tuple[str, str]:
    """(public, private) PEM of the gateway's own key pair."""
    return _pem_pair()


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture
def settings(provider_keys, gateway_keys) -> GatewaySettings:
    """Settings with every provider configured and no retry delay."""
    provider_public, _ = provider_keys
    _, gateway_private = gateway_keys
    wb = dict(
        email="ops@mine.test",
        username="mine-user",
        password="wb-pass",
        ip_address="10.0.0.1",
        client_id="wb-client",
        client_secret="wb-secret",
        gstin="29ABCDE1234F1Z5",
    )
    return GatewaySettings(
        _env_file=None,
        retry=RetrySettings(max_attempts=3, base_delay=0.0, max_delay=0.0),
        rate_limit=RateLimitSettings(enabled=False),
        features=FeatureFlags(),
        vahan=VahanSettings(
            url=VAHAN_URL,
            api_url=VAHAN_LOOKUP_URL,
            api_key="vahan-key",
            secret_key="vahan-secret",
            ss_key="shared-secret-0123456789",
            public_key=provider_public,
            private_key=gateway_private,
        ),
        nic=NicSettings(
            url=NIC_URL,
            username="nic-user",
            password="nic-pass",
            asp_id="asp-1",
            gstin="29ABCDE1234F1Z5",
            public_key=provider_public,
        ),
        whitebooks_eway=WhitebooksSettings(url=WB_EWAY_URL, **wb),
        whitebooks_einvoice=WhitebooksSettings(url=WB_EINVOICE_URL, **wb),
    )


@pytest.fixture
def no_sleep():
    """Awaitable sleep that records requested delays instead of waiting."""
    delays: list[float] = []

    async def _sleep(delay: float) -> None:
        delays.append(delay)

    _sleep.delays = delays  # type: ignore[attr-defined]
    return _sleep


@pytest.fixture
def vahan_reply(settings, gateway_keys):
    """Builder for VAHAN answers: payload sealed to the gateway's public key."""
    import base64

    from govgate.providers.envelope import (
        OAEP_SHA256,
        canonical_json,
        gcm_encrypt,
        hmac_sha256,
        load_public_key,
    )

    secret = settings.vahan.ss_key.encode()
    key = load_public_key(gateway_keys[0])

    def _build(payload) -> dict:
        plaintext = canonical_json(payload).encode()
        return {
            "data": gcm_encrypt(plaintext, secret),
            "version": "1.0.0",
            "symmetricKey": base64.b64encode(key.encrypt(secret, OAEP_SHA256)).decode(),
            "hash": hmac_sha256(secret, plaintext),
        }

    return _build
