"""Tests for the credential manager's caching and shared refresh."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from govgate.core.errors import AuthenticationError, TransientNetworkError
from govgate.providers.base import Credential
from govgate.providers.credentials import CredentialManager

NOW = datetime(2026, 3, 14, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self) -> None:
        self.now = NOW

    def __call__(self) -> datetime:
        return self.now


class Handshake:
    """Counts handshakes; optionally waits on an event before answering."""

    def __init__(
        self,
        *,
        expires_in: float | None = 3600,
        gate: asyncio.Event | None = None,
        clock: FakeClock | None = None,
    ):
        self.calls = 0
        self.clock = clock
        self.expires_in = expires_in
        self.gate = gate
        self.error: Exception | None = None

    async def __call__(self) -> Credential:
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        now = self.clock() if self.clock is not None else NOW
        expires = now + timedelta(seconds=self.expires_in) if self.expires_in is not None else None
        return Credential(f"token-{self.calls}", expires)


@pytest.fixture
def clock():
    return FakeClock()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_caches_until_expiry(self, clock):
        handshake = Handshake(expires_in=3600, clock=clock)
        manager = CredentialManager("nic", handshake, clock=clock)
        assert await manager.ensure_authenticated() == "token-1"
        assert await manager.ensure_authenticated() == "token-1"
        assert handshake.calls == 1

        clock.now = NOW + timedelta(seconds=3600)
        assert manager.is_valid() is False
        assert await manager.ensure_authenticated() == "token-2"

    @pytest.mark.asyncio
    async def test_default_ttl_when_provider_gives_none(self, clock):
        manager = CredentialManager("vahan", Handshake(expires_in=None), default_ttl=60, clock=clock)
        await manager.ensure_authenticated()
        assert manager.expires_at == NOW + timedelta(seconds=60)

    @pytest.mark.asyncio
    async def test_invalidate_forces_handshake(self, clock):
        handshake = Handshake()
        manager = CredentialManager("nic", handshake, clock=clock)
        await manager.ensure_authenticated()
        manager.invalidate()
        assert manager.token is None
        await manager.ensure_authenticated()
        assert handshake.calls == 2

    @pytest.mark.asyncio
    async def test_expired_token_rejected(self, clock):
        manager = CredentialManager("nic", Handshake(expires_in=-10), clock=clock)
        with pytest.raises(AuthenticationError):
            await manager.ensure_authenticated()
        assert manager.token is None

    @pytest.mark.asyncio
    async def test_empty_token_rejected(self, clock):
        async def empty():
            return Credential("")

        with pytest.raises(AuthenticationError):
            await CredentialManager("nic", empty, clock=clock).ensure_authenticated()

    @pytest.mark.asyncio
    async def test_unexpected_error_wrapped(self, clock):
        handshake = Handshake()
        handshake.error = KeyError("AuthToken")
        manager = CredentialManager("whitebooks-eway", handshake, clock=clock)
        with pytest.raises(AuthenticationError) as exc_info:
            await manager.ensure_authenticated()
        assert exc_info.value.provider == "whitebooks-eway"

    @pytest.mark.asyncio
    async def test_transient_error_passes_through(self, clock):
        handshake = Handshake()
        handshake.error = TransientNetworkError("reset", code="ECONNRESET")
        with pytest.raises(TransientNetworkError):
            await CredentialManager("nic", handshake, clock=clock).ensure_authenticated()


class TestSharedRefresh:
    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_handshake(self, clock):
        """Ten callers with no token: one handshake, same token for all."""
        gate = asyncio.Event()
        handshake = Handshake(gate=gate)
        manager = CredentialManager("whitebooks-eway", handshake, clock=clock)

        callers = [asyncio.create_task(manager.ensure_authenticated()) for _ in range(10)]
        await asyncio.sleep(0)
        assert manager.refreshing is True
        gate.set()
        tokens = await asyncio.gather(*callers)

        assert handshake.calls == 1
        assert set(tokens) == {"token-1"}
        assert manager.refreshing is False

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_failure(self, clock):
        gate = asyncio.Event()
        handshake = Handshake(gate=gate)
        handshake.error = AuthenticationError("bad password", provider="nic")
        manager = CredentialManager("nic", handshake, clock=clock)

        callers = [asyncio.create_task(manager.ensure_authenticated()) for _ in range(5)]
        await asyncio.sleep(0)
        gate.set()
        results = await asyncio.gather(*callers, return_exceptions=True)

        assert handshake.calls == 1
        assert all(isinstance(r, AuthenticationError) for r in results)
        assert manager.refreshing is False

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_cancel_refresh(self, clock):
        gate = asyncio.Event()
        handshake = Handshake(gate=gate)
        manager = CredentialManager("vahan", handshake, clock=clock)

        first = asyncio.create_task(manager.ensure_authenticated())
        second = asyncio.create_task(manager.ensure_authenticated())
        await asyncio.sleep(0)
        first.cancel()
        gate.set()
        assert await second == "token-1"
        assert handshake.calls == 1
