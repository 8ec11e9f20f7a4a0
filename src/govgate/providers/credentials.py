"""Per-provider credential lifecycle with a shared in-flight refresh.

Every provider needs a token before it can be called (an OAuth access token
for VAHAN, an ``AuthToken`` for NIC and Whitebooks). ``CredentialManager``
caches it until expiry and makes sure that when it lapses under load, only
one authentication request goes out: callers that find the token invalid
while a refresh is running await that same refresh and see the same result,
success or failure.

Expiry comes from the provider when it supplies one; otherwise the
manager's ``default_ttl`` (6 hours unless configured) applies.

Example:
    >>> manager = CredentialManager("whitebooks-eway", client.authenticate)
    >>> token = await manager.ensure_authenticated()
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta

from govgate.core.errors import AuthenticationError, GatewayError
from govgate.core.logging import get_logger
from govgate.providers.base import Credential, utcnow

logger = get_logger(__name__)

DEFAULT_TOKEN_TTL = 6 * 60 * 60


class CredentialManager:
    """Owns one provider's token, its expiry and the in-flight refresh.

    Args:
        provider: Provider name, used in errors and logs
        authenticate_fn: Performs the network handshake and returns a
            :class:`~govgate.providers.base.Credential`
        default_ttl: Seconds a token lives when the provider gives no expiry
        clock: Source of timezone-aware "now"
    """

    def __init__(
        self,
        provider: str,
        authenticate_fn: Callable[[], Awaitable[Credential]],
        *,
        default_ttl: float = DEFAULT_TOKEN_TTL,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.provider = provider
        self._authenticate_fn = authenticate_fn
        self.default_ttl = default_ttl
        self._clock = clock
        self._token: str | None = None
        self._expires_at: datetime | None = None
        self._refresh: asyncio.Task[str] | None = None
        self.authentications = 0

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def expires_at(self) -> datetime | None:
        return self._expires_at

    @property
    def refreshing(self) -> bool:
        return self._refresh is not None

    def is_valid(self) -> bool:
        """True iff a token is held and ``now`` is before its expiry."""
        return (
            self._token is not None
            and self._expires_at is not None
            and self._clock() < self._expires_at
        )

    def invalidate(self) -> None:
        """Forget the token, e.g. after the provider answered 401."""
        if self._token is not None:
            logger.info("credential_invalidated", provider=self.provider)
        self._token = None
        self._expires_at = None

    async def authenticate(self) -> str:
        """Run the provider handshake and store the new token.

        On failure the previous state is left untouched and the error is
        raised: transient network/service errors as they are (so the retry
        executor can decide), anything else as ``AuthenticationError``.
        """
        self.authentications += 1
        try:
            credential = await self._authenticate_fn()
        except GatewayError:
            logger.warning("authentication_failed", provider=self.provider)
            raise
        except Exception as e:
            logger.warning("authentication_failed", provider=self.provider, error=str(e))
            raise AuthenticationError(
                f"Failed to authenticate with {self.provider}",
                provider=self.provider,
                cause=e,
            ) from e

        if not credential.token:
            raise AuthenticationError(
                f"{self.provider} returned an empty token", provider=self.provider
            )

        now = self._clock()
        expires_at = credential.expires_at or now + timedelta(seconds=self.default_ttl)
        if expires_at <= now:
            raise AuthenticationError(
                f"{self.provider} returned an already-expired token", provider=self.provider
            )

        self._token = credential.token
        self._expires_at = expires_at
        logger.info(
            "authenticated",
            provider=self.provider,
            expires_at=expires_at.isoformat(),
            provider_expiry=credential.expires_at is not None,
        )
        return credential.token

    async def _refresh_once(self) -> str:
        try:
            return await self.authenticate()
        finally:
            self._refresh = None

    async def ensure_authenticated(self) -> str:
        """Return a valid token, joining or starting a single refresh.

        The refresh runs as its own task and is shielded, so one caller
        being cancelled does not cancel the refresh the others are waiting on.
        """
        if self.is_valid():
            return self._token  # type: ignore[return-value]

        refresh = self._refresh
        if refresh is None:
            refresh = asyncio.get_running_loop().create_task(self._refresh_once())
            self._refresh = refresh
        return await asyncio.shield(refresh)


__all__ = ["CredentialManager", "DEFAULT_TOKEN_TTL"]
