"""Shared provider types: decoded responses, credentials and exchanges.

A provider call is split in two so the resilience layer only sees what it
should. ``ProviderClient.send`` does the network round trip and raises for
transport failures and retryable statuses; that part runs inside retry and
the circuit breaker. The exchange's ``decode`` then turns the HTTP response
into a :data:`ProviderResponse`, outside the breaker, so a provider
rejecting a document never counts as the provider being down.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from govgate.core.errors import (
    MissingConfigError,
    TransientNetworkError,
    TransientServiceError,
)
from govgate.core.logging import get_logger
from govgate.core.settings import ProviderSettings
from govgate.resilience.retry import classify_failure

logger = get_logger(__name__)

IST = timezone(timedelta(hours=5, minutes=30), name="IST")


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)

# Statuses that mean "try again later" rather than "your request is wrong"
TRANSIENT_STATUS_CODES = frozenset({408, 429})


@dataclass(frozen=True)
class Success:
    """The provider accepted the request."""

    payload: Any
    raw: Any = None


@dataclass(frozen=True)
class BusinessError:
    """The provider answered but rejected the request (invalid GSTIN, ...)."""

    code: str
    message: str
    details: Any = None


@dataclass(frozen=True)
class TransportError:
    """The exchange failed below the business level.

    ``error`` carries an exception to re-raise as is (e.g. a broken
    envelope); otherwise ``status_code`` describes the HTTP failure.
    """

    message: str
    status_code: int | None = None
    error: BaseException | None = None


ProviderResponse = Success | BusinessError | TransportError


@dataclass(frozen=True)
class Credential:
    """Token returned by a provider handshake. ``expires_at`` None means unknown."""

    token: str
    expires_at: datetime | None = None


@dataclass
class Exchange:
    """One outbound request plus the function that decodes its response."""

    method: str
    url: str
    decode: Callable[[httpx.Response], ProviderResponse]
    params: dict[str, Any] | None = None
    json: Any = None
    data: dict[str, Any] | None = None
    headers: dict[str, str] = field(default_factory=dict)


def parse_provider_expiry(value: Any) -> datetime | None:
    """Parse a provider ``TokenExpiry`` (``YYYY-MM-DD HH:MM:SS``, IST).

    Returns None for anything unparseable so the default TTL applies.
    """
    if not value or not isinstance(value, str):
        return None
    for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S", "%d/%m/%Y %H:%M:%S"):
        try:
            parsed = datetime.strptime(value.strip(), fmt)
        except ValueError:
            continue
        return parsed.replace(tzinfo=IST).astimezone(timezone.utc)
    logger.debug("token_expiry_unparsed", value=value)
    return None


def response_json(response: httpx.Response) -> Any:
    """Body as JSON, or None when it is not JSON."""
    try:
        return response.json()
    except ValueError:
        return None


class ProviderClient(ABC):
    """Base for provider clients.

    Subclasses implement :meth:`authenticate` (the token handshake) and
    build :class:`Exchange` objects for their operations. The shared
    ``httpx.AsyncClient`` is owned by the application, not the provider.
    """

    name: str = "provider"

    def __init__(
        self,
        settings: ProviderSettings,
        http: httpx.AsyncClient,
        *,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings
        self._http = http
        self._clock = clock

    @property
    def configured(self) -> bool:
        return self.settings.configured

    def require_configured(self) -> None:
        if not self.configured:
            raise MissingConfigError(f"{self.name}.url", f"Provider '{self.name}' is not configured")

    @abstractmethod
    async def authenticate(self) -> Credential:
        """Perform the token handshake."""

    async def send(self, exchange: Exchange) -> httpx.Response:
        """Send *exchange*.

        Raises:
            TransientNetworkError: The request never got an HTTP answer
            TransientServiceError: 5xx, 408 or 429
        """
        try:
            response = await self._http.request(
                exchange.method,
                exchange.url,
                params=exchange.params,
                json=exchange.json,
                data=exchange.data,
                headers=exchange.headers,
                timeout=self.settings.timeout,
            )
        except httpx.TransportError as e:
            code = classify_failure(e).code or "ECONNRESET"
            raise TransientNetworkError(
                f"{self.name}: {e.__class__.__name__} calling provider",
                code=code,
                cause=e,
            ).with_context(provider=self.name, url=exchange.url) from e

        status = response.status_code
        if status >= 500 or status in TRANSIENT_STATUS_CODES:
            raise TransientServiceError(
                f"{self.name} answered HTTP {status}",
                status_code=status,
                body=response_json(response) or response.text[:500],
            ).with_context(provider=self.name, url=exchange.url)
        return response

    async def _handshake(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send an authentication request through :meth:`send`."""
        return await self.send(Exchange(method, url, decode=_undecoded, **kwargs))


def _undecoded(response: httpx.Response) -> ProviderResponse:
    return Success(response_json(response), raw=response)


__all__ = [
    "IST",
    "Success",
    "BusinessError",
    "TransportError",
    "ProviderResponse",
    "Credential",
    "Exchange",
    "ProviderClient",
    "parse_provider_expiry",
    "response_json",
    "utcnow",
]
