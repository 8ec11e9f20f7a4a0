"""
Structured error types for the govgate gateway.

Every failure that crosses a layer boundary (provider client → dispatcher →
HTTP surface) is expressed as a ``GatewayError`` subclass. Each error carries
enough metadata for the retry executor to decide whether to try again, for
the API layer to pick a status code, and for logs to explain what happened.

Manifesto:
    - **Typed taxonomy:** transient vs fatal is a property of the type
    - **Explicit retry semantics:** ``retryable`` defaults per class
    - **Provider diagnostics survive:** upstream error codes are preserved
    - **Error chaining:** the original exception is kept as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                         GatewayError                             │
        │   (category, retryable, retry_after, context, cause)             │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  TransientError          ClientRequestError   AuthenticationError│
        │  (retryable=True)        (4xx, fatal)         (AUTH, fatal)      │
        │     │                                                            │
        │  TransientNetworkError   ProviderProtocolError  EnvelopeError    │
        │  TransientServiceError   (PROTOCOL, code kept)  (CRYPTO)         │
        │  RateLimitError                                                  │
        │                                                                  │
        │  CircuitOpenError        DuplicateInFlightError  ConfigError     │
        │  (UPSTREAM)              (CONFLICT)              MissingConfig   │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> err = TransientServiceError("upstream 503", status_code=503)
    >>> err.retryable
    True
    >>> err.with_context(provider="whitebooks-eway").context.provider
    'whitebooks-eway'

    >>> err = ProviderProtocolError(
    ...     "Invalid GSTIN", provider="nic", error_code="238"
    ... )
    >>> err.to_dict()["error_code"]
    '238'

Tags:
    error-handling, exception-hierarchy, retry-logic, govgate

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories used for routing, alerting and status mapping.

    Attributes:
        NETWORK: Connection reset/refused, timeout, DNS
        UPSTREAM: Provider answered with a 5xx/408/429, or its breaker is open
        CLIENT: Provider rejected the request (4xx)
        AUTH: Credential handshake failed
        PROTOCOL: Provider wrapped a business error in a success envelope
        CRYPTO: Envelope encryption/decryption or HMAC failure
        CONFLICT: Idempotency key already in flight
        RATE_LIMIT: Inbound rate limit exceeded
        CONFIG: Missing/invalid settings
        INTERNAL: Bugs, unexpected state
        UNKNOWN: Uncategorized errors
    """

    NETWORK = "NETWORK"
    UPSTREAM = "UPSTREAM"
    CLIENT = "CLIENT"
    AUTH = "AUTH"
    PROTOCOL = "PROTOCOL"
    CRYPTO = "CRYPTO"
    CONFLICT = "CONFLICT"
    RATE_LIMIT = "RATE_LIMIT"
    CONFIG = "CONFIG"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only non-None fields end up in ``to_dict()``; anything that has no typed
    slot goes into ``metadata``. Never put credentials here.

    Attributes:
        provider: Provider client name (``vahan``, ``nic``, ``whitebooks-eway``)
        operation: Operation type (``eway_generate``, ``vahan_vehicle``, ...)
        tenant_id: Mine/tenant identifier of the inbound caller
        request_id: Inbound ``X-Request-ID``
        url: Outbound URL that was being called
        http_status: Outbound HTTP status, if any
        metadata: Additional key-value pairs
    """

    provider: str | None = None
    operation: str | None = None
    tenant_id: str | None = None
    request_id: str | None = None
    url: str | None = None
    http_status: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["provider", "operation", "tenant_id", "request_id", "url", "http_status"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class GatewayError(Exception):
    """
    Base exception for all gateway errors.

    Subclasses set ``default_category``, ``default_retryable``,
    ``http_status`` and ``error_code`` so that call sites only need to pass
    the message and whatever data is specific to the failure.

    Examples:
        >>> error = GatewayError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.retryable
        False
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    # HTTP status the API layer answers with
    http_status: int = 500
    # Stable machine-readable code for the response body
    error_code: str = "INTERNAL"

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: int | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> GatewayError:
        """
        Add context to this error (fluent API).

        Usage:
            raise ClientRequestError("rejected", status_code=400).with_context(
                provider="whitebooks-eway", operation="eway_cancel"
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
            "error_code": self.error_code,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TRANSIENT ERRORS (retryable)
# =============================================================================


class TransientError(GatewayError):
    """Temporary failure that may succeed on retry."""

    default_category = ErrorCategory.NETWORK
    default_retryable = True
    http_status = 503
    error_code = "TRANSIENT"


class TransientNetworkError(TransientError):
    """Connection-level failure: reset, refused, timeout, DNS, broken pipe.

    ``code`` is the POSIX-style symbolic code (``ECONNRESET``, ``ETIMEDOUT``,
    ...) the retry executor matches against its retryable set.
    """

    default_category = ErrorCategory.NETWORK
    http_status = 503
    error_code = "NETWORK_ERROR"

    def __init__(self, message: str, *, code: str, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.code = code

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["code"] = self.code
        return result


class TransientServiceError(TransientError):
    """Provider answered 408/429/500/502/503/504."""

    default_category = ErrorCategory.UPSTREAM
    http_status = 502
    error_code = "UPSTREAM_UNAVAILABLE"

    def __init__(self, message: str, *, status_code: int, body: Any = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.body = body
        self.context.http_status = status_code


class RateLimitError(TransientError):
    """Inbound rate limit exceeded."""

    default_category = ErrorCategory.RATE_LIMIT
    http_status = 429
    error_code = "RATE_LIMITED"

    def __init__(self, message: str = "Rate limit exceeded", retry_after: int | None = None, **kwargs: Any):
        super().__init__(message, retry_after=retry_after, **kwargs)


# =============================================================================
# FATAL ERRORS
# =============================================================================


class ClientRequestError(GatewayError):
    """Provider rejected the request with a non-retryable 4xx."""

    default_category = ErrorCategory.CLIENT
    http_status = 400
    error_code = "BAD_REQUEST"

    def __init__(self, message: str, *, status_code: int = 400, detail: Any = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.detail = detail
        self.context.http_status = status_code


class AuthenticationError(GatewayError):
    """Credential handshake with a provider failed."""

    default_category = ErrorCategory.AUTH
    http_status = 401
    error_code = "PROVIDER_AUTH_FAILED"

    def __init__(self, message: str, *, provider: str, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.provider = provider
        self.context.provider = provider


class ProviderProtocolError(GatewayError):
    """Provider answered but rejected the request with a business error.

    ``error_code`` on the instance is the provider's own code (for example a
    NIC ``errorCodes`` value), kept verbatim for caller diagnostics. NIC
    rejections map to 406 and Whitebooks rejections to 422.
    """

    default_category = ErrorCategory.PROTOCOL
    http_status = 422

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        error_code: str = "UNKNOWN",
        details: Any = None,
        http_status: int | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.provider = provider
        self.error_code = error_code
        self.details = details
        if http_status is not None:
            self.http_status = http_status
        self.context.provider = provider


class EnvelopeError(GatewayError):
    """Envelope could not be built or verified, or the answer was unreadable."""

    default_category = ErrorCategory.CRYPTO
    http_status = 502
    error_code = "ENVELOPE_INVALID"


class CircuitOpenError(GatewayError):
    """Circuit is open and rejecting requests.

    The default fail-open breaker never raises this. A breaker built with
    ``fail_open=False`` raises it from :meth:`CircuitBreaker.execute` when
    the circuit is open and no fallback was given.
    """

    default_category = ErrorCategory.UPSTREAM
    http_status = 503
    error_code = "CIRCUIT_OPEN"

    def __init__(self, message: str = "Circuit breaker is open", *, breaker: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.breaker = breaker


class DuplicateInFlightError(GatewayError):
    """A request with the same idempotency key is still being processed."""

    default_category = ErrorCategory.CONFLICT
    http_status = 409
    error_code = "REQUEST_IN_PROGRESS"

    def __init__(
        self,
        message: str = "A request with this idempotency key is currently being processed",
        *,
        key: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.key = key


class ConfigError(GatewayError):
    """Configuration error."""

    default_category = ErrorCategory.CONFIG
    http_status = 503
    error_code = "NOT_CONFIGURED"


class MissingConfigError(ConfigError):
    """Required configuration is missing."""

    def __init__(self, key: str, message: str | None = None, **kwargs: Any):
        super().__init__(message or f"Missing required configuration: {key}", **kwargs)
        self.key = key


# =============================================================================
# HELPERS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable.

    Plain exceptions are considered non-retryable; the retry executor does
    its own classification for third-party exceptions.
    """
    if isinstance(error, GatewayError):
        return error.retryable
    return False


def get_retry_after(error: Exception) -> int | None:
    """Get the retry-after hint from an error, if any."""
    if isinstance(error, GatewayError):
        return error.retry_after
    return None


def categorize_error(error: Exception) -> ErrorCategory:
    """Categorize any exception into an ErrorCategory."""
    if isinstance(error, GatewayError):
        return error.category

    error_type = type(error).__name__.lower()
    if any(x in error_type for x in ["connection", "timeout", "network", "socket", "transport"]):
        return ErrorCategory.NETWORK
    if any(x in error_type for x in ["auth", "permission"]):
        return ErrorCategory.AUTH
    if any(x in error_type for x in ["json", "decode", "parse"]):
        return ErrorCategory.PROTOCOL
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "GatewayError",
    "TransientError",
    "TransientNetworkError",
    "TransientServiceError",
    "RateLimitError",
    "ClientRequestError",
    "AuthenticationError",
    "ProviderProtocolError",
    "EnvelopeError",
    "CircuitOpenError",
    "DuplicateInFlightError",
    "ConfigError",
    "MissingConfigError",
    "is_retryable",
    "get_retry_after",
    "categorize_error",
]
