"""Core primitives: errors, logging, settings, persistence and usage.

Manifesto:
    Everything the resilience and provider layers share lives here and
    depends on nothing else in govgate. Errors carry enough structure
    for the HTTP layer to map them without knowing who raised them.
"""

from govgate.core.errors import (
    AuthenticationError,
    CircuitOpenError,
    ClientRequestError,
    ConfigError,
    DuplicateInFlightError,
    EnvelopeError,
    ErrorCategory,
    ErrorContext,
    GatewayError,
    MissingConfigError,
    ProviderProtocolError,
    RateLimitError,
    TransientError,
    TransientNetworkError,
    TransientServiceError,
)
from govgate.core.logging import configure_logging, get_logger
from govgate.core.settings import GatewaySettings

__all__ = [
    "AuthenticationError",
    "CircuitOpenError",
    "ClientRequestError",
    "ConfigError",
    "DuplicateInFlightError",
    "EnvelopeError",
    "ErrorCategory",
    "ErrorContext",
    "GatewayError",
    "GatewaySettings",
    "MissingConfigError",
    "ProviderProtocolError",
    "RateLimitError",
    "TransientError",
    "TransientNetworkError",
    "TransientServiceError",
    "configure_logging",
    "get_logger",
]
