"""
govgate logging - structured logging with credential redaction.

The gateway handles provider passwords, client secrets, bearer tokens and
wrapped symmetric keys on every call. All of it flows through the same
structlog processor chain, and the redaction processor masks those keys
before anything is rendered.

Architecture:
    ::

        configure_logging(level="INFO", json_format=None, service="govgate")
            │
            ▼
        processor chain:
          1. TimeStamper (iso)
          2. merge_contextvars      (request_id, tenant_id bound per request)
          3. add_log_level / add_logger_name
          4. add_service_metadata
          5. redact_secrets
          6. JSONRenderer (non-tty) or ConsoleRenderer (tty)

Examples:
    >>> from govgate.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", service="govgate")
    >>> logger = get_logger(__name__)
    >>> logger.info("eway_generated", doc_no="INV-1", provider="nic")

Tags:
    logging, structlog, observability, redaction, govgate

Doc-Types:
    - API Reference
    - Observability Guide
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Mapping
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_SERVICE_NAME = "govgate"

REDACTED = "***"

# Matched case-insensitively against every key in the event dict
SENSITIVE_KEYS = frozenset(
    {
        "password",
        "client_secret",
        "secret_key",
        "api_key",
        "apikey",
        "authorization",
        "authtoken",
        "auth_token",
        "access_token",
        "token",
        "symmetrickey",
        "ss_key",
        "sek",
        "app_key",
        "private_key",
    }
)


def redact(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {
            k: (REDACTED if str(k).lower() in SENSITIVE_KEYS else redact(v))
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [redact(v) for v in value]
    return value


def redact_secrets(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask credential-bearing keys, including inside nested dicts."""
    for key in list(event_dict.keys()):
        if key.lower() in SENSITIVE_KEYS:
            event_dict[key] = REDACTED
        elif isinstance(event_dict[key], (Mapping, list)):
            event_dict[key] = redact(event_dict[key])
    return event_dict


def _add_service_metadata(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", _SERVICE_NAME)
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "govgate",
) -> None:
    """Configure structured logging for the process.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Service name to include in every event
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service

    if json_format is None:
        json_format = not sys.stdout.isatty()

    processors: list[Processor] = [
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_metadata,
        redact_secrets,
    ]

    if json_format:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper())),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (usually ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs of this task."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context."""
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Context manager for scoped logging context.

    Example:
        async with LogContext(provider="vahan", operation="vahan_vehicle"):
            logger.info("calling_provider")
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    def __exit__(self, *args: Any) -> None:
        unbind_context(*self._context.keys())

    async def __aenter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    async def __aexit__(self, *args: Any) -> None:
        unbind_context(*self._context.keys())


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "redact",
    "redact_secrets",
    "LogContext",
]
