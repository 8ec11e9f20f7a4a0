"""Retry with classified, jittered exponential backoff.

Wraps one asynchronous provider call. Only failures that can plausibly
succeed on resubmission are retried: recognized transient network codes and
the retryable HTTP statuses. Every other 4xx is final on the first attempt.

Delay before the retry that follows attempt ``n`` (1-based)::

    min(max_delay, base_delay * 2 ** (n - 1) + jitter)
    jitter ~ uniform(-25%, +25%) of the exponential term

Example:
    >>> from govgate.resilience.retry import RetryPolicy, with_retry
    >>>
    >>> result = await with_retry(
    ...     lambda: client.post("/ewayapi/genewaybill", json=payload),
    ...     RetryPolicy(max_attempts=3),
    ...     operation_name="eway-generate",
    ... )
"""

from __future__ import annotations

import asyncio
import errno
import functools
import random
import socket
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import httpx

from govgate.core.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)

DEFAULT_RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

DEFAULT_RETRYABLE_ERROR_CODES = frozenset(
    {
        "ECONNRESET",
        "ECONNREFUSED",
        "ETIMEDOUT",
        "ENOTFOUND",
        "EAI_AGAIN",
        "EPIPE",
        "EHOSTUNREACH",
    }
)

# Longest error message carried into a retry log line
_LOG_MESSAGE_LIMIT = 200


@dataclass(frozen=True)
class RetryPolicy:
    """Immutable retry configuration.

    Attributes:
        max_attempts: Total attempts including the first (>= 1)
        base_delay: Delay in seconds before the first retry
        max_delay: Cap on any single delay in seconds
        retryable_status_codes: HTTP statuses worth retrying
        retryable_error_codes: Symbolic network error codes worth retrying
        jitter_ratio: Jitter as a fraction of the exponential term
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    retryable_status_codes: frozenset[int] = DEFAULT_RETRYABLE_STATUS_CODES
    retryable_error_codes: frozenset[str] = DEFAULT_RETRYABLE_ERROR_CODES
    jitter_ratio: float = 0.25

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")

    def base_delay_for(self, attempt: int) -> float:
        """Delay after *attempt* (1-based) without jitter, capped at ``max_delay``."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    def next_delay(self, attempt: int, rng: Callable[[], float] = random.random) -> float:
        """Delay after *attempt* (1-based) with jitter applied.

        ``rng`` returns a float in ``[0, 1)``; 0.5 means no jitter.
        """
        exponential = self.base_delay * (2 ** (attempt - 1))
        jitter = exponential * self.jitter_ratio * (2 * rng() - 1)
        return max(0.0, min(self.max_delay, exponential + jitter))


DEFAULT_POLICY = RetryPolicy()


@dataclass(frozen=True)
class FailureClassification:
    """Outcome of classifying one failed attempt."""

    retryable: bool
    code: str | None = None
    status_code: int | None = None


def _status_code_of(error: BaseException) -> int | None:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        return status
    return None


def _network_code_of(error: BaseException) -> str | None:
    code = getattr(error, "code", None)
    if isinstance(code, str) and code.isupper():
        return code

    if isinstance(error, httpx.TimeoutException):
        return "ETIMEDOUT"
    if isinstance(error, (httpx.ReadError, httpx.WriteError, httpx.RemoteProtocolError)):
        return "ECONNRESET"

    if isinstance(error, socket.gaierror):
        if error.errno == socket.EAI_AGAIN:
            return "EAI_AGAIN"
        return "ENOTFOUND"
    if isinstance(error, OSError) and error.errno in errno.errorcode:
        return errno.errorcode[error.errno]
    if isinstance(error, ConnectionResetError):
        return "ECONNRESET"
    if isinstance(error, ConnectionRefusedError):
        return "ECONNREFUSED"
    if isinstance(error, BrokenPipeError):
        return "EPIPE"
    if isinstance(error, (TimeoutError, asyncio.TimeoutError)):
        return "ETIMEDOUT"

    if isinstance(error, httpx.ConnectError):
        return "ECONNREFUSED"
    return None


def classify_failure(error: BaseException, policy: RetryPolicy = DEFAULT_POLICY) -> FailureClassification:
    """Decide whether *error* is worth another attempt.

    An HTTP status wins over any network code: a 4xx other than 429 is final
    even if the transport also reported something. Otherwise the exception
    and its ``__cause__`` chain are searched for a recognized network code.
    """
    status = _status_code_of(error)
    if status is not None:
        return FailureClassification(
            retryable=status in policy.retryable_status_codes,
            code=f"HTTP_{status}",
            status_code=status,
        )

    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        code = _network_code_of(current)
        if code is not None:
            return FailureClassification(retryable=code in policy.retryable_error_codes, code=code)
        current = current.__cause__ or current.__context__

    return FailureClassification(retryable=False)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    operation_name: str = "operation",
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    rng: Callable[[], float] = random.random,
) -> T:
    """Run *operation* with retry.

    Args:
        operation: Zero-argument async callable
        policy: Retry policy (default: 3 attempts, 1s base, 10s cap)
        operation_name: Name used in retry log lines
        sleep: Awaitable sleep, injectable for tests
        rng: Source of uniform floats for jitter, injectable for tests

    Returns:
        The first successful result.

    Raises:
        The last error, unchanged, once attempts are exhausted or as soon
        as a non-retryable failure is seen.
    """
    policy = policy or DEFAULT_POLICY
    attempt = 0

    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as exc:
            classification = classify_failure(exc, policy)
            if not classification.retryable:
                raise
            if attempt >= policy.max_attempts:
                logger.error(
                    "retry_exhausted",
                    operation=operation_name,
                    attempts=attempt,
                    error_code=classification.code,
                    error=str(exc)[:_LOG_MESSAGE_LIMIT],
                )
                raise

            delay = policy.next_delay(attempt, rng)
            logger.warning(
                "retry_scheduled",
                operation=operation_name,
                attempt=attempt,
                max_attempts=policy.max_attempts,
                delay=round(delay, 3),
                error_code=classification.code,
                error=str(exc)[:_LOG_MESSAGE_LIMIT],
            )
            await sleep(delay)


def wrap_with_retry(
    func: Callable[..., Awaitable[T]],
    policy: RetryPolicy | None = None,
    *,
    operation_name: str | None = None,
) -> Callable[..., Awaitable[T]]:
    """Return an async callable that runs ``func(*args, **kwargs)`` under :func:`with_retry`."""
    name = operation_name or getattr(func, "__name__", "operation")

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        return await with_retry(lambda: func(*args, **kwargs), policy, operation_name=name)

    return wrapper


__all__ = [
    "DEFAULT_RETRYABLE_STATUS_CODES",
    "DEFAULT_RETRYABLE_ERROR_CODES",
    "RetryPolicy",
    "FailureClassification",
    "classify_failure",
    "with_retry",
    "wrap_with_retry",
]
