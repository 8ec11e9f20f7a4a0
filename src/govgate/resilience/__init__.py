"""Resilience primitives for outbound provider calls.

Manifesto:
    Government endpoints time out, throttle and go down for hours. Each
    primitive here handles one failure mode and composes with the others:
    retry inside the circuit breaker, idempotency around both.
"""

from govgate.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
)
from govgate.resilience.idempotency import IdempotencyCache, derive_key, run_idempotent
from govgate.resilience.rate_limit import KeyedRateLimiter, SlidingWindowLimiter
from govgate.resilience.retry import RetryPolicy, classify_failure, with_retry

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitState",
    "IdempotencyCache",
    "KeyedRateLimiter",
    "RetryPolicy",
    "SlidingWindowLimiter",
    "classify_failure",
    "derive_key",
    "run_idempotent",
    "with_retry",
]
