"""Circuit breaker for outbound provider calls.

One breaker per named dependency (``eway-generate-nic``, ``vahan-vehicle``,
...) so a failing provider cannot drag calls to a healthy one down with it.

States:
    CLOSED: Normal operation, requests pass through
    OPEN: Dependency considered down; fallback is used when one is given
    HALF_OPEN: Reset timeout elapsed, trial requests test recovery

The breaker is fail-open by default: when it is OPEN and the caller has no
fallback, the call is attempted anyway and a warning is logged. Document
issuance must not become unavailable because of the breaker itself.

Example:
    >>> registry = CircuitBreakerRegistry()
    >>> breaker = registry.get_or_create("eway-generate-nic")
    >>> result = await breaker.execute(lambda: send(payload))
"""

from __future__ import annotations

import inspect
import threading
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, TypeVar

from govgate.core.errors import CircuitOpenError
from govgate.core.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)

# State changes kept for the stats endpoint
STATE_HISTORY_SIZE = 10


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitStats:
    """Counters for circuit breaker monitoring."""

    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    fallback_calls: int = 0
    last_failure_time: datetime | None = None
    last_success_time: datetime | None = None
    state_changes: deque[dict[str, Any]] = field(
        default_factory=lambda: deque(maxlen=STATE_HISTORY_SIZE)
    )

    @property
    def failure_rate(self) -> float:
        """Failure rate as percentage."""
        total = self.successful_calls + self.failed_calls
        if total == 0:
            return 0.0
        return (self.failed_calls / total) * 100


@dataclass
class CircuitBreaker:
    """Per-dependency failure tracker.

    Attributes:
        name: Dependency name
        failure_threshold: Consecutive failures in CLOSED before opening
        success_threshold: Successes in HALF_OPEN needed to close
        reset_timeout: Seconds after the last failure before a trial request is allowed
        fail_open: Run the call anyway when OPEN and no fallback is given
        clock: Monotonic time source in seconds
    """

    name: str = "default"
    failure_threshold: int = 5
    success_threshold: int = 2
    reset_timeout: float = 30.0
    fail_open: bool = True
    clock: Callable[[], float] = time.monotonic

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _success_count: int = field(default=0, init=False)
    _last_failure_time: float | None = field(default=None, init=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False)
    _stats: CircuitStats = field(default_factory=CircuitStats, init=False)

    @property
    def state(self) -> CircuitState:
        """Current state. Reading it never transitions the breaker."""
        with self._lock:
            return self._state

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    @property
    def is_closed(self) -> bool:
        return self.state == CircuitState.CLOSED

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._failure_count

    @property
    def success_count(self) -> int:
        with self._lock:
            return self._success_count

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        if old_state == new_state:
            return
        self._state = new_state
        self._stats.state_changes.append(
            {"from": old_state.value, "to": new_state.value, "at": utcnow().isoformat()}
        )

        if new_state == CircuitState.CLOSED:
            self._failure_count = 0
            self._success_count = 0
        elif new_state == CircuitState.HALF_OPEN:
            self._success_count = 0

        logger.info(
            "circuit_state_changed",
            breaker=self.name,
            from_state=old_state.value,
            to_state=new_state.value,
        )

    def can_request(self) -> bool:
        """Check whether a request may go through.

        In OPEN this moves the breaker to HALF_OPEN once ``reset_timeout``
        has elapsed since the last failure.
        """
        with self._lock:
            if self._state == CircuitState.CLOSED:
                return True

            if self._state == CircuitState.OPEN:
                if (
                    self._last_failure_time is not None
                    and self.clock() - self._last_failure_time >= self.reset_timeout
                ):
                    self._transition_to(CircuitState.HALF_OPEN)
                    return True
                return False

            return True

    def record_success(self) -> None:
        """Record a successful call."""
        with self._lock:
            self._stats.successful_calls += 1
            self._stats.last_success_time = utcnow()

            if self._state == CircuitState.HALF_OPEN:
                self._success_count += 1
                if self._success_count >= self.success_threshold:
                    self._transition_to(CircuitState.CLOSED)
            elif self._state == CircuitState.CLOSED:
                self._failure_count = 0

    def record_failure(self, error: BaseException | None = None) -> None:
        """Record a failed call."""
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = self.clock()
            self._stats.failed_calls += 1
            self._stats.last_failure_time = utcnow()

            if self._state == CircuitState.CLOSED:
                if self._failure_count >= self.failure_threshold:
                    self._transition_to(CircuitState.OPEN)
            elif self._state == CircuitState.HALF_OPEN:
                # Any failure while half-open reopens the circuit
                self._transition_to(CircuitState.OPEN)

    def reset(self) -> None:
        """Return to CLOSED and forget failures (operator action)."""
        with self._lock:
            self._transition_to(CircuitState.CLOSED)
            self._failure_count = 0
            self._success_count = 0
            self._last_failure_time = None

    async def _run_fallback(self, fallback: Callable[[], Any]) -> Any:
        with self._lock:
            self._stats.fallback_calls += 1
        result = fallback()
        if inspect.isawaitable(result):
            result = await result
        return result

    async def execute(
        self,
        fn: Callable[[], Awaitable[T]],
        fallback: Callable[[], Any] | None = None,
    ) -> T:
        """Run *fn* through the breaker.

        Args:
            fn: Zero-argument async callable doing the real work
            fallback: Optional zero-argument callable (sync or async) used
                when the circuit is open

        Returns:
            The result of *fn*, or of *fallback* when it was used.

        Raises:
            Whatever *fn* raised, unchanged, unless the fallback took over.
            ``CircuitOpenError`` only when ``fail_open`` is disabled and no
            fallback is given.
        """
        with self._lock:
            self._stats.total_calls += 1

        if not self.can_request():
            with self._lock:
                self._stats.rejected_calls += 1
            if fallback is not None:
                logger.info("circuit_open_fallback", breaker=self.name)
                return await self._run_fallback(fallback)
            if not self.fail_open:
                raise CircuitOpenError(f"Circuit '{self.name}' is open", breaker=self.name)
            logger.warning("circuit_open_passthrough", breaker=self.name)

        try:
            result = await fn()
        except Exception as exc:
            self.record_failure(exc)
            if fallback is not None and self.is_open:
                logger.warning(
                    "circuit_failure_fallback",
                    breaker=self.name,
                    error=str(exc)[:200],
                )
                return await self._run_fallback(fallback)
            raise

        self.record_success()
        return result

    def stats(self) -> dict[str, Any]:
        """Snapshot of state and counters."""
        with self._lock:
            return {
                "name": self.name,
                "state": self._state.value,
                "failure_count": self._failure_count,
                "success_count": self._success_count,
                "failure_threshold": self.failure_threshold,
                "success_threshold": self.success_threshold,
                "reset_timeout": self.reset_timeout,
                "total_calls": self._stats.total_calls,
                "successful_calls": self._stats.successful_calls,
                "failed_calls": self._stats.failed_calls,
                "rejected_calls": self._stats.rejected_calls,
                "fallback_calls": self._stats.fallback_calls,
                "failure_rate": round(self._stats.failure_rate, 2),
                "last_failure_time": (
                    self._stats.last_failure_time.isoformat() if self._stats.last_failure_time else None
                ),
                "state_changes": list(self._stats.state_changes),
            }


class CircuitBreakerRegistry:
    """Named breakers, created lazily with the registry's defaults.

    Owned by the application's composition root; nothing in govgate keeps a
    module-level registry.
    """

    def __init__(
        self,
        *,
        failure_threshold: int = 5,
        success_threshold: int = 2,
        reset_timeout: float = 30.0,
        fail_open: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._defaults: dict[str, Any] = {
            "failure_threshold": failure_threshold,
            "success_threshold": success_threshold,
            "reset_timeout": reset_timeout,
            "fail_open": fail_open,
            "clock": clock,
        }
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.RLock()

    def get(self, name: str) -> CircuitBreaker | None:
        """Get a circuit breaker by name, returns None if not found."""
        with self._lock:
            return self._breakers.get(name)

    def get_or_create(self, name: str, **overrides: Any) -> CircuitBreaker:
        """Get a breaker, creating it on first reference.

        *overrides* only apply when the breaker is created.
        """
        with self._lock:
            if name not in self._breakers:
                self._breakers[name] = CircuitBreaker(name=name, **{**self._defaults, **overrides})
            return self._breakers[name]

    def list_all(self) -> list[str]:
        """List all registered circuit breaker names."""
        with self._lock:
            return list(self._breakers.keys())

    def all_stats(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            breakers = list(self._breakers.values())
        return {b.name: b.stats() for b in breakers}

    def reset_all(self) -> None:
        """Reset all circuit breakers."""
        with self._lock:
            for breaker in self._breakers.values():
                breaker.reset()


__all__ = [
    "CircuitState",
    "CircuitStats",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
]
