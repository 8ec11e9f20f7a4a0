"""Sliding-window rate limiting keyed by dispatcher.

Each provider family (vahan, eway, einvoice) gets its own per-minute budget
per dispatcher, and a global budget caps any single caller across all
families.

Example:
    >>> limiter = KeyedRateLimiter(max_requests=100, window_seconds=60)
    >>> limiter.acquire("dispatcher-42")
    True
"""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field


@dataclass
class SlidingWindowLimiter:
    """Counts requests in a sliding time window.

    Attributes:
        max_requests: Maximum requests per window
        window_seconds: Window size in seconds
        clock: Monotonic time source
    """

    max_requests: int
    window_seconds: float
    clock: Callable[[], float] = time.monotonic

    _timestamps: deque[float] = field(default_factory=deque, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)

    def _cleanup(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()

    def acquire(self) -> bool:
        """Record one request if the window has room."""
        with self._lock:
            now = self.clock()
            self._cleanup(now)
            if len(self._timestamps) < self.max_requests:
                self._timestamps.append(now)
                return True
            return False

    def get_wait_time(self) -> float:
        """Seconds until the window has room for one more request."""
        with self._lock:
            now = self.clock()
            self._cleanup(now)
            if len(self._timestamps) < self.max_requests:
                return 0.0
            return max(0.0, self._timestamps[0] + self.window_seconds - now)

    @property
    def current_count(self) -> int:
        with self._lock:
            self._cleanup(self.clock())
            return len(self._timestamps)

    @property
    def idle(self) -> bool:
        return self.current_count == 0


@dataclass
class KeyedRateLimiter:
    """One :class:`SlidingWindowLimiter` per key (dispatcher id or client IP)."""

    max_requests: int
    window_seconds: float = 60.0
    clock: Callable[[], float] = time.monotonic
    cleanup_interval: int = 1000  # prune idle keys every N acquires

    _limiters: dict[str, SlidingWindowLimiter] = field(default_factory=dict, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)
    _acquire_count: int = field(default=0, init=False)

    def _get_limiter(self, key: str) -> SlidingWindowLimiter:
        limiter = self._limiters.get(key)
        if limiter is None:
            limiter = SlidingWindowLimiter(self.max_requests, self.window_seconds, self.clock)
            self._limiters[key] = limiter
        return limiter

    def _maybe_cleanup(self) -> None:
        self._acquire_count += 1
        if self._acquire_count >= self.cleanup_interval:
            self._acquire_count = 0
            for key in [k for k, lim in self._limiters.items() if lim.idle]:
                del self._limiters[key]

    def acquire(self, key: str) -> bool:
        with self._lock:
            self._maybe_cleanup()
            limiter = self._get_limiter(key)
        return limiter.acquire()

    def get_wait_time(self, key: str) -> float:
        with self._lock:
            limiter = self._get_limiter(key)
        return limiter.get_wait_time()

    def remaining(self, key: str) -> int:
        with self._lock:
            limiter = self._get_limiter(key)
        return max(0, self.max_requests - limiter.current_count)


__all__ = ["SlidingWindowLimiter", "KeyedRateLimiter"]
