"""In-process idempotency cache for side-effecting provider calls.

Issuing an eway bill or an IRN twice is not harmless, so a client that
retries a POST can attach an ``X-Idempotency-Key``. The first request with a
key reserves it (PENDING); a duplicate arriving while it runs gets a conflict
instead of a second issuance; once it completes, duplicates are answered
from the stored response for 24 hours.

Keys are scoped per route (``"{route}:{key}"``) so the same client key used
on two different operations never collides.

Guarantees are per process only: two gateway instances do not share a cache.

Example:
    >>> cache = IdempotencyCache()
    >>> lookup = cache.reserve("/api/v1/eway/generate", "k-1")
    >>> lookup.status
    <LookupStatus.MISS: 'miss'>
    >>> cache.check("/api/v1/eway/generate", "k-1").status
    <LookupStatus.IN_PROGRESS: 'in_progress'>
    >>> cache.complete("/api/v1/eway/generate", "k-1", {"ewayBillNo": 1}, 200)
    >>> cache.check("/api/v1/eway/generate", "k-1").response
    {'ewayBillNo': 1}
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

from govgate.core.errors import DuplicateInFlightError
from govgate.core.logging import get_logger

T = TypeVar("T")

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60
DEFAULT_MAX_ENTRIES = 10_000
DEFAULT_SWEEP_INTERVAL = 60 * 60


class EntryStatus(str, Enum):
    PENDING = "pending"
    COMPLETE = "complete"


@dataclass
class IdempotencyEntry:
    status: EntryStatus
    created_at: float
    response: Any = None
    status_code: int | None = None


class LookupStatus(str, Enum):
    """Result of consulting the cache for a key."""

    MISS = "miss"
    IN_PROGRESS = "in_progress"
    HIT = "hit"
    BYPASS = "bypass"


@dataclass(frozen=True)
class Lookup:
    status: LookupStatus
    response: Any = None
    status_code: int | None = None

    @property
    def is_hit(self) -> bool:
        return self.status == LookupStatus.HIT


MISS = Lookup(LookupStatus.MISS)
IN_PROGRESS = Lookup(LookupStatus.IN_PROGRESS)
BYPASS = Lookup(LookupStatus.BYPASS)


def derive_key(doc_no: Any, from_gstin: Any, to_gstin: Any = None) -> str | None:
    """Deterministic key from the canonical document fields.

    Returns None when the document number or supplier GSTIN is missing, in
    which case the request is not protected.
    """
    if not doc_no or not from_gstin:
        return None
    data = f"{doc_no}:{from_gstin}:{to_gstin or ''}"
    return "auto:" + hashlib.sha256(data.encode("utf-8")).hexdigest()[:32]


class IdempotencyCache:
    """Route-scoped PENDING/COMPLETE store with TTL sweep and a capacity ceiling.

    At capacity new keys are not admitted (``BYPASS``); older entries are
    never evicted to make room.
    """

    def __init__(
        self,
        *,
        ttl: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.max_entries = max_entries
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: dict[str, IdempotencyEntry] = {}
        self._lock = threading.Lock()
        self._sweeper: asyncio.Task[None] | None = None

    @staticmethod
    def store_key(route: str, key: str) -> str:
        return f"{route}:{key}"

    def _lookup_locked(self, store_key: str) -> Lookup:
        entry = self._entries.get(store_key)
        if entry is None:
            return MISS
        if self._clock() - entry.created_at > self.ttl:
            del self._entries[store_key]
            return MISS
        if entry.status == EntryStatus.PENDING:
            return IN_PROGRESS
        return Lookup(LookupStatus.HIT, entry.response, entry.status_code)

    def check(self, route: str, key: str) -> Lookup:
        """Return HIT (with the stored response), IN_PROGRESS or MISS."""
        with self._lock:
            return self._lookup_locked(self.store_key(route, key))

    def begin_pending(self, route: str, key: str) -> bool:
        """Mark *key* PENDING. False if it already exists or the store is full."""
        return self.reserve(route, key).status == LookupStatus.MISS

    def reserve(self, route: str, key: str) -> Lookup:
        """Atomically check *key* and mark it PENDING on a miss.

        Returns MISS when the caller now owns the key and must run the
        operation, HIT or IN_PROGRESS when it must not, and BYPASS when the
        store is at capacity and the call should run unprotected.
        """
        store_key = self.store_key(route, key)
        with self._lock:
            lookup = self._lookup_locked(store_key)
            if lookup.status != LookupStatus.MISS:
                return lookup
            if len(self._entries) >= self.max_entries:
                logger.warning("idempotency_store_full", size=len(self._entries))
                return BYPASS
            self._entries[store_key] = IdempotencyEntry(EntryStatus.PENDING, self._clock())
            return MISS

    def complete(self, route: str, key: str, response: Any, status_code: int = 200) -> None:
        """Store the final response. The TTL runs from completion."""
        store_key = self.store_key(route, key)
        with self._lock:
            if store_key not in self._entries and len(self._entries) >= self.max_entries:
                return
            self._entries[store_key] = IdempotencyEntry(
                EntryStatus.COMPLETE, self._clock(), response, status_code
            )
        logger.debug("idempotency_stored", route=route, key=key[:16], status_code=status_code)

    def abandon(self, route: str, key: str) -> None:
        """Drop a PENDING entry so a retry is treated as a fresh attempt."""
        store_key = self.store_key(route, key)
        with self._lock:
            entry = self._entries.get(store_key)
            if entry is not None and entry.status == EntryStatus.PENDING:
                del self._entries[store_key]

    def sweep(self) -> int:
        """Delete entries older than the TTL. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if now - e.created_at > self.ttl]
            for k in expired:
                del self._entries[k]
            remaining = len(self._entries)
        if expired:
            logger.debug("idempotency_sweep", removed=len(expired), remaining=remaining)
        return len(expired)

    def stats(self) -> dict[str, int]:
        with self._lock:
            pending = sum(1 for e in self._entries.values() if e.status == EntryStatus.PENDING)
            total = len(self._entries)
        return {
            "total": total,
            "pending": pending,
            "complete": total - pending,
            "max_size": self.max_entries,
        }

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                self.sweep()
            except Exception as e:
                logger.error("idempotency_sweep_failed", error=str(e))

    def start(self) -> None:
        """Start the periodic sweep on the running event loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())

    async def stop(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper
            self._sweeper = None


async def run_idempotent(
    cache: IdempotencyCache,
    route: str,
    key: str | None,
    operation: Callable[[], Awaitable[T]],
) -> T:
    """Run *operation* at most once per ``(route, key)`` within the TTL.

    Without a key the operation simply runs. A duplicate arriving while the
    first call is in flight raises :class:`DuplicateInFlightError`; one
    arriving after completion gets the stored result. If the operation
    raises, the reservation is abandoned and the error propagates.
    """
    if not key:
        return await operation()

    lookup = cache.reserve(route, key)
    if lookup.status == LookupStatus.HIT:
        return lookup.response
    if lookup.status == LookupStatus.IN_PROGRESS:
        raise DuplicateInFlightError(key=key)
    if lookup.status == LookupStatus.BYPASS:
        return await operation()

    try:
        result = await operation()
    except BaseException:
        cache.abandon(route, key)
        raise
    cache.complete(route, key, result)
    return result


__all__ = [
    "EntryStatus",
    "IdempotencyEntry",
    "LookupStatus",
    "Lookup",
    "MISS",
    "IN_PROGRESS",
    "BYPASS",
    "derive_key",
    "IdempotencyCache",
    "run_idempotent",
]
