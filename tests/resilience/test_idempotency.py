"""Tests for the idempotency cache."""

import asyncio

import pytest

from govgate.core.errors import DuplicateInFlightError
from govgate.resilience.idempotency import (
    IdempotencyCache,
    LookupStatus,
    derive_key,
    run_idempotent,
)

ROUTE = "/api/v1/eway/generate"


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return IdempotencyCache(ttl=24 * 60 * 60, max_entries=3, clock=clock)


class TestReserve:
    def test_first_reserve_is_miss(self, cache):
        assert cache.reserve(ROUTE, "k1").status == LookupStatus.MISS

    def test_second_reserve_in_progress(self, cache):
        cache.reserve(ROUTE, "k1")
        assert cache.reserve(ROUTE, "k1").status == LookupStatus.IN_PROGRESS

    def test_complete_then_hit(self, cache):
        cache.reserve(ROUTE, "k1")
        cache.complete(ROUTE, "k1", {"ewbNo": 331001}, 200)
        lookup = cache.reserve(ROUTE, "k1")
        assert lookup.is_hit
        assert lookup.response == {"ewbNo": 331001}
        assert lookup.status_code == 200

    def test_keys_are_route_scoped(self, cache):
        cache.reserve(ROUTE, "k1")
        assert cache.reserve("/api/v1/eway/cancel", "k1").status == LookupStatus.MISS

    def test_abandon_allows_retry(self, cache):
        cache.reserve(ROUTE, "k1")
        cache.abandon(ROUTE, "k1")
        assert cache.reserve(ROUTE, "k1").status == LookupStatus.MISS

    def test_abandon_keeps_completed_entry(self, cache):
        cache.reserve(ROUTE, "k1")
        cache.complete(ROUTE, "k1", {"ok": True})
        cache.abandon(ROUTE, "k1")
        assert cache.check(ROUTE, "k1").is_hit

    def test_full_store_bypasses(self, cache):
        for key in ("a", "b", "c"):
            cache.reserve(ROUTE, key)
        assert cache.reserve(ROUTE, "d").status == LookupStatus.BYPASS
        assert cache.stats()["total"] == 3

    def test_begin_pending(self, cache):
        assert cache.begin_pending(ROUTE, "k1") is True
        assert cache.begin_pending(ROUTE, "k1") is False


class TestExpiry:
    def test_entry_expires_after_ttl(self, cache, clock):
        cache.reserve(ROUTE, "k1")
        cache.complete(ROUTE, "k1", {"ok": True})
        clock.now += 24 * 60 * 60 - 1
        assert cache.check(ROUTE, "k1").is_hit
        clock.now += 2
        assert cache.check(ROUTE, "k1").status == LookupStatus.MISS

    def test_sweep_removes_expired(self, cache, clock):
        cache.reserve(ROUTE, "old")
        clock.now += 24 * 60 * 60 + 1
        cache.reserve(ROUTE, "new")
        assert cache.sweep() == 1
        assert cache.stats() == {"total": 1, "pending": 1, "complete": 0, "max_size": 3}

    @pytest.mark.asyncio
    async def test_start_and_stop_sweeper(self):
        cache = IdempotencyCache(sweep_interval=0.01)
        cache.start()
        await asyncio.sleep(0.03)
        await cache.stop()


class TestDeriveKey:
    def test_deterministic(self):
        assert derive_key("INV-1", "29ABCDE1234F1Z5", "27XYZ") == derive_key("INV-1", "29ABCDE1234F1Z5", "27XYZ")

    def test_differs_by_document(self):
        assert derive_key("INV-1", "29A") != derive_key("INV-2", "29A")

    def test_missing_fields(self):
        assert derive_key(None, "29A") is None
        assert derive_key("INV-1", "") is None

    def test_prefix(self):
        assert derive_key("INV-1", "29A").startswith("auto:")


class TestRunIdempotent:
    @pytest.mark.asyncio
    async def test_runs_once_and_replays(self, cache):
        calls = []

        async def generate():
            calls.append(1)
            return {"ewbNo": 1}

        first = await run_idempotent(cache, ROUTE, "k1", generate)
        second = await run_idempotent(cache, ROUTE, "k1", generate)
        assert first == second == {"ewbNo": 1}
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_rejected(self, cache):
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow():
            started.set()
            await release.wait()
            return "done"

        first = asyncio.create_task(run_idempotent(cache, ROUTE, "k1", slow))
        await started.wait()
        with pytest.raises(DuplicateInFlightError):
            await run_idempotent(cache, ROUTE, "k1", slow)
        release.set()
        assert await first == "done"

    @pytest.mark.asyncio
    async def test_failure_abandons_reservation(self, cache):
        async def fail():
            raise RuntimeError("provider down")

        with pytest.raises(RuntimeError):
            await run_idempotent(cache, ROUTE, "k1", fail)
        assert cache.check(ROUTE, "k1").status == LookupStatus.MISS

    @pytest.mark.asyncio
    async def test_without_key_always_runs(self, cache):
        calls = []

        async def op():
            calls.append(1)
            return 1

        await run_idempotent(cache, ROUTE, None, op)
        await run_idempotent(cache, ROUTE, None, op)
        assert len(calls) == 2
