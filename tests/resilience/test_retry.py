"""Tests for the retry executor and failure classification."""

import errno
import socket

import httpx
import pytest

from govgate.core.errors import (
    ClientRequestError,
    TransientNetworkError,
    TransientServiceError,
)
from govgate.resilience.retry import RetryPolicy, classify_failure, with_retry, wrap_with_retry


class Flaky:
    """Async callable failing with the given errors before succeeding."""

    def __init__(self, *errors: Exception, result: str = "ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class TestRetryPolicy:
    def test_defaults(self):
        """Three attempts, 1s base, 10s cap."""
        policy = RetryPolicy()
        assert policy.max_attempts == 3
        assert policy.base_delay == 1.0
        assert policy.max_delay == 10.0

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    def test_base_delay_doubles_and_caps(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=10.0)
        assert [policy.base_delay_for(n) for n in (1, 2, 3, 4, 5)] == [1.0, 2.0, 4.0, 8.0, 10.0]

    def test_next_delay_without_jitter(self):
        """rng() == 0.5 means zero jitter."""
        policy = RetryPolicy(base_delay=1.0, max_delay=10.0)
        assert policy.next_delay(1, rng=lambda: 0.5) == 1.0
        assert policy.next_delay(3, rng=lambda: 0.5) == 4.0

    def test_jitter_bounds(self):
        """Jitter stays within ±25% of the exponential term."""
        policy = RetryPolicy(base_delay=2.0, max_delay=100.0)
        assert policy.next_delay(2, rng=lambda: 0.0) == pytest.approx(3.0)
        assert policy.next_delay(2, rng=lambda: 0.999999) == pytest.approx(5.0, rel=1e-4)

    def test_jittered_delay_never_exceeds_cap(self):
        policy = RetryPolicy(base_delay=8.0, max_delay=10.0)
        assert policy.next_delay(1, rng=lambda: 0.999999) <= 10.0


class TestClassifyFailure:
    @pytest.mark.parametrize("status", [408, 429, 500, 502, 503, 504])
    def test_retryable_statuses(self, status):
        result = classify_failure(TransientServiceError("x", status_code=status))
        assert result.retryable is True
        assert result.status_code == status

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_client_statuses_are_final(self, status):
        assert classify_failure(ClientRequestError("x", status_code=status)).retryable is False

    def test_httpx_status_error(self):
        request = httpx.Request("POST", "https://p.test")
        response = httpx.Response(503, request=request)
        error = httpx.HTTPStatusError("boom", request=request, response=response)
        assert classify_failure(error).retryable is True

    def test_named_network_code(self):
        result = classify_failure(TransientNetworkError("reset", code="ECONNRESET"))
        assert result.retryable is True
        assert result.code == "ECONNRESET"

    def test_unknown_network_code_is_final(self):
        assert classify_failure(TransientNetworkError("x", code="EPROTO")).retryable is False

    def test_httpx_timeout(self):
        assert classify_failure(httpx.ReadTimeout("slow")).code == "ETIMEDOUT"

    def test_httpx_connect_error(self):
        assert classify_failure(httpx.ConnectError("refused")).retryable is True

    def test_oserror_errno(self):
        error = OSError(errno.ECONNREFUSED, "refused")
        assert classify_failure(error).code == "ECONNREFUSED"

    def test_dns_failure(self):
        error = socket.gaierror(socket.EAI_NONAME, "not found")
        assert classify_failure(error).code == "ENOTFOUND"

    def test_code_found_through_cause_chain(self):
        try:
            try:
                raise ConnectionResetError(errno.ECONNRESET, "reset")
            except ConnectionResetError as inner:
                raise RuntimeError("wrapped") from inner
        except RuntimeError as outer:
            assert classify_failure(outer).retryable is True

    def test_plain_exception_is_final(self):
        assert classify_failure(ValueError("bad")).retryable is False


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_success_first_try(self, no_sleep):
        op = Flaky()
        assert await with_retry(op, RetryPolicy(), sleep=no_sleep) == "ok"
        assert op.calls == 1
        assert no_sleep.delays == []

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self, no_sleep):
        """503, 503, then success: three attempts, two waits."""
        op = Flaky(
            TransientServiceError("503", status_code=503),
            TransientServiceError("503", status_code=503),
        )
        result = await with_retry(op, RetryPolicy(base_delay=1.0), sleep=no_sleep, rng=lambda: 0.5)
        assert result == "ok"
        assert op.calls == 3
        assert no_sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhaustion_reraises_last_error(self, no_sleep):
        last = TransientNetworkError("third", code="ETIMEDOUT")
        op = Flaky(
            TransientNetworkError("first", code="ETIMEDOUT"),
            TransientNetworkError("second", code="ETIMEDOUT"),
            last,
        )
        with pytest.raises(TransientNetworkError) as exc_info:
            await with_retry(op, RetryPolicy(max_attempts=3), sleep=no_sleep)
        assert exc_info.value is last
        assert op.calls == 3
        assert len(no_sleep.delays) == 2

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self, no_sleep):
        op = Flaky(ClientRequestError("bad gstin", status_code=400))
        with pytest.raises(ClientRequestError):
            await with_retry(op, RetryPolicy(), sleep=no_sleep)
        assert op.calls == 1
        assert no_sleep.delays == []

    @pytest.mark.asyncio
    async def test_single_attempt_policy(self, no_sleep):
        op = Flaky(TransientServiceError("503", status_code=503))
        with pytest.raises(TransientServiceError):
            await with_retry(op, RetryPolicy(max_attempts=1), sleep=no_sleep)
        assert op.calls == 1

    @pytest.mark.asyncio
    async def test_wrap_with_retry_passes_arguments(self):
        calls = []

        async def fetch(a, b=0):
            calls.append((a, b))
            return a + b

        wrapped = wrap_with_retry(fetch, RetryPolicy(max_attempts=1))
        assert await wrapped(2, b=3) == 5
        assert calls == [(2, 3)]
        assert wrapped.__name__ == "fetch"
