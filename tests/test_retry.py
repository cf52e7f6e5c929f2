"""
Tests for the retry policy, with_retry and the error taxonomy.
"""
import asyncio

import pytest

from pippy.resilience.errors import (
    AllSourcesUnavailable,
    InvalidPayload,
    ProviderError,
    RateLimited,
    TransportError,
)
from pippy.resilience.results import Success, Unavailable
from pippy.resilience.retry import (
    RetryPolicy,
    RetryState,
    exponential_backoff,
    linear_backoff,
    with_retry,
)


class Flaky:
    """Fails `failures` times, then returns value."""

    def __init__(self, failures, error=None, value="ok"):
        self.failures = failures
        self.error = error or TransportError("boom")
        self.value = value
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.value


class TestRetryPolicy:

    def test_linear_backoff(self):
        policy = RetryPolicy(max_attempts=3, base_delay=1.0)
        assert [policy.delay_for(a) for a in (1, 2, 3)] == [1.0, 2.0, 3.0]
        assert linear_backoff(2, 0.5) == 1.0

    def test_exponential_backoff(self):
        policy = RetryPolicy(base_delay=1.0, backoff=exponential_backoff)
        assert [policy.delay_for(a) for a in (1, 2, 3)] == [1.0, 2.0, 4.0]

    def test_invalid_policy(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
        with pytest.raises(ValueError):
            RetryPolicy(base_delay=-1)

    def test_no_retry(self):
        assert RetryPolicy.no_retry().max_attempts == 1

    def test_retry_state_exhausted(self):
        state = RetryState(attempt=2, max_attempts=3, base_delay=1.0)
        assert not state.exhausted
        state.attempt = 3
        assert state.exhausted


class TestWithRetry:

    def test_first_attempt_success_never_sleeps(self, policy, fast_sleep, sleeps):
        fn = Flaky(0)
        assert asyncio.run(with_retry(fn, policy, sleep=fast_sleep)) == "ok"
        assert fn.calls == 1
        assert sleeps == []

    def test_recovers_after_failures(self, policy, fast_sleep, sleeps):
        fn = Flaky(2)
        assert asyncio.run(with_retry(fn, policy, sleep=fast_sleep)) == "ok"
        assert fn.calls == 3
        assert sleeps == [1.0, 2.0]

    def test_exhausted_raises_last_error_without_final_sleep(self, policy, fast_sleep, sleeps):
        fn = Flaky(10, error=RateLimited("slow down"))
        with pytest.raises(RateLimited):
            asyncio.run(with_retry(fn, policy, sleep=fast_sleep))
        assert fn.calls == 3
        assert sleeps == [1.0, 2.0]

    def test_all_provider_errors_share_budget(self, policy, fast_sleep):
        errors = [TransportError("a"), RateLimited("b"), InvalidPayload("c")]

        async def fn():
            raise errors.pop(0)

        with pytest.raises(InvalidPayload):
            asyncio.run(with_retry(fn, policy, sleep=fast_sleep))
        assert errors == []

    def test_non_retryable_propagates_immediately(self, policy, fast_sleep, sleeps):
        fn = Flaky(5, error=KeyError("bug"))
        with pytest.raises(KeyError):
            asyncio.run(with_retry(fn, policy, sleep=fast_sleep))
        assert fn.calls == 1
        assert sleeps == []

    def test_all_sources_unavailable_is_never_retried(self, policy, fast_sleep, sleeps):
        fn = Flaky(5, error=AllSourcesUnavailable("none"))
        with pytest.raises(AllSourcesUnavailable):
            asyncio.run(with_retry(fn, policy, sleep=fast_sleep))
        assert fn.calls == 1
        assert sleeps == []

    def test_attempt_timeout_becomes_transport_error(self, fast_sleep):
        async def slow():
            await asyncio.sleep(1)

        policy = RetryPolicy(max_attempts=2, base_delay=0.0, attempt_timeout=0.01)
        with pytest.raises(TransportError) as exc_info:
            asyncio.run(with_retry(slow, policy, name="slow", sleep=fast_sleep))
        assert "timed out" in str(exc_info.value)


class TestErrors:

    def test_reason_includes_type(self):
        assert TransportError("down").reason() == "TransportError: down"

    def test_fields(self):
        assert TransportError("x", status_code=503).status_code == 503
        assert RateLimited("x", retry_after=2.0, provider="finnhub").provider == "finnhub"
        assert InvalidPayload("x", problems=["zero c"]).problems == ["zero c"]
        assert ProviderError("x").context == {}

    def test_all_sources_unavailable_is_not_provider_error(self):
        error = AllSourcesUnavailable("none", failures={"gemini": "down"})
        assert not isinstance(error, ProviderError)
        assert error.failures == {"gemini": "down"}


class TestResults:

    def test_success(self):
        result = Success(42)
        assert result.ok
        assert result.status == "available"
        assert result.unwrap_or(0) == 42

    def test_unavailable(self):
        result = Unavailable("down")
        assert not result.ok
        assert result.unwrap_or(0) == 0
        assert result.to_dict() == {"status": "unavailable", "reason": "down"}
