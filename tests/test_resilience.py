"""Tests for the provider retry policy and circuit breaker."""

import pytest

from docembed.errors import ProviderError, ProviderUnavailableError
from docembed.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerError,
    CircuitBreakerState,
)
from docembed.resilience.retry_handler import RetryConfig, RetryHandler, is_transient


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def fast_retry(**kwargs):
    return RetryHandler(RetryConfig(base_delay=0.0, min_delay=0.0, jitter=False, **kwargs))


async def outage():
    raise ProviderUnavailableError("provider down", status_code=503)


def test_only_provider_outages_are_transient():
    assert is_transient(ProviderUnavailableError("503"))
    assert not is_transient(ProviderError("400"))
    assert not is_transient(ValueError("bad input"))


@pytest.mark.asyncio
async def test_retry_succeeds_after_transient_failures():
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise ProviderUnavailableError("reset")
        return "ok"

    result = await fast_retry(max_attempts=3).execute_with_retry(flaky, operation_name="flaky")
    assert result == "ok"
    assert len(attempts) == 3


@pytest.mark.asyncio
async def test_retry_reraises_after_last_attempt():
    with pytest.raises(ProviderUnavailableError):
        await fast_retry(max_attempts=2).execute_with_retry(outage)


@pytest.mark.asyncio
async def test_rejected_request_fails_first_time():
    attempts = []

    async def rejected(value):
        attempts.append(value)
        raise ProviderError("bad model", status_code=400)

    with pytest.raises(ProviderError):
        await fast_retry(max_attempts=5).execute_with_retry(rejected, 42)
    assert attempts == [42]


@pytest.mark.asyncio
async def test_custom_retry_predicate():
    attempts = []

    async def reset():
        attempts.append(1)
        raise ConnectionResetError("reset by peer")

    handler = fast_retry(max_attempts=3, retry_if=lambda e: isinstance(e, ConnectionError))
    with pytest.raises(ConnectionResetError):
        await handler.execute_with_retry(reset)
    assert len(attempts) == 3


def test_backoff_delay_is_exponential_and_capped():
    handler = RetryHandler(RetryConfig(base_delay=1.0, max_delay=5.0, jitter=False))
    assert [handler.delay_for(a) for a in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]


def test_jitter_stays_within_ten_percent():
    handler = RetryHandler(RetryConfig(base_delay=2.0, jitter=True))
    for _ in range(50):
        assert 1.8 <= handler.delay_for(1) <= 2.2


@pytest.mark.parametrize("retry_after,expected", [
    (3.0, 3.0),
    (120.0, 10.0),
    (0.0, 0.1),
])
def test_retry_after_replaces_backoff(retry_after, expected):
    handler = RetryHandler(RetryConfig(base_delay=1.0, max_delay=10.0, jitter=True))
    error = ProviderUnavailableError("429", status_code=429, retry_after=retry_after)
    assert handler.delay_for(4, error) == expected


def test_retry_config_requires_an_attempt():
    with pytest.raises(ValueError):
        RetryConfig(max_attempts=0)


@pytest.mark.asyncio
async def test_breaker_opens_after_threshold():
    clock = FakeClock()
    breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=30.0, clock=clock)

    for _ in range(2):
        with pytest.raises(ProviderUnavailableError):
            await breaker.call(outage)

    assert breaker.get_state() == CircuitBreakerState.OPEN
    clock.now += 10.0
    with pytest.raises(CircuitBreakerError) as exc_info:
        await breaker.call(outage)
    assert exc_info.value.retry_after == pytest.approx(20.0)
    assert breaker.get_stats()["failure_count"] == 2


@pytest.mark.asyncio
async def test_rejected_requests_do_not_count():
    breaker = CircuitBreaker(failure_threshold=1)

    async def rejected():
        raise ProviderError("bad model", status_code=400)

    with pytest.raises(ProviderError):
        await breaker.call(rejected)
    assert breaker.get_state() == CircuitBreakerState.CLOSED
    assert breaker.retry_after() == 0.0


@pytest.mark.asyncio
async def test_breaker_recovers_after_half_open_success():
    clock = FakeClock()
    breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=30.0, clock=clock)

    async def succeed():
        return "ok"

    with pytest.raises(ProviderUnavailableError):
        await breaker.call(outage)
    clock.now += 31.0

    assert await breaker.call(succeed) == "ok"
    assert breaker.get_state() == CircuitBreakerState.CLOSED
    assert breaker.failure_count == 0


@pytest.mark.asyncio
async def test_failed_half_open_call_reopens_breaker():
    clock = FakeClock()
    breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=30.0, clock=clock)
    breaker.state = CircuitBreakerState.OPEN
    breaker.last_failure_time = clock.now

    with pytest.raises(CircuitBreakerError):
        await breaker.call(outage)

    clock.now += 30.0
    with pytest.raises(ProviderUnavailableError):
        await breaker.call(outage)
    assert breaker.get_state() == CircuitBreakerState.OPEN
    assert breaker.retry_after() == pytest.approx(30.0)

    await breaker.force_close()
    assert breaker.get_state() == CircuitBreakerState.CLOSED
