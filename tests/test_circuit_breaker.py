"""
Tests for the provider circuit breakers
"""
import asyncio

import pytest

from reach.core.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    get_paystack_circuit_breaker,
    get_social_analytics_circuit_breaker,
)
from reach.core.exceptions import CircuitBreakerOpenError, PaymentGatewayError


async def _fail():
    raise PaymentGatewayError("provider down")


async def _ok():
    return "ok"


async def _trip(breaker: CircuitBreaker, times: int = 3) -> None:
    for _ in range(times):
        with pytest.raises(PaymentGatewayError):
            await breaker.execute(_fail)


class TestCircuitBreaker:
    @pytest.fixture
    def breaker(self) -> CircuitBreaker:
        return CircuitBreaker(
            "test-provider",
            CircuitBreakerConfig(
                failure_threshold=3,
                success_threshold=2,
                timeout_seconds=0.1,
                half_open_max_calls=2,
            ),
        )

    @pytest.mark.unit
    async def test_starts_closed(self, breaker: CircuitBreaker):
        assert breaker.state == CircuitState.CLOSED
        assert breaker.get_retry_after() == 0.0

    @pytest.mark.unit
    async def test_success_resets_failure_count(self, breaker: CircuitBreaker):
        await _trip(breaker, times=2)
        assert await breaker.execute(_ok) == "ok"

        await _trip(breaker, times=2)
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.unit
    async def test_arguments_are_passed_through(self, breaker: CircuitBreaker):
        async def double(x):
            return x * 2

        assert await breaker.execute(double, 21) == 42

    @pytest.mark.unit
    async def test_non_provider_errors_do_not_count(self, breaker: CircuitBreaker):
        async def broken():
            raise KeyError("data")

        for _ in range(breaker.config.failure_threshold):
            with pytest.raises(KeyError):
                await breaker.execute(broken)

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    @pytest.mark.unit
    async def test_threshold_opens_and_blocks(self, breaker: CircuitBreaker):
        await _trip(breaker)
        assert breaker.state == CircuitState.OPEN

        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            await breaker.execute(_ok)

        assert exc_info.value.status_code == 503
        assert "test-provider" in exc_info.value.message
        assert 0 < exc_info.value.details["retry_after_seconds"] <= 0.1

    @pytest.mark.unit
    async def test_half_open_successes_close(self, breaker: CircuitBreaker):
        await _trip(breaker)
        await asyncio.sleep(0.15)

        await breaker.execute(_ok)
        assert breaker.state == CircuitState.HALF_OPEN
        await breaker.execute(_ok)
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.unit
    async def test_half_open_failure_reopens(self, breaker: CircuitBreaker):
        await _trip(breaker)
        await asyncio.sleep(0.15)

        with pytest.raises(PaymentGatewayError):
            await breaker.execute(_fail)
        assert breaker.state == CircuitState.OPEN

    @pytest.mark.unit
    async def test_half_open_limits_trial_calls(self, breaker: CircuitBreaker):
        await _trip(breaker)
        await asyncio.sleep(0.15)

        assert await breaker.can_execute()
        assert await breaker.can_execute()
        assert not await breaker.can_execute()


class TestProviderBreakers:
    @pytest.mark.unit
    def test_provider_breakers_are_shared(self):
        assert get_paystack_circuit_breaker() is get_paystack_circuit_breaker()
        assert get_social_analytics_circuit_breaker() is not get_paystack_circuit_breaker()

    @pytest.mark.unit
    def test_provider_thresholds(self):
        assert get_paystack_circuit_breaker().config.failure_threshold == 5
        assert get_social_analytics_circuit_breaker().config.failure_threshold == 3

    @pytest.mark.unit
    async def test_snapshot_reports_each_provider(self):
        social = get_social_analytics_circuit_breaker()
        get_paystack_circuit_breaker()
        await _trip(social)

        assert CircuitBreaker.snapshot() == {
            "paystack": CircuitState.CLOSED.value,
            "social_analytics": CircuitState.OPEN.value,
        }
