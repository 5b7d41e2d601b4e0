"""Tests for the provider circuit breaker."""

from unittest.mock import AsyncMock

import pytest

from src.resolution.circuit_breaker import CircuitBreaker, CircuitOpenError, CircuitState


async def _fail():
    raise RuntimeError("provider down")


async def _trip(breaker: CircuitBreaker, times: int) -> None:
    for _ in range(times):
        with pytest.raises(RuntimeError):
            await breaker.call(_fail)


class TestCircuitBreaker:
    @pytest.mark.asyncio
    async def test_success_passes_result_through(self):
        breaker = CircuitBreaker(failure_threshold=2)
        fn = AsyncMock(return_value="ok")

        assert await breaker.call(fn, 1, key="v") == "ok"
        fn.assert_awaited_once_with(1, key="v")
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_opens_after_consecutive_failures(self):
        breaker = CircuitBreaker(failure_threshold=3, recovery_timeout=60.0)

        await _trip(breaker, 2)
        assert breaker.state == CircuitState.CLOSED

        await _trip(breaker, 1)
        assert breaker.state == CircuitState.OPEN
        assert breaker.consecutive_failures == 3

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self):
        breaker = CircuitBreaker(failure_threshold=3)

        await _trip(breaker, 2)
        await breaker.call(AsyncMock(return_value=None))

        assert breaker.consecutive_failures == 0

    @pytest.mark.asyncio
    async def test_open_circuit_fails_fast(self):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60.0, name="anthropic")
        await _trip(breaker, 1)
        fn = AsyncMock()

        with pytest.raises(CircuitOpenError) as exc_info:
            await breaker.call(fn)

        fn.assert_not_awaited()
        assert exc_info.value.retry_after > 0
        assert "anthropic" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_half_open_probe_closes_on_success(self):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=0.0)
        await _trip(breaker, 1)
        assert breaker.state == CircuitState.OPEN

        assert await breaker.call(AsyncMock(return_value=42)) == 42
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_probe_reopens_on_failure(self):
        breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=0.0)
        breaker._state = CircuitState.OPEN

        await _trip(breaker, 1)

        assert breaker.state == CircuitState.OPEN
