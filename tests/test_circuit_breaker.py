"""Tests for the sliding-window circuit breaker."""

import threading
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from account_status.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitState,
)
from account_status.services.errors import (
    CircuitOpenError,
    FailureKind,
    ServiceError,
)
from tests.conftest import FakeClock, open_breaker


def _record(breaker: CircuitBreaker, *outcomes: bool) -> None:
    """Record outcomes in order; True is a failure."""
    for failed in outcomes:
        permit = breaker.acquire()
        if failed:
            breaker.record_failure(permit)
        else:
            breaker.record_success(permit)


class TestCircuitBreakerConfig:
    """Tests for configuration checks."""

    def test_rejects_zero_window(self) -> None:
        with pytest.raises(ValueError):
            CircuitBreakerConfig(sliding_window_size=0)

    def test_rejects_threshold_out_of_range(self) -> None:
        with pytest.raises(ValueError):
            CircuitBreakerConfig(failure_rate_threshold=0)
        with pytest.raises(ValueError):
            CircuitBreakerConfig(failure_rate_threshold=101)

    def test_minimum_calls_capped_by_window(self) -> None:
        config = CircuitBreakerConfig(sliding_window_size=3, minimum_number_of_calls=10)
        assert config.effective_minimum_calls == 3


class TestClosedState:
    """Tests for the CLOSED state and the trip to OPEN."""

    def test_initial_state_is_closed(self, breaker: CircuitBreaker) -> None:
        assert breaker.state == CircuitState.CLOSED
        assert breaker.generation == 0

    def test_opens_exactly_once_when_threshold_first_exceeded(
        self, clock: FakeClock
    ) -> None:
        """Trips on the call that first pushes the rate over the threshold."""
        breaker = CircuitBreaker(
            "core-banking",
            CircuitBreakerConfig(
                sliding_window_size=10,
                minimum_number_of_calls=5,
                failure_rate_threshold=50.0,
            ),
            clock=clock,
        )

        _record(breaker, False, True, True, True)
        assert breaker.state == CircuitState.CLOSED

        _record(breaker, True)
        assert breaker.state == CircuitState.OPEN
        assert breaker.generation == 1

    def test_stays_closed_below_minimum_calls(self, clock: FakeClock) -> None:
        breaker = CircuitBreaker(
            "core-banking",
            CircuitBreakerConfig(sliding_window_size=10, minimum_number_of_calls=5),
            clock=clock,
        )
        _record(breaker, True, True, True, True)
        assert breaker.state == CircuitState.CLOSED

    def test_rate_equal_to_threshold_does_not_open(
        self, breaker: CircuitBreaker
    ) -> None:
        _record(breaker, False, True, False, True)
        assert breaker.state == CircuitState.CLOSED

    def test_window_forgets_old_outcomes(self, breaker: CircuitBreaker) -> None:
        """Only the last sliding_window_size outcomes count."""
        _record(breaker, False, True, False, False)
        _record(breaker, False, False, False)
        status = breaker.get_status()
        assert status["window_size"] == 4
        assert status["failure_count"] == 0

    def test_success_completing_minimum_can_open(self, clock: FakeClock) -> None:
        breaker = CircuitBreaker(
            "core-banking",
            CircuitBreakerConfig(
                sliding_window_size=10,
                minimum_number_of_calls=3,
                failure_rate_threshold=50.0,
            ),
            clock=clock,
        )
        _record(breaker, True, True, False)
        assert breaker.state == CircuitState.OPEN

    def test_stale_outcome_is_ignored(self, breaker: CircuitBreaker, clock: FakeClock) -> None:
        """Outcomes of calls started before a transition do not count."""
        first = breaker.acquire()
        second = breaker.acquire()
        third = breaker.acquire()

        breaker.record_failure(first)
        breaker.record_failure(second)
        assert breaker.state == CircuitState.OPEN

        clock.advance(10)
        breaker.record_failure(third)

        assert breaker.generation == 1
        assert breaker.get_time_until_reset() == pytest.approx(20)

    def test_concurrent_failures_trip_once(self, clock: FakeClock) -> None:
        breaker = CircuitBreaker(
            "core-banking",
            CircuitBreakerConfig(sliding_window_size=10, minimum_number_of_calls=5),
            clock=clock,
        )
        start = threading.Barrier(8)

        def worker() -> None:
            start.wait()
            for _ in range(50):
                permit = breaker.try_acquire()
                if permit is not None:
                    breaker.record_failure(permit)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert breaker.state == CircuitState.OPEN
        assert breaker.generation == 1


class TestOpenState:
    """Tests for the OPEN state."""

    def test_rejects_without_permit(self, breaker: CircuitBreaker) -> None:
        open_breaker(breaker)

        assert breaker.try_acquire() is None
        with pytest.raises(CircuitOpenError) as exc_info:
            breaker.acquire()
        assert exc_info.value.kind == FailureKind.CIRCUIT_OPEN
        assert exc_info.value.reset_after_seconds == pytest.approx(30)

    @pytest.mark.asyncio
    async def test_call_does_not_reach_remote(self, breaker: CircuitBreaker) -> None:
        open_breaker(breaker)
        remote = AsyncMock(return_value="ok")

        with pytest.raises(CircuitOpenError):
            await breaker.call(remote)

        remote.assert_not_awaited()
        assert breaker.get_status()["rejected_count"] == 1

    def test_half_open_after_wait(self, breaker: CircuitBreaker, clock: FakeClock) -> None:
        open_breaker(breaker)

        clock.advance(29)
        assert breaker.state == CircuitState.OPEN

        clock.advance(1)
        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.get_time_until_reset() is None


class TestHalfOpenState:
    """Tests for the HALF_OPEN probe."""

    @pytest.fixture
    def half_open(self, breaker: CircuitBreaker, clock: FakeClock) -> CircuitBreaker:
        open_breaker(breaker)
        clock.advance(30)
        assert breaker.state == CircuitState.HALF_OPEN
        return breaker

    def test_allows_exactly_permitted_calls(self, half_open: CircuitBreaker) -> None:
        assert half_open.try_acquire() is not None
        assert half_open.try_acquire() is not None
        assert half_open.try_acquire() is None

    def test_single_failure_reopens(
        self, half_open: CircuitBreaker, clock: FakeClock
    ) -> None:
        first = half_open.acquire()
        second = half_open.acquire()

        half_open.record_success(first)
        half_open.record_failure(second)

        assert half_open.state == CircuitState.OPEN
        assert half_open.get_time_until_reset() == pytest.approx(30)

    def test_all_successes_close_and_clear_window(
        self, half_open: CircuitBreaker
    ) -> None:
        first = half_open.acquire()
        second = half_open.acquire()

        half_open.record_success(first)
        assert half_open.state == CircuitState.HALF_OPEN
        half_open.record_success(second)

        assert half_open.state == CircuitState.CLOSED
        assert half_open.get_status()["window_size"] == 0

    def test_released_permit_can_be_reused(self, half_open: CircuitBreaker) -> None:
        first = half_open.acquire()
        half_open.acquire()
        half_open.release(first)

        assert half_open.try_acquire() is not None
        assert half_open.try_acquire() is None


class TestCall:
    """Tests for outcome classification in call()/wrap()."""

    @pytest.mark.asyncio
    async def test_success_returns_result(self, breaker: CircuitBreaker) -> None:
        protected = breaker.wrap(AsyncMock(return_value=42))
        assert await protected() == 42
        assert breaker.get_status()["window_size"] == 1

    @pytest.mark.asyncio
    async def test_remote_fault_counts_as_failure(self, breaker: CircuitBreaker) -> None:
        remote = AsyncMock(side_effect=ServiceError("boom", FailureKind.SERVER_ERROR))

        for _ in range(2):
            with pytest.raises(ServiceError):
                await breaker.call(remote)

        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_business_rejection_counts_as_success(
        self, breaker: CircuitBreaker
    ) -> None:
        remote = AsyncMock(side_effect=ServiceError("gone", FailureKind.NOT_FOUND))

        for _ in range(4):
            with pytest.raises(ServiceError):
                await breaker.call(remote)

        assert breaker.state == CircuitState.CLOSED
        assert breaker.get_status()["failure_count"] == 0

    @pytest.mark.asyncio
    async def test_unexpected_error_counts_as_failure(
        self, breaker: CircuitBreaker
    ) -> None:
        remote = AsyncMock(side_effect=KeyError("blockNumber"))

        for _ in range(2):
            with pytest.raises(KeyError):
                await breaker.call(remote)

        assert breaker.state == CircuitState.OPEN


class TestCircuitBreakerRegistry:
    """Tests for per-target breaker ownership."""

    def test_same_breaker_per_target(self) -> None:
        registry = CircuitBreakerRegistry()
        assert registry.get("core-banking") is registry.get("core-banking")
        assert registry.get("core-banking") is not registry.get("cards")

    def test_reports_open_circuits(self, clock: FakeClock) -> None:
        registry = CircuitBreakerRegistry(
            CircuitBreakerConfig(
                sliding_window_size=1,
                minimum_number_of_calls=1,
                wait_duration_in_open_state=timedelta(seconds=5),
            ),
            clock=clock,
        )
        open_breaker(registry.get("core-banking"))
        registry.get("cards")

        assert registry.get_open_circuits() == ["core-banking"]
        statuses = registry.get_all_status()
        assert statuses["core-banking"]["state"] == "OPEN"
        assert statuses["cards"]["state"] == "CLOSED"
