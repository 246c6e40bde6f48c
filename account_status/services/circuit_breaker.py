"""
CircuitBreaker - Prevents cascading failures by stopping requests to failing services.

States:
- CLOSED: Normal operation, requests pass through
- OPEN: Service is failing, requests are blocked
- HALF_OPEN: Testing if service has recovered

Transitions:
- CLOSED → OPEN: When the failure rate of the sliding window exceeds the threshold
- OPEN → HALF_OPEN: After wait_duration_in_open_state expires
- HALF_OPEN → CLOSED: When every permitted trial call succeeds
- HALF_OPEN → OPEN: On any failed trial call
"""

import asyncio
import functools
import threading
import time
from collections import deque
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

from account_status.services.errors import CircuitOpenError, ServiceError

T = TypeVar("T")


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"  # Normal operation
    OPEN = "OPEN"  # Blocking requests
    HALF_OPEN = "HALF_OPEN"  # Testing recovery


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    sliding_window_size: int = 10  # Outcomes kept for the failure rate
    minimum_number_of_calls: int = 5  # Outcomes needed before evaluating
    permitted_number_of_calls_in_half_open_state: int = 3
    wait_duration_in_open_state: timedelta = timedelta(seconds=30)
    failure_rate_threshold: float = 50.0  # Percent

    def __post_init__(self) -> None:
        if self.sliding_window_size < 1:
            raise ValueError("sliding_window_size must be at least 1")
        if self.minimum_number_of_calls < 1:
            raise ValueError("minimum_number_of_calls must be at least 1")
        if self.permitted_number_of_calls_in_half_open_state < 1:
            raise ValueError(
                "permitted_number_of_calls_in_half_open_state must be at least 1"
            )
        if not 0 < self.failure_rate_threshold <= 100:
            raise ValueError("failure_rate_threshold must be in (0, 100]")

    @property
    def effective_minimum_calls(self) -> int:
        # A full window always counts as enough calls
        return min(self.minimum_number_of_calls, self.sliding_window_size)


@dataclass(frozen=True)
class Permit:
    """Permission to make one call, bound to the breaker generation that granted it."""

    generation: int
    state: CircuitState


class CircuitBreaker:
    """
    Circuit breaker implementation for a single remote target.

    Usage:
        cb = CircuitBreaker("core-banking")

        protected = cb.wrap(client.block)
        result = await protected(request)

    State and window updates happen under a single lock. Each permit carries
    the generation it was granted in; outcomes reported for an older
    generation are dropped, so a threshold crossing fires one transition.
    """

    def __init__(
        self,
        service_id: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.service_id = service_id
        self.config = config or CircuitBreakerConfig()
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._generation = 0
        self._window: deque[bool] = deque(maxlen=self.config.sliding_window_size)
        self._opened_at: float | None = None
        self._half_open_permits = 0
        self._half_open_successes = 0
        self._rejected_count = 0
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        """Get current state, checking for automatic transitions."""
        with self._lock:
            self._check_open_timeout()
            return self._state

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def _check_open_timeout(self) -> None:
        if (
            self._state == CircuitState.OPEN
            and self._opened_at is not None
            and self._clock() >= self._opened_at + self._wait_seconds
        ):
            self._transition(CircuitState.HALF_OPEN)

    @property
    def _wait_seconds(self) -> float:
        return self.config.wait_duration_in_open_state.total_seconds()

    def try_acquire(self) -> Permit | None:
        """Get a permit for one call, or None when the call must be rejected."""
        with self._lock:
            self._check_open_timeout()

            if self._state == CircuitState.CLOSED:
                return Permit(self._generation, self._state)

            if (
                self._state == CircuitState.HALF_OPEN
                and self._half_open_permits
                < self.config.permitted_number_of_calls_in_half_open_state
            ):
                self._half_open_permits += 1
                return Permit(self._generation, self._state)

            self._rejected_count += 1
            return None

    def acquire(self) -> Permit:
        """Get a permit or raise CircuitOpenError."""
        permit = self.try_acquire()
        if permit is None:
            logger.debug(f"Circuit breaker '{self.service_id}' rejected a call")
            raise CircuitOpenError(self.service_id, self.get_time_until_reset() or 0)
        return permit

    def release(self, permit: Permit) -> None:
        """Return an unused half-open permit (the call never produced an outcome)."""
        with self._lock:
            if (
                permit.generation == self._generation
                and self._state == CircuitState.HALF_OPEN
                and self._half_open_permits > 0
            ):
                self._half_open_permits -= 1

    def record_success(self, permit: Permit) -> None:
        """Record a successful call."""
        with self._lock:
            if permit.generation != self._generation:
                return

            if self._state == CircuitState.CLOSED:
                self._window.append(False)
                self._evaluate_window()
            elif self._state == CircuitState.HALF_OPEN:
                self._half_open_successes += 1
                if (
                    self._half_open_successes
                    >= self.config.permitted_number_of_calls_in_half_open_state
                ):
                    self._transition(CircuitState.CLOSED)

    def record_failure(self, permit: Permit) -> None:
        """Record a failed call."""
        with self._lock:
            if permit.generation != self._generation:
                return

            if self._state == CircuitState.CLOSED:
                self._window.append(True)
                self._evaluate_window()
            elif self._state == CircuitState.HALF_OPEN:
                # Any failure in half-open reopens the circuit
                self._transition(CircuitState.OPEN)

    def _failure_rate(self) -> float:
        if not self._window:
            return 0.0
        return sum(self._window) / len(self._window) * 100

    def _evaluate_window(self) -> None:
        if len(self._window) < self.config.effective_minimum_calls:
            return
        rate = self._failure_rate()
        if rate > self.config.failure_rate_threshold:
            logger.warning(
                f"Circuit breaker '{self.service_id}' failure rate {rate:.1f}% "
                f"exceeds {self.config.failure_rate_threshold:.1f}%"
            )
            self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        """Move to a new state. Caller holds the lock."""
        old_state = self._state
        self._state = new_state
        self._generation += 1

        if new_state == CircuitState.OPEN:
            self._opened_at = self._clock()
            logger.warning(
                f"Circuit breaker '{self.service_id}' OPENED (from {old_state.value})"
            )
        elif new_state == CircuitState.HALF_OPEN:
            self._half_open_permits = 0
            self._half_open_successes = 0
            logger.info(f"Circuit breaker '{self.service_id}' transitioned to HALF_OPEN")
        else:
            self._window.clear()
            self._opened_at = None
            self._half_open_permits = 0
            self._half_open_successes = 0
            logger.info(f"Circuit breaker '{self.service_id}' CLOSED (recovered)")

    async def call(
        self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
    ) -> T:
        """Run func under the breaker and record its outcome."""
        permit = self.acquire()
        try:
            result = await func(*args, **kwargs)
        except ServiceError as e:
            # A business rejection still means the target answered
            if e.is_remote_fault:
                self.record_failure(permit)
            else:
                self.record_success(permit)
            raise
        except asyncio.CancelledError:
            self.release(permit)
            raise
        except Exception:
            self.record_failure(permit)
            raise
        self.record_success(permit)
        return result

    def wrap(
        self, func: Callable[..., Awaitable[T]]
    ) -> Callable[..., Awaitable[T]]:
        """Decorate an async callable with this breaker."""

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await self.call(func, *args, **kwargs)

        return wrapper

    def get_time_until_reset(self) -> float | None:
        """Get seconds until circuit transitions to half-open."""
        with self._lock:
            if self._state != CircuitState.OPEN or self._opened_at is None:
                return None
            remaining = self._opened_at + self._wait_seconds - self._clock()
            return max(0.0, remaining)

    def get_status(self) -> dict[str, Any]:
        """Get current status as dictionary."""
        state = self.state
        with self._lock:
            window = list(self._window)
            status = {
                "service_id": self.service_id,
                "state": state.value,
                "window_size": len(window),
                "failure_count": sum(window),
                "failure_rate": round(self._failure_rate(), 2),
                "half_open_permits": self._half_open_permits,
                "rejected_count": self._rejected_count,
            }
        status["time_until_reset"] = self.get_time_until_reset()
        return status


class CircuitBreakerRegistry:
    """
    Registry owning one circuit breaker per remote target.

    Usage:
        registry = CircuitBreakerRegistry()
        cb = registry.get("core-banking")
    """

    def __init__(
        self,
        default_config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._breakers: dict[str, CircuitBreaker] = {}
        self._default_config = default_config or CircuitBreakerConfig()
        self._clock = clock
        self._lock = threading.Lock()

    def get(
        self,
        service_id: str,
        config: CircuitBreakerConfig | None = None,
    ) -> CircuitBreaker:
        """Get or create a circuit breaker for a service."""
        with self._lock:
            if service_id not in self._breakers:
                self._breakers[service_id] = CircuitBreaker(
                    service_id,
                    config or self._default_config,
                    clock=self._clock,
                )
            return self._breakers[service_id]

    def get_all_status(self) -> dict[str, dict[str, Any]]:
        """Get status of all circuit breakers."""
        with self._lock:
            breakers = dict(self._breakers)
        return {service_id: cb.get_status() for service_id, cb in breakers.items()}

    def get_open_circuits(self) -> list[str]:
        """Get list of services with open circuits."""
        with self._lock:
            breakers = dict(self._breakers)
        return [
            service_id
            for service_id, cb in breakers.items()
            if cb.state == CircuitState.OPEN
        ]
