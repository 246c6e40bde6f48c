from datetime import timedelta
from typing import Callable

import httpx
import pytest

from account_status.services.account_status import AccountStatusService
from account_status.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
)
from account_status.services.client import CoreBankingClient, CoreBankingConfig
from account_status.services.retry import RetryConfig, RetryPolicy

ACCOUNT_ID = "998170550014"
BASE_URL = "http://core-banking.test/v1"

Handler = Callable[[httpx.Request], httpx.Response]


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """Stand-in for asyncio.sleep that records delays instead of waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class RecordingHandler:
    """MockTransport handler replaying scripted responses and counting calls."""

    def __init__(self, *responses: httpx.Response | Exception):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        # The last scripted response repeats once the script runs out
        response = self.responses[min(len(self.requests), len(self.responses)) - 1]
        if isinstance(response, Exception):
            raise response
        return response


def make_client(handler: Handler) -> CoreBankingClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CoreBankingClient(
        CoreBankingConfig(base_url=BASE_URL, timeout=1.0), http_client=http_client
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def breaker_config() -> CircuitBreakerConfig:
    return CircuitBreakerConfig(
        sliding_window_size=4,
        minimum_number_of_calls=2,
        permitted_number_of_calls_in_half_open_state=2,
        wait_duration_in_open_state=timedelta(seconds=30),
        failure_rate_threshold=50.0,
    )


@pytest.fixture
def breaker(breaker_config: CircuitBreakerConfig, clock: FakeClock) -> CircuitBreaker:
    return CircuitBreaker("core-banking", breaker_config, clock=clock)


@pytest.fixture
def retry(sleeper: SleepRecorder) -> RetryPolicy:
    return RetryPolicy(
        RetryConfig(max_attempts=3, inter_attempt_delay=timedelta(milliseconds=100)),
        sleep=sleeper,
    )


@pytest.fixture
def build_service(
    breaker: CircuitBreaker, retry: RetryPolicy
) -> Callable[[RecordingHandler], AccountStatusService]:
    """Factory wiring a service around a scripted core banking handler."""

    def _build(handler: RecordingHandler) -> AccountStatusService:
        return AccountStatusService(make_client(handler), breaker, retry)

    return _build


def open_breaker(breaker: CircuitBreaker) -> None:
    """Drive a breaker into OPEN by recording failures."""
    while breaker.state.value != "OPEN":
        breaker.record_failure(breaker.acquire())
