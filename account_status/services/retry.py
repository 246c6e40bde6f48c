"""
RetryPolicy - Re-issues a failed call a bounded number of times.

Only ServiceErrors whose kind is in `retry_on` are retried. Anything else,
including a circuit breaker rejection, propagates after one attempt.
"""

import asyncio
import functools
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

from account_status.services.errors import (
    FailureKind,
    RetryExhaustedError,
    ServiceError,
)

T = TypeVar("T")

DEFAULT_RETRY_ON = frozenset(
    {FailureKind.TIMEOUT, FailureKind.CONNECTION, FailureKind.SERVER_ERROR}
)


@dataclass
class RetryConfig:
    """Configuration for retry policy."""

    max_attempts: int = 3
    inter_attempt_delay: timedelta = timedelta(milliseconds=500)
    retry_on: frozenset[FailureKind] = field(default_factory=lambda: DEFAULT_RETRY_ON)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")


@dataclass
class RetryContext:
    """Per-invocation attempt bookkeeping."""

    max_attempts: int
    inter_attempt_delay: timedelta
    attempts_made: int = 0

    @property
    def exhausted(self) -> bool:
        return self.attempts_made >= self.max_attempts


class RetryPolicy:
    """
    Bounded retry with a fixed delay between attempts.

    Usage:
        retry = RetryPolicy(RetryConfig(max_attempts=3))
        protected = retry.wrap(breaker.wrap(client.block))
        result = await protected(request)
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config or RetryConfig()
        self._sleep = sleep

    def is_retryable(self, error: Exception) -> bool:
        return isinstance(error, ServiceError) and error.kind in self.config.retry_on

    def new_context(self) -> RetryContext:
        return RetryContext(
            max_attempts=self.config.max_attempts,
            inter_attempt_delay=self.config.inter_attempt_delay,
        )

    async def execute(
        self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
    ) -> T:
        """Run func, retrying retryable failures until max_attempts is reached."""
        context = self.new_context()

        while True:
            context.attempts_made += 1
            try:
                return await func(*args, **kwargs)
            except ServiceError as e:
                if not self.is_retryable(e):
                    raise
                if context.exhausted:
                    logger.warning(
                        f"Retries exhausted after {context.attempts_made} attempts: {e}"
                    )
                    raise RetryExhaustedError(context.attempts_made, e) from e

                delay = context.inter_attempt_delay.total_seconds()
                logger.warning(
                    f"Attempt {context.attempts_made}/{context.max_attempts} failed "
                    f"({e.kind.value}), retrying in {delay:.2f}s"
                )
                await self._sleep(delay)

    def wrap(
        self, func: Callable[..., Awaitable[T]]
    ) -> Callable[..., Awaitable[T]]:
        """Decorate an async callable with this retry policy."""

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await self.execute(func, *args, **kwargs)

        return wrapper
