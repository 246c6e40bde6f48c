"""
Fallback handling for calls that could not reach the core banking system.

Strategies are registered per operation. A strategy returns a degraded
StatusResult; operations without a strategy raise FallbackUnavailableError.
"""

from typing import Callable

from loguru import logger

from account_status.models import Operation, StatusRequest, StatusResult
from account_status.services.errors import FallbackUnavailableError, ServiceError

FallbackStrategy = Callable[[StatusRequest, ServiceError], StatusResult]


def degraded_result(request: StatusRequest, failure: ServiceError) -> StatusResult:
    """Report the operation as not done, without a reference number."""
    return StatusResult(
        account_identifier=request.account_identifier,
        operation=request.operation,
        generated_reference_number=None,
        succeeded=False,
        degraded=True,
    )


class FallbackHandler:
    """Produces degraded results when the protected call cannot complete."""

    def __init__(self, strategies: dict[Operation, FallbackStrategy] | None = None):
        self._strategies: dict[Operation, FallbackStrategy] = dict(strategies or {})

    @classmethod
    def default(cls) -> "FallbackHandler":
        # Lifting a block has no safe degraded answer
        return cls({Operation.BLOCK: degraded_result})

    def register(self, operation: Operation, strategy: FallbackStrategy) -> None:
        self._strategies[operation] = strategy
        logger.info(
            f"Registered fallback for '{operation.value}': "
            f"{getattr(strategy, '__name__', type(strategy).__name__)}"
        )

    def has_fallback(self, operation: Operation) -> bool:
        return operation in self._strategies

    def handle(self, request: StatusRequest, failure: ServiceError) -> StatusResult:
        """Return a degraded result for request, or raise FallbackUnavailableError."""
        strategy = self._strategies.get(request.operation)
        if strategy is None:
            logger.error(
                f"No fallback for '{request.operation.value}' on account "
                f"{request.account_identifier}: {failure}"
            )
            raise FallbackUnavailableError(request.operation.value, failure) from failure

        logger.warning(
            f"Falling back for '{request.operation.value}' on account "
            f"{request.account_identifier} ({failure.kind.value})"
        )
        return strategy(request, failure)
