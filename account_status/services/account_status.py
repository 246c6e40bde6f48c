"""
AccountStatusService - blocks and unblocks accounts on the core banking system.

Composes the protected call as retry(circuit_breaker(client)). Each retry
attempt passes the breaker; a breaker rejection ends retrying at once. Breaker
rejections and exhausted retries go to the fallback handler, and every other
failure is translated into the error catalog.
"""

from typing import TYPE_CHECKING, Any

import httpx
from loguru import logger

from account_status.exceptions import AccountServiceError, ErrorCode
from account_status.models import Operation, StatusRequest, StatusResult
from account_status.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
)
from account_status.services.client import CoreBankingClient, CoreBankingConfig
from account_status.services.errors import CircuitOpenError, RetryExhaustedError
from account_status.services.fallback import FallbackHandler
from account_status.services.retry import RetryConfig, RetryPolicy
from account_status.services.translator import ExceptionTranslator
from account_status.utils import logged_operation
from account_status.validation import parse_account_identifier, validate_request

if TYPE_CHECKING:
    from account_status.settings import Settings


class AccountStatusService:
    """Routes validated status requests to the protected core banking call."""

    def __init__(
        self,
        client: CoreBankingClient,
        breaker: CircuitBreaker,
        retry: RetryPolicy,
        fallback: FallbackHandler | None = None,
        translator: ExceptionTranslator | None = None,
    ):
        self.client = client
        self.breaker = breaker
        self.retry = retry
        self.fallback = fallback or FallbackHandler.default()
        self.translator = translator or ExceptionTranslator()

        self._operations = {
            Operation.BLOCK: retry.wrap(breaker.wrap(client.block)),
            Operation.UNBLOCK: retry.wrap(breaker.wrap(client.unblock)),
        }

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        registry: CircuitBreakerRegistry | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> "AccountStatusService":
        """Build the service and its collaborators from configuration."""
        registry = registry or CircuitBreakerRegistry()
        breaker = registry.get(
            settings.core_banking_service_id,
            CircuitBreakerConfig(
                sliding_window_size=settings.sliding_window_size,
                minimum_number_of_calls=settings.minimum_number_of_calls,
                permitted_number_of_calls_in_half_open_state=(
                    settings.permitted_number_of_calls_in_half_open_state
                ),
                wait_duration_in_open_state=settings.wait_duration_in_open_state,
                failure_rate_threshold=settings.failure_rate_threshold,
            ),
        )
        retry = RetryPolicy(
            RetryConfig(
                max_attempts=settings.max_attempts,
                inter_attempt_delay=settings.inter_attempt_delay,
                retry_on=settings.retryable_failures,
            )
        )
        client = CoreBankingClient(
            CoreBankingConfig(
                base_url=settings.core_banking_url,
                service_id=settings.core_banking_service_id,
                timeout=settings.core_banking_timeout,
            ),
            http_client=http_client,
        )
        return cls(client, breaker, retry)

    @logged_operation
    async def change_status(
        self,
        account_id: str,
        operation: Operation,
        details: dict[str, Any] | None = None,
    ) -> StatusResult:
        """
        Block or unblock an account.

        Args:
            account_id: 12-digit account identifier
            operation: BLOCK or UNBLOCK
            details: Operation specific fields, validated against its rule-set

        Returns:
            StatusResult from the core banking system, or a degraded result

        Raises:
            AccountServiceError: For every failure, typed by the error catalog
        """
        try:
            account_id = parse_account_identifier(account_id)
            request = StatusRequest(
                account_identifier=account_id,
                operation=operation,
                details=details or {},
            )
            validated = validate_request(request)
            result = await self._invoke(validated)
            return self._check_result(result)
        except Exception as e:
            error = self.translator.translate(e, account_id, operation)
            if error is e:
                raise
            raise error from e

    async def block(self, account_id: str, **details: Any) -> StatusResult:
        return await self.change_status(account_id, Operation.BLOCK, details)

    async def unblock(self, account_id: str, **details: Any) -> StatusResult:
        return await self.change_status(account_id, Operation.UNBLOCK, details)

    async def _invoke(self, request: StatusRequest) -> StatusResult:
        call = self._operations[request.operation]
        try:
            return await call(request)
        except (CircuitOpenError, RetryExhaustedError) as e:
            return self.fallback.handle(request, e)

    def _check_result(self, result: StatusResult) -> StatusResult:
        """Reject a successful block that came back without a usable block number."""
        if (
            result.operation == Operation.BLOCK
            and result.succeeded
            and not result.degraded
        ):
            reference = result.generated_reference_number
            if reference is None or reference <= 0:
                logger.error(
                    f"Core banking blocked account {result.account_identifier} "
                    f"but returned block number {reference!r}"
                )
                raise AccountServiceError(
                    ErrorCode.BLOCKED_ACCOUNT_NO_BLOCK_NUMBER,
                    account_id=result.account_identifier,
                )
        return result

    def get_health_status(self) -> dict[str, Any]:
        return {
            "service_id": self.client.service_id,
            "circuit_breaker": self.breaker.get_status(),
        }

    async def close(self) -> None:
        await self.client.close()
