"""
Service layer - resilient calls to the core banking system.

Provides:
- CircuitBreaker: Stops calls to an unhealthy remote target
- RetryPolicy: Bounded retries for transient failures
- FallbackHandler: Degraded results when the call cannot complete
- CoreBankingClient: The raw block/unblock HTTP calls
- ExceptionTranslator: Maps failures onto the error catalog
- AccountStatusService: Orchestrates the above per operation
"""

from account_status.services.errors import (
    FailureKind,
    ServiceError,
    CircuitOpenError,
    RequestTimeoutError,
    RetryExhaustedError,
    FallbackUnavailableError,
)
from account_status.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitState,
)
from account_status.services.retry import RetryConfig, RetryContext, RetryPolicy
from account_status.services.fallback import FallbackHandler, degraded_result
from account_status.services.client import CoreBankingClient, CoreBankingConfig
from account_status.services.translator import ExceptionTranslator
from account_status.services.account_status import AccountStatusService

__all__ = [
    # Errors
    "FailureKind",
    "ServiceError",
    "CircuitOpenError",
    "RequestTimeoutError",
    "RetryExhaustedError",
    "FallbackUnavailableError",
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerRegistry",
    "CircuitState",
    # Retry
    "RetryConfig",
    "RetryContext",
    "RetryPolicy",
    # Fallback
    "FallbackHandler",
    "degraded_result",
    # Client
    "CoreBankingClient",
    "CoreBankingConfig",
    # Translation
    "ExceptionTranslator",
    # Orchestration
    "AccountStatusService",
]
