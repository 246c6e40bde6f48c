"""
Service layer exceptions.

Raised inside the protected call pipeline and translated into the error
catalog before they reach a caller.
"""

from enum import Enum


class FailureKind(str, Enum):
    """Classification of a pipeline failure."""

    TIMEOUT = "timeout"
    CONNECTION = "connection"
    SERVER_ERROR = "server_error"
    NOT_FOUND = "not_found"
    REJECTED = "rejected"
    MALFORMED_RESPONSE = "malformed_response"
    CIRCUIT_OPEN = "circuit_open"
    RETRY_EXHAUSTED = "retry_exhausted"
    FALLBACK_UNAVAILABLE = "fallback_unavailable"


# Kinds that mean the remote target itself is unhealthy
REMOTE_FAULTS = frozenset(
    {
        FailureKind.TIMEOUT,
        FailureKind.CONNECTION,
        FailureKind.SERVER_ERROR,
        FailureKind.MALFORMED_RESPONSE,
    }
)


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(
        self,
        message: str,
        kind: FailureKind,
        service_id: str | None = None,
        status_code: int | None = None,
        remote_code: str | None = None,
    ):
        self.kind = kind
        self.service_id = service_id
        self.status_code = status_code
        self.remote_code = remote_code
        super().__init__(message)

    @property
    def is_remote_fault(self) -> bool:
        return self.kind in REMOTE_FAULTS


class CircuitOpenError(ServiceError):
    """Circuit breaker is open, request blocked."""

    def __init__(self, service_id: str, reset_after_seconds: float):
        self.reset_after_seconds = reset_after_seconds
        super().__init__(
            f"Circuit breaker open for service '{service_id}', "
            f"retry after {reset_after_seconds:.1f}s",
            FailureKind.CIRCUIT_OPEN,
            service_id=service_id,
        )


class RequestTimeoutError(ServiceError):
    """Request timed out."""

    def __init__(self, service_id: str, timeout: float):
        self.timeout = timeout
        super().__init__(
            f"Request to service '{service_id}' timed out after {timeout}s",
            FailureKind.TIMEOUT,
            service_id=service_id,
        )


class RetryExhaustedError(ServiceError):
    """All retry attempts failed."""

    def __init__(self, attempts: int, last_error: ServiceError):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Gave up after {attempts} attempts: {last_error}",
            FailureKind.RETRY_EXHAUSTED,
            service_id=last_error.service_id,
        )


class FallbackUnavailableError(ServiceError):
    """No degraded response exists for the failed operation."""

    def __init__(self, operation: str, cause: ServiceError):
        self.operation = operation
        self.cause = cause
        super().__init__(
            f"No fallback for '{operation}' after: {cause}",
            FailureKind.FALLBACK_UNAVAILABLE,
            service_id=cause.service_id,
        )
