"""
Exception translation into the error catalog.

Maps every failure raised in the pipeline to an AccountServiceError. Dispatch
is by FailureKind, so new ServiceError subclasses need no new branches here.
"""

from pydantic import ValidationError
from loguru import logger

from account_status.exceptions import AccountServiceError, ErrorCode
from account_status.models import Operation
from account_status.services.errors import FailureKind, ServiceError

_KIND_TO_CODE: dict[FailureKind, ErrorCode] = {
    FailureKind.TIMEOUT: ErrorCode.FAILED_PROCESS,
    FailureKind.CONNECTION: ErrorCode.FAILED_PROCESS,
    FailureKind.SERVER_ERROR: ErrorCode.FAILED_PROCESS,
    FailureKind.MALFORMED_RESPONSE: ErrorCode.FAILED_PROCESS,
    FailureKind.CIRCUIT_OPEN: ErrorCode.FAILED_PROCESS,
    FailureKind.RETRY_EXHAUSTED: ErrorCode.FAILED_PROCESS,
    FailureKind.NOT_FOUND: ErrorCode.ACCOUNT_NOT_FOUND,
    FailureKind.REJECTED: ErrorCode.FAILED_PROCESS,
}

# Remote business codes that name one of our own entries
_REMOTE_CODES = frozenset(
    {
        ErrorCode.ACCOUNT_NOT_FOUND,
        ErrorCode.ACCOUNT_HAS_BALANCE,
        ErrorCode.CANCELLATION_FAILED,
    }
)


class ExceptionTranslator:
    """Turns any exception into a catalog-typed AccountServiceError."""

    def translate(
        self,
        exc: BaseException,
        account_id: str | None = None,
        operation: Operation | None = None,
    ) -> AccountServiceError:
        if isinstance(exc, AccountServiceError):
            return exc

        params = {
            "account_id": account_id,
            "operation": (
                operation.name.lower() if isinstance(operation, Operation) else operation
            ),
        }

        if isinstance(exc, ServiceError):
            code = self._code_for(exc, operation)
            error = AccountServiceError(code, detail=str(exc), **params)
        elif isinstance(exc, ValidationError):
            first = exc.errors()[0] if exc.errors() else {}
            field = ".".join(str(part) for part in first.get("loc", ())) or "request"
            error = AccountServiceError(
                ErrorCode.INVALID_INPUT,
                field=field,
                detail=first.get("msg", str(exc)),
                **params,
            )
        else:
            error = AccountServiceError(
                ErrorCode.ERROR_PROCESS, detail=str(exc), **params
            )

        self._log(exc, error)
        return error

    def _code_for(self, exc: ServiceError, operation: Operation | None) -> ErrorCode:
        if exc.kind == FailureKind.FALLBACK_UNAVAILABLE:
            if operation == Operation.UNBLOCK:
                return ErrorCode.CANCELLATION_FAILED
            return ErrorCode.FAILED_PROCESS

        if exc.kind == FailureKind.REJECTED:
            remote = ErrorCode.lookup(exc.remote_code)
            if remote in _REMOTE_CODES:
                return remote

        return _KIND_TO_CODE.get(exc.kind, ErrorCode.ERROR_PROCESS)

    def _log(self, exc: BaseException, error: AccountServiceError) -> None:
        message = (
            f"{type(exc).__name__} translated to {error.code.name} "
            f"({error.http_status}): {exc}"
        )
        if error.http_status >= 500:
            logger.error(message)
        else:
            logger.warning(message)
