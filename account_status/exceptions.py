"""
Error catalog and the typed error returned to callers.

Every failure that leaves the service is an AccountServiceError tagged with
one ErrorCode. The code carries the message template and the HTTP status.
"""

from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Any

from fastapi import status


@dataclass(frozen=True)
class ErrorEntry:
    """Catalog entry: code, message template and HTTP status."""

    code: str
    message_template: str
    http_status: int

    def render(self, params: dict[str, Any]) -> str:
        return self.message_template.format_map(
            defaultdict(lambda: "unknown", params)
        )


class ErrorCode(Enum):
    """Named failure kinds exposed at the service boundary."""

    BAD_REQUEST = ErrorEntry(
        "BAD_REQUEST",
        "Bad request: {detail}",
        status.HTTP_400_BAD_REQUEST,
    )
    INVALID_INPUT = ErrorEntry(
        "INVALID_INPUT",
        "Invalid value for '{field}': {detail}",
        status.HTTP_400_BAD_REQUEST,
    )
    FAILED_PROCESS = ErrorEntry(
        "FAILED_PROCESS",
        "Core banking could not {operation} account {account_id}: {detail}",
        status.HTTP_502_BAD_GATEWAY,
    )
    ERROR_PROCESS = ErrorEntry(
        "ERROR_PROCESS",
        "Unexpected error processing account {account_id}",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    ACCOUNT_NOT_FOUND = ErrorEntry(
        "ACCOUNT_NOT_FOUND",
        "Account {account_id} was not found",
        status.HTTP_404_NOT_FOUND,
    )
    ACCOUNT_HAS_BALANCE = ErrorEntry(
        "ACCOUNT_HAS_BALANCE",
        "Account {account_id} has a balance and cannot be processed",
        status.HTTP_409_CONFLICT,
    )
    CANCELLATION_FAILED = ErrorEntry(
        "CANCELLATION_FAILED",
        "Block on account {account_id} could not be cancelled, try again later",
        status.HTTP_503_SERVICE_UNAVAILABLE,
    )
    BLOCKED_ACCOUNT_NO_BLOCK_NUMBER = ErrorEntry(
        "BLOCKED_ACCOUNT_NO_BLOCK_NUMBER",
        "Account {account_id} was blocked without a valid block number",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )

    @property
    def entry(self) -> ErrorEntry:
        return self.value

    @classmethod
    def lookup(cls, code: str | None) -> "ErrorCode | None":
        """Find a catalog entry by its code string."""
        if not code:
            return None
        return cls.__members__.get(code.upper())


class AccountServiceError(Exception):
    """Typed failure surfaced to callers of the account status service."""

    def __init__(self, code: ErrorCode, **params: Any):
        self.code = code
        self.params = params
        self.message = code.entry.render(params)
        super().__init__(self.message)

    @property
    def http_status(self) -> int:
        return self.code.entry.http_status

    def to_dict(self) -> dict[str, Any]:
        """Convert to the outbound failure payload."""
        return {
            "code": self.code.entry.code,
            "message": self.message,
            "httpStatusClass": self.http_status,
        }

    def __repr__(self) -> str:
        return f"AccountServiceError({self.code.name}, {self.message!r})"
