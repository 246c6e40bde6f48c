"""
Account status models.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

ACCOUNT_IDENTIFIER_PATTERN = r"^[0-9]{12}$"


class Operation(str, Enum):
    """Status change requested on an account."""

    BLOCK = "lock"
    UNBLOCK = "unlock"


class StatusRequest(BaseModel):
    """A single status change request, already past the identifier check."""

    model_config = ConfigDict(frozen=True)

    account_identifier: str
    operation: Operation
    details: dict[str, Any] = Field(default_factory=dict)


class StatusResult(BaseModel):
    """Outcome of a status change."""

    account_identifier: str
    operation: Operation
    generated_reference_number: int | None = None
    succeeded: bool
    degraded: bool = False  # produced by the fallback handler


class StatusChangePayload(BaseModel):
    """Inbound HTTP body."""

    model_config = ConfigDict(populate_by_name=True)

    account_identifier: str = Field(
        alias="accountIdentifier", pattern=ACCOUNT_IDENTIFIER_PATTERN
    )
    operation: Operation
    details: dict[str, Any] = Field(default_factory=dict)


class StatusResponse(BaseModel):
    """Outbound HTTP body for a completed (or degraded) status change."""

    model_config = ConfigDict(populate_by_name=True)

    account_identifier: str = Field(alias="accountIdentifier")
    generated_reference_number: int | None = Field(
        default=None, alias="generatedReferenceNumber"
    )
    succeeded: bool

    @classmethod
    def from_result(cls, result: StatusResult) -> "StatusResponse":
        return cls(
            account_identifier=result.account_identifier,
            generated_reference_number=(
                result.generated_reference_number
                if result.operation == Operation.BLOCK
                else None
            ),
            succeeded=result.succeeded,
        )
