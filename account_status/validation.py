"""
Input validation for status change requests.

Each operation has its own rule-set. The rule-sets share no fields and reject
fields they do not know, so lock details never validate as unlock details.
"""

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from account_status.exceptions import AccountServiceError, ErrorCode
from account_status.models import ACCOUNT_IDENTIFIER_PATTERN, Operation, StatusRequest

_IDENTIFIER_RE = re.compile(ACCOUNT_IDENTIFIER_PATTERN)


class BlockReason(str, Enum):
    FRAUD_SUSPICION = "FRAUD_SUSPICION"
    JUDICIAL_ORDER = "JUDICIAL_ORDER"
    CUSTOMER_REQUEST = "CUSTOMER_REQUEST"
    DECEASED_HOLDER = "DECEASED_HOLDER"


class ReleaseReason(str, Enum):
    RESOLVED = "RESOLVED"
    CUSTOMER_REQUEST = "CUSTOMER_REQUEST"
    JUDICIAL_RELEASE = "JUDICIAL_RELEASE"


class BlockDetails(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reason: BlockReason
    comment: str | None = Field(default=None, max_length=200)


class UnblockDetails(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    block_number: int = Field(alias="blockNumber", gt=0, strict=True)
    release_reason: ReleaseReason = Field(alias="releaseReason")


RULE_SETS: dict[Operation, type[BaseModel]] = {
    Operation.BLOCK: BlockDetails,
    Operation.UNBLOCK: UnblockDetails,
}


def parse_account_identifier(raw: Any) -> str:
    """Check the 12-digit account identifier shape."""
    if not isinstance(raw, str) or not _IDENTIFIER_RE.fullmatch(raw):
        raise AccountServiceError(
            ErrorCode.BAD_REQUEST,
            detail=f"account identifier {raw!r} must be 12 digits",
        )
    return raw


def validate_request(request: StatusRequest) -> StatusRequest:
    """Apply the operation's rule-set and return the request with normalised details."""
    rule_set = RULE_SETS[request.operation]
    try:
        details = rule_set.model_validate(request.details)
    except ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or "details"
        raise AccountServiceError(
            ErrorCode.INVALID_INPUT,
            field=field,
            detail=error["msg"],
            account_id=request.account_identifier,
        ) from e

    return request.model_copy(
        update={"details": details.model_dump(mode="json", by_alias=True)}
    )
