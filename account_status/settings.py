import os
from datetime import timedelta

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from account_status.services.errors import FailureKind

load_dotenv()


class Settings(BaseModel):
    # Service Configuration
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8080, alias="PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Core Banking Configuration
    core_banking_url: str = Field(
        default="http://127.0.0.1:9090/core-banking/v1", alias="CORE_BANKING_URL"
    )
    core_banking_timeout: float = Field(default=5.0, alias="CORE_BANKING_TIMEOUT")
    core_banking_service_id: str = Field(
        default="core-banking", alias="CORE_BANKING_SERVICE_ID"
    )

    # Circuit Breaker Configuration
    sliding_window_size: int = Field(default=10, ge=1, alias="CB_SLIDING_WINDOW_SIZE")
    minimum_number_of_calls: int = Field(
        default=5, ge=1, alias="CB_MINIMUM_NUMBER_OF_CALLS"
    )
    permitted_number_of_calls_in_half_open_state: int = Field(
        default=3, ge=1, alias="CB_PERMITTED_CALLS_IN_HALF_OPEN_STATE"
    )
    wait_duration_in_open_state: timedelta = Field(
        default=timedelta(seconds=30), alias="CB_WAIT_DURATION_IN_OPEN_STATE"
    )
    failure_rate_threshold: float = Field(
        default=50.0, gt=0, le=100, alias="CB_FAILURE_RATE_THRESHOLD"
    )

    # Retry Configuration
    max_attempts: int = Field(default=3, ge=1, alias="RETRY_MAX_ATTEMPTS")
    inter_attempt_delay: timedelta = Field(
        default=timedelta(milliseconds=500), alias="RETRY_INTER_ATTEMPT_DELAY"
    )
    retryable_failures: frozenset[FailureKind] = Field(
        default=frozenset(
            {FailureKind.TIMEOUT, FailureKind.CONNECTION, FailureKind.SERVER_ERROR}
        ),
        alias="RETRYABLE_FAILURES",
    )

    @field_validator("wait_duration_in_open_state", "inter_attempt_delay", mode="before")
    @classmethod
    def _seconds_to_timedelta(cls, value):
        # Plain numbers are seconds; ISO 8601 durations go to pydantic as-is
        if isinstance(value, str):
            try:
                return timedelta(seconds=float(value))
            except (ValueError, OverflowError):
                return value
        return value

    @field_validator("retryable_failures", mode="before")
    @classmethod
    def _split_failure_kinds(cls, value):
        if isinstance(value, str):
            return {item.strip().lower() for item in value.split(",") if item.strip()}
        return value


global_settings = Settings.model_validate(dict(os.environ))
