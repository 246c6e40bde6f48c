"""
CoreBankingClient - async HTTP client for the core banking block/unblock API.

Issues exactly one request per call and classifies failures into
ServiceErrors. Retrying and circuit breaking are layered on top by the caller.
"""

import asyncio
from dataclasses import dataclass
from typing import Any

import httpx
from loguru import logger

from account_status.models import Operation, StatusRequest, StatusResult
from account_status.services.errors import (
    FailureKind,
    RequestTimeoutError,
    ServiceError,
)

RETRYABLE_STATUS_CODES = frozenset({429})


@dataclass
class CoreBankingConfig:
    """Configuration for the core banking service."""

    base_url: str
    service_id: str = "core-banking"
    timeout: float = 5.0
    headers: dict[str, str] | None = None


class CoreBankingClient:
    """
    Client for the core banking account status endpoints.

    Usage:
        async with CoreBankingClient(CoreBankingConfig(base_url=url)) as client:
            result = await client.block(request)
    """

    def __init__(
        self,
        config: CoreBankingConfig,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.config = config
        self._http_client = http_client

    @property
    def service_id(self) -> str:
        return self.config.service_id

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout),
                headers=self.config.headers,
            )
        return self._http_client

    def _url(self, account_id: str, action: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/accounts/{account_id}/{action}"

    async def block(self, request: StatusRequest) -> StatusResult:
        """Block an account. The remote answers with the generated block number."""
        details = request.details
        data = await self._post(
            self._url(request.account_identifier, "block"),
            _without_nulls(
                {"reason": details.get("reason"), "comment": details.get("comment")}
            ),
        )
        block_number = data.get("blockNumber")
        if block_number is not None and (
            isinstance(block_number, bool) or not isinstance(block_number, int)
        ):
            raise self._error(
                f"blockNumber is not an integer: {block_number!r}",
                FailureKind.MALFORMED_RESPONSE,
            )

        return StatusResult(
            account_identifier=request.account_identifier,
            operation=Operation.BLOCK,
            generated_reference_number=block_number,
            succeeded=True,
        )

    async def unblock(self, request: StatusRequest) -> StatusResult:
        """Lift a previous block on an account."""
        details = request.details
        await self._post(
            self._url(request.account_identifier, "unblock"),
            _without_nulls(
                {
                    "blockNumber": details.get("blockNumber"),
                    "reason": details.get("releaseReason"),
                }
            ),
        )
        return StatusResult(
            account_identifier=request.account_identifier,
            operation=Operation.UNBLOCK,
            succeeded=True,
        )

    async def _post(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Execute the actual HTTP request."""
        client = await self._get_http_client()
        logger.debug(f"POST {url}")

        # httpx times each phase separately; the deadline bounds the whole call
        try:
            response = await asyncio.wait_for(
                client.post(url, json=payload, timeout=self.config.timeout),
                self.config.timeout,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            raise RequestTimeoutError(self.service_id, self.config.timeout) from e
        except httpx.TransportError as e:
            raise self._error(str(e) or type(e).__name__, FailureKind.CONNECTION) from e

        if response.is_error:
            raise self._status_error(response)

        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise self._error(
                f"Response is not JSON: {response.text[:200]}",
                FailureKind.MALFORMED_RESPONSE,
                status_code=response.status_code,
            ) from e
        if not isinstance(data, dict):
            raise self._error(
                f"Response is not a JSON object: {response.text[:200]}",
                FailureKind.MALFORMED_RESPONSE,
                status_code=response.status_code,
            )
        return data

    def _status_error(self, response: httpx.Response) -> ServiceError:
        status_code = response.status_code
        message = f"HTTP {status_code}: {response.text[:200]}"

        if status_code >= 500 or status_code in RETRYABLE_STATUS_CODES:
            return self._error(message, FailureKind.SERVER_ERROR, status_code=status_code)
        if status_code == 404:
            return self._error(message, FailureKind.NOT_FOUND, status_code=status_code)
        return self._error(
            message,
            FailureKind.REJECTED,
            status_code=status_code,
            remote_code=_remote_code(response),
        )

    def _error(
        self,
        message: str,
        kind: FailureKind,
        status_code: int | None = None,
        remote_code: str | None = None,
    ) -> ServiceError:
        return ServiceError(
            message,
            kind,
            service_id=self.service_id,
            status_code=status_code,
            remote_code=remote_code,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.debug("CoreBankingClient closed")

    async def __aenter__(self) -> "CoreBankingClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()


def _remote_code(response: httpx.Response) -> str | None:
    """Pull the business error code out of an error body, if there is one."""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("code"), str):
        return body["code"]
    return None


def _without_nulls(payload: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}
