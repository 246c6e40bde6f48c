"""FastAPI server exposing account block/unblock."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from account_status.exceptions import AccountServiceError, ErrorCode
from account_status.models import StatusChangePayload, StatusResponse
from account_status.services.account_status import AccountStatusService
from account_status.services.circuit_breaker import CircuitBreakerRegistry


class AccountStatusServer:
    """HTTP server for account status changes."""

    def __init__(
        self,
        service: AccountStatusService,
        registry: CircuitBreakerRegistry | None = None,
    ):
        self.service = service
        self.registry = registry
        self.app = FastAPI(title="Account Status Service", lifespan=self.lifespan)

        # Register routes
        self.app.post(
            "/accounts/status",
            response_model=StatusResponse,
            response_model_exclude_none=True,
            response_model_by_alias=True,
        )(self.change_status)
        self.app.get("/health")(self.health_check)

        # Register error handlers
        self.app.exception_handler(AccountServiceError)(self.handle_service_error)
        self.app.exception_handler(RequestValidationError)(self.handle_bad_request)

    @asynccontextmanager
    async def lifespan(self, app: FastAPI):
        logger.info("Account status service starting")
        yield
        await self.service.close()
        logger.info("Account status service stopped")

    async def change_status(self, payload: StatusChangePayload) -> StatusResponse:
        """Block or unblock the account named in the payload.

        Args:
            payload: Validated request body

        Returns:
            Status response; degraded results come back with succeeded=false
        """
        result = await self.service.change_status(
            payload.account_identifier, payload.operation, payload.details
        )
        return StatusResponse.from_result(result)

    async def health_check(self):
        """Health check endpoint."""
        if self.registry:
            circuits = self.registry.get_all_status()
            open_circuits = self.registry.get_open_circuits()
        else:
            breaker = self.service.breaker
            circuits = {breaker.service_id: breaker.get_status()}
            open_circuits = [
                service_id
                for service_id, circuit in circuits.items()
                if circuit["state"] == "OPEN"
            ]
        return {
            "status": "degraded" if open_circuits else "ok",
            "service": "account-status",
            "circuit_breakers": circuits,
            "open_circuits": open_circuits,
        }

    async def handle_service_error(
        self, request: Request, exc: AccountServiceError
    ) -> JSONResponse:
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    async def handle_bad_request(
        self, request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        detail = f"{field or 'body'}: {first.get('msg', 'invalid request')}"
        logger.warning(f"Rejected request to {request.url.path}: {detail}")

        error = AccountServiceError(ErrorCode.BAD_REQUEST, detail=detail)
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error.to_dict())


def create_app(
    service: AccountStatusService,
    registry: CircuitBreakerRegistry | None = None,
) -> FastAPI:
    """Create FastAPI app for the account status service.

    Args:
        service: AccountStatusService instance
        registry: Registry owning the service's breakers, for the health view

    Returns:
        FastAPI app
    """
    server = AccountStatusServer(service, registry)
    return server.app
