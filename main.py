"""
Account status service entry point.
Blocks and unblocks accounts on the core banking system.
"""

import sys

import uvicorn
from loguru import logger

from account_status.api.server import create_app
from account_status.services.account_status import AccountStatusService
from account_status.services.circuit_breaker import CircuitBreakerRegistry
from account_status.settings import global_settings


def main() -> None:
    """Main function"""
    logger.remove()
    logger.add(sys.stderr, level=global_settings.log_level.upper())

    logger.info("Starting account status service...")
    logger.info(
        f"Core banking at {global_settings.core_banking_url} "
        f"(timeout {global_settings.core_banking_timeout}s, "
        f"{global_settings.max_attempts} attempts)"
    )

    registry = CircuitBreakerRegistry()
    service = AccountStatusService.from_settings(global_settings, registry=registry)
    app = create_app(service, registry)

    try:
        uvicorn.run(app, host=global_settings.host, port=global_settings.port)
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
    finally:
        logger.info("Account status service stopped")


if __name__ == "__main__":
    main()
