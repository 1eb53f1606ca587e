"""
Main FastAPI application for NexusPay.
Serves the authenticated ramp API and the payment-provider callback relay.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from loguru import logger

from nexuspay.config.settings import settings
from nexuspay.core.database import get_db_manager
from nexuspay.core.middleware import setup_middleware
from nexuspay.core.observability import render_latest
from nexuspay.core.schemas import standard_response
from nexuspay.ramp.api import create_ramp_router
from nexuspay.utils.logging import setup_logging
from nexuspay.webhooks.api import WEBHOOK_PATHS, create_webhook_router
from nexuspay.webhooks.config import WebhookConfig, get_webhook_config
from nexuspay.webhooks.forwarder import WebhookForwarder

API_PREFIX = "/api"


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed or incomplete request bodies as ``400 INVALID_INPUT``."""
    errors = [
        {"field": ".".join(str(part) for part in error["loc"][1:]), "message": error["msg"]}
        for error in exc.errors()
    ]
    logger.warning(f"Invalid input on {request.url.path}: {errors}")
    return JSONResponse(
        status_code=400,
        content=standard_response(
            False,
            "Invalid input parameters",
            None,
            {"code": "INVALID_INPUT", "message": "All fields are required", "details": {"errors": errors}},
        ),
    )


def create_app(
    webhook_config: Optional[WebhookConfig] = None,
    forwarder: Optional[WebhookForwarder] = None,
    create_tables: bool = True,
) -> FastAPI:
    """
    Build the NexusPay application.

    Args:
        webhook_config: Fixed relay configuration (read from the environment per request if omitted)
        forwarder: Callback forwarder shared by the relay routes
        create_tables: Create database tables on startup
    """
    webhook_router = create_webhook_router(forwarder=forwarder, config=webhook_config)
    forwarder = webhook_router.forwarder

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handle application startup and shutdown events."""
        logger.info(f"Starting {settings.app_name} v{settings.app_version} ({settings.environment})")

        validation = settings.validate_configuration()
        for warning in validation["warnings"]:
            logger.warning(f"Configuration warning: {warning}")
        for error in validation["errors"]:
            logger.error(f"Configuration error: {error}")

        (webhook_config or get_webhook_config()).log_configuration()

        if create_tables:
            get_db_manager().create_tables()

        yield

        if forwarder.pending:
            logger.info(f"Waiting for {forwarder.pending} background webhook forwards to finish")
        await forwarder.drain()
        logger.info(f"Shutting down {settings.app_name}")

    app = FastAPI(
        title=settings.app_name,
        description="NexusPay fiat/crypto ramp API and M-Pesa callback relay",
        version=settings.app_version,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )

    setup_middleware(app, webhook_paths=[f"{API_PREFIX}{path}" for path in WEBHOOK_PATHS])
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(create_ramp_router(), prefix=API_PREFIX)
    app.include_router(webhook_router, prefix=API_PREFIX)
    app.state.forwarder = forwarder

    @app.get("/")
    async def root():
        return standard_response(
            True,
            f"{settings.app_name} is running",
            {"version": settings.app_version, "environment": settings.environment},
        )

    @app.get("/health")
    async def health_check():
        """Database and relay health."""
        database = get_db_manager().health_check()
        healthy = database["status"] == "healthy"
        return JSONResponse(
            status_code=200 if healthy else 503,
            content={
                "status": "healthy" if healthy else "unhealthy",
                "database": database,
                "pendingWebhookForwards": forwarder.pending,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

    @app.get("/metrics")
    async def metrics():
        """Prometheus exposition."""
        payload, content_type = render_latest()
        return Response(content=payload, media_type=content_type)

    return app


def run():
    """Run the API server with uvicorn."""
    setup_logging(settings.app_name, settings.logging.level, enable_json=settings.logging.json_logs)
    uvicorn.run(
        "nexuspay.api.main:create_app",
        factory=True,
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
        log_level=settings.logging.level.lower(),
    )


if __name__ == "__main__":
    run()
