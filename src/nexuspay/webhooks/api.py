"""
Inbound payment-provider callback endpoints.

Ack-first routes (``/webhook``, ``/stk-callback``) answer 200 immediately
and forward in the background with retries. The remaining routes forward
once and reflect the backend's status code and body to the provider.
"""

import json
from collections.abc import Callable
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse, Response
from loguru import logger

from nexuspay.core.exceptions import ValidationError, create_validation_error
from nexuspay.core.observability import increment_counter
from nexuspay.core.schemas import standard_response

from .config import WebhookConfig, get_webhook_config
from .forwarder import WebhookForwarder
from .models import TransportFailure
from .routing import (
    B2B_CALLBACK_ROUTE,
    KPLC_TOKEN_ROUTE,
    QUEUE_TIMEOUT_ROUTE,
    STK_CALLBACK_ROUTE,
    CallbackRoute,
    apply_timeouts,
    missing_required_fields,
    resolve_generic_route,
)

WEBHOOK_PATHS = ("/webhook", "/stk-callback", "/b2b-callback", "/queue-timeout", "/kplc-token")

ConfigProvider = Callable[[], WebhookConfig]


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _path_with_query(request: Request) -> str:
    query = request.url.query
    return f"{request.url.path}?{query}" if query else request.url.path


def _ack() -> JSONResponse:
    return JSONResponse(
        status_code=200,
        content={"success": True, "message": "Webhook received", "timestamp": _timestamp()},
    )


def _error_response(status_code: int, message: str, code: str, details: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=standard_response(
            False, message, None, {"code": code, "message": message, "details": details or {}}
        ),
    )


async def parse_payload(request: Request) -> Any:
    """
    Decode a callback body.

    JSON and form-encoded bodies are accepted; an empty body is ``{}``.

    Raises:
        ValidationError: ``INVALID_PAYLOAD`` when the body is not valid JSON
    """
    content_type = request.headers.get("content-type", "")

    if "application/x-www-form-urlencoded" in content_type or "multipart/form-data" in content_type:
        form_data = await request.form()
        return {key: value for key, value in form_data.items() if isinstance(value, str)}

    body = await request.body()
    if not body.strip():
        return {}

    try:
        return json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise create_validation_error(
            "Request body is not valid JSON", code="INVALID_PAYLOAD", error=str(e)
        ) from None


def create_webhook_router(
    forwarder: WebhookForwarder | None = None,
    config: WebhookConfig | None = None,
    config_provider: ConfigProvider = get_webhook_config,
) -> APIRouter:
    """
    Create the callback router.

    Args:
        forwarder: Forwarder shared by all routes (built from config if omitted)
        config: Fixed configuration; when omitted it is read from the
            environment on every request
        config_provider: Source of configuration when ``config`` is omitted

    Returns:
        Configured FastAPI router
    """
    router = APIRouter(tags=["webhooks"])

    if forwarder is None:
        initial = config or config_provider()
        forwarder = WebhookForwarder(
            retry_policy=initial.retry_policy(),
            forwarded_from=initial.forwarded_from,
        )
    router.forwarder = forwarder

    def current_config() -> WebhookConfig:
        return config or config_provider()

    async def acknowledge_then_forward(request: Request, route: CallbackRoute) -> JSONResponse:
        try:
            payload = await parse_payload(request)
        except ValidationError as e:
            # The provider retries anything but a 200, so a bad body is logged and acknowledged
            raw = await request.body()
            logger.error(
                f"{e.error_code}: dropping unparseable {route.name} callback on {request.url.path}: "
                f"{e.details.get('error')}; body={raw[:2048]!r}"
            )
            increment_counter("webhook_requests_total", {"route": route.name, "status": "200"})
            return _ack()

        cfg = current_config()
        route = apply_timeouts(route, cfg.ack_timeout_seconds, cfg.relay_timeout_seconds)
        logger.info(f"M-Pesa {route.name} callback received on {request.url.path} -> {route.internal_path}")

        if not cfg.is_configured:
            logger.error(f"WEBHOOK_NOT_CONFIGURED: BACKEND_URL is not set, dropping {route.name} callback")
        else:
            forwarder.dispatch(route, cfg.backend_url, payload)

        increment_counter("webhook_requests_total", {"route": route.name, "status": "200"})
        return _ack()

    async def forward_then_respond(request: Request, route: CallbackRoute) -> Response:
        cfg = current_config()
        if not cfg.is_configured:
            logger.error(f"WEBHOOK_NOT_CONFIGURED: BACKEND_URL is not set, rejecting {route.name} callback")
            increment_counter("webhook_requests_total", {"route": route.name, "status": "500"})
            return _error_response(500, "Webhook service not configured properly", "WEBHOOK_NOT_CONFIGURED")

        try:
            payload = await parse_payload(request)
        except ValidationError as e:
            increment_counter("webhook_requests_total", {"route": route.name, "status": "400"})
            return _error_response(400, e.message, e.error_code, e.details)

        if route.required_fields:
            missing = missing_required_fields(route, payload if isinstance(payload, dict) else {})
            if missing:
                logger.warning(f"Missing required fields in {route.name} callback: {missing}")
                increment_counter("webhook_requests_total", {"route": route.name, "status": "400"})
                return _error_response(
                    400,
                    f"Missing required fields: {', '.join(route.required_fields)}",
                    "MISSING_FIELDS",
                    {"missing": missing},
                )

        route = apply_timeouts(route, cfg.ack_timeout_seconds, cfg.relay_timeout_seconds)
        outcome = await forwarder.relay(route, cfg.backend_url, payload)

        if isinstance(outcome, TransportFailure):
            increment_counter("webhook_requests_total", {"route": route.name, "status": "502"})
            return _error_response(
                502,
                f"{route.name} callback forwarding failed",
                "FORWARDING_FAILED",
                {"error": outcome.error, "error_type": outcome.error_type},
            )

        increment_counter("webhook_requests_total", {"route": route.name, "status": str(outcome.status_code)})
        headers = {"content-type": outcome.content_type} if outcome.content_type else None
        return Response(content=outcome.body, status_code=outcome.status_code, headers=headers)

    @router.get("/webhook/health")
    async def webhook_health_check() -> dict[str, Any]:
        """Relay configuration and background forwarding state."""
        cfg = current_config()
        validation = cfg.validate()
        return {
            "status": "healthy" if validation["valid"] else "degraded",
            "configured": cfg.is_configured,
            "pendingForwards": forwarder.pending,
            "retry": {
                "maxAttempts": forwarder.retry_policy.max_attempts,
                "plannedDelays": forwarder.retry_policy.planned_delays(),
            },
            "errors": validation["errors"],
            "warnings": validation["warnings"],
            "timestamp": _timestamp(),
        }

    @router.post("/webhook")
    @router.post("/webhook/{subpath:path}")
    async def handle_generic_webhook(request: Request) -> Response:
        """Generic M-Pesa callback entry point, routed by substring of the path and query."""
        route = resolve_generic_route(_path_with_query(request))
        return await acknowledge_then_forward(request, route)

    @router.post("/stk-callback")
    async def handle_stk_callback(request: Request) -> Response:
        """STK push result; the provider enforces a short response deadline."""
        return await acknowledge_then_forward(request, STK_CALLBACK_ROUTE)

    @router.post("/b2b-callback")
    async def handle_b2b_callback(request: Request) -> Response:
        return await forward_then_respond(request, B2B_CALLBACK_ROUTE)

    @router.post("/queue-timeout")
    async def handle_queue_timeout(request: Request) -> Response:
        return await forward_then_respond(request, QUEUE_TIMEOUT_ROUTE)

    @router.post("/kplc-token")
    async def handle_kplc_token(request: Request) -> Response:
        """KPLC token message; ``accountNumber``, ``tokenMessage`` and ``amount`` are required."""
        return await forward_then_respond(request, KPLC_TOKEN_ROUTE)

    return router


def create_standalone_app(
    config: WebhookConfig | None = None,
    forwarder: WebhookForwarder | None = None,
) -> FastAPI:
    """
    Create a FastAPI app serving only the callback routes.

    Background forwards still running at shutdown are awaited.
    """
    from nexuspay.core.middleware import WebhookCORSMiddleware

    router = create_webhook_router(forwarder=forwarder, config=config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if router.forwarder.pending:
            logger.info(f"Waiting for {router.forwarder.pending} background forwards")
        await router.forwarder.drain()

    app = FastAPI(
        title="NexusPay - Webhook Relay",
        description="Relays M-Pesa and KPLC callbacks to the NexusPay backend",
        lifespan=lifespan,
    )
    app.add_middleware(WebhookCORSMiddleware, path_prefixes=WEBHOOK_PATHS, generic_prefix="/webhook")
    app.include_router(router)
    app.state.forwarder = router.forwarder
    return app
