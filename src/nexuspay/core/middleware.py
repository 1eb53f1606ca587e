"""
Middleware components for request logging, error mapping and webhook CORS.
"""

import time
import uuid
from typing import Callable, Iterable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp

from nexuspay.config.settings import settings
from nexuspay.core.exceptions import HTTPExceptionHandler, NexusPayError
from nexuspay.core.schemas import standard_response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request/response logging."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        start_time = time.time()
        log = logger.bind(request_id=request_id)
        log.info(
            f"Request started: {request.method} {request.url.path}",
            client_ip=self._get_client_ip(request),
            user_agent=request.headers.get("user-agent", "unknown"),
        )

        try:
            response = await call_next(request)
        except Exception as e:
            log.error(
                f"Request failed: {request.method} {request.url.path}",
                error=str(e),
                exception_type=type(e).__name__,
                process_time=round((time.time() - start_time) * 1000, 2),
            )
            raise

        process_time = round((time.time() - start_time) * 1000, 2)
        log.info(
            f"Request completed: {request.method} {request.url.path} -> {response.status_code}",
            status_code=response.status_code,
            process_time=process_time,
        )

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(process_time)
        return response

    def _get_client_ip(self, request: Request) -> str:
        """Extract client IP address from request."""
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip

        return request.client.host if request.client else "unknown"


class ExceptionHandlingMiddleware(BaseHTTPMiddleware):
    """Turns domain exceptions into the standard error envelope."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except NexusPayError as e:
            status_code = HTTPExceptionHandler.status_code_for(e)
            logger.bind(request_id=getattr(request.state, "request_id", "unknown")).warning(
                f"{type(e).__name__}: {e.message}",
                error_code=e.error_code,
                details=e.details,
            )
            return JSONResponse(
                status_code=status_code,
                content=standard_response(False, e.message, None, HTTPExceptionHandler.to_error_body(e)),
            )
        except Exception as e:
            logger.bind(request_id=getattr(request.state, "request_id", "unknown")).exception(
                f"Unexpected exception: {type(e).__name__}: {e}"
            )
            return JSONResponse(
                status_code=500,
                content=standard_response(
                    False,
                    "An unexpected error occurred",
                    None,
                    {"code": "INTERNAL_SERVER_ERROR", "message": "An unexpected error occurred"},
                ),
            )


class WebhookCORSMiddleware(BaseHTTPMiddleware):
    """
    Permissive CORS for provider callback routes.

    Every response under ``path_prefixes`` carries the ``Access-Control-*``
    headers, and ``OPTIONS`` is answered with an empty 200 before any
    route logic runs.
    """

    def __init__(
        self,
        app: ASGIApp,
        path_prefixes: Iterable[str],
        generic_prefix: str = "/api/webhook",
    ):
        super().__init__(app)
        self.path_prefixes = tuple(path_prefixes)
        self.generic_prefix = generic_prefix

    def _applies_to(self, path: str) -> bool:
        return path.startswith(self.path_prefixes)

    def cors_headers(self, path: str) -> dict:
        methods = "GET, POST, OPTIONS" if path.startswith(self.generic_prefix) else "POST, OPTIONS"
        return {
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": methods,
            "Access-Control-Allow-Headers": "Content-Type",
        }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if not self._applies_to(path):
            return await call_next(request)

        if request.method == "OPTIONS":
            return Response(status_code=200, headers=self.cors_headers(path))

        response = await call_next(request)
        response.headers.update(self.cors_headers(path))
        return response


def setup_middleware(app, webhook_paths: Iterable[str]):
    """Setup all middleware for the FastAPI app."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_origins,
        allow_credentials="*" not in settings.security.cors_origins,
        allow_methods=settings.security.cors_allow_methods,
        allow_headers=settings.security.cors_allow_headers,
    )

    app.add_middleware(ExceptionHandlingMiddleware)
    # Wraps CORSMiddleware: webhook preflights are answered here
    app.add_middleware(WebhookCORSMiddleware, path_prefixes=webhook_paths)
    app.add_middleware(RequestLoggingMiddleware)

    return app
