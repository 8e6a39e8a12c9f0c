# chatlearn/middleware.py
"""
Request logging, CORS preflight and security header middleware.
"""

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from .config import settings
from .logging_config import get_logger

logger = get_logger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type, x-webhook-secret, x-webhook-delivery-id",
    "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs every request with a generated request_id and its duration.
    """

    EXCLUDED_PATHS = ["/health", "/docs", "/openapi.json", "/redoc"]
    SLOW_REQUEST_SECONDS = 2.0

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        start_time = time.time()

        should_log = not any(request.url.path.startswith(path) for path in self.EXCLUDED_PATHS)

        if should_log:
            logger.info(
                f"Incoming request: {request.method} {request.url.path}",
                extra={
                    "request_id": request_id,
                    "extra_data": {
                        "method": request.method,
                        "path": request.url.path,
                        "client_host": request.client.host if request.client else None,
                    }
                }
            )

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                f"Request failed: {request.method} {request.url.path}",
                extra={
                    "request_id": request_id,
                    "extra_data": {
                        "process_time_ms": int((time.time() - start_time) * 1000),
                        "exception": str(exc)
                    }
                },
                exc_info=True
            )
            raise

        process_time = time.time() - start_time
        process_time_ms = int(process_time * 1000)
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(process_time_ms)

        if should_log:
            if response.status_code >= 500:
                log_level = logger.error
            elif response.status_code >= 400:
                log_level = logger.warning
            else:
                log_level = logger.info

            log_level(
                f"Request completed: {request.method} {request.url.path} - {response.status_code}",
                extra={
                    "request_id": request_id,
                    "user_id": getattr(request.state, "user_id", None),
                    "extra_data": {
                        "status_code": response.status_code,
                        "process_time_ms": process_time_ms,
                    }
                }
            )

        if process_time > self.SLOW_REQUEST_SECONDS:
            logger.warning(
                f"Slow request detected: {request.method} {request.url.path}",
                extra={"request_id": request_id, "extra_data": {"process_time_ms": process_time_ms}}
            )

        return response


class PreflightMiddleware(BaseHTTPMiddleware):
    """Answer every OPTIONS request with an empty 200 and the CORS headers"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=CORS_HEADERS)
        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response


def register_middleware(app):
    """
    Register all middleware. The last one added is the outermost layer.
    """
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(PreflightMiddleware)

    logger.info("Middleware registered successfully")
