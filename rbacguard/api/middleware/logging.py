"""Logging middleware for request/response tracking."""

import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from rbacguard.core.config import settings
from rbacguard.core.logging import get_logger, log_event

logger = get_logger(__name__)

# Probe and scrape traffic is only logged at debug level
QUIET_PATHS = {settings.health_check_path, settings.metrics_path}


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging webhook calls and their latency."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        level = "debug" if request.url.path in QUIET_PATHS else "info"

        request_info = {
            "method": request.method,
            "path": request.url.path,
            "timeout": request.query_params.get("timeout"),
            "client_host": request.client.host if request.client else None,
        }

        log_event(logger, level, "request_started", **request_info)

        try:
            response = await call_next(request)
        except Exception as e:
            log_event(
                logger,
                "error",
                "request_failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=time.time() - start_time,
                **request_info,
            )
            raise

        duration = time.time() - start_time
        log_event(
            logger,
            level if response.status_code < 500 else "error",
            "request_completed",
            status_code=response.status_code,
            duration_seconds=duration,
            **request_info,
        )

        response.headers["X-Process-Time"] = str(duration)
        return response
