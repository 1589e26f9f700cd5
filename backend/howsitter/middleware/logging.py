"""
How Sitter Backend — Request Logging Middleware
=================================================

What:  One access log line per request: method, path, status, duration,
       caller and request id.
Who:   Registered in create_app() inside RequestIDMiddleware; the request id
       reaches the line through RequestIDLogFilter.

Log level follows the status: 5xx → ERROR, 4xx → WARNING, otherwise INFO.
Probe traffic on QUIET_PATHS is logged at DEBUG.
Request bodies are never logged (passwords, messages between users).
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("howsitter.access")

QUIET_PATHS = {"/health"}


def _level_for(path: str, status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    if path in QUIET_PATHS:
        return logging.DEBUG
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        start = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start) * 1000
        status = response.status_code
        logger.log(
            _level_for(path, status),
            "%s %s %d %.1fms from %s",
            request.method,
            path,
            status,
            duration_ms,
            client_ip,
            extra={
                "method": request.method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )
        return response
