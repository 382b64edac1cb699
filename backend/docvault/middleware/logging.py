"""
DocVault Backend - Request Logging Middleware
==============================================

What:  One access-log line per HTTP request on the `docvault.access` logger.
Why:   Operational view of traffic (status, latency, caller) independent of the
       audit trail, which is stored data rather than logs.
When:  After RequestIDMiddleware, so the request ID is available.

Log line:
    POST /api/collections/items/documents 201 12.4ms [a1b2c3d4] from 10.0.0.7

What we log vs what we DON'T log:
    Logged: method, path, status, duration, client IP, request ID
    Not logged: request bodies and Authorization headers (the audit
    table holds bodies; tokens are never written anywhere)
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from docvault.middleware.request_id import request_id_var

logger = logging.getLogger("docvault.access")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Level follows the status class: 5xx → ERROR, 4xx → WARNING, else INFO.
    Health checks are not logged.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path == "/health":
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        method = request.method
        rid = request_id_var.get("")

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            method,
            path,
            status,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )
        return response
