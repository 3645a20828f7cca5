"""
Scrapbook Backend — Request Logging Middleware
===============================================

What:  One access-log line per request: method, path, status, duration,
       request id and client address.
Who:   Registered in main.create_app(); runs inside RequestIDMiddleware so
       the id is already set.

Privacy:
    Request bodies and the Authorization header are never logged; sign-in
    payloads carry emails and tokens.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from scrapbook.middleware.request_id import request_id_var

logger = logging.getLogger("scrapbook.access")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs at INFO for 2xx/3xx, WARNING for 4xx and ERROR for 5xx so alerting
    can key off the level. Health probes are skipped.
    """

    SKIPPED_PATHS = {"/health"}

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in self.SKIPPED_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        client_ip = request.client.host if request.client else "unknown"
        method = request.method

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start_time) * 1000
        rid = request_id_var.get("")
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
