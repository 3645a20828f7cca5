"""
Scrapbook Backend — Rate Limiting Middleware
=============================================

What:  Per-IP sliding-window limiter for the sign-in and score endpoints.
How:   Keeps the timestamps of each IP's recent requests in memory, drops
       those older than the window, and answers 429 with Retry-After once
       RATE_LIMIT_REQUESTS remain inside RATE_LIMIT_WINDOW seconds.

Only the paths in LIMITED_PREFIXES are counted, minus EXEMPT_PATHS. Page
reads and the admin console are left alone.

Single-process only: each uvicorn worker keeps its own counters.
"""

import logging
import time
from collections import defaultdict, deque
from typing import Deque, Dict, Tuple

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from scrapbook.config import settings
from scrapbook.exceptions import RateLimitExceededError
from scrapbook.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

# Prune idle IPs every this many requests
CLEANUP_EVERY = 1000


class RateLimitMiddleware(BaseHTTPMiddleware):
    LIMITED_PREFIXES: Tuple[str, ...] = ("/api/auth/", "/api/scores")
    # Gateway sign-ins all share one client address; the gateway key guards them.
    EXEMPT_PATHS: Tuple[str, ...] = ("/api/auth/identity",)

    def __init__(self, app, **kwargs):
        super().__init__(app, **kwargs)
        self._requests: Dict[str, Deque[float]] = defaultdict(deque)
        self._seen = 0

    def is_limited(self, path: str) -> bool:
        return path.startswith(self.LIMITED_PREFIXES) and path not in self.EXEMPT_PATHS

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if not self.is_limited(request.url.path):
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.time()
        window_start = now - settings.rate_limit_window

        timestamps = self._requests[client_ip]
        while timestamps and timestamps[0] <= window_start:
            timestamps.popleft()

        if len(timestamps) >= settings.rate_limit_requests:
            retry_after = int(timestamps[0] + settings.rate_limit_window - now) + 1
            logger.warning(
                "Rate limit exceeded for IP %s: %d requests in %ds window",
                client_ip,
                len(timestamps),
                settings.rate_limit_window,
            )
            return self.too_many_requests(RateLimitExceededError(retry_after=retry_after))

        timestamps.append(now)
        self._seen += 1
        if self._seen % CLEANUP_EVERY == 0:
            self._cleanup_inactive_ips(window_start)

        return await call_next(request)

    @staticmethod
    def too_many_requests(exc: RateLimitExceededError) -> JSONResponse:
        # Middleware runs outside the app's exception handlers.
        return JSONResponse(
            status_code=429,
            content={
                "error": "rate_limit_exceeded",
                "message": exc.message,
                "details": exc.context,
                "request_id": request_id_var.get(""),
            },
            headers={"Retry-After": str(exc.retry_after)},
        )

    def _cleanup_inactive_ips(self, window_start: float) -> None:
        inactive = [
            ip for ip, timestamps in self._requests.items()
            if not timestamps or timestamps[-1] <= window_start
        ]
        for ip in inactive:
            del self._requests[ip]
        if inactive:
            logger.debug("Cleaned up %d inactive IP entries", len(inactive))
