"""
MedCheck Backend - Rate Limiting Middleware
===========================================

Per-client sliding window: each client key keeps the timestamps of its
requests inside the last RATE_LIMIT_WINDOW seconds; once there are
RATE_LIMIT_REQUESTS of them the request is answered with 429 and a
Retry-After of when the oldest one leaves the window.

The client key is the bearer token when present (one phone behind a
carrier NAT should not starve another), otherwise the client IP.

State lives in process memory, so every uvicorn worker counts separately.
"""

import hashlib
import logging
import time
from collections import defaultdict, deque
from typing import Deque, Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from medcheck.config import settings

logger = logging.getLogger(__name__)

CLEANUP_EVERY = 1000


def client_key(request: Request) -> str:
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer ") and len(auth) > 7:
        # Keyed by a digest, never the raw token
        return "token:" + hashlib.sha256(auth[7:].encode()).hexdigest()[:16]
    return "ip:" + (request.client.host if request.client else "unknown")


class RateLimitMiddleware(BaseHTTPMiddleware):

    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    def __init__(self, app, requests: Optional[int] = None, window: Optional[int] = None, **kwargs):
        super().__init__(app, **kwargs)
        self.limit = requests or settings.rate_limit_requests
        self.window = window or settings.rate_limit_window
        self._requests: Dict[str, Deque[float]] = defaultdict(deque)
        self._seen = 0

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        key = client_key(request)
        now = time.time()
        window_start = now - self.window

        timestamps = self._requests[key]
        while timestamps and timestamps[0] <= window_start:
            timestamps.popleft()

        if len(timestamps) >= self.limit:
            retry_after = int(timestamps[0] + self.window - now) + 1
            logger.warning(
                "Rate limit exceeded for %s: %d requests in %ds window",
                key,
                len(timestamps),
                self.window,
            )
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limit_exceeded",
                    "message": f"Too many requests. Please wait {retry_after} seconds before retrying.",
                    "details": {"retry_after": retry_after},
                },
                headers={"Retry-After": str(retry_after)},
            )

        timestamps.append(now)
        self._seen += 1
        if self._seen % CLEANUP_EVERY == 0:
            self._cleanup_inactive(window_start)

        return await call_next(request)

    def _cleanup_inactive(self, window_start: float) -> None:
        inactive = [k for k, ts in self._requests.items() if not ts or ts[-1] <= window_start]
        for key in inactive:
            del self._requests[key]
        if inactive:
            logger.debug("Cleaned up %d inactive rate limit entries", len(inactive))
