"""
Global Rate Limiting Middleware.

Per-client-IP fixed window: RATE_LIMIT_MAX requests every RATE_LIMIT_DURATION
seconds, counted with the `limits` storage and strategy that slowapi is built
on. Every limited response carries X-RateLimit-Limit, X-RateLimit-Remaining
and X-RateLimit-Reset; an exhausted window answers 429.

Health, metrics and docs are exempt.
"""
import logging
from typing import Callable, Optional

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from limits import RateLimitItemPerSecond
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import settings

logger = logging.getLogger(__name__)

EXEMPT_PATHS = {
    "/api/health",
    "/metrics",
    "/docs",
    "/redoc",
    "/openapi.json",
}


def is_exempt_path(path: str) -> bool:
    return path in EXEMPT_PATHS


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Fixed-window rate limiting keyed on the client IP.

    Args:
        app: ASGI app
        max_requests: Requests allowed per window (default RATE_LIMIT_MAX)
        window_seconds: Window length (default RATE_LIMIT_DURATION)
        storage_uri: limits storage URI (default RATE_LIMIT_STORAGE_URI);
            memory:// expires old windows by itself
        enabled: Default RATE_LIMIT_ENABLED
    """

    def __init__(
        self,
        app,
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None,
        storage_uri: Optional[str] = None,
        enabled: Optional[bool] = None,
    ):
        super().__init__(app)
        self.enabled = settings.RATE_LIMIT_ENABLED if enabled is None else enabled
        self.item = RateLimitItemPerSecond(
            max_requests or settings.RATE_LIMIT_MAX,
            window_seconds or settings.RATE_LIMIT_DURATION,
        )
        self.storage = storage_from_string(storage_uri or settings.RATE_LIMIT_STORAGE_URI)
        self.limiter = FixedWindowRateLimiter(self.storage)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self.enabled or is_exempt_path(request.url.path):
            return await call_next(request)

        key = get_remote_address(request)
        allowed = self.limiter.hit(self.item, "ip", key)
        reset_at, remaining = self.limiter.get_window_stats(self.item, "ip", key)
        headers = {
            "X-RateLimit-Limit": str(self.item.amount),
            "X-RateLimit-Remaining": str(max(remaining, 0)),
            "X-RateLimit-Reset": str(int(reset_at)),
        }

        if not allowed:
            logger.warning(
                f"Rate limit exceeded for IP: {key}",
                extra={
                    "event_type": "ip_rate_limit_exceeded",
                    "client_ip": key,
                    "path": request.url.path,
                    "method": request.method,
                }
            )
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"detail": "Rate limit exceeded"},
                headers={**headers, "Retry-After": str(self.item.get_expiry())},
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response
