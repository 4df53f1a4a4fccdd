"""
Request Logging Middleware

Middleware that:
- Generates a request_id for each request (or reuses a well-formed X-Request-ID)
- Logs request start and end with timing
- Propagates request_id to all logs via contextvars
- Records metrics for Prometheus
"""
import logging
import re
import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.logging_config import clear_request_id, get_request_id, sanitize_log_value, set_request_id
from app.core.metrics import record_request_metrics

logger = logging.getLogger(__name__)

_REQUEST_ID_PATTERN = re.compile(r'^[A-Za-z0-9-]{8,64}$')


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that logs all HTTP requests with timing and correlation IDs.

    For each request:
    1. Picks the request_id
    2. Sets request_id in context for all downstream logs
    3. Logs request start (method, path)
    4. Logs request end (status code, response time in ms)
    """

    # Paths to exclude from detailed logging
    EXCLUDED_PATHS = {'/api/health', '/metrics', '/docs', '/redoc', '/openapi.json'}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        incoming = request.headers.get("X-Request-ID", "")
        request_id = incoming if _REQUEST_ID_PATTERN.match(incoming) else str(uuid.uuid4())

        token = set_request_id(request_id)
        request.state.request_id = request_id

        start_time = time.perf_counter()

        method = request.method
        path = request.url.path
        client_host = request.client.host if request.client else "unknown"

        should_log = path not in self.EXCLUDED_PATHS

        if should_log:
            logger.info(
                "Request started",
                extra={
                    "event_type": "request_start",
                    "method": method,
                    "path": sanitize_log_value(path),
                    "client_ip": client_host,
                }
            )

        try:
            response = await call_next(request)
            elapsed = time.perf_counter() - start_time

            response.headers["X-Request-ID"] = request_id

            if should_log:
                log_level = logging.INFO if response.status_code < 400 else logging.WARNING
                if response.status_code >= 500:
                    log_level = logging.ERROR

                logger.log(
                    log_level,
                    "Request completed",
                    extra={
                        "event_type": "request_complete",
                        "method": method,
                        "path": sanitize_log_value(path),
                        "status_code": response.status_code,
                        "response_time_ms": round(elapsed * 1000, 2),
                        "client_ip": client_host,
                    }
                )

            record_request_metrics(
                method=method,
                path=path,
                status_code=response.status_code,
                response_time_seconds=elapsed
            )
            return response

        except Exception as e:
            elapsed = time.perf_counter() - start_time

            logger.error(
                "Request failed with exception",
                extra={
                    "event_type": "request_error",
                    "method": method,
                    "path": sanitize_log_value(path),
                    "response_time_ms": round(elapsed * 1000, 2),
                    "client_ip": client_host,
                    "error_type": type(e).__name__,
                },
                exc_info=True
            )
            record_request_metrics(
                method=method,
                path=path,
                status_code=500,
                response_time_seconds=elapsed
            )
            raise

        finally:
            clear_request_id(token)


def get_current_request_id() -> str:
    """Current request ID, or "no-request" outside a request."""
    return get_request_id() or "no-request"
