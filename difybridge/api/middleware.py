"""Request tracing middleware for FastAPI.

One structured log line per call: method, path, status, latency and the
correlation ID. Streamed completions are flagged, since their latency only
covers the time until the first frame was ready.
"""

import time
from collections.abc import Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger()


class RequestTracingMiddleware(BaseHTTPMiddleware):
    """Logs each request through structlog with the correlation ID bound."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Lazy import to avoid circular dependency
        from difybridge.api.main import get_correlation_id

        started = time.perf_counter()
        with structlog.contextvars.bound_contextvars(correlation_id=get_correlation_id()):
            try:
                response = await call_next(request)
            except Exception as e:
                logger.error(
                    "request_error",
                    method=request.method,
                    path=request.url.path,
                    latency_ms=_elapsed_ms(started),
                    error_type=type(e).__name__,
                )
                raise

            logger.info(
                "request",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                latency_ms=_elapsed_ms(started),
                streamed=response.headers.get("content-type", "").startswith("text/event-stream"),
            )
        return response


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
