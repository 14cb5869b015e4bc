"""Error envelopes for the OpenAI-compatible surface.

Blocking responses render every failure as ``{"error": "<message>"}``
with status 500. Once an SSE stream has started the status is already
committed, so failures become ``data: {"error": {"message": ...}}``
frames instead.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from difybridge.api.sse import format_sse_data
from difybridge.exceptions import BridgeError, UpstreamError

if TYPE_CHECKING:
    from fastapi import FastAPI, Request

logger = logging.getLogger(__name__)

ERROR_STATUS = 500
UPSTREAM_PREFIX = "upstream: "
INTERNAL_ERROR_MESSAGE = "Internal server error"


def error_response(
    message: str,
    *,
    status_code: int = ERROR_STATUS,
    correlation_id: str | None = None,
) -> JSONResponse:
    """Build the blocking error envelope."""
    headers = {"X-Correlation-ID": correlation_id} if correlation_id else None
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


def format_sse_error(message: str) -> str:
    """Build an in-stream error frame."""
    return format_sse_data({"error": {"message": message}})


def format_upstream_sse_error(exc: BaseException | str) -> str:
    """Build an in-stream error frame for a Dify-side failure."""
    return format_sse_error(f"{UPSTREAM_PREFIX}{exc}")


def describe_validation_error(exc: RequestValidationError) -> str:
    """Flatten FastAPI request validation errors into one line."""
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())[1:])
        msg = err.get("msg", "invalid value")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts) or "Invalid request body"


def register_exception_handlers(app: FastAPI, *, debug: bool = False) -> None:
    """Register the error envelope for every failure the app can raise.

    Args:
        app: FastAPI application
        debug: Expose unexpected exception messages to clients
    """
    from difybridge.api.main import get_correlation_id

    @app.exception_handler(BridgeError)
    async def bridge_error_handler(request: Request, exc: BridgeError) -> JSONResponse:
        """Handle application errors, passing their message through."""
        correlation_id = get_correlation_id() or exc.correlation_id
        log = logger.warning if isinstance(exc, UpstreamError) else logger.error
        log(
            "%s on %s %s: %s [correlation_id=%s]",
            exc.__class__.__name__,
            request.method,
            request.url.path,
            exc,
            correlation_id,
        )
        return error_response(str(exc), correlation_id=correlation_id)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        """Handle malformed request bodies with the same envelope."""
        message = describe_validation_error(exc)
        logger.info("Rejected request body on %s: %s", request.url.path, message)
        return error_response(message, correlation_id=get_correlation_id())

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request,
        exc: StarletteHTTPException,
    ) -> JSONResponse:
        """Routing errors keep their status, only the body shape changes."""
        return error_response(
            str(exc.detail),
            status_code=exc.status_code,
            correlation_id=get_correlation_id(),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        correlation_id = get_correlation_id() or str(uuid.uuid4())
        logger.exception("Unhandled exception [correlation_id=%s]", correlation_id, exc_info=exc)
        detail = str(exc) if debug else INTERNAL_ERROR_MESSAGE
        return error_response(detail, correlation_id=correlation_id)
