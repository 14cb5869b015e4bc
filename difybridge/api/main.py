"""FastAPI application configuration and setup.

Main entry point for the HTTP API with CORS, middleware,
rate limiting, and lifecycle management.
"""

import logging
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from difybridge import __version__
from difybridge.api.errors import register_exception_handlers
from difybridge.api.rate_limit import RATE_LIMITED_PATHS, build_limiter, exempt_routes_except
from difybridge.api.routes import api_router
from difybridge.dify import DifyClient
from difybridge.logging_config import configure_logging
from difybridge.settings import Settings, get_settings

logger = logging.getLogger(__name__)

# Context variable for correlation ID (thread-safe, async-safe)
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# Singleton app instance
_app: FastAPI | None = None


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    The Dify client is built in ``create_app``; its connection pool is
    released on shutdown.

    Args:
        app: FastAPI application instance

    Yields:
        None (context for application runtime)
    """
    dify: DifyClient = app.state.dify
    logger.info("Relaying OpenAI chat completions to %s", dify.base_url)

    yield

    await dify.close()


def create_app(
    settings: Settings | None = None,
    dify_client: DifyClient | None = None,
) -> FastAPI:
    """Create and configure a FastAPI application instance.

    Args:
        settings: Optional settings override (uses get_settings() if not provided)
        dify_client: Optional Dify client override (built from settings if not provided)

    Returns:
        Configured FastAPI application
    """
    if settings is None:
        settings = get_settings()

    if settings.environment != "testing":
        configure_logging(settings.log_level)

    app = FastAPI(
        title="difybridge",
        description="OpenAI-compatible chat completions backed by a Dify chat app",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.dify = dify_client or DifyClient(
        base_url=settings.dify_base_url,
        api_key=settings.dify_api_key.get_secret_value(),
        timeout=settings.dify_timeout,
    )

    # Configure rate limiting, private to this app
    app.state.limiter = build_limiter(settings)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore[arg-type]

    # Middleware, innermost first
    from difybridge.api.middleware import RequestTracingMiddleware

    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(RequestTracingMiddleware)
    app.middleware("http")(_options_middleware)
    app.middleware("http")(_correlation_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_get_allowed_origins(settings),
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    app.add_api_route("/", _liveness, methods=["GET"], include_in_schema=False)
    app.include_router(api_router, prefix="/v1")
    exempt_routes_except(app.state.limiter, app.routes, RATE_LIMITED_PATHS)

    register_exception_handlers(app, debug=settings.debug)

    return app


def _get_allowed_origins(settings: Settings) -> list[str]:
    """Parse the comma-separated ALLOWED_ORIGINS setting."""
    origins = [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]
    return origins or ["*"]


async def _liveness() -> JSONResponse:
    """Static liveness probe."""
    return JSONResponse({})


async def _options_middleware(request: Request, call_next):
    """Answer OPTIONS on API routes with an empty 204.

    CORS preflights are handled by CORSMiddleware before reaching here.

    Args:
        request: FastAPI request object
        call_next: Next middleware/handler

    Returns:
        Empty 204 for OPTIONS under /v1, otherwise the handler's response
    """
    if request.method == "OPTIONS" and request.url.path.startswith("/v1/"):
        return Response(status_code=204)
    return await call_next(request)


async def _correlation_middleware(request: Request, call_next):
    """Middleware to generate and propagate correlation IDs.

    Args:
        request: FastAPI request object
        call_next: Next middleware/handler in the chain

    Returns:
        Response with X-Correlation-ID header
    """
    correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
    _correlation_id.set(correlation_id)

    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


def get_correlation_id() -> str | None:
    """Get the current request's correlation ID from context.

    Returns:
        Correlation ID string or None if not in request context
    """
    return _correlation_id.get()


def get_app() -> FastAPI:
    """Get or create the singleton FastAPI application.

    Returns:
        FastAPI application instance
    """
    global _app
    if _app is None:
        _app = create_app()
    return _app


# For uvicorn: use "difybridge.api.main:get_app" with --factory flag,
# or "difybridge.api.main:app" which lazily initializes on first access.
def __getattr__(name: str) -> Any:
    """Module-level __getattr__ for lazy app initialization.

    Only creates the app when 'app' is accessed, so importing this module
    never requires Dify settings to be present.
    """
    if name == "app":
        return get_app()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
