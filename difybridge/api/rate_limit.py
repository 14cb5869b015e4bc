"""Rate limiting configuration for API endpoints.

Each application builds its own Limiter from the settings it was created
with, so the limit string and the on/off switch never leak between apps.
The limit is applied by ``SlowAPIMiddleware`` as the default limit, and
every route except the rate-limited ones is exempted.

Usage in the app factory:
    from difybridge.api.rate_limit import RATE_LIMITED_PATHS, build_limiter, exempt_routes_except

    app.state.limiter = build_limiter(settings)
    app.add_middleware(SlowAPIMiddleware)
    exempt_routes_except(app.state.limiter, app.routes, RATE_LIMITED_PATHS)
"""

from collections.abc import Iterable

from slowapi import Limiter
from starlette.requests import Request
from starlette.routing import BaseRoute

from difybridge.settings import Settings

RATE_LIMITED_PATHS = frozenset({"/v1/chat/completions"})


def _get_real_client_ip(request: Request) -> str:
    """Extract the real client IP, respecting X-Forwarded-For from trusted proxies.

    Args:
        request: Starlette/FastAPI request object.

    Returns:
        Client IP address string.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # X-Forwarded-For: client, proxy1, proxy2 (take the leftmost)
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "127.0.0.1"


def build_limiter(settings: Settings) -> Limiter:
    """Limiter keyed on client IP, with ``CHAT_RATE_LIMIT`` as its default limit.

    Storage is in-memory and private to the returned instance.
    """
    return Limiter(
        key_func=_get_real_client_ip,
        default_limits=[settings.chat_rate_limit],
        enabled=settings.rate_limit_enabled,
    )


def exempt_routes_except(limiter: Limiter, routes: Iterable[BaseRoute], paths: Iterable[str]) -> None:
    """Exempt every route endpoint whose path is not in ``paths``."""
    limited = set(paths)
    for route in routes:
        endpoint = getattr(route, "endpoint", None)
        if endpoint is not None and getattr(route, "path", None) not in limited:
            limiter.exempt(endpoint)
