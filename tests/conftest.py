"""Shared test fixtures for difybridge.

Provides settings, a scripted Dify backend on ``httpx.MockTransport`` and
an in-process HTTP client for the FastAPI app.
"""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator, Callable
from typing import Any

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr

from difybridge.dify import DifyClient
from difybridge.settings import Settings

DIFY_BASE_URL = "http://dify.test/v1"
CONFIGURED_KEY = "app-configured-key"


# =============================================================================
# DIFY BACKEND
# =============================================================================


class DifyStub:
    """Scripted Dify backend for ``httpx.MockTransport``.

    Set ``handler`` to a callable returning the response for each
    request; every request is recorded in ``requests``.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.handler: Callable[[httpx.Request], httpx.Response] = _unscripted

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def respond_with(self, response: httpx.Response) -> None:
        self.handler = lambda request: response

    @property
    def last_body(self) -> dict[str, Any]:
        return json.loads(self.requests[-1].content)

    @property
    def last_authorization(self) -> str | None:
        return self.requests[-1].headers.get("authorization")


def _unscripted(request: httpx.Request) -> httpx.Response:
    return httpx.Response(500, json={"code": "unscripted", "message": "no handler set", "status": 500})


@pytest.fixture
def dify_stub() -> DifyStub:
    return DifyStub()


@pytest.fixture
async def dify_client(dify_stub: DifyStub) -> AsyncGenerator[DifyClient, None]:
    """DifyClient wired to the scripted backend."""
    client = DifyClient(
        base_url=DIFY_BASE_URL,
        api_key=CONFIGURED_KEY,
        transport=httpx.MockTransport(dify_stub),
    )
    yield client
    await client.close()


# =============================================================================
# SETTINGS & APP
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Provide test settings with safe defaults."""
    return Settings(
        environment="testing",
        debug=True,
        dify_base_url=DIFY_BASE_URL,
        dify_api_key=SecretStr(CONFIGURED_KEY),
    )


@pytest.fixture
def bridge_app(test_settings: Settings, dify_client: DifyClient):
    """The full application with the scripted Dify backend."""
    from difybridge.api.main import create_app

    return create_app(test_settings, dify_client=dify_client)


@pytest.fixture
async def bridge_client(bridge_app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the application."""
    async with AsyncClient(
        transport=ASGITransport(app=bridge_app),
        base_url="http://test",
    ) as client:
        yield client
