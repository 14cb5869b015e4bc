"""Async HTTP client for the Dify ``chat-messages`` API.

Two calls are exposed, mirroring Dify's two response modes:

- ``send()`` posts a blocking request and returns the full answer.
- ``stream()`` opens a streaming request and returns a ``DifyEventStream``
  that yields typed events as Dify produces them.

Both accept an optional ``httpx.Auth`` that replaces the configured API
key for that single call.
"""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse

import httpx
from httpx_sse import EventSource, SSEError, aconnect_sse
from pydantic import ValidationError as PydanticValidationError

from difybridge.dify.events import parse_sse
from difybridge.dify.schemas import ChatMessagesRequest, ChatMessagesResponse, ErrorResponse
from difybridge.exceptions import ConfigurationError, TransportError, UpstreamError

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Generator

    from difybridge.dify.events import DifyStreamEvent

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 10.0
_CHAT_MESSAGES_PATH = "/chat-messages"


class BearerAuth(httpx.Auth):
    """Sets ``Authorization: Bearer <token>`` on outgoing requests."""

    def __init__(self, token: str) -> None:
        self._token = token

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers["Authorization"] = f"Bearer {self._token}"
        yield request


def _error_from_response(response: httpx.Response) -> Exception:
    """Turn a non-2xx Dify response into an UpstreamError or TransportError.

    The response body must already be read.
    """
    try:
        error = ErrorResponse.model_validate(response.json())
    except (ValueError, PydanticValidationError):
        return TransportError(f"HTTP {response.status_code}: {response.text[:200]}")
    return UpstreamError(error.message, code=error.code, status_code=response.status_code)


class DifyEventStream:
    """A single-pass async iterator over the events of one Dify stream.

    Iteration raises ``TransportError`` if the connection breaks or the
    SSE framing is invalid. ``aclose()`` releases the upstream response and
    is safe to call more than once.

    Usage::

        stream = await client.stream(request)
        try:
            async for event in stream:
                ...
        finally:
            await stream.aclose()
    """

    def __init__(self, event_source: EventSource, exit_stack: AsyncExitStack) -> None:
        self._event_source = event_source
        self._exit_stack = exit_stack
        self._events: AsyncGenerator[DifyStreamEvent, None] | None = None
        self.closed = False

    @property
    def response(self) -> httpx.Response:
        return self._event_source.response

    def __aiter__(self) -> AsyncGenerator[DifyStreamEvent, None]:
        if self._events is None:
            self._events = self._iter_events()
        return self._events

    async def _iter_events(self) -> AsyncGenerator[DifyStreamEvent, None]:
        try:
            async for sse in self._event_source.aiter_sse():
                yield parse_sse(sse)
        except httpx.TimeoutException as e:
            raise TransportError(f"stream read timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"stream interrupted: {e}") from e
        except SSEError as e:
            raise TransportError(f"invalid event stream: {e}") from e

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._events is not None:
            await self._events.aclose()
        await self._exit_stack.aclose()

    async def __aenter__(self) -> DifyEventStream:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


class DifyClient:
    """Calls a Dify chat app.

    One instance is created at startup and shared by all requests; it holds
    only immutable configuration and a pooled ``httpx.AsyncClient``.

    Usage::

        client = DifyClient("https://api.dify.ai/v1", api_key="app-...")
        resp = await client.send(ChatMessagesRequest(query="hi", user="u1"))
    """

    _ALLOWED_SCHEMES = {"http", "https"}

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = _DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        parsed = urlparse(base_url)
        if parsed.scheme not in self._ALLOWED_SCHEMES:
            msg = f"Invalid Dify URL scheme '{parsed.scheme}'. Only {self._ALLOWED_SCHEMES} allowed."
            raise ConfigurationError(msg)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._auth = BearerAuth(api_key)
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create the shared httpx.AsyncClient.

        Created lazily on first use so building a DifyClient never does I/O.
        """
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                limits=httpx.Limits(
                    max_keepalive_connections=20,
                    max_connections=100,
                ),
            )
        return self._http_client

    async def close(self) -> None:
        """Close the shared HTTP client and release connections."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def send(
        self,
        request: ChatMessagesRequest,
        auth: httpx.Auth | None = None,
    ) -> ChatMessagesResponse:
        """Send a blocking chat message.

        Raises:
            UpstreamError: Dify returned a structured error.
            TransportError: Network failure, timeout or undecodable body.
        """
        payload = request.model_copy(update={"response_mode": "blocking"}).model_dump()
        client = self._get_http_client()

        try:
            resp = await client.post(_CHAT_MESSAGES_PATH, json=payload, auth=auth or self._auth)
        except httpx.TimeoutException as e:
            raise TransportError(f"Timeout after {self.timeout}s: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Request failed: {e}") from e

        if resp.is_error:
            raise _error_from_response(resp)

        try:
            return ChatMessagesResponse.model_validate(resp.json())
        except (ValueError, PydanticValidationError) as e:
            raise TransportError(f"Invalid JSON response: {e}") from e

    async def stream(
        self,
        request: ChatMessagesRequest,
        auth: httpx.Auth | None = None,
    ) -> DifyEventStream:
        """Open a streaming chat message.

        The connection is established and its status checked before this
        returns, so failures to open surface here rather than mid-stream.
        The read timeout is disabled; only connecting is bounded.

        Raises:
            UpstreamError: Dify returned a structured error.
            TransportError: Connection failure or non-SSE response.
        """
        payload = request.model_copy(update={"response_mode": "streaming"}).model_dump()
        client = self._get_http_client()
        exit_stack = AsyncExitStack()

        try:
            event_source = await exit_stack.enter_async_context(
                aconnect_sse(
                    client,
                    "POST",
                    _CHAT_MESSAGES_PATH,
                    json=payload,
                    auth=auth or self._auth,
                    timeout=httpx.Timeout(self.timeout, read=None),
                )
            )
            response = event_source.response
            if response.is_error:
                await response.aread()
                raise _error_from_response(response)

            content_type = response.headers.get("content-type", "")
            if "text/event-stream" not in content_type:
                await response.aread()
                raise TransportError(
                    f"Expected text/event-stream, got '{content_type}': {response.text[:200]}"
                )
        except httpx.TimeoutException as e:
            await exit_stack.aclose()
            raise TransportError(f"Timeout after {self.timeout}s: {e}") from e
        except httpx.HTTPError as e:
            await exit_stack.aclose()
            raise TransportError(f"Request failed: {e}") from e
        except BaseException:
            await exit_stack.aclose()
            raise

        logger.debug("Dify stream opened: HTTP %s", response.status_code)
        return DifyEventStream(event_source, exit_stack)
