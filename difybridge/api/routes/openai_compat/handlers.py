"""Chat completion handlers (non-streaming and streaming)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from difybridge.api.errors import INTERNAL_ERROR_MESSAGE, format_sse_error, format_upstream_sse_error
from difybridge.api.routes.openai_compat.schemas import (
    ChatCompletionChoice,
    ChatCompletionChunk,
    ChatCompletionChunkChoice,
    ChatCompletionResponse,
    ResponseMessage,
    Usage,
)
from difybridge.api.sse import SSE_DONE, format_sse_comment, format_sse_data
from difybridge.dify import (
    AgentMessageEvent,
    ErrorEvent,
    MessageEndEvent,
    MessageEvent,
)
from difybridge.exceptions import SerializationError, TransportError

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    import httpx

    from difybridge.dify import ChatMessagesRequest, DifyClient, DifyEventStream, DifyStreamEvent

_log = logging.getLogger(__name__)

STREAM_PREAMBLE = "streaming chat completions"


async def _create_chat_completion(
    dify: DifyClient,
    dify_request: ChatMessagesRequest,
    model: str,
    *,
    system_fingerprint: str,
    auth: httpx.Auth | None = None,
) -> ChatCompletionResponse:
    """Process non-streaming chat completion.

    Raises:
        UpstreamError: Dify rejected the request.
        TransportError: Dify could not be reached or answered garbage.
    """
    _log.debug("Chat completions blocking request: %r", dify_request)
    resp = await dify.send(dify_request, auth=auth)

    return ChatCompletionResponse(
        id=resp.message_id or resp.id,
        choices=[
            ChatCompletionChoice(
                index=0,
                finish_reason="stop",
                message=ResponseMessage(role="assistant", content=resp.answer),
            )
        ],
        created=resp.created_at,
        model=model,
        system_fingerprint=system_fingerprint,
        usage=Usage.from_metadata(resp.metadata),
    )


def _make_chunk(
    event: DifyStreamEvent,
    model: str,
    system_fingerprint: str,
    choice: ChatCompletionChunkChoice,
    usage: Usage | None = None,
) -> str:
    chunk = ChatCompletionChunk(
        id=event.resolved_id,
        choices=[choice],
        created=event.resolved_created_at,
        model=model,
        system_fingerprint=system_fingerprint,
        usage=usage,
    )
    return format_sse_data(chunk.model_dump())


def _map_stream_event(event: DifyStreamEvent, model: str, system_fingerprint: str) -> str:
    """Translate one Dify event into exactly one SSE frame."""
    match event:
        case MessageEvent(answer=answer) | AgentMessageEvent(answer=answer):
            return _make_chunk(
                event,
                model,
                system_fingerprint,
                ChatCompletionChunkChoice(delta={"role": "assistant", "content": answer}),
            )
        case MessageEndEvent(metadata=metadata):
            return _make_chunk(
                event,
                model,
                system_fingerprint,
                ChatCompletionChunkChoice(delta={}, finish_reason="stop"),
                usage=Usage.from_metadata(metadata),
            )
        case ErrorEvent(message=message):
            _log.warning("Dify stream error event: %s (code=%s)", message, event.code)
            return format_upstream_sse_error(message)
        case _:
            return format_sse_comment(f"skip dify message event: {event.event}")


async def _stream_chat_completion(
    events: DifyEventStream,
    model: str,
    *,
    system_fingerprint: str,
    retry_seconds: float,
) -> AsyncGenerator[str, None]:
    """Generate streaming chat completion (SSE format).

    Yields, in order: a comment frame carrying the ``retry:`` directive,
    one frame per Dify event, then ``data: [DONE]``. A broken upstream
    connection becomes one error frame followed by ``[DONE]``. The Dify
    stream is closed however this generator ends.
    """
    try:
        yield format_sse_comment(STREAM_PREAMBLE, retry_seconds=retry_seconds)

        iterator = aiter(events)
        while True:
            try:
                event = await anext(iterator)
            except StopAsyncIteration:
                break
            except TransportError as e:
                _log.warning("Dify stream failed: %s", e)
                yield format_upstream_sse_error(e)
                break
            except Exception:
                _log.exception("Unexpected error reading Dify stream")
                yield format_sse_error(INTERNAL_ERROR_MESSAGE)
                break

            try:
                frame = _map_stream_event(event, model, system_fingerprint)
            except SerializationError as e:
                _log.error("Dropping %s event: %s", event.event, e)
                frame = format_sse_error(str(e))
            yield frame

        yield SSE_DONE
    finally:
        await events.aclose()
