"""OpenAI-compatible API endpoint definitions."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from difybridge.api.deps import get_app_settings, get_dify_client
from difybridge.api.routes.openai_compat.handlers import (
    _create_chat_completion,
    _stream_chat_completion,
)
from difybridge.api.routes.openai_compat.schemas import (
    ChatCompletionRequest,
    ChatCompletionResponse,
)
from difybridge.api.routes.openai_compat.utils import (
    build_chat_messages_request,
    resolve_dify_auth,
)
from difybridge.api.sse import SSE_HEADERS, with_keepalive
from difybridge.dify import DifyClient
from difybridge.settings import Settings

router = APIRouter(tags=["OpenAI Compatible"])


@router.post("/chat/completions", response_model=None)
async def create_chat_completion(
    request: Request,
    body: ChatCompletionRequest,
    dify: DifyClient = Depends(get_dify_client),
    settings: Settings = Depends(get_app_settings),
) -> StreamingResponse | ChatCompletionResponse:
    """Create a chat completion.

    OpenAI-compatible endpoint for chat completions, answered by Dify.
    Supports both streaming and non-streaming modes. A bearer token in the
    Authorization header is used as the Dify API key for this call.
    """
    dify_request = build_chat_messages_request(body, default_user=settings.default_user)
    auth = resolve_dify_auth(request.headers)

    if body.stream:
        # Opened before the response starts so connection failures still get a status code.
        events = await dify.stream(dify_request, auth=auth)
        frames = _stream_chat_completion(
            events,
            body.model,
            system_fingerprint=settings.system_fingerprint,
            retry_seconds=settings.keepalive_seconds,
        )
        return StreamingResponse(
            with_keepalive(frames, settings.keepalive_seconds),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    return await _create_chat_completion(
        dify,
        dify_request,
        body.model,
        system_fingerprint=settings.system_fingerprint,
        auth=auth,
    )
