"""OpenAI-compatible API for chat completions.

Provides an OpenAI-compatible `/v1/chat/completions` endpoint
that relays to a Dify chat app.
"""

from difybridge.api.routes.openai_compat.handlers import (
    _create_chat_completion,
    _map_stream_event,
    _stream_chat_completion,
)
from difybridge.api.routes.openai_compat.routes import router
from difybridge.api.routes.openai_compat.schemas import (
    ChatCompletionChunk,
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    Usage,
)
from difybridge.api.routes.openai_compat.utils import (
    _extract_text_content,
    build_chat_messages_request,
    build_query,
    get_bearer_token,
    resolve_dify_auth,
)

__all__ = [
    "ChatCompletionChunk",
    "ChatCompletionRequest",
    "ChatCompletionResponse",
    "ChatMessage",
    "Usage",
    "_create_chat_completion",
    "_extract_text_content",
    "_map_stream_event",
    "_stream_chat_completion",
    "build_chat_messages_request",
    "build_query",
    "get_bearer_token",
    "resolve_dify_auth",
    "router",
]
