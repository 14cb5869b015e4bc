"""Utility functions for OpenAI-compatible API."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from difybridge.dify import BearerAuth, ChatMessagesRequest
from difybridge.exceptions import AuthPassthroughAbsent, ValidationError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from difybridge.api.routes.openai_compat.schemas import ChatCompletionRequest, ChatMessage

_log = logging.getLogger(__name__)

HISTORY_HEADER = "here is our talk history:"
QUESTION_HEADER = "here is my question:"


def _extract_text_content(content: Any) -> str:
    """Normalize message content to a plain string.

    OpenAI message content can be:
    - str: normal text (most common)
    - list: content parts, e.g. [{"type": "text", "text": "..."}]
    - None: e.g. an assistant turn that only carried tool calls
    """
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict):
                text = block.get("text") or ""
                if text:
                    parts.append(str(text))
        return "\n".join(parts)
    return str(content)


def build_query(messages: list[ChatMessage]) -> str:
    """Fold an OpenAI conversation into the single query string Dify accepts.

    The last message is the question; every earlier message is listed as
    ``role: content`` in the history block.

    Raises:
        ValidationError: ``messages`` is empty.
    """
    if not messages:
        raise ValidationError("No messages provided")

    *history, question = messages
    history_lines = "\n".join(
        f"{message.role}: {_extract_text_content(message.content)}" for message in history
    )
    return (
        f"{HISTORY_HEADER}\n'''\n{history_lines}\n'''\n\n"
        f"{QUESTION_HEADER}\n{_extract_text_content(question.content)}"
    )


def build_chat_messages_request(
    request: ChatCompletionRequest,
    *,
    default_user: str,
) -> ChatMessagesRequest:
    """Translate an OpenAI chat completion request into a Dify request.

    Raises:
        ValidationError: The request has no messages.
    """
    return ChatMessagesRequest(
        query=build_query(request.messages),
        user=request.user or default_user,
        auto_generate_name=False,
    )


def get_bearer_token(headers: Mapping[str, str]) -> str:
    """Extract the bearer token from the Authorization header.

    Raises:
        AuthPassthroughAbsent: No header, or no token after the scheme.
    """
    auth_header = headers.get("authorization")
    if auth_header is None:
        raise AuthPassthroughAbsent("Authorization header not found")

    parts = auth_header.split(" ")
    if len(parts) < 2 or not parts[1]:
        raise AuthPassthroughAbsent("Bearer Token not found")
    return parts[1]


def resolve_dify_auth(headers: Mapping[str, str]) -> BearerAuth | None:
    """Auth override for this request, or None to use the configured key."""
    try:
        token = get_bearer_token(headers)
    except AuthPassthroughAbsent as e:
        _log.debug("Using configured Dify API key: %s", e)
        return None

    _log.debug("Using caller-supplied Dify token: %s", _mask(token))
    return BearerAuth(token)


def _mask(token: str) -> str:
    if len(token) <= 8:
        return "***"
    return f"{token[:4]}...{token[-4:]}"
