"""Dify chat app client."""

from difybridge.dify.client import BearerAuth, DifyClient, DifyEventStream
from difybridge.dify.events import (
    AgentMessageEvent,
    DifyStreamEvent,
    ErrorEvent,
    MessageEndEvent,
    MessageEvent,
    OtherEvent,
    parse_sse,
    parse_stream_event,
)
from difybridge.dify.schemas import ChatMessagesRequest, ChatMessagesResponse, ErrorResponse

__all__ = [
    "AgentMessageEvent",
    "BearerAuth",
    "ChatMessagesRequest",
    "ChatMessagesResponse",
    "DifyClient",
    "DifyEventStream",
    "DifyStreamEvent",
    "ErrorEvent",
    "ErrorResponse",
    "MessageEndEvent",
    "MessageEvent",
    "OtherEvent",
    "parse_sse",
    "parse_stream_event",
]
