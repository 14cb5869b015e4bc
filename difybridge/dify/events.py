"""Dify streaming event types.

Dify streams ``chat-messages`` as SSE where every ``data:`` payload is a
JSON object with an ``event`` discriminator. Only the kinds the OpenAI
mapping needs get their own model; everything else (``ping``,
``agent_thought``, ``message_file``, ``workflow_started``, ...) lands in
``OtherEvent``.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

if TYPE_CHECKING:
    from httpx_sse import ServerSentEvent

logger = logging.getLogger(__name__)


class _BaseEvent(BaseModel):
    """Fields shared by every Dify stream event.

    ``message_id`` and ``created_at`` form the optional base record: they
    are absent on some kinds, in which case ``id`` and 0 stand in.
    """

    model_config = ConfigDict(extra="ignore")

    event: str
    id: str = ""
    task_id: str | None = None
    message_id: str | None = None
    conversation_id: str | None = None
    created_at: int | None = None

    @property
    def resolved_id(self) -> str:
        return self.message_id if self.message_id is not None else self.id

    @property
    def resolved_created_at(self) -> int:
        return self.created_at if self.created_at is not None else 0


class MessageEvent(_BaseEvent):
    """A chunk of the chat app's answer."""

    event: Literal["message"] = "message"
    answer: str = ""


class AgentMessageEvent(_BaseEvent):
    """A chunk of an agent app's answer."""

    event: Literal["agent_message"] = "agent_message"
    answer: str = ""


class MessageEndEvent(_BaseEvent):
    """End of the answer, carries usage in ``metadata``."""

    event: Literal["message_end"] = "message_end"
    metadata: dict[str, Any] | None = None


class ErrorEvent(_BaseEvent):
    """Error reported inside the stream."""

    event: Literal["error"] = "error"
    status: int | None = None
    code: str | None = None
    message: str = ""


class OtherEvent(_BaseEvent):
    """Any event kind the bridge does not translate."""


DifyStreamEvent = MessageEvent | AgentMessageEvent | MessageEndEvent | ErrorEvent | OtherEvent

_EVENT_TYPES: dict[str, type[_BaseEvent]] = {
    "message": MessageEvent,
    "agent_message": AgentMessageEvent,
    "message_end": MessageEndEvent,
    "error": ErrorEvent,
}


def parse_stream_event(data: dict[str, Any], *, fallback_kind: str = "unknown") -> DifyStreamEvent:
    """Build a typed event from a decoded ``data:`` payload.

    Payloads of a known kind that fail validation are downgraded to
    ``OtherEvent`` so a single bad event never ends the stream.
    """
    kind = data.get("event")
    if not isinstance(kind, str) or not kind:
        kind = fallback_kind

    event_type = _EVENT_TYPES.get(kind)
    if event_type is not None:
        try:
            return event_type.model_validate(data)  # type: ignore[return-value]
        except PydanticValidationError as e:
            logger.warning("Invalid Dify %s event: %s", kind, e.errors()[:1])

    return OtherEvent(
        event=kind,
        id=str(data.get("id") or ""),
        message_id=data.get("message_id") if isinstance(data.get("message_id"), str) else None,
    )


def parse_sse(sse: ServerSentEvent) -> DifyStreamEvent:
    """Decode one SSE frame from Dify into a typed event."""
    if not sse.data:
        return OtherEvent(event=sse.event or "unknown")

    try:
        payload = json.loads(sse.data)
    except json.JSONDecodeError:
        logger.warning("Unparseable Dify SSE data: %s", sse.data[:200])
        return OtherEvent(event=sse.event or "unknown")

    if not isinstance(payload, dict):
        logger.warning("Unexpected Dify SSE payload type: %s", type(payload).__name__)
        return OtherEvent(event=sse.event or "unknown")

    return parse_stream_event(payload, fallback_kind=sse.event or "unknown")
