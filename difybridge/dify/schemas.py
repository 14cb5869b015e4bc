"""Pydantic models for the Dify ``chat-messages`` API."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ChatMessagesRequest(BaseModel):
    """Body of ``POST /chat-messages``."""

    query: str = Field(..., description="User input, history already folded in")
    user: str = Field(..., description="End-user identifier, unique within the Dify app")
    inputs: dict[str, Any] = Field(default_factory=dict)
    response_mode: Literal["blocking", "streaming"] = "blocking"
    conversation_id: str = ""
    auto_generate_name: bool = False


class ChatMessagesResponse(BaseModel):
    """Blocking ``chat-messages`` result."""

    model_config = ConfigDict(extra="ignore")

    id: str = ""
    message_id: str | None = None
    conversation_id: str | None = None
    answer: str = ""
    created_at: int = 0
    metadata: dict[str, Any] | None = None


class ErrorResponse(BaseModel):
    """Structured error body returned by Dify on non-2xx responses."""

    model_config = ConfigDict(extra="ignore")

    code: str = ""
    message: str
    status: int | None = None
