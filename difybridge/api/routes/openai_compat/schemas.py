"""Pydantic request/response models for OpenAI-compatible API."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["user", "system", "assistant", "tool", "function"]
FinishReason = Literal["stop", "length", "content_filter", "tool_calls", "function_call"]


class ChatMessage(BaseModel):
    """A chat message in OpenAI format."""

    role: Role = Field(..., description="Message role: user, system, assistant, tool, function")
    content: str | list[Any] | None = Field(
        default=None,
        description="Message content; content-part lists are flattened to text",
    )


class ResponseMessage(BaseModel):
    """The assistant message of a completion choice."""

    role: Role = "assistant"
    content: str


class ChatCompletionRequest(BaseModel):
    """OpenAI chat completion request.

    Only ``messages``, ``model``, ``stream`` and ``user`` reach Dify. The
    remaining OpenAI fields are accepted so stock clients validate, then
    dropped.
    """

    model_config = ConfigDict(extra="ignore")

    messages: list[ChatMessage] = Field(..., description="Conversation messages")
    model: str = Field(..., description="Echoed back in the response")
    stream: bool | None = Field(default=False, description="Whether to stream responses")
    user: str | None = Field(default=None, description="End-user identifier forwarded to Dify")

    # Accepted, not forwarded
    frequency_penalty: float | None = None
    logit_bias: dict[str, Any] | None = None
    logprobs: bool | None = None
    top_logprobs: int | None = None
    max_tokens: int | None = None
    n: int | None = None
    presence_penalty: float | None = None
    response_format: dict[str, Any] | None = None
    seed: int | None = None
    stop: str | list[str] | None = None
    stream_options: dict[str, Any] | None = None
    temperature: float | None = None
    top_p: float | None = None
    tools: list[Any] | None = None
    tool_choice: str | dict[str, Any] | None = None
    function_call: str | dict[str, Any] | None = None
    functions: list[Any] | None = None


class Usage(BaseModel):
    """Token usage statistics."""

    completion_tokens: int = 0
    prompt_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_metadata(cls, metadata: Any) -> "Usage":
        """Read ``metadata["usage"]`` from a Dify payload.

        Never raises: anything missing or not a non-negative integer
        counts as 0.
        """
        usage = metadata.get("usage") if isinstance(metadata, dict) else None
        if not isinstance(usage, dict):
            usage = {}
        return cls(
            completion_tokens=_as_token_count(usage.get("completion_tokens")),
            prompt_tokens=_as_token_count(usage.get("prompt_tokens")),
            total_tokens=_as_token_count(usage.get("total_tokens")),
        )


def _as_token_count(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return 0
    return value


class ChatCompletionChoice(BaseModel):
    """A chat completion choice."""

    index: int = 0
    finish_reason: FinishReason = "stop"
    logprobs: Any = None
    message: ResponseMessage


class ChatCompletionResponse(BaseModel):
    """OpenAI chat completion response."""

    id: str
    choices: list[ChatCompletionChoice]
    created: int
    model: str
    system_fingerprint: str
    object: Literal["chat.completion"] = "chat.completion"
    usage: Usage = Field(default_factory=Usage)


class ChatCompletionChunkChoice(BaseModel):
    """A streaming chat completion choice."""

    index: int = 0
    finish_reason: FinishReason | None = None
    logprobs: Any = None
    delta: dict[str, Any] = Field(default_factory=dict)


class ChatCompletionChunk(BaseModel):
    """One ``chat.completion.chunk`` of a streamed completion.

    ``usage`` is only set on the chunk that closes the answer.
    """

    id: str
    choices: list[ChatCompletionChunkChoice]
    created: int
    model: str
    system_fingerprint: str
    object: Literal["chat.completion.chunk"] = "chat.completion.chunk"
    usage: Usage | None = None
