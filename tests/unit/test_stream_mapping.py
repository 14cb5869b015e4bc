"""Tests for translating Dify stream events into OpenAI SSE frames.

Covers:
- One frame per Dify event kind
- Full stream shape: preamble, chunks, exactly one [DONE]
- In-stream error events and transport failures
- The upstream stream is always closed
"""

from __future__ import annotations

import asyncio
import json
import logging
from unittest.mock import patch

import pytest

from difybridge.api.routes.openai_compat import _map_stream_event, _stream_chat_completion
from difybridge.api.sse import SSE_DONE
from difybridge.dify import (
    AgentMessageEvent,
    ErrorEvent,
    MessageEndEvent,
    MessageEvent,
    OtherEvent,
)
from difybridge.exceptions import SerializationError, TransportError

FP = "fp_44709d6fcb"
PREAMBLE = ": streaming chat completions\nretry: 30000\n\n"


def _data(frame: str) -> dict:
    assert frame.startswith("data: ") and frame.endswith("\n\n")
    return json.loads(frame[len("data: ") : -2])


class FakeEventStream:
    """Stands in for DifyEventStream: replays items, raising exceptions in place."""

    def __init__(self, *items):
        self.items = list(items)
        self.close_calls = 0

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for item in self.items:
            if isinstance(item, BaseException):
                raise item
            yield item

    async def aclose(self):
        self.close_calls += 1


class HangingEventStream(FakeEventStream):
    """Yields its items then blocks forever."""

    async def _iterate(self):
        for item in self.items:
            yield item
        await asyncio.Event().wait()


async def _collect(events, model="gpt-3.5-turbo") -> list[str]:
    return [
        frame
        async for frame in _stream_chat_completion(
            events, model, system_fingerprint=FP, retry_seconds=30
        )
    ]


class TestMapStreamEvent:
    """_map_stream_event() emits exactly one frame per event."""

    def test_message_becomes_content_chunk(self):
        event = MessageEvent(event="message", id="x", message_id="m1", answer="Hel", created_at=100)

        chunk = _data(_map_stream_event(event, "gpt-3.5-turbo", FP))

        assert chunk == {
            "id": "m1",
            "choices": [
                {
                    "index": 0,
                    "finish_reason": None,
                    "logprobs": None,
                    "delta": {"role": "assistant", "content": "Hel"},
                }
            ],
            "created": 100,
            "model": "gpt-3.5-turbo",
            "system_fingerprint": FP,
            "object": "chat.completion.chunk",
            "usage": None,
        }

    def test_agent_message_maps_like_message(self):
        event = AgentMessageEvent(event="agent_message", id="a1", answer="Hi")

        chunk = _data(_map_stream_event(event, "m", FP))

        assert chunk["id"] == "a1"
        assert chunk["created"] == 0
        assert chunk["choices"][0]["delta"] == {"role": "assistant", "content": "Hi"}

    def test_message_end_closes_with_usage(self):
        event = MessageEndEvent(
            event="message_end",
            message_id="m1",
            created_at=100,
            metadata={"usage": {"prompt_tokens": 5, "completion_tokens": 2, "total_tokens": 7}},
        )

        chunk = _data(_map_stream_event(event, "m", FP))

        assert chunk["choices"][0]["delta"] == {}
        assert chunk["choices"][0]["finish_reason"] == "stop"
        assert chunk["usage"] == {"completion_tokens": 2, "prompt_tokens": 5, "total_tokens": 7}

    def test_message_end_with_bad_usage_counts_zero(self):
        event = MessageEndEvent(
            event="message_end",
            message_id="m1",
            metadata={"usage": {"prompt_tokens": -1, "completion_tokens": "3", "total_tokens": 1.5}},
        )

        chunk = _data(_map_stream_event(event, "m", FP))

        assert chunk["usage"] == {"completion_tokens": 0, "prompt_tokens": 0, "total_tokens": 0}

    def test_error_event_becomes_upstream_error_frame(self):
        event = ErrorEvent(event="error", message_id="m1", status=400, code="quota", message="No quota")

        assert _data(_map_stream_event(event, "m", FP)) == {
            "error": {"message": "upstream: No quota"}
        }

    def test_other_kind_becomes_comment(self):
        event = OtherEvent(event="agent_thought", id="th1")

        assert _map_stream_event(event, "m", FP) == ": skip dify message event: agent_thought\n\n"


class TestStreamChatCompletion:
    """_stream_chat_completion() frames the whole response."""

    async def test_happy_path(self):
        events = FakeEventStream(
            MessageEvent(event="message", message_id="m1", answer="Hel", created_at=100),
            MessageEvent(event="message", message_id="m1", answer="lo", created_at=100),
            MessageEndEvent(event="message_end", message_id="m1", created_at=100, metadata={}),
        )

        frames = await _collect(events)

        assert frames[0] == PREAMBLE
        assert [_data(f)["choices"][0]["delta"].get("content") for f in frames[1:3]] == ["Hel", "lo"]
        assert _data(frames[3])["choices"][0]["finish_reason"] == "stop"
        assert frames[4:] == [SSE_DONE]
        assert events.close_calls == 1

    async def test_empty_stream_still_terminates(self):
        events = FakeEventStream()

        frames = await _collect(events)

        assert frames == [PREAMBLE, SSE_DONE]
        assert events.close_calls == 1

    async def test_error_event_does_not_end_stream(self):
        events = FakeEventStream(
            ErrorEvent(event="error", message="rate limited"),
            MessageEvent(event="message", message_id="m1", answer="after"),
        )

        frames = await _collect(events)

        assert _data(frames[1]) == {"error": {"message": "upstream: rate limited"}}
        assert _data(frames[2])["choices"][0]["delta"]["content"] == "after"
        assert frames[-1] == SSE_DONE
        assert frames.count(SSE_DONE) == 1

    async def test_transport_failure_emits_error_then_done(self):
        events = FakeEventStream(
            MessageEvent(event="message", message_id="m1", answer="partial"),
            TransportError("stream interrupted: connection reset by peer"),
            MessageEvent(event="message", message_id="m1", answer="never"),
        )

        frames = await _collect(events)

        assert len(frames) == 4
        assert _data(frames[2]) == {
            "error": {"message": "upstream: stream interrupted: connection reset by peer"}
        }
        assert frames[3] == SSE_DONE
        assert events.close_calls == 1

    async def test_unexpected_failure_hides_detail(self, caplog):
        events = FakeEventStream(RuntimeError("boom: internal detail"))

        with caplog.at_level(logging.ERROR):
            frames = await _collect(events)

        assert frames == [
            PREAMBLE,
            'data: {"error": {"message": "Internal server error"}}\n\n',
            SSE_DONE,
        ]
        assert "boom: internal detail" in caplog.text
        assert events.close_calls == 1

    async def test_unserializable_frame_becomes_error_frame(self):
        events = FakeEventStream(
            MessageEvent(event="message", message_id="m1", answer="bad"),
            MessageEvent(event="message", message_id="m1", answer="good"),
        )

        with patch(
            "difybridge.api.routes.openai_compat.handlers.format_sse_data",
            side_effect=[SerializationError("Cannot serialize SSE payload: bad"), 'data: {"ok": true}\n\n'],
        ):
            frames = await _collect(events)

        assert frames == [
            PREAMBLE,
            'data: {"error": {"message": "Cannot serialize SSE payload: bad"}}\n\n',
            'data: {"ok": true}\n\n',
            SSE_DONE,
        ]

    async def test_skipped_events_are_comments(self):
        events = FakeEventStream(
            OtherEvent(event="ping"),
            MessageEvent(event="message", message_id="m1", answer="x"),
        )

        frames = await _collect(events)

        assert frames[1] == ": skip dify message event: ping\n\n"

    async def test_model_is_echoed(self):
        events = FakeEventStream(MessageEvent(event="message", message_id="m1", answer="x"))

        frames = await _collect(events, model="my-dify-app")

        assert _data(frames[1])["model"] == "my-dify-app"

    async def test_consumer_abandoning_stream_closes_upstream(self):
        events = HangingEventStream(MessageEvent(event="message", message_id="m1", answer="x"))
        gen = _stream_chat_completion(events, "m", system_fingerprint=FP, retry_seconds=30)

        assert await anext(gen) == PREAMBLE
        await anext(gen)
        await gen.aclose()

        assert events.close_calls == 1

    async def test_cancellation_closes_upstream(self):
        events = HangingEventStream()
        gen = _stream_chat_completion(events, "m", system_fingerprint=FP, retry_seconds=30)
        await anext(gen)

        task = asyncio.ensure_future(anext(gen))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert events.close_calls == 1
