"""Tests for SSE framing and the keep-alive relay."""

from __future__ import annotations

import asyncio

import pytest

from difybridge.api.sse import (
    SSE_DONE,
    SSE_HEARTBEAT,
    format_sse_comment,
    format_sse_data,
    with_keepalive,
)
from difybridge.exceptions import SerializationError


class TestFormatters:
    def test_comment(self):
        assert format_sse_comment("hello") == ": hello\n\n"

    def test_comment_with_retry(self):
        assert format_sse_comment("streaming chat completions", retry_seconds=30) == (
            ": streaming chat completions\nretry: 30000\n\n"
        )

    def test_multiline_comment_prefixes_every_line(self):
        assert format_sse_comment("a\nb") == ": a\n: b\n\n"

    def test_data_keeps_unicode(self):
        assert format_sse_data({"content": "héllo ✓"}) == 'data: {"content": "héllo ✓"}\n\n'

    def test_data_rejects_unserializable(self):
        with pytest.raises(SerializationError):
            format_sse_data({"bad": object()})

    def test_done_sentinel(self):
        assert SSE_DONE == "data: [DONE]\n\n"


class TestWithKeepalive:
    """with_keepalive() relays frames and fills silence with heartbeats."""

    async def test_relays_frames_unchanged(self):
        async def frames():
            yield "a"
            yield "b"

        out = [frame async for frame in with_keepalive(frames(), interval=5)]

        assert out == ["a", "b"]

    async def test_heartbeat_during_silence(self):
        async def frames():
            yield "first"
            await asyncio.sleep(0.2)
            yield "second"

        out = [frame async for frame in with_keepalive(frames(), interval=0.05)]

        assert out[0] == "first"
        assert out[-1] == "second"
        assert SSE_HEARTBEAT in out[1:-1]

    async def test_source_error_propagates(self):
        async def frames():
            yield "a"
            raise RuntimeError("boom")

        relay = with_keepalive(frames(), interval=5)

        assert await anext(relay) == "a"
        with pytest.raises(RuntimeError, match="boom"):
            await anext(relay)

    async def test_closing_relay_closes_source(self):
        closed = asyncio.Event()
        started = asyncio.Event()

        async def frames():
            try:
                yield "a"
                started.set()
                await asyncio.Event().wait()
                yield "never"
            finally:
                closed.set()

        relay = with_keepalive(frames(), interval=0.01)

        assert await anext(relay) == "a"
        assert await anext(relay) == SSE_HEARTBEAT
        assert started.is_set()
        await relay.aclose()

        assert closed.is_set()
