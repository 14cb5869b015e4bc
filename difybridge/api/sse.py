"""Server-Sent Events framing.

Frames are plain strings ready to be written to a ``text/event-stream``
response: comment lines (ignored by OpenAI client parsers), ``data:``
lines carrying JSON, the ``retry:`` directive and the ``[DONE]`` sentinel.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
from typing import TYPE_CHECKING, Any

from difybridge.exceptions import SerializationError

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

SSE_DONE = "data: [DONE]\n\n"
SSE_HEARTBEAT = ": ping\n\n"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse_comment(text: str, *, retry_seconds: float | None = None) -> str:
    """Build a comment frame, optionally carrying a ``retry:`` directive."""
    lines = [f": {line}" if line else ":" for line in text.split("\n")]
    if retry_seconds is not None:
        lines.append(f"retry: {int(retry_seconds * 1000)}")
    return "\n".join(lines) + "\n\n"


def format_sse_data(payload: Any) -> str:
    """Build a ``data:`` frame from a JSON-serializable payload."""
    try:
        data = json.dumps(payload, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Cannot serialize SSE payload: {e}") from e
    return f"data: {data}\n\n"


async def with_keepalive(
    frames: AsyncGenerator[str, None],
    interval: float,
) -> AsyncGenerator[str, None]:
    """Relay ``frames``, inserting a heartbeat after ``interval`` seconds of silence.

    Each pull on ``frames`` runs as a task so the wait can time out without
    cancelling it. Closing this generator (client disconnect) cancels the
    in-flight pull and closes ``frames``.
    """
    pending: asyncio.Future[str] | None = None
    try:
        while True:
            if pending is None:
                pending = asyncio.ensure_future(frames.__anext__())
            done, _ = await asyncio.wait({pending}, timeout=interval)
            if not done:
                yield SSE_HEARTBEAT
                continue
            finished, pending = pending, None
            try:
                frame = finished.result()
            except StopAsyncIteration:
                return
            yield frame
    finally:
        if pending is not None:
            pending.cancel()
        with contextlib.suppress(asyncio.CancelledError, Exception):
            await asyncio.shield(_close_frames(frames, pending))


async def _close_frames(
    frames: AsyncGenerator[str, None],
    pending: asyncio.Future[str] | None,
) -> None:
    if pending is not None:
        with contextlib.suppress(asyncio.CancelledError, StopAsyncIteration, Exception):
            await pending
    await frames.aclose()
