"""Server-Sent Events helpers.

``parse_sse_data`` pulls JSON payloads out of raw ``data:`` lines coming
from a provider; ``sse_generator`` formats engine events back into SSE
text for a downstream consumer.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from notestream.events import StreamEvent, StreamEventType

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


def parse_sse_data(block: str) -> list[dict[str, Any]]:
    """Return the JSON object of every ``data:`` line in *block*.

    Blank payloads, the ``[DONE]`` sentinel and anything that is not a
    JSON object are skipped.
    """
    payloads: list[dict[str, Any]] = []
    for line in block.split("\n"):
        stripped = line.strip()
        if not stripped.startswith("data:"):
            continue
        data = stripped[len("data:"):].strip()
        if not data or data == DONE_SENTINEL:
            continue
        try:
            parsed = json.loads(data)
        except json.JSONDecodeError:
            logger.debug(f"Skipping unparseable SSE line: {data[:200]}")
            continue
        if isinstance(parsed, dict):
            payloads.append(parsed)
    return payloads


def format_sse(event: StreamEvent) -> str:
    body = {"data": event.data, "timestamp": event.timestamp}
    if event.checkpoint_id is not None:
        body["checkpoint_id"] = event.checkpoint_id
    return f"event: {event.type.value}\ndata: {json.dumps(body)}\n\n"


async def sse_generator(
    event_stream: AsyncIterator[StreamEvent],
) -> AsyncIterator[str]:
    """Convert a StreamEvent async iterator into SSE-formatted strings."""
    async for event in event_stream:
        yield format_sse(event)
        if event.type is StreamEventType.COMPLETE:
            return
    yield "event: complete\ndata: {}\n\n"
