"""Raw chunk sources for OpenAI-compatible chat endpoints.

These produce the delta stream the rest of the engine consumes; they do
not choose a provider or manage credentials beyond reading an API key
from the environment when none is passed.
"""

import logging
import os
from collections.abc import AsyncIterator
from typing import Any

from openai import AsyncOpenAI

from notestream.adapters import StreamingToolCallAdapter
from notestream.streaming import StreamingAdapterState

logger = logging.getLogger(__name__)


class OpenAIProvider:
    """Streams chat-completion chunks as plain dicts.

    Args:
        api_key: Defaults to ``OPENAI_API_KEY``.
        base_url: Any OpenAI-compatible endpoint (OpenRouter, vLLM, ...).
        client: Pre-built client; ``api_key`` and ``base_url`` are then
            ignored.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        client: AsyncOpenAI | None = None,
    ):
        if client is None:
            if not api_key:
                api_key = os.getenv("OPENAI_API_KEY")
            client = AsyncOpenAI(
                api_key=api_key,
                base_url=base_url,
                max_retries=5,
                timeout=600.0,
            )
        self.client = client

    async def stream_chunks(
        self,
        model: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        """Yield each streamed chunk in the ``choices[0].delta`` shape."""
        kwargs: dict[str, Any] = {}
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"
        stream = await self.client.chat.completions.create(
            model=model,
            messages=messages,
            stream=True,
            **kwargs,
        )
        async for chunk in stream:
            yield chunk.model_dump()


async def text_deltas(
    chunks: AsyncIterator[dict[str, Any]],
    adapter: StreamingToolCallAdapter | None = None,
    state: StreamingAdapterState | None = None,
) -> AsyncIterator[str]:
    """Yield the text content of each chunk.

    When an adapter and state are given every chunk is also fed to
    ``adapter.parse_streaming_chunk`` so tool calls are rebuilt alongside
    the text, which can then go straight into
    :meth:`~notestream.manager.StreamingManager.stream`.
    """
    if adapter is not None and state is None:
        raise ValueError("state is required when an adapter is given")
    async for chunk in chunks:
        if adapter is not None:
            adapter.parse_streaming_chunk(chunk, state)
        choices = chunk.get("choices") or []
        if not choices:
            continue
        delta = choices[0].get("delta") or {}
        content = delta.get("content")
        if content:
            yield content
