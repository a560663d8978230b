"""Provider-specific tool-call adapters.

Two families share one module:

* :class:`ToolCallAdapter` reads tool calls out of a complete,
  non-streamed provider response and formats tool results back into the
  provider's message shape.
* :class:`StreamingToolCallAdapter` additionally rebuilds tool calls from
  a sequence of streamed deltas.  Two wire shapes are supported:
  delta-indexed (``openai``: ``choices[0].delta.tool_calls[]``) and
  content-block-indexed (``anthropic``: ``content_block_start`` /
  ``content_block_delta`` / ``message_stop``).

Adapters hold no per-session data; everything lives on the
:class:`~notestream.streaming.StreamingAdapterState` passed in.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

from notestream.errors import ToolCallParseError
from notestream.sse import parse_sse_data
from notestream.streaming import (
    ParsedToolCall,
    StreamingAdapterState,
    ToolCallState,
    parse_tool_args,
)

logger = logging.getLogger(__name__)


def tool_call_id(provider: str, index: int) -> str:
    """Generate an id for a tool call the provider sent without one."""
    return f"{provider}_{index}_{uuid.uuid4().hex[:8]}"


def normalize_args(args: Any) -> dict[str, Any]:
    """Coerce a provider's argument payload (JSON text or object) to a dict."""
    if isinstance(args, str):
        try:
            return parse_tool_args(args)
        except ToolCallParseError:
            return {}
    if isinstance(args, Mapping):
        return dict(args)
    return {}


def _as_events(chunk: Any) -> list[dict[str, Any]]:
    if isinstance(chunk, str):
        return parse_sse_data(chunk)
    if isinstance(chunk, BaseModel):
        return [chunk.model_dump()]
    if isinstance(chunk, Mapping):
        return [dict(chunk)]
    return []


def _first_choice(payload: Mapping) -> Mapping | None:
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    choice = choices[0]
    return choice if isinstance(choice, Mapping) else None


def _stringify(result: Any) -> str:
    return result if isinstance(result, str) else json.dumps(result)


# ---------------------------------------------------------------------------
# Whole-response adapters
# ---------------------------------------------------------------------------

class ToolCallAdapter:
    """Reads tool calls from a complete provider response."""

    provider: str = ""

    def has_tool_calls(self, response: Any) -> bool:
        raise NotImplementedError

    def parse_response(self, response: Any) -> list[ParsedToolCall]:
        raise NotImplementedError

    def format_result(self, call: ParsedToolCall, result: Any) -> dict[str, Any]:
        """Build the message that returns *result* to the provider."""
        raise NotImplementedError

    def _build(self, name: str, args: Any, call_id: str | None, index: int) -> ParsedToolCall:
        return ParsedToolCall(
            id=call_id or tool_call_id(self.provider, index),
            name=name,
            args=normalize_args(args),
            raw_args=args if isinstance(args, str) else json.dumps(args or {}),
            provider=self.provider,
        )

    def _parse_message_tool_calls(self, message: Mapping) -> list[ParsedToolCall]:
        tool_calls = message.get("tool_calls")
        if not isinstance(tool_calls, list):
            return []
        calls = []
        for index, tc in enumerate(tool_calls):
            if not isinstance(tc, Mapping) or not isinstance(tc.get("function"), Mapping):
                continue
            function = tc["function"]
            name = function.get("name")
            if not isinstance(name, str) or not name:
                continue
            call_id = tc.get("id") if isinstance(tc.get("id"), str) else None
            calls.append(self._build(name, function.get("arguments"), call_id, index))
        return calls


class OpenAIAdapter(ToolCallAdapter):
    provider = "openai"

    def has_tool_calls(self, response):
        choice = _first_choice(response) if isinstance(response, Mapping) else None
        return (
            choice is not None
            and isinstance(choice.get("message"), Mapping)
            and isinstance(choice["message"].get("tool_calls"), list)
        )

    def parse_response(self, response):
        if not self.has_tool_calls(response):
            return []
        return self._parse_message_tool_calls(_first_choice(response)["message"])

    def format_result(self, call, result):
        return {
            "role": "tool",
            "tool_call_id": call.id,
            "content": _stringify(result),
        }


class OllamaAdapter(ToolCallAdapter):
    provider = "ollama"

    def has_tool_calls(self, response):
        return (
            isinstance(response, Mapping)
            and isinstance(response.get("message"), Mapping)
            and isinstance(response["message"].get("tool_calls"), list)
        )

    def parse_response(self, response):
        if not self.has_tool_calls(response):
            return []
        return self._parse_message_tool_calls(response["message"])

    def format_result(self, call, result):
        return {"role": "tool", "content": json.dumps(result)}


class AnthropicAdapter(ToolCallAdapter):
    provider = "anthropic"

    def has_tool_calls(self, response):
        if not isinstance(response, Mapping) or not isinstance(response.get("content"), list):
            return False
        return any(
            isinstance(block, Mapping) and block.get("type") == "tool_use"
            for block in response["content"]
        )

    def parse_response(self, response):
        if not self.has_tool_calls(response):
            return []
        calls = []
        for index, block in enumerate(response["content"]):
            if not isinstance(block, Mapping) or block.get("type") != "tool_use":
                continue
            name = block.get("name")
            if not isinstance(name, str) or not name:
                continue
            call_id = block.get("id") if isinstance(block.get("id"), str) else None
            calls.append(self._build(name, block.get("input"), call_id, index))
        return calls

    def format_result(self, call, result):
        return {
            "role": "user",
            "content": [{
                "type": "tool_result",
                "tool_use_id": call.id,
                "content": json.dumps(result),
            }],
        }


class GeminiAdapter(ToolCallAdapter):
    provider = "gemini"

    def has_tool_calls(self, response):
        return isinstance(response, Mapping) and isinstance(response.get("functionCalls"), list)

    def parse_response(self, response):
        if not self.has_tool_calls(response):
            return []
        calls = []
        for index, fc in enumerate(response["functionCalls"]):
            if not isinstance(fc, Mapping):
                continue
            name = fc.get("name")
            if not isinstance(name, str) or not name:
                continue
            calls.append(self._build(name, fc.get("args"), None, index))
        return calls

    def format_result(self, call, result):
        return {
            "role": "user",
            "parts": [{
                "functionResponse": {"name": call.name, "response": result},
            }],
        }


# ---------------------------------------------------------------------------
# Streaming adapters
# ---------------------------------------------------------------------------

class StreamingToolCallAdapter(ToolCallAdapter):
    """Rebuilds tool calls from streamed provider deltas.

    ``parse_streaming_chunk`` is synchronous and only touches the chunk
    and the state it is given.  A chunk may be a decoded JSON mapping, a
    pydantic model from a provider SDK, or a raw SSE text block.
    """

    @staticmethod
    def new_state() -> StreamingAdapterState:
        return StreamingAdapterState()

    def parse_streaming_chunk(
        self, chunk: Any, state: StreamingAdapterState,
    ) -> StreamingAdapterState:
        for event in _as_events(chunk):
            self._apply_event(event, state)
        return state

    def _apply_event(self, event: dict[str, Any], state: StreamingAdapterState) -> None:
        raise NotImplementedError

    def get_tool_calls(self, state: StreamingAdapterState) -> list[ParsedToolCall]:
        """Return every named call whose arguments currently parse.

        A call whose argument text is still incomplete is skipped, not
        reported as an error.  Calls come back in index order.
        """
        calls = []
        for index, tc in state.tool_calls.items():
            if not tc.name:
                continue
            try:
                args = parse_tool_args(tc.raw_arguments)
            except ToolCallParseError as e:
                logger.debug(f"Tool call {index} ({tc.name}) not ready: {e}")
                continue
            if not tc.id:
                tc.id = tool_call_id(self.provider, index)
            calls.append(ParsedToolCall(
                id=tc.id,
                name=tc.name,
                args=args,
                raw_args=tc.raw_arguments,
                provider=self.provider,
            ))
        return calls

    def get_incomplete_tool_calls(self, state: StreamingAdapterState) -> list[ToolCallState]:
        """Calls whose argument text does not parse yet.

        Useful at end of stream to decide whether to warn the user.
        """
        incomplete = []
        for _, tc in state.tool_calls.items():
            try:
                parse_tool_args(tc.raw_arguments)
            except ToolCallParseError:
                incomplete.append(tc)
        return incomplete


class OpenAIStreamingAdapter(StreamingToolCallAdapter, OpenAIAdapter):
    """Delta-indexed streaming: ``choices[0].delta.tool_calls[]``.

    Any ``finish_reason`` on the first choice ends the turn.
    """

    def _apply_event(self, event, state):
        choice = _first_choice(event)
        if choice is None:
            return

        delta = choice.get("delta")
        if isinstance(delta, Mapping):
            content = delta.get("content")
            if isinstance(content, str):
                state.accumulated_text += content
            tool_calls = delta.get("tool_calls")
            if isinstance(tool_calls, list):
                for tc in tool_calls:
                    if isinstance(tc, Mapping):
                        self._apply_tool_call_delta(tc, state)

        finish_reason = choice.get("finish_reason")
        if isinstance(finish_reason, str):
            state.finish_reason = finish_reason
            state.is_complete = True

    @staticmethod
    def _apply_tool_call_delta(tc: Mapping, state: StreamingAdapterState) -> None:
        index = tc.get("index") if isinstance(tc.get("index"), int) else 0
        function = tc.get("function") if isinstance(tc.get("function"), Mapping) else {}
        name = function.get("name")
        arguments = function.get("arguments")
        call_id = tc.get("id")
        state.tool_calls.feed(
            index,
            call_id=call_id if isinstance(call_id, str) else None,
            name=name if isinstance(name, str) else None,
            arguments_delta=arguments if isinstance(arguments, str) else None,
        )


class AnthropicStreamingAdapter(StreamingToolCallAdapter, AnthropicAdapter):
    """Content-block-indexed streaming.

    ``content_block_start`` opens a ``tool_use`` block, ``input_json_delta``
    fragments extend it, and ``message_stop`` ends the turn.
    """

    def _apply_event(self, event, state):
        event_type = event.get("type")
        index = event.get("index") if isinstance(event.get("index"), int) else 0

        if event_type == "content_block_start":
            block = event.get("content_block")
            if isinstance(block, Mapping) and block.get("type") == "tool_use":
                self._start_tool_use(index, block, state)

        elif event_type == "content_block_delta":
            delta = event.get("delta")
            if not isinstance(delta, Mapping):
                return
            if delta.get("type") == "input_json_delta" and isinstance(delta.get("partial_json"), str):
                state.tool_calls.feed(index, arguments_delta=delta["partial_json"])
            elif isinstance(delta.get("text"), str):
                state.accumulated_text += delta["text"]

        elif event_type == "message_delta":
            delta = event.get("delta")
            if isinstance(delta, Mapping) and isinstance(delta.get("stop_reason"), str):
                state.finish_reason = delta["stop_reason"]

        elif event_type == "message_stop":
            if isinstance(event.get("stop_reason"), str):
                state.finish_reason = event["stop_reason"]
            state.is_complete = True

    @staticmethod
    def _start_tool_use(index: int, block: Mapping, state: StreamingAdapterState) -> None:
        is_new = index not in state.tool_calls
        call_id = block.get("id")
        name = block.get("name")
        tc = state.tool_calls.feed(
            index,
            call_id=call_id if isinstance(call_id, str) else None,
            name=name if isinstance(name, str) else None,
        )
        # Some gateways send the full input up front instead of deltas.
        block_input = block.get("input")
        if is_new and not tc.raw_arguments and block_input:
            if isinstance(block_input, str):
                state.tool_calls.feed(index, arguments_delta=block_input)
            elif isinstance(block_input, (Mapping, list)):
                state.tool_calls.feed(index, arguments_delta=json.dumps(block_input))


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

_ADAPTERS: dict[str, type[ToolCallAdapter]] = {
    "openai": OpenAIAdapter,
    "anthropic": AnthropicAdapter,
    "gemini": GeminiAdapter,
    "ollama": OllamaAdapter,
}

_STREAMING_ADAPTERS: dict[str, type[StreamingToolCallAdapter]] = {
    "openai": OpenAIStreamingAdapter,
    "anthropic": AnthropicStreamingAdapter,
}


def get_tool_call_adapter(provider: str) -> ToolCallAdapter:
    """Whole-response adapter for *provider*; unknown keys get ``openai``."""
    return _ADAPTERS.get(provider, OpenAIAdapter)()


def get_streaming_tool_call_adapter(provider: str) -> StreamingToolCallAdapter | None:
    """Streaming adapter for *provider*, or ``None`` if it has none."""
    adapter_cls = _STREAMING_ADAPTERS.get(provider)
    if adapter_cls is None:
        logger.debug(f"No streaming tool-call adapter for provider {provider!r}")
        return None
    return adapter_cls()
