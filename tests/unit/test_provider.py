from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from notestream.adapters import OpenAIStreamingAdapter
from notestream.provider import OpenAIProvider, text_deltas

from tests.conftest import async_iter


# ---------------------------------------------------------------------------
# Fake OpenAI stream objects
# ---------------------------------------------------------------------------

class FakeChunk:
    def __init__(self, payload):
        self.payload = payload

    def model_dump(self):
        return self.payload


def _delta_chunk(content=None, tool_calls=None, finish_reason=None):
    delta = {}
    if content is not None:
        delta["content"] = content
    if tool_calls is not None:
        delta["tool_calls"] = tool_calls
    return {"choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}]}


def _stub_client(payloads):
    create = AsyncMock(return_value=async_iter([FakeChunk(p) for p in payloads]))
    client = SimpleNamespace(
        chat=SimpleNamespace(completions=SimpleNamespace(create=create)),
    )
    return client, create


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

def test_openai_provider_reads_env(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-from-env")
    p = OpenAIProvider()
    assert p.client.api_key == "sk-from-env"


def test_explicit_key_wins_over_env(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-from-env")
    p = OpenAIProvider(api_key="sk-explicit")
    assert p.client.api_key == "sk-explicit"


def test_injected_client_is_used_as_is():
    client = MagicMock()
    assert OpenAIProvider(client=client).client is client


# ---------------------------------------------------------------------------
# OpenAIProvider.stream_chunks
# ---------------------------------------------------------------------------

class TestStreamChunks:
    @pytest.mark.asyncio
    async def test_yields_dumped_chunks(self):
        payloads = [_delta_chunk("Hel"), _delta_chunk("lo", finish_reason="stop")]
        client, _ = _stub_client(payloads)
        provider = OpenAIProvider(client=client)

        chunks = [c async for c in provider.stream_chunks("gpt-4o", [])]

        assert chunks == payloads

    @pytest.mark.asyncio
    async def test_forwards_tools_with_tool_choice(self):
        client, create = _stub_client([])
        provider = OpenAIProvider(client=client)
        messages = [{"role": "user", "content": "hi"}]
        tools = [{"type": "function", "function": {"name": "f"}}]

        [c async for c in provider.stream_chunks("gpt-4o", messages, tools=tools)]

        create.assert_called_once_with(
            model="gpt-4o", messages=messages, stream=True,
            tools=tools, tool_choice="auto",
        )

    @pytest.mark.asyncio
    async def test_omits_tools_when_none(self):
        client, create = _stub_client([])
        provider = OpenAIProvider(client=client)

        [c async for c in provider.stream_chunks("gpt-4o", [])]

        _, kwargs = create.call_args
        assert kwargs["stream"] is True
        assert "tools" not in kwargs
        assert "tool_choice" not in kwargs


# ---------------------------------------------------------------------------
# text_deltas
# ---------------------------------------------------------------------------

class TestTextDeltas:
    @pytest.mark.asyncio
    async def test_yields_only_non_empty_content(self):
        chunks = [
            _delta_chunk("a"),
            _delta_chunk(""),
            {"choices": []},
            _delta_chunk(finish_reason="stop"),
            _delta_chunk("b"),
        ]
        out = [t async for t in text_deltas(async_iter(chunks))]
        assert out == ["a", "b"]

    @pytest.mark.asyncio
    async def test_feeds_adapter_alongside_text(self):
        adapter = OpenAIStreamingAdapter()
        state = adapter.new_state()
        chunks = [
            _delta_chunk("Looking"),
            _delta_chunk(tool_calls=[{
                "index": 0, "id": "call_1",
                "function": {"name": "search", "arguments": '{"q": '},
            }]),
            _delta_chunk(tool_calls=[{"index": 0, "function": {"arguments": '"cats"}'}}]),
            _delta_chunk(finish_reason="tool_calls"),
        ]

        out = [t async for t in text_deltas(async_iter(chunks), adapter, state)]

        assert out == ["Looking"]
        assert state.accumulated_text == "Looking"
        assert state.is_complete
        calls = adapter.get_tool_calls(state)
        assert [(c.id, c.name, c.args) for c in calls] == [("call_1", "search", {"q": "cats"})]

    @pytest.mark.asyncio
    async def test_adapter_without_state_raises(self):
        with pytest.raises(ValueError, match="state"):
            [t async for t in text_deltas(async_iter([]), OpenAIStreamingAdapter())]
