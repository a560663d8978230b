"""Unit tests for SSE helpers."""

import json

import pytest

from notestream.events import StreamEvent, StreamEventType
from notestream.sse import format_sse, parse_sse_data, sse_generator

from tests.conftest import async_iter


class TestParseSseData:
    def test_extracts_json_objects(self):
        block = 'event: x\ndata: {"a": 1}\n\ndata:{"b": 2}\n'
        assert parse_sse_data(block) == [{"a": 1}, {"b": 2}]

    def test_skips_done_blank_and_garbage(self):
        block = "data: [DONE]\ndata:\ndata: {not json\ndata: [1, 2]\n: comment\n"
        assert parse_sse_data(block) == []


class TestFormat:
    def test_format_sse(self):
        event = StreamEvent(StreamEventType.CHUNK, data="hi", timestamp=5)
        text = format_sse(event)
        assert text.startswith("event: chunk\n")
        assert text.endswith("\n\n")
        payload = json.loads(text.split("data: ", 1)[1])
        assert payload == {"data": "hi", "timestamp": 5}

    def test_checkpoint_id_included(self):
        event = StreamEvent(StreamEventType.CHECKPOINT, "interrupt", 1, checkpoint_id="interrupt")
        assert '"checkpoint_id": "interrupt"' in format_sse(event)

    @pytest.mark.asyncio
    async def test_generator_appends_complete(self):
        events = [StreamEvent(StreamEventType.CHUNK, "a", 1)]
        out = [s async for s in sse_generator(async_iter(events))]
        assert len(out) == 2
        assert out[-1] == "event: complete\ndata: {}\n\n"

    @pytest.mark.asyncio
    async def test_generator_stops_at_complete_event(self):
        events = [
            StreamEvent(StreamEventType.CHUNK, "a", 1),
            StreamEvent(StreamEventType.COMPLETE, "a", 2),
            StreamEvent(StreamEventType.CHUNK, "late", 3),
        ]
        out = [s async for s in sse_generator(async_iter(events))]
        assert len(out) == 2
        assert out[-1].startswith("event: complete\n")
