"""Unit tests for StreamBuffer and optimized_stream."""

import pytest

from notestream.buffer import BufferConfig, StreamBuffer, optimized_stream
from notestream.metrics import StreamingMetrics

from tests.conftest import async_iter


def _buffer(clock, **config):
    return StreamBuffer(BufferConfig(**config), clock=clock)


class TestThresholds:
    def test_below_every_threshold_keeps_chunks(self, clock):
        buf = _buffer(clock, min_chunk_size=100, batch_size=10, max_delay_ms=1000)
        for text in ["a", "bb", "ccc"]:
            assert buf.add(text) == []
            clock.advance(10)

        assert buf.pending_chunks == 3
        assert buf.buffered_size == 6
        assert not buf.is_empty()

    def test_flushes_on_min_chunk_size(self, clock):
        buf = _buffer(clock, min_chunk_size=5, batch_size=10, max_delay_ms=1000)
        assert buf.add("abc") == []
        assert buf.add("de") == ["abc", "de"]
        assert buf.is_empty()

    def test_flushes_on_batch_size(self, clock):
        buf = _buffer(clock, min_chunk_size=100, batch_size=3, max_delay_ms=1000)
        buf.add("a")
        buf.add("b")
        assert buf.add("c") == ["a", "b", "c"]
        assert buf.pending_chunks == 0

    def test_flushes_on_elapsed_time(self, clock):
        buf = _buffer(clock, min_chunk_size=100, batch_size=10, max_delay_ms=100)
        assert buf.add("a") == []
        clock.advance(100)
        assert buf.add("b") == ["a", "b"]

    def test_time_measured_from_last_flush(self, clock):
        buf = _buffer(clock, min_chunk_size=100, batch_size=10, max_delay_ms=100)
        clock.advance(90)
        buf.add("a")
        buf.flush()
        clock.advance(90)
        assert buf.add("b") == []

    def test_on_flush_receives_auto_flushed_text(self, clock):
        released = []
        buf = StreamBuffer(
            BufferConfig(min_chunk_size=4, batch_size=10, max_delay_ms=1000),
            on_flush=released.append,
            clock=clock,
        )
        buf.add("ab")
        buf.add("cd")
        assert released == [["ab", "cd"]]


class TestFlushAndDrain:
    def test_flush_returns_in_arrival_order(self, clock):
        buf = _buffer(clock, min_chunk_size=100, batch_size=10, max_delay_ms=1000)
        for text in ["one", "two", "three"]:
            buf.add(text)
        assert buf.flush() == ["one", "two", "three"]

    def test_second_flush_is_empty(self, clock):
        buf = _buffer(clock, min_chunk_size=100, batch_size=10, max_delay_ms=1000)
        buf.add("x")
        assert buf.flush() == ["x"]
        assert buf.flush() == []

    def test_flush_on_empty_does_not_call_on_flush(self, clock):
        released = []
        buf = StreamBuffer(on_flush=released.append, clock=clock)
        assert buf.flush() == []
        assert released == []

    def test_drain_empty(self, clock):
        assert _buffer(clock).drain() == []

    def test_drain_returns_all_regardless_of_thresholds(self, clock):
        buf = _buffer(clock, min_chunk_size=1000, batch_size=100, max_delay_ms=10_000)
        for i in range(7):
            buf.add(str(i))
        assert buf.drain() == [str(i) for i in range(7)]
        assert buf.is_empty()


class TestConfig:
    def test_defaults(self):
        config = BufferConfig()
        assert config.min_chunk_size == 50
        assert config.max_delay_ms == 100
        assert config.batch_size == 5

    def test_rejects_zero_batch_size(self):
        with pytest.raises(ValueError):
            BufferConfig(batch_size=0)


class TestOptimizedStream:
    @pytest.mark.asyncio
    async def test_passthrough_without_buffer(self):
        out = [c async for c in optimized_stream(async_iter(["a", "b"]))]
        assert out == ["a", "b"]

    @pytest.mark.asyncio
    async def test_buffered_output_preserves_text(self, clock):
        buf = _buffer(clock, min_chunk_size=100, batch_size=2, max_delay_ms=10_000)
        metrics = StreamingMetrics()
        source = async_iter(["a", "b", "c", "d", "e"])

        out = [c async for c in optimized_stream(source, buf, metrics)]

        assert "".join(out) == "abcde"
        stats = metrics.get_stats()
        assert stats.total_chunks == 5
        assert stats.flushed_batches == 2
        assert buf.is_empty()
