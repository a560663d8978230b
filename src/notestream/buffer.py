"""Text buffering between a chunk source and the renderer.

:class:`StreamBuffer` holds small fragments until one of three thresholds
is met (total characters, fragment count, or time since the last flush)
so the UI receives a steady cadence of updates instead of one repaint per
token.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from notestream.events import now_ms

if TYPE_CHECKING:
    from notestream.metrics import StreamingMetrics

logger = logging.getLogger(__name__)


@dataclass
class Chunk:
    text: str
    timestamp: int


class BufferConfig(BaseModel):
    """Flush thresholds for :class:`StreamBuffer`."""

    min_chunk_size: int = Field(default=50, ge=1)
    max_delay_ms: int = Field(default=100, ge=0)
    batch_size: int = Field(default=5, ge=1)


class StreamBuffer:
    """Accumulates fragments and decides when to release them.

    ``add()`` returns whatever an automatic flush released (usually an
    empty list) and also hands it to ``on_flush`` when one is given.

    Args:
        config: Flush thresholds.  Defaults to :class:`BufferConfig`.
        on_flush: Called with the released fragments on every
            non-empty flush, automatic or explicit.
        clock: Millisecond clock, injectable for tests.
    """

    def __init__(
        self,
        config: BufferConfig | None = None,
        on_flush: Callable[[list[str]], None] | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.config = config or BufferConfig()
        self.on_flush = on_flush
        self._clock = clock
        self._chunks: list[Chunk] = []
        self._last_flush_time = clock()

    def add(self, text: str) -> list[str]:
        self._chunks.append(Chunk(text=text, timestamp=self._clock()))
        if self._should_flush():
            return self.flush()
        return []

    def flush(self) -> list[str]:
        """Release every buffered fragment in arrival order."""
        if not self._chunks:
            return []
        released = [c.text for c in self._chunks]
        self._chunks = []
        self._last_flush_time = self._clock()
        if self.on_flush is not None:
            self.on_flush(released)
        return released

    def drain(self) -> list[str]:
        """Empty the buffer regardless of thresholds (end of stream)."""
        released = [c.text for c in self._chunks]
        self._chunks = []
        return released

    def is_empty(self) -> bool:
        return not self._chunks

    @property
    def pending_chunks(self) -> int:
        return len(self._chunks)

    @property
    def buffered_size(self) -> int:
        return sum(len(c.text) for c in self._chunks)

    def _should_flush(self) -> bool:
        if self.buffered_size >= self.config.min_chunk_size:
            return True
        if len(self._chunks) >= self.config.batch_size:
            return True
        elapsed = self._clock() - self._last_flush_time
        return bool(self._chunks) and elapsed >= self.config.max_delay_ms


async def optimized_stream(
    source: AsyncIterator,
    buffer: StreamBuffer | None = None,
    metrics: StreamingMetrics | None = None,
) -> AsyncIterator[str]:
    """Re-yield *source* through *buffer*, recording into *metrics*.

    Without a buffer the source items pass through untouched.  With one,
    each item is added and whatever the buffer releases is yielded; the
    remainder is drained once the source ends.
    """
    async for item in source:
        if buffer is None:
            yield item
            continue
        text = str(item)
        if metrics is not None:
            metrics.record_chunk(len(text))
        released = buffer.add(text)
        for fragment in released:
            yield fragment
        if released and metrics is not None:
            metrics.record_flush(len(released))

    if buffer is not None and not buffer.is_empty():
        remaining = buffer.drain()
        logger.debug(f"Draining {len(remaining)} buffered fragments at end of stream")
        for fragment in remaining:
            yield fragment
