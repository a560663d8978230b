"""Volume and buffer-efficiency counters for a streaming session."""

from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass
class StreamingStats:
    total_chunks: int = 0
    total_bytes: int = 0
    avg_chunk_size: float = 0.0
    buffer_efficiency: float = 0.0
    estimated_tokens: int = 0
    flushed_batches: int = 0
    flushed_fragments: int = 0


class StreamingMetrics:
    """Counts chunks and bytes seen, and how much is still held back.

    ``buffer_efficiency`` is the share of all bytes that has not yet been
    released by a flush.
    """

    def __init__(self) -> None:
        self.reset()

    def record_chunk(self, size: int) -> None:
        self._total_chunks += 1
        self._total_bytes += size
        self._buffered_bytes += size

    def record_flush(self, batch_size: int) -> None:
        self._flushed_batches += 1
        self._flushed_fragments += batch_size
        self._buffered_bytes = 0

    def get_stats(self) -> StreamingStats:
        total_chunks = self._total_chunks
        total_bytes = self._total_bytes
        return StreamingStats(
            total_chunks=total_chunks,
            total_bytes=total_bytes,
            avg_chunk_size=total_bytes / total_chunks if total_chunks else 0.0,
            buffer_efficiency=(
                self._buffered_bytes / total_bytes if total_bytes else 0.0
            ),
            estimated_tokens=math.ceil(total_bytes / 4),
            flushed_batches=self._flushed_batches,
            flushed_fragments=self._flushed_fragments,
        )

    def reset(self) -> None:
        self._total_chunks = 0
        self._total_bytes = 0
        self._buffered_bytes = 0
        self._flushed_batches = 0
        self._flushed_fragments = 0
