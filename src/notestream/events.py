"""Events and state emitted by the streaming engine."""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum


def now_ms() -> int:
    """Wall-clock time in integer milliseconds."""
    return int(time.time() * 1000)


class StreamState(Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    PAUSED = "paused"
    ERROR = "error"


class StreamEventType(Enum):
    CHUNK = "chunk"
    COMPLETE = "complete"
    ERROR = "error"
    HEARTBEAT = "heartbeat"
    CHECKPOINT = "checkpoint"


@dataclass
class StreamEvent:
    """A single event delivered to connection listeners.

    ``data`` is the raw payload for ``chunk`` events, the error text for
    ``error`` events, and a status word (``"connecting"``,
    ``"connected"``, ``"interrupt"``) for ``checkpoint`` events.
    """

    type: StreamEventType
    data: str = ""
    timestamp: int = 0
    checkpoint_id: str | None = None


@dataclass
class InterruptInfo:
    """Where the stream was when an interruption was recorded."""

    occurred: bool = False
    timestamp: int = 0
    reason: str | None = None
    recovery_position: int | None = None
