"""Streaming primitives for tool-call reconstruction.

Provider adapters feed argument fragments into a
:class:`ToolCallAccumulator` held on a per-session
:class:`StreamingAdapterState`.  The accumulator only ever appends, so a
call's argument text is exactly the concatenation of its fragments in
arrival order.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from notestream.errors import ToolCallParseError

logger = logging.getLogger(__name__)


@dataclass
class ToolCallState:
    """Accumulated state of one tool call, keyed by its index."""

    id: str = ""
    name: str = ""
    raw_arguments: str = ""


@dataclass
class ParsedToolCall:
    """A tool call whose arguments parse, ready for execution."""

    id: str
    name: str
    args: dict[str, Any]
    raw_args: str
    provider: str
    status: str = "pending"


class ToolCallAccumulator:
    """Assembles tool calls from fragments that may interleave across indices.

    Entries live in a mapping keyed by index, so indices can first appear
    in any order.  An entry is created the first time its index is seen
    and is never replaced afterwards.
    """

    def __init__(self) -> None:
        self._pending: dict[int, ToolCallState] = {}

    def feed(
        self,
        index: int,
        call_id: str | None = None,
        name: str | None = None,
        arguments_delta: str | None = None,
    ) -> ToolCallState:
        tc = self._pending.get(index)
        if tc is None:
            tc = self._pending[index] = ToolCallState()
        if call_id:
            tc.id = call_id
        if name:
            tc.name = name
        if arguments_delta:
            tc.raw_arguments += arguments_delta
        return tc

    def get(self, index: int) -> ToolCallState | None:
        return self._pending.get(index)

    def items(self) -> Iterator[tuple[int, ToolCallState]]:
        """Yield ``(index, state)`` pairs in index order."""
        for index in sorted(self._pending):
            yield index, self._pending[index]

    def __contains__(self, index: int) -> bool:
        return index in self._pending

    def __len__(self) -> int:
        return len(self._pending)


@dataclass
class StreamingAdapterState:
    """Mutable per-session state threaded through an adapter.

    ``is_complete`` is set only by the provider's turn-level terminal
    signal, whether or not every call's arguments parse yet.
    """

    tool_calls: ToolCallAccumulator = field(default_factory=ToolCallAccumulator)
    accumulated_text: str = ""
    finish_reason: str | None = None
    is_complete: bool = False


def parse_tool_args(raw_arguments: str) -> dict[str, Any]:
    """Parse accumulated argument text into a dict.

    Blank text is a tool without parameters and parses as ``{}``.

    Raises:
        ToolCallParseError: The text is not (yet) a JSON object.
    """
    if not raw_arguments.strip():
        return {}
    try:
        parsed = json.loads(raw_arguments)
    except json.JSONDecodeError as e:
        raise ToolCallParseError(raw_arguments, f"incomplete arguments: {e}") from e
    if not isinstance(parsed, dict):
        raise ToolCallParseError(
            raw_arguments, f"arguments are {type(parsed).__name__}, not an object",
        )
    return parsed
