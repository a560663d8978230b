"""Running list of tool calls surfaced to the orchestration layer."""

from __future__ import annotations

import dataclasses

from notestream.streaming import ParsedToolCall


class ToolCallTracker:
    """Keeps the latest version of each tool call, merged by id.

    The orchestration layer upserts calls as ``get_tool_calls()`` reports
    them during a turn; re-reporting the same id replaces the earlier
    entry in place so first-seen order is kept.
    """

    def __init__(self) -> None:
        self._calls: list[ParsedToolCall] = []

    def upsert(self, call: ParsedToolCall) -> None:
        for i, existing in enumerate(self._calls):
            if existing.id == call.id:
                self._calls[i] = dataclasses.replace(call)
                return
        self._calls.append(dataclasses.replace(call))

    def replace(self, calls: list[ParsedToolCall]) -> None:
        self._calls = [dataclasses.replace(c) for c in calls]

    def reset(self) -> None:
        self._calls = []

    @property
    def tool_calls(self) -> list[ParsedToolCall]:
        return list(self._calls)
