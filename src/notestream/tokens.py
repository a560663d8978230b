"""Cheap approximate token counting for streamed text."""

from __future__ import annotations

import math
from collections.abc import Callable

from pydantic import BaseModel, Field

from notestream.events import now_ms

_CACHE_WINDOW_MS = 1000


class TokenEstimatorConfig(BaseModel):
    chars_per_token: int = Field(default=4, ge=1)
    lookahead_chars: int = Field(default=100, ge=0)


class TokenEstimator:
    """Estimates tokens as ``ceil(len(text) / chars_per_token)``.

    Repeated calls with the same text inside a one-second window return
    the cached value; ``computations`` counts how often the estimate was
    actually recomputed.
    """

    def __init__(
        self,
        config: TokenEstimatorConfig | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.config = config or TokenEstimatorConfig()
        self._clock = clock
        self._last_text: str | None = None
        self._last_value = 0
        self._last_computed_at = 0
        self.computations = 0

    def estimate(self, text: str) -> int:
        now = self._clock()
        if text == self._last_text and now - self._last_computed_at < _CACHE_WINDOW_MS:
            return self._last_value

        self.computations += 1
        self._last_text = text
        self._last_value = math.ceil(len(text) / self.config.chars_per_token)
        self._last_computed_at = now
        return self._last_value

    def estimate_remaining(self, text: str, current_tokens: int) -> int:
        """Project the total, skipping the lookahead window already seen."""
        unseen = len(text) - min(len(text), self.config.lookahead_chars)
        return current_tokens + math.ceil(unseen / self.config.chars_per_token)
