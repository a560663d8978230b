"""Checkpoint storage and bounded-retry resumption."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field

from notestream.errors import RecoveryError
from notestream.events import now_ms
from notestream.instrumentation import record_error, recovery_span

logger = logging.getLogger(__name__)

ResumeCallback = Callable[[int], Any]


class RecoveryConfig(BaseModel):
    max_recovery_attempts: int = Field(default=3, ge=0)
    recovery_timeout_ms: int = Field(default=10000, gt=0)


@dataclass
class Checkpoint:
    position: int
    timestamp: int
    data: str


@dataclass
class RecoveryResult:
    """Outcome of :meth:`RecoveryManager.recover`.

    ``error`` describes why a failed recovery failed; it is ``None`` on
    success.
    """

    success: bool
    recovered_data: str = ""
    error: str | None = None


class RecoveryManager:
    """Stores checkpoints and replays from them a bounded number of times.

    The attempt counter is never reset automatically; the owner calls
    :meth:`reset_recovery_attempts` once a new session is healthy.
    """

    def __init__(
        self,
        config: RecoveryConfig | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.config = config or RecoveryConfig()
        self._clock = clock
        self._checkpoints: dict[str, Checkpoint] = {}
        self._latest_id: str | None = None
        self._attempts = 0

    def create_checkpoint(self, checkpoint_id: str, position: int, data: str) -> None:
        self._checkpoints[checkpoint_id] = Checkpoint(
            position=position, timestamp=self._clock(), data=data,
        )
        self._latest_id = checkpoint_id

    def get_checkpoint(self, checkpoint_id: str) -> Checkpoint | None:
        return self._checkpoints.get(checkpoint_id)

    @property
    def latest_checkpoint_id(self) -> str | None:
        return self._latest_id

    def can_recover(self) -> bool:
        return self._attempts < self.config.max_recovery_attempts

    @property
    def recovery_attempts(self) -> int:
        return self._attempts

    def record_recovery_attempt(self) -> None:
        self._attempts += 1

    def reset_recovery_attempts(self) -> None:
        self._attempts = 0

    def clear_checkpoints(self) -> None:
        self._checkpoints.clear()
        self._latest_id = None

    async def recover(
        self, checkpoint_id: str, resume_callback: ResumeCallback,
    ) -> RecoveryResult:
        """Resume from *checkpoint_id* by calling ``resume_callback(position)``.

        The callback may be a plain function or a coroutine function.  It
        returns the recovered text.  Nothing raised by the callback, and
        no missing checkpoint or spent budget, ever escapes this method:
        every outcome is a :class:`RecoveryResult`.
        """
        checkpoint = self.get_checkpoint(checkpoint_id)
        if checkpoint is None:
            logger.warning(f"No checkpoint {checkpoint_id!r} to recover from")
            return RecoveryResult(
                success=False, error=f"checkpoint {checkpoint_id!r} not found",
            )
        if not self.can_recover():
            logger.warning(
                f"Recovery budget exhausted ({self._attempts}/"
                f"{self.config.max_recovery_attempts} attempts)"
            )
            return RecoveryResult(success=False, error="recovery attempts exhausted")

        self.record_recovery_attempt()
        async with recovery_span(checkpoint_id, self._attempts) as span:
            try:
                recovered = await self._resume(resume_callback, checkpoint.position)
            except Exception as e:
                logger.error(
                    f"Resume from {checkpoint_id!r} at position "
                    f"{checkpoint.position} failed: {e}"
                )
                record_error(span, e)
                return RecoveryResult(success=False, error=str(e) or type(e).__name__)

        logger.info(f"Recovered {len(recovered)} characters from {checkpoint_id!r}")
        return RecoveryResult(success=True, recovered_data=recovered)

    async def _resume(self, resume_callback: ResumeCallback, position: int) -> str:
        result = resume_callback(position)
        if inspect.isawaitable(result):
            timeout = self.config.recovery_timeout_ms / 1000
            try:
                result = await asyncio.wait_for(result, timeout)
            except asyncio.TimeoutError as e:
                raise RecoveryError(
                    f"resume callback did not finish within {timeout}s"
                ) from e
        if not isinstance(result, str):
            raise RecoveryError(
                f"resume callback returned {type(result).__name__}, expected str"
            )
        return result
