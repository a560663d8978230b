"""Cancellable timers.

Every timer in the engine is a handle stored on the component that owns
it, so teardown can cancel it explicitly.  Timers are scheduled through a
:class:`Scheduler`; the running asyncio loop is the default and tests pass
a manual one.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


def running_loop_scheduler() -> Scheduler:
    return asyncio.get_running_loop()


class Debouncer:
    """Runs ``func`` once, ``wait_ms`` after the most recent call."""

    def __init__(
        self,
        func: Callable[..., Any],
        wait_ms: int,
        scheduler: Scheduler | None = None,
    ):
        self.func = func
        self.wait_ms = wait_ms
        self._scheduler = scheduler
        self._handle: TimerHandle | None = None

    def __call__(self, *args: Any) -> None:
        self.cancel()
        scheduler = self._scheduler or running_loop_scheduler()
        self._handle = scheduler.call_later(self.wait_ms / 1000, self._fire, *args)

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, *args: Any) -> None:
        self._handle = None
        self.func(*args)


class Throttler:
    """Runs ``func`` at most once per ``limit_ms``; extra calls are dropped."""

    def __init__(
        self,
        func: Callable[..., Any],
        limit_ms: int,
        scheduler: Scheduler | None = None,
    ):
        self.func = func
        self.limit_ms = limit_ms
        self._scheduler = scheduler
        self._handle: TimerHandle | None = None

    def __call__(self, *args: Any) -> None:
        if self._handle is not None:
            return
        self.func(*args)
        scheduler = self._scheduler or running_loop_scheduler()
        self._handle = scheduler.call_later(self.limit_ms / 1000, self._reopen)

    @property
    def throttled(self) -> bool:
        return self._handle is not None

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _reopen(self) -> None:
        self._handle = None
