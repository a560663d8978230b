"""Transport lifecycle: connect, heartbeat, reconnect with backoff.

:class:`ConnectionHandler` wraps a :class:`~notestream.transport.Transport`
and turns its open/message/error callbacks into :class:`StreamEvent`
deliveries.  All state changes happen synchronously inside those callbacks
or inside timer callbacks; nothing here awaits.

State transitions::

    idle --connect--> connecting --open--> streaming
    streaming/connecting --error--> error --(retries left)--> paused
    paused --backoff elapsed--> connecting
    any --disconnect--> idle
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace

from pydantic import BaseModel, Field

from notestream.events import (
    InterruptInfo,
    StreamEvent,
    StreamEventType,
    StreamState,
    now_ms,
)
from notestream.timing import Scheduler, TimerHandle, running_loop_scheduler
from notestream.transport import Transport

logger = logging.getLogger(__name__)

WILDCARD = "*"

Listener = Callable[[StreamEvent], None]


class ConnectionConfig(BaseModel):
    reconnect_interval_ms: int = Field(default=3000, ge=0)
    max_retries: int = Field(default=5, ge=0)
    heartbeat_interval_ms: int = Field(default=30000, gt=0)
    heartbeat_message: str = "heartbeat"
    done_message: str | None = "[DONE]"


class ConnectionHandler:
    """Owns one transport and the events it produces.

    Listeners subscribe per event type (``"chunk"``, ``"error"``, ...) or
    with ``"*"`` for everything.  Delivery is synchronous: per-type
    listeners first, then wildcard listeners, in registration order.

    Args:
        transport: The channel to open.
        config: Retry, backoff and heartbeat settings.
        scheduler: Timer source; defaults to the running asyncio loop.
        clock: Millisecond clock used for event timestamps.
    """

    def __init__(
        self,
        transport: Transport,
        config: ConnectionConfig | None = None,
        scheduler: Scheduler | None = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.transport = transport
        self.config = config or ConnectionConfig()
        self._scheduler = scheduler
        self._clock = clock
        self._state = StreamState.IDLE
        self._url: str | None = None
        self._transport_open = False
        self._retry_count = 0
        self._listeners: dict[str, list[Listener]] = {}
        self._accumulated = ""
        self._heartbeat_handle: TimerHandle | None = None
        self._reconnect_handle: TimerHandle | None = None
        self._interrupt = InterruptInfo()

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def accumulated_output(self) -> str:
        return self._accumulated

    @property
    def retry_count(self) -> int:
        return self._retry_count

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    @property
    def heartbeat_active(self) -> bool:
        return self._heartbeat_handle is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def connect(self, url: str) -> None:
        if self._state is StreamState.STREAMING:
            self.disconnect()
        self._cancel_reconnect()
        if self._transport_open:
            self.transport.close()
            self._transport_open = False
        self._url = url
        self._retry_count = 0
        self._emit(StreamEventType.CHECKPOINT, "connecting")
        self._open()

    def disconnect(self) -> None:
        """Stop every timer, close the transport and return to idle.

        Safe to call any number of times.
        """
        self._stop_heartbeat()
        self._cancel_reconnect()
        if self._transport_open:
            self.transport.close()
            self._transport_open = False
        self._accumulated = ""
        self._state = StreamState.IDLE

    def _open(self) -> None:
        self._state = StreamState.CONNECTING
        self._transport_open = True
        logger.info(f"Opening stream {self._url}")
        try:
            self.transport.connect(
                self._url, self._on_open, self._on_message, self._on_error,
            )
        except Exception as e:
            self._on_error(e)

    # ------------------------------------------------------------------
    # Transport callbacks
    # ------------------------------------------------------------------

    def _on_open(self) -> None:
        self._state = StreamState.STREAMING
        self._retry_count = 0
        self._start_heartbeat()
        self._emit(StreamEventType.CHECKPOINT, "connected")

    def _on_message(self, data: str) -> None:
        if data == self.config.heartbeat_message:
            self._emit(StreamEventType.HEARTBEAT, "")
            return
        if self.config.done_message is not None and data == self.config.done_message:
            self._complete()
            return
        self._accumulated += data
        self._emit(StreamEventType.CHUNK, data)

    def _on_error(self, error: Exception) -> None:
        self._state = StreamState.ERROR
        self._stop_heartbeat()
        self._emit(StreamEventType.ERROR, str(error) or type(error).__name__)
        if self._state is not StreamState.ERROR:
            # A listener disconnected or reconnected.
            return

        if self._retry_count >= self.config.max_retries:
            logger.error(
                f"Giving up on {self._url} after {self._retry_count} reconnection attempts: {error}"
            )
            return

        self._retry_count += 1
        self._state = StreamState.PAUSED
        delay_ms = self.config.reconnect_interval_ms * self._retry_count
        logger.warning(
            f"Stream error ({error}); reconnect attempt {self._retry_count}/"
            f"{self.config.max_retries} in {delay_ms}ms"
        )
        self._cancel_reconnect()
        self._reconnect_handle = self._get_scheduler().call_later(
            delay_ms / 1000, self._reconnect,
        )

    def _reconnect(self) -> None:
        self._reconnect_handle = None
        if self._transport_open:
            self.transport.close()
            self._transport_open = False
        self._open()

    def _complete(self) -> None:
        self._stop_heartbeat()
        self._cancel_reconnect()
        if self._transport_open:
            self.transport.close()
            self._transport_open = False
        self._state = StreamState.IDLE
        self._emit(StreamEventType.COMPLETE, self._accumulated)

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _get_scheduler(self) -> Scheduler:
        if self._scheduler is None:
            self._scheduler = running_loop_scheduler()
        return self._scheduler

    def _start_heartbeat(self) -> None:
        self._stop_heartbeat()
        self._heartbeat_handle = self._get_scheduler().call_later(
            self.config.heartbeat_interval_ms / 1000, self._heartbeat_tick,
        )

    def _heartbeat_tick(self) -> None:
        self._heartbeat_handle = None
        if self._state is not StreamState.STREAMING:
            return
        self._emit(StreamEventType.HEARTBEAT, "")
        self._start_heartbeat()

    def _stop_heartbeat(self) -> None:
        if self._heartbeat_handle is not None:
            self._heartbeat_handle.cancel()
            self._heartbeat_handle = None

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    # ------------------------------------------------------------------
    # Interrupts
    # ------------------------------------------------------------------

    def record_interrupt(self, reason: str | None = None) -> None:
        self._interrupt = InterruptInfo(
            occurred=True,
            timestamp=self._clock(),
            reason=reason,
            recovery_position=len(self._accumulated),
        )
        self._emit(StreamEventType.CHECKPOINT, "interrupt", checkpoint_id="interrupt")

    def clear_interrupt(self) -> None:
        self._interrupt = InterruptInfo()

    @property
    def interrupt_info(self) -> InterruptInfo:
        return replace(self._interrupt)

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on(self, event_type: StreamEventType | str, callback: Listener) -> None:
        key = _listener_key(event_type)
        listeners = self._listeners.setdefault(key, [])
        if callback not in listeners:
            listeners.append(callback)

    def off(self, event_type: StreamEventType | str, callback: Listener) -> None:
        listeners = self._listeners.get(_listener_key(event_type))
        if listeners and callback in listeners:
            listeners.remove(callback)

    def _emit(
        self, event_type: StreamEventType, data: str,
        checkpoint_id: str | None = None,
    ) -> None:
        event = StreamEvent(
            type=event_type, data=data, timestamp=self._clock(),
            checkpoint_id=checkpoint_id,
        )
        for callback in list(self._listeners.get(event_type.value, ())):
            callback(event)
        for callback in list(self._listeners.get(WILDCARD, ())):
            callback(event)


def _listener_key(event_type: StreamEventType | str) -> str:
    if isinstance(event_type, StreamEventType):
        return event_type.value
    return event_type
