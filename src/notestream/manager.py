"""Orchestration surface over the connection and recovery components."""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterable, AsyncIterator, Callable

from pydantic import BaseModel, Field

from notestream.connection import ConnectionConfig, ConnectionHandler
from notestream.events import StreamState
from notestream.instrumentation import record_error, record_stream_stats, stream_span
from notestream.recovery import RecoveryConfig, RecoveryManager, RecoveryResult, ResumeCallback
from notestream.timing import Scheduler
from notestream.transport import HttpxSSETransport, Transport

logger = logging.getLogger(__name__)

_ENV_PREFIX = "NOTESTREAM_"


def _env_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


class StreamingConfig(BaseModel):
    """Feature switches for :class:`StreamingManager`.

    ``reconnect_attempts`` becomes the connection handler's
    ``max_retries`` when no explicit :class:`ConnectionConfig` is given.
    """

    enable_sse: bool = True
    enable_recovery: bool = True
    reconnect_attempts: int = Field(default=3, ge=0)

    @classmethod
    def from_env(cls) -> "StreamingConfig":
        """Build a config from ``NOTESTREAM_*`` environment variables."""
        overrides = {}
        for name, field in cls.model_fields.items():
            raw = os.getenv(f"{_ENV_PREFIX}{name.upper()}")
            if raw is None:
                continue
            overrides[name] = _env_bool(raw) if field.annotation is bool else int(raw)
        return cls(**overrides)


class StreamingManager:
    """Composes a connection handler, a recovery manager and an output buffer.

    Two separate entry points feed the output buffer: :meth:`stream`
    consumes any async iterable of text and simply ends when it ends,
    while :meth:`connect_to_sse` drives a transport that can fail and
    reconnect.

    Args:
        config: Feature switches.
        transport: Transport for the SSE path; an
            :class:`~notestream.transport.HttpxSSETransport` by default.
        connection_config: Overrides the handler settings derived from
            ``config``.
        recovery_config: Checkpoint recovery settings.
        stream_id_seed: First value of the per-instance stream id counter.
        scheduler: Timer source handed to the connection handler.
    """

    def __init__(
        self,
        config: StreamingConfig | None = None,
        transport: Transport | None = None,
        connection_config: ConnectionConfig | None = None,
        recovery_config: RecoveryConfig | None = None,
        stream_id_seed: int = 0,
        scheduler: Scheduler | None = None,
    ):
        self.config = config or StreamingConfig()
        if connection_config is None:
            connection_config = ConnectionConfig(max_retries=self.config.reconnect_attempts)
        self._connection = ConnectionHandler(
            transport or HttpxSSETransport(), connection_config, scheduler=scheduler,
        )
        self._recovery = RecoveryManager(recovery_config)
        self._output = ""
        self._next_stream_id = stream_id_seed

    def next_stream_id(self) -> str:
        stream_id = f"stream-{self._next_stream_id}"
        self._next_stream_id += 1
        return stream_id

    async def stream(
        self,
        source: AsyncIterable[str],
        on_chunk: Callable[[str], None] | None = None,
    ) -> AsyncIterator[str]:
        """Yield every fragment of *source* unchanged, recording it.

        The output buffer is reset at the start of each call.
        """
        self._output = ""
        chunks = 0
        async with stream_span(self.next_stream_id()) as span:
            try:
                async for fragment in source:
                    self._output += fragment
                    chunks += 1
                    if on_chunk is not None:
                        on_chunk(fragment)
                    yield fragment
            except Exception as e:
                record_error(span, e)
                raise
            finally:
                record_stream_stats(span, chunks, len(self._output))

    def connect_to_sse(self, url: str) -> None:
        if not self.config.enable_sse:
            logger.debug(f"SSE disabled; not connecting to {url}")
            return
        self._connection.connect(url)

    def disconnect_from_sse(self) -> None:
        self._connection.disconnect()

    def create_checkpoint(self, checkpoint_id: str) -> None:
        self._recovery.create_checkpoint(checkpoint_id, len(self._output), self._output)

    async def recover_from_interrupt(
        self, checkpoint_id: str, resume_fn: ResumeCallback,
    ) -> RecoveryResult:
        if not self.config.enable_recovery:
            return RecoveryResult(success=False, error="recovery disabled")
        result = await self._recovery.recover(checkpoint_id, resume_fn)
        if result.success:
            self._output = result.recovered_data
            self._connection.clear_interrupt()
        return result

    @property
    def output_buffer(self) -> str:
        return self._output

    def clear_output_buffer(self) -> None:
        self._output = ""

    @property
    def state(self) -> StreamState:
        return self._connection.state

    @property
    def recovery_manager(self) -> RecoveryManager:
        return self._recovery

    @property
    def connection(self) -> ConnectionHandler:
        return self._connection
