"""Transport abstraction consumed by the connection handler.

Any duplex or server-push channel fits as long as it exposes
``connect(url, on_open, on_message, on_error)`` and ``close()``.
:class:`HttpxSSETransport` is the bundled implementation for HTTP
Server-Sent Events.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from typing import Protocol

import httpx
from httpx_sse import aconnect_sse

from notestream.errors import TransportError

logger = logging.getLogger(__name__)

_CONNECT_TIMEOUT = 10.0
_READ_TIMEOUT = 300.0


class Transport(Protocol):
    def connect(
        self,
        url: str,
        on_open: Callable[[], None],
        on_message: Callable[[str], None],
        on_error: Callable[[Exception], None],
    ) -> None: ...

    def close(self) -> None: ...


class HttpxSSETransport:
    """Server-Sent Events over ``httpx``.

    ``connect()`` returns immediately; the stream is read by a task on the
    running loop which reports back through the callbacks.  The server
    ending the stream counts as an error, matching browser EventSource
    semantics, so the owner decides whether to reconnect.

    Args:
        headers: Extra request headers (e.g. ``Authorization``).
        read_timeout: Seconds without data before the stream is treated
            as failed.
        client: Pre-built ``httpx.AsyncClient``; the transport does not
            close a client it did not create.
    """

    def __init__(
        self,
        headers: Mapping[str, str] | None = None,
        read_timeout: float = _READ_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        self.headers = dict(headers or {})
        self.read_timeout = read_timeout
        self._client = client
        self._task: asyncio.Task | None = None
        self._closed = True

    @property
    def is_open(self) -> bool:
        return not self._closed

    def connect(self, url, on_open, on_message, on_error) -> None:
        self.close()
        self._closed = False
        self._task = asyncio.get_running_loop().create_task(
            self._run(url, on_open, on_message, on_error)
        )

    def close(self) -> None:
        self._closed = True
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self, url, on_open, on_message, on_error) -> None:
        try:
            if self._client is not None:
                await self._consume(self._client, url, on_open, on_message)
            else:
                async with httpx.AsyncClient(
                    timeout=httpx.Timeout(self.read_timeout, connect=_CONNECT_TIMEOUT),
                ) as client:
                    await self._consume(client, url, on_open, on_message)
            error = TransportError("Stream closed by server", url=url)
        except asyncio.CancelledError:
            raise
        except httpx.HTTPStatusError as e:
            error = TransportError(f"HTTP {e.response.status_code}: {e}", url=url)
        except httpx.TimeoutException as e:
            error = TransportError(f"Stream timeout after {self.read_timeout}s: {e}", url=url)
        except httpx.HTTPError as e:
            error = TransportError(f"Transport failure: {e}", url=url)

        if not self._closed:
            logger.warning(f"SSE transport error for {url}: {error}")
            on_error(error)

    async def _consume(self, client, url, on_open, on_message) -> None:
        async with aconnect_sse(
            client, "GET", url, headers=dict(self.headers),
        ) as event_source:
            event_source.response.raise_for_status()
            on_open()
            async for sse in event_source.aiter_sse():
                if self._closed:
                    return
                on_message(sse.data)
