"""JSON websocket runtime shared by the feed push channel and store notifications.

The runtime owns exactly one websocket at a time, reads JSON messages from
it and hands each decoded message to a callback on the event loop. When the
socket closes or cannot be opened it reconnects with exponential backoff and
gives up after a fixed number of attempts, reporting
:class:`crewmap.exceptions.FeedDisconnected` instead of raising.

The socket itself is produced by an injected ``connect`` coroutine so tests
can drive the runtime without a network.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Protocol

import aiohttp

from crewmap.exceptions import FeedDisconnected

_logger = logging.getLogger(__name__)


class PushChannel(Protocol):
    """The subset of :class:`aiohttp.ClientWebSocketResponse` the runtime uses."""

    def __aiter__(self) -> AsyncIterator[Any]: ...

    async def close(self) -> Any: ...

    async def send_json(self, data: Any) -> None: ...


Connector = Callable[[], Awaitable[PushChannel]]


def backoff_delay(attempt: int, initial: float, cap: float) -> float:
    """Delay before reconnect *attempt* (1-based): ``initial * 2**(attempt-1)``, capped."""
    if attempt < 1:
        return 0.0
    return float(min(initial * (2 ** (attempt - 1)), cap))


class SocketRuntime:
    """Websocket reader with reconnect backoff that emits decoded JSON messages."""

    def __init__(
        self,
        *,
        connect: Connector,
        on_message: Callable[[Any], None],
        on_disconnected: Callable[[FeedDisconnected], None] | None = None,
        initial_delay: float = 1.0,
        max_delay: float = 30.0,
        max_attempts: int = 5,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self._connect = connect
        self._on_message = on_message
        self._on_disconnected = on_disconnected
        self._initial_delay = initial_delay
        self._max_delay = max_delay
        self._max_attempts = max_attempts
        self._sleep = sleep
        self._logger = logger or _logger
        self._task: asyncio.Task[None] | None = None
        self._channel: PushChannel | None = None
        self._running = False
        self._connected = False

    @property
    def is_running(self) -> bool:
        """Whether the runtime is connected or trying to reconnect."""
        return self._running

    @property
    def is_connected(self) -> bool:
        """Whether a socket is currently open."""
        return self._connected

    async def send_json(self, payload: Any) -> bool:
        """Send *payload* on the open socket. Returns ``False`` when disconnected."""
        channel = self._channel
        if channel is None:
            return False
        try:
            await channel.send_json(payload)
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as exc:
            self._logger.debug("Socket send failed: %s", exc)
            return False
        return True

    def start(self) -> None:
        """Start the reader task. No-op if already running."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.get_running_loop().create_task(self._run(), name="crewmap-socket")

    async def stop(self) -> None:
        """Close the socket and stop reconnecting. Idempotent."""
        self._running = False
        channel = self._channel
        self._channel = None
        if channel is not None:
            with contextlib.suppress(Exception):
                await channel.close()

        task = self._task
        self._task = None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        self._logger.debug("Socket runtime stopped")

    async def _run(self) -> None:
        attempts = 0
        while self._running:
            channel: PushChannel | None = None
            try:
                channel = await self._connect()
            except (aiohttp.ClientError, OSError, TimeoutError) as exc:
                self._logger.warning("Socket connect failed: %s", exc)

            if channel is not None:
                attempts = 0
                self._channel = channel
                self._connected = True
                self._logger.info("Socket connected")
                try:
                    await self._read(channel)
                finally:
                    self._connected = False
                    self._channel = None
                    with contextlib.suppress(Exception):
                        await channel.close()
                if not self._running:
                    return
                self._logger.info("Socket closed")

            attempts += 1
            if attempts > self._max_attempts:
                self._give_up(attempts - 1)
                return

            delay = backoff_delay(attempts, self._initial_delay, self._max_delay)
            self._logger.info("Reconnecting socket in %.1fs (attempt %d/%d)", delay, attempts, self._max_attempts)
            await self._sleep(delay)

    async def _read(self, channel: PushChannel) -> None:
        async for msg in channel:
            if not self._running:
                return
            msg_type = getattr(msg, "type", None)
            if msg_type == aiohttp.WSMsgType.TEXT:
                self._handle_text(msg.data)
            elif msg_type == aiohttp.WSMsgType.ERROR:
                self._logger.warning("Socket error: %s", getattr(channel, "exception", lambda: None)())
                return
            elif msg_type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED):
                return

    def _handle_text(self, data: Any) -> None:
        try:
            payload = json.loads(data)
        except (TypeError, ValueError):
            self._logger.debug("Socket message is not JSON: %r", str(data)[:64])
            return
        if not self._running:
            return
        try:
            self._on_message(payload)
        except Exception:
            self._logger.warning("Socket message callback failed", exc_info=True)

    def _give_up(self, attempts: int) -> None:
        self._running = False
        self._task = None
        error = FeedDisconnected(
            f"Socket abandoned after {attempts} reconnect attempts",
            attempts=attempts,
        )
        self._logger.error("%s", error)
        if self._on_disconnected is None:
            return
        try:
            self._on_disconnected(error)
        except Exception:
            self._logger.warning("Disconnected callback failed", exc_info=True)
