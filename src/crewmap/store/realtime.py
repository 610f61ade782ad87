"""Supabase Realtime change notifications.

Speaks the Phoenix channel protocol over one websocket:

* ``phx_join`` per subscription with a ``postgres_changes`` filter
  (table + ``crew_id=eq.<id>``),
* ``heartbeat`` on the ``phoenix`` topic at a fixed interval,
* ``postgres_changes`` messages carrying the changed row,
* ``phx_leave`` on unsubscribe.

Connection, reading and reconnect backoff are handled by
:class:`crewmap._socket.SocketRuntime`; every (re)connect rejoins all live
subscriptions.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import aiohttp
from pydantic import ValidationError

from crewmap._socket import Connector, PushChannel, SocketRuntime
from crewmap.config import CrewMapConfig
from crewmap.exceptions import FeedDisconnected
from crewmap.store.base import ChangeCallback, ChangeEvent

_logger = logging.getLogger(__name__)


def realtime_url(config: CrewMapConfig) -> str:
    base = config.supabase_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://") :]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://") :]
    return f"{base}/realtime/v1/websocket?apikey={config.supabase_key}&vsn=1.0.0"


def parse_change(payload: Any) -> ChangeEvent | None:
    """Extract the changed row from a ``postgres_changes`` payload."""
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if not isinstance(data, dict):
        return None
    try:
        return ChangeEvent(
            table=str(data.get("table") or ""),
            type=data.get("type") or data.get("eventType"),
            record=data.get("record") or {},
            old_record=data.get("old_record") or {},
        )
    except ValidationError:
        _logger.debug("Unparseable change payload", exc_info=True)
        return None


class RealtimeSubscription:
    """Handle for one joined channel."""

    def __init__(
        self,
        client: RealtimeClient,
        topic: str,
        join_payload: dict[str, Any],
        callback: ChangeCallback,
    ) -> None:
        self._client = client
        self.topic = topic
        self.join_payload = join_payload
        self.callback = callback

    async def unsubscribe(self) -> None:
        await self._client.leave(self)


class RealtimeClient:
    """One websocket multiplexing all change subscriptions of a crew session."""

    def __init__(
        self,
        config: CrewMapConfig,
        http_session: aiohttp.ClientSession,
        *,
        connector: Connector | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._http = http_session
        self._connector = connector
        self._sleep = sleep
        self._refs = itertools.count(1)
        self._subscriptions: dict[str, RealtimeSubscription] = {}
        self._runtime: SocketRuntime | None = None
        self._heartbeat_task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._runtime is not None and self._runtime.is_running

    def _next_ref(self) -> str:
        return str(next(self._refs))

    def _join_message(self, sub: RealtimeSubscription) -> dict[str, Any]:
        ref = self._next_ref()
        return {
            "topic": sub.topic,
            "event": "phx_join",
            "payload": sub.join_payload,
            "ref": ref,
            "join_ref": ref,
        }

    async def _connect(self) -> PushChannel:
        channel: PushChannel
        if self._connector is not None:
            channel = await self._connector()
        else:
            channel = await self._http.ws_connect(realtime_url(self._config))
        # Subscriptions added while joins are in flight are picked up too.
        joined: set[str] = set()
        try:
            while True:
                pending = [sub for topic, sub in self._subscriptions.items() if topic not in joined]
                if not pending:
                    return channel
                for sub in pending:
                    await channel.send_json(self._join_message(sub))
                    joined.add(sub.topic)
        except BaseException:
            with contextlib.suppress(Exception):
                await channel.close()
            raise

    def _ensure_running(self) -> None:
        if self.is_running:
            return
        self._runtime = SocketRuntime(
            connect=self._connect,
            on_message=self._on_message,
            on_disconnected=self._on_disconnected,
            initial_delay=self._config.reconnect_initial_delay,
            max_delay=self._config.reconnect_max_delay,
            max_attempts=self._config.reconnect_max_attempts,
            sleep=self._sleep,
            logger=_logger,
        )
        self._runtime.start()
        if self._heartbeat_task is None or self._heartbeat_task.done():
            self._heartbeat_task = asyncio.get_running_loop().create_task(
                self._heartbeat(), name="crewmap-realtime-heartbeat"
            )

    async def _heartbeat(self) -> None:
        while True:
            await self._sleep(self._config.realtime_heartbeat)
            runtime = self._runtime
            if runtime is None or not runtime.is_running:
                return
            await runtime.send_json({"topic": "phoenix", "event": "heartbeat", "payload": {}, "ref": self._next_ref()})

    def _on_message(self, message: Any) -> None:
        if not isinstance(message, dict):
            return
        event = message.get("event")
        topic = message.get("topic")
        if event == "phx_reply":
            status = (message.get("payload") or {}).get("status")
            if status not in (None, "ok"):
                _logger.warning("Realtime reply status=%s topic=%s", status, topic)
            return
        if event != "postgres_changes":
            return
        sub = self._subscriptions.get(str(topic))
        if sub is None:
            return
        change = parse_change(message.get("payload"))
        if change is None:
            return
        sub.callback(change)

    def _on_disconnected(self, error: FeedDisconnected) -> None:
        _logger.warning("Store notifications stopped: %s", error)

    async def subscribe(
        self,
        table: str,
        crew_id: str,
        callback: ChangeCallback,
        *,
        event: str = "*",
    ) -> RealtimeSubscription:
        """Join a channel for *table* rows of *crew_id*."""
        topic = f"realtime:crewmap:{table}:{crew_id}:{self._next_ref()}"
        join_payload = {
            "config": {
                "broadcast": {"self": False},
                "presence": {"key": ""},
                "postgres_changes": [
                    {"event": event, "schema": "public", "table": table, "filter": f"crew_id=eq.{crew_id}"}
                ],
            },
            "access_token": self._config.supabase_key,
        }
        sub = RealtimeSubscription(self, topic, join_payload, callback)
        self._subscriptions[topic] = sub
        if self.is_running and self._runtime is not None:
            await self._runtime.send_json(self._join_message(sub))
        else:
            self._ensure_running()
        _logger.debug("Subscribed to %s changes for crew_id=%s", table, crew_id)
        return sub

    async def leave(self, sub: RealtimeSubscription) -> None:
        if self._subscriptions.pop(sub.topic, None) is None:
            return
        runtime = self._runtime
        if runtime is not None:
            await runtime.send_json({"topic": sub.topic, "event": "phx_leave", "payload": {}, "ref": self._next_ref()})
        if not self._subscriptions:
            await self.close()

    async def close(self) -> None:
        """Drop all subscriptions and close the socket. Idempotent."""
        self._subscriptions.clear()
        task = self._heartbeat_task
        self._heartbeat_task = None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        runtime = self._runtime
        self._runtime = None
        if runtime is not None:
            await runtime.stop()
