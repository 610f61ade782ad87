from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from types import SimpleNamespace
from typing import Any

import aiohttp
import pytest

from crewmap._socket import SocketRuntime, backoff_delay
from crewmap.config import CrewMapConfig
from crewmap.exceptions import FeedDisconnected
from crewmap.feed import PositionFeed
from crewmap.models import Position


def _text(payload: Any) -> SimpleNamespace:
    return SimpleNamespace(type=aiohttp.WSMsgType.TEXT, data=json.dumps(payload))


class _FakeChannel:
    """Replays a fixed list of websocket messages, then closes."""

    def __init__(self, messages: list[Any]) -> None:
        self._messages = messages
        self.sent: list[Any] = []
        self.closed = False

    def __aiter__(self) -> AsyncIterator[Any]:
        return self._iter()

    async def _iter(self) -> AsyncIterator[Any]:
        for msg in self._messages:
            await asyncio.sleep(0)
            yield msg

    async def close(self) -> None:
        self.closed = True

    async def send_json(self, data: Any) -> None:
        self.sent.append(data)


class _RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


def test_backoff_delay_doubles_and_caps() -> None:
    assert [backoff_delay(n, 1.0, 30.0) for n in range(1, 8)] == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0]
    assert backoff_delay(0, 1.0, 30.0) == 0.0


@pytest.mark.asyncio
async def test_runtime_gives_up_after_max_attempts() -> None:
    sleep = _RecordingSleep()
    disconnected: list[FeedDisconnected] = []
    done = asyncio.Event()
    connects = 0

    async def _connect() -> _FakeChannel:
        nonlocal connects
        connects += 1
        raise aiohttp.ClientConnectionError("refused")

    def _on_disconnected(error: FeedDisconnected) -> None:
        disconnected.append(error)
        done.set()

    runtime = SocketRuntime(
        connect=_connect,
        on_message=lambda _: None,
        on_disconnected=_on_disconnected,
        max_attempts=5,
        sleep=sleep,
    )
    runtime.start()
    await asyncio.wait_for(done.wait(), 1.0)

    assert sleep.delays == [1.0, 2.0, 4.0, 8.0, 16.0]
    assert connects == 6
    assert disconnected[0].attempts == 5
    assert not runtime.is_running


@pytest.mark.asyncio
async def test_successful_connect_resets_attempts() -> None:
    sleep = _RecordingSleep()
    done = asyncio.Event()
    plan: list[Any] = [
        OSError("down"),
        OSError("down"),
        _FakeChannel([]),
        OSError("down"),
    ]

    async def _connect() -> _FakeChannel:
        result = plan.pop(0) if plan else OSError("down")
        if isinstance(result, Exception):
            raise result
        return result

    runtime = SocketRuntime(
        connect=_connect,
        on_message=lambda _: None,
        on_disconnected=lambda _: done.set(),
        max_attempts=3,
        sleep=sleep,
    )
    runtime.start()
    await asyncio.wait_for(done.wait(), 1.0)

    # Two failures, a connection that closes, then a fresh budget of three.
    assert sleep.delays == [1.0, 2.0, 1.0, 2.0, 4.0]


@pytest.mark.asyncio
async def test_runtime_skips_non_json_and_survives_callback_errors() -> None:
    received: list[Any] = []
    closed = asyncio.Event()
    channel = _FakeChannel(
        [
            SimpleNamespace(type=aiohttp.WSMsgType.TEXT, data="not json"),
            _text({"n": 1}),
            _text({"n": 2}),
            SimpleNamespace(type=aiohttp.WSMsgType.CLOSE, data=None),
            _text({"n": 3}),
        ]
    )

    def _on_message(payload: Any) -> None:
        if payload["n"] == 1:
            raise RuntimeError("listener bug")
        received.append(payload)

    async def _connect() -> _FakeChannel:
        return channel

    async def _sleep(_: float) -> None:
        closed.set()
        await asyncio.Event().wait()

    runtime = SocketRuntime(connect=_connect, on_message=_on_message, sleep=_sleep)
    runtime.start()
    await asyncio.wait_for(closed.wait(), 1.0)
    await runtime.stop()

    assert received == [{"n": 2}]
    assert channel.closed
    assert not runtime.is_running


@pytest.mark.asyncio
async def test_feed_stream_forwards_position_batches() -> None:
    batches: list[list[Position]] = []
    got_batch = asyncio.Event()
    channel = _FakeChannel(
        [
            _text({"devices": [{"id": 12, "status": "online"}]}),
            _text({"positions": [{"deviceId": 12, "latitude": 1.0, "longitude": 2.0, "fixTime": "2026-03-01T10:00:00Z"}]}),
        ]
    )

    async def _connect() -> _FakeChannel:
        return channel

    async def _sleep(_: float) -> None:
        await asyncio.Event().wait()

    def _on_positions(batch: list[Position]) -> None:
        batches.append(batch)
        got_batch.set()

    feed = PositionFeed(CrewMapConfig(traccar_server="https://track.example.com"), connector=_connect, sleep=_sleep)
    feed.stream_positions(_on_positions)
    assert feed.is_streaming
    await asyncio.wait_for(got_batch.wait(), 1.0)
    await feed.stop()

    assert len(batches) == 1
    assert batches[0][0].device_id == "12"
    assert not feed.is_streaming
