"""High-level async client for the Traccar position feed."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import aiohttp

from crewmap._api import devices as _devices_api
from crewmap._api import positions as _positions_api
from crewmap._api.session import open_session
from crewmap._socket import Connector, PushChannel, SocketRuntime
from crewmap._transport import TraccarTransport, Transport
from crewmap.config import CrewMapConfig
from crewmap.exceptions import (
    CrewMapError,
    DeviceRegistrationError,
    FeedDisconnected,
    FeedFetchError,
    TransportError,
)
from crewmap.ingestion.positions import positions_from_message
from crewmap.models.credentials import Credentials
from crewmap.models.device import Device
from crewmap.models.position import Position

_logger = logging.getLogger(__name__)

PositionsCallback = Callable[[list[Position]], None]
DisconnectedCallback = Callable[[FeedDisconnected], None]


class PositionFeed:
    """Async client for the position feed provider.

    Owns the HTTP session (unless one is injected), the REST transport and
    at most one push channel. Constructed per crew session and torn down with
    it; there is no shared module-level instance.

    Usage::

        async with PositionFeed(config) as feed:
            await feed.authenticate()
            positions = await feed.fetch_positions()
            feed.stream_positions(on_positions)
    """

    def __init__(
        self,
        config: CrewMapConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        connector: Connector | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._transport: Transport | None = transport
        self._connector = connector
        self._sleep = sleep
        self._credentials: Credentials | None = None
        self._runtime: SocketRuntime | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> PositionFeed:
        if self._transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._transport = TraccarTransport(self._config, self._http_session)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._transport = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise CrewMapError("Feed not initialized. Use 'async with PositionFeed(...) as feed:'")
        return self._transport

    async def _open_socket(self) -> PushChannel:
        if self._http_session is None:
            raise CrewMapError("Feed has no HTTP session for the push channel")
        headers: dict[str, str] = {}
        cookie = getattr(self._transport, "cookie_header", "")
        if cookie:
            headers["Cookie"] = cookie
        return await self._http_session.ws_connect(
            self._config.traccar_socket_url,
            headers=headers,
            heartbeat=30.0,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def credentials(self) -> Credentials | None:
        return self._credentials

    @property
    def is_streaming(self) -> bool:
        """Whether the push channel is connected or reconnecting."""
        return self._runtime is not None and self._runtime.is_running

    async def authenticate(self) -> Credentials:
        """Exchange the configured account credentials for a feed session.

        Raises
        ------
        AuthError
            The provider rejected the credentials. Not retried here.
        """
        transport = self._require_transport()
        credentials = await open_session(transport, self._config.traccar_email, self._config.traccar_password)
        self._credentials = credentials
        _logger.info("Position feed session opened for user_id=%s", credentials.user_id)
        return credentials

    async def register_device(self, name: str, unique_id: str) -> Device:
        """Return the device for *unique_id*, creating it when missing.

        Looks the device up first and never creates a duplicate. When the
        create call loses a race with another client (duplicate key), the
        now-existing device is fetched and returned.

        Raises
        ------
        AuthError
            The fresh session required for registration could not be opened.
        DeviceRegistrationError
            Both the create call and the recovery lookup failed.
        """
        unique_id = unique_id.strip()
        name = name.strip()
        transport = self._require_transport()
        await self.authenticate()

        try:
            existing = await _devices_api.find_device(transport, unique_id)
        except TransportError as exc:
            _logger.warning("Device lookup failed for uniqueId=%s: %s", unique_id, exc)
            existing = None
        if existing is not None:
            _logger.info("Using existing device id=%s uniqueId=%s", existing.id, existing.unique_id)
            return existing

        try:
            device = await _devices_api.create_device(transport, name, unique_id)
        except TransportError as exc:
            if _devices_api.is_duplicate_error(exc):
                _logger.info("Device uniqueId=%s created concurrently; re-querying", unique_id)
                try:
                    recovered = await _devices_api.find_device(transport, unique_id)
                except TransportError as lookup_exc:
                    raise DeviceRegistrationError(
                        f"Failed to create device and recovery lookup failed: {lookup_exc}",
                        unique_id=unique_id,
                    ) from lookup_exc
                if recovered is not None:
                    return recovered
            raise DeviceRegistrationError(f"Failed to create device: {exc}", unique_id=unique_id) from exc

        _logger.info("Created device id=%s uniqueId=%s", device.id, device.unique_id)
        return device

    async def fetch_positions(self, device_ids: Sequence[str] | None = None) -> list[Position]:
        """One-shot poll of current positions.

        Returns an empty list on failure so previously known state keeps
        rendering.
        """
        transport = self._require_transport()
        try:
            return await _positions_api.fetch_positions(transport, device_ids)
        except FeedFetchError as exc:
            _logger.warning("%s", exc)
            return []

    def stream_positions(
        self,
        on_positions: PositionsCallback,
        *,
        on_disconnected: DisconnectedCallback | None = None,
    ) -> None:
        """Open the push channel and forward every position batch to *on_positions*.

        Reconnects with backoff on closure; when the reconnect budget is
        exhausted *on_disconnected* receives a :class:`FeedDisconnected`.
        Must be called from a running event loop. No-op if already streaming.
        """
        if self.is_streaming:
            return

        def _on_message(payload: Any) -> None:
            batch = positions_from_message(payload)
            if batch is None:
                return
            _logger.debug("Push batch with %d positions", len(batch))
            on_positions(batch)

        self._runtime = SocketRuntime(
            connect=self._connector or self._open_socket,
            on_message=_on_message,
            on_disconnected=on_disconnected,
            initial_delay=self._config.reconnect_initial_delay,
            max_delay=self._config.reconnect_max_delay,
            max_attempts=self._config.reconnect_max_attempts,
            sleep=self._sleep,
            logger=_logger,
        )
        self._runtime.start()

    async def stop(self) -> None:
        """Close the push channel and drop pending callbacks. Idempotent."""
        runtime = self._runtime
        self._runtime = None
        if runtime is not None:
            await runtime.stop()
