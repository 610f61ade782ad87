"""Crew tracker: wires feed, store and state together for one crew session."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Callable
from datetime import datetime, timedelta
from typing import Any

from crewmap.config import CrewMapConfig
from crewmap.exceptions import AuthError, CrewMapError, FeedDisconnected, StoreError
from crewmap.feed import PositionFeed
from crewmap.models.crew import Member
from crewmap.models.position import Position
from crewmap.models.trail import TrailPoint
from crewmap.session import CrewSession
from crewmap.state.directory import DirectoryCache
from crewmap.state.events import EventKind, FeedSource, TrackerEvent
from crewmap.state.policy import local_now
from crewmap.state.reconciler import PositionReconciler
from crewmap.state.trails import TrailStoreSync
from crewmap.store.base import DirectoryStore
from crewmap.store.supabase import SupabaseStore
from crewmap.view import Marker, Polyline, current_markers, focus_point, trail_collection, trail_geometry, trail_opacity

_logger = logging.getLogger(__name__)

StateListener = Callable[["CrewTracker"], None]


class CrewTracker:
    """Keeps the live crew map for one :class:`CrewSession`.

    All feed batches, roster changes and external trail points are queued
    and handled one at a time by a single consumer task, in arrival order.

    Usage::

        async with CrewTracker(config, session, feed=feed, store=store) as tracker:
            tracker.add_listener(lambda t: render(t.markers()))
            ...
    """

    def __init__(
        self,
        config: CrewMapConfig,
        session: CrewSession,
        *,
        feed: PositionFeed,
        store: DirectoryStore,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        self._config = config
        self._session = session
        self._feed = feed
        self._clock = clock
        self.directory = DirectoryCache(store)
        self.trails = TrailStoreSync(store, clock=clock)
        self.reconciler = PositionReconciler(
            self.directory,
            self.trails,
            session.crew_id,
            unresolved_capacity=config.unresolved_capacity,
            on_trail_written=self._on_trail_written,
        )
        self._queue: asyncio.Queue[TrackerEvent] = asyncio.Queue()
        self._consumer: asyncio.Task[None] | None = None
        self._listeners: list[StateListener] = []
        self._feed_connected = False
        self._feed_error: CrewMapError | None = None
        self._started = False

    async def __aenter__(self) -> CrewTracker:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def session(self) -> CrewSession:
        return self._session

    @property
    def feed_connected(self) -> bool:
        """``False`` once authentication failed or the push channel gave up."""
        return self._feed_connected

    @property
    def feed_error(self) -> CrewMapError | None:
        return self._feed_error

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Load roster and trails, subscribe to changes and start the feed.

        Store and feed failures are logged; the tracker keeps running with
        whatever state it could load.
        """
        if self._started:
            return
        self._started = True
        crew_id = self._session.crew_id
        self._consumer = asyncio.get_running_loop().create_task(self._consume(), name="crewmap-tracker")

        try:
            await self.directory.refresh(crew_id)
        except StoreError as exc:
            _logger.warning("Initial roster load failed: %s", exc)
        await self.trails.load_today(crew_id)

        try:
            await self.directory.on_change(crew_id, self._on_roster)
            await self.trails.on_new_point(crew_id, self._on_trail_point)
        except CrewMapError as exc:
            _logger.warning("Store notifications unavailable: %s", exc)

        await self._start_feed()
        self._notify()

    async def _start_feed(self) -> None:
        try:
            await self._feed.authenticate()
        except AuthError as exc:
            _logger.error("Position feed login failed: %s", exc)
            self._feed_error = exc
            self._feed_connected = False
            return
        self._feed_connected = True
        device_ids = [member.device_id for member in self.directory.members] or None
        positions = await self._feed.fetch_positions(device_ids)
        if positions:
            self._queue.put_nowait(TrackerEvent.feed_batch(positions, FeedSource.POLL))
        self._feed.stream_positions(self._on_positions, on_disconnected=self._on_feed_disconnected)

    async def stop(self) -> None:
        """Stop the feed, drop subscriptions and wait for trail writes. Idempotent."""
        if not self._started:
            return
        self._started = False
        await self._feed.stop()
        await self.directory.close()
        await self.trails.close()
        consumer = self._consumer
        self._consumer = None
        if consumer is not None:
            consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await consumer
        await self.reconciler.drain()
        self._feed_connected = False

    async def settle(self) -> None:
        """Wait until queued events are applied and their trail writes finished."""
        # A finished write queues an event of its own, so loop until both are idle.
        while True:
            await self._queue.join()
            await self.reconciler.drain()
            if self._queue.empty() and not self.reconciler.pending_writes:
                return

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Call *listener* after every state change. Returns a remover."""
        self._listeners.append(listener)

        def _remove() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _remove

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                _logger.warning("State listener failed", exc_info=True)

    # ------------------------------------------------------------------
    # Event intake
    # ------------------------------------------------------------------

    def _on_positions(self, positions: list[Position]) -> None:
        self._queue.put_nowait(TrackerEvent.feed_batch(positions, FeedSource.PUSH))

    def _on_roster(self, members: list[Member]) -> None:
        self._queue.put_nowait(TrackerEvent.roster_changed(members))

    def _on_trail_point(self, point: TrailPoint) -> None:
        self._queue.put_nowait(TrackerEvent.trail_point(point))

    def _on_trail_written(self, point: TrailPoint) -> None:
        self._queue.put_nowait(TrackerEvent.trail_written(point))

    def _on_feed_disconnected(self, error: FeedDisconnected) -> None:
        _logger.error("Live positions unavailable: %s", error)
        self._feed_error = error
        self._feed_connected = False
        self._notify()

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                changed = self._apply(event)
            except Exception:
                _logger.exception("Failed to apply %s event", event.kind)
                changed = False
            finally:
                self._queue.task_done()
            if changed:
                self._notify()

    def _apply(self, event: TrackerEvent) -> bool:
        if event.kind == EventKind.FEED_BATCH:
            return bool(self.reconciler.on_feed_batch(event.positions))
        if event.kind == EventKind.ROSTER_CHANGED:
            self.reconciler.on_roster_change(event.members)
            # Marker labels and colors may have changed even without promotions.
            return True
        if event.kind == EventKind.TRAIL_POINT and event.point is not None:
            return self.reconciler.on_external_trail_point(event.point)
        if event.kind == EventKind.TRAIL_WRITTEN:
            # Already merged by the write itself; listeners still need to hear about it.
            return True
        return False

    # ------------------------------------------------------------------
    # View
    # ------------------------------------------------------------------

    def markers(self) -> list[Marker]:
        return current_markers(self.reconciler.live_positions(), self.directory.members)

    def trail_geometry(self, member_id: str) -> Polyline | None:
        return trail_geometry(self.trails.points(member_id), member_id)

    def trail_opacity(self, point: TrailPoint) -> float:
        return trail_opacity(
            point.timestamp,
            self._clock(),
            max_age=timedelta(seconds=self._config.trail_max_age),
            floor=self._config.trail_min_opacity,
        )

    def trails_geojson(self) -> dict[str, Any]:
        return trail_collection(self.trails.snapshot(), self.directory.members)

    def focus_point(self) -> tuple[float, float] | None:
        return focus_point(self.markers())


@contextlib.asynccontextmanager
async def open_tracker(config: CrewMapConfig, session: CrewSession) -> AsyncIterator[CrewTracker]:
    """Build the feed, store and tracker for *session* and tear them down on exit."""
    config.require_feed()
    config.require_store()
    async with contextlib.AsyncExitStack() as stack:
        feed = await stack.enter_async_context(PositionFeed(config))
        store = await stack.enter_async_context(SupabaseStore(config))
        tracker = await stack.enter_async_context(CrewTracker(config, session, feed=feed, store=store))
        yield tracker
