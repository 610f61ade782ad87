"""Per-member trails for the current day, kept in sync with the store."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime

from pydantic import ValidationError

from crewmap.exceptions import StoreError
from crewmap.models.trail import TrailPoint
from crewmap.state.policy import day_bucket, local_now
from crewmap.store.base import TRAILS_TABLE, ChangeEvent, ChangeType, DirectoryStore, Subscription

_logger = logging.getLogger(__name__)

TrailPointCallback = Callable[[TrailPoint], None]


class TrailStoreSync:
    """Holds today's trail points per member and persists new ones.

    Parameters
    ----------
    store : DirectoryStore
        Backing store for trail rows.
    clock : callable, optional
        Returns the current local time. Determines the day bucket; when the
        bucket changes the in-memory trails start over empty.
    """

    def __init__(self, store: DirectoryStore, *, clock: Callable[[], datetime] = local_now) -> None:
        self._store = store
        self._clock = clock
        self._bucket: date | None = None
        self._trails: dict[str, list[TrailPoint]] = {}
        self._known_ids: set[str] = set()
        self._subscriptions: list[Subscription] = []

    def current_bucket(self) -> date:
        return day_bucket(self._clock())

    def _roll_if_needed(self) -> date:
        today = self.current_bucket()
        if self._bucket != today:
            if self._bucket is not None:
                _logger.info("Day changed %s -> %s, starting new trails", self._bucket, today)
            self._bucket = today
            self._trails = {}
            self._known_ids = set()
        return today

    async def load_today(self, crew_id: str) -> dict[str, list[TrailPoint]]:
        """Load today's points for *crew_id*, grouped by member and ordered by time.

        A store failure is logged and yields an empty mapping.
        """
        today = self.current_bucket()
        try:
            points = await self._store.fetch_trail_points(crew_id, today)
        except StoreError as exc:
            _logger.warning("Loading trails for %s failed: %s", today, exc)
            points = []

        grouped: dict[str, list[TrailPoint]] = {}
        known: set[str] = set()
        for point in points:
            if point.day_bucket != today or point.crew_id != crew_id:
                continue
            grouped.setdefault(point.member_id, []).append(point)
            if point.id is not None:
                known.add(point.id)
        for member_points in grouped.values():
            member_points.sort(key=lambda p: p.timestamp)

        self._bucket = today
        self._trails = grouped
        self._known_ids = known
        _logger.debug("Loaded %d trail points for %d members", len(known), len(grouped))
        return self.snapshot()

    async def append(self, crew_id: str, member_id: str, point: TrailPoint) -> TrailPoint | None:
        """Persist *point* and add it to the member's trail.

        Returns the stored point, or ``None`` when the write failed. Failures
        are logged; the live map is unaffected either way.
        """
        point = point.model_copy(update={"crew_id": crew_id, "member_id": member_id})
        try:
            stored = await self._store.insert_trail_point(point)
        except StoreError as exc:
            _logger.warning("Trail point for member %s not saved: %s", member_id, exc)
            return None
        self._remember(stored)
        return stored

    def merge_external(self, point: TrailPoint) -> bool:
        """Add a point written by another client. Returns ``True`` when it was new."""
        return self._remember(point)

    def _remember(self, point: TrailPoint) -> bool:
        today = self._roll_if_needed()
        if point.day_bucket != today:
            return False
        if point.id is not None:
            if point.id in self._known_ids:
                return False
            self._known_ids.add(point.id)
        self._trails.setdefault(point.member_id, []).append(point)
        return True

    async def on_new_point(self, crew_id: str, callback: TrailPointCallback) -> Subscription:
        """Forward trail inserts for *crew_id* from the store to *callback*."""

        def _handle(change: ChangeEvent) -> None:
            if change.type != ChangeType.INSERT:
                return
            try:
                point = TrailPoint.model_validate(change.record)
            except ValidationError:
                _logger.debug("Ignoring malformed trail notification", exc_info=True)
                return
            callback(point)

        subscription = await self._store.subscribe(TRAILS_TABLE, crew_id, _handle, event="INSERT")
        self._subscriptions.append(subscription)
        return subscription

    def points(self, member_id: str) -> list[TrailPoint]:
        self._roll_if_needed()
        return list(self._trails.get(member_id, ()))

    def snapshot(self) -> dict[str, list[TrailPoint]]:
        self._roll_if_needed()
        return {member_id: list(points) for member_id, points in self._trails.items()}

    async def close(self) -> None:
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            try:
                await subscription.unsubscribe()
            except Exception:
                _logger.debug("Unsubscribe failed", exc_info=True)
