"""Cached crew roster with device-id lookup.

The roster is swapped as one immutable snapshot, so readers never observe
a partially refreshed member list.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from crewmap.exceptions import StoreError
from crewmap.ingestion.normalize import normalize_device_id
from crewmap.models.crew import Member
from crewmap.store.base import MEMBERS_TABLE, ChangeEvent, DirectoryStore, Subscription

_logger = logging.getLogger(__name__)

RosterCallback = Callable[[list[Member]], None]


@dataclass(frozen=True)
class RosterSnapshot:
    members: tuple[Member, ...] = ()
    by_device: dict[str, Member] = field(default_factory=dict)
    by_member: dict[str, Member] = field(default_factory=dict)

    @classmethod
    def build(cls, members: list[Member]) -> RosterSnapshot:
        by_device: dict[str, Member] = {}
        by_member: dict[str, Member] = {}
        for member in members:
            if member.device_id in by_device:
                _logger.warning(
                    "Device %s is linked to members %s and %s; using the latter",
                    member.device_id,
                    by_device[member.device_id].id,
                    member.id,
                )
            by_device[member.device_id] = member
            by_member[member.id] = member
        return cls(members=tuple(members), by_device=by_device, by_member=by_member)


class DirectoryCache:
    """In-memory view of the crew roster backed by a :class:`DirectoryStore`."""

    def __init__(self, store: DirectoryStore) -> None:
        self._store = store
        self._snapshot = RosterSnapshot()
        self._subscriptions: list[Subscription] = []
        self._refresh_task: asyncio.Task[None] | None = None
        self._rerun = False

    @property
    def members(self) -> tuple[Member, ...]:
        return self._snapshot.members

    def by_device_id(self, device_id: str | int) -> Member | None:
        key = normalize_device_id(device_id)
        if key is None:
            return None
        return self._snapshot.by_device.get(key)

    def by_member_id(self, member_id: str) -> Member | None:
        return self._snapshot.by_member.get(member_id)

    async def refresh(self, crew_id: str) -> list[Member]:
        """Fetch the roster and replace the snapshot.

        Raises
        ------
        StoreError
            When the store cannot be read; the previous snapshot is kept.
        """
        members = await self._store.fetch_members(crew_id)
        self._snapshot = RosterSnapshot.build(members)
        _logger.debug("Roster refreshed crew_id=%s members=%d", crew_id, len(members))
        return list(members)

    async def on_change(self, crew_id: str, callback: RosterCallback) -> Subscription:
        """Refresh on every membership notification and hand the new roster to *callback*.

        Bursts of notifications collapse into at most one refresh in flight
        plus one queued rerun.
        """

        def _handle(change: ChangeEvent) -> None:
            _logger.debug("Membership %s for crew_id=%s", change.type, crew_id)
            self._schedule_refresh(crew_id, callback)

        subscription = await self._store.subscribe(MEMBERS_TABLE, crew_id, _handle)
        self._subscriptions.append(subscription)
        return subscription

    def _schedule_refresh(self, crew_id: str, callback: RosterCallback) -> None:
        if self._refresh_task is not None and not self._refresh_task.done():
            self._rerun = True
            return
        self._refresh_task = asyncio.get_running_loop().create_task(
            self._refresh_loop(crew_id, callback), name="crewmap-roster-refresh"
        )

    async def _refresh_loop(self, crew_id: str, callback: RosterCallback) -> None:
        while True:
            self._rerun = False
            try:
                members = await self.refresh(crew_id)
            except StoreError as exc:
                _logger.warning("Roster refresh failed, keeping previous roster: %s", exc)
            else:
                try:
                    callback(members)
                except Exception:
                    _logger.warning("Roster callback failed", exc_info=True)
            if not self._rerun:
                return

    async def close(self) -> None:
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            try:
                await subscription.unsubscribe()
            except Exception:
                _logger.debug("Unsubscribe failed", exc_info=True)
        task = self._refresh_task
        self._refresh_task = None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
