"""Merges feed positions, roster changes and external trail points.

This is the only component allowed to mutate the live position map. Every
handler is synchronous and runs to completion, so the tracker's event
queue fully serializes updates. Trail writes are started as background
tasks; :meth:`PositionReconciler.drain` waits for them.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from collections.abc import Callable, Iterable

from crewmap.models.crew import Member
from crewmap.models.position import Position
from crewmap.models.trail import TrailPoint
from crewmap.state.directory import DirectoryCache
from crewmap.state.policy import is_new_observation, should_accept_position
from crewmap.state.trails import TrailStoreSync

_logger = logging.getLogger(__name__)


class PositionReconciler:
    """Deterministic live-position map keyed by device id.

    Positions whose device is not (yet) in the roster are held per device,
    newest first, up to ``unresolved_capacity`` devices. They are promoted
    once a roster change makes the device resolvable.
    """

    def __init__(
        self,
        directory: DirectoryCache,
        trails: TrailStoreSync,
        crew_id: str,
        *,
        unresolved_capacity: int = 256,
        on_trail_written: Callable[[TrailPoint], None] | None = None,
    ) -> None:
        self._directory = directory
        self._trails = trails
        self._crew_id = crew_id
        self._on_trail_written = on_trail_written
        self._capacity = max(0, unresolved_capacity)
        self._live: dict[str, Position] = {}
        self._unresolved: OrderedDict[str, Position] = OrderedDict()
        self._pending: set[asyncio.Task[TrailPoint | None]] = set()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def live_positions(self) -> dict[str, Position]:
        return dict(self._live)

    def position_for(self, device_id: str) -> Position | None:
        return self._live.get(device_id)

    def unresolved(self) -> dict[str, Position]:
        return dict(self._unresolved)

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def on_feed_batch(self, positions: Iterable[Position]) -> list[Position]:
        """Apply a batch in order. Returns the positions that changed the live map."""
        accepted: list[Position] = []
        for position in positions:
            member = self._directory.by_device_id(position.device_id)
            if member is None:
                self._hold(position)
                continue
            accepted.extend(self._resolve(member, position))
        return accepted

    def on_roster_change(self, members: Iterable[Member] = ()) -> list[Position]:
        """Promote held positions whose device is now in the roster."""
        promoted: list[Position] = []
        for device_id in list(self._unresolved):
            member = self._directory.by_device_id(device_id)
            if member is None:
                continue
            position = self._unresolved.pop(device_id)
            if self._apply(member, position):
                promoted.append(position)
        if promoted:
            _logger.debug("Promoted %d held positions after roster change", len(promoted))
        return promoted

    def on_external_trail_point(self, point: TrailPoint) -> bool:
        return self._trails.merge_external(point)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _hold(self, position: Position) -> None:
        current = self._unresolved.get(position.device_id)
        if not should_accept_position(current, position):
            return
        self._unresolved[position.device_id] = position
        self._unresolved.move_to_end(position.device_id)
        while len(self._unresolved) > self._capacity:
            dropped, _ = self._unresolved.popitem(last=False)
            _logger.debug("Dropping held position for unknown device %s", dropped)

    def _resolve(self, member: Member, position: Position) -> list[Position]:
        # A held position for this device predates the incoming one in arrival order.
        applied: list[Position] = []
        held = self._unresolved.pop(position.device_id, None)
        if held is not None and self._apply(member, held):
            applied.append(held)
        if self._apply(member, position):
            applied.append(position)
        return applied

    def _apply(self, member: Member, position: Position) -> bool:
        current = self._live.get(position.device_id)
        if not should_accept_position(current, position):
            _logger.debug(
                "Rejecting stale position device=%s observed_at=%s current=%s",
                position.device_id,
                position.observed_at,
                current.observed_at if current else None,
            )
            return False
        self._live[position.device_id] = position
        if is_new_observation(current, position):
            self._persist(member, position)
        return True

    def _persist(self, member: Member, position: Position) -> None:
        point = TrailPoint.from_position(
            position,
            member_id=member.id,
            crew_id=self._crew_id,
            day_bucket=self._trails.current_bucket(),
        )
        task = asyncio.get_running_loop().create_task(self._trails.append(self._crew_id, member.id, point))
        self._pending.add(task)
        task.add_done_callback(self._on_write_done)

    def _on_write_done(self, task: asyncio.Task[TrailPoint | None]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.warning("Trail write failed unexpectedly: %s", exc, exc_info=exc)
            return
        stored = task.result()
        if stored is not None and self._on_trail_written is not None:
            try:
                self._on_trail_written(stored)
            except Exception:
                _logger.warning("Trail written callback failed", exc_info=True)

    async def drain(self) -> None:
        """Wait until every started trail write has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
