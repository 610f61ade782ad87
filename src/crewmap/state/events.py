"""Events consumed by the tracker's single event queue.

Every asynchronous source (feed poll, feed push, roster refresh, external
trail insert) is turned into one of these and processed to completion
before the next one starts.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from crewmap.models.crew import Member
from crewmap.models.position import Position
from crewmap.models.trail import TrailPoint


class EventKind(StrEnum):
    FEED_BATCH = "feed_batch"
    ROSTER_CHANGED = "roster_changed"
    TRAIL_POINT = "trail_point"
    TRAIL_WRITTEN = "trail_written"


class FeedSource(StrEnum):
    POLL = "poll"
    PUSH = "push"


class TrackerEvent(BaseModel):
    """A unit of work for the reconciler."""

    model_config = ConfigDict(frozen=True)

    kind: EventKind
    received_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    source: FeedSource | None = None
    positions: tuple[Position, ...] = ()
    members: tuple[Member, ...] = ()
    point: TrailPoint | None = None

    @classmethod
    def feed_batch(cls, positions: list[Position], source: FeedSource) -> TrackerEvent:
        return cls(kind=EventKind.FEED_BATCH, positions=tuple(positions), source=source)

    @classmethod
    def roster_changed(cls, members: list[Member]) -> TrackerEvent:
        return cls(kind=EventKind.ROSTER_CHANGED, members=tuple(members))

    @classmethod
    def trail_point(cls, point: TrailPoint) -> TrackerEvent:
        return cls(kind=EventKind.TRAIL_POINT, point=point)

    @classmethod
    def trail_written(cls, point: TrailPoint) -> TrackerEvent:
        return cls(kind=EventKind.TRAIL_WRITTEN, point=point)
