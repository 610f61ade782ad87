"""Live crew state: roster cache, trail sync and the position reconciler."""

from crewmap.state.directory import DirectoryCache, RosterSnapshot
from crewmap.state.events import EventKind, FeedSource, TrackerEvent
from crewmap.state.policy import day_bucket, is_new_observation, should_accept_position
from crewmap.state.reconciler import PositionReconciler
from crewmap.state.trails import TrailStoreSync

__all__ = [
    "DirectoryCache",
    "EventKind",
    "FeedSource",
    "PositionReconciler",
    "RosterSnapshot",
    "TrackerEvent",
    "TrailStoreSync",
    "day_bucket",
    "is_new_observation",
    "should_accept_position",
]
