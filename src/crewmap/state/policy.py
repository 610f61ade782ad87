"""Deterministic merge policy for live positions and day buckets.

This module contains no payload parsing; the ingestion layer hands over
validated, timezone-aware :class:`Position` objects.
"""

from __future__ import annotations

from datetime import date, datetime

from crewmap.models.position import Position


def should_accept_position(current: Position | None, incoming: Position) -> bool:
    """Decide whether *incoming* replaces *current* in the live map.

    Policy:
    - Nothing cached: accept.
    - Otherwise accept when ``incoming.observed_at >= current.observed_at``;
      equal timestamps resolve to the later arrival.
    """
    if current is None:
        return True
    return incoming.observed_at >= current.observed_at


def is_new_observation(current: Position | None, incoming: Position) -> bool:
    """Whether *incoming* is strictly newer than *current* (worth a trail point)."""
    if current is None:
        return True
    return incoming.observed_at > current.observed_at


def local_now() -> datetime:
    return datetime.now().astimezone()


def day_bucket(now: datetime) -> date:
    """Calendar date a point recorded at *now* is filed under."""
    return now.date()
