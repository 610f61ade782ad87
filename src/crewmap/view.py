"""Pure projections of tracker state for a map renderer.

Nothing here performs I/O or mutates state; every function can be called
from a render loop.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Mapping, Sequence
from datetime import datetime, timedelta
from typing import Any

from crewmap.models.crew import Member
from crewmap.models.position import Position
from crewmap.models.trail import TrailPoint

DEFAULT_TRAIL_MAX_AGE = timedelta(hours=24)
DEFAULT_TRAIL_MIN_OPACITY = 0.1


@dataclasses.dataclass(frozen=True)
class Marker:
    """A member's current location on the map."""

    member: Member
    position: Position

    @property
    def member_id(self) -> str:
        return self.member.id

    @property
    def label(self) -> str:
        return self.member.name

    @property
    def initial(self) -> str:
        return self.member.initial

    @property
    def color(self) -> str:
        return self.member.color

    @property
    def latitude(self) -> float:
        return self.position.latitude

    @property
    def longitude(self) -> float:
        return self.position.longitude


@dataclasses.dataclass(frozen=True)
class Polyline:
    """Ordered ``(latitude, longitude)`` pairs of one member's trail."""

    member_id: str
    coordinates: tuple[tuple[float, float], ...]
    timestamps: tuple[datetime, ...] = ()

    def to_geojson(self, **properties: Any) -> dict[str, Any]:
        """GeoJSON ``Feature`` with a ``LineString`` (``[lon, lat]`` order)."""
        return {
            "type": "Feature",
            "properties": {"member_id": self.member_id, **properties},
            "geometry": {
                "type": "LineString",
                "coordinates": [[lon, lat] for lat, lon in self.coordinates],
            },
        }


def current_markers(live: Mapping[str, Position], members: Iterable[Member]) -> list[Marker]:
    """One marker per member whose device has a live position, in roster order.

    Devices that do not resolve to a member are not rendered.
    """
    markers: list[Marker] = []
    for member in members:
        position = live.get(member.device_id)
        if position is not None:
            markers.append(Marker(member=member, position=position))
    return markers


def trail_geometry(points: Sequence[TrailPoint], member_id: str | None = None) -> Polyline | None:
    """Line geometry for a member's trail, or ``None`` below two points."""
    if len(points) < 2:
        return None
    return Polyline(
        member_id=member_id if member_id is not None else points[0].member_id,
        coordinates=tuple((p.latitude, p.longitude) for p in points),
        timestamps=tuple(p.timestamp for p in points),
    )


def trail_opacity(
    timestamp: datetime,
    now: datetime,
    *,
    max_age: timedelta = DEFAULT_TRAIL_MAX_AGE,
    floor: float = DEFAULT_TRAIL_MIN_OPACITY,
) -> float:
    """Fade from 1.0 for a fresh point to *floor* at *max_age* and beyond."""
    span = max_age.total_seconds()
    if span <= 0:
        return 1.0
    age = max(0.0, (now - timestamp).total_seconds())
    return max(floor, min(1.0, 1.0 - age / span))


def trail_collection(trails: Mapping[str, Sequence[TrailPoint]], members: Iterable[Member]) -> dict[str, Any]:
    """GeoJSON ``FeatureCollection`` of every drawable trail, colored per member."""
    features: list[dict[str, Any]] = []
    for member in members:
        line = trail_geometry(trails.get(member.id, ()), member.id)
        if line is not None:
            features.append(line.to_geojson(color=member.color, name=member.name))
    return {"type": "FeatureCollection", "features": features}


def focus_point(markers: Sequence[Marker]) -> tuple[float, float] | None:
    """Where "recenter" moves the map: the first marker, if any."""
    if not markers:
        return None
    return markers[0].position.coordinates
