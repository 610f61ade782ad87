"""Trail point model."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, ClassVar

from pydantic import AliasChoices, Field, field_validator

from crewmap.ingestion.normalize import parse_timestamp
from crewmap.models._base import StoreModel
from crewmap.models.position import Position


class TrailPoint(StoreModel):
    """One recorded position in a member's trail for a given day.

    Parameters
    ----------
    id : str or None
        Store-assigned row id; ``None`` until persisted.
    member_id : str
        Member the point belongs to.
    crew_id : str
        Crew scope of the point.
    latitude, longitude : float
        Coordinates in degrees.
    timestamp : datetime
        Observation time of the underlying position.
    day_bucket : date
        Calendar date the point was recorded under (``day_marker`` column).
    """

    _ID_FIELDS: ClassVar[tuple[str, ...]] = ("id", "member_id", "crew_id")

    id: str | None = None
    member_id: str
    crew_id: str
    latitude: float
    longitude: float
    timestamp: datetime
    day_bucket: date = Field(validation_alias=AliasChoices("day_marker", "day_bucket"))

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> Any:
        parsed = parse_timestamp(value)
        return parsed if parsed is not None else value

    @field_validator("day_bucket", mode="before")
    @classmethod
    def _coerce_day_bucket(cls, value: Any) -> Any:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, str) and "T" in value:
            return value.split("T", 1)[0]
        return value

    @classmethod
    def from_position(
        cls,
        position: Position,
        *,
        member_id: str,
        crew_id: str,
        day_bucket: date,
    ) -> TrailPoint:
        return cls(
            member_id=member_id,
            crew_id=crew_id,
            latitude=position.latitude,
            longitude=position.longitude,
            timestamp=position.observed_at,
            day_bucket=day_bucket,
        )

    def to_row(self) -> dict[str, Any]:
        """Column dict for inserting into ``location_trails``."""
        return {
            "member_id": self.member_id,
            "crew_id": self.crew_id,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "timestamp": self.timestamp.isoformat(),
            "day_marker": self.day_bucket.isoformat(),
        }
