"""Position model."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, Field, field_validator

from crewmap.ingestion.normalize import normalize_device_id, parse_timestamp, safe_float
from crewmap.models._base import TraccarModel


class Position(TraccarModel):
    """Latest observed location of a tracking device.

    Parameters
    ----------
    device_id : str
        Provider device identifier (Traccar ``deviceId``), as a string.
    latitude : float
        Latitude in degrees.
    longitude : float
        Longitude in degrees.
    observed_at : datetime
        When the device observed this fix. Taken from ``fixTime``, falling
        back to ``deviceTime`` and then ``serverTime``. Always timezone-aware.
    speed : float or None
        Speed as reported by the provider (knots).
    course : float or None
        Heading in degrees.
    """

    device_id: str
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    observed_at: datetime = Field(
        validation_alias=AliasChoices("fixTime", "deviceTime", "serverTime", "observedAt", "observed_at"),
    )
    speed: float | None = None
    course: float | None = None

    @field_validator("device_id", mode="before")
    @classmethod
    def _coerce_device_id(cls, value: Any) -> Any:
        return normalize_device_id(value)

    @field_validator("latitude", "longitude", "speed", "course", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return safe_float(value)

    @field_validator("observed_at", mode="before")
    @classmethod
    def _coerce_observed_at(cls, value: Any) -> Any:
        parsed = parse_timestamp(value)
        return parsed if parsed is not None else value

    @classmethod
    def from_traccar(cls, record: dict[str, Any]) -> Position:
        """Build a position from a raw Traccar record."""
        return cls.model_validate(record)

    @property
    def coordinates(self) -> tuple[float, float]:
        """``(latitude, longitude)`` pair."""
        return (self.latitude, self.longitude)
