"""Tracking device model."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import field_validator

from crewmap.ingestion.normalize import normalize_device_id, parse_timestamp
from crewmap.models._base import TraccarModel


class Device(TraccarModel):
    """A device registered with the position feed provider.

    ``id`` is the provider's internal identifier that positions refer to;
    ``unique_id`` is the identifier configured in the phone's tracking app.
    """

    id: str
    name: str = ""
    unique_id: str
    status: str | None = None
    last_update: datetime | None = None

    @field_validator("id", "unique_id", mode="before")
    @classmethod
    def _coerce_ids(cls, value: Any) -> Any:
        return normalize_device_id(value)

    @field_validator("last_update", mode="before")
    @classmethod
    def _coerce_last_update(cls, value: Any) -> datetime | None:
        return parse_timestamp(value)
