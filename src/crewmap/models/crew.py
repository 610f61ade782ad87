"""Crew and member records."""

from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar

from pydantic import AliasChoices, Field, field_validator

from crewmap.ingestion.normalize import parse_timestamp
from crewmap.models._base import StoreModel


class Crew(StoreModel):
    """A named group sharing live location."""

    _ID_FIELDS: ClassVar[tuple[str, ...]] = ("id",)

    id: str
    name: str
    invite_code: str
    created_at: datetime | None = None

    @field_validator("invite_code", mode="before")
    @classmethod
    def _normalize_code(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("created_at", mode="before")
    @classmethod
    def _coerce_created_at(cls, value: Any) -> datetime | None:
        return parse_timestamp(value)


class Member(StoreModel):
    """A crew member and the tracking device that reports for them.

    ``device_id`` is stored in the ``traccar_device_id`` column and matches
    :attr:`crewmap.models.position.Position.device_id`.
    """

    _ID_FIELDS: ClassVar[tuple[str, ...]] = ("id", "crew_id", "traccar_device_id", "device_id")

    id: str
    crew_id: str
    name: str
    color: str = "#45B7D1"
    device_id: str = Field(validation_alias=AliasChoices("traccar_device_id", "device_id"))

    @property
    def initial(self) -> str:
        """First letter of the name, for marker badges."""
        return self.name[:1].upper()
