"""Directory & trail store interface.

The tracker only depends on :class:`DirectoryStore`; the Supabase
implementation lives in :mod:`crewmap.store.supabase`.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date
from enum import StrEnum
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field

from crewmap.models.crew import Crew, Member
from crewmap.models.trail import TrailPoint

CREWS_TABLE = "crews"
MEMBERS_TABLE = "crew_members"
TRAILS_TABLE = "location_trails"


class ChangeType(StrEnum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    """A row change delivered by the store's notification channel."""

    model_config = ConfigDict(frozen=True)

    table: str
    type: ChangeType
    record: dict[str, Any] = Field(default_factory=dict)
    old_record: dict[str, Any] = Field(default_factory=dict)


ChangeCallback = Callable[[ChangeEvent], None]


class Subscription(Protocol):
    async def unsubscribe(self) -> None: ...


class DirectoryStore(Protocol):
    """Record CRUD and change notifications keyed by crew."""

    async def find_crew_by_invite_code(self, invite_code: str) -> Crew | None: ...

    async def insert_crew(self, *, name: str, invite_code: str) -> Crew: ...

    async def fetch_members(self, crew_id: str) -> list[Member]: ...

    async def find_member_by_name(self, crew_id: str, name: str) -> Member | None: ...

    async def insert_member(self, *, crew_id: str, name: str, device_id: str, color: str) -> Member: ...

    async def fetch_trail_points(self, crew_id: str, day_bucket: date) -> list[TrailPoint]: ...

    async def insert_trail_point(self, point: TrailPoint) -> TrailPoint: ...

    async def subscribe(
        self,
        table: str,
        crew_id: str,
        callback: ChangeCallback,
        *,
        event: str = "*",
    ) -> Subscription: ...
