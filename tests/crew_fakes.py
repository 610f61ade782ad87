from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, date, datetime
from typing import Any

from crewmap.exceptions import StoreError, TrailPersistError
from crewmap.models import Crew, Member, Position, TrailPoint
from crewmap.store.base import ChangeCallback, ChangeEvent, ChangeType

T0 = datetime(2026, 3, 1, 10, 0, tzinfo=UTC)


def position(device_id: str, minute: int, lat: float = 52.0, lon: float = 4.0) -> Position:
    return Position(
        device_id=device_id,
        latitude=lat,
        longitude=lon,
        observed_at=T0.replace(minute=minute),
    )


def member(member_id: str, device_id: str, name: str | None = None, color: str = "#4ECDC4") -> Member:
    return Member(id=member_id, crew_id="crew-1", name=name or member_id, color=color, device_id=device_id)


class FakeClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeSubscription:
    def __init__(self, store: FakeStore, table: str, callback: ChangeCallback) -> None:
        self.store = store
        self.table = table
        self.callback = callback
        self.active = True

    async def unsubscribe(self) -> None:
        self.active = False


class FakeStore:
    """In-memory directory & trail store with synchronous change delivery."""

    def __init__(self) -> None:
        self.crews: list[Crew] = []
        self.members: list[Member] = []
        self.trail_rows: list[TrailPoint] = []
        self.subscriptions: list[FakeSubscription] = []
        self.fail_fetch_members = False
        self.fail_trails = False
        self.fail_inserts = False
        self.fetch_members_calls = 0
        self.insert_gate: asyncio.Event | None = None
        self._next_id = 1

    def _id(self, prefix: str) -> str:
        value = f"{prefix}-{self._next_id}"
        self._next_id += 1
        return value

    async def find_crew_by_invite_code(self, invite_code: str) -> Crew | None:
        for crew in self.crews:
            if crew.invite_code == invite_code.upper():
                return crew
        return None

    async def insert_crew(self, *, name: str, invite_code: str) -> Crew:
        crew = Crew(id=self._id("crew"), name=name, invite_code=invite_code)
        self.crews.append(crew)
        return crew

    async def fetch_members(self, crew_id: str) -> list[Member]:
        self.fetch_members_calls += 1
        await asyncio.sleep(0)
        if self.fail_fetch_members:
            raise StoreError("members unavailable", table="crew_members")
        return [m for m in self.members if m.crew_id == crew_id]

    async def find_member_by_name(self, crew_id: str, name: str) -> Member | None:
        for m in self.members:
            if m.crew_id == crew_id and m.name == name:
                return m
        return None

    async def insert_member(self, *, crew_id: str, name: str, device_id: str, color: str) -> Member:
        m = Member(id=self._id("member"), crew_id=crew_id, name=name, device_id=device_id, color=color)
        self.members.append(m)
        return m

    async def fetch_trail_points(self, crew_id: str, day_bucket: date) -> list[TrailPoint]:
        if self.fail_trails:
            raise StoreError("trails unavailable", table="location_trails")
        return [p for p in self.trail_rows if p.crew_id == crew_id and p.day_bucket == day_bucket]

    async def insert_trail_point(self, point: TrailPoint) -> TrailPoint:
        if self.insert_gate is not None:
            await self.insert_gate.wait()
        if self.fail_inserts:
            raise TrailPersistError("insert rejected", table="location_trails")
        stored = point.model_copy(update={"id": self._id("trail")})
        self.trail_rows.append(stored)
        return stored

    async def subscribe(
        self,
        table: str,
        crew_id: str,
        callback: ChangeCallback,
        *,
        event: str = "*",
    ) -> FakeSubscription:
        sub = FakeSubscription(self, table, callback)
        self.subscriptions.append(sub)
        return sub

    def emit(self, table: str, change_type: ChangeType, record: dict[str, Any]) -> None:
        event = ChangeEvent(table=table, type=change_type, record=record)
        for sub in self.subscriptions:
            if sub.active and sub.table == table:
                sub.callback(event)


async def wait_for(predicate: Callable[[], bool], *, timeout: float = 1.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0)

    await asyncio.wait_for(_poll(), timeout)
