"""Supabase-backed directory & trail store.

CRUD goes through PostgREST (``/rest/v1/<table>``); change notifications go
through :class:`crewmap.store.realtime.RealtimeClient`.
"""

from __future__ import annotations

import json
import logging
from datetime import date
from typing import Any

import aiohttp
from pydantic import ValidationError

from crewmap._redact import redact_for_log
from crewmap.config import CrewMapConfig
from crewmap.exceptions import StoreError, TrailPersistError
from crewmap.models.crew import Crew, Member
from crewmap.models.trail import TrailPoint
from crewmap.store.base import (
    CREWS_TABLE,
    MEMBERS_TABLE,
    TRAILS_TABLE,
    ChangeCallback,
    Subscription,
)
from crewmap.store.realtime import RealtimeClient

_logger = logging.getLogger(__name__)


class SupabaseStore:
    """Directory & trail store speaking PostgREST + Realtime.

    Usage::

        async with SupabaseStore(config) as store:
            members = await store.fetch_members(crew_id)
    """

    def __init__(
        self,
        config: CrewMapConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        realtime: RealtimeClient | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._realtime = realtime

    async def __aenter__(self) -> SupabaseStore:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._realtime is not None:
            await self._realtime.close()
            self._realtime = None
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    def _require_session(self) -> aiohttp.ClientSession:
        if self._http_session is None:
            raise StoreError("Store not initialized. Use 'async with SupabaseStore(...) as store:'")
        return self._http_session

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self._config.supabase_key,
            "Authorization": f"Bearer {self._config.supabase_key}",
            "Accept": "application/json",
        }

    async def _rest(
        self,
        method: str,
        table: str,
        *,
        params: dict[str, str] | None = None,
        body: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Run one PostgREST request and return the row list."""
        http = self._require_session()
        url = f"{self._config.supabase_url.rstrip('/')}/rest/v1/{table}"
        headers = self._headers()
        if body is not None:
            headers["Content-Type"] = "application/json"
            headers["Prefer"] = "return=representation"

        _logger.debug("%s %s params=%s body=%s", method, table, params, redact_for_log(body))
        timeout = aiohttp.ClientTimeout(total=self._config.request_timeout)
        try:
            async with http.request(method, url, params=params, json=body, headers=headers, timeout=timeout) as resp:
                text = await resp.text()
                if resp.status < 200 or resp.status >= 300:
                    raise StoreError(f"HTTP {resp.status} from {table}: {text[:200]}", table=table)
        except StoreError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise StoreError(f"Request to {table} failed: {exc}", table=table) from exc

        if not text.strip():
            return []
        try:
            rows = json.loads(text)
        except json.JSONDecodeError as exc:
            raise StoreError(f"Invalid JSON from {table}: {text[:200]}", table=table) from exc
        if isinstance(rows, dict):
            return [rows]
        if not isinstance(rows, list):
            raise StoreError(f"Unexpected payload from {table}", table=table)
        return [row for row in rows if isinstance(row, dict)]

    @staticmethod
    def _first(rows: list[dict[str, Any]], table: str) -> dict[str, Any]:
        if not rows:
            raise StoreError(f"Insert into {table} returned no row", table=table)
        return rows[0]

    # ------------------------------------------------------------------
    # Crews
    # ------------------------------------------------------------------

    async def find_crew_by_invite_code(self, invite_code: str) -> Crew | None:
        rows = await self._rest(
            "GET",
            CREWS_TABLE,
            params={"select": "*", "invite_code": f"eq.{invite_code.strip().upper()}", "limit": "1"},
        )
        return Crew.model_validate(rows[0]) if rows else None

    async def insert_crew(self, *, name: str, invite_code: str) -> Crew:
        rows = await self._rest("POST", CREWS_TABLE, body={"name": name, "invite_code": invite_code})
        return Crew.model_validate(self._first(rows, CREWS_TABLE))

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    async def fetch_members(self, crew_id: str) -> list[Member]:
        rows = await self._rest("GET", MEMBERS_TABLE, params={"select": "*", "crew_id": f"eq.{crew_id}"})
        members: list[Member] = []
        for row in rows:
            try:
                members.append(Member.model_validate(row))
            except ValidationError:
                _logger.warning("Skipping malformed member row id=%s", row.get("id"))
        return members

    async def find_member_by_name(self, crew_id: str, name: str) -> Member | None:
        rows = await self._rest(
            "GET",
            MEMBERS_TABLE,
            params={"select": "*", "crew_id": f"eq.{crew_id}", "name": f"eq.{name}", "limit": "1"},
        )
        return Member.model_validate(rows[0]) if rows else None

    async def insert_member(self, *, crew_id: str, name: str, device_id: str, color: str) -> Member:
        rows = await self._rest(
            "POST",
            MEMBERS_TABLE,
            body={"crew_id": crew_id, "name": name, "traccar_device_id": device_id, "color": color},
        )
        return Member.model_validate(self._first(rows, MEMBERS_TABLE))

    # ------------------------------------------------------------------
    # Trails
    # ------------------------------------------------------------------

    async def fetch_trail_points(self, crew_id: str, day_bucket: date) -> list[TrailPoint]:
        rows = await self._rest(
            "GET",
            TRAILS_TABLE,
            params={
                "select": "*",
                "crew_id": f"eq.{crew_id}",
                "day_marker": f"eq.{day_bucket.isoformat()}",
                "order": "timestamp.asc",
            },
        )
        points: list[TrailPoint] = []
        for row in rows:
            try:
                points.append(TrailPoint.model_validate(row))
            except ValidationError:
                _logger.debug("Skipping malformed trail row id=%s", row.get("id"), exc_info=True)
        return points

    async def insert_trail_point(self, point: TrailPoint) -> TrailPoint:
        try:
            rows = await self._rest("POST", TRAILS_TABLE, body=point.to_row())
            return TrailPoint.model_validate(self._first(rows, TRAILS_TABLE))
        except ValidationError as exc:
            raise TrailPersistError(f"Unreadable inserted trail row: {exc}", table=TRAILS_TABLE) from exc
        except StoreError as exc:
            raise TrailPersistError(str(exc), table=TRAILS_TABLE) from exc

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    async def subscribe(
        self,
        table: str,
        crew_id: str,
        callback: ChangeCallback,
        *,
        event: str = "*",
    ) -> Subscription:
        if self._realtime is None:
            self._realtime = RealtimeClient(self._config, self._require_session())
        return await self._realtime.subscribe(table, crew_id, callback, event=event)
