from __future__ import annotations

from typing import Any

import pytest

from crewmap.config import CrewMapConfig
from crewmap.exceptions import AuthError, DeviceRegistrationError, TransportError
from crewmap.feed import PositionFeed


class _FakeTransport:
    """Scripted transport: each (method, endpoint) pops the next queued response."""

    def __init__(self, responses: dict[tuple[str, str], list[Any]]) -> None:
        self._responses = responses
        self.calls: list[dict[str, Any]] = []
        self.cookie_header = "JSESSIONID=abc"

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Any = None,
        json_body: Any = None,
        form: Any = None,
        basic_auth: bool = False,
    ) -> Any:
        self.calls.append(
            {
                "method": method,
                "endpoint": endpoint,
                "params": params,
                "json_body": json_body,
                "form": form,
                "basic_auth": basic_auth,
            }
        )
        result = self._responses[(method, endpoint)].pop(0)
        if isinstance(result, Exception):
            raise result
        return result


_SESSION_OK = {"id": 1, "email": "ops@example.com", "name": "Ops"}
_CONFIG = CrewMapConfig(traccar_server="https://track.example.com", traccar_email="ops@example.com", traccar_password="pw")


def _feed(responses: dict[tuple[str, str], list[Any]]) -> tuple[PositionFeed, _FakeTransport]:
    transport = _FakeTransport(responses)
    return PositionFeed(_CONFIG, transport=transport), transport


@pytest.mark.asyncio
async def test_authenticate_returns_credentials_with_cookie() -> None:
    feed, transport = _feed({("POST", "/api/session"): [_SESSION_OK]})

    credentials = await feed.authenticate()

    assert credentials.user_id == "1"
    assert credentials.cookie == "JSESSIONID=abc"
    assert transport.calls[0]["form"] == {"email": "ops@example.com", "password": "pw"}
    assert feed.credentials is credentials


@pytest.mark.asyncio
async def test_authenticate_rejected() -> None:
    feed, _ = _feed({("POST", "/api/session"): [TransportError("HTTP 401", status_code=401)]})
    with pytest.raises(AuthError):
        await feed.authenticate()


@pytest.mark.asyncio
async def test_register_device_reuses_existing_device() -> None:
    feed, transport = _feed(
        {
            ("POST", "/api/session"): [_SESSION_OK],
            ("GET", "/api/devices"): [[{"id": 12, "name": "Alex", "uniqueId": "phone-1"}]],
        }
    )

    device = await feed.register_device("Alex", " phone-1 ")

    assert device.id == "12"
    assert not any(call["method"] == "POST" and call["endpoint"] == "/api/devices" for call in transport.calls)


@pytest.mark.asyncio
async def test_register_device_creates_with_basic_auth() -> None:
    feed, transport = _feed(
        {
            ("POST", "/api/session"): [_SESSION_OK],
            ("GET", "/api/devices"): [[]],
            ("POST", "/api/devices"): [{"id": 13, "name": "Sam", "uniqueId": "phone-2"}],
        }
    )

    device = await feed.register_device("Sam", "phone-2")

    assert device.id == "13"
    create = transport.calls[-1]
    assert create["basic_auth"] is True
    assert create["json_body"] == {"name": "Sam", "uniqueId": "phone-2"}


@pytest.mark.asyncio
async def test_register_device_twice_creates_once() -> None:
    feed, transport = _feed(
        {
            ("POST", "/api/session"): [_SESSION_OK, _SESSION_OK],
            ("GET", "/api/devices"): [[], [{"id": 15, "name": "Lee", "uniqueId": "phone-4"}]],
            ("POST", "/api/devices"): [{"id": 15, "name": "Lee", "uniqueId": "phone-4"}],
        }
    )

    first = await feed.register_device("Lee", "phone-4")
    second = await feed.register_device("Lee", "phone-4")

    assert first.id == second.id == "15"
    creates = [c for c in transport.calls if c["method"] == "POST" and c["endpoint"] == "/api/devices"]
    assert len(creates) == 1


@pytest.mark.asyncio
async def test_register_device_recovers_from_duplicate_create() -> None:
    duplicate = TransportError("HTTP 400", status_code=400, body="Duplicate entry 'phone-3' for key 'uniqueId'")
    feed, _ = _feed(
        {
            ("POST", "/api/session"): [_SESSION_OK],
            ("GET", "/api/devices"): [[], [{"id": 14, "name": "Kim", "uniqueId": "phone-3"}]],
            ("POST", "/api/devices"): [duplicate],
        }
    )

    device = await feed.register_device("Kim", "phone-3")

    assert device.id == "14"


@pytest.mark.asyncio
async def test_register_device_create_failure() -> None:
    feed, _ = _feed(
        {
            ("POST", "/api/session"): [_SESSION_OK],
            ("GET", "/api/devices"): [[]],
            ("POST", "/api/devices"): [TransportError("HTTP 500", status_code=500, body="boom")],
        }
    )

    with pytest.raises(DeviceRegistrationError) as excinfo:
        await feed.register_device("Kim", "phone-3")
    assert excinfo.value.unique_id == "phone-3"


@pytest.mark.asyncio
async def test_fetch_positions_filters_by_device_and_normalizes() -> None:
    feed, transport = _feed(
        {
            ("GET", "/api/positions"): [
                [
                    {"deviceId": 12, "latitude": 52.0, "longitude": 4.0, "fixTime": "2026-03-01T10:00:00Z"},
                    {"deviceId": 13, "latitude": "bad", "longitude": 4.0, "fixTime": "2026-03-01T10:00:00Z"},
                ]
            ]
        }
    )

    positions = await feed.fetch_positions(["12", "13"])

    assert [p.device_id for p in positions] == ["12"]
    assert transport.calls[0]["params"] == [("deviceId", "12"), ("deviceId", "13")]


@pytest.mark.asyncio
async def test_fetch_positions_failure_returns_empty_list() -> None:
    feed, _ = _feed({("GET", "/api/positions"): [TransportError("HTTP 502", status_code=502)]})
    assert await feed.fetch_positions() == []


@pytest.mark.asyncio
async def test_fetch_positions_non_list_body_returns_empty_list() -> None:
    feed, _ = _feed({("GET", "/api/positions"): [{"error": "nope"}]})
    assert await feed.fetch_positions() == []
