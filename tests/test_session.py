from __future__ import annotations

import json
from pathlib import Path

from crewmap.session import CrewSession, SessionStore


def _session() -> CrewSession:
    return CrewSession(
        crew_id="crew-1",
        crew_name="Hikers",
        member_id="m-1",
        member_name="Alex",
        member_color="#FF6B6B",
        invite_code="AB3D5F",
        device_id="42",
    )


def test_session_round_trip(tmp_path: Path) -> None:
    store = SessionStore(tmp_path / "nested" / "session.json")
    assert store.get() is None

    store.set(_session())

    assert store.get() == _session()
    assert json.loads(store.path.read_text())["inviteCode"] == "AB3D5F"


def test_clear_is_idempotent(tmp_path: Path) -> None:
    store = SessionStore(tmp_path / "session.json")
    store.set(_session())

    store.clear()
    store.clear()

    assert store.get() is None


def test_corrupt_session_ignored(tmp_path: Path) -> None:
    path = tmp_path / "session.json"
    path.write_text("{not json")
    assert SessionStore(path).get() is None

    path.write_text(json.dumps({"crewId": "crew-1"}))
    assert SessionStore(path).get() is None
