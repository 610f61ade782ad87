from __future__ import annotations

import pytest

from crewmap.config import CrewMapConfig
from crewmap.exceptions import ConfigError


def test_from_env_reads_crewmap_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CREWMAP_TRACCAR_SERVER", "https://track.example.com")
    monkeypatch.setenv("CREWMAP_SUPABASE_URL", "https://proj.supabase.co")
    monkeypatch.setenv("CREWMAP_RECONNECT_MAX_ATTEMPTS", "3")
    monkeypatch.setenv("CREWMAP_TRAIL_MIN_OPACITY", "0.25")

    config = CrewMapConfig.from_env(traccar_email="ops@example.com")

    assert config.traccar_server == "https://track.example.com"
    assert config.traccar_email == "ops@example.com"
    assert config.reconnect_max_attempts == 3
    assert config.trail_min_opacity == 0.25
    assert config.reconnect_initial_delay == 1.0


def test_from_env_overrides_win(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CREWMAP_UNRESOLVED_CAPACITY", "not-a-number")
    config = CrewMapConfig.from_env(unresolved_capacity=8)
    assert config.unresolved_capacity == 8


def test_from_env_invalid_number(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CREWMAP_REQUEST_TIMEOUT", "soon")
    with pytest.raises(ConfigError):
        CrewMapConfig.from_env()


def test_socket_url_derived_from_server() -> None:
    assert CrewMapConfig(traccar_server="https://track.example.com/").traccar_socket_url == (
        "wss://track.example.com/api/socket"
    )
    assert CrewMapConfig(traccar_server="http://localhost:8082").traccar_socket_url == "ws://localhost:8082/api/socket"


def test_require_feed_lists_missing_settings() -> None:
    config = CrewMapConfig(traccar_server="https://track.example.com")
    with pytest.raises(ConfigError, match="traccar_email, traccar_password"):
        config.require_feed()
    CrewMapConfig(supabase_url="https://proj.supabase.co", supabase_key="anon").require_store()
