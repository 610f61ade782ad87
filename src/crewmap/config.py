"""Client configuration for crewmap."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from crewmap.exceptions import ConfigError


@dataclasses.dataclass(frozen=True)
class CrewMapConfig:
    """Client configuration.

    Parameters
    ----------
    traccar_server : str
        Base URL of the Traccar server (``https://...``). The push channel
        URL is derived from it.
    traccar_email : str
        Traccar account used for session login and device creation.
    traccar_password : str
        Password for ``traccar_email``.
    supabase_url : str
        Base URL of the Supabase project holding crews, members and trails.
    supabase_key : str
        Supabase anon/service key sent as ``apikey`` and bearer token.
    session_file : str
        Path of the JSON file holding the local crew session.
    request_timeout : float
        Total timeout in seconds for a single HTTP request.
    reconnect_initial_delay : float
        First push-channel reconnect delay in seconds.
    reconnect_max_delay : float
        Cap on the reconnect delay in seconds.
    reconnect_max_attempts : int
        Reconnect attempts before the push channel is abandoned.
    unresolved_capacity : int
        Maximum number of devices kept in the unresolved position set.
    trail_max_age : float
        Age in seconds at which a trail point reaches minimum opacity.
    trail_min_opacity : float
        Opacity floor for old trail points.
    realtime_heartbeat : float
        Seconds between realtime channel heartbeats.
    """

    traccar_server: str = ""
    traccar_email: str = ""
    traccar_password: str = ""
    supabase_url: str = ""
    supabase_key: str = ""
    session_file: str = "~/.crewmap/session.json"
    request_timeout: float = 15.0
    reconnect_initial_delay: float = 1.0
    reconnect_max_delay: float = 30.0
    reconnect_max_attempts: int = 5
    unresolved_capacity: int = 256
    trail_max_age: float = 24 * 3600
    trail_min_opacity: float = 0.1
    realtime_heartbeat: float = 30.0

    @property
    def traccar_socket_url(self) -> str:
        """Websocket URL of the Traccar push channel."""
        base = self.traccar_server.rstrip("/")
        if base.startswith("https://"):
            base = "wss://" + base[len("https://") :]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://") :]
        return f"{base}/api/socket"

    def require_feed(self) -> None:
        """Raise :class:`ConfigError` unless Traccar settings are present."""
        missing = [
            name
            for name in ("traccar_server", "traccar_email", "traccar_password")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigError(f"Missing position feed settings: {', '.join(missing)}")

    def require_store(self) -> None:
        """Raise :class:`ConfigError` unless Supabase settings are present."""
        missing = [name for name in ("supabase_url", "supabase_key") if not getattr(self, name)]
        if missing:
            raise ConfigError(f"Missing store settings: {', '.join(missing)}")

    @classmethod
    def from_env(cls, **overrides: Any) -> CrewMapConfig:
        """Create configuration from environment variables.

        Reads ``CREWMAP_*`` variables. Explicit keyword arguments override
        environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        CrewMapConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "CREWMAP_TRACCAR_SERVER": "traccar_server",
            "CREWMAP_TRACCAR_EMAIL": "traccar_email",
            "CREWMAP_TRACCAR_PASSWORD": "traccar_password",
            "CREWMAP_SUPABASE_URL": "supabase_url",
            "CREWMAP_SUPABASE_KEY": "supabase_key",
            "CREWMAP_SESSION_FILE": "session_file",
        }
        _ENV_FLOAT_MAP = {
            "CREWMAP_REQUEST_TIMEOUT": "request_timeout",
            "CREWMAP_RECONNECT_INITIAL_DELAY": "reconnect_initial_delay",
            "CREWMAP_RECONNECT_MAX_DELAY": "reconnect_max_delay",
            "CREWMAP_TRAIL_MAX_AGE": "trail_max_age",
            "CREWMAP_TRAIL_MIN_OPACITY": "trail_min_opacity",
            "CREWMAP_REALTIME_HEARTBEAT": "realtime_heartbeat",
        }
        _ENV_INT_MAP = {
            "CREWMAP_RECONNECT_MAX_ATTEMPTS": "reconnect_max_attempts",
            "CREWMAP_UNRESOLVED_CAPACITY": "unresolved_capacity",
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        try:
            for env_key, field_name in _ENV_FLOAT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = float(val)
            for env_key, field_name in _ENV_INT_MAP.items():
                val = env.get(env_key)
                if val is not None and field_name not in overrides:
                    config_kwargs[field_name] = int(val)
        except ValueError as exc:
            raise ConfigError(f"Invalid numeric setting in environment: {exc}") from exc

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
