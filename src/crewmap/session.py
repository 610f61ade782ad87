"""Local crew session: who this device is, and which crew it belongs to."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

_logger = logging.getLogger(__name__)


class CrewSession(BaseModel):
    """Identity persisted after creating or joining a crew.

    Serialized with camelCase keys (``crewId``, ``memberName``, ...).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    crew_id: str
    crew_name: str
    member_id: str
    member_name: str
    member_color: str
    invite_code: str
    device_id: str
    """Identifier configured in the tracking app (the provider `uniqueId`)."""


class SessionStore:
    """Reads and writes a :class:`CrewSession` as a JSON file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def get(self) -> CrewSession | None:
        """Load the saved session. A missing or unreadable file yields ``None``."""
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            _logger.error("Error reading session %s: %s", self._path, exc)
            return None
        try:
            return CrewSession.model_validate(json.loads(text))
        except (json.JSONDecodeError, ValidationError):
            _logger.warning("Ignoring corrupt session file %s", self._path, exc_info=True)
            return None

    def set(self, session: CrewSession) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(session.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
        tmp.replace(self._path)
        _logger.debug("Saved session for member %s in crew %s", session.member_id, session.crew_id)

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)
