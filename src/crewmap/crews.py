"""Create and join crews.

Both flows register this device with the position feed, add a member row
and return the :class:`CrewSession` to persist locally.
"""

from __future__ import annotations

import logging
import secrets

from crewmap.exceptions import CrewFlowError, InvalidInviteCodeError, MemberNameTakenError
from crewmap.feed import PositionFeed
from crewmap.session import CrewSession
from crewmap.store.base import DirectoryStore

_logger = logging.getLogger(__name__)

INVITE_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
INVITE_CODE_LENGTH = 6
MEMBER_COLORS = (
    "#FF6B6B",
    "#4ECDC4",
    "#45B7D1",
    "#FFA07A",
    "#98D8C8",
    "#F7DC6F",
    "#BB8FCE",
    "#85C1E2",
    "#F8B739",
    "#52B788",
)


def generate_invite_code(length: int = INVITE_CODE_LENGTH) -> str:
    """Random code without look-alike characters (no ``0``/``O``, ``1``/``I``)."""
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(length))


def generate_member_color() -> str:
    return secrets.choice(MEMBER_COLORS)


def _require(**fields: str) -> dict[str, str]:
    cleaned = {name: (value or "").strip() for name, value in fields.items()}
    missing = [name for name, value in cleaned.items() if not value]
    if missing:
        raise CrewFlowError(f"Missing required fields: {', '.join(missing)}")
    return cleaned


async def _unused_invite_code(store: DirectoryStore, attempts: int) -> str:
    for _ in range(attempts):
        code = generate_invite_code()
        if await store.find_crew_by_invite_code(code) is None:
            return code
        _logger.debug("Invite code collision, retrying")
    raise CrewFlowError(f"No unused invite code after {attempts} attempts")


async def create_crew(
    store: DirectoryStore,
    feed: PositionFeed,
    *,
    crew_name: str,
    member_name: str,
    device_unique_id: str,
    code_attempts: int = 10,
) -> CrewSession:
    """Create a crew with this device as its first member.

    Parameters
    ----------
    store : DirectoryStore
        Where the crew and member rows are written.
    feed : PositionFeed
        Used to find or register the tracking device.
    crew_name, member_name : str
        Display names; surrounding whitespace is stripped.
    device_unique_id : str
        Identifier the tracking app reports with.
    code_attempts : int
        How many random invite codes to try before giving up.

    Raises
    ------
    CrewFlowError
        A required field is empty or no unused invite code was found.
    DeviceRegistrationError, AuthError
        The device could not be registered with the position feed.
    StoreError
        A store read or write failed.
    """
    fields = _require(crew_name=crew_name, member_name=member_name, device_unique_id=device_unique_id)
    invite_code = await _unused_invite_code(store, code_attempts)
    device = await feed.register_device(fields["member_name"], fields["device_unique_id"])
    crew = await store.insert_crew(name=fields["crew_name"], invite_code=invite_code)
    member = await store.insert_member(
        crew_id=crew.id,
        name=fields["member_name"],
        device_id=device.id,
        color=generate_member_color(),
    )
    _logger.info("Created crew %s (%s) with member %s", crew.id, crew.invite_code, member.id)
    return CrewSession(
        crew_id=crew.id,
        crew_name=crew.name,
        member_id=member.id,
        member_name=member.name,
        member_color=member.color,
        invite_code=crew.invite_code,
        device_id=fields["device_unique_id"],
    )


async def join_crew(
    store: DirectoryStore,
    feed: PositionFeed,
    *,
    invite_code: str,
    member_name: str,
    device_unique_id: str,
) -> CrewSession:
    """Join the crew behind *invite_code* as *member_name*.

    Raises
    ------
    InvalidInviteCodeError
        No crew uses the code.
    MemberNameTakenError
        The crew already has a member with that name.
    """
    fields = _require(invite_code=invite_code, member_name=member_name, device_unique_id=device_unique_id)
    code = fields["invite_code"].upper()
    crew = await store.find_crew_by_invite_code(code)
    if crew is None:
        raise InvalidInviteCodeError(f"Invalid invite code: {code}")
    if await store.find_member_by_name(crew.id, fields["member_name"]) is not None:
        raise MemberNameTakenError(f"Name {fields['member_name']!r} is already taken in this crew")

    device = await feed.register_device(fields["member_name"], fields["device_unique_id"])
    member = await store.insert_member(
        crew_id=crew.id,
        name=fields["member_name"],
        device_id=device.id,
        color=generate_member_color(),
    )
    _logger.info("Member %s joined crew %s", member.id, crew.id)
    return CrewSession(
        crew_id=crew.id,
        crew_name=crew.name,
        member_id=member.id,
        member_name=member.name,
        member_color=member.color,
        invite_code=crew.invite_code,
        device_id=fields["device_unique_id"],
    )
