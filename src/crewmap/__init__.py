"""crewmap - Live location sync for small crews (Traccar feed + Supabase store)."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("crewmap")
except PackageNotFoundError:
    __version__ = "0+local"
from crewmap.config import CrewMapConfig
from crewmap.crews import create_crew, generate_invite_code, generate_member_color, join_crew
from crewmap.exceptions import (
    AuthError,
    ConfigError,
    CrewFlowError,
    CrewMapError,
    DeviceRegistrationError,
    FeedDisconnected,
    FeedError,
    FeedFetchError,
    InvalidInviteCodeError,
    MemberNameTakenError,
    StoreError,
    TrailPersistError,
    TransportError,
)
from crewmap.feed import PositionFeed
from crewmap.models import Credentials, Crew, Device, Member, Position, TrailPoint
from crewmap.session import CrewSession, SessionStore
from crewmap.store import SupabaseStore
from crewmap.tracker import CrewTracker, open_tracker
from crewmap.view import Marker, Polyline, current_markers, focus_point, trail_geometry, trail_opacity

__all__ = [
    "__version__",
    "AuthError",
    "ConfigError",
    "Credentials",
    "Crew",
    "CrewFlowError",
    "CrewMapConfig",
    "CrewMapError",
    "CrewSession",
    "CrewTracker",
    "Device",
    "DeviceRegistrationError",
    "FeedDisconnected",
    "FeedError",
    "FeedFetchError",
    "InvalidInviteCodeError",
    "Marker",
    "Member",
    "MemberNameTakenError",
    "Polyline",
    "Position",
    "PositionFeed",
    "SessionStore",
    "StoreError",
    "SupabaseStore",
    "TrailPersistError",
    "TrailPoint",
    "TransportError",
    "create_crew",
    "current_markers",
    "focus_point",
    "generate_invite_code",
    "generate_member_color",
    "join_crew",
    "open_tracker",
    "trail_geometry",
    "trail_opacity",
]
