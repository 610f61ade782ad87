"""Directory & trail store adapters."""

from crewmap.store.base import (
    CREWS_TABLE,
    MEMBERS_TABLE,
    TRAILS_TABLE,
    ChangeCallback,
    ChangeEvent,
    ChangeType,
    DirectoryStore,
    Subscription,
)
from crewmap.store.supabase import SupabaseStore

__all__ = [
    "CREWS_TABLE",
    "MEMBERS_TABLE",
    "TRAILS_TABLE",
    "ChangeCallback",
    "ChangeEvent",
    "ChangeType",
    "DirectoryStore",
    "Subscription",
    "SupabaseStore",
]
