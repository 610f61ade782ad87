"""Scrub credentials from request payloads before they reach DEBUG logs.

Traccar logins carry an email and password, Supabase calls carry the
anon key and bearer token.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

REDACTED = "<redacted>"
SENSITIVE_KEYS = frozenset({"email", "password", "apikey", "authorization", "access_token", "cookie"})


def redact_for_log(value: Any, *, max_string: int = 512) -> Any:
    """Copy of *value* with sensitive keys masked and long strings cut."""
    if isinstance(value, Mapping):
        return {
            str(key): REDACTED if str(key).lower() in SENSITIVE_KEYS else redact_for_log(item, max_string=max_string)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [redact_for_log(item, max_string=max_string) for item in value]
    if isinstance(value, str) and len(value) > max_string:
        return f"{value[:max_string]}...<truncated>"
    return value
