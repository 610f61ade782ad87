"""Session endpoint.

Endpoint:
  - POST /api/session (form-encoded email/password)
"""

from __future__ import annotations

import logging
from typing import Any

from crewmap._transport import Transport
from crewmap.exceptions import AuthError, TransportError
from crewmap.models.credentials import Credentials

_logger = logging.getLogger(__name__)

SESSION_ENDPOINT = "/api/session"


def parse_session_response(response: Any, *, cookie: str | None = None) -> Credentials:
    """Parse the user record returned by a successful login."""
    if not isinstance(response, dict) or response.get("id") is None:
        raise AuthError("Session response did not contain a user record")
    return Credentials(
        user_id=str(response["id"]),
        email=str(response.get("email") or ""),
        name=str(response.get("name") or ""),
        cookie=cookie or None,
        raw=response,
    )


async def open_session(transport: Transport, email: str, password: str) -> Credentials:
    """Exchange account credentials for a session cookie.

    Raises
    ------
    AuthError
        The provider rejected the credentials or could not be reached.
    """
    try:
        response = await transport.request(
            "POST",
            SESSION_ENDPOINT,
            form={"email": email, "password": password},
        )
    except TransportError as exc:
        _logger.debug("Feed login failed status=%s", exc.status_code)
        raise AuthError(f"Position feed authentication failed: {exc}") from exc

    cookie = getattr(transport, "cookie_header", None)
    return parse_session_response(response, cookie=cookie)
