"""Position feed session credentials."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Credentials(BaseModel):
    """Session returned after a successful feed login.

    Parameters
    ----------
    user_id : str
        Provider user id.
    email : str
        Login email.
    name : str
        Display name of the provider account.
    cookie : str or None
        Session cookie header value (``JSESSIONID=...``), if one was set.
    raw : dict
        Full session payload for access to additional fields.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    email: str = ""
    name: str = ""
    cookie: str | None = Field(default=None, repr=False)
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)
