"""Custom exception hierarchy for crewmap."""

from __future__ import annotations


class CrewMapError(Exception):
    """Base exception for all crewmap errors."""


class ConfigError(CrewMapError):
    """Invalid or missing configuration."""


class TransportError(CrewMapError):
    """HTTP-level failure (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
        body: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        self.body = body
        super().__init__(message)


class FeedError(CrewMapError):
    """Failure talking to the position feed provider."""


class AuthError(FeedError):
    """Feed credentials rejected.

    Not retried automatically; the next explicit ``authenticate()`` call
    is the only retry path.
    """


class DeviceRegistrationError(FeedError):
    """Device creation and the duplicate-recovery lookup both failed."""

    def __init__(self, message: str, *, unique_id: str = "") -> None:
        self.unique_id = unique_id
        super().__init__(message)


class FeedFetchError(FeedError):
    """A one-shot position poll failed."""


class FeedDisconnected(FeedError):
    """The push channel exhausted its reconnect budget.

    Reported to callbacks and logged, never raised out of the feed.
    """

    def __init__(self, message: str, *, attempts: int = 0) -> None:
        self.attempts = attempts
        super().__init__(message)


class StoreError(CrewMapError):
    """Directory & trail store request failed."""

    def __init__(self, message: str, *, table: str = "") -> None:
        self.table = table
        super().__init__(message)


class TrailPersistError(StoreError):
    """A single trail point could not be persisted."""


class CrewFlowError(CrewMapError):
    """Crew creation or join could not establish an identity."""


class InvalidInviteCodeError(CrewFlowError):
    """No crew matches the given invite code."""


class MemberNameTakenError(CrewFlowError):
    """The display name is already used inside the crew."""
