"""Positions endpoint.

Endpoint:
  - GET /api/positions (optionally with repeated ``deviceId`` params)
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from crewmap._transport import Transport
from crewmap.exceptions import FeedFetchError, TransportError
from crewmap.ingestion.positions import normalize_positions
from crewmap.models.position import Position

_logger = logging.getLogger(__name__)

POSITIONS_ENDPOINT = "/api/positions"


async def fetch_positions(transport: Transport, device_ids: Sequence[str] | None = None) -> list[Position]:
    """Poll the latest known positions.

    Raises
    ------
    FeedFetchError
        The poll failed at the transport level or returned a non-list body.
    """
    params = [("deviceId", str(device_id)) for device_id in device_ids] if device_ids else None
    try:
        response = await transport.request("GET", POSITIONS_ENDPOINT, params=params)
    except TransportError as exc:
        raise FeedFetchError(f"Position poll failed: {exc}") from exc

    if not isinstance(response, list):
        raise FeedFetchError(f"Position poll returned {type(response).__name__}, expected list")

    positions = normalize_positions(response)
    _logger.debug("Fetched %d positions (%d records)", len(positions), len(response))
    return positions
