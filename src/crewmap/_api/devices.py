"""Device endpoints.

Endpoints:
  - GET /api/devices (optionally filtered by ``uniqueId``)
  - POST /api/devices
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from crewmap._transport import Transport
from crewmap.exceptions import TransportError
from crewmap.models.device import Device

_logger = logging.getLogger(__name__)

DEVICES_ENDPOINT = "/api/devices"

# Markers in the provider's error body when uniqueId collides.
_DUPLICATE_MARKERS = ("Duplicate entry", "uniqueId")


def is_duplicate_error(exc: TransportError) -> bool:
    """Whether a create failure means another client registered the device first."""
    text = exc.body or str(exc)
    return any(marker in text for marker in _DUPLICATE_MARKERS)


def _parse_devices(response: Any) -> list[Device]:
    if not isinstance(response, list):
        return []
    devices: list[Device] = []
    for item in response:
        if not isinstance(item, dict):
            continue
        try:
            devices.append(Device.model_validate(item))
        except ValidationError:
            _logger.debug("Skipping malformed device record id=%s", item.get("id"), exc_info=True)
    return devices


async def list_devices(transport: Transport, *, unique_id: str | None = None) -> list[Device]:
    """List devices visible to the session, optionally filtered by unique id."""
    params = {"uniqueId": unique_id} if unique_id else None
    response = await transport.request("GET", DEVICES_ENDPOINT, params=params)
    return _parse_devices(response)


async def find_device(transport: Transport, unique_id: str) -> Device | None:
    """Return the device registered under *unique_id*, if any."""
    for device in await list_devices(transport, unique_id=unique_id):
        if device.unique_id == unique_id:
            return device
    return None


async def create_device(transport: Transport, name: str, unique_id: str) -> Device:
    """Create a device. Raises :class:`TransportError` on rejection."""
    response = await transport.request(
        "POST",
        DEVICES_ENDPOINT,
        json_body={"name": name, "uniqueId": unique_id},
        basic_auth=True,
    )
    if not isinstance(response, dict):
        raise TransportError(
            f"Unexpected device create response: {response!r}"[:200],
            endpoint=DEVICES_ENDPOINT,
        )
    return Device.model_validate(response)
