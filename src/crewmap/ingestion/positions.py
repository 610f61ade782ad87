"""Position ingestion.

Turns raw Traccar position records (REST poll or push message) into
:class:`crewmap.models.position.Position` batches.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError

from crewmap.models.position import Position

_logger = logging.getLogger(__name__)


def normalize_positions(records: Iterable[Any]) -> list[Position]:
    """Convert raw Traccar position records into :class:`Position` objects.

    Records without a device id, coordinates or any usable timestamp are
    dropped with a debug log; the rest keep their delivery order.
    """
    positions: list[Position] = []
    for record in records:
        if not isinstance(record, dict):
            continue
        try:
            positions.append(Position.from_traccar(record))
        except ValidationError:
            _logger.debug("Dropping unusable position record deviceId=%s", record.get("deviceId"), exc_info=True)
    return positions


def positions_from_message(message: Any) -> list[Position] | None:
    """Extract the position batch from a push-channel message.

    Returns ``None`` when the message carries no ``positions`` key
    (device or event updates), an empty list when it carries an empty batch.
    """
    if not isinstance(message, dict):
        return None
    records = message.get("positions")
    if not isinstance(records, list):
        return None
    return normalize_positions(records)
