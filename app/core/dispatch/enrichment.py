# app/core/dispatch/enrichment.py
"""
Location enrichment for group notifications.

Reads ``GPSLocation/{uid}`` and appends ``" (Lat: .., Lon: ..)"`` to the
body.  Each coordinate degrades to "Unknown" on its own; a missing
longitude never hides a valid latitude.
"""
from __future__ import annotations

import math
from typing import Any

from app.core.dispatch.models import UNKNOWN, LocationContext, NotificationPayload
from app.core.dispatch.ports import KeyedStore
from app.core.errors import DependencyError
from app.infra.logging_config import get_logger, mask_coordinates

logger = get_logger(__name__)


def parse_coordinate(value: Any) -> float | str:
    """Finite float from a number or numeric string, else ``UNKNOWN``."""
    if isinstance(value, bool) or value is None:
        return UNKNOWN
    if isinstance(value, str):
        value = value.strip()
    elif not isinstance(value, (int, float)):
        return UNKNOWN
    try:
        number = float(value)
    except (ValueError, OverflowError):
        return UNKNOWN
    if not math.isfinite(number):
        return UNKNOWN
    return number


class ContextEnricher:
    def __init__(self, locations: KeyedStore) -> None:
        self._locations = locations

    async def lookup(self, recipient_id: str) -> LocationContext:
        try:
            record = await self._locations.get(recipient_id)
        except DependencyError as exc:
            logger.warning(
                f"Location unavailable, sending without it: {exc.detail}",
                extra={"recipient_id": recipient_id},
            )
            return LocationContext()

        if not isinstance(record, dict):
            return LocationContext()

        location = LocationContext(
            latitude=parse_coordinate(record.get("latitude")),
            longitude=parse_coordinate(record.get("longitude")),
        )
        if location.is_known:
            logger.debug(
                f"Location found: {mask_coordinates(location.latitude, location.longitude)}",
                extra={"recipient_id": recipient_id},
            )
        return location

    async def enrich(self, recipient_id: str, payload: NotificationPayload) -> NotificationPayload:
        return payload.with_location(await self.lookup(recipient_id))
