"""Best-effort reverse geocoding of pickup/dropoff coordinates."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Mapping, Protocol

from taxi_ledger.model import SalesRecord

logger = logging.getLogger(__name__)

# Nominatim-style address keys, most specific first
_PLACE_KEYS = ("neighbourhood", "quarter", "suburb", "road", "town", "city")


class Geocoder(Protocol):
    def reverse_geocode(self, lat: float, lon: float) -> Mapping[str, Any]: ...


def parse_coords(coords: str) -> tuple[float, float] | None:
    """``"34.64,135.55"`` -> ``(34.64, 135.55)``; anything else -> None."""
    try:
        lat, lon = (float(part) for part in coords.split(","))
    except ValueError:
        return None
    return lat, lon


def place_name(address: Mapping[str, Any]) -> str:
    fields = address.get("address", address)
    for key in _PLACE_KEYS:
        value = fields.get(key)
        if value:
            return str(value)
    return ""


def _lookup(geocoder: Geocoder, coords: str) -> str:
    point = parse_coords(coords) if coords else None
    if point is None:
        return ""
    try:
        return place_name(geocoder.reverse_geocode(*point))
    except Exception as exc:  # Lookup failures never block a save
        logger.warning("Reverse geocoding %s failed: %s", coords, exc)
        return ""


def prefill_locations(record: SalesRecord, geocoder: Geocoder) -> SalesRecord:
    """Fill blank pickup/dropoff names from their coordinates."""
    pickup = record.pickup_location or _lookup(geocoder, record.pickup_coords)
    dropoff = record.dropoff_location or _lookup(geocoder, record.dropoff_coords)
    if (pickup, dropoff) == (record.pickup_location, record.dropoff_location):
        return record
    return replace(record, pickup_location=pickup, dropoff_location=dropoff)


__all__ = ["Geocoder", "parse_coords", "place_name", "prefill_locations"]
