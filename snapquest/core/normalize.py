"""
Normalization helpers.

completedLocations arrives in several shapes depending on the source:
bare ids (ints or strings), {locationId, timestamp} objects, or objects
with an `id` key. Everything is turned into CompletedLocation here.
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Iterable
import logging

from .models import CompletedLocation

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """ISO 8601, UTC, `Z` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime:
    """
    Parse a timestamp from a datetime, ISO string or epoch number.

    Epoch values above 1e12 are taken as milliseconds. Anything
    unparseable falls back to now.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bool) or value is None:
        return utc_now()
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > 1e12 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return utc_now()
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return utc_now()
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return utc_now()


def normalize_location_id(value: Any) -> str:
    """
    Canonical string id for a location.

    Raises ValueError for values that cannot identify a location.
    """
    if isinstance(value, dict):
        value = value.get("locationId", value.get("location_id", value.get("id")))
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Invalid location id: {value!r}")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    if not text:
        raise ValueError("Location id is empty")
    return text


def _to_completed(item: Any, default_timestamp: datetime | None) -> CompletedLocation:
    if isinstance(item, CompletedLocation):
        return item
    location_id = normalize_location_id(item)
    raw_timestamp = item.get("timestamp") if isinstance(item, dict) else None
    if raw_timestamp is None and default_timestamp is not None:
        timestamp = default_timestamp
    else:
        timestamp = parse_timestamp(raw_timestamp)
    return CompletedLocation(location_id=location_id, timestamp=timestamp)


def normalize_completed_locations(
    items: Iterable[Any],
    default_timestamp: datetime | None = None,
) -> list[CompletedLocation]:
    """
    Normalize and de-duplicate a completedLocations collection.

    First occurrence wins; order is preserved. Malformed elements are
    dropped with a warning rather than failing the whole collection.
    Anything other than a list or tuple reads as empty.
    """
    result: list[CompletedLocation] = []
    if items is None:
        return result
    if not isinstance(items, (list, tuple)):
        logger.warning(f"completedLocations is not a list: {items!r}; treating as empty")
        return result
    seen: set[str] = set()
    for item in items:
        try:
            completed = _to_completed(item, default_timestamp)
        except ValueError as e:
            logger.warning(f"Dropping malformed completed location {item!r}: {e}")
            continue
        if completed.location_id in seen:
            continue
        seen.add(completed.location_id)
        result.append(completed)
    return result


def merge_completed_locations(
    existing: Iterable[CompletedLocation],
    incoming: Iterable[CompletedLocation],
) -> list[CompletedLocation]:
    """
    Additive merge: union by location_id.

    Existing order comes first. For ids present on both sides the
    earlier timestamp is kept. Nothing is ever removed.
    """
    merged: dict[str, CompletedLocation] = {}
    for loc in list(existing) + list(incoming):
        current = merged.get(loc.location_id)
        if current is None:
            merged[loc.location_id] = loc
        elif loc.timestamp < current.timestamp:
            merged[loc.location_id] = loc
    return list(merged.values())
