"""
Core Module - Shared data model and normalization helpers.

Every record that crosses a boundary (classifier output, local cache,
remote store, HTTP payload) is converted into one of these types on
ingestion, so the rest of the code only ever sees one canonical shape.
"""

from .models import (
    Coordinates,
    LandmarkCandidate,
    DetectedLocation,
    SavedLocation,
    CompletedLocation,
    GameProgressEntry,
    UserSession,
    UNKNOWN_LANDMARK,
    DETECTION_FAILED,
    UNKNOWN_LOCATION,
    SENTINEL_NAMES,
    DEFAULT_DIFFICULTY,
)
from .normalize import (
    normalize_location_id,
    normalize_completed_locations,
    merge_completed_locations,
    parse_timestamp,
    format_timestamp,
    utc_now,
)

__all__ = [
    "Coordinates",
    "LandmarkCandidate",
    "DetectedLocation",
    "SavedLocation",
    "CompletedLocation",
    "GameProgressEntry",
    "UserSession",
    "UNKNOWN_LANDMARK",
    "DETECTION_FAILED",
    "UNKNOWN_LOCATION",
    "SENTINEL_NAMES",
    "DEFAULT_DIFFICULTY",
    "normalize_location_id",
    "normalize_completed_locations",
    "merge_completed_locations",
    "parse_timestamp",
    "format_timestamp",
    "utc_now",
]
