"""
Data Model - Records shared by detection and sync.

Wire and cache representations use camelCase keys (gameId,
completedLocations, imageReference, ...). Python attributes are
snake_case. Conversion happens only in to_dict/from_dict.

Lifecycle:
- LandmarkCandidate: parser output, not yet geocoded
- DetectedLocation: one per detection call, immutable, owned by the caller
- SavedLocation: a DetectedLocation the user kept, with notes
- GameProgressEntry: one per (user, game)
- UserSession: created on login, destroyed on logout
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

UNKNOWN_LANDMARK = "Unknown Landmark"
DETECTION_FAILED = "Landmark Detection Failed"
UNKNOWN_LOCATION = "Unknown Location"

# Names that mean "try again", not a real identification
SENTINEL_NAMES = frozenset({UNKNOWN_LANDMARK, DETECTION_FAILED})

# No classifier signal informs difficulty yet
DEFAULT_DIFFICULTY = "medium"


@dataclass(frozen=True)
class Coordinates:
    """A geocoded point."""
    lat: float
    lon: float

    def to_dict(self) -> dict[str, float]:
        return {"lat": self.lat, "lon": self.lon}

    @classmethod
    def from_dict(cls, data: dict | None) -> Coordinates | None:
        """Accepts lat/lon, lat/lng or latitude/longitude keys."""
        if not data:
            return None
        lat = data.get("lat", data.get("latitude"))
        lon = data.get("lon", data.get("lng", data.get("longitude")))
        if lat is None or lon is None:
            return None
        try:
            return cls(lat=float(lat), lon=float(lon))
        except (TypeError, ValueError):
            return None


@dataclass(frozen=True)
class LandmarkCandidate:
    """
    Structured classifier answer before geocoding.

    Invariant: name, description and location are non-empty.
    """
    name: str
    description: str
    location: str

    @property
    def is_soft_failure(self) -> bool:
        return self.name in SENTINEL_NAMES

    @property
    def geocode_query(self) -> str:
        if self.location == UNKNOWN_LOCATION:
            return self.name
        return f"{self.name} {self.location}"


@dataclass(frozen=True)
class DetectedLocation:
    """
    Result of one detection call.

    A sentinel name (see SENTINEL_NAMES) is a soft failure: the call
    completed but nothing recognizable was identified.
    """
    id: str
    name: str
    description: str
    location: str
    coordinates: Coordinates | None
    image_reference: str
    difficulty: str = DEFAULT_DIFFICULTY

    @property
    def is_soft_failure(self) -> bool:
        return self.name in SENTINEL_NAMES

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "location": self.location,
            "coordinates": self.coordinates.to_dict() if self.coordinates else None,
            "imageReference": self.image_reference,
            "difficulty": self.difficulty,
        }

    @classmethod
    def from_dict(cls, data: dict) -> DetectedLocation:
        return cls(
            id=str(data["id"]),
            name=data.get("name") or UNKNOWN_LANDMARK,
            description=data.get("description") or "",
            location=data.get("location") or UNKNOWN_LOCATION,
            coordinates=Coordinates.from_dict(data.get("coordinates")),
            image_reference=data.get("imageReference", data.get("imageUrl")) or "",
            difficulty=data.get("difficulty") or DEFAULT_DIFFICULTY,
        )


@dataclass(frozen=True)
class SavedLocation:
    """
    A detected location kept in the user's collection.

    Uniqueness key: id.
    """
    id: str
    name: str
    description: str
    location: str
    coordinates: Coordinates | None
    image_reference: str
    difficulty: str = DEFAULT_DIFFICULTY
    notes: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_detected(
        cls,
        detected: DetectedLocation,
        notes: str | None = None,
        created_at: datetime | None = None,
    ) -> SavedLocation:
        from .normalize import utc_now

        return cls(
            id=detected.id,
            name=detected.name,
            description=detected.description,
            location=detected.location,
            coordinates=detected.coordinates,
            image_reference=detected.image_reference,
            difficulty=detected.difficulty,
            notes=notes,
            created_at=created_at or utc_now(),
        )

    def with_notes(self, notes: str | None) -> SavedLocation:
        return replace(self, notes=notes)

    def to_dict(self) -> dict[str, Any]:
        from .normalize import format_timestamp

        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "location": self.location,
            "coordinates": self.coordinates.to_dict() if self.coordinates else None,
            "imageReference": self.image_reference,
            "difficulty": self.difficulty,
            "notes": self.notes,
            "createdAt": format_timestamp(self.created_at) if self.created_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> SavedLocation:
        from .normalize import parse_timestamp

        detected = DetectedLocation.from_dict(data)
        created_at = data.get("createdAt")
        return cls.from_detected(
            detected,
            notes=data.get("notes"),
            created_at=parse_timestamp(created_at) if created_at else None,
        )


@dataclass(frozen=True)
class CompletedLocation:
    """Canonical completedLocations element."""
    location_id: str
    timestamp: datetime

    def to_dict(self) -> dict[str, str]:
        from .normalize import format_timestamp

        return {
            "locationId": self.location_id,
            "timestamp": format_timestamp(self.timestamp),
        }


@dataclass
class GameProgressEntry:
    """
    Progress for one (user, game) pair.

    completed_locations is an ordered set: no duplicate location_id.
    completed is set by the sync engine from the game catalog.
    """
    game_id: str
    completed: bool = False
    completed_locations: list[CompletedLocation] = field(default_factory=list)

    @classmethod
    def zeroed(cls, game_id: str) -> GameProgressEntry:
        return cls(game_id=game_id)

    @property
    def location_ids(self) -> list[str]:
        return [loc.location_id for loc in self.completed_locations]

    def has_location(self, location_id: str) -> bool:
        return location_id in self.location_ids

    def copy(self) -> GameProgressEntry:
        return GameProgressEntry(
            game_id=self.game_id,
            completed=self.completed,
            completed_locations=list(self.completed_locations),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "gameId": self.game_id,
            "completed": self.completed,
            "completedLocations": [loc.to_dict() for loc in self.completed_locations],
        }

    @classmethod
    def from_dict(cls, data: dict, game_id: str | None = None) -> GameProgressEntry:
        """
        Build from any stored or remote shape.

        completedLocations may hold bare ids or {locationId, timestamp}
        objects; both are normalized here.
        """
        from .normalize import normalize_completed_locations

        return cls(
            game_id=str(data.get("gameId") or game_id or ""),
            completed=bool(data.get("completed", False)),
            completed_locations=normalize_completed_locations(
                data.get("completedLocations") or []
            ),
        )


@dataclass
class UserSession:
    """
    An authenticated session.

    Created on login/registration, mutated by the sync engine on every
    progress write, destroyed on logout.
    """
    user_id: str
    username: str
    token: str
    email: str | None = None
    game_progress: list[GameProgressEntry] = field(default_factory=list)

    def progress_for(self, game_id: str) -> GameProgressEntry | None:
        for entry in self.game_progress:
            if entry.game_id == game_id:
                return entry
        return None

    def put_progress(self, entry: GameProgressEntry):
        for i, existing in enumerate(self.game_progress):
            if existing.game_id == entry.game_id:
                self.game_progress[i] = entry.copy()
                return
        self.game_progress.append(entry.copy())

    def user_dict(self) -> dict[str, Any]:
        """The `user` cache key payload (token is stored separately)."""
        return {
            "id": self.user_id,
            "username": self.username,
            "email": self.email,
            "gameProgress": [entry.to_dict() for entry in self.game_progress],
        }

    @classmethod
    def from_login_payload(cls, user: dict, token: str) -> UserSession:
        """Build from a login/registration response body."""
        return cls(
            user_id=str(user.get("id", "")),
            username=user.get("username", ""),
            token=token,
            email=user.get("email"),
            game_progress=[
                GameProgressEntry.from_dict(entry)
                for entry in user.get("gameProgress") or []
                if isinstance(entry, dict)
            ],
        )
