"""
Pydantic Schemas for API - Request/response models for OpenAPI.

Wire format is camelCase (gameId, completedLocations, imageReference);
models accept either camelCase or snake_case on input.

Error Codes:
- IMAGE_REQUIRED: No image file in the upload
- CLASSIFIER_UNAVAILABLE: Vision model could not be reached
- CLASSIFIER_TIMEOUT: Vision model did not answer in time
- UNAUTHENTICATED: Missing, invalid or expired token
- VALIDATION_ERROR: Request body failed validation
- LOCATION_NOT_FOUND: Saved location does not exist
- ACCOUNT_EXISTS: Username or email already registered
- INVALID_CREDENTIALS: Username/password did not match
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Any
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# =============================================================================
# Enums
# =============================================================================

class ErrorCode(str, Enum):
    """Structured error codes."""
    IMAGE_REQUIRED = "IMAGE_REQUIRED"
    CLASSIFIER_UNAVAILABLE = "CLASSIFIER_UNAVAILABLE"
    CLASSIFIER_TIMEOUT = "CLASSIFIER_TIMEOUT"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    LOCATION_NOT_FOUND = "LOCATION_NOT_FOUND"
    ACCOUNT_EXISTS = "ACCOUNT_EXISTS"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Shared Models
# =============================================================================

class CoordinatesInfo(CamelModel):
    lat: float
    lon: float


class CompletedLocationInfo(CamelModel):
    """One completed location of a game."""
    location_id: str
    timestamp: datetime


class GameProgressInfo(CamelModel):
    """Progress for one game."""
    game_id: str
    completed: bool = False
    completed_locations: list[CompletedLocationInfo] = Field(default_factory=list)


class UserInfo(CamelModel):
    id: str
    username: str
    email: Optional[str] = None
    game_progress: list[GameProgressInfo] = Field(default_factory=list)


class SavedLocationInfo(CamelModel):
    """A location in the user's collection."""
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: str = ""
    location: str = "Unknown Location"
    coordinates: Optional[CoordinatesInfo] = None
    image_reference: str = Field(
        "",
        validation_alias=AliasChoices("imageReference", "image_reference", "imageUrl"),
        serialization_alias="imageReference",
        description="Embedded image (data URI) or URL",
    )
    difficulty: str = "medium"
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


class GameLocationInfo(CamelModel):
    id: str
    name: str
    description: str
    points: int
    keywords: list[str] = Field(default_factory=list)


class GameInfo(CamelModel):
    """A game from the catalog."""
    id: str
    name: str
    description: str
    difficulty: str
    total_points: int
    locations: list[GameLocationInfo] = Field(default_factory=list)


# =============================================================================
# Request Models
# =============================================================================

class RegisterRequest(CamelModel):
    username: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)


class LoginRequest(CamelModel):
    username: str
    password: str


class ProgressUpdateRequest(CamelModel):
    """
    Replace completedLocations for one game.

    completedLocations elements may be bare ids or
    {locationId, timestamp} objects.
    """
    game_id: str = Field(..., min_length=1)
    completed: bool = False
    completed_locations: Optional[list[Any]] = None


class SaveLocationRequest(CamelModel):
    location: SavedLocationInfo


class NotesUpdateRequest(CamelModel):
    notes: Optional[str] = None


# =============================================================================
# Response Models
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str = Field(..., description="Human-readable error message")
    error_code: ErrorCode = Field(..., description="Machine-readable error code")
    details: Optional[dict[str, Any]] = Field(None, description="Additional error context")


class DetectedLocationResponse(CamelModel):
    """
    Result of a completed detection run.

    A name of "Unknown Landmark" or "Landmark Detection Failed" means
    nothing was recognized; offer a retry with the same image.
    """
    id: str
    name: str
    description: str
    location: str
    coordinates: Optional[CoordinatesInfo] = None
    image_reference: str
    difficulty: str


class AnalysisResponse(CamelModel):
    analysis: str


class AuthResponse(CamelModel):
    user: UserInfo
    token: str


class ProfileResponse(CamelModel):
    user: UserInfo


class ProgressListResponse(CamelModel):
    game_progress: list[GameProgressInfo]


class LocationsResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None
    locations: list[SavedLocationInfo]


class LocationResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None
    location: SavedLocationInfo


class GamesResponse(CamelModel):
    games: list[GameInfo]


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    service: str
    version: str
    environment: str
