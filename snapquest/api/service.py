"""
API Service - Business logic between the HTTP layer and the domain.

The service:
1. Runs detections through the DetectionPipeline
2. Authenticates bearer tokens against the AccountDirectory
3. Converts domain objects to response schemas

Domain errors (ImageRequired, DetectionFailed, Unauthenticated, ...)
propagate to the caller; the FastAPI app maps them to error responses.

This layer is framework-agnostic (can be used with FastAPI, Flask, etc.)
"""

from __future__ import annotations
from dataclasses import dataclass, field
import logging

from ..core.models import GameProgressEntry, SavedLocation
from ..detection import DetectionPipeline, ScriptedClassifier
from ..games import GameCatalog, default_catalog
from ..server import Account, AccountDirectory
from ..errors import Unauthenticated
from .schemas import (
    AnalysisResponse,
    AuthResponse,
    DetectedLocationResponse,
    GameInfo,
    GameLocationInfo,
    GameProgressInfo,
    GamesResponse,
    LocationResponse,
    LocationsResponse,
    LoginRequest,
    NotesUpdateRequest,
    ProfileResponse,
    ProgressListResponse,
    ProgressUpdateRequest,
    RegisterRequest,
    SaveLocationRequest,
    SavedLocationInfo,
    UserInfo,
)

logger = logging.getLogger(__name__)


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an Authorization header value."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() == "bearer":
        return token.strip() or None
    return authorization.strip() or None


def _progress_info(entry: GameProgressEntry) -> GameProgressInfo:
    return GameProgressInfo.model_validate(entry.to_dict())


def _location_info(location: SavedLocation) -> SavedLocationInfo:
    return SavedLocationInfo.model_validate(location.to_dict())


def _user_info(account: Account) -> UserInfo:
    return UserInfo.model_validate(account.public_dict())


@dataclass
class APIService:
    """
    Main API service.

    Usage:
        service = APIService(pipeline=build_pipeline(settings))

        # Detect a landmark
        response = await service.detect_location(image_bytes, "image/jpeg")

        # Record progress
        account = service.authenticate("Bearer <token>")
        service.update_progress(account, ProgressUpdateRequest(...))
    """
    pipeline: DetectionPipeline = field(
        default_factory=lambda: DetectionPipeline(classifier=ScriptedClassifier())
    )
    directory: AccountDirectory = field(default_factory=AccountDirectory)
    catalog: GameCatalog = field(default_factory=default_catalog)

    # =========================================================================
    # Detection
    # =========================================================================

    async def detect_location(self, image_bytes: bytes | None, mime_type: str | None) -> DetectedLocationResponse:
        detected = await self.pipeline.detect(image_bytes, mime_type)
        return DetectedLocationResponse.model_validate(detected.to_dict())

    async def analyze_image(self, image_bytes: bytes | None, mime_type: str | None) -> AnalysisResponse:
        analysis = await self.pipeline.analyze(image_bytes, mime_type)
        return AnalysisResponse(analysis=analysis)

    # =========================================================================
    # Accounts
    # =========================================================================

    def register(self, request: RegisterRequest) -> AuthResponse:
        account, token = self.directory.register(request.username, request.email, request.password)
        return AuthResponse(user=_user_info(account), token=token)

    def login(self, request: LoginRequest) -> AuthResponse:
        account, token = self.directory.login(request.username, request.password)
        return AuthResponse(user=_user_info(account), token=token)

    def authenticate(self, authorization: str | None) -> Account:
        token = bearer_token(authorization)
        if token is None:
            raise Unauthenticated("No authentication token provided")
        return self.directory.authenticate(token)

    def profile(self, account: Account) -> ProfileResponse:
        return ProfileResponse(user=_user_info(account))

    # =========================================================================
    # Progress
    # =========================================================================

    def update_progress(self, account: Account, request: ProgressUpdateRequest) -> ProgressListResponse:
        entries = self.directory.upsert_progress(
            account,
            request.game_id,
            request.completed_locations,
            request.completed,
        )
        return ProgressListResponse(game_progress=[_progress_info(e) for e in entries])

    def get_progress(self, account: Account, game_id: str) -> GameProgressInfo:
        return _progress_info(self.directory.fetch_progress(account, game_id))

    # =========================================================================
    # Saved locations
    # =========================================================================

    def list_locations(self, account: Account) -> LocationsResponse:
        locations = self.directory.list_saved_locations(account)
        return LocationsResponse(locations=[_location_info(loc) for loc in locations])

    def save_location(self, account: Account, request: SaveLocationRequest) -> LocationsResponse:
        location = SavedLocation.from_dict(request.location.model_dump(by_alias=True, mode="json"))
        locations = self.directory.add_saved_location(account, location)
        return LocationsResponse(
            message="Location saved successfully",
            locations=[_location_info(loc) for loc in locations],
        )

    def update_notes(self, account: Account, location_id: str, request: NotesUpdateRequest) -> LocationResponse:
        location = self.directory.update_notes(account, location_id, request.notes)
        return LocationResponse(
            message="Notes updated successfully",
            location=_location_info(location),
        )

    def delete_location(self, account: Account, location_id: str) -> LocationsResponse:
        locations = self.directory.remove_saved_location(account, location_id)
        return LocationsResponse(
            message="Location removed successfully",
            locations=[_location_info(loc) for loc in locations],
        )

    # =========================================================================
    # Catalog
    # =========================================================================

    def list_games(self) -> GamesResponse:
        return GamesResponse(games=[
            GameInfo(
                id=game.id,
                name=game.name,
                description=game.description,
                difficulty=game.difficulty,
                total_points=game.total_points,
                locations=[
                    GameLocationInfo(
                        id=loc.id,
                        name=loc.name,
                        description=loc.description,
                        points=loc.points,
                        keywords=list(loc.keywords),
                    )
                    for loc in game.locations
                ],
            )
            for game in self.catalog.list_games()
        ])
