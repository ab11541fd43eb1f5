"""
FastAPI Application - REST API for the photo hunt client.

Endpoints:
    POST   /api/detect-location           Photo -> DetectedLocation
    POST   /api/analyze-image             Photo -> free-form description
    GET    /api/games                     Built-in games
    POST   /api/auth/register             Create account, returns token
    POST   /api/auth/login                Log in, returns token
    GET    /api/auth/profile              Current user + progress
    POST   /api/auth/progress             Replace completedLocations for a game
    GET    /api/auth/progress/{game_id}   Progress for one game (zeroed if none)
    GET    /api/auth/locations            Saved locations
    POST   /api/auth/locations            Save (upsert by id) a location
    PATCH  /api/auth/locations/{id}       Update notes
    DELETE /api/auth/locations/{id}       Remove a location
    GET    /health                        Health check

Detection always answers 200 when the pipeline completes, including
"Unknown Landmark" results. 4xx only for a missing image, 5xx only when
the classifier could not be reached or timed out.
"""

from contextlib import asynccontextmanager
from typing import Annotated, Optional
import logging

from fastapi import FastAPI, File, Header, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..config import Settings
from ..errors import (
    AccountExists,
    DetectionFailed,
    ImageRequired,
    InvalidAccountData,
    InvalidCredentials,
    LocationNotFound,
    SnapQuestError,
    Unauthenticated,
)
from ..logging_config import setup_logging_from_settings
from .schemas import (
    AnalysisResponse,
    AuthResponse,
    DetectedLocationResponse,
    ErrorCode,
    ErrorResponse,
    GameProgressInfo,
    GamesResponse,
    HealthResponse,
    LocationResponse,
    LocationsResponse,
    LoginRequest,
    NotesUpdateRequest,
    ProfileResponse,
    ProgressListResponse,
    ProgressUpdateRequest,
    RegisterRequest,
    SaveLocationRequest,
)
from .service import APIService

logger = logging.getLogger(__name__)

AUTH_RESPONSES = {401: {"model": ErrorResponse, "description": "Missing or invalid token"}}


def make_error_response(
    error_code: ErrorCode,
    message: str,
    status_code: int = 400,
    details: Optional[dict] = None,
) -> JSONResponse:
    """Create a standardized error response."""
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=message,
            error_code=error_code,
            details=details,
        ).model_dump(mode="json"),
    )


def error_response_for(exc: SnapQuestError) -> JSONResponse:
    """Map a domain error to its HTTP status and error code."""
    if isinstance(exc, ImageRequired):
        return make_error_response(ErrorCode.IMAGE_REQUIRED, str(exc), 400)
    if isinstance(exc, DetectionFailed):
        details = {"cause": str(exc.cause)}
        if exc.timed_out:
            return make_error_response(ErrorCode.CLASSIFIER_TIMEOUT, str(exc), 504, details)
        return make_error_response(ErrorCode.CLASSIFIER_UNAVAILABLE, str(exc), 502, details)
    if isinstance(exc, Unauthenticated):
        return make_error_response(ErrorCode.UNAUTHENTICATED, str(exc), 401)
    if isinstance(exc, LocationNotFound):
        return make_error_response(
            ErrorCode.LOCATION_NOT_FOUND, "Location not found", 404,
            {"location_id": exc.location_id},
        )
    if isinstance(exc, InvalidAccountData):
        return make_error_response(ErrorCode.VALIDATION_ERROR, str(exc), 400)
    if isinstance(exc, AccountExists):
        return make_error_response(ErrorCode.ACCOUNT_EXISTS, str(exc), 400)
    if isinstance(exc, InvalidCredentials):
        return make_error_response(ErrorCode.INVALID_CREDENTIALS, str(exc), 401)
    logger.error(f"Unmapped error: {exc!r}")
    return make_error_response(ErrorCode.INTERNAL_ERROR, str(exc), 500)


def create_app(service: APIService | None = None, settings: Settings | None = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        service: Optional APIService instance (built from settings if not provided)
        settings: Optional Settings (read from the environment if not provided)

    Returns:
        FastAPI application instance
    """
    settings = settings or Settings.from_env()

    if service is None:
        from ..detection import build_pipeline

        setup_logging_from_settings(settings)
        service = APIService(pipeline=build_pipeline(settings))

    api_service = service

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await api_service.pipeline.geocoder.close()

    app = FastAPI(
        title="SnapQuest API",
        description="""
Photo-based location discovery game.

Upload a photo of a landmark to `POST /api/detect-location`. The
response is always a location; a name of `Unknown Landmark` or
`Landmark Detection Failed` means nothing was recognized and the
client should offer a retry with the same photo.

## Error Codes

| Code | Description |
|------|-------------|
| `IMAGE_REQUIRED` | No image in the upload |
| `CLASSIFIER_UNAVAILABLE` | Vision model unreachable |
| `CLASSIFIER_TIMEOUT` | Vision model did not answer in time |
| `UNAUTHENTICATED` | Missing or invalid token |
| `VALIDATION_ERROR` | Invalid request body |
| `LOCATION_NOT_FOUND` | Saved location does not exist |
| `ACCOUNT_EXISTS` | Username or email already registered |
| `INVALID_CREDENTIALS` | Login failed |
        """,
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # =========================================================================
    # Error handlers
    # =========================================================================

    @app.exception_handler(SnapQuestError)
    async def handle_domain_error(request: Request, exc: SnapQuestError):
        return error_response_for(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return make_error_response(
            ErrorCode.VALIDATION_ERROR,
            "Invalid request",
            400,
            {"errors": jsonable_encoder(exc.errors())},
        )

    def current_account(authorization: Optional[str]):
        return api_service.authenticate(authorization)

    # =========================================================================
    # Detection Endpoints
    # =========================================================================

    @app.post(
        "/api/detect-location",
        response_model=DetectedLocationResponse,
        responses={
            400: {"model": ErrorResponse, "description": "No image provided"},
            502: {"model": ErrorResponse, "description": "Classifier unavailable"},
            504: {"model": ErrorResponse, "description": "Classifier timed out"},
        },
        tags=["Detection"],
        summary="Identify the landmark in a photo",
    )
    async def detect_location(
        image: Annotated[Optional[UploadFile], File(description="Photo of a landmark")] = None,
    ) -> DetectedLocationResponse:
        """
        Run the detection pipeline on an uploaded photo.

        Coordinates are null when geocoding failed or nothing was recognized.
        """
        image_bytes = await image.read() if image is not None else None
        return await api_service.detect_location(
            image_bytes, image.content_type if image is not None else None
        )

    @app.post(
        "/api/analyze-image",
        response_model=AnalysisResponse,
        responses={
            400: {"model": ErrorResponse, "description": "No image provided"},
            502: {"model": ErrorResponse, "description": "Classifier unavailable"},
            504: {"model": ErrorResponse, "description": "Classifier timed out"},
        },
        tags=["Detection"],
        summary="Describe a photo in free text",
    )
    async def analyze_image(
        image: Annotated[Optional[UploadFile], File(description="Photo to describe")] = None,
    ) -> AnalysisResponse:
        image_bytes = await image.read() if image is not None else None
        return await api_service.analyze_image(
            image_bytes, image.content_type if image is not None else None
        )

    @app.get(
        "/api/games",
        response_model=GamesResponse,
        tags=["Games"],
        summary="List built-in games",
    )
    async def list_games() -> GamesResponse:
        return api_service.list_games()

    # =========================================================================
    # Account Endpoints
    # =========================================================================

    @app.post(
        "/api/auth/register",
        response_model=AuthResponse,
        status_code=201,
        responses={400: {"model": ErrorResponse, "description": "Account exists or invalid data"}},
        tags=["Auth"],
        summary="Create an account",
    )
    def register(request: RegisterRequest) -> AuthResponse:
        return api_service.register(request)

    @app.post(
        "/api/auth/login",
        response_model=AuthResponse,
        responses={401: {"model": ErrorResponse, "description": "Invalid credentials"}},
        tags=["Auth"],
        summary="Log in",
    )
    def login(request: LoginRequest) -> AuthResponse:
        return api_service.login(request)

    @app.get(
        "/api/auth/profile",
        response_model=ProfileResponse,
        responses=AUTH_RESPONSES,
        tags=["Auth"],
        summary="Current user and progress",
    )
    def profile(authorization: Annotated[Optional[str], Header()] = None) -> ProfileResponse:
        return api_service.profile(current_account(authorization))

    # =========================================================================
    # Progress Endpoints
    # =========================================================================

    @app.post(
        "/api/auth/progress",
        response_model=ProgressListResponse,
        responses=AUTH_RESPONSES,
        tags=["Progress"],
        summary="Replace completed locations for a game",
    )
    def update_progress(
        request: ProgressUpdateRequest,
        authorization: Annotated[Optional[str], Header()] = None,
    ) -> ProgressListResponse:
        """
        Idempotent: the submitted completedLocations replace the stored
        ones. `completed` only ever moves from false to true.
        """
        return api_service.update_progress(current_account(authorization), request)

    @app.get(
        "/api/auth/progress/{game_id:path}",
        response_model=GameProgressInfo,
        responses=AUTH_RESPONSES,
        tags=["Progress"],
        summary="Progress for one game",
    )
    def get_progress(
        game_id: str,
        authorization: Annotated[Optional[str], Header()] = None,
    ) -> GameProgressInfo:
        """Returns a zeroed entry when the game has no progress yet."""
        return api_service.get_progress(current_account(authorization), game_id)

    # =========================================================================
    # Saved Location Endpoints
    # =========================================================================

    @app.get(
        "/api/auth/locations",
        response_model=LocationsResponse,
        responses=AUTH_RESPONSES,
        tags=["Locations"],
        summary="List saved locations",
    )
    def list_locations(authorization: Annotated[Optional[str], Header()] = None) -> LocationsResponse:
        return api_service.list_locations(current_account(authorization))

    @app.post(
        "/api/auth/locations",
        response_model=LocationsResponse,
        responses=AUTH_RESPONSES,
        tags=["Locations"],
        summary="Save a location",
    )
    def save_location(
        request: SaveLocationRequest,
        authorization: Annotated[Optional[str], Header()] = None,
    ) -> LocationsResponse:
        """Upsert by id; existing notes are kept when the new copy has none."""
        return api_service.save_location(current_account(authorization), request)

    @app.patch(
        "/api/auth/locations/{location_id:path}",
        response_model=LocationResponse,
        responses={**AUTH_RESPONSES, 404: {"model": ErrorResponse}},
        tags=["Locations"],
        summary="Update notes of a saved location",
    )
    def update_notes(
        location_id: str,
        request: NotesUpdateRequest,
        authorization: Annotated[Optional[str], Header()] = None,
    ) -> LocationResponse:
        return api_service.update_notes(current_account(authorization), location_id, request)

    @app.delete(
        "/api/auth/locations/{location_id:path}",
        response_model=LocationsResponse,
        responses={**AUTH_RESPONSES, 404: {"model": ErrorResponse}},
        tags=["Locations"],
        summary="Remove a saved location",
    )
    def delete_location(
        location_id: str,
        authorization: Annotated[Optional[str], Header()] = None,
    ) -> LocationsResponse:
        return api_service.delete_location(current_account(authorization), location_id)

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get(
        "/health",
        response_model=HealthResponse,
        tags=["System"],
        summary="Health check",
    )
    async def health_check() -> HealthResponse:
        """Health check endpoint for load balancers."""
        return HealthResponse(
            status="healthy",
            service="snapquest",
            version=__version__,
            environment=settings.env,
        )

    @app.get("/", tags=["System"])
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "SnapQuest API",
            "version": __version__,
            "docs": "/api/docs",
            "health": "/health",
        }

    return app


# For running directly: uvicorn snapquest.api.app:app
app = create_app()
