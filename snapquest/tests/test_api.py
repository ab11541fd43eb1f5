"""
Tests for the HTTP API.

Tests:
- Detection endpoints and their status codes
- Accounts, progress and saved locations
- Error response structure
"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from ..api.app import create_app
from ..api.service import APIService, bearer_token
from ..config import Settings
from ..detection import DetectionPipeline, ScriptedClassifier, StaticGeocodeResolver
from ..detection.classifier import ClassifierAdapter
from ..errors import ClassifierUnavailable
from .conftest import JPEG_BYTES, ST_MICHAEL


class HangingClassifier(ClassifierAdapter):
    async def classify(self, image_bytes, mime_type, variant):
        await asyncio.sleep(5)
        return ""


def make_client(classifier=None, classifier_timeout=30.0) -> TestClient:
    pipeline = DetectionPipeline(
        classifier=classifier or ScriptedClassifier(),
        geocoder=StaticGeocodeResolver({"Saint Michael's Church Cluj-Napoca, Romania": ST_MICHAEL}),
        classifier_timeout=classifier_timeout,
    )
    return TestClient(create_app(service=APIService(pipeline=pipeline), settings=Settings()))


def upload(content=JPEG_BYTES, mime="image/jpeg"):
    return {"image": ("photo.jpg", content, mime)}


@pytest.fixture
def client():
    return make_client()


@pytest.fixture
def auth(client):
    """Authorization header of a freshly registered account."""
    response = client.post("/api/auth/register", json={
        "username": "ana", "email": "ana@example.com", "password": "secret",
    })
    return {"Authorization": f"Bearer {response.json()['token']}"}


class TestDetectLocation:
    """Tests for POST /api/detect-location."""

    def test_detects_landmark(self, client):
        response = client.post("/api/detect-location", files=upload())

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Saint Michael's Church"
        assert data["location"] == "Cluj-Napoca, Romania"
        assert data["coordinates"] == {"lat": ST_MICHAEL.lat, "lon": ST_MICHAEL.lon}
        assert data["imageReference"].startswith("data:image/jpeg;base64,")
        assert data["difficulty"] == "medium"
        assert data["id"]

    def test_soft_failure_is_200(self):
        """Unrecognized photos still answer 200 with a sentinel name."""
        client = make_client(ScriptedClassifier(structured="I see a tower."))

        response = client.post("/api/detect-location", files=upload())

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Unknown Landmark"
        assert data["description"] == "I see a tower."
        assert data["coordinates"] is None

    def test_missing_image(self, client):
        response = client.post("/api/detect-location")
        assert response.status_code == 400
        assert response.json()["error_code"] == "IMAGE_REQUIRED"

    def test_empty_image(self, client):
        response = client.post("/api/detect-location", files=upload(content=b""))
        assert response.status_code == 400
        assert response.json()["error_code"] == "IMAGE_REQUIRED"

    def test_missing_image_never_calls_classifier(self):
        classifier = ScriptedClassifier()
        make_client(classifier).post("/api/detect-location")
        assert classifier.calls == []

    def test_classifier_unavailable(self):
        client = make_client(ScriptedClassifier(error=ClassifierUnavailable("connection refused")))

        response = client.post("/api/detect-location", files=upload())

        assert response.status_code == 502
        data = response.json()
        assert data["error_code"] == "CLASSIFIER_UNAVAILABLE"
        assert "connection refused" in data["details"]["cause"]

    def test_classifier_timeout(self):
        client = make_client(HangingClassifier(), classifier_timeout=0.05)
        response = client.post("/api/detect-location", files=upload())
        assert response.status_code == 504
        assert response.json()["error_code"] == "CLASSIFIER_TIMEOUT"


class TestAnalyzeImage:
    def test_analysis(self, client):
        response = client.post("/api/analyze-image", files=upload())
        assert response.status_code == 200
        assert "Saint Michael's Church" in response.json()["analysis"]

    def test_missing_image(self, client):
        response = client.post("/api/analyze-image")
        assert response.status_code == 400
        assert response.json()["error_code"] == "IMAGE_REQUIRED"


class TestAuth:
    """Tests for register/login/profile."""

    def test_register(self, client):
        response = client.post("/api/auth/register", json={
            "username": "ana", "email": "ana@example.com", "password": "secret",
        })
        assert response.status_code == 201
        data = response.json()
        assert data["token"]
        assert data["user"]["username"] == "ana"
        assert data["user"]["gameProgress"] == []

    def test_duplicate_register(self, client, auth):
        response = client.post("/api/auth/register", json={
            "username": "ana", "email": "x@example.com", "password": "secret",
        })
        assert response.status_code == 400
        assert response.json()["error_code"] == "ACCOUNT_EXISTS"

    def test_register_validation(self, client):
        response = client.post("/api/auth/register", json={"username": "ana"})
        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    def test_register_blank_username(self, client):
        response = client.post("/api/auth/register", json={
            "username": "   ", "email": "ana@example.com", "password": "secret",
        })
        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    def test_login(self, client, auth):
        response = client.post("/api/auth/login", json={"username": "ana", "password": "secret"})
        assert response.status_code == 200
        assert response.json()["token"]

    def test_bad_login(self, client, auth):
        response = client.post("/api/auth/login", json={"username": "ana", "password": "nope"})
        assert response.status_code == 401
        assert response.json()["error_code"] == "INVALID_CREDENTIALS"

    def test_profile(self, client, auth):
        response = client.get("/api/auth/profile", headers=auth)
        assert response.status_code == 200
        assert response.json()["user"]["email"] == "ana@example.com"

    @pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer bogus"}])
    def test_profile_requires_token(self, client, headers):
        response = client.get("/api/auth/profile", headers=headers)
        assert response.status_code == 401
        assert response.json()["error_code"] == "UNAUTHENTICATED"


class TestProgress:
    """Tests for /api/auth/progress."""

    def test_upsert_and_fetch(self, client, auth):
        """A fetch right after an upsert returns the submitted set."""
        response = client.post("/api/auth/progress", headers=auth, json={
            "gameId": "historic",
            "completed": False,
            "completedLocations": [1, {"locationId": "2", "timestamp": "2024-05-01T12:00:00Z"}],
        })
        assert response.status_code == 200
        progress = response.json()["gameProgress"]
        assert [p["gameId"] for p in progress] == ["historic"]

        fetched = client.get("/api/auth/progress/historic", headers=auth).json()
        assert [loc["locationId"] for loc in fetched["completedLocations"]] == ["1", "2"]
        assert fetched["completed"] is False

    def test_fetch_unknown_is_zeroed(self, client, auth):
        response = client.get("/api/auth/progress/modern", headers=auth)
        assert response.status_code == 200
        assert response.json() == {"gameId": "modern", "completed": False, "completedLocations": []}

    def test_upsert_is_idempotent(self, client, auth):
        body = {"gameId": "historic", "completedLocations": ["1", "2"]}
        first = client.post("/api/auth/progress", headers=auth, json=body).json()
        second = client.post("/api/auth/progress", headers=auth, json=body).json()
        assert [loc["locationId"] for loc in first["gameProgress"][0]["completedLocations"]] == \
            [loc["locationId"] for loc in second["gameProgress"][0]["completedLocations"]]

    def test_completed_is_sticky(self, client, auth):
        client.post("/api/auth/progress", headers=auth, json={
            "gameId": "historic", "completed": True, "completedLocations": ["1", "2", "3"],
        })
        client.post("/api/auth/progress", headers=auth, json={
            "gameId": "historic", "completed": False, "completedLocations": ["1", "2", "3"],
        })
        assert client.get("/api/auth/progress/historic", headers=auth).json()["completed"] is True

    def test_profile_includes_progress(self, client, auth):
        client.post("/api/auth/progress", headers=auth, json={"gameId": "historic", "completedLocations": [1]})
        user = client.get("/api/auth/profile", headers=auth).json()["user"]
        assert user["gameProgress"][0]["gameId"] == "historic"

    def test_requires_token(self, client):
        response = client.post("/api/auth/progress", json={"gameId": "historic"})
        assert response.status_code == 401

    def test_missing_game_id(self, client, auth):
        response = client.post("/api/auth/progress", headers=auth, json={"completed": True})
        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR"


class TestSavedLocations:
    """Tests for /api/auth/locations."""

    LOCATION = {
        "id": "loc-1",
        "name": "Union Square",
        "description": "Main square",
        "location": "Cluj-Napoca, Romania",
        "coordinates": {"lat": 46.77, "lon": 23.59},
        "imageReference": "data:image/jpeg;base64,AAAA",
        "difficulty": "medium",
    }

    def test_save_and_list(self, client, auth):
        response = client.post("/api/auth/locations", headers=auth, json={"location": self.LOCATION})
        assert response.status_code == 200
        assert response.json()["success"] is True

        locations = client.get("/api/auth/locations", headers=auth).json()["locations"]
        assert [loc["id"] for loc in locations] == ["loc-1"]
        assert locations[0]["imageReference"] == "data:image/jpeg;base64,AAAA"
        assert locations[0]["createdAt"]

    def test_save_is_idempotent_and_keeps_notes(self, client, auth):
        client.post("/api/auth/locations", headers=auth, json={"location": {**self.LOCATION, "notes": "n"}})
        client.post("/api/auth/locations", headers=auth, json={"location": self.LOCATION})
        locations = client.get("/api/auth/locations", headers=auth).json()["locations"]
        assert len(locations) == 1
        assert locations[0]["notes"] == "n"

    def test_legacy_image_url_accepted(self, client, auth):
        location = {k: v for k, v in self.LOCATION.items() if k != "imageReference"}
        location["imageUrl"] = "https://example.com/photo.jpg"
        client.post("/api/auth/locations", headers=auth, json={"location": location})
        saved = client.get("/api/auth/locations", headers=auth).json()["locations"][0]
        assert saved["imageReference"] == "https://example.com/photo.jpg"

    def test_invalid_location(self, client, auth):
        response = client.post("/api/auth/locations", headers=auth, json={"location": {"id": "x"}})
        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    def test_update_notes(self, client, auth):
        client.post("/api/auth/locations", headers=auth, json={"location": self.LOCATION})
        response = client.patch("/api/auth/locations/loc-1", headers=auth, json={"notes": "great view"})
        assert response.status_code == 200
        assert response.json()["location"]["notes"] == "great view"

    def test_delete(self, client, auth):
        client.post("/api/auth/locations", headers=auth, json={"location": self.LOCATION})
        response = client.delete("/api/auth/locations/loc-1", headers=auth)
        assert response.status_code == 200
        assert response.json()["locations"] == []

    @pytest.mark.parametrize("method", ["patch", "delete"])
    def test_unknown_location(self, client, auth, method):
        kwargs = {"json": {"notes": "x"}} if method == "patch" else {}
        response = getattr(client, method)("/api/auth/locations/nope", headers=auth, **kwargs)
        assert response.status_code == 404
        assert response.json()["error_code"] == "LOCATION_NOT_FOUND"


class TestSystem:
    def test_health(self, client):
        data = client.get("/health").json()
        assert data["status"] == "healthy"
        assert data["service"] == "snapquest"

    def test_root(self, client):
        assert client.get("/").json()["health"] == "/health"

    def test_games(self, client):
        games = client.get("/api/games").json()["games"]
        assert [g["id"] for g in games] == ["historic", "cultural", "modern"]
        assert games[0]["totalPoints"] == 225


@pytest.mark.parametrize("header, expected", [
    (None, None),
    ("", None),
    ("Bearer abc", "abc"),
    ("bearer abc", "abc"),
    ("abc", "abc"),
    ("Bearer ", None),
])
def test_bearer_token(header, expected):
    assert bearer_token(header) == expected


class BrokenCatalogService(APIService):
    def list_games(self):
        raise ValueError("catalog bug")


def test_internal_value_error_is_not_a_validation_error():
    """Unexpected ValueErrors surface as server errors, not 400s."""
    api = create_app(service=BrokenCatalogService(), settings=Settings())
    client = TestClient(api, raise_server_exceptions=False)
    response = client.get("/api/games")
    assert response.status_code == 500
