"""
Pytest fixtures for SnapQuest tests.
"""

import asyncio

import pytest

from ..core.models import Coordinates, DetectedLocation
from ..detection import (
    DetectionPipeline,
    ScriptedClassifier,
    StaticGeocodeResolver,
)
from ..games import default_catalog
from ..server import AccountDirectory
from ..sync import InProcessRemoteStore, MemoryCacheStore, SyncEngine


JPEG_BYTES = b"\xff\xd8\xff\xe0fake-jpeg-payload"

ST_MICHAEL = Coordinates(lat=46.7698, lon=23.5897)


def run(coro):
    """Run a coroutine to completion."""
    return asyncio.run(coro)


def make_detected(location_id: str = "loc-1", name: str = "Saint Michael's Church") -> DetectedLocation:
    return DetectedLocation(
        id=location_id,
        name=name,
        description="Gothic church",
        location="Cluj-Napoca, Romania",
        coordinates=ST_MICHAEL,
        image_reference="data:image/jpeg;base64,AAAA",
        difficulty="medium",
    )


@pytest.fixture
def classifier() -> ScriptedClassifier:
    return ScriptedClassifier()


@pytest.fixture
def geocoder() -> StaticGeocodeResolver:
    return StaticGeocodeResolver({
        "Saint Michael's Church Cluj-Napoca, Romania": ST_MICHAEL,
        "X Z": Coordinates(lat=1.0, lon=2.0),
    })


@pytest.fixture
def pipeline(classifier, geocoder) -> DetectionPipeline:
    return DetectionPipeline(classifier=classifier, geocoder=geocoder)


@pytest.fixture
def catalog():
    return default_catalog()


@pytest.fixture
def local_store() -> MemoryCacheStore:
    return MemoryCacheStore()


@pytest.fixture
def directory() -> AccountDirectory:
    return AccountDirectory()


@pytest.fixture
def remote(directory) -> InProcessRemoteStore:
    return InProcessRemoteStore(directory)


@pytest.fixture
def engine(local_store, remote, catalog) -> SyncEngine:
    """Anonymous engine (no session yet)."""
    return SyncEngine(local=local_store, remote=remote, catalog=catalog)


@pytest.fixture
def user_session(remote):
    """A freshly registered account's session."""
    return run(remote.register("ana", "ana@example.com", "secret"))


@pytest.fixture
def logged_in_engine(engine, user_session) -> SyncEngine:
    run(engine.login(user_session))
    return engine
