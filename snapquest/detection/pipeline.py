"""
Detection Pipeline - Photo to DetectedLocation.

One DetectionRun per user-initiated request:

    Idle -> Classifying -> Parsing -> Geocoding -> Resolved
                 |
                 +-> Failed

Only the classifier stage can fail hard (DetectionFailed). The parser
never fails and the geocoder degrades to coordinates=None, so a run
that gets past Classifying always reaches Resolved. A sentinel-named
result is the soft-failure signal.

The pipeline holds no state between runs: concurrent detections are
independent, and retrying with the same image is safe because nothing
is persisted before Resolved.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable
import asyncio
import logging
import time
import uuid

from ..core.models import (
    Coordinates,
    DetectedLocation,
    LandmarkCandidate,
    DEFAULT_DIFFICULTY,
)
from ..errors import (
    ClassifierError,
    ClassifierTimeout,
    DetectionFailed,
    ImageRequired,
)
from .classifier import ClassifierAdapter, PromptVariant, image_data_uri
from .geocode import GeocodeResolver, NullGeocodeResolver
from .parser import ResponseParser

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "image/jpeg"


class PipelineState(Enum):
    """State of a detection run."""
    IDLE = "idle"
    CLASSIFYING = "classifying"
    PARSING = "parsing"
    GEOCODING = "geocoding"
    RESOLVED = "resolved"
    FAILED = "failed"


ALLOWED_TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.IDLE: frozenset({PipelineState.CLASSIFYING}),
    PipelineState.CLASSIFYING: frozenset({PipelineState.PARSING, PipelineState.FAILED}),
    PipelineState.PARSING: frozenset({PipelineState.GEOCODING}),
    PipelineState.GEOCODING: frozenset({PipelineState.RESOLVED}),
    PipelineState.RESOLVED: frozenset(),
    PipelineState.FAILED: frozenset(),
}


@dataclass
class DetectionRun:
    """
    A single detection request.

    Tracks the state history so callers and tests can see how far the
    run got.
    """
    run_id: str
    image_bytes: bytes
    mime_type: str
    started_at: float = field(default_factory=time.time)

    state: PipelineState = PipelineState.IDLE
    history: list[PipelineState] = field(default_factory=lambda: [PipelineState.IDLE])

    raw_text: str | None = None
    candidate: LandmarkCandidate | None = None
    coordinates: Coordinates | None = None
    result: DetectedLocation | None = None
    error: DetectionFailed | None = None

    def advance(self, new_state: PipelineState):
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Illegal detection transition {self.state.value} -> {new_state.value}"
            )
        self.state = new_state
        self.history.append(new_state)

    @property
    def is_finished(self) -> bool:
        return self.state in {PipelineState.RESOLVED, PipelineState.FAILED}


class DetectionPipeline:
    """
    Orchestrates classifier -> parser -> geocoder.

    Usage:
        pipeline = DetectionPipeline(classifier=OpenAIClassifier(...))
        location = await pipeline.detect(image_bytes, "image/jpeg")
        if location.is_soft_failure:
            ...  # offer a retry with the same image
    """

    def __init__(
        self,
        classifier: ClassifierAdapter,
        parser: ResponseParser | None = None,
        geocoder: GeocodeResolver | None = None,
        classifier_timeout: float = 30.0,
        geocode_timeout: float = 5.0,
        id_factory: Callable[[], str] | None = None,
    ):
        self.classifier = classifier
        self.parser = parser or ResponseParser()
        self.geocoder = geocoder or NullGeocodeResolver()
        self.classifier_timeout = classifier_timeout
        self.geocode_timeout = geocode_timeout
        self.id_factory = id_factory or (lambda: uuid.uuid4().hex)

    def start(self, image_bytes: bytes | None, mime_type: str | None = None) -> DetectionRun:
        """
        Validate input and create a run in the Idle state.

        Raises ImageRequired before any external call is attempted.
        """
        if not image_bytes:
            raise ImageRequired()
        return DetectionRun(
            run_id=uuid.uuid4().hex,
            image_bytes=image_bytes,
            mime_type=mime_type or DEFAULT_MIME_TYPE,
        )

    async def detect(self, image_bytes: bytes | None, mime_type: str | None = None) -> DetectedLocation:
        """Run the full pipeline. Raises DetectionFailed on classifier failure."""
        run = self.start(image_bytes, mime_type)
        return await self.execute(run)

    async def execute(self, run: DetectionRun) -> DetectedLocation:
        """Drive a run from Idle to Resolved (or Failed)."""
        logger.info(f"Detection {run.run_id}: {run.mime_type}, {len(run.image_bytes)} bytes")

        # Classifying
        run.advance(PipelineState.CLASSIFYING)
        try:
            run.raw_text = await self._classify(run, PromptVariant.STRUCTURED_JSON)
        except ClassifierError as e:
            run.error = DetectionFailed(e)
            run.advance(PipelineState.FAILED)
            logger.error(f"Detection {run.run_id} failed: {e}")
            raise run.error from e

        # Parsing
        run.advance(PipelineState.PARSING)
        run.candidate = self.parser.parse(run.raw_text)

        # Geocoding
        run.advance(PipelineState.GEOCODING)
        if not run.candidate.is_soft_failure:
            run.coordinates = await self._geocode(run.candidate.geocode_query)

        # Resolved
        run.result = DetectedLocation(
            id=self.id_factory(),
            name=run.candidate.name,
            description=run.candidate.description,
            location=run.candidate.location,
            coordinates=run.coordinates,
            image_reference=image_data_uri(run.image_bytes, run.mime_type),
            difficulty=DEFAULT_DIFFICULTY,
        )
        run.advance(PipelineState.RESOLVED)

        elapsed_ms = int((time.time() - run.started_at) * 1000)
        logger.info(
            f"Detection {run.run_id} resolved: {run.result.name!r} "
            f"(coordinates={'yes' if run.coordinates else 'no'}, {elapsed_ms}ms)"
        )
        return run.result

    async def analyze(self, image_bytes: bytes | None, mime_type: str | None = None) -> str:
        """
        Free-form description of the photo.

        Same validation and classifier failure policy as detect().
        """
        run = self.start(image_bytes, mime_type)
        try:
            return await self._classify(run, PromptVariant.FREE_FORM)
        except ClassifierError as e:
            logger.error(f"Analysis {run.run_id} failed: {e}")
            raise DetectionFailed(e) from e

    async def _classify(self, run: DetectionRun, variant: PromptVariant) -> str:
        try:
            return await asyncio.wait_for(
                self.classifier.classify(run.image_bytes, run.mime_type, variant),
                timeout=self.classifier_timeout,
            )
        except asyncio.TimeoutError as e:
            raise ClassifierTimeout(self.classifier_timeout) from e

    async def _geocode(self, query: str) -> Coordinates | None:
        """Bounded geocode; any failure is logged and yields None."""
        try:
            return await asyncio.wait_for(
                self.geocoder.resolve(query),
                timeout=self.geocode_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Geocoding exceeded {self.geocode_timeout}s for {query!r}")
            return None
        except Exception:
            logger.warning(f"Geocoder raised for {query!r}", exc_info=True)
            return None
