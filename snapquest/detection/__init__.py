"""
Detection Layer - Photo to structured, geocoded landmark.

Architecture:
    Photo -> ClassifierAdapter -> ResponseParser -> GeocodeResolver -> DetectedLocation

Failure model:
- Classifier failure is hard: DetectionFailed (HTTP 5xx at the API)
- Parser failure is impossible: malformed text becomes a sentinel name
- Geocoder failure is soft: coordinates are None
"""

from .classifier import (
    ClassifierAdapter,
    OpenAIClassifier,
    ScriptedClassifier,
    PromptVariant,
    image_data_uri,
)
from .parser import ResponseParser, parse_response, strip_code_fences
from .geocode import (
    GeocodeResolver,
    NominatimResolver,
    StaticGeocodeResolver,
    NullGeocodeResolver,
)
from .pipeline import DetectionPipeline, DetectionRun, PipelineState
from .prompts import DetectionPrompts

__all__ = [
    "ClassifierAdapter",
    "OpenAIClassifier",
    "ScriptedClassifier",
    "PromptVariant",
    "image_data_uri",
    "ResponseParser",
    "parse_response",
    "strip_code_fences",
    "GeocodeResolver",
    "NominatimResolver",
    "StaticGeocodeResolver",
    "NullGeocodeResolver",
    "DetectionPipeline",
    "DetectionRun",
    "PipelineState",
    "DetectionPrompts",
    "build_pipeline",
]


def build_pipeline(settings) -> DetectionPipeline:
    """
    Build a pipeline from Settings.

    Without an OpenAI key the scripted classifier is used so the
    service still answers (offline/demo mode).
    """
    import logging

    prompts = DetectionPrompts(region_hint=settings.region_hint)
    if settings.has_vision_credentials:
        classifier = OpenAIClassifier(
            api_key=settings.openai_api_key,
            model=settings.vision_model,
            max_tokens=settings.vision_max_tokens,
            temperature=settings.vision_temperature,
            timeout=settings.classifier_timeout,
            prompts=prompts,
        )
    else:
        logging.getLogger(__name__).warning(
            "OPENAI_API_KEY is not set; using the scripted offline classifier"
        )
        classifier = ScriptedClassifier()

    if settings.geocode_enabled:
        geocoder = NominatimResolver(
            base_url=settings.geocode_url,
            timeout=settings.geocode_timeout,
            user_agent=settings.user_agent,
        )
    else:
        geocoder = NullGeocodeResolver()

    return DetectionPipeline(
        classifier=classifier,
        geocoder=geocoder,
        classifier_timeout=settings.classifier_timeout,
        geocode_timeout=settings.geocode_timeout,
    )
