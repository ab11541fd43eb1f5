"""
Response Parser - Classifier text to LandmarkCandidate.

parse() is total: it never raises. A malformed answer becomes a
sentinel candidate so the user-facing flow keeps going.

Algorithm:
1. Strip code fences and surrounding whitespace
2. Strict JSON decode into {name, description, location}
3. On decode failure: name "Unknown Landmark", description = first
   100 characters of the text, location "Unknown Location"
4. Missing or blank fields are filled with the same sentinels
"""

from __future__ import annotations
from typing import Any
import json
import logging
import re

from ..core.models import (
    LandmarkCandidate,
    UNKNOWN_LANDMARK,
    DETECTION_FAILED,
    UNKNOWN_LOCATION,
)

logger = logging.getLogger(__name__)

DESCRIPTION_PREVIEW_CHARS = 100
NO_DESCRIPTION = "No description available"
EMPTY_RESPONSE_DESCRIPTION = "The vision model returned an empty response."

# ```json ... ``` or ``` ... ```, anywhere in the text
_FENCE_RE = re.compile(r"```[a-zA-Z0-9_-]*[ \t]*\r?\n?(.*?)\r?\n?```", re.DOTALL)


def strip_code_fences(raw_text: str) -> str:
    """
    Remove markdown code fences.

    If the text contains a fenced block, its body is returned; stray
    fence markers are removed otherwise.
    """
    text = (raw_text or "").strip()
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    if "```" in text:
        text = re.sub(r"```[a-zA-Z0-9_-]*", "", text)
    return text.strip()


def _field(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    value = value.strip()
    return value or None


class ResponseParser:
    """
    Extracts a LandmarkCandidate from classifier output.

    Usage:
        parser = ResponseParser()
        candidate = parser.parse(raw_text)
        if candidate.is_soft_failure:
            ...  # ask the user to try again
    """

    def parse(self, raw_text: str | None) -> LandmarkCandidate:
        text = strip_code_fences(raw_text or "")

        if not text:
            logger.warning("Classifier returned an empty response")
            return LandmarkCandidate(
                name=DETECTION_FAILED,
                description=EMPTY_RESPONSE_DESCRIPTION,
                location=UNKNOWN_LOCATION,
            )

        data = self._decode(text)
        if data is None:
            logger.warning(f"Could not parse classifier response as JSON: {text[:80]!r}")
            return LandmarkCandidate(
                name=UNKNOWN_LANDMARK,
                description=text[:DESCRIPTION_PREVIEW_CHARS],
                location=UNKNOWN_LOCATION,
            )

        name = _field(data, "name")
        description = _field(data, "description")
        location = _field(data, "location")
        missing = [
            key for key, value in
            (("name", name), ("description", description), ("location", location))
            if value is None
        ]
        if missing:
            logger.warning(f"Classifier response missing fields: {missing}")

        return LandmarkCandidate(
            name=name or UNKNOWN_LANDMARK,
            description=description or text[:DESCRIPTION_PREVIEW_CHARS] or NO_DESCRIPTION,
            location=location or UNKNOWN_LOCATION,
        )

    def _decode(self, text: str) -> dict[str, Any] | None:
        """Strict decode; only a JSON object counts as success."""
        try:
            data = json.loads(text)
        except (json.JSONDecodeError, ValueError):
            return None
        if not isinstance(data, dict):
            return None
        return data


def parse_response(raw_text: str | None) -> LandmarkCandidate:
    """Convenience function: parse with a default parser."""
    return ResponseParser().parse(raw_text)
