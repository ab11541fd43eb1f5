"""
Classifier Adapter - Wraps the external vision model.

The adapter is a leaf: one outbound call, no retries, no parsing.
Retry policy belongs to the detection pipeline (and ultimately to the
user, who can resubmit the same photo).

Implementations:
- OpenAIClassifier: chat-completions vision call
- ScriptedClassifier: canned answers for tests and offline mode
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable
import base64
import hashlib
import logging

from ..errors import ClassifierUnavailable, ClassifierTimeout
from .prompts import DetectionPrompts

logger = logging.getLogger(__name__)


class PromptVariant(Enum):
    """Which answer shape the classifier is asked for."""
    STRUCTURED_JSON = "structured_json"  # detection
    FREE_FORM = "free_form"  # analysis


def image_data_uri(image_bytes: bytes, mime_type: str) -> str:
    """Embed raw image bytes as a data URI."""
    encoded = base64.b64encode(image_bytes).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


class ClassifierAdapter(ABC):
    """
    Abstract base class for vision classifiers.

    classify() returns the model's raw text, or raises
    ClassifierUnavailable / ClassifierTimeout.
    """

    @abstractmethod
    async def classify(
        self,
        image_bytes: bytes,
        mime_type: str,
        variant: PromptVariant,
    ) -> str:
        pass


class OpenAIClassifier(ClassifierAdapter):
    """
    Vision classifier backed by the OpenAI chat-completions API.

    The SDK's own retry loop is disabled (max_retries=0); a failed call
    surfaces immediately.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o",
        max_tokens: int = 500,
        temperature: float = 0.7,
        timeout: float = 30.0,
        prompts: DetectionPrompts | None = None,
        client=None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout
        self.prompts = prompts or DetectionPrompts()
        if client is None:
            from openai import AsyncOpenAI
            client = AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        self._client = client

    def _prompt_for(self, variant: PromptVariant) -> str:
        if variant == PromptVariant.STRUCTURED_JSON:
            return self.prompts.structured_json()
        return self.prompts.free_form()

    async def classify(
        self,
        image_bytes: bytes,
        mime_type: str,
        variant: PromptVariant,
    ) -> str:
        import openai

        messages = [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": self._prompt_for(variant)},
                    {
                        "type": "image_url",
                        "image_url": {"url": image_data_uri(image_bytes, mime_type)},
                    },
                ],
            },
        ]

        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except openai.APITimeoutError as e:
            raise ClassifierTimeout(self.timeout) from e
        except openai.OpenAIError as e:
            raise ClassifierUnavailable(f"Error calling vision model: {e}") from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""


class ScriptedClassifier(ClassifierAdapter):
    """
    Classifier returning canned answers.

    Answers are chosen by, in order: a responder callable, an exact
    image-hash match, then the per-variant default. Set `error` to make
    every call raise.
    """

    DEFAULT_STRUCTURED = (
        '{"name": "Saint Michael\'s Church", '
        '"description": "Gothic-style Roman Catholic church in the heart of Cluj-Napoca.", '
        '"location": "Cluj-Napoca, Romania"}'
    )
    DEFAULT_FREE_FORM = (
        "This appears to be Saint Michael's Church, a Gothic-style Roman Catholic "
        "church on Union Square in Cluj-Napoca, Romania, with a tall neo-Gothic spire."
    )

    def __init__(
        self,
        structured: str | None = None,
        free_form: str | None = None,
        by_image_hash: dict[str, str] | None = None,
        responder: Callable[[bytes, str, PromptVariant], str] | None = None,
        error: Exception | None = None,
    ):
        self.structured = self.DEFAULT_STRUCTURED if structured is None else structured
        self.free_form = self.DEFAULT_FREE_FORM if free_form is None else free_form
        self.by_image_hash = by_image_hash or {}
        self.responder = responder
        self.error = error
        self.calls: list[tuple[str, PromptVariant]] = []

    @staticmethod
    def image_hash(image_bytes: bytes) -> str:
        return hashlib.sha256(image_bytes).hexdigest()

    async def classify(
        self,
        image_bytes: bytes,
        mime_type: str,
        variant: PromptVariant,
    ) -> str:
        image_hash = self.image_hash(image_bytes)
        self.calls.append((image_hash, variant))

        if self.error is not None:
            raise self.error
        if self.responder is not None:
            return self.responder(image_bytes, mime_type, variant)
        if image_hash in self.by_image_hash:
            return self.by_image_hash[image_hash]
        if variant == PromptVariant.STRUCTURED_JSON:
            return self.structured
        return self.free_form
