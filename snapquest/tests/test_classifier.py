"""
Tests for classifier adapters.

OpenAIClassifier is given a stand-in client object so no network call
is made; errors are real openai exception types.
"""

from types import SimpleNamespace

import httpx
import openai
import pytest

from ..detection.classifier import (
    OpenAIClassifier,
    PromptVariant,
    ScriptedClassifier,
    image_data_uri,
)
from ..detection.prompts import DetectionPrompts
from ..errors import ClassifierTimeout, ClassifierUnavailable
from .conftest import JPEG_BYTES, run


class FakeCompletions:
    def __init__(self, content="answer", error=None, choices=True):
        self.content = content
        self.error = error
        self.choices = choices
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        if not self.choices:
            return SimpleNamespace(choices=[])
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(completions: FakeCompletions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


class TestOpenAIClassifier:
    """Tests for OpenAIClassifier."""

    def test_sends_prompt_and_image(self):
        """One user message with the prompt text and the data URI."""
        completions = FakeCompletions(content='{"name":"X"}')
        classifier = OpenAIClassifier(client=fake_client(completions), model="gpt-4o")

        text = run(classifier.classify(JPEG_BYTES, "image/jpeg", PromptVariant.STRUCTURED_JSON))

        assert text == '{"name":"X"}'
        request = completions.requests[0]
        assert request["model"] == "gpt-4o"
        assert request["max_tokens"] == 500
        assert request["temperature"] == 0.7
        content = request["messages"][0]["content"]
        assert content[0]["text"] == DetectionPrompts.structured_json()
        assert content[1]["image_url"]["url"] == image_data_uri(JPEG_BYTES, "image/jpeg")

    def test_free_form_prompt_mentions_region(self):
        completions = FakeCompletions()
        classifier = OpenAIClassifier(
            client=fake_client(completions),
            prompts=DetectionPrompts(region_hint="Sibiu, Romania"),
        )
        run(classifier.classify(JPEG_BYTES, "image/jpeg", PromptVariant.FREE_FORM))
        assert "Sibiu, Romania" in completions.requests[0]["messages"][0]["content"][0]["text"]

    def test_no_choices_returns_empty_text(self):
        classifier = OpenAIClassifier(client=fake_client(FakeCompletions(choices=False)))
        assert run(classifier.classify(JPEG_BYTES, "image/jpeg", PromptVariant.STRUCTURED_JSON)) == ""

    def test_null_content_returns_empty_text(self):
        classifier = OpenAIClassifier(client=fake_client(FakeCompletions(content=None)))
        assert run(classifier.classify(JPEG_BYTES, "image/jpeg", PromptVariant.STRUCTURED_JSON)) == ""

    def test_timeout_maps_to_classifier_timeout(self):
        error = openai.APITimeoutError(request=REQUEST)
        classifier = OpenAIClassifier(client=fake_client(FakeCompletions(error=error)), timeout=12)

        with pytest.raises(ClassifierTimeout) as exc_info:
            run(classifier.classify(JPEG_BYTES, "image/jpeg", PromptVariant.STRUCTURED_JSON))
        assert exc_info.value.timeout == 12

    def test_connection_error_maps_to_unavailable(self):
        error = openai.APIConnectionError(request=REQUEST)
        classifier = OpenAIClassifier(client=fake_client(FakeCompletions(error=error)))

        with pytest.raises(ClassifierUnavailable):
            run(classifier.classify(JPEG_BYTES, "image/jpeg", PromptVariant.STRUCTURED_JSON))

    def test_auth_error_maps_to_unavailable(self):
        response = httpx.Response(401, request=REQUEST)
        error = openai.AuthenticationError("bad key", response=response, body=None)
        classifier = OpenAIClassifier(client=fake_client(FakeCompletions(error=error)))

        with pytest.raises(ClassifierUnavailable):
            run(classifier.classify(JPEG_BYTES, "image/jpeg", PromptVariant.STRUCTURED_JSON))


class TestScriptedClassifier:
    """Tests for ScriptedClassifier."""

    def test_defaults_per_variant(self):
        classifier = ScriptedClassifier()
        structured = run(classifier.classify(JPEG_BYTES, "image/jpeg", PromptVariant.STRUCTURED_JSON))
        free_form = run(classifier.classify(JPEG_BYTES, "image/jpeg", PromptVariant.FREE_FORM))
        assert structured == ScriptedClassifier.DEFAULT_STRUCTURED
        assert free_form == ScriptedClassifier.DEFAULT_FREE_FORM
        assert len(classifier.calls) == 2

    def test_answer_by_image_hash(self):
        image = b"tower-photo"
        classifier = ScriptedClassifier(
            by_image_hash={ScriptedClassifier.image_hash(image): "I see a tower."}
        )
        assert run(classifier.classify(image, "image/jpeg", PromptVariant.STRUCTURED_JSON)) == "I see a tower."
        assert run(classifier.classify(b"other", "image/jpeg", PromptVariant.STRUCTURED_JSON)) == (
            ScriptedClassifier.DEFAULT_STRUCTURED
        )

    def test_responder_wins(self):
        classifier = ScriptedClassifier(responder=lambda image, mime, variant: mime)
        assert run(classifier.classify(b"x", "image/png", PromptVariant.FREE_FORM)) == "image/png"

    def test_error(self):
        classifier = ScriptedClassifier(error=ClassifierUnavailable("down"))
        with pytest.raises(ClassifierUnavailable):
            run(classifier.classify(b"x", "image/png", PromptVariant.FREE_FORM))


def test_image_data_uri():
    assert image_data_uri(b"abc", "image/png") == "data:image/png;base64,YWJj"
