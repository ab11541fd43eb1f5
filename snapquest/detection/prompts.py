"""
Classifier Prompts - Instructions sent with each photo.

One prompt per PromptVariant. The structured prompt asks for a bare
JSON object; models still wrap it in markdown fences often enough that
the parser strips them.
"""

from dataclasses import dataclass


@dataclass
class DetectionPrompts:
    """
    Collection of prompts for the vision classifier.

    region_hint names the city the game is played in, used by the
    free-form analysis prompt.
    """
    region_hint: str = "Cluj-Napoca, Romania"

    @staticmethod
    def structured_json() -> str:
        """Prompt for landmark detection: a single JSON object."""
        return (
            "Please identify what landmark or location this might be. "
            "Return the response in this exact JSON format with no additional text: "
            '{"name": "full name of the landmark", '
            '"description": "brief description", '
            '"location": "city, country"}. '
            "Keep the description under 100 words."
        )

    def free_form(self) -> str:
        """Prompt for verification-style analysis: prose."""
        return (
            f"This image is from {self.region_hint}. "
            "Please identify what landmark or location this might be and provide "
            "a detailed description of what you see in the image. "
            "Focus on architectural details and historical significance if visible."
        )
