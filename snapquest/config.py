"""
Configuration - environment-driven settings.

Every value has a default so the service starts with no environment at
all (offline classifier, in-memory accounts, no log file).
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() not in {"", "0", "false", "no", "off"}


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass
class Settings:
    """
    Application settings.

    Usage:
        settings = Settings.from_env()
        pipeline = build_pipeline(settings)
    """
    env: str = "development"
    allowed_origins: list[str] = field(default_factory=lambda: ["*"])

    # Vision classifier
    openai_api_key: str = ""
    vision_model: str = "gpt-4o"
    vision_max_tokens: int = 500
    vision_temperature: float = 0.7
    classifier_timeout: float = 30.0
    region_hint: str = "Cluj-Napoca, Romania"

    # Geocoder
    geocode_url: str = "https://nominatim.openstreetmap.org/search"
    geocode_timeout: float = 5.0
    geocode_enabled: bool = True
    user_agent: str = "snapquest/0.1"

    # Client side: remote store + local cache
    api_url: str = "http://localhost:5000"
    remote_timeout: float = 10.0
    cache_dir: Path = field(default_factory=lambda: Path.home() / ".snapquest" / "cache")

    # Logging
    log_level: str = "INFO"
    log_file: str | None = None
    log_json: bool = False

    @property
    def has_vision_credentials(self) -> bool:
        return bool(self.openai_api_key)

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from environment variables."""
        defaults = cls()
        cache_dir = os.getenv("SNAPQUEST_CACHE_DIR")
        return cls(
            env=os.getenv("SNAPQUEST_ENV", defaults.env),
            allowed_origins=[
                origin.strip()
                for origin in os.getenv("ALLOWED_ORIGINS", "*").split(",")
                if origin.strip()
            ] or ["*"],
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            vision_model=os.getenv("SNAPQUEST_VISION_MODEL", defaults.vision_model),
            vision_max_tokens=_env_int("SNAPQUEST_VISION_MAX_TOKENS", defaults.vision_max_tokens),
            vision_temperature=_env_float("SNAPQUEST_VISION_TEMPERATURE", defaults.vision_temperature),
            classifier_timeout=_env_float("SNAPQUEST_CLASSIFIER_TIMEOUT", defaults.classifier_timeout),
            region_hint=os.getenv("SNAPQUEST_REGION_HINT", defaults.region_hint),
            geocode_url=os.getenv("SNAPQUEST_GEOCODE_URL", defaults.geocode_url),
            geocode_timeout=_env_float("SNAPQUEST_GEOCODE_TIMEOUT", defaults.geocode_timeout),
            geocode_enabled=_env_bool("SNAPQUEST_GEOCODE_ENABLED", defaults.geocode_enabled),
            user_agent=os.getenv("SNAPQUEST_USER_AGENT", defaults.user_agent),
            api_url=os.getenv("SNAPQUEST_API_URL", defaults.api_url).rstrip("/"),
            remote_timeout=_env_float("SNAPQUEST_REMOTE_TIMEOUT", defaults.remote_timeout),
            cache_dir=Path(cache_dir).expanduser() if cache_dir else defaults.cache_dir,
            log_level=os.getenv("SNAPQUEST_LOG_LEVEL", defaults.log_level).upper(),
            log_file=os.getenv("SNAPQUEST_LOG_FILE") or None,
            log_json=_env_bool("SNAPQUEST_LOG_JSON", defaults.log_json),
        )
