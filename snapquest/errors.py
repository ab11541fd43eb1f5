"""
Error taxonomy.

Transport and auth errors are surfaced to callers and degrade to a
documented fallback. Malformed upstream data never reaches this module:
the response parser recovers it locally.
"""

from __future__ import annotations


class SnapQuestError(Exception):
    """Base class for all SnapQuest errors."""


# =============================================================================
# Detection
# =============================================================================

class ClassifierError(SnapQuestError):
    """The vision classifier could not produce an answer."""


class ClassifierUnavailable(ClassifierError):
    """Transport or credential failure talking to the classifier."""


class ClassifierTimeout(ClassifierError):
    """The classifier did not answer within the configured bound."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Classifier did not respond within {timeout:.1f}s")


class DetectionFailed(SnapQuestError):
    """
    Hard pipeline failure.

    Raised only when the classifier stage fails. The caller may retry
    the whole pipeline with the same image.
    """

    def __init__(self, cause: ClassifierError):
        self.cause = cause
        super().__init__(f"Landmark detection failed: {cause}")

    @property
    def timed_out(self) -> bool:
        return isinstance(self.cause, ClassifierTimeout)


class ImageRequired(SnapQuestError):
    """No image payload (or an empty one) was supplied."""

    def __init__(self, message: str = "No image file provided"):
        super().__init__(message)


# =============================================================================
# Remote progress store
# =============================================================================

class RemoteStoreError(SnapQuestError):
    """The remote progress store rejected or failed a call."""


class RemoteUnavailable(RemoteStoreError):
    """Network or server failure talking to the remote store."""


class Unauthenticated(RemoteStoreError):
    """
    The remote store refused the credentials.

    Not a data-loss condition: local state stays authoritative.
    """

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


# =============================================================================
# Accounts (server side)
# =============================================================================

class InvalidAccountData(SnapQuestError):
    """Registration is missing a username, email or password."""


class AccountExists(SnapQuestError):
    """Username or email already registered."""


class InvalidCredentials(SnapQuestError):
    """Username/password pair did not match."""


class LocationNotFound(SnapQuestError):
    """A saved location with the given id does not exist for the account."""

    def __init__(self, location_id: str):
        self.location_id = location_id
        super().__init__(f"Location {location_id} not found")
