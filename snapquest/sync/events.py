"""
Session context and progress notifications.

Components share one SessionContext instead of reading session state
from storage themselves, and subscribe to a ProgressChannel instead of
polling. The sync engine publishes exactly once per successful local
mutation.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable
import logging

from ..core.models import UserSession

logger = logging.getLogger(__name__)


class EventKind(Enum):
    PROGRESS_UPDATED = "progress_updated"
    LOCATIONS_CHANGED = "locations_changed"
    SESSION_STARTED = "session_started"
    SESSION_ENDED = "session_ended"


@dataclass(frozen=True)
class ProgressEvent:
    kind: EventKind
    game_id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)


Subscriber = Callable[[ProgressEvent], None]


class ProgressChannel:
    """
    Synchronous publish/subscribe.

    Usage:
        channel = ProgressChannel()
        unsubscribe = channel.subscribe(lambda event: print(event.kind))
        ...
        unsubscribe()

    A subscriber that raises is logged and skipped; the others still
    receive the event.
    """

    def __init__(self):
        self._subscribers: list[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)
        return lambda: self.unsubscribe(callback)

    def unsubscribe(self, callback: Subscriber):
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: ProgressEvent):
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception(f"Subscriber failed on {event.kind.value}")


class SessionContext:
    """
    The current session, shared by every component.

    session is None while anonymous.
    """

    def __init__(self, session: UserSession | None = None):
        self.session = session

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None and bool(self.session.token)

    @property
    def token(self) -> str | None:
        return self.session.token if self.session else None

    def start(self, session: UserSession):
        self.session = session

    def end(self):
        self.session = None
