"""
Remote Progress Store - Client side of the authenticated progress API.

Contract consumed by the sync engine:
- upsert_progress(token, game_id, completed_locations, completed)
      -> list[GameProgressEntry]; replaces completedLocations, idempotent
- fetch_progress(token, game_id) -> GameProgressEntry; zeroed if none
- add_saved_location(token, location); idempotent by location.id

Any call may raise Unauthenticated (bad/missing token) or
RemoteUnavailable (network, timeout, server error). Neither means data
loss: the caller keeps its local copy.

Implementations:
- HttpRemoteProgressStore: aiohttp against the /api/auth/* endpoints
- InProcessRemoteStore: calls an AccountDirectory directly (tests, CLI
  against an embedded server)
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Optional
from urllib.parse import quote, unquote
import asyncio
import logging

import aiohttp

from ..core.models import CompletedLocation, GameProgressEntry, SavedLocation, UserSession
from ..errors import (
    AccountExists,
    InvalidAccountData,
    InvalidCredentials,
    LocationNotFound,
    RemoteUnavailable,
    Unauthenticated,
)
from ..server.accounts import AccountDirectory

logger = logging.getLogger(__name__)


class RemoteProgressStore(ABC):
    """Abstract base class for remote progress stores."""

    # Accounts

    @abstractmethod
    async def register(self, username: str, email: str, password: str) -> UserSession:
        pass

    @abstractmethod
    async def login(self, username: str, password: str) -> UserSession:
        pass

    # Progress

    @abstractmethod
    async def upsert_progress(
        self,
        token: str,
        game_id: str,
        completed_locations: list[CompletedLocation],
        completed: bool,
    ) -> list[GameProgressEntry]:
        pass

    @abstractmethod
    async def fetch_progress(self, token: str, game_id: str) -> GameProgressEntry:
        pass

    # Saved locations

    @abstractmethod
    async def add_saved_location(self, token: str, location: SavedLocation) -> None:
        pass

    @abstractmethod
    async def list_saved_locations(self, token: str) -> list[SavedLocation]:
        pass

    @abstractmethod
    async def update_notes(self, token: str, location_id: str, notes: str | None) -> SavedLocation:
        pass

    @abstractmethod
    async def remove_saved_location(self, token: str, location_id: str) -> None:
        pass

    async def close(self):
        """Release network resources, if any."""


def _progress_list(data: Any) -> list[GameProgressEntry]:
    items = data.get("gameProgress") if isinstance(data, dict) else data
    return [
        GameProgressEntry.from_dict(item)
        for item in items or []
        if isinstance(item, dict)
    ]


class HttpRemoteProgressStore(RemoteProgressStore):
    """
    aiohttp client for the progress API.

    Usage:
        remote = HttpRemoteProgressStore("http://localhost:5000")
        session = await remote.login("ana", "secret")
        entry = await remote.fetch_progress(session.token, "historic")
        await remote.close()
    """

    def __init__(self, base_url: str = "http://localhost:5000", timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None
        self._session_lock = asyncio.Lock()

    async def _get_session(self) -> aiohttp.ClientSession:
        async with self._session_lock:
            if self._session is None or self._session.closed:
                self._session = aiohttp.ClientSession(
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                )
            return self._session

    async def close(self):
        async with self._session_lock:
            if self._session and not self._session.closed:
                await self._session.close()
            self._session = None

    async def _request(
        self,
        method: str,
        path: str,
        token: str | None = None,
        json_body: dict | None = None,
    ) -> tuple[int, Any]:
        """
        Perform one call. Returns (status, decoded body).

        Transport failures become RemoteUnavailable; 401 becomes
        Unauthenticated. Other statuses are returned for the caller.
        """
        headers = {}
        if token is not None:
            if not token:
                raise Unauthenticated("No authentication token")
            headers["Authorization"] = f"Bearer {token}"

        session = await self._get_session()
        url = f"{self.base_url}/api{path}"
        try:
            async with session.request(method, url, json=json_body, headers=headers) as response:
                try:
                    body = await response.json(content_type=None)
                except ValueError:
                    body = None
                status = response.status
        except asyncio.TimeoutError as e:
            raise RemoteUnavailable(f"{method} {path} timed out after {self.timeout}s") from e
        except aiohttp.ClientError as e:
            raise RemoteUnavailable(f"{method} {path} failed: {e}") from e

        if status == 401 and token is not None:
            raise Unauthenticated(self._error_message(body, "Authentication required"))
        return status, body

    @staticmethod
    def _error_message(body: Any, default: str) -> str:
        if isinstance(body, dict):
            return str(body.get("error") or default)
        return default

    def _check(self, status: int, body: Any, method: str, path: str):
        if status == 404:
            raise LocationNotFound(unquote(path.rsplit("/", 1)[-1]))
        if status >= 400:
            raise RemoteUnavailable(
                f"{method} {path} returned {status}: {self._error_message(body, 'error')}"
            )

    async def register(self, username: str, email: str, password: str) -> UserSession:
        status, body = await self._request(
            "POST", "/auth/register",
            json_body={"username": username, "email": email, "password": password},
        )
        if status == 400:
            message = self._error_message(body, "Registration failed")
            if isinstance(body, dict) and body.get("error_code") == "VALIDATION_ERROR":
                raise InvalidAccountData(message)
            raise AccountExists(message)
        self._check(status, body, "POST", "/auth/register")
        return UserSession.from_login_payload(body["user"], body["token"])

    async def login(self, username: str, password: str) -> UserSession:
        status, body = await self._request(
            "POST", "/auth/login",
            json_body={"username": username, "password": password},
        )
        if status == 401:
            raise InvalidCredentials(self._error_message(body, "Invalid login credentials"))
        self._check(status, body, "POST", "/auth/login")
        return UserSession.from_login_payload(body["user"], body["token"])

    async def upsert_progress(
        self,
        token: str,
        game_id: str,
        completed_locations: list[CompletedLocation],
        completed: bool,
    ) -> list[GameProgressEntry]:
        payload = {
            "gameId": game_id,
            "completed": completed,
            "completedLocations": [loc.to_dict() for loc in completed_locations],
        }
        status, body = await self._request("POST", "/auth/progress", token, payload)
        self._check(status, body, "POST", "/auth/progress")
        return _progress_list(body)

    async def fetch_progress(self, token: str, game_id: str) -> GameProgressEntry:
        path = f"/auth/progress/{quote(game_id, safe='')}"
        status, body = await self._request("GET", path, token)
        if status == 404:
            return GameProgressEntry.zeroed(game_id)
        self._check(status, body, "GET", path)
        if not isinstance(body, dict):
            return GameProgressEntry.zeroed(game_id)
        return GameProgressEntry.from_dict(body, game_id=game_id)

    async def add_saved_location(self, token: str, location: SavedLocation) -> None:
        status, body = await self._request(
            "POST", "/auth/locations", token, {"location": location.to_dict()}
        )
        self._check(status, body, "POST", "/auth/locations")

    async def list_saved_locations(self, token: str) -> list[SavedLocation]:
        status, body = await self._request("GET", "/auth/locations", token)
        self._check(status, body, "GET", "/auth/locations")
        items = body.get("locations", []) if isinstance(body, dict) else []
        return [SavedLocation.from_dict(item) for item in items if isinstance(item, dict)]

    async def update_notes(self, token: str, location_id: str, notes: str | None) -> SavedLocation:
        path = f"/auth/locations/{quote(location_id, safe='')}"
        status, body = await self._request("PATCH", path, token, {"notes": notes})
        self._check(status, body, "PATCH", path)
        return SavedLocation.from_dict(body["location"])

    async def remove_saved_location(self, token: str, location_id: str) -> None:
        path = f"/auth/locations/{quote(location_id, safe='')}"
        status, body = await self._request("DELETE", path, token)
        self._check(status, body, "DELETE", path)


class InProcessRemoteStore(RemoteProgressStore):
    """
    Remote store backed directly by an AccountDirectory.

    `online = False` makes every progress/location call raise
    RemoteUnavailable, which is how tests simulate losing connectivity.
    `failing_location_ids` makes add_saved_location fail for those ids.
    """

    def __init__(self, directory: AccountDirectory | None = None):
        self.directory = directory or AccountDirectory()
        self.online = True
        self.failing_location_ids: set[str] = set()
        self.calls: list[tuple[str, str]] = []

    def _account(self, token: str, operation: str):
        self.calls.append((operation, token))
        if not self.online:
            raise RemoteUnavailable(f"{operation}: remote store is offline")
        return self.directory.authenticate(token)

    async def register(self, username: str, email: str, password: str) -> UserSession:
        account, token = self.directory.register(username, email, password)
        return UserSession.from_login_payload(account.public_dict(), token)

    async def login(self, username: str, password: str) -> UserSession:
        account, token = self.directory.login(username, password)
        return UserSession.from_login_payload(account.public_dict(), token)

    async def upsert_progress(
        self,
        token: str,
        game_id: str,
        completed_locations: list[CompletedLocation],
        completed: bool,
    ) -> list[GameProgressEntry]:
        account = self._account(token, "upsert_progress")
        return self.directory.upsert_progress(account, game_id, completed_locations, completed)

    async def fetch_progress(self, token: str, game_id: str) -> GameProgressEntry:
        account = self._account(token, "fetch_progress")
        return self.directory.fetch_progress(account, game_id)

    async def add_saved_location(self, token: str, location: SavedLocation) -> None:
        account = self._account(token, "add_saved_location")
        if location.id in self.failing_location_ids:
            raise RemoteUnavailable(f"add_saved_location: rejected {location.id}")
        self.directory.add_saved_location(account, location)

    async def list_saved_locations(self, token: str) -> list[SavedLocation]:
        account = self._account(token, "list_saved_locations")
        return self.directory.list_saved_locations(account)

    async def update_notes(self, token: str, location_id: str, notes: str | None) -> SavedLocation:
        account = self._account(token, "update_notes")
        return self.directory.update_notes(account, location_id, notes)

    async def remove_saved_location(self, token: str, location_id: str) -> None:
        account = self._account(token, "remove_saved_location")
        self.directory.remove_saved_location(account, location_id)
