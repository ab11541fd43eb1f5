"""
Account Directory - Server side of the Remote Progress Store.

Holds accounts, issues opaque bearer tokens, and keeps per-account
game progress and saved locations.

Storage is in-memory; a process restart loses every account. Each
account's data is guarded by the directory lock because FastAPI runs
sync endpoints in a thread pool.

Progress semantics:
- upsert replaces completedLocations for the game (idempotent)
- completed is sticky: once true it never returns to false
- fetch of an unknown game yields a zeroed entry, never "not found"

Saved-location semantics:
- add is an upsert by id; existing notes survive a re-submission
  that carries none
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable
import hashlib
import hmac
import logging
import secrets
import threading
import uuid

from ..core.models import GameProgressEntry, SavedLocation
from ..core.normalize import normalize_completed_locations, utc_now
from ..errors import (
    AccountExists,
    InvalidAccountData,
    InvalidCredentials,
    LocationNotFound,
    Unauthenticated,
)

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 120_000
TOKEN_BYTES = 32


def hash_password(password: str, salt: bytes | None = None) -> tuple[bytes, bytes]:
    """Return (salt, digest)."""
    salt = salt or secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)
    return salt, digest


@dataclass
class Account:
    """A registered user and everything stored for them."""
    id: str
    username: str
    email: str
    password_salt: bytes
    password_hash: bytes
    created_at: datetime = field(default_factory=utc_now)
    game_progress: list[GameProgressEntry] = field(default_factory=list)
    saved_locations: list[SavedLocation] = field(default_factory=list)

    def check_password(self, password: str) -> bool:
        _, digest = hash_password(password, self.password_salt)
        return hmac.compare_digest(digest, self.password_hash)

    def progress_for(self, game_id: str) -> GameProgressEntry | None:
        for entry in self.game_progress:
            if entry.game_id == game_id:
                return entry
        return None

    def location_index(self, location_id: str) -> int:
        for i, loc in enumerate(self.saved_locations):
            if loc.id == location_id:
                return i
        return -1

    def public_dict(self) -> dict[str, Any]:
        """The `user` payload returned by login/registration/profile."""
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "gameProgress": [entry.to_dict() for entry in self.game_progress],
        }


class AccountDirectory:
    """
    In-memory accounts + token registry + progress repository.

    Usage:
        directory = AccountDirectory()
        account, token = directory.register("ana", "ana@example.com", "secret")
        account = directory.authenticate(token)
        directory.upsert_progress(account, "historic", ["1"], completed=False)
    """

    def __init__(self):
        self._accounts: dict[str, Account] = {}
        self._tokens: dict[str, str] = {}
        self._lock = threading.RLock()

    # -------------------------------------------------------------------------
    # Accounts and tokens
    # -------------------------------------------------------------------------

    def register(self, username: str, email: str, password: str) -> tuple[Account, str]:
        username = (username or "").strip()
        email = (email or "").strip().lower()
        if not username or not email or not password:
            raise InvalidAccountData("username, email and password are required")

        with self._lock:
            for existing in self._accounts.values():
                if existing.username == username or existing.email == email:
                    raise AccountExists("Username or email already exists")

            salt, digest = hash_password(password)
            account = Account(
                id=uuid.uuid4().hex,
                username=username,
                email=email,
                password_salt=salt,
                password_hash=digest,
            )
            self._accounts[account.id] = account
            token = self._issue_token(account)

        logger.info(f"Registered account {account.username!r}")
        return account, token

    def login(self, username: str, password: str) -> tuple[Account, str]:
        with self._lock:
            account = self._find_by_username((username or "").strip())
            if account is None or not account.check_password(password or ""):
                raise InvalidCredentials("Invalid login credentials")
            token = self._issue_token(account)
        logger.info(f"Login for {account.username!r}")
        return account, token

    def authenticate(self, token: str | None) -> Account:
        """Resolve a bearer token. Raises Unauthenticated."""
        if not token:
            raise Unauthenticated("No authentication token provided")
        with self._lock:
            account_id = self._tokens.get(token)
            account = self._accounts.get(account_id) if account_id else None
        if account is None:
            raise Unauthenticated("Invalid or expired token")
        return account

    def revoke(self, token: str):
        with self._lock:
            self._tokens.pop(token, None)

    def _issue_token(self, account: Account) -> str:
        token = secrets.token_urlsafe(TOKEN_BYTES)
        self._tokens[token] = account.id
        return token

    def _find_by_username(self, username: str) -> Account | None:
        for account in self._accounts.values():
            if account.username == username:
                return account
        return None

    # -------------------------------------------------------------------------
    # Progress
    # -------------------------------------------------------------------------

    def upsert_progress(
        self,
        account: Account,
        game_id: str,
        completed_locations: Iterable[Any] | None,
        completed: bool = False,
    ) -> list[GameProgressEntry]:
        """
        Replace the completedLocations for game_id; return all progress.

        completed only ever moves false -> true.
        """
        with self._lock:
            entry = account.progress_for(game_id)
            if entry is None:
                entry = GameProgressEntry.zeroed(game_id)
                account.game_progress.append(entry)

            if completed_locations is not None:
                entry.completed_locations = normalize_completed_locations(completed_locations)
            if completed:
                entry.completed = True

            return [e.copy() for e in account.game_progress]

    def fetch_progress(self, account: Account, game_id: str) -> GameProgressEntry:
        with self._lock:
            entry = account.progress_for(game_id)
            return entry.copy() if entry else GameProgressEntry.zeroed(game_id)

    # -------------------------------------------------------------------------
    # Saved locations
    # -------------------------------------------------------------------------

    def list_saved_locations(self, account: Account) -> list[SavedLocation]:
        with self._lock:
            return list(account.saved_locations)

    def add_saved_location(self, account: Account, location: SavedLocation) -> list[SavedLocation]:
        """Upsert by id. Returns the full collection."""
        with self._lock:
            index = account.location_index(location.id)
            if index == -1:
                account.saved_locations.append(location)
            else:
                existing = account.saved_locations[index]
                if existing.notes and not location.notes:
                    location = location.with_notes(existing.notes)
                account.saved_locations[index] = location
            return list(account.saved_locations)

    def update_notes(self, account: Account, location_id: str, notes: str | None) -> SavedLocation:
        with self._lock:
            index = account.location_index(location_id)
            if index == -1:
                raise LocationNotFound(location_id)
            updated = account.saved_locations[index].with_notes(notes)
            account.saved_locations[index] = updated
            return updated

    def remove_saved_location(self, account: Account, location_id: str) -> list[SavedLocation]:
        with self._lock:
            index = account.location_index(location_id)
            if index == -1:
                raise LocationNotFound(location_id)
            del account.saved_locations[index]
            return list(account.saved_locations)
