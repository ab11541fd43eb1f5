"""
Local Cache Store - On-device persisted state.

Keys (all JSON-encoded):
- user            profile of the logged-in user
- token           bearer token for the remote store
- gameProgress    {gameId: GameProgressEntry}
- savedLocations  [SavedLocation], insertion order = display order
- pendingSync     [gameId] with local changes not yet acknowledged remotely

Every set() is durable before it returns. A missing or unreadable key
reads as empty, never as an error.

Two backends share the typed accessors:
- FileCacheStore: one JSON file per key, atomic replace on write
- MemoryCacheStore: a dict, for tests and ephemeral sessions
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any
import json
import logging
import os
import tempfile

from ..core.models import GameProgressEntry, SavedLocation

logger = logging.getLogger(__name__)

USER_KEY = "user"
TOKEN_KEY = "token"
GAME_PROGRESS_KEY = "gameProgress"
SAVED_LOCATIONS_KEY = "savedLocations"
PENDING_SYNC_KEY = "pendingSync"

SESSION_KEYS = (USER_KEY, TOKEN_KEY)
ALL_KEYS = (USER_KEY, TOKEN_KEY, GAME_PROGRESS_KEY, SAVED_LOCATIONS_KEY, PENDING_SYNC_KEY)


class LocalCacheStore(ABC):
    """
    Synchronous key/value store with typed accessors.

    Subclasses implement raw text storage; this class handles JSON
    encoding and the "absent means empty" rule.
    """

    @abstractmethod
    def _read(self, key: str) -> str | None:
        """Raw stored text, or None if the key is absent."""
        pass

    @abstractmethod
    def _write(self, key: str, text: str):
        pass

    @abstractmethod
    def _delete(self, key: str):
        pass

    # Generic JSON access

    def get(self, key: str, default: Any = None) -> Any:
        text = self._read(key)
        if text is None:
            return default
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            logger.warning(f"Local cache key {key!r} is corrupt; treating as empty")
            return default

    def set(self, key: str, value: Any):
        self._write(key, json.dumps(value))

    def remove(self, key: str):
        self._delete(key)

    # Session

    def get_user(self) -> dict | None:
        user = self.get(USER_KEY)
        return user if isinstance(user, dict) else None

    def set_user(self, user: dict):
        self.set(USER_KEY, user)

    def get_token(self) -> str | None:
        token = self.get(TOKEN_KEY)
        return token if isinstance(token, str) and token else None

    def set_token(self, token: str):
        self.set(TOKEN_KEY, token)

    def clear_session(self):
        """Remove user and token only."""
        for key in SESSION_KEYS:
            self._delete(key)

    # Game progress

    def get_all_progress(self) -> dict[str, GameProgressEntry]:
        raw = self.get(GAME_PROGRESS_KEY, {})
        if not isinstance(raw, dict):
            return {}
        result: dict[str, GameProgressEntry] = {}
        for game_id, data in raw.items():
            if isinstance(data, dict):
                result[str(game_id)] = GameProgressEntry.from_dict(data, game_id=str(game_id))
        return result

    def get_progress(self, game_id: str) -> GameProgressEntry | None:
        return self.get_all_progress().get(game_id)

    def put_progress(self, entry: GameProgressEntry):
        progress = self.get_all_progress()
        progress[entry.game_id] = entry
        self.set(
            GAME_PROGRESS_KEY,
            {game_id: e.to_dict() for game_id, e in progress.items()},
        )

    # Saved locations

    def get_saved_locations(self) -> list[SavedLocation]:
        raw = self.get(SAVED_LOCATIONS_KEY, [])
        if not isinstance(raw, list):
            return []
        locations = []
        for item in raw:
            if not isinstance(item, dict):
                continue
            try:
                locations.append(SavedLocation.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Dropping malformed saved location: {e}")
        return locations

    def set_saved_locations(self, locations: list[SavedLocation]):
        self.set(SAVED_LOCATIONS_KEY, [loc.to_dict() for loc in locations])

    def clear_saved_locations(self):
        self._delete(SAVED_LOCATIONS_KEY)

    # Pending sync

    def get_pending_sync(self) -> list[str]:
        raw = self.get(PENDING_SYNC_KEY, [])
        if not isinstance(raw, list):
            return []
        return [str(game_id) for game_id in raw]

    def set_pending_sync(self, game_ids: list[str]):
        if game_ids:
            self.set(PENDING_SYNC_KEY, list(dict.fromkeys(game_ids)))
        else:
            self._delete(PENDING_SYNC_KEY)


class MemoryCacheStore(LocalCacheStore):
    """In-memory backend."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.set(key, value)

    def _read(self, key: str) -> str | None:
        return self._data.get(key)

    def _write(self, key: str, text: str):
        self._data[key] = text

    def _delete(self, key: str):
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class FileCacheStore(LocalCacheStore):
    """
    File-backed store: <cache_dir>/<key>.json per key.

    Usage:
        store = FileCacheStore("~/.snapquest/cache")
        store.put_progress(entry)
    """

    def __init__(self, cache_dir: str | Path | None = None):
        if cache_dir is None:
            cache_dir = Path.home() / ".snapquest" / "cache"
        self.cache_dir = Path(cache_dir).expanduser()
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if key not in ALL_KEYS:
            raise KeyError(f"Unknown cache key: {key}")
        return self.cache_dir / f"{key}.json"

    def _read(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read {path}: {e}")
            return None

    def _write(self, key: str, text: str):
        path = self._path(key)
        fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _delete(self, key: str):
        self._path(key).unlink(missing_ok=True)

    def clear(self):
        """Remove every key."""
        for key in ALL_KEYS:
            self._delete(key)
