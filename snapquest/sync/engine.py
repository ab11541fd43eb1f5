"""
Sync Engine - Local-first progress with write-through to the remote store.

Rules:
- The Local Cache Store is the source of truth for the user's latest
  action. Every mutation is written locally before any network call.
- Remote failures never fail a mutation. They come back as warnings,
  and the game stays in `pendingSync` until the remote acknowledges it.
- Completion is monotonic: a completed location is never removed by a
  sync operation, and `completed` never flips back to false.
- completedLocations are normalized to CompletedLocation on ingestion
  from every source (caller, local cache, remote response).

The engine does read-modify-write against the local store without its
own locking; callers serialize mutations per game.
"""

from __future__ import annotations
from dataclasses import dataclass, field
import logging

from ..core.models import (
    CompletedLocation,
    DetectedLocation,
    GameProgressEntry,
    SavedLocation,
    UserSession,
)
from ..core.normalize import (
    merge_completed_locations,
    normalize_location_id,
    utc_now,
)
from ..errors import LocationNotFound, RemoteStoreError, Unauthenticated
from ..games.catalog import GameCatalog, default_catalog
from .events import EventKind, ProgressChannel, ProgressEvent, SessionContext
from .local_store import LocalCacheStore
from .remote import RemoteProgressStore

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome of a progress mutation."""
    entry: GameProgressEntry
    changed: bool
    remote_synced: bool = False
    warnings: list[str] = field(default_factory=list)


@dataclass
class FlushResult:
    synced: list[str] = field(default_factory=list)
    pending: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class MigrationReport:
    """Which anonymous saved locations reached the account."""
    migrated: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def complete(self) -> bool:
        return not self.failed

    @property
    def total(self) -> int:
        return len(self.migrated) + len(self.failed)


@dataclass
class LocationResult:
    """Outcome of a saved-location mutation."""
    location: SavedLocation | None
    remote_synced: bool = False
    warnings: list[str] = field(default_factory=list)


class SyncEngine:
    """
    Owner of the gameProgress namespace.

    Usage:
        engine = SyncEngine(FileCacheStore(), HttpRemoteProgressStore(url))
        result = await engine.record_completion("historic", "1")
        if result.warnings:
            ...  # saved locally, will sync later
    """

    def __init__(
        self,
        local: LocalCacheStore,
        remote: RemoteProgressStore | None = None,
        catalog: GameCatalog | None = None,
        context: SessionContext | None = None,
        channel: ProgressChannel | None = None,
    ):
        self.local = local
        self.remote = remote
        self.catalog = catalog or default_catalog()
        self.context = context or SessionContext()
        self.channel = channel or ProgressChannel()

        if self.context.session is None:
            self._restore_session()

    def _restore_session(self):
        user = self.local.get_user()
        token = self.local.get_token()
        if user and token:
            self.context.start(UserSession.from_login_payload(user, token))
            logger.debug(f"Restored session for {self.context.session.username!r}")

    @property
    def is_authenticated(self) -> bool:
        return self.remote is not None and self.context.is_authenticated

    def _publish(self, kind: EventKind, game_id: str | None = None, **payload):
        self.channel.publish(ProgressEvent(kind=kind, game_id=game_id, payload=payload))

    def _is_complete(self, entry: GameProgressEntry) -> bool:
        return entry.completed or self.catalog.is_complete(entry.game_id, entry.location_ids)

    def _store_locally(self, entry: GameProgressEntry):
        self.local.put_progress(entry)
        if self.context.session is not None:
            self.context.session.put_progress(entry)
            self.local.set_user(self.context.session.user_dict())

    def _mark_pending(self, game_id: str):
        pending = self.local.get_pending_sync()
        if game_id not in pending:
            pending.append(game_id)
            self.local.set_pending_sync(pending)

    def _merge(self, local_entry: GameProgressEntry, remote_entry: GameProgressEntry) -> GameProgressEntry:
        """Union of both sides; `completed` is sticky on either."""
        merged = GameProgressEntry(
            game_id=local_entry.game_id,
            completed=local_entry.completed or remote_entry.completed,
            completed_locations=merge_completed_locations(
                remote_entry.completed_locations,
                local_entry.completed_locations,
            ),
        )
        merged.completed = self._is_complete(merged)
        return merged

    # =========================================================================
    # Progress
    # =========================================================================

    async def load_progress(self, game_id: str) -> GameProgressEntry:
        """
        Local-first read.

        Local entry if present; otherwise the remote entry (cached
        locally) when authenticated; otherwise a zeroed entry.
        """
        entry = self.local.get_progress(game_id)
        if entry is not None:
            return entry

        if not self.is_authenticated:
            return GameProgressEntry.zeroed(game_id)

        try:
            entry = await self.remote.fetch_progress(self.context.token, game_id)
        except RemoteStoreError as e:
            logger.warning(f"Could not fetch progress for {game_id}: {e}")
            return GameProgressEntry.zeroed(game_id)

        entry.game_id = game_id
        entry.completed = self._is_complete(entry)
        if entry.completed_locations or entry.completed:
            self._store_locally(entry)
        return entry

    async def record_completion(self, game_id: str, location_id) -> SyncResult:
        """
        Mark a location completed and write through.

        Re-recording an already-completed location does nothing: no
        local write, no remote call, no event.
        """
        location_id = normalize_location_id(location_id)
        entry = await self.load_progress(game_id)

        if entry.has_location(location_id):
            logger.debug(f"{game_id}/{location_id} already completed")
            return SyncResult(entry=entry, changed=False)

        entry.completed_locations.append(
            CompletedLocation(location_id=location_id, timestamp=utc_now())
        )
        entry.completed = self._is_complete(entry)

        self._store_locally(entry)
        self._mark_pending(game_id)
        self._publish(
            EventKind.PROGRESS_UPDATED,
            game_id,
            location_id=location_id,
            completed=entry.completed,
        )
        logger.info(
            f"Completed {game_id}/{location_id} "
            f"({len(entry.completed_locations)} done, completed={entry.completed})"
        )

        result = SyncResult(entry=entry, changed=True)
        if self.is_authenticated:
            flush = await self.flush_pending()
            result.remote_synced = game_id in flush.synced
            if result.remote_synced:
                result.entry = self.local.get_progress(game_id) or entry
            result.warnings.extend(flush.warnings)
        return result

    async def flush_pending(self) -> FlushResult:
        """
        Push every game with unacknowledged local changes.

        Each game is merged with the account's copy before the upsert, so
        locations only the remote knows about are never overwritten. Stops
        at the first failure; the remaining games stay pending.
        """
        pending = self.local.get_pending_sync()
        result = FlushResult(pending=list(pending))
        if not pending or not self.is_authenticated:
            return result

        for game_id in list(pending):
            entry = self.local.get_progress(game_id)
            if entry is None:
                pending.remove(game_id)
                continue
            try:
                remote_entry = await self.remote.fetch_progress(self.context.token, game_id)
                merged = self._merge(entry, remote_entry)
                await self.remote.upsert_progress(
                    self.context.token,
                    game_id,
                    merged.completed_locations,
                    merged.completed,
                )
            except Unauthenticated as e:
                result.warnings.append(f"Progress for {game_id} saved locally only: {e}")
                logger.warning(f"Remote store rejected credentials: {e}")
                break
            except RemoteStoreError as e:
                result.warnings.append(f"Progress for {game_id} saved locally only: {e}")
                logger.warning(f"Remote sync failed for {game_id}: {e}")
                break
            if set(merged.location_ids) != set(entry.location_ids) or merged.completed != entry.completed:
                self._store_locally(merged)
                self._publish(EventKind.PROGRESS_UPDATED, game_id, completed=merged.completed, merged=True)
            pending.remove(game_id)
            result.synced.append(game_id)

        self.local.set_pending_sync(pending)
        result.pending = list(pending)
        return result

    # =========================================================================
    # Session
    # =========================================================================

    async def login(self, session: UserSession) -> MigrationReport:
        """
        Start an authenticated session.

        Stores user and token, merges the account's progress into the
        local cache additively, pushes anything the account lacks, then
        migrates the anonymous saved-location collection.
        """
        self.context.start(session)
        self.local.set_token(session.token)

        local_progress = self.local.get_all_progress()
        for remote_entry in session.game_progress:
            game_id = remote_entry.game_id
            local_entry = local_progress.pop(game_id, None)
            if local_entry is None:
                merged = remote_entry.copy()
                merged.completed = self._is_complete(merged)
            else:
                merged = self._merge(local_entry, remote_entry)
            self._store_locally(merged)
            if set(merged.location_ids) != set(remote_entry.location_ids) or (
                merged.completed and not remote_entry.completed
            ):
                self._mark_pending(game_id)

        # Games only this device knows about
        for game_id, local_entry in local_progress.items():
            self._store_locally(local_entry)
            if local_entry.completed_locations:
                self._mark_pending(game_id)

        self.local.set_user(session.user_dict())
        self._publish(EventKind.SESSION_STARTED, username=session.username)
        logger.info(f"Session started for {session.username!r}")

        flush = await self.flush_pending()
        for warning in flush.warnings:
            logger.warning(warning)

        return await self.migrate_anonymous_collection(session.token)

    async def migrate_anonymous_collection(self, token: str | None = None) -> MigrationReport:
        """
        Upload every locally saved location to the account.

        On full success the local savedLocations namespace is cleared.
        On partial failure every local copy is kept; re-running is safe
        because the remote add is idempotent by id.
        """
        report = MigrationReport()
        token = token or self.context.token
        locations = self.local.get_saved_locations()
        if not locations:
            return report
        if self.remote is None or not token:
            report.failed = {loc.id: "not authenticated" for loc in locations}
            return report

        for location in locations:
            try:
                await self.remote.add_saved_location(token, location)
            except RemoteStoreError as e:
                logger.warning(f"Could not migrate location {location.id}: {e}")
                report.failed[location.id] = str(e)
                continue
            report.migrated.append(location.id)

        if report.complete:
            self.local.clear_saved_locations()
            self._publish(EventKind.LOCATIONS_CHANGED, migrated=list(report.migrated))

        logger.info(
            f"Migrated {len(report.migrated)}/{report.total} saved locations"
            + ("" if report.complete else f"; kept local copies ({len(report.failed)} failed)")
        )
        return report

    def logout(self):
        """Clear user and token. Progress and saved locations stay."""
        username = self.context.session.username if self.context.session else None
        self.local.clear_session()
        self.context.end()
        self._publish(EventKind.SESSION_ENDED, username=username)
        logger.info(f"Session ended for {username!r}")

    # =========================================================================
    # Saved locations
    # =========================================================================

    async def save_location(
        self,
        location: DetectedLocation | SavedLocation,
        notes: str | None = None,
    ) -> LocationResult:
        """
        Add a location to the collection.

        Authenticated: sent to the account; kept locally only if that
        fails, so the next migration picks it up. Anonymous: stored
        locally.
        """
        if isinstance(location, DetectedLocation):
            location = SavedLocation.from_detected(location, notes=notes)
        elif notes is not None:
            location = location.with_notes(notes)

        result = LocationResult(location=location)
        if self.is_authenticated:
            try:
                await self.remote.add_saved_location(self.context.token, location)
                result.remote_synced = True
            except RemoteStoreError as e:
                logger.warning(f"Saving {location.id} remotely failed, keeping it locally: {e}")
                result.warnings.append(f"Location saved locally only: {e}")

        if not result.remote_synced:
            self._upsert_local_location(location)

        self._publish(EventKind.LOCATIONS_CHANGED, location_id=location.id)
        return result

    def _upsert_local_location(self, location: SavedLocation):
        locations = self.local.get_saved_locations()
        for i, existing in enumerate(locations):
            if existing.id == location.id:
                if existing.notes and not location.notes:
                    location = location.with_notes(existing.notes)
                locations[i] = location
                break
        else:
            locations.append(location)
        self.local.set_saved_locations(locations)

    async def list_saved_locations(self) -> list[SavedLocation]:
        """
        Account locations (when reachable) followed by local-only ones.
        """
        local = self.local.get_saved_locations()
        if not self.is_authenticated:
            return local
        try:
            remote = await self.remote.list_saved_locations(self.context.token)
        except RemoteStoreError as e:
            logger.warning(f"Could not list remote locations: {e}")
            return local
        remote_ids = {loc.id for loc in remote}
        return remote + [loc for loc in local if loc.id not in remote_ids]

    async def update_notes(self, location_id: str, notes: str | None) -> LocationResult:
        locations = self.local.get_saved_locations()
        updated = None
        for i, loc in enumerate(locations):
            if loc.id == location_id:
                updated = locations[i] = loc.with_notes(notes)
                self.local.set_saved_locations(locations)
                break

        result = LocationResult(location=updated)
        if self.is_authenticated:
            try:
                result.location = await self.remote.update_notes(self.context.token, location_id, notes)
                result.remote_synced = True
            except LocationNotFound:
                if updated is None:
                    raise
            except RemoteStoreError as e:
                logger.warning(f"Updating notes for {location_id} remotely failed: {e}")
                result.warnings.append(f"Notes updated locally only: {e}")

        if result.location is None:
            raise LocationNotFound(location_id)
        self._publish(EventKind.LOCATIONS_CHANGED, location_id=location_id)
        return result

    async def remove_saved_location(self, location_id: str) -> LocationResult:
        locations = self.local.get_saved_locations()
        remaining = [loc for loc in locations if loc.id != location_id]
        removed_locally = len(remaining) != len(locations)
        if removed_locally:
            self.local.set_saved_locations(remaining)

        result = LocationResult(location=None)
        found = removed_locally
        if self.is_authenticated:
            try:
                await self.remote.remove_saved_location(self.context.token, location_id)
                result.remote_synced = True
                found = True
            except LocationNotFound:
                pass
            except RemoteStoreError as e:
                logger.warning(f"Removing {location_id} remotely failed: {e}")
                result.warnings.append(f"Location removed locally only: {e}")

        if not found and not result.warnings:
            raise LocationNotFound(location_id)
        self._publish(EventKind.LOCATIONS_CHANGED, location_id=location_id, removed=True)
        return result
