"""
Sync Layer - Local-first progress and saved locations.

Architecture:
    SyncEngine -> LocalCacheStore (always, first)
               -> RemoteProgressStore (when authenticated, best effort)
               -> ProgressChannel (notifies subscribers)
"""

from .local_store import LocalCacheStore, FileCacheStore, MemoryCacheStore
from .remote import RemoteProgressStore, HttpRemoteProgressStore, InProcessRemoteStore
from .events import EventKind, ProgressEvent, ProgressChannel, SessionContext
from .engine import SyncEngine, SyncResult, FlushResult, MigrationReport, LocationResult

__all__ = [
    "LocalCacheStore",
    "FileCacheStore",
    "MemoryCacheStore",
    "RemoteProgressStore",
    "HttpRemoteProgressStore",
    "InProcessRemoteStore",
    "EventKind",
    "ProgressEvent",
    "ProgressChannel",
    "SessionContext",
    "SyncEngine",
    "SyncResult",
    "FlushResult",
    "MigrationReport",
    "LocationResult",
]
