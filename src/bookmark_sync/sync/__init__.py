"""Sync engine package for local <-> cloud bookmark file synchronization."""

from bookmark_sync.sync.conflict import ConflictDetector, ConflictType, generate_new_file_path
from bookmark_sync.sync.coordination import FileCoordinator
from bookmark_sync.sync.differ import SyncDiffer, compute_file_hash
from bookmark_sync.sync.engine import EngineStatus, SyncEngine, SyncLifecycle
from bookmark_sync.sync.errors import ErrorSeverity, SyncError, SyncErrorKind
from bookmark_sync.sync.executor import ActionExecutor
from bookmark_sync.sync.models import (
    Action,
    ActionKind,
    ActionResult,
    CloudItem,
    ContentListing,
    DownloadStatus,
    LocalItem,
    Side,
    TrashedItem,
)
from bookmark_sync.sync.reconciler import EventKind, Reconciler, SyncEvent, SyncState
from bookmark_sync.sync.state import InitialSyncStore, PersistedSyncState

__all__ = [
    "Action",
    "ActionExecutor",
    "ActionKind",
    "ActionResult",
    "CloudItem",
    "ConflictDetector",
    "ConflictType",
    "ContentListing",
    "DownloadStatus",
    "EngineStatus",
    "ErrorSeverity",
    "EventKind",
    "FileCoordinator",
    "InitialSyncStore",
    "LocalItem",
    "PersistedSyncState",
    "Reconciler",
    "Side",
    "SyncDiffer",
    "SyncEngine",
    "SyncError",
    "SyncErrorKind",
    "SyncEvent",
    "SyncLifecycle",
    "SyncState",
    "TrashedItem",
    "compute_file_hash",
    "generate_new_file_path",
]
