"""Construction of a fully wired :class:`SyncEngine` from settings."""

from __future__ import annotations

from bookmark_sync.bookmarks import BookmarksManager, CommandBookmarksManager
from bookmark_sync.cloud import CloudContainer
from bookmark_sync.config import Settings
from bookmark_sync.monitors import CloudDirectoryMonitor, LocalDirectoryMonitor
from bookmark_sync.sync.coordination import FileCoordinator
from bookmark_sync.sync.engine import SyncEngine
from bookmark_sync.sync.executor import ActionExecutor
from bookmark_sync.sync.models import Action
from bookmark_sync.sync.reconciler import Reconciler, SyncEvent
from bookmark_sync.sync.state import InitialSyncStore


def build_monitors(cfg: Settings) -> tuple[LocalDirectoryMonitor, CloudDirectoryMonitor]:
    container = CloudContainer(cfg.cloud_dir, cfg.container_name)
    local = LocalDirectoryMonitor(cfg.local_dir, cfg.extension, cfg.settle_delay, cfg.rescan_interval)
    cloud = CloudDirectoryMonitor(container, cfg.extension, cfg.settle_delay, cfg.rescan_interval)
    return local, cloud


def build_engine(cfg: Settings, bookmarks: BookmarksManager | None = None) -> SyncEngine:
    """Wire monitors, executor, state store and bookmarks manager.

    Args:
        cfg: Validated settings.
        bookmarks: The bookmarks engine to notify; defaults to a
            ``CommandBookmarksManager`` running ``cfg.reload_command``.
    """
    local_monitor, cloud_monitor = build_monitors(cfg)
    executor = ActionExecutor(
        local_directory=cfg.local_dir,
        container=cloud_monitor.container,
        coordinator=FileCoordinator(timeout=cfg.coordination_timeout),
        device_name=cfg.device_name,
    )
    return SyncEngine(
        local_monitor=local_monitor,
        cloud_monitor=cloud_monitor,
        executor=executor,
        state_store=InitialSyncStore(cfg.state_file),
        bookmarks=bookmarks or CommandBookmarksManager(cfg.reload_command),
        enabled=cfg.enabled,
        max_workers=cfg.workers,
        reload_timeout=cfg.reload_timeout,
        background_grace=cfg.background_grace,
        device_name=cfg.device_name,
    )


def preview_actions(cfg: Settings) -> list[Action]:
    """Gather both sides once and return the actions a pass would produce.

    Nothing is executed.  Raises :class:`SyncError` when either side
    cannot be scanned.
    """
    local_monitor, cloud_monitor = build_monitors(cfg)
    local_listing = local_monitor.gather_once()
    cloud_listing = cloud_monitor.gather_once()
    reconciler = Reconciler(initial_sync_completed=InitialSyncStore(cfg.state_file).initial_sync_completed)
    reconciler.resolve(SyncEvent.gathered(local_listing))
    return reconciler.resolve(SyncEvent.gathered(cloud_listing))
