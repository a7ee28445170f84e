"""Sync engine orchestrating monitors, reconciliation and execution.

Receives observations from the local and cloud monitors, feeds them to
the :class:`Reconciler`, runs the resulting actions on a bounded worker
pool, classifies failures, tells observers about the current error and
busy state, and asks the bookmarks engine to reload when files changed.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from bookmark_sync.sync.errors import SyncError, SyncErrorKind, classify_os_error
from bookmark_sync.sync.executor import ActionExecutor
from bookmark_sync.sync.models import Action, ActionKind, ActionResult, ContentListing
from bookmark_sync.sync.observers import BusyCallback, ErrorCallback, ObserverRegistry
from bookmark_sync.sync.reconciler import Reconciler, SyncEvent
from bookmark_sync.sync.state import InitialSyncStore

if TYPE_CHECKING:
    from bookmark_sync.bookmarks import BookmarksManager
    from bookmark_sync.monitors.base import DirectoryMonitor

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Status models
# ------------------------------------------------------------------


class SyncLifecycle(StrEnum):
    """Lifecycle state of the engine."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    PAUSED = "paused"


class EngineStatus(BaseModel):
    """Snapshot of the engine for status displays."""

    state: SyncLifecycle
    enabled: bool
    busy: bool
    initial_sync_completed: bool
    error: str | None = None
    error_kind: str | None = None
    pending_downloads: list[str] = Field(default_factory=list)
    pending_conflicts: list[str] = Field(default_factory=list)


# ------------------------------------------------------------------
# Engine
# ------------------------------------------------------------------


class SyncEngine:
    """Keeps the local directory and the cloud container synchronized.

    One instance is built at process start and passed to whatever needs
    to control it.  All monitor callbacks may arrive on monitor threads;
    each observation is resolved and its actions executed before the
    next observation is looked at.

    Args:
        local_monitor: Monitor of the local directory.
        cloud_monitor: Monitor of the cloud container.
        executor: Applies actions to storage.
        state_store: Durable "initial sync completed" flag.
        bookmarks: The bookmarks engine to reload after changes.
        enabled: Whether synchronization is switched on in settings.
        max_workers: Size of the action worker pool.
        reload_timeout: Seconds to wait for the bookmarks reload signal.
        background_grace: Seconds to let in-flight work finish after the
            application went to the background.
        device_name: Recorded with the durable flag.
    """

    def __init__(
        self,
        local_monitor: DirectoryMonitor,
        cloud_monitor: DirectoryMonitor,
        executor: ActionExecutor,
        state_store: InitialSyncStore,
        bookmarks: BookmarksManager,
        *,
        enabled: bool = True,
        max_workers: int = 4,
        reload_timeout: float = 30.0,
        background_grace: float = 25.0,
        device_name: str = "",
    ) -> None:
        self._local_monitor = local_monitor
        self._cloud_monitor = cloud_monitor
        self._executor = executor
        self._store = state_store
        self._bookmarks = bookmarks
        self._enabled = enabled
        self._max_workers = max_workers
        self._reload_timeout = reload_timeout
        self._background_grace = background_grace
        self._device_name = device_name

        self._reconciler = Reconciler()
        self._observers = ObserverRegistry()
        self._pool: ThreadPoolExecutor | None = None

        self._state = SyncLifecycle.STOPPED
        self._session = 0
        self._busy = False
        self._error: Exception | None = None
        self._batches = 0
        self._in_flight: list[Future[ActionResult]] = []
        self._background_token = 0

        self._lifecycle_lock = threading.Lock()
        self._resolve_lock = threading.RLock()
        self._idle = threading.Event()
        self._idle.set()
        self._reload_done = threading.Event()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> SyncLifecycle:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def error(self) -> Exception | None:
        return self._error

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def reconciler(self) -> Reconciler:
        return self._reconciler

    @property
    def batches_processed(self) -> int:
        return self._batches

    def status(self) -> EngineStatus:
        """Return a snapshot of the engine."""
        sync_state = self._reconciler.state
        error = self._error
        return EngineStatus(
            state=self._state,
            enabled=self._enabled,
            busy=self._busy,
            initial_sync_completed=self._store.initial_sync_completed,
            error=str(error) if error is not None else None,
            error_kind=error.kind.value if isinstance(error, SyncError) else None,
            pending_downloads=sorted(sync_state.pending_downloads),
            pending_conflicts=sorted(sync_state.pending_conflicts),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start synchronization, or resume it when paused."""
        logger.debug("Start synchronization...")
        with self._lifecycle_lock:
            if self._state in (SyncLifecycle.RUNNING, SyncLifecycle.STARTING):
                logger.debug("Synchronization is already started")
                return
            paused = self._state is SyncLifecycle.PAUSED
            if not paused:
                self._state = SyncLifecycle.STARTING
                self._session += 1
                session = self._session
        if paused:
            self.resume()
            return

        with self._resolve_lock:
            self._reconciler.reset(initial_sync_completed=self._store.initial_sync_completed)
        if self._pool is None:
            self._pool = ThreadPoolExecutor(
                max_workers=self._max_workers, thread_name_prefix="sync-action"
            )
        self._local_monitor.delegate = self
        self._cloud_monitor.delegate = self
        self._bookmarks.add_observer(self)

        for monitor in (self._cloud_monitor, self._local_monitor):
            try:
                monitor.start()
            except SyncError as exc:
                self.stop()
                self._process_error(exc)
                return

        with self._lifecycle_lock:
            if self._session != session or self._state is not SyncLifecycle.STARTING:
                return
            self._state = SyncLifecycle.RUNNING
        logger.info("Synchronization is started")

    def stop(self) -> None:
        """Stop synchronization and discard all in-memory state."""
        logger.info("Stop synchronization")
        with self._lifecycle_lock:
            self._state = SyncLifecycle.STOPPED
            self._session += 1
            in_flight, self._in_flight = self._in_flight, []
        for future in in_flight:
            future.cancel()
        self._reload_done.set()

        self._local_monitor.stop()
        self._cloud_monitor.stop()
        with self._resolve_lock:
            self._reconciler.reset()
        self._set_error(None)
        self._bookmarks.remove_observer(self)

    def pause(self) -> None:
        """Stop observing changes without discarding state."""
        with self._lifecycle_lock:
            if self._state is not SyncLifecycle.RUNNING:
                return
            self._state = SyncLifecycle.PAUSED
        logger.info("Pause synchronization")
        self._local_monitor.pause()
        self._cloud_monitor.pause()

    def resume(self) -> None:
        """Continue observing changes after :meth:`pause`."""
        with self._lifecycle_lock:
            if self._state is not SyncLifecycle.PAUSED:
                return
            self._state = SyncLifecycle.RUNNING
        logger.info("Resume synchronization")
        self._local_monitor.resume()
        self._cloud_monitor.resume()

    def close(self) -> None:
        """Stop and release the worker pool."""
        self.stop()
        if self._pool is not None:
            self._pool.shutdown(wait=True, cancel_futures=True)
            self._pool = None

    # ------------------------------------------------------------------
    # Settings and application lifecycle hooks
    # ------------------------------------------------------------------

    def set_enabled(self, enabled: bool) -> None:
        """React to the synchronization setting being switched."""
        self._enabled = enabled
        if enabled:
            self.start()
        else:
            self.stop()

    def enter_foreground(self) -> None:
        self._background_token += 1
        if self._enabled:
            self.start()

    def enter_background(self) -> None:
        """Pause once in-flight work is done, or when the grace time ends."""
        if not self._enabled:
            return
        self._background_token += 1
        token = self._background_token
        if not self._busy:
            self.pause()
            return

        def finish() -> None:
            if not self._idle.wait(self._background_grace):
                logger.warning("Background time expired with synchronization in progress")
            if token == self._background_token:
                self.pause()

        threading.Thread(target=finish, name="sync-background", daemon=True).start()

    # ------------------------------------------------------------------
    # Monitor delegate
    # ------------------------------------------------------------------

    def did_finish_gathering(self, listing: ContentListing) -> None:
        self._handle(SyncEvent.gathered(listing))

    def did_update(self, listing: ContentListing) -> None:
        self._handle(SyncEvent.updated(listing))

    def did_receive_error(self, error: Exception) -> None:
        self._handle(SyncEvent.failed(error))

    # ------------------------------------------------------------------
    # Bookmarks observer
    # ------------------------------------------------------------------

    def on_bookmarks_load_finished(self) -> None:
        logger.debug("Bookmarks load finished")
        self._reload_done.set()

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def add_observer(
        self,
        observer: Any,
        *,
        on_error: ErrorCallback | None = None,
        on_busy: BusyCallback | None = None,
    ) -> None:
        """Subscribe *observer*; it is notified immediately with the
        current state and then on every change.  Held weakly.
        """
        self._observers.add(observer, on_error=on_error, on_busy=on_busy)
        if on_error is not None:
            on_error(self._error)
        if on_busy is not None:
            on_busy(self._busy)

    def remove_observer(self, observer: Any) -> None:
        self._observers.remove(observer)

    def _set_error(self, error: Exception | None) -> None:
        self._error = error
        self._observers.notify_error(error)

    def _set_busy(self, busy: bool) -> None:
        self._busy = busy
        if busy:
            self._idle.clear()
        else:
            self._idle.set()
        self._observers.notify_busy(busy)

    # ------------------------------------------------------------------
    # Event processing
    # ------------------------------------------------------------------

    def _handle(self, event: SyncEvent) -> None:
        session = self._session
        with self._resolve_lock:
            if self._state is SyncLifecycle.STOPPED or session != self._session:
                logger.debug("Ignoring %s, synchronization is stopped", event.kind.value)
                return
            actions = self._reconciler.resolve(event)
            self._process_actions(actions, session)

    def _process_actions(self, actions: list[Action], session: int) -> None:
        if not actions:
            self._set_error(None)
            return

        self._set_busy(True)
        logger.debug("Processing %d action(s)...", len(actions))
        futures: list[Future[ActionResult]] = []
        for action in actions:
            if session != self._session:
                break
            if action.kind is ActionKind.MARK_INITIAL_SYNC_DONE:
                self._mark_initial_sync_done()
            elif action.kind is ActionKind.REPORT_ERROR:
                assert action.error is not None  # noqa: S101
                self._process_error(action.error)
            else:
                futures.append(self._submit(action))

        needs_reload = False
        for future in as_completed(futures):
            if future.cancelled():
                continue
            result = future.result()
            if session != self._session:
                continue
            if result.error is not None:
                self._reconciler.action_failed(result.action)
                self._process_error(result.error)
            needs_reload = needs_reload or result.touched_local

        with self._lifecycle_lock:
            self._in_flight = [f for f in self._in_flight if not f.done()]
        self._batches += 1
        self._set_busy(False)
        if needs_reload and session == self._session:
            self._reload_bookmarks()

    def _submit(self, action: Action) -> Future[ActionResult]:
        assert self._pool is not None  # noqa: S101
        future = self._pool.submit(self._executor.execute, action)
        with self._lifecycle_lock:
            self._in_flight.append(future)
        return future

    def _mark_initial_sync_done(self) -> None:
        try:
            self._store.mark_completed(self._device_name)
        except OSError as exc:
            self._process_error(classify_os_error(exc, cloud=False))

    def _reload_bookmarks(self) -> None:
        logger.debug("Start reloading bookmarks...")
        self._reload_done.clear()
        self._bookmarks.load_bookmarks()
        if self._reload_done.wait(self._reload_timeout):
            logger.debug("Bookmarks are reloaded")
            return
        logger.error("Bookmarks reload did not finish within %.1fs", self._reload_timeout)
        self._process_error(
            SyncError(
                SyncErrorKind.RELOAD_TIMEOUT,
                f"Bookmarks reload did not finish within {self._reload_timeout:.1f}s",
            )
        )

    # ------------------------------------------------------------------
    # Error handling
    # ------------------------------------------------------------------

    def _process_error(self, error: Exception) -> None:
        if not isinstance(error, SyncError):
            logger.error("Non-synchronization error: %s", error, exc_info=error)
            return
        logger.warning("Synchronization error: %s", error)
        if error.is_fatal:
            self.stop()
        self._set_error(error)

    # ------------------------------------------------------------------
    # Waiting helpers
    # ------------------------------------------------------------------

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        """Block until no batch is being processed."""
        return self._idle.wait(timeout)

    def wait_until_settled(self, quiet_period: float, timeout: float) -> bool:
        """Block until both sides were gathered and no batch has been
        processed for *quiet_period* seconds.

        Returns:
            ``False`` if *timeout* passed first or the engine stopped.
        """
        deadline = time.monotonic() + timeout
        last_batches = -1
        while time.monotonic() < deadline:
            if self._state is SyncLifecycle.STOPPED:
                return False
            ready = self._reconciler.state.is_ready
            if ready and not self._busy and self._batches == last_batches:
                return True
            last_batches = self._batches if ready else -1
            time.sleep(min(quiet_period, max(deadline - time.monotonic(), 0)))
        return False
