"""Event-driven directory monitors.

A monitor watches one side, reports a full gather once after it starts
and incremental updates for every change it observes afterwards.  All
callbacks run on the monitor's own thread.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from enum import StrEnum
from pathlib import Path
from typing import Any, Protocol

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from bookmark_sync.sync.errors import SyncError, SyncErrorKind
from bookmark_sync.sync.models import ContentListing, FileIdentity, Side, TrashedItem

logger = logging.getLogger(__name__)


class MonitorState(StrEnum):
    STOPPED = "stopped"
    STARTED = "started"
    PAUSED = "paused"


class MonitorDelegate(Protocol):
    """Receiver of a monitor's observations."""

    def did_finish_gathering(self, listing: ContentListing) -> None: ...

    def did_update(self, listing: ContentListing) -> None: ...

    def did_receive_error(self, error: Exception) -> None: ...


class DirectoryMonitor(Protocol):
    """What the engine needs from a monitor."""

    side: Side
    delegate: MonitorDelegate | None

    @property
    def state(self) -> MonitorState: ...

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def pause(self) -> None: ...

    def resume(self) -> None: ...


class _ChangeHandler(FileSystemEventHandler):
    """Wakes the scanning thread whenever the watched tree changes."""

    def __init__(self, changed: threading.Event) -> None:
        self._changed = changed

    def on_created(self, event: FileSystemEvent) -> None:
        self._changed.set()

    def on_modified(self, event: FileSystemEvent) -> None:
        self._changed.set()

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._changed.set()

    def on_moved(self, event: FileSystemEvent) -> None:
        self._changed.set()


class WatchedDirectoryMonitor(ABC):
    """Base class rescanning a directory when the file system reports changes.

    A watchdog ``Observer`` wakes the monitor thread on every event under
    :attr:`watch_path`; the thread waits *settle_delay* so a burst of
    events results in a single scan.  A full rescan also runs every
    *rescan_interval* seconds for file systems that do not deliver events.

    Subclasses provide :meth:`check_directory` and :meth:`scan`; this
    class turns successive scans into one full gather followed by
    deltas with increasing generation numbers.

    Args:
        settle_delay: Seconds to wait after an event before scanning.
        rescan_interval: Seconds between scans without any event.
    """

    side: Side
    watch_recursive: bool = False

    def __init__(self, settle_delay: float = 0.5, rescan_interval: float = 60.0) -> None:
        self.delegate: MonitorDelegate | None = None
        self._settle_delay = settle_delay
        self._rescan_interval = rescan_interval
        self._state = MonitorState.STOPPED
        self._generation = 0
        self._previous: dict[FileIdentity, Any] | None = None
        self._previous_trash: dict[FileIdentity, TrashedItem] = {}
        self._stop_event = threading.Event()
        self._changed = threading.Event()
        self._resume_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._observer: BaseObserver | None = None
        self._lock = threading.Lock()

    @property
    def state(self) -> MonitorState:
        return self._state

    # ------------------------------------------------------------------
    # Subclass hooks
    # ------------------------------------------------------------------

    @property
    @abstractmethod
    def watch_path(self) -> Path:
        """The directory whose file system events trigger a rescan."""

    @abstractmethod
    def check_directory(self) -> None:
        """Raise a ``SyncError`` if the directory cannot be monitored."""

    @abstractmethod
    def scan(self) -> tuple[dict[FileIdentity, Any], list[TrashedItem]]:
        """Return the current items and trash entries.

        Raises:
            SyncError: When the directory content cannot be read.
        """

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start monitoring.

        Raises:
            SyncError: If the directory cannot be monitored.
        """
        with self._lock:
            if self._state is not MonitorState.STOPPED:
                return
            self.check_directory()
            changed = threading.Event()
            observer = Observer()
            try:
                observer.schedule(
                    _ChangeHandler(changed), str(self.watch_path), recursive=self.watch_recursive
                )
                observer.start()
            except OSError as exc:
                kind = (
                    SyncErrorKind.CLOUD_UNAVAILABLE
                    if self.side is Side.CLOUD
                    else SyncErrorKind.LOCAL_DIRECTORY_UNAVAILABLE
                )
                raise SyncError(kind, f"Cannot watch {self.watch_path}: {exc}") from exc
            self._observer = observer
            self._generation = 0
            self._previous = None
            self._previous_trash = {}
            self._stop_event = threading.Event()
            self._changed = changed
            self._resume_event.set()
            self._state = MonitorState.STARTED
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event, changed),
                name=f"{self.side.value}-monitor",
                daemon=True,
            )
            self._thread.start()
        logger.debug("%s monitor started, watching %s", self.side.value, self.watch_path)

    def stop(self) -> None:
        with self._lock:
            if self._state is MonitorState.STOPPED:
                return
            self._state = MonitorState.STOPPED
            self._stop_event.set()
            self._changed.set()
            self._resume_event.set()
            thread, self._thread = self._thread, None
            observer, self._observer = self._observer, None
        if observer is not None:
            observer.stop()
            observer.join(timeout=5)
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=max(self._settle_delay * 2, 1.0))
        logger.debug("%s monitor stopped", self.side.value)

    def pause(self) -> None:
        with self._lock:
            if self._state is MonitorState.STARTED:
                self._state = MonitorState.PAUSED
                self._resume_event.clear()

    def resume(self) -> None:
        with self._lock:
            if self._state is MonitorState.PAUSED:
                self._state = MonitorState.STARTED
                self._resume_event.set()

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def _run(self, stop_event: threading.Event, changed: threading.Event) -> None:
        while not stop_event.is_set():
            self._resume_event.wait()
            if stop_event.is_set():
                break
            changed.clear()
            self.poll()
            if changed.wait(self._rescan_interval) and not stop_event.is_set():
                stop_event.wait(self._settle_delay)

    def poll(self) -> ContentListing | None:
        """Scan once and deliver the resulting listing, if any."""
        try:
            items, trashed = self.scan()
        except SyncError as exc:
            self._deliver_error(exc)
            return None

        listing = self._listing_from_scan(items, trashed)
        if listing is None:
            return None
        delegate = self.delegate
        if delegate is not None:
            if listing.is_full_gather:
                delegate.did_finish_gathering(listing)
            else:
                delegate.did_update(listing)
        return listing

    def gather_once(self) -> ContentListing:
        """Scan once without a thread and return a full-gather listing.

        Raises:
            SyncError: If the directory cannot be read.
        """
        self.check_directory()
        items, trashed = self.scan()
        return ContentListing.gather(self.side, 1, list(items.values()), trashed)

    def _listing_from_scan(
        self, items: dict[FileIdentity, Any], trashed: list[TrashedItem]
    ) -> ContentListing | None:
        trash = {t.identity: t for t in trashed}
        previous = self._previous
        if previous is None:
            self._generation += 1
            self._previous, self._previous_trash = items, trash
            return ContentListing.gather(self.side, self._generation, list(items.values()), trashed)

        changed = [item for key, item in items.items() if previous.get(key) != item]
        removed = set(previous) - set(items)
        trash_changed = trash != self._previous_trash
        if not changed and not removed and not trash_changed:
            return None
        self._generation += 1
        self._previous, self._previous_trash = items, trash
        return ContentListing.update(
            self.side, self._generation, changed, removed, trashed if trash_changed else None
        )

    def _deliver_error(self, error: Exception) -> None:
        logger.warning("%s monitor error: %s", self.side.value, error)
        delegate = self.delegate
        if delegate is not None:
            delegate.did_receive_error(error)
