"""Interface to the bookmarks engine that reads the synchronized files.

The sync engine does not own bookmark data.  After it changed files in
the local directory it asks the bookmarks engine to reload and waits
for the ``on_bookmarks_load_finished`` signal.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Protocol

logger = logging.getLogger(__name__)


class BookmarksObserver(Protocol):
    def on_bookmarks_load_finished(self) -> None: ...


class BookmarksManager(Protocol):
    """What the sync engine needs from the bookmarks engine."""

    def load_bookmarks(self) -> None:
        """Start reloading; observers are told when it finished."""

    def add_observer(self, observer: BookmarksObserver) -> None: ...

    def remove_observer(self, observer: BookmarksObserver) -> None: ...


class CommandBookmarksManager:
    """Reloads bookmarks by running a shell command on its own thread.

    With no command configured a reload only logs and signals completion,
    which is enough for running the engine without a consumer.

    Args:
        command: Shell command run for every reload, e.g. a script that
            tells a running application to re-read its bookmarks.
        timeout: Seconds the command may run.
    """

    def __init__(self, command: str = "", timeout: float = 60.0) -> None:
        self._command = command
        self._timeout = timeout
        self._observers: list[BookmarksObserver] = []
        self._lock = threading.Lock()
        # Reloads run one at a time on a single owning thread.
        self._thread = ThreadPoolExecutor(max_workers=1, thread_name_prefix="bookmarks")

    def add_observer(self, observer: BookmarksObserver) -> None:
        with self._lock:
            if observer not in self._observers:
                self._observers.append(observer)

    def remove_observer(self, observer: BookmarksObserver) -> None:
        with self._lock:
            if observer in self._observers:
                self._observers.remove(observer)

    def load_bookmarks(self) -> None:
        self._thread.submit(self._reload)

    def shutdown(self, wait: bool = False) -> None:
        self._thread.shutdown(wait=wait, cancel_futures=not wait)

    def _reload(self) -> None:
        if self._command:
            logger.info("Reloading bookmarks: %s", self._command)
            try:
                subprocess.run(
                    shlex.split(self._command),
                    check=True,
                    capture_output=True,
                    text=True,
                    timeout=self._timeout,
                )
            except (OSError, subprocess.SubprocessError) as exc:
                logger.error("Bookmarks reload command failed: %s", exc)
                return
        else:
            logger.info("Bookmarks changed on disk")
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            observer.on_bookmarks_load_finished()
