"""Monitor for the local bookmarks directory."""

from __future__ import annotations

import os
from pathlib import Path

from bookmark_sync.monitors.base import WatchedDirectoryMonitor
from bookmark_sync.sync.differ import compute_file_hash
from bookmark_sync.sync.errors import SyncError, SyncErrorKind
from bookmark_sync.sync.models import FileIdentity, LocalItem, Side, TrashedItem


class LocalDirectoryMonitor(WatchedDirectoryMonitor):
    """Watches the local directory for files with the given extension.

    Args:
        directory: The local bookmarks directory; created if missing.
        extension: File extension to track, without the dot.
        settle_delay: Seconds to wait after a change before scanning.
        rescan_interval: Seconds between scans without any change.
    """

    side = Side.LOCAL

    def __init__(
        self,
        directory: str | Path,
        extension: str = "kml",
        settle_delay: float = 0.5,
        rescan_interval: float = 60.0,
    ) -> None:
        super().__init__(settle_delay=settle_delay, rescan_interval=rescan_interval)
        self.directory = Path(directory).expanduser()
        self.extension = extension
        self._hashes: dict[tuple[str, int, int], str] = {}

    @property
    def watch_path(self) -> Path:
        return self.directory

    def check_directory(self) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise SyncError(
                SyncErrorKind.LOCAL_DIRECTORY_UNAVAILABLE,
                f"Cannot create local directory {self.directory}: {exc}",
            ) from exc
        if not self.directory.is_dir() or not os.access(self.directory, os.R_OK | os.X_OK):
            raise SyncError(
                SyncErrorKind.LOCAL_DIRECTORY_UNAVAILABLE,
                f"Cannot open local directory {self.directory}",
            )

    def scan(self) -> tuple[dict[FileIdentity, LocalItem], list[TrashedItem]]:
        suffix = f".{self.extension}"
        items: dict[FileIdentity, LocalItem] = {}
        hashes: dict[tuple[str, int, int], str] = {}
        try:
            with os.scandir(self.directory) as entries:
                for entry in entries:
                    if entry.name.startswith(".") or not entry.name.endswith(suffix):
                        continue
                    try:
                        if not entry.is_file():
                            continue
                        st = entry.stat()
                        key = (entry.name, st.st_mtime_ns, st.st_size)
                        digest = self._hashes.get(key) or compute_file_hash(entry.path)
                    except FileNotFoundError:
                        # Removed while scanning; the next scan reports it.
                        continue
                    hashes[key] = digest
                    items[entry.name] = LocalItem(
                        identity=entry.name,
                        path=Path(entry.path),
                        modified_ns=st.st_mtime_ns,
                        size=st.st_size,
                        content_hash=digest,
                    )
        except FileNotFoundError as exc:
            raise SyncError(
                SyncErrorKind.LOCAL_DIRECTORY_UNAVAILABLE,
                f"Local directory {self.directory} disappeared",
            ) from exc
        except OSError as exc:
            raise SyncError(
                SyncErrorKind.LOCAL_CONTENT_UNREADABLE,
                f"Cannot read local directory {self.directory}: {exc}",
            ) from exc
        self._hashes = hashes
        return items, []
