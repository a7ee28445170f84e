"""Monitor for the cloud container directory."""

from __future__ import annotations

import os
from pathlib import Path

from bookmark_sync.cloud.container import CloudContainer, name_from_placeholder
from bookmark_sync.monitors.base import WatchedDirectoryMonitor
from bookmark_sync.sync.differ import compute_file_hash
from bookmark_sync.sync.errors import SyncError, SyncErrorKind
from bookmark_sync.sync.models import CloudItem, DownloadStatus, FileIdentity, Side, TrashedItem


class CloudDirectoryMonitor(WatchedDirectoryMonitor):
    """Watches the cloud container for documents, placeholders and trash.

    Args:
        container: The cloud container to watch.
        extension: File extension to track, without the dot.
        settle_delay: Seconds to wait after a change before scanning.
        rescan_interval: Seconds between scans without any change.
    """

    side = Side.CLOUD
    watch_recursive = True

    def __init__(
        self,
        container: CloudContainer,
        extension: str = "kml",
        settle_delay: float = 0.5,
        rescan_interval: float = 60.0,
    ) -> None:
        super().__init__(settle_delay=settle_delay, rescan_interval=rescan_interval)
        self.container = container
        self.extension = extension
        self._hashes: dict[tuple[str, int, int], str] = {}

    @property
    def watch_path(self) -> Path:
        return self.container.root

    def resolve_root(self) -> Path:
        """Resolve the container root used before any cloud write."""
        return self.container.resolve_root()

    def check_directory(self) -> None:
        self.container.resolve_root()

    def scan(self) -> tuple[dict[FileIdentity, CloudItem], list[TrashedItem]]:
        root = self.container.resolve_root()
        suffix = f".{self.extension}"
        documents: dict[FileIdentity, CloudItem] = {}
        placeholders: dict[FileIdentity, CloudItem] = {}
        hashes: dict[tuple[str, int, int], str] = {}
        try:
            with os.scandir(root) as entries:
                for entry in entries:
                    try:
                        if not entry.is_file():
                            continue
                        placeholder_for = name_from_placeholder(entry.name)
                        if placeholder_for is not None:
                            if placeholder_for.endswith(suffix):
                                placeholders[placeholder_for] = self._placeholder_item(
                                    placeholder_for, entry.stat().st_mtime_ns
                                )
                            continue
                        if entry.name.startswith(".") or not entry.name.endswith(suffix):
                            continue
                        st = entry.stat()
                        key = (entry.name, st.st_mtime_ns, st.st_size)
                        digest = self._hashes.get(key) or compute_file_hash(entry.path)
                    except FileNotFoundError:
                        continue
                    hashes[key] = digest
                    documents[entry.name] = CloudItem(
                        identity=entry.name,
                        relative_path=entry.name,
                        modified_ns=st.st_mtime_ns,
                        size=st.st_size,
                        download_status=DownloadStatus.CURRENT,
                        has_conflicts=self.container.versions.has_conflicts(entry.name),
                        content_hash=digest,
                    )
            trashed = self.container.trash.list_entries(self.extension)
        except OSError as exc:
            raise SyncError(
                SyncErrorKind.FILE_UNAVAILABLE,
                f"Cannot read cloud container {root}: {exc}",
            ) from exc
        self._hashes = hashes
        # A materialized document wins over a leftover placeholder.
        items = {**placeholders, **documents}
        return items, trashed

    def _placeholder_item(self, name: str, modified_ns: int) -> CloudItem:
        if self.container.download_failed(name):
            status = DownloadStatus.ERROR
        elif self.container.is_download_requested(name):
            status = DownloadStatus.DOWNLOADING
        else:
            status = DownloadStatus.NOT_DOWNLOADED
        return CloudItem(
            identity=name,
            relative_path=name,
            modified_ns=modified_ns,
            download_status=status,
        )
