"""Directory monitors producing content listings for the engine."""

from bookmark_sync.monitors.base import (
    DirectoryMonitor,
    MonitorDelegate,
    MonitorState,
    WatchedDirectoryMonitor,
)
from bookmark_sync.monitors.cloud import CloudDirectoryMonitor
from bookmark_sync.monitors.local import LocalDirectoryMonitor

__all__ = [
    "CloudDirectoryMonitor",
    "DirectoryMonitor",
    "LocalDirectoryMonitor",
    "MonitorDelegate",
    "MonitorState",
    "WatchedDirectoryMonitor",
]
