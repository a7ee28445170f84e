"""Trash operations inside the cloud container.

Removed cloud documents are moved to ``.Trash`` instead of being deleted,
so other devices and the user can still recover them.  The trash cannot
hold two entries with the same name, and the engine does not control how
the provider names trashed items, so a stale same-named entry is deleted
before a new one is moved in.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING

from bookmark_sync.sync.models import TrashedItem

if TYPE_CHECKING:
    from bookmark_sync.cloud.container import CloudContainer

logger = logging.getLogger(__name__)

TRASH_DIRECTORY_NAME = ".Trash"


class TrashClient:
    """Client for the container's trash directory.

    Args:
        container: The owning ``CloudContainer``.
    """

    def __init__(self, container: CloudContainer) -> None:
        self._container = container

    def trash_directory(self) -> Path:
        """Return the trash directory, creating it if needed."""
        trash = self._container.resolve_root() / TRASH_DIRECTORY_NAME
        trash.mkdir(exist_ok=True)
        return trash

    def remove_duplicate(self, file_name: str) -> bool:
        """Delete a stale trash entry named *file_name*, if there is one.

        Returns:
            ``True`` if an entry was removed.
        """
        logger.debug("Checking if %s is already in the trash directory...", file_name)
        stale = self.trash_directory() / file_name
        if not stale.exists():
            return False
        logger.debug("%s is already in the trash directory, removing it", file_name)
        stale.unlink()
        return True

    def trash_item(self, path: Path) -> Path | None:
        """Move *path* into the trash.

        Returns:
            The trashed location, or ``None`` if *path* no longer exists.
        """
        if not path.exists():
            return None
        self.remove_duplicate(path.name)
        target = self.trash_directory() / path.name
        os.replace(path, target)
        return target

    def list_entries(self, extension: str | None = None) -> list[TrashedItem]:
        """List trashed documents with the time they were trashed.

        The trash time is the entry's inode change time, which a move
        into the trash updates.
        """
        root = self._container.root
        trash = root / TRASH_DIRECTORY_NAME
        if not trash.is_dir():
            return []
        entries: list[TrashedItem] = []
        for entry in os.scandir(trash):
            if not entry.is_file():
                continue
            if extension and not entry.name.endswith(f".{extension}"):
                continue
            entries.append(
                TrashedItem(identity=entry.name, trashed_ns=entry.stat().st_ctime_ns)
            )
        return entries
