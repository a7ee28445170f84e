"""Unresolved conflict versions of cloud documents.

When two devices edit the same document before the provider can merge
them, the provider keeps the losing edits as conflict versions under
``.versions/<name>/``.  The document at ``<name>`` is the current version.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bookmark_sync.cloud.container import CloudContainer

logger = logging.getLogger(__name__)

VERSIONS_DIRECTORY_NAME = ".versions"


@dataclass(frozen=True)
class FileVersion:
    """One stored version of a document."""

    path: Path
    modified_ns: int


class VersionStore:
    """Client for the container's conflict versions.

    Args:
        container: The owning ``CloudContainer``.
    """

    def __init__(self, container: CloudContainer) -> None:
        self._container = container

    def versions_directory(self, file_name: str) -> Path:
        return self._container.root / VERSIONS_DIRECTORY_NAME / file_name

    def has_conflicts(self, file_name: str) -> bool:
        directory = self.versions_directory(file_name)
        return directory.is_dir() and any(p.is_file() for p in directory.iterdir())

    def current_version(self, path: Path) -> FileVersion | None:
        """The version at *path* itself, or ``None`` if it does not exist."""
        try:
            st = path.stat()
        except FileNotFoundError:
            return None
        return FileVersion(path=path, modified_ns=st.st_mtime_ns)

    def unresolved_conflict_versions(self, path: Path) -> list[FileVersion]:
        """List conflict versions of *path*, newest first."""
        directory = self.versions_directory(path.name)
        if not directory.is_dir():
            return []
        versions = [
            FileVersion(path=p, modified_ns=p.stat().st_mtime_ns)
            for p in directory.iterdir()
            if p.is_file()
        ]
        versions.sort(key=lambda v: v.modified_ns, reverse=True)
        return versions

    def replace_item(self, version: FileVersion, target: Path) -> None:
        """Atomically replace *target* with the bytes of *version*.

        The version's modification time is kept on the replaced file.
        """
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.")
        os.close(fd)
        try:
            shutil.copy2(version.path, tmp_name)
            os.utime(tmp_name, ns=(version.modified_ns, version.modified_ns))
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def remove_other_versions(self, path: Path) -> None:
        """Drop every stored conflict version of *path*."""
        directory = self.versions_directory(path.name)
        if directory.exists():
            shutil.rmtree(directory)
            logger.debug("Removed conflict versions of %s", path.name)
