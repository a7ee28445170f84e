"""Conflict classification and collision-free file naming.

:class:`ConflictDetector` decides, for an identity present on both sides,
which copy has to win.  :func:`generate_new_file_path` produces the
disambiguated names used when both copies have to survive.
"""

from __future__ import annotations

import os
import re
from collections.abc import Callable
from enum import StrEnum
from pathlib import Path

from bookmark_sync.sync.differ import SyncDiffer, compute_file_hash
from bookmark_sync.sync.errors import SyncError, SyncErrorKind
from bookmark_sync.sync.models import CloudItem, LocalItem, Side

MAX_NAME_ATTEMPTS = 1000

_TRAILING_NUMBER = re.compile(r"_(\d+)$")


class ConflictType(StrEnum):
    """Classification of an identity present on both sides."""

    NONE = "none"
    LOCAL_NEWER = "local_newer"
    CLOUD_NEWER = "cloud_newer"
    VERSION_CONFLICT = "version_conflict"
    INITIAL_SYNC_CONFLICT = "initial_sync_conflict"


class ConflictDetector:
    """Classifies the relationship between the local and cloud copy.

    Uses :class:`SyncDiffer` internally for timestamp and content checks.
    """

    def __init__(self) -> None:
        self._differ = SyncDiffer()

    def detect(
        self,
        local: LocalItem,
        cloud: CloudItem,
        *,
        initial_sync: bool = False,
    ) -> ConflictType:
        """Classify a pair of copies of the same identity.

        Args:
            local: The local copy.
            cloud: The cloud copy.
            initial_sync: Whether this is the first synchronization after
                enabling, when there is no shared history.

        Returns:
            A ``ConflictType``:

            - ``VERSION_CONFLICT`` -- the cloud provider holds unresolved
              versions; this supersedes everything else.
            - ``INITIAL_SYNC_CONFLICT`` -- first-ever sync and the copies
              hold different content.
            - ``LOCAL_NEWER`` / ``CLOUD_NEWER`` -- the later modification
              wins.  An exact timestamp tie with different content goes to
              the cloud copy.
            - ``NONE`` -- nothing to do.
        """
        if cloud.has_conflicts:
            return ConflictType.VERSION_CONFLICT
        if initial_sync and self._differ.contents_differ(local, cloud):
            return ConflictType.INITIAL_SYNC_CONFLICT

        newer = self._differ.newer_side(local, cloud)
        if newer is Side.LOCAL:
            return ConflictType.LOCAL_NEWER
        if newer is Side.CLOUD:
            return ConflictType.CLOUD_NEWER
        if self._differ.has_content_difference(local, cloud):
            return ConflictType.CLOUD_NEWER
        return ConflictType.NONE


def _next_candidate(path: Path, device_name: str | None) -> Path:
    stem = path.stem
    match = _TRAILING_NUMBER.search(stem)
    if match is not None:
        stem = f"{stem[: match.start(1)]}{int(match.group(1)) + 1}"
    else:
        stem = f"{stem}_1"
    if device_name:
        stem = f"{stem}_{device_name}"
    return path.with_name(stem + path.suffix)


def generate_new_file_path(
    path: str | Path,
    *,
    add_device_name: bool = False,
    device_name: str = "",
    exists: Callable[[Path], bool] = os.path.exists,
) -> Path:
    """Return a free sibling path for *path*.

    ``note.kml`` becomes ``note_1.kml`` and ``note_1.kml`` becomes
    ``note_2.kml``.  With ``add_device_name`` the device name is appended
    to the stem (``note_1_laptop.kml``).  When the candidate already
    exists the procedure is repeated against the candidate, without the
    device name, until a free path is found.

    Args:
        path: The file whose name is taken.
        add_device_name: Whether to embed *device_name* in the first
            candidate.
        device_name: The device identifier to embed.
        exists: Existence check, replaceable for tests.

    Returns:
        A path in the same directory that does not exist yet.

    Raises:
        SyncError: ``LOCAL_IO`` if no free name is found within
            ``MAX_NAME_ATTEMPTS`` candidates.
    """
    candidate = _next_candidate(Path(path), device_name if add_device_name else None)
    for _ in range(MAX_NAME_ATTEMPTS):
        if not exists(candidate):
            return candidate
        candidate = _next_candidate(candidate, None)
    raise SyncError(
        SyncErrorKind.LOCAL_IO,
        f"No free file name found for {path} after {MAX_NAME_ATTEMPTS} attempts",
    )


def find_existing_copy(
    path: str | Path,
    content_hash: str,
    *,
    add_device_name: bool = False,
    device_name: str = "",
) -> Path | None:
    """Return a sibling of *path* that already holds *content_hash*.

    Walks the same candidates as :func:`generate_new_file_path` and stops
    at the first free one, so a copy written by an earlier, interrupted
    attempt is found again instead of being duplicated.
    """
    candidate = _next_candidate(Path(path), device_name if add_device_name else None)
    for _ in range(MAX_NAME_ATTEMPTS):
        if not candidate.exists():
            return None
        if candidate.is_file() and compute_file_hash(candidate) == content_hash:
            return candidate
        candidate = _next_candidate(candidate, None)
    return None
