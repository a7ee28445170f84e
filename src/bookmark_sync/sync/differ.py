"""Change detection between a local item and its cloud counterpart.

Provides content hashing for listings, timestamp comparison for the
newer-side-wins rule, and the content-identity check used to tell a
real conflict from two copies of the same file.
"""

from __future__ import annotations

import hashlib
from pathlib import Path

from bookmark_sync.sync.models import CloudItem, LocalItem, Side

_CHUNK_SIZE = 64 * 1024


def compute_file_hash(path: str | Path) -> str:
    """Compute a SHA-256 hash of a file's raw bytes.

    Args:
        path: Absolute or relative path to the file.

    Returns:
        Hex-encoded SHA-256 digest string.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    digest = hashlib.sha256()
    with Path(path).open("rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


class SyncDiffer:
    """Stateless helpers comparing the two copies of one identity."""

    @staticmethod
    def newer_side(local: LocalItem, cloud: CloudItem) -> Side | None:
        """Return the side with the later modification time.

        Returns:
            ``Side.LOCAL`` or ``Side.CLOUD``, or ``None`` on an exact tie.
        """
        if local.modified_ns > cloud.modified_ns:
            return Side.LOCAL
        if cloud.modified_ns > local.modified_ns:
            return Side.CLOUD
        return None

    @staticmethod
    def has_content_difference(local: LocalItem, cloud: CloudItem) -> bool:
        """Whether the two copies are known to hold different bytes.

        Only hashes and sizes count here; equal timestamps with unknown
        hashes and equal sizes are treated as the same content.
        """
        if local.content_hash and cloud.content_hash:
            return local.content_hash != cloud.content_hash
        return local.size != cloud.size

    @classmethod
    def contents_differ(cls, local: LocalItem, cloud: CloudItem) -> bool:
        """Whether two same-named files must be treated as distinct content.

        Used during the initial synchronization, where there is no shared
        history to arbitrate by recency.  Hashes decide when both are known;
        otherwise any difference in size or timestamp counts.
        """
        if local.content_hash and cloud.content_hash:
            return local.content_hash != cloud.content_hash
        return local.size != cloud.size or local.modified_ns != cloud.modified_ns
