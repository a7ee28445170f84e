"""Per-path coordination of file reads and writes.

Two actions targeting the same path must never interleave, even when
they come from unrelated code paths.  :class:`FileCoordinator` hands out
one lock per resolved path and acquires multi-path sets in a stable
order so coordinated read-then-write operations cannot deadlock.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from bookmark_sync.sync.errors import SyncError, SyncErrorKind

logger = logging.getLogger(__name__)


class _PathLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class FileCoordinator:
    """Excludes concurrent access to the same paths.

    Args:
        timeout: Seconds to wait for a path before giving up with a
            ``FILE_UNAVAILABLE`` error.
    """

    def __init__(self, timeout: float = 10.0) -> None:
        self._timeout = timeout
        self._guard = threading.Lock()
        self._locks: dict[str, _PathLock] = {}

    @staticmethod
    def _key(path: str | Path) -> str:
        return str(Path(path).resolve(strict=False))

    def _checkout(self, key: str) -> _PathLock:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _PathLock()
            entry.users += 1
            return entry

    def _checkin(self, key: str) -> None:
        with self._guard:
            entry = self._locks[key]
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    @contextmanager
    def coordinate(self, *paths: str | Path) -> Iterator[tuple[Path, ...]]:
        """Hold exclusive access to every path in *paths*.

        Yields the paths back as ``Path`` objects in the order given.

        Raises:
            SyncError: ``FILE_UNAVAILABLE`` if a path stays busy for longer
                than the configured timeout.
        """
        keys = sorted({self._key(p) for p in paths})
        acquired: list[str] = []
        entries = [self._checkout(key) for key in keys]
        try:
            for key, entry in zip(keys, entries):
                if not entry.lock.acquire(timeout=self._timeout):
                    raise SyncError(
                        SyncErrorKind.FILE_UNAVAILABLE,
                        f"Timed out waiting for coordinated access to {key}",
                    )
                acquired.append(key)
            yield tuple(Path(p) for p in paths)
        finally:
            for key, entry in zip(keys, entries):
                if key in acquired:
                    entry.lock.release()
                self._checkin(key)

    def is_busy(self, path: str | Path) -> bool:
        """Whether some operation currently holds or waits for *path*."""
        with self._guard:
            return self._key(path) in self._locks
