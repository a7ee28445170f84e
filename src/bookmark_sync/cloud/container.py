"""Cloud container backed by a provider-synced directory.

``CloudContainer`` is the single entry point for everything the engine
does to the cloud side.  The container lives in a directory kept in sync
by the operating system's cloud daemon; the engine only ever touches it
through this class and its sub-clients.

Directory conventions inside the container root:

- ``<name>`` -- a materialized document.
- ``.<name>.icloud`` -- a placeholder for a document that has not been
  downloaded yet.
- ``.<name>.download`` -- a download request.  The daemon writes
  ``error`` into it when materialization failed.
- ``.Trash/`` -- trashed documents, see :class:`TrashClient`.
- ``.versions/<name>/`` -- unresolved conflict versions, see
  :class:`VersionStore`.
"""

from __future__ import annotations

import logging
from pathlib import Path

from bookmark_sync.cloud.trash import TrashClient
from bookmark_sync.cloud.versions import VersionStore
from bookmark_sync.sync.errors import SyncError, SyncErrorKind

logger = logging.getLogger(__name__)

PLACEHOLDER_SUFFIX = ".icloud"
DOWNLOAD_REQUEST_SUFFIX = ".download"


def placeholder_name(file_name: str) -> str:
    """``A.kml`` -> ``.A.kml.icloud``."""
    return f".{file_name}{PLACEHOLDER_SUFFIX}"


def name_from_placeholder(placeholder: str) -> str | None:
    """Inverse of :func:`placeholder_name`; ``None`` for other names."""
    if placeholder.startswith(".") and placeholder.endswith(PLACEHOLDER_SUFFIX):
        name = placeholder[1 : -len(PLACEHOLDER_SUFFIX)]
        return name or None
    return None


def download_request_name(file_name: str) -> str:
    return f".{file_name}{DOWNLOAD_REQUEST_SUFFIX}"


class CloudContainer:
    """A cloud mirror directory with lazily created sub-clients.

    Usage::

        container = CloudContainer(Path("~/CloudDocs").expanduser())
        root = container.resolve_root()
        container.trash.trash_item(root / "A.kml")
        versions = container.versions.unresolved_conflict_versions(root / "B.kml")

    Args:
        base_directory: Directory the cloud daemon keeps in sync.  Its
            absence means cloud storage is unavailable on this machine.
        container_name: Sub-directory holding this application's files.
    """

    def __init__(self, base_directory: str | Path, container_name: str = "bookmarks") -> None:
        self._base = Path(base_directory).expanduser()
        self._container_name = container_name

        self._trash: TrashClient | None = None
        self._versions: VersionStore | None = None

    @property
    def base_directory(self) -> Path:
        return self._base

    @property
    def root(self) -> Path:
        """The container root, whether or not it exists yet."""
        return self._base / self._container_name

    # ------------------------------------------------------------------
    # Root resolution
    # ------------------------------------------------------------------

    def resolve_root(self) -> Path:
        """Return the container root, creating it on first use.

        Raises:
            SyncError: ``CLOUD_UNAVAILABLE`` when the synced base directory
                is missing, ``CONTAINER_NOT_FOUND`` when the root cannot
                be used as a directory.
        """
        if not self._base.is_dir():
            raise SyncError(
                SyncErrorKind.CLOUD_UNAVAILABLE,
                f"Cloud storage directory {self._base} is not available",
            )
        root = self.root
        if root.exists() and not root.is_dir():
            raise SyncError(
                SyncErrorKind.CONTAINER_NOT_FOUND,
                f"Cloud container {root} is not a directory",
            )
        try:
            root.mkdir(exist_ok=True)
        except OSError as exc:
            raise SyncError(
                SyncErrorKind.CONTAINER_NOT_FOUND,
                f"Cloud container {root} cannot be created: {exc}",
            ) from exc
        return root

    # ------------------------------------------------------------------
    # Sub-client accessors (lazy-initialized)
    # ------------------------------------------------------------------

    @property
    def trash(self) -> TrashClient:
        """Trash operations for removed documents."""
        if self._trash is None:
            self._trash = TrashClient(self)
        return self._trash

    @property
    def versions(self) -> VersionStore:
        """Unresolved conflict versions of documents."""
        if self._versions is None:
            self._versions = VersionStore(self)
        return self._versions

    # ------------------------------------------------------------------
    # Downloads
    # ------------------------------------------------------------------

    def start_download(self, file_name: str) -> bool:
        """Ask the daemon to materialize *file_name*.

        Returns:
            ``True`` if a download was requested, ``False`` if the document
            is already materialized.

        Raises:
            SyncError: ``FILE_UNAVAILABLE`` if neither the document nor its
                placeholder exists.
        """
        root = self.resolve_root()
        if (root / file_name).is_file():
            return False
        if not (root / placeholder_name(file_name)).exists():
            raise SyncError(
                SyncErrorKind.FILE_UNAVAILABLE,
                f"{file_name} is neither downloaded nor a known placeholder",
            )
        request = root / download_request_name(file_name)
        if not request.exists():
            request.write_text("requested\n", encoding="utf-8")
        logger.debug("Requested download of %s", file_name)
        return True

    def download_failed(self, file_name: str) -> bool:
        """Whether the daemon reported a failed download for *file_name*."""
        request = self.root / download_request_name(file_name)
        try:
            return request.read_text(encoding="utf-8").strip() == "error"
        except FileNotFoundError:
            return False

    def is_download_requested(self, file_name: str) -> bool:
        return (self.root / download_request_name(file_name)).exists()
