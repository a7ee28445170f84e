"""Data model shared by the monitors, the reconciler and the executor.

A ``ContentListing`` is an immutable snapshot (or delta) of one side's
files.  The reconciler turns pairs of listings into ``Action`` values
that the executor applies to storage.
"""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

FileIdentity = str


def file_identity(path: str | Path) -> FileIdentity:
    """Return the identity of *path*: its extension-qualified file name."""
    return Path(path).name


class Side(StrEnum):
    """Which directory a listing describes."""

    LOCAL = "local"
    CLOUD = "cloud"


class DownloadStatus(StrEnum):
    """Materialization state of a cloud item."""

    NOT_DOWNLOADED = "not_downloaded"
    DOWNLOADING = "downloading"
    CURRENT = "current"
    ERROR = "error"


# ------------------------------------------------------------------
# Items
# ------------------------------------------------------------------


class LocalItem(BaseModel):
    """A file in the local bookmarks directory."""

    model_config = ConfigDict(frozen=True)

    identity: FileIdentity
    path: Path
    modified_ns: int
    size: int = 0
    content_hash: str | None = None

    def cloud_path(self, cloud_root: Path) -> Path:
        """Where this item lives inside the cloud container."""
        return cloud_root / self.identity


class CloudItem(BaseModel):
    """A file in the cloud container, possibly not yet downloaded."""

    model_config = ConfigDict(frozen=True)

    identity: FileIdentity
    relative_path: str
    modified_ns: int
    size: int = 0
    download_status: DownloadStatus = DownloadStatus.CURRENT
    has_conflicts: bool = False
    content_hash: str | None = None

    @property
    def is_downloaded(self) -> bool:
        return self.download_status is DownloadStatus.CURRENT

    def local_path(self, local_root: Path) -> Path:
        """Where this item lives inside the local directory."""
        return local_root / self.identity


class TrashedItem(BaseModel):
    """An entry in the cloud container's trash."""

    model_config = ConfigDict(frozen=True)

    identity: FileIdentity
    trashed_ns: int


ContentItem = LocalItem | CloudItem


class ContentListing(BaseModel):
    """Snapshot or delta of one side's contents.

    A full gather lists every file.  An incremental update lists only
    the files that appeared or changed since the previous listing, and
    names the ones that disappeared in ``removed``.
    """

    model_config = ConfigDict(frozen=True)

    side: Side
    generation: int
    is_full_gather: bool = True
    items: dict[FileIdentity, ContentItem] = Field(default_factory=dict)
    removed: frozenset[FileIdentity] = frozenset()
    trashed: dict[FileIdentity, TrashedItem] = Field(default_factory=dict)

    @classmethod
    def gather(
        cls,
        side: Side,
        generation: int,
        items: list[Any],
        trashed: list[TrashedItem] | None = None,
    ) -> ContentListing:
        """Build a full-gather listing from a list of items."""
        return cls(
            side=side,
            generation=generation,
            is_full_gather=True,
            items={item.identity: item for item in items},
            trashed={t.identity: t for t in trashed or []},
        )

    @classmethod
    def update(
        cls,
        side: Side,
        generation: int,
        items: list[Any],
        removed: set[FileIdentity] | frozenset[FileIdentity] = frozenset(),
        trashed: list[TrashedItem] | None = None,
    ) -> ContentListing:
        """Build an incremental-update listing."""
        return cls(
            side=side,
            generation=generation,
            is_full_gather=False,
            items={item.identity: item for item in items},
            removed=frozenset(removed),
            trashed={t.identity: t for t in trashed or []},
        )

    def merged(self, delta: ContentListing) -> ContentListing:
        """Apply *delta* on top of this listing and return the result.

        Items in the delta override stored entries, removed identities are
        dropped.  The trash snapshot of a cloud delta replaces the stored
        one when the delta carries any.
        """
        items = dict(self.items)
        for identity in delta.removed:
            items.pop(identity, None)
        items.update(delta.items)
        return ContentListing(
            side=self.side,
            generation=delta.generation,
            is_full_gather=self.is_full_gather,
            items=items,
            trashed=delta.trashed or self.trashed,
        )


# ------------------------------------------------------------------
# Actions
# ------------------------------------------------------------------


class ActionKind(StrEnum):
    """What the executor has to do for one identity."""

    CREATE_LOCAL = "create_local"
    UPDATE_LOCAL = "update_local"
    REMOVE_LOCAL = "remove_local"
    START_DOWNLOAD = "start_download"
    CREATE_CLOUD = "create_cloud"
    UPDATE_CLOUD = "update_cloud"
    REMOVE_CLOUD = "remove_cloud"
    RESOLVE_VERSION_CONFLICT = "resolve_version_conflict"
    RESOLVE_INITIAL_SYNC_CONFLICT = "resolve_initial_sync_conflict"
    MARK_INITIAL_SYNC_DONE = "mark_initial_sync_done"
    REPORT_ERROR = "report_error"


_STORAGE_KINDS = frozenset(
    {
        ActionKind.CREATE_LOCAL,
        ActionKind.UPDATE_LOCAL,
        ActionKind.REMOVE_LOCAL,
        ActionKind.START_DOWNLOAD,
        ActionKind.CREATE_CLOUD,
        ActionKind.UPDATE_CLOUD,
        ActionKind.REMOVE_CLOUD,
        ActionKind.RESOLVE_VERSION_CONFLICT,
        ActionKind.RESOLVE_INITIAL_SYNC_CONFLICT,
    }
)

_LOCAL_TARGET_KINDS = frozenset(
    {
        ActionKind.CREATE_LOCAL,
        ActionKind.UPDATE_LOCAL,
        ActionKind.REMOVE_LOCAL,
        ActionKind.RESOLVE_INITIAL_SYNC_CONFLICT,
    }
)


class Action(BaseModel):
    """One unit of work produced by a reconciliation pass."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: ActionKind
    identity: FileIdentity = ""
    local: LocalItem | None = None
    cloud: CloudItem | None = None
    error: Exception | None = None

    @property
    def touches_storage(self) -> bool:
        """Whether the executor has to run this action."""
        return self.kind in _STORAGE_KINDS

    @property
    def targets_local(self) -> bool:
        return self.kind in _LOCAL_TARGET_KINDS

    def __str__(self) -> str:
        if self.kind is ActionKind.REPORT_ERROR:
            return f"{self.kind.value}({self.error!r})"
        return f"{self.kind.value}({self.identity})"

    # Constructors -----------------------------------------------------

    @classmethod
    def create_local(cls, cloud: CloudItem) -> Action:
        return cls(kind=ActionKind.CREATE_LOCAL, identity=cloud.identity, cloud=cloud)

    @classmethod
    def update_local(cls, cloud: CloudItem, local: LocalItem | None = None) -> Action:
        return cls(kind=ActionKind.UPDATE_LOCAL, identity=cloud.identity, cloud=cloud, local=local)

    @classmethod
    def remove_local(cls, local: LocalItem, cloud: CloudItem | None = None) -> Action:
        return cls(kind=ActionKind.REMOVE_LOCAL, identity=local.identity, local=local, cloud=cloud)

    @classmethod
    def start_download(cls, cloud: CloudItem) -> Action:
        return cls(kind=ActionKind.START_DOWNLOAD, identity=cloud.identity, cloud=cloud)

    @classmethod
    def create_cloud(cls, local: LocalItem) -> Action:
        return cls(kind=ActionKind.CREATE_CLOUD, identity=local.identity, local=local)

    @classmethod
    def update_cloud(cls, local: LocalItem, cloud: CloudItem | None = None) -> Action:
        return cls(kind=ActionKind.UPDATE_CLOUD, identity=local.identity, local=local, cloud=cloud)

    @classmethod
    def remove_cloud(cls, cloud: CloudItem, local: LocalItem | None = None) -> Action:
        return cls(kind=ActionKind.REMOVE_CLOUD, identity=cloud.identity, cloud=cloud, local=local)

    @classmethod
    def resolve_version_conflict(cls, cloud: CloudItem) -> Action:
        return cls(
            kind=ActionKind.RESOLVE_VERSION_CONFLICT,
            identity=cloud.identity,
            cloud=cloud,
        )

    @classmethod
    def resolve_initial_sync_conflict(cls, local: LocalItem, cloud: CloudItem) -> Action:
        return cls(
            kind=ActionKind.RESOLVE_INITIAL_SYNC_CONFLICT,
            identity=local.identity,
            local=local,
            cloud=cloud,
        )

    @classmethod
    def mark_initial_sync_done(cls) -> Action:
        return cls(kind=ActionKind.MARK_INITIAL_SYNC_DONE)

    @classmethod
    def report_error(cls, error: Exception, identity: FileIdentity = "") -> Action:
        return cls(kind=ActionKind.REPORT_ERROR, identity=identity, error=error)


class ActionResult(BaseModel):
    """Outcome of executing a single action."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    action: Action
    error: Exception | None = None
    touched_local: bool = False

    @property
    def success(self) -> bool:
        return self.error is None
