"""Reconciliation of local and cloud listings into actions.

The :class:`Reconciler` owns the :class:`SyncState` and is driven by
monitor events.  It performs no I/O: every call to :meth:`Reconciler.resolve`
updates the stored listings and returns the ordered list of actions the
executor has to run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum

from bookmark_sync.sync.conflict import ConflictDetector, ConflictType
from bookmark_sync.sync.errors import SyncError, SyncErrorKind
from bookmark_sync.sync.models import (
    Action,
    ActionKind,
    CloudItem,
    ContentListing,
    DownloadStatus,
    FileIdentity,
    LocalItem,
    Side,
)

logger = logging.getLogger(__name__)

_CONFLICT_KINDS = frozenset(
    {ActionKind.RESOLVE_VERSION_CONFLICT, ActionKind.RESOLVE_INITIAL_SYNC_CONFLICT}
)


class EventKind(StrEnum):
    """Observation events delivered by the directory monitors."""

    LOCAL_GATHER_COMPLETE = "local_gather_complete"
    LOCAL_UPDATE = "local_update"
    CLOUD_GATHER_COMPLETE = "cloud_gather_complete"
    CLOUD_UPDATE = "cloud_update"
    MONITOR_ERROR = "monitor_error"


@dataclass(frozen=True)
class SyncEvent:
    """One observation: a listing for one side, or a monitor error."""

    kind: EventKind
    listing: ContentListing | None = None
    error: Exception | None = None

    @classmethod
    def gathered(cls, listing: ContentListing) -> SyncEvent:
        kind = (
            EventKind.LOCAL_GATHER_COMPLETE
            if listing.side is Side.LOCAL
            else EventKind.CLOUD_GATHER_COMPLETE
        )
        return cls(kind=kind, listing=listing)

    @classmethod
    def updated(cls, listing: ContentListing) -> SyncEvent:
        kind = EventKind.LOCAL_UPDATE if listing.side is Side.LOCAL else EventKind.CLOUD_UPDATE
        return cls(kind=kind, listing=listing)

    @classmethod
    def failed(cls, error: Exception) -> SyncEvent:
        return cls(kind=EventKind.MONITOR_ERROR, error=error)


@dataclass
class SyncState:
    """Everything the reconciler remembers between events."""

    initial_sync_completed: bool = False
    last_local_listing: ContentListing | None = None
    last_cloud_listing: ContentListing | None = None
    local_gathered: bool = False
    cloud_gathered: bool = False
    pending_downloads: set[FileIdentity] = field(default_factory=set)
    pending_conflicts: set[FileIdentity] = field(default_factory=set)
    # Present on both sides during initial sync but not downloaded yet.
    unchecked_downloads: set[FileIdentity] = field(default_factory=set)

    @property
    def is_initial_synchronization(self) -> bool:
        return not self.initial_sync_completed

    @property
    def is_ready(self) -> bool:
        """Both sides have completed at least one full gather."""
        return self.local_gathered and self.cloud_gathered


class Reconciler:
    """Turns monitor events into actions.

    Args:
        initial_sync_completed: The durable flag loaded at engine start.
            While it is ``False`` same-named files with different content
            are resolved by keeping both copies.
    """

    def __init__(self, initial_sync_completed: bool = False) -> None:
        self._detector = ConflictDetector()
        self.state = SyncState(initial_sync_completed=initial_sync_completed)

    def reset(self, initial_sync_completed: bool | None = None) -> None:
        """Discard all stored listings and pending work."""
        if initial_sync_completed is None:
            initial_sync_completed = self.state.initial_sync_completed
        self.state = SyncState(initial_sync_completed=initial_sync_completed)

    def action_failed(self, action: Action) -> None:
        """Forget that *action* is in progress so a later pass re-issues it."""
        identity = action.identity
        if action.kind in _CONFLICT_KINDS:
            self.state.pending_conflicts.discard(identity)
        elif action.kind is ActionKind.START_DOWNLOAD:
            self.state.pending_downloads.discard(identity)

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    def resolve(self, event: SyncEvent) -> list[Action]:
        """Apply *event* to the state and return the resulting actions."""
        if event.kind is EventKind.MONITOR_ERROR:
            assert event.error is not None  # noqa: S101
            return [Action.report_error(event.error)]

        listing = event.listing
        assert listing is not None  # noqa: S101
        state = self.state
        was_ready = state.is_ready

        stored = state.last_local_listing if listing.side is Side.LOCAL else state.last_cloud_listing
        if stored is not None and listing.generation <= stored.generation:
            logger.debug(
                "Discarding stale %s listing (generation %d <= %d)",
                listing.side.value, listing.generation, stored.generation,
            )
            return []

        touched, removed = self._store(listing, stored)

        if not state.is_ready:
            logger.debug("Waiting for both sides to finish gathering")
            return []

        if not was_ready:
            return self.reconcile_all()
        return self._reconcile(touched | removed, removed_from=listing.side, removed=removed)

    def reconcile_all(self) -> list[Action]:
        """Run a full pass over every identity known on either side.

        Returns an empty list while either side has not been gathered yet.
        """
        state = self.state
        if not state.is_ready:
            return []
        assert state.last_local_listing is not None  # noqa: S101
        assert state.last_cloud_listing is not None  # noqa: S101
        identities = set(state.last_local_listing.items) | set(state.last_cloud_listing.items)
        return self._reconcile(identities, full_pass=True)

    def _store(
        self, listing: ContentListing, stored: ContentListing | None
    ) -> tuple[set[FileIdentity], set[FileIdentity]]:
        """Store *listing* and return the (touched, removed) identities."""
        state = self.state
        if listing.is_full_gather:
            new = listing
            touched = set(listing.items)
            if stored is not None:
                removed = set(stored.items) - set(listing.items)
            else:
                removed = set()
        elif stored is None:
            new = listing.model_copy(update={"removed": frozenset()})
            touched = set(listing.items)
            removed = set()
        else:
            removed = set(listing.removed) & set(stored.items)
            new = stored.merged(listing)
            touched = set(listing.items)

        if listing.side is Side.LOCAL:
            state.last_local_listing = new
            state.local_gathered = state.local_gathered or listing.is_full_gather
        else:
            state.last_cloud_listing = new
            state.cloud_gathered = state.cloud_gathered or listing.is_full_gather
        return touched, removed

    # ------------------------------------------------------------------
    # Diffing
    # ------------------------------------------------------------------

    def _reconcile(
        self,
        identities: set[FileIdentity],
        *,
        full_pass: bool = False,
        removed_from: Side | None = None,
        removed: set[FileIdentity] | None = None,
    ) -> list[Action]:
        state = self.state
        assert state.last_local_listing is not None  # noqa: S101
        assert state.last_cloud_listing is not None  # noqa: S101
        local_items = state.last_local_listing.items
        cloud_items = state.last_cloud_listing.items
        removed = removed or set()

        conflicts: list[Action] = []
        others: list[Action] = []
        for identity in sorted(identities):
            local = local_items.get(identity)
            cloud = cloud_items.get(identity)
            assert local is None or isinstance(local, LocalItem)  # noqa: S101
            assert cloud is None or isinstance(cloud, CloudItem)  # noqa: S101

            if identity in removed:
                action = self._resolve_removal(identity, removed_from, local, cloud)
            else:
                action = self._resolve_identity(identity, local, cloud, full_pass=full_pass)
            if action is None:
                continue
            if action.kind in _CONFLICT_KINDS:
                conflicts.append(action)
            else:
                others.append(action)

        actions = conflicts + others
        if (
            state.is_initial_synchronization
            and not state.pending_conflicts
            and not state.unchecked_downloads
        ):
            logger.info("Initial synchronization finished")
            state.initial_sync_completed = True
            actions.append(Action.mark_initial_sync_done())
        if actions:
            logger.debug("Resolved %d action(s): %s", len(actions), ", ".join(map(str, actions)))
        return actions

    def _resolve_removal(
        self,
        identity: FileIdentity,
        removed_from: Side | None,
        local: LocalItem | None,
        cloud: CloudItem | None,
    ) -> Action | None:
        state = self.state
        state.pending_conflicts.discard(identity)
        state.unchecked_downloads.discard(identity)
        if removed_from is Side.LOCAL:
            if cloud is None:
                return None
            state.pending_downloads.discard(identity)
            return Action.remove_cloud(cloud)
        state.pending_downloads.discard(identity)
        if local is None:
            return None
        return Action.remove_local(local)

    def _resolve_identity(
        self,
        identity: FileIdentity,
        local: LocalItem | None,
        cloud: CloudItem | None,
        *,
        full_pass: bool,
    ) -> Action | None:
        state = self.state
        if local is None or cloud is None:
            state.unchecked_downloads.discard(identity)
        if local is None and cloud is None:
            state.pending_downloads.discard(identity)
            state.pending_conflicts.discard(identity)
            return None

        if cloud is None:
            assert local is not None  # noqa: S101
            state.pending_conflicts.discard(identity)
            if full_pass and not state.is_initial_synchronization and self._trashed_after(local):
                logger.info("%s was deleted on another device, removing local copy", identity)
                return Action.remove_local(local)
            return Action.create_cloud(local)

        if cloud.has_conflicts:
            return self._conflict_action(identity, Action.resolve_version_conflict(cloud))

        if not cloud.is_downloaded:
            state.pending_conflicts.discard(identity)
            if local is not None and state.is_initial_synchronization:
                # Contents are compared once the cloud copy is downloaded.
                state.unchecked_downloads.add(identity)
                return self._download_action(cloud)
            if local is not None and local.modified_ns > cloud.modified_ns:
                return Action.update_cloud(local, cloud)
            return self._download_action(cloud)
        state.pending_downloads.discard(identity)
        state.unchecked_downloads.discard(identity)

        if local is None:
            state.pending_conflicts.discard(identity)
            return Action.create_local(cloud)

        conflict = self._detector.detect(
            local, cloud, initial_sync=state.is_initial_synchronization
        )
        if conflict is ConflictType.INITIAL_SYNC_CONFLICT:
            return self._conflict_action(identity, Action.resolve_initial_sync_conflict(local, cloud))

        # The conflict condition no longer holds for this identity.
        state.pending_conflicts.discard(identity)
        if conflict is ConflictType.LOCAL_NEWER:
            return Action.update_cloud(local, cloud)
        if conflict is ConflictType.CLOUD_NEWER:
            return Action.update_local(cloud, local)
        return None

    def _conflict_action(self, identity: FileIdentity, action: Action) -> Action | None:
        """Issue a conflict resolution once until the identity settles."""
        if identity in self.state.pending_conflicts:
            logger.debug("Conflict for %s is already being resolved", identity)
            return None
        self.state.pending_conflicts.add(identity)
        return action

    def _download_action(self, cloud: CloudItem) -> Action | None:
        state = self.state
        if cloud.download_status is DownloadStatus.ERROR:
            state.pending_downloads.discard(cloud.identity)
            return Action.report_error(
                SyncError(SyncErrorKind.FILE_UNAVAILABLE, f"Download of {cloud.identity} failed"),
                identity=cloud.identity,
            )
        if cloud.identity in state.pending_downloads:
            return None
        state.pending_downloads.add(cloud.identity)
        if cloud.download_status is DownloadStatus.DOWNLOADING:
            return None
        return Action.start_download(cloud)

    def _trashed_after(self, local: LocalItem) -> bool:
        cloud_listing = self.state.last_cloud_listing
        assert cloud_listing is not None  # noqa: S101
        trashed = cloud_listing.trashed.get(local.identity)
        return trashed is not None and trashed.trashed_ns >= local.modified_ns
