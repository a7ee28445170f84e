"""Execution of reconciliation actions against real file storage.

Each storage :class:`Action` is applied by :meth:`ActionExecutor.execute`,
which does not raise: failures are returned in the :class:`ActionResult`, already
classified as :class:`SyncError` where the engine knows how to react.
The executor does not retry; a failed action is re-issued by a later
reconciliation pass if it is still needed.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, TypeVar

from bookmark_sync.sync.conflict import find_existing_copy, generate_new_file_path
from bookmark_sync.sync.coordination import FileCoordinator
from bookmark_sync.sync.differ import compute_file_hash
from bookmark_sync.sync.errors import SyncError, classify_os_error
from bookmark_sync.sync.models import Action, ActionKind, ActionResult, CloudItem, LocalItem

if TYPE_CHECKING:
    from bookmark_sync.cloud.container import CloudContainer

logger = logging.getLogger(__name__)

_ItemT = TypeVar("_ItemT", LocalItem, CloudItem)


def write_atomically(source: Path, target: Path, modified_ns: int) -> None:
    """Copy *source* over *target* atomically and stamp *modified_ns*.

    The bytes land in a temporary file next to *target* which is then
    renamed into place, so readers see either the old or the new file.
    The modification time is set exactly, in nanoseconds, because later
    diffs compare it for equality.
    """
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as out, source.open("rb") as src:
            shutil.copyfileobj(src, out)
            out.flush()
            os.fsync(out.fileno())
        os.utime(tmp_name, ns=(modified_ns, modified_ns))
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class ActionExecutor:
    """Applies actions to the local directory and the cloud container.

    Safe to call from several worker threads at once: every operation
    goes through the shared :class:`FileCoordinator`, so actions on the
    same path never interleave.

    Args:
        local_directory: The local bookmarks directory.
        container: The cloud container.
        coordinator: Per-path coordination shared with other writers.
        device_name: Embedded in file names created while resolving
            initial-synchronization conflicts.
    """

    def __init__(
        self,
        local_directory: str | Path,
        container: CloudContainer,
        coordinator: FileCoordinator | None = None,
        device_name: str = "",
    ) -> None:
        self._local_directory = Path(local_directory)
        self._container = container
        self._coordinator = coordinator or FileCoordinator()
        self._device_name = device_name

    @property
    def coordinator(self) -> FileCoordinator:
        return self._coordinator

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def execute(self, action: Action) -> ActionResult:
        """Run one action and report its outcome.

        Returns:
            An ``ActionResult``.  ``error`` holds a ``SyncError`` for
            classified failures, or the original exception for anything
            else.  ``touched_local`` is set when files the bookmarks
            engine reads were changed.
        """
        handlers = {
            ActionKind.CREATE_LOCAL: self._write_to_local,
            ActionKind.UPDATE_LOCAL: self._write_to_local,
            ActionKind.REMOVE_LOCAL: self._remove_from_local,
            ActionKind.START_DOWNLOAD: self._start_download,
            ActionKind.CREATE_CLOUD: self._write_to_cloud,
            ActionKind.UPDATE_CLOUD: self._write_to_cloud,
            ActionKind.REMOVE_CLOUD: self._remove_from_cloud,
            ActionKind.RESOLVE_VERSION_CONFLICT: self._resolve_version_conflict,
            ActionKind.RESOLVE_INITIAL_SYNC_CONFLICT: self._resolve_initial_sync_conflict,
        }
        handler = handlers.get(action.kind)
        if handler is None:
            raise ValueError(f"{action.kind.value} is not a storage action")

        logger.debug("Execute action: %s", action)
        cloud_side = action.kind in (
            ActionKind.START_DOWNLOAD,
            ActionKind.CREATE_CLOUD,
            ActionKind.UPDATE_CLOUD,
            ActionKind.REMOVE_CLOUD,
            ActionKind.RESOLVE_VERSION_CONFLICT,
        )
        try:
            touched_local = handler(action)
        except SyncError as exc:
            logger.warning("Action %s failed: %s", action, exc)
            return ActionResult(action=action, error=exc)
        except OSError as exc:
            error = classify_os_error(exc, cloud=cloud_side)
            logger.warning("Action %s failed: %s", action, error)
            return ActionResult(action=action, error=error)
        except Exception as exc:
            logger.exception("Action %s failed with an unexpected error", action)
            return ActionResult(action=action, error=exc)
        return ActionResult(action=action, touched_local=touched_local)

    # ------------------------------------------------------------------
    # Local side
    # ------------------------------------------------------------------

    def _local_path(self, identity: str) -> Path:
        return self._local_directory / identity

    def _write_to_local(self, action: Action) -> bool:
        cloud = _require(action.cloud, action)
        source = self._container.resolve_root() / cloud.relative_path
        target = self._local_path(cloud.identity)
        with self._coordinator.coordinate(source, target):
            if not source.is_file():
                # Removed from the cloud after reconciliation; a later
                # update will remove the local copy as well.
                logger.debug("%s vanished from the cloud, nothing to copy", cloud.identity)
                return False
            modified_ns = source.stat().st_mtime_ns
            write_atomically(source, target, modified_ns)
        logger.debug("%s is copied to the local directory", cloud.identity)
        return True

    def _remove_from_local(self, action: Action) -> bool:
        local = _require(action.local, action)
        target = self._local_path(local.identity)
        with self._coordinator.coordinate(target):
            if not target.exists():
                logger.debug("%s doesn't exist in the local directory", local.identity)
                return False
            target.unlink()
        logger.debug("%s was removed from the local directory", local.identity)
        return True

    # ------------------------------------------------------------------
    # Cloud side
    # ------------------------------------------------------------------

    def _start_download(self, action: Action) -> bool:
        cloud = _require(action.cloud, action)
        logger.debug("Start downloading %s...", cloud.identity)
        self._container.start_download(cloud.identity)
        return False

    def _write_to_cloud(self, action: Action) -> bool:
        local = _require(action.local, action)
        root = self._container.resolve_root()
        source = self._local_path(local.identity)
        target = local.cloud_path(root)
        with self._coordinator.coordinate(source, target):
            if not source.is_file():
                logger.debug("%s vanished from the local directory, nothing to copy", local.identity)
                return False
            modified_ns = source.stat().st_mtime_ns
            write_atomically(source, target, modified_ns)
        logger.debug("%s is copied to the cloud directory", local.identity)
        return False

    def _remove_from_cloud(self, action: Action) -> bool:
        cloud = _require(action.cloud, action)
        root = self._container.resolve_root()
        target = root / cloud.relative_path
        logger.debug("Start trashing %s...", cloud.identity)
        with self._coordinator.coordinate(target):
            if self._container.trash.trash_item(target) is None:
                logger.debug("%s is already gone from the cloud directory", cloud.identity)
                return False
        logger.debug("%s was trashed", cloud.identity)
        return False

    # ------------------------------------------------------------------
    # Conflict resolution
    # ------------------------------------------------------------------

    def _resolve_version_conflict(self, action: Action) -> bool:
        cloud = _require(action.cloud, action)
        root = self._container.resolve_root()
        current_path = root / cloud.relative_path
        versions = self._container.versions
        logger.debug("Start resolving version conflict for %s...", cloud.identity)

        with self._coordinator.coordinate(current_path):
            conflicting = versions.unresolved_conflict_versions(current_path)
            current = versions.current_version(current_path)
            if not conflicting or current is None:
                logger.debug("No versions in conflict found for %s", cloud.identity)
                return False

            latest = conflicting[0]
            if compute_file_hash(latest.path) == compute_file_hash(current_path):
                # Promoted by an earlier attempt; only the cleanup is left.
                versions.remove_other_versions(current_path)
                logger.debug("Version conflict for %s was already resolved", cloud.identity)
                return True
            copy_path = self._keep_copy(current_path, current.modified_ns)
            versions.replace_item(latest, current_path)
            versions.remove_other_versions(current_path)
        logger.info(
            "Resolved version conflict for %s, previous version kept as %s",
            cloud.identity, copy_path.name,
        )
        return True

    def _resolve_initial_sync_conflict(self, action: Action) -> bool:
        local = _require(action.local, action)
        cloud = _require(action.cloud, action)
        logger.debug("Start resolving initial sync conflict for %s by copying with a new name...", local.identity)
        root = self._container.resolve_root()
        source = root / cloud.relative_path
        target = self._local_path(local.identity)

        with self._coordinator.coordinate(source, target):
            if not target.is_file():
                logger.debug("%s vanished from the local directory", local.identity)
                return False
            if source.is_file() and compute_file_hash(source) == compute_file_hash(target):
                logger.debug("%s was already resolved", local.identity)
                return False
            copy_path = self._keep_copy(
                target, target.stat().st_mtime_ns, add_device_name=True
            )
            if source.is_file():
                write_atomically(source, target, source.stat().st_mtime_ns)
        logger.info(
            "Resolved initial sync conflict for %s, local copy kept as %s",
            local.identity, copy_path.name,
        )
        return True

    def _keep_copy(self, path: Path, modified_ns: int, *, add_device_name: bool = False) -> Path:
        """Copy *path* to a free sibling name, reusing an identical earlier copy."""
        device_name = self._device_name if add_device_name else ""
        existing = find_existing_copy(
            path, compute_file_hash(path), add_device_name=add_device_name, device_name=device_name
        )
        if existing is not None:
            logger.debug("%s is already kept as %s", path.name, existing.name)
            return existing
        copy_path = generate_new_file_path(
            path, add_device_name=add_device_name, device_name=device_name
        )
        with self._coordinator.coordinate(copy_path):
            write_atomically(path, copy_path, modified_ns)
        return copy_path


def _require(item: _ItemT | None, action: Action) -> _ItemT:
    if item is None:
        raise ValueError(f"Action {action} is missing the item it operates on")
    return item
