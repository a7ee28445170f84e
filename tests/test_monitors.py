from __future__ import annotations

import os
import time

import pytest
from fakes import RecordingDelegate

from bookmark_sync.cloud import CloudContainer
from bookmark_sync.monitors import CloudDirectoryMonitor, LocalDirectoryMonitor, MonitorState
from bookmark_sync.sync.differ import compute_file_hash
from bookmark_sync.sync.errors import SyncError, SyncErrorKind
from bookmark_sync.sync.models import DownloadStatus, Side

STAMP = 1_700_000_000_000_000_000


def write(path, content: str, modified_ns: int = STAMP):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    os.utime(path, ns=(modified_ns, modified_ns))
    return path


# ---------------------------------------------------------------------------
# Local monitor
# ---------------------------------------------------------------------------


def test_local_gather_lists_tracked_files(tmp_path):
    write(tmp_path / "A.kml", "a")
    write(tmp_path / "notes.txt", "ignored")
    write(tmp_path / ".hidden.kml", "ignored")
    (tmp_path / "folder.kml").mkdir()

    listing = LocalDirectoryMonitor(tmp_path).gather_once()

    assert listing.side is Side.LOCAL
    assert listing.is_full_gather
    assert list(listing.items) == ["A.kml"]
    item = listing.items["A.kml"]
    assert item.modified_ns == STAMP
    assert item.size == 1
    assert item.content_hash == compute_file_hash(tmp_path / "A.kml")


def test_local_directory_is_created(tmp_path):
    monitor = LocalDirectoryMonitor(tmp_path / "missing" / "bookmarks")

    assert monitor.gather_once().items == {}
    assert (tmp_path / "missing" / "bookmarks").is_dir()


def test_local_directory_that_is_a_file_is_fatal(tmp_path):
    blocker = write(tmp_path / "bookmarks", "not a directory")

    with pytest.raises(SyncError) as excinfo:
        LocalDirectoryMonitor(blocker).gather_once()

    assert excinfo.value.kind is SyncErrorKind.LOCAL_DIRECTORY_UNAVAILABLE
    assert excinfo.value.is_fatal


def test_poll_reports_gather_then_deltas(tmp_path):
    write(tmp_path / "A.kml", "a")
    write(tmp_path / "B.kml", "b")
    monitor = LocalDirectoryMonitor(tmp_path)
    delegate = RecordingDelegate()
    monitor.delegate = delegate

    first = monitor.poll()
    assert first.is_full_gather
    assert first.generation == 1
    assert delegate.gathered == [first]

    assert monitor.poll() is None

    write(tmp_path / "A.kml", "changed", STAMP + 1_000_000)
    (tmp_path / "B.kml").unlink()
    delta = monitor.poll()

    assert not delta.is_full_gather
    assert delta.generation == 2
    assert list(delta.items) == ["A.kml"]
    assert delta.removed == frozenset({"B.kml"})
    assert delegate.updated == [delta]


def test_poll_delivers_scan_errors(tmp_path):
    directory = tmp_path / "bookmarks"
    directory.mkdir()
    monitor = LocalDirectoryMonitor(directory)
    delegate = RecordingDelegate()
    monitor.delegate = delegate
    directory.rmdir()

    assert monitor.poll() is None
    assert [e.kind for e in delegate.errors] == [SyncErrorKind.LOCAL_DIRECTORY_UNAVAILABLE]


def test_lifecycle_states(tmp_path):
    monitor = LocalDirectoryMonitor(tmp_path, settle_delay=0.01)
    monitor.delegate = RecordingDelegate()

    monitor.start()
    assert monitor.state is MonitorState.STARTED
    monitor.pause()
    assert monitor.state is MonitorState.PAUSED
    monitor.resume()
    assert monitor.state is MonitorState.STARTED
    monitor.stop()
    assert monitor.state is MonitorState.STOPPED


def wait_for(condition, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return condition()


def test_file_system_event_triggers_rescan(tmp_path):
    monitor = LocalDirectoryMonitor(tmp_path, settle_delay=0.01, rescan_interval=60.0)
    delegate = RecordingDelegate()
    monitor.delegate = delegate
    monitor.start()
    try:
        assert wait_for(lambda: delegate.gathered)

        write(tmp_path / "A.kml", "a")

        assert wait_for(lambda: delegate.updated)
        assert list(delegate.updated[0].items) == ["A.kml"]
    finally:
        monitor.stop()


def test_paused_monitor_reports_nothing(tmp_path):
    monitor = LocalDirectoryMonitor(tmp_path, settle_delay=0.01, rescan_interval=60.0)
    delegate = RecordingDelegate()
    monitor.delegate = delegate
    monitor.start()
    try:
        assert wait_for(lambda: delegate.gathered)
        monitor.pause()
        time.sleep(0.05)

        write(tmp_path / "A.kml", "a")
        time.sleep(0.2)
        assert delegate.updated == []

        monitor.resume()
        assert wait_for(lambda: delegate.updated)
    finally:
        monitor.stop()


# ---------------------------------------------------------------------------
# Cloud monitor
# ---------------------------------------------------------------------------


@pytest.fixture
def container(tmp_path):
    (tmp_path / "cloud").mkdir()
    return CloudContainer(tmp_path / "cloud", "bookmarks")


def test_cloud_gather_reports_placeholders_and_downloads(container):
    root = container.resolve_root()
    write(root / "Doc.kml", "doc")
    write(root / ".Idle.kml.icloud", "")
    write(root / ".Busy.kml.icloud", "")
    write(root / ".Busy.kml.download", "requested")
    write(root / ".Broken.kml.icloud", "")
    write(root / ".Broken.kml.download", "error")

    listing = CloudDirectoryMonitor(container).gather_once()

    statuses = {name: item.download_status for name, item in listing.items.items()}
    assert statuses == {
        "Doc.kml": DownloadStatus.CURRENT,
        "Idle.kml": DownloadStatus.NOT_DOWNLOADED,
        "Busy.kml": DownloadStatus.DOWNLOADING,
        "Broken.kml": DownloadStatus.ERROR,
    }
    assert listing.items["Doc.kml"].content_hash == compute_file_hash(root / "Doc.kml")
    assert listing.items["Idle.kml"].content_hash is None


def test_cloud_document_wins_over_leftover_placeholder(container):
    root = container.resolve_root()
    write(root / "A.kml", "a")
    write(root / ".A.kml.icloud", "")

    listing = CloudDirectoryMonitor(container).gather_once()

    assert listing.items["A.kml"].is_downloaded


def test_cloud_gather_reports_versions_and_trash(container):
    root = container.resolve_root()
    write(root / "A.kml", "a")
    write(root / ".versions" / "A.kml" / "other", "theirs")
    write(root / ".Trash" / "B.kml", "b")
    write(root / ".Trash" / "notes.txt", "ignored")

    listing = CloudDirectoryMonitor(container).gather_once()

    assert listing.items["A.kml"].has_conflicts
    assert list(listing.trashed) == ["B.kml"]
    assert listing.trashed["B.kml"].trashed_ns > 0


def test_cloud_unavailable_is_fatal(tmp_path):
    monitor = CloudDirectoryMonitor(CloudContainer(tmp_path / "nowhere"))

    with pytest.raises(SyncError) as excinfo:
        monitor.gather_once()

    assert excinfo.value.kind is SyncErrorKind.CLOUD_UNAVAILABLE


def test_container_path_taken_by_file(tmp_path):
    (tmp_path / "cloud").mkdir()
    write(tmp_path / "cloud" / "bookmarks", "oops")

    with pytest.raises(SyncError) as excinfo:
        CloudDirectoryMonitor(CloudContainer(tmp_path / "cloud")).start()

    assert excinfo.value.kind is SyncErrorKind.CONTAINER_NOT_FOUND
