from __future__ import annotations

import pytest
from fakes import cloud_item, local_item

from bookmark_sync.sync.conflict import (
    MAX_NAME_ATTEMPTS,
    ConflictDetector,
    ConflictType,
    find_existing_copy,
    generate_new_file_path,
)
from bookmark_sync.sync.differ import compute_file_hash
from bookmark_sync.sync.errors import SyncError, SyncErrorKind


# ---------------------------------------------------------------------------
# File naming
# ---------------------------------------------------------------------------


def test_first_candidate_appends_counter(tmp_path):
    assert generate_new_file_path(tmp_path / "note.kml") == tmp_path / "note_1.kml"


def test_trailing_counter_is_incremented(tmp_path):
    assert generate_new_file_path(tmp_path / "note_1.kml") == tmp_path / "note_2.kml"
    assert generate_new_file_path(tmp_path / "trip_2019_9.kml") == tmp_path / "trip_2019_10.kml"


def test_existing_candidates_are_skipped(tmp_path):
    (tmp_path / "note_1.kml").write_text("taken")
    (tmp_path / "note_2.kml").write_text("taken")

    assert generate_new_file_path(tmp_path / "note.kml") == tmp_path / "note_3.kml"


def test_device_name_is_embedded(tmp_path):
    path = generate_new_file_path(tmp_path / "note.kml", add_device_name=True, device_name="laptop")

    assert path == tmp_path / "note_1_laptop.kml"


def test_device_name_ignored_unless_requested(tmp_path):
    path = generate_new_file_path(tmp_path / "note.kml", device_name="laptop")

    assert path == tmp_path / "note_1.kml"


def test_gives_up_after_bounded_attempts(tmp_path):
    calls = []

    def always_taken(path):
        calls.append(path)
        return True

    with pytest.raises(SyncError) as excinfo:
        generate_new_file_path(tmp_path / "note.kml", exists=always_taken)

    assert excinfo.value.kind is SyncErrorKind.LOCAL_IO
    assert len(calls) == MAX_NAME_ATTEMPTS


def test_existing_copy_is_found_along_the_naming_chain(tmp_path):
    (tmp_path / "note.kml").write_text("mine")
    (tmp_path / "note_1.kml").write_text("other")
    (tmp_path / "note_2.kml").write_text("mine")

    found = find_existing_copy(tmp_path / "note.kml", compute_file_hash(tmp_path / "note.kml"))

    assert found == tmp_path / "note_2.kml"


def test_no_existing_copy_stops_at_first_free_name(tmp_path):
    (tmp_path / "note.kml").write_text("mine")
    (tmp_path / "note_2.kml").write_text("mine")

    assert find_existing_copy(tmp_path / "note.kml", compute_file_hash(tmp_path / "note.kml")) is None


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------


@pytest.fixture
def detector():
    return ConflictDetector()


def test_version_conflict_supersedes_everything(detector):
    result = detector.detect(
        local_item("A.kml", 30, "mine"),
        cloud_item("A.kml", 10, "theirs", has_conflicts=True),
        initial_sync=True,
    )

    assert result is ConflictType.VERSION_CONFLICT


def test_initial_sync_with_different_content(detector):
    result = detector.detect(local_item("A.kml", 30, "mine"), cloud_item("A.kml", 10, "theirs"), initial_sync=True)

    assert result is ConflictType.INITIAL_SYNC_CONFLICT


def test_initial_sync_with_same_content_uses_recency(detector):
    result = detector.detect(local_item("A.kml", 30, "same"), cloud_item("A.kml", 10, "same"), initial_sync=True)

    assert result is ConflictType.LOCAL_NEWER


def test_later_modification_wins(detector):
    assert detector.detect(local_item("A.kml", 30, "a"), cloud_item("A.kml", 10, "b")) is ConflictType.LOCAL_NEWER
    assert detector.detect(local_item("A.kml", 10, "a"), cloud_item("A.kml", 30, "b")) is ConflictType.CLOUD_NEWER


def test_tie_goes_to_cloud_only_when_content_differs(detector):
    assert detector.detect(local_item("A.kml", 10, "a"), cloud_item("A.kml", 10, "b")) is ConflictType.CLOUD_NEWER
    assert detector.detect(local_item("A.kml", 10, "a"), cloud_item("A.kml", 10, "a")) is ConflictType.NONE
