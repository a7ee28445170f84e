from __future__ import annotations

from fakes import cloud_item, local_item

from bookmark_sync.sync.errors import SyncError, SyncErrorKind
from bookmark_sync.sync.models import ActionKind, ContentListing, DownloadStatus, Side, TrashedItem
from bookmark_sync.sync.reconciler import Reconciler, SyncEvent


def gathered(side: Side, *items, generation: int = 1, trashed=None) -> SyncEvent:
    return SyncEvent.gathered(ContentListing.gather(side, generation, list(items), trashed))


def updated(side: Side, generation: int, *items, removed=frozenset()) -> SyncEvent:
    return SyncEvent.updated(ContentListing.update(side, generation, list(items), removed))


def summary(actions) -> list[tuple[ActionKind, str]]:
    return [(a.kind, a.identity) for a in actions]


def ready(reconciler: Reconciler, local_items=(), cloud_items=(), trashed=None):
    assert reconciler.resolve(gathered(Side.LOCAL, *local_items)) == []
    return reconciler.resolve(gathered(Side.CLOUD, *cloud_items, trashed=trashed))


def test_no_actions_until_both_sides_gathered():
    reconciler = Reconciler(initial_sync_completed=True)
    actions = reconciler.resolve(gathered(Side.LOCAL, local_item("A.kml", 10, "a")))

    assert actions == []
    assert not reconciler.state.is_ready
    assert reconciler.reconcile_all() == []


def test_incremental_update_before_gather_does_not_make_side_ready():
    reconciler = Reconciler(initial_sync_completed=True)
    reconciler.resolve(gathered(Side.LOCAL, local_item("A.kml", 10, "a")))

    actions = reconciler.resolve(updated(Side.CLOUD, 1, cloud_item("B.kml", 10, "b")))

    assert actions == []
    assert not reconciler.state.cloud_gathered


def test_disjoint_listings_copy_each_way():
    reconciler = Reconciler(initial_sync_completed=True)
    actions = ready(
        reconciler,
        local_items=[local_item("A.kml", 10, "a")],
        cloud_items=[cloud_item("B.kml", 20, "b")],
    )

    assert summary(actions) == [
        (ActionKind.CREATE_CLOUD, "A.kml"),
        (ActionKind.CREATE_LOCAL, "B.kml"),
    ]


def test_initial_sync_without_conflicts_is_marked_done():
    reconciler = Reconciler(initial_sync_completed=False)
    actions = ready(
        reconciler,
        local_items=[local_item("A.kml", 10, "a")],
        cloud_items=[cloud_item("B.kml", 20, "b")],
    )

    assert actions[-1].kind is ActionKind.MARK_INITIAL_SYNC_DONE
    assert reconciler.state.initial_sync_completed

    # Later passes never emit it again.
    actions = reconciler.resolve(updated(Side.LOCAL, 2, local_item("C.kml", 30, "c")))
    assert summary(actions) == [(ActionKind.CREATE_CLOUD, "C.kml")]


def test_initial_sync_conflict_keeps_both_and_waits_for_settling():
    reconciler = Reconciler(initial_sync_completed=False)
    actions = ready(
        reconciler,
        local_items=[local_item("A.kml", 10, "mine")],
        cloud_items=[cloud_item("A.kml", 20, "theirs")],
    )

    assert summary(actions) == [(ActionKind.RESOLVE_INITIAL_SYNC_CONFLICT, "A.kml")]
    assert reconciler.state.pending_conflicts == {"A.kml"}
    assert not reconciler.state.initial_sync_completed

    # The local copy now holds the cloud content.
    actions = reconciler.resolve(updated(Side.LOCAL, 2, local_item("A.kml", 20, "theirs")))

    assert summary(actions) == [(ActionKind.MARK_INITIAL_SYNC_DONE, "")]
    assert reconciler.state.pending_conflicts == set()


def test_initial_sync_conflict_is_issued_once():
    reconciler = Reconciler(initial_sync_completed=False)
    ready(
        reconciler,
        local_items=[local_item("A.kml", 10, "mine")],
        cloud_items=[cloud_item("A.kml", 20, "theirs")],
    )

    actions = reconciler.resolve(updated(Side.CLOUD, 2, cloud_item("A.kml", 25, "theirs-2")))

    assert actions == []


def test_initial_sync_identical_files_need_nothing():
    reconciler = Reconciler(initial_sync_completed=False)
    actions = ready(
        reconciler,
        local_items=[local_item("A.kml", 10, "same")],
        cloud_items=[cloud_item("A.kml", 10, "same")],
    )

    assert summary(actions) == [(ActionKind.MARK_INITIAL_SYNC_DONE, "")]


def test_newer_side_wins_after_initial_sync():
    reconciler = Reconciler(initial_sync_completed=True)
    actions = ready(
        reconciler,
        local_items=[local_item("A.kml", 20, "new"), local_item("B.kml", 10, "old")],
        cloud_items=[cloud_item("A.kml", 10, "old"), cloud_item("B.kml", 20, "new")],
    )

    assert summary(actions) == [
        (ActionKind.UPDATE_CLOUD, "A.kml"),
        (ActionKind.UPDATE_LOCAL, "B.kml"),
    ]


def test_equal_timestamps_with_different_content_cloud_wins():
    reconciler = Reconciler(initial_sync_completed=True)
    actions = ready(
        reconciler,
        local_items=[local_item("A.kml", 10, "mine")],
        cloud_items=[cloud_item("A.kml", 10, "theirs")],
    )

    assert summary(actions) == [(ActionKind.UPDATE_LOCAL, "A.kml")]


def test_create_cloud_round_trip_settles():
    reconciler = Reconciler(initial_sync_completed=True)
    actions = ready(reconciler, local_items=[local_item("A.kml", 10, "a")])
    assert summary(actions) == [(ActionKind.CREATE_CLOUD, "A.kml")]

    # The copy shows up in the cloud with the same timestamp and bytes.
    actions = reconciler.resolve(updated(Side.CLOUD, 2, cloud_item("A.kml", 10, "a")))

    assert actions == []


def test_stale_generation_is_discarded():
    reconciler = Reconciler(initial_sync_completed=True)
    ready(reconciler, local_items=[local_item("A.kml", 10, "a")], cloud_items=[cloud_item("A.kml", 10, "a")])
    reconciler.resolve(updated(Side.LOCAL, 3, local_item("A.kml", 30, "b")))

    actions = reconciler.resolve(updated(Side.LOCAL, 2, local_item("A.kml", 20, "c")))

    assert actions == []
    assert reconciler.state.last_local_listing.items["A.kml"].modified_ns == 30


def test_local_removal_trashes_cloud_copy():
    reconciler = Reconciler(initial_sync_completed=True)
    ready(reconciler, local_items=[local_item("A.kml", 10, "a")], cloud_items=[cloud_item("A.kml", 10, "a")])

    actions = reconciler.resolve(updated(Side.LOCAL, 2, removed={"A.kml"}))

    assert summary(actions) == [(ActionKind.REMOVE_CLOUD, "A.kml")]
    assert "A.kml" not in reconciler.state.last_local_listing.items


def test_cloud_removal_removes_local_copy():
    reconciler = Reconciler(initial_sync_completed=True)
    ready(reconciler, local_items=[local_item("A.kml", 10, "a")], cloud_items=[cloud_item("A.kml", 10, "a")])

    actions = reconciler.resolve(updated(Side.CLOUD, 2, removed={"A.kml"}))

    assert summary(actions) == [(ActionKind.REMOVE_LOCAL, "A.kml")]


def test_removal_of_unknown_identity_is_ignored():
    reconciler = Reconciler(initial_sync_completed=True)
    ready(reconciler, local_items=[local_item("A.kml", 10, "a")], cloud_items=[cloud_item("A.kml", 10, "a")])

    actions = reconciler.resolve(updated(Side.CLOUD, 2, removed={"Z.kml"}))

    assert actions == []


def test_placeholder_starts_download_once():
    reconciler = Reconciler(initial_sync_completed=True)
    actions = ready(
        reconciler, cloud_items=[cloud_item("A.kml", 10, status=DownloadStatus.NOT_DOWNLOADED)]
    )

    assert summary(actions) == [(ActionKind.START_DOWNLOAD, "A.kml")]
    assert reconciler.state.pending_downloads == {"A.kml"}

    actions = reconciler.resolve(
        updated(Side.CLOUD, 2, cloud_item("A.kml", 11, status=DownloadStatus.DOWNLOADING))
    )
    assert actions == []

    actions = reconciler.resolve(updated(Side.CLOUD, 3, cloud_item("A.kml", 12, "a")))
    assert summary(actions) == [(ActionKind.CREATE_LOCAL, "A.kml")]
    assert reconciler.state.pending_downloads == set()


def test_failed_download_is_reported():
    reconciler = Reconciler(initial_sync_completed=True)
    actions = ready(reconciler, cloud_items=[cloud_item("A.kml", 10, status=DownloadStatus.ERROR)])

    assert summary(actions) == [(ActionKind.REPORT_ERROR, "A.kml")]
    assert actions[0].error == SyncError(SyncErrorKind.FILE_UNAVAILABLE, "Download of A.kml failed")


def test_local_copy_newer_than_placeholder_is_uploaded():
    reconciler = Reconciler(initial_sync_completed=True)
    actions = ready(
        reconciler,
        local_items=[local_item("A.kml", 20, "mine")],
        cloud_items=[cloud_item("A.kml", 10, status=DownloadStatus.NOT_DOWNLOADED)],
    )

    assert summary(actions) == [(ActionKind.UPDATE_CLOUD, "A.kml")]
    assert reconciler.state.pending_downloads == set()


def test_initial_sync_downloads_placeholder_before_comparing():
    reconciler = Reconciler(initial_sync_completed=False)
    actions = ready(
        reconciler,
        local_items=[local_item("A.kml", 10, "mine")],
        cloud_items=[cloud_item("A.kml", 20, status=DownloadStatus.NOT_DOWNLOADED)],
    )

    assert summary(actions) == [(ActionKind.START_DOWNLOAD, "A.kml")]
    assert reconciler.state.is_initial_synchronization

    actions = reconciler.resolve(updated(Side.CLOUD, 2, cloud_item("A.kml", 20, "theirs")))

    assert summary(actions) == [(ActionKind.RESOLVE_INITIAL_SYNC_CONFLICT, "A.kml")]
    assert reconciler.state.is_initial_synchronization


def test_initial_sync_never_uploads_over_placeholder():
    reconciler = Reconciler(initial_sync_completed=False)
    actions = ready(
        reconciler,
        local_items=[local_item("A.kml", 20, "mine")],
        cloud_items=[cloud_item("A.kml", 10, status=DownloadStatus.NOT_DOWNLOADED)],
    )

    assert summary(actions) == [(ActionKind.START_DOWNLOAD, "A.kml")]

    actions = reconciler.resolve(updated(Side.CLOUD, 2, cloud_item("A.kml", 10, "theirs")))

    assert summary(actions) == [(ActionKind.RESOLVE_INITIAL_SYNC_CONFLICT, "A.kml")]


def test_initial_sync_finishes_when_downloaded_copy_matches():
    reconciler = Reconciler(initial_sync_completed=False)
    ready(
        reconciler,
        local_items=[local_item("A.kml", 10, "same")],
        cloud_items=[cloud_item("A.kml", 10, status=DownloadStatus.DOWNLOADING)],
    )
    assert reconciler.state.unchecked_downloads == {"A.kml"}

    actions = reconciler.resolve(updated(Side.CLOUD, 2, cloud_item("A.kml", 10, "same")))

    assert summary(actions) == [(ActionKind.MARK_INITIAL_SYNC_DONE, "")]
    assert reconciler.state.unchecked_downloads == set()


def test_initial_sync_placeholder_removed_locally_unblocks_completion():
    reconciler = Reconciler(initial_sync_completed=False)
    ready(
        reconciler,
        local_items=[local_item("A.kml", 10, "mine")],
        cloud_items=[cloud_item("A.kml", 20, status=DownloadStatus.NOT_DOWNLOADED)],
    )

    actions = reconciler.resolve(updated(Side.LOCAL, 2, removed=frozenset({"A.kml"})))

    assert summary(actions) == [
        (ActionKind.REMOVE_CLOUD, "A.kml"),
        (ActionKind.MARK_INITIAL_SYNC_DONE, ""),
    ]


def test_failed_conflict_resolution_is_issued_again():
    reconciler = Reconciler(initial_sync_completed=False)
    actions = ready(
        reconciler,
        local_items=[local_item("A.kml", 10, "mine")],
        cloud_items=[cloud_item("A.kml", 20, "theirs")],
    )
    assert summary(actions) == [(ActionKind.RESOLVE_INITIAL_SYNC_CONFLICT, "A.kml")]

    reconciler.action_failed(actions[0])
    actions = reconciler.resolve(updated(Side.CLOUD, 2, cloud_item("A.kml", 21, "theirs")))

    assert summary(actions) == [(ActionKind.RESOLVE_INITIAL_SYNC_CONFLICT, "A.kml")]


def test_failed_download_request_is_issued_again():
    reconciler = Reconciler(initial_sync_completed=True)
    actions = ready(
        reconciler, cloud_items=[cloud_item("A.kml", 10, status=DownloadStatus.NOT_DOWNLOADED)]
    )

    reconciler.action_failed(actions[0])

    assert reconciler.state.pending_downloads == set()
    assert summary(reconciler.reconcile_all()) == [(ActionKind.START_DOWNLOAD, "A.kml")]


def test_file_trashed_elsewhere_is_removed_locally():
    reconciler = Reconciler(initial_sync_completed=True)
    actions = ready(
        reconciler,
        local_items=[local_item("A.kml", 10, "a"), local_item("B.kml", 10, "b")],
        trashed=[TrashedItem(identity="A.kml", trashed_ns=20), TrashedItem(identity="B.kml", trashed_ns=5)],
    )

    # B was edited locally after it was trashed, so it is uploaded again.
    assert summary(actions) == [
        (ActionKind.REMOVE_LOCAL, "A.kml"),
        (ActionKind.CREATE_CLOUD, "B.kml"),
    ]


def test_trash_is_ignored_during_initial_sync():
    reconciler = Reconciler(initial_sync_completed=False)
    actions = ready(
        reconciler,
        local_items=[local_item("A.kml", 10, "a")],
        trashed=[TrashedItem(identity="A.kml", trashed_ns=20)],
    )

    assert summary(actions) == [
        (ActionKind.CREATE_CLOUD, "A.kml"),
        (ActionKind.MARK_INITIAL_SYNC_DONE, ""),
    ]


def test_version_conflict_is_ordered_first_and_issued_once():
    reconciler = Reconciler(initial_sync_completed=True)
    actions = ready(
        reconciler,
        local_items=[local_item("A.kml", 10, "a"), local_item("Z.kml", 10, "z")],
        cloud_items=[cloud_item("Z.kml", 20, "z2", has_conflicts=True)],
    )

    assert summary(actions) == [
        (ActionKind.RESOLVE_VERSION_CONFLICT, "Z.kml"),
        (ActionKind.CREATE_CLOUD, "A.kml"),
    ]

    actions = reconciler.resolve(updated(Side.CLOUD, 2, cloud_item("Z.kml", 21, "z3", has_conflicts=True)))
    assert actions == []

    # Resolved: the versions are gone and the newer cloud copy wins.
    actions = reconciler.resolve(updated(Side.CLOUD, 3, cloud_item("Z.kml", 22, "z3")))
    assert summary(actions) == [(ActionKind.UPDATE_LOCAL, "Z.kml")]
    assert reconciler.state.pending_conflicts == set()


def test_monitor_error_is_reported():
    reconciler = Reconciler(initial_sync_completed=True)
    error = SyncError(SyncErrorKind.LOCAL_CONTENT_UNREADABLE, "boom")

    actions = reconciler.resolve(SyncEvent.failed(error))

    assert summary(actions) == [(ActionKind.REPORT_ERROR, "")]
    assert actions[0].error is error


def test_full_pass_after_pause_matches_first_pass():
    reconciler = Reconciler(initial_sync_completed=True)
    first = ready(
        reconciler,
        local_items=[local_item("A.kml", 10, "a"), local_item("C.kml", 30, "c")],
        cloud_items=[cloud_item("B.kml", 20, "b"), cloud_item("C.kml", 10, "c-old")],
    )

    assert summary(reconciler.reconcile_all()) == summary(first)


def test_regather_reports_removals():
    reconciler = Reconciler(initial_sync_completed=True)
    ready(reconciler, local_items=[local_item("A.kml", 10, "a")], cloud_items=[cloud_item("A.kml", 10, "a")])

    actions = reconciler.resolve(gathered(Side.CLOUD, generation=2))

    assert summary(actions) == [(ActionKind.REMOVE_LOCAL, "A.kml")]


def test_reset_discards_listings_but_keeps_flag():
    reconciler = Reconciler(initial_sync_completed=False)
    ready(reconciler, local_items=[local_item("A.kml", 10, "a")])
    assert reconciler.state.initial_sync_completed

    reconciler.reset()

    assert reconciler.state.last_local_listing is None
    assert not reconciler.state.is_ready
    assert reconciler.state.initial_sync_completed
