"""Tests for playlist diffing and playlist sync."""

import logging
from typing import List
from unittest.mock import AsyncMock

import pytest

from tubebridge.archive.models import EntryAction, Playlist, PlaylistEntry, PlaylistListing, PlaylistType
from tubebridge.library.models import ItemKind
from tubebridge.sync.models import SyncAction, SyncActionKind
from tubebridge.sync.playlists import PlaylistSync, compute_playlist_actions, external_id_of


def simulate(archive_ids: List[str], actions: List[SyncAction]) -> List[str]:
    """Apply actions the way the archive does, one step at a time."""
    order = list(archive_ids)
    for action in actions:
        youtube_id = action.youtube_id
        for _ in range(max(1, action.steps)):
            if action.kind == SyncActionKind.CREATE:
                order.append(youtube_id)
            elif action.kind == SyncActionKind.REMOVE:
                order.remove(youtube_id)
            else:
                index = order.index(youtube_id)
                order.pop(index)
                if action.kind == SyncActionKind.TOP:
                    order.insert(0, youtube_id)
                elif action.kind == SyncActionKind.BOTTOM:
                    order.append(youtube_id)
                elif action.kind == SyncActionKind.UP:
                    order.insert(max(0, index - 1), youtube_id)
                else:
                    order.insert(index + 1, youtube_id)
    return order


def test_move_to_front_is_single_top():
    actions = compute_playlist_actions(["C", "A", "B"], ["A", "B", "C"])
    assert actions == [SyncAction(SyncActionKind.TOP, "C")]


def test_identical_order_needs_nothing():
    assert compute_playlist_actions(["A", "B", "C"], ["A", "B", "C"]) == []


def test_removals_come_first():
    actions = compute_playlist_actions(["A", "C"], ["A", "B", "C", "D"])
    assert actions == [SyncAction(SyncActionKind.REMOVE, "B"), SyncAction(SyncActionKind.REMOVE, "D")]


def test_new_item_is_created_and_moved_up():
    actions = compute_playlist_actions(["A", "X", "B"], ["A", "B"])
    assert actions == [
        SyncAction(SyncActionKind.CREATE, "X"),
        SyncAction(SyncActionKind.UP, "X", 1),
    ]


def test_new_item_at_end_needs_no_move():
    actions = compute_playlist_actions(["A", "B", "X"], ["A", "B"])
    assert actions == [SyncAction(SyncActionKind.CREATE, "X")]


def test_middle_item_moves_up_by_distance():
    actions = compute_playlist_actions(["A", "D", "B", "C", "E"], ["A", "B", "C", "D", "E"])
    assert actions == [SyncAction(SyncActionKind.UP, "D", 2)]


def test_rotation_moves_each_item_into_place():
    actions = compute_playlist_actions(["B", "C", "A"], ["A", "B", "C"])
    assert actions == [SyncAction(SyncActionKind.TOP, "B"), SyncAction(SyncActionKind.UP, "C", 1)]
    assert simulate(["A", "B", "C"], actions) == ["B", "C", "A"]


def test_items_without_archive_id_are_skipped(caplog):
    with caplog.at_level(logging.ERROR):
        actions = compute_playlist_actions(["A", None, "B"], ["B", "A"])
    assert simulate(["B", "A"], actions) == ["A", "B"]
    assert "position 1 has no archive id" in caplog.text


def test_duplicates_keep_first_occurrence(caplog):
    with caplog.at_level(logging.WARNING):
        actions = compute_playlist_actions(["A", "B", "A"], ["A", "B"])
    assert actions == []
    assert "Duplicate playlist item A" in caplog.text


@pytest.mark.parametrize("library_ids, archive_ids", [
    (["C", "A", "B"], ["A", "B", "C"]),
    (["E", "D", "C", "B", "A"], ["A", "B", "C", "D", "E"]),
    (["A", "X", "C", "Y"], ["Y", "C", "B", "A"]),
    (["B", "A"], []),
    ([], ["A", "B"]),
    (["D", "A", "F", "B"], ["A", "B", "C", "D", "E", "F"]),
])
def test_actions_reach_library_order_and_are_idempotent(library_ids, archive_ids):
    actions = compute_playlist_actions(library_ids, archive_ids)
    result = simulate(archive_ids, actions)
    assert result == library_ids
    assert compute_playlist_actions(library_ids, result) == []


def test_external_id_of(library):
    episode = library.items["episode-1"]
    assert external_id_of(episode) == "video123"
    episode.provider_ids["TubeArchivist"] = "fromprovider"
    assert external_id_of(episode) == "fromprovider"
    assert external_id_of(None) is None
    assert external_id_of(library.add("x", ItemKind.EPISODE, "X")) is None


def _custom(playlist_id, ids, kind=PlaylistType.CUSTOM):
    return Playlist(id=playlist_id, name="Mine", type=kind,
                    entries=[PlaylistEntry(youtube_id=i, is_downloaded=True) for i in ids])


@pytest.fixture
def videos(library):
    """Three more episodes in the channel: vidA, vidB, vidC."""
    for name in ("vidA", "vidB", "vidC"):
        library.add(f"ep-{name}", ItemKind.EPISODE, name, "season-2024",
                    f"/data/Channel1/{name}.mp4", {"TubeArchivist": name})
    return library


async def test_push_reorders_custom_playlist(context, videos, archive):
    videos.add_playlist("user-1", "pl-1", "Mine (PLx)", ["ep-vidC", "ep-vidA", "ep-vidB"])
    archive.fetch_playlists = AsyncMock(return_value=PlaylistListing(
        playlists=[_custom("PLx", ["vidA", "vidB", "vidC"])]))

    result = await PlaylistSync(context).push()

    archive.apply_playlist_entry_action.assert_awaited_once_with("PLx", EntryAction.TOP, "vidC")
    assert result.succeeded == 1


async def test_push_creates_missing_archive_playlist(context, videos, archive):
    playlist = videos.add_playlist("user-1", "pl-1", "Road trip (local)", ["ep-vidA", "ep-vidB"])
    archive.create_custom_playlist = AsyncMock(return_value=_custom("PLnew", []))

    await PlaylistSync(context).push()

    archive.create_custom_playlist.assert_awaited_once_with("Road trip")
    assert playlist.name == "Road trip (PLnew)"
    calls = archive.apply_playlist_entry_action.await_args_list
    assert [c.args for c in calls] == [
        ("PLnew", EntryAction.CREATE, "vidA"),
        ("PLnew", EntryAction.CREATE, "vidB"),
    ]


async def test_push_skips_regular_playlists(context, videos, archive, caplog):
    videos.add_playlist("user-1", "pl-1", "Talks - Chan (PLreg)", ["ep-vidA"])
    archive.fetch_playlists = AsyncMock(return_value=PlaylistListing(
        playlists=[_custom("PLreg", ["vidB"], PlaylistType.REGULAR)]))

    with caplog.at_level(logging.WARNING):
        result = await PlaylistSync(context).push()

    archive.apply_playlist_entry_action.assert_not_awaited()
    assert result.skipped == 1
    assert "regular archive playlist" in caplog.text


async def test_push_ignores_playlists_without_id(context, videos, archive):
    videos.add_playlist("user-1", "pl-1", "Just mine", ["ep-vidA"])

    result = await PlaylistSync(context).push()

    archive.create_custom_playlist.assert_not_awaited()
    assert result.skipped == 1


async def test_failed_step_skips_rest_of_action(context, archive):
    archive.apply_playlist_entry_action = AsyncMock(side_effect=[500, 200])
    actions = [SyncAction(SyncActionKind.UP, "a", 3), SyncAction(SyncActionKind.TOP, "b")]

    failures = await PlaylistSync(context).apply_actions("PLx", actions)

    assert failures == 1
    assert [c.args for c in archive.apply_playlist_entry_action.await_args_list] == [
        ("PLx", EntryAction.UP, "a"),
        ("PLx", EntryAction.TOP, "b"),
    ]


async def test_push_reports_progress(context, videos, archive):
    videos.add_playlist("user-1", "pl-1", "One (PL1)", ["ep-vidA"])
    videos.add_playlist("user-1", "pl-2", "Two (PL2)", ["ep-vidB", "ep-vidC", "ep-vidA"])
    archive.fetch_playlists = AsyncMock(return_value=PlaylistListing(
        playlists=[_custom("PL1", ["vidA"]), _custom("PL2", ["vidB", "vidC", "vidA"])]))
    seen = []

    await PlaylistSync(context).push(progress=seen.append)

    assert seen == [25, 100, 100]


async def test_pull_creates_and_updates_playlists(context, videos, archive, caplog):
    existing = videos.add_playlist("user-1", "pl-1", "Mine (PLx)", ["ep-vidA"])
    archive_playlist = _custom("PLx", ["vidC", "vidB"])
    archive_playlist.entries.append(PlaylistEntry(youtube_id="vidA", is_downloaded=False))
    archive_playlist.entries.append(PlaylistEntry(youtube_id="gone", is_downloaded=True))
    regular = Playlist(id="PLreg", name="Talks", type=PlaylistType.REGULAR, channel="Chan",
                       entries=[PlaylistEntry(youtube_id="vidA", is_downloaded=True)])
    archive.fetch_playlists = AsyncMock(return_value=PlaylistListing(
        playlists=[archive_playlist, regular]))

    with caplog.at_level(logging.WARNING):
        result = await PlaylistSync(context).pull()

    assert existing.item_ids == ["ep-vidC", "ep-vidB"]
    names = {(videos.playlist_owner[p.id], p.name): p.item_ids for p in videos.playlists.values()}
    assert names[("user-1", "Talks - Chan (PLreg)")] == ["ep-vidA"]
    assert names[("user-2", "Mine (PLx)")] == ["ep-vidC", "ep-vidB"]
    assert names[("user-2", "Talks - Chan (PLreg)")] == ["ep-vidA"]
    assert result.succeeded == 4
    assert "not downloaded" in caplog.text
    assert "gone" in caplog.text


async def test_pull_deletes_orphans(context, videos, archive):
    context.config.playlist_delete_orphans = True
    videos.add_playlist("user-1", "pl-old", "Old (PLold)", ["ep-vidA"])
    videos.add_playlist("user-1", "pl-own", "Hand made", ["ep-vidA"])
    archive.fetch_playlists = AsyncMock(return_value=PlaylistListing(playlists=[]))

    await PlaylistSync(context).pull()

    assert "pl-old" not in videos.playlists
    assert "pl-own" in videos.playlists


async def test_pull_keeps_orphans_when_listing_incomplete(context, videos, archive):
    context.config.playlist_delete_orphans = True
    videos.add_playlist("user-1", "pl-old", "Old (PLold)", ["ep-vidA"])
    archive.fetch_playlists = AsyncMock(return_value=PlaylistListing(playlists=[], complete=False))

    await PlaylistSync(context).pull()

    assert "pl-old" in videos.playlists


async def test_pull_aborts_without_listing(context, archive):
    archive.fetch_playlists = AsyncMock(return_value=None)

    result = await PlaylistSync(context).pull()

    assert result.aborted
