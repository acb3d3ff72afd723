"""Playlist sync between library and archive."""

import asyncio
import logging
from typing import Dict, List, Optional, Sequence

from tubebridge import PROVIDER_NAME
from tubebridge.archive.models import Playlist, PlaylistListing, PlaylistType
from tubebridge.context import SyncContext
from tubebridge.identifier.utils import (MalformedPathError, compose_updated_display_name,
                                         playlist_id_from_display_name,
                                         playlist_title_from_display_name, video_id_from_path)
from tubebridge.library.base import LibraryError
from tubebridge.library.models import LibraryItem, LibraryPlaylist, LibraryUser
from tubebridge.sync.models import SyncAction, SyncActionKind, SyncResult
from tubebridge.sync.progress import ProgressCallback, is_cancelled, report_progress

logger = logging.getLogger(__name__)


def _move(order: List[str], source: int, target: int) -> None:
    order.insert(target, order.pop(source))


def compute_playlist_actions(library_ids: Sequence[Optional[str]],
                             archive_ids: Sequence[str]) -> List[SyncAction]:
    """Compute the actions that turn the archive order into the library order.

    Removals come first. Library items are then placed left to right: an item
    already at its index is left alone, a missing one is created at the end
    and moved up, index 0 uses TOP, the last index uses BOTTOM and anything
    else moves UP or DOWN by its distance. Running the result against the
    archive and diffing again yields no actions.

    Args:
        library_ids: Archive ids of the library playlist items in order; None
            marks an item without an archive id
        archive_ids: Archive playlist entry ids in order

    Returns:
        Ordered list of actions
    """
    wanted: List[str] = []
    seen = set()
    for position, youtube_id in enumerate(library_ids):
        if not youtube_id:
            logger.error(f"Playlist item at position {position} has no archive id, skipping")
            continue
        if youtube_id in seen:
            logger.warning(f"Duplicate playlist item {youtube_id} at position {position}, skipping")
            continue
        seen.add(youtube_id)
        wanted.append(youtube_id)

    actions: List[SyncAction] = []
    current: List[str] = []
    for youtube_id in archive_ids:
        if youtube_id in current:
            continue
        if youtube_id in seen:
            current.append(youtube_id)
        else:
            actions.append(SyncAction(SyncActionKind.REMOVE, youtube_id))

    last = len(wanted) - 1
    for index, youtube_id in enumerate(wanted):
        if youtube_id not in current:
            actions.append(SyncAction(SyncActionKind.CREATE, youtube_id))
            current.append(youtube_id)
            steps = len(current) - 1 - index
            if steps > 0:
                actions.append(SyncAction(SyncActionKind.UP, youtube_id, steps))
                _move(current, len(current) - 1, index)
            continue

        position = current.index(youtube_id)
        if position == index:
            continue

        if index == 0:
            actions.append(SyncAction(SyncActionKind.TOP, youtube_id))
            _move(current, position, 0)
        elif index == last:
            actions.append(SyncAction(SyncActionKind.BOTTOM, youtube_id))
            _move(current, position, len(current) - 1)
        elif position > index:
            actions.append(SyncAction(SyncActionKind.UP, youtube_id, position - index))
            _move(current, position, index)
        else:
            actions.append(SyncAction(SyncActionKind.DOWN, youtube_id, index - position))
            _move(current, position, index)

    return actions


def external_id_of(item: Optional[LibraryItem]) -> Optional[str]:
    """Archive id of a library item, from its provider ids or its file name."""
    if item is None:
        return None
    if item.external_id:
        return item.external_id
    try:
        return video_id_from_path(item.path)
    except MalformedPathError:
        return None


class PlaylistSync:
    """Mirrors playlists between library users and the archive."""

    def __init__(self, context: SyncContext):
        self.context = context

    async def apply_actions(self, playlist_id: str, actions: List[SyncAction]) -> int:
        """Apply actions in order, one request per step.

        A failing step abandons the rest of its action and moves on to the next.

        Returns:
            Number of actions that failed
        """
        failures = 0
        for action in actions:
            for _ in range(max(1, action.steps)):
                status = await self.context.archive.apply_playlist_entry_action(
                    playlist_id, action.kind.entry_action, action.youtube_id)
                if status != 200:
                    logger.error(f"Playlist {playlist_id}: {action.kind.value} {action.youtube_id} "
                                 f"failed with status {status}, skipping")
                    failures += 1
                    break
        return failures

    async def push(self, progress: Optional[ProgressCallback] = None,
                   cancel: Optional[asyncio.Event] = None) -> SyncResult:
        """Push the source user's playlists to the archive.

        Args:
            progress: Called with the percentage done
            cancel: Stops the pass between playlists once set

        Returns:
            Counters for the pass
        """
        self.context.ensure_started()
        config = self.context.config
        library = self.context.library
        result = SyncResult(task="push-playlists")

        if not config.playlist_push_enabled:
            logger.info("Playlist push is disabled")
            result.aborted = True
            return result.finish()

        user = None
        if config.push_username:
            user = await library.get_user_by_name(config.push_username)
        if user is None:
            logger.warning(f"Push source user {config.push_username!r} not found, skipping playlists")
            return result.abort(f"user {config.push_username!r} not found")

        listing = await self.context.archive.fetch_playlists()
        if listing is None:
            return result.abort("archive playlists unavailable")
        archive_by_id: Dict[str, Playlist] = {p.id: p for p in listing.playlists}

        try:
            playlists = await library.get_playlists(user.id)
        except LibraryError as e:
            logger.error(f"Failed to list playlists of {user.name}: {e}")
            return result.abort(str(e))

        total = sum(len(p.item_ids) for p in playlists)
        processed = 0

        for playlist in playlists:
            if is_cancelled(cancel):
                result.cancelled = True
                logger.info("Playlist push cancelled")
                break

            result.processed += 1
            try:
                await self._push_playlist(playlist, archive_by_id, result)
            except LibraryError as e:
                logger.error(f"Failed to push playlist {playlist.name!r}: {e}")
                result.fail(playlist.name)

            processed += len(playlist.item_ids)
            report_progress(progress, processed, total)

        report_progress(progress, total, total)
        return result.finish()

    async def _push_playlist(self, playlist: LibraryPlaylist, archive_by_id: Dict[str, Playlist],
                             result: SyncResult) -> None:
        playlist_id = playlist_id_from_display_name(playlist.name)
        if not playlist_id:
            logger.debug(f"Playlist {playlist.name!r} has no archive id, skipping")
            result.skipped += 1
            return

        library_ids = [external_id_of(await self.context.library.get_item(item_id))
                       for item_id in playlist.item_ids]
        archive_playlist = archive_by_id.get(playlist_id)

        if archive_playlist is None:
            archive_playlist = await self._create_archive_playlist(playlist)
            if archive_playlist is None:
                result.fail(playlist.name)
                return
        elif archive_playlist.type != PlaylistType.CUSTOM:
            logger.warning(f"Playlist {playlist.name!r} mirrors a regular archive playlist, "
                           f"which cannot be edited")
            result.skipped += 1
            return

        target_id = archive_playlist.id
        actions = compute_playlist_actions(library_ids, archive_playlist.entry_ids)
        if not actions:
            logger.debug(f"Playlist {playlist.name!r} is up to date")
            result.succeeded += 1
            return

        logger.info(f"Applying {len(actions)} changes to archive playlist {target_id}")
        if await self.apply_actions(target_id, actions):
            result.fail(playlist.name)
        else:
            result.succeeded += 1

    async def _create_archive_playlist(self, playlist: LibraryPlaylist) -> Optional[Playlist]:
        """Create a custom archive playlist and rename the library playlist after its id."""
        title = playlist_title_from_display_name(playlist.name) or playlist.name
        created = await self.context.archive.create_custom_playlist(title)
        if created is None:
            return None

        new_name = compose_updated_display_name(playlist.name, created.id)
        await self.context.library.update_playlist(playlist.id, name=new_name)
        logger.info(f"Created archive playlist {created.id}, renamed {playlist.name!r} to {new_name!r}")

        return created

    async def pull(self, progress: Optional[ProgressCallback] = None,
                   cancel: Optional[asyncio.Event] = None) -> SyncResult:
        """Rebuild library playlists from the archive for every destination user.

        Args:
            progress: Called with the percentage done
            cancel: Stops the pass between playlists once set

        Returns:
            Counters for the pass
        """
        self.context.ensure_started()
        config = self.context.config
        result = SyncResult(task="pull-playlists")

        if not config.playlist_pull_enabled:
            logger.info("Playlist pull is disabled")
            result.aborted = True
            return result.finish()

        listing = await self.context.archive.fetch_playlists()
        if listing is None:
            return result.abort("archive playlists unavailable")

        usernames = sorted(config.pull_usernames)
        total = len(usernames) * len(listing.playlists)
        processed = 0

        for username in usernames:
            if is_cancelled(cancel):
                break
            try:
                user = await self.context.library.get_user_by_name(username)
                if user is None:
                    logger.warning(f"Pull destination user {username!r} not found, skipping")
                    processed += len(listing.playlists)
                    continue
                processed = await self._pull_for_user(user, listing, result, progress,
                                                      cancel, processed, total)
            except LibraryError as e:
                logger.error(f"Failed to pull playlists for {username}: {e}")
                result.fail(username)

        if is_cancelled(cancel):
            result.cancelled = True
            logger.info("Playlist pull cancelled")
        report_progress(progress, total, total)
        return result.finish()

    async def _pull_for_user(self, user: LibraryUser, listing: PlaylistListing,
                             result: SyncResult, progress: Optional[ProgressCallback],
                             cancel: Optional[asyncio.Event], processed: int, total: int) -> int:
        library = self.context.library
        existing = {p.name: p for p in await library.get_playlists(user.id)}

        for playlist in listing.playlists:
            if is_cancelled(cancel):
                return processed

            result.processed += 1
            name = playlist.display_name
            item_ids = await self._resolve_entries(playlist, user)

            current = existing.get(name)
            if current is not None:
                if current.item_ids != item_ids:
                    await library.update_playlist(current.id, item_ids=item_ids)
                    logger.info(f"Updated playlist {name!r} for {user.name}")
            else:
                created = await library.create_playlist(user.id, name, item_ids)
                if created is None:
                    logger.error(f"Failed to create playlist {name!r} for {user.name}")
                    result.fail(name)
                    processed += 1
                    report_progress(progress, processed, total)
                    continue
                logger.info(f"Created playlist {name!r} for {user.name}")
            result.succeeded += 1

            processed += 1
            report_progress(progress, processed, total)

        if self.context.config.playlist_delete_orphans:
            await self._delete_orphans(user, existing.values(), listing, result)
        return processed

    async def _resolve_entries(self, playlist: Playlist, user: LibraryUser) -> List[str]:
        item_ids = []
        for entry in playlist.entries:
            if not entry.is_downloaded:
                logger.warning(f"Entry {entry.youtube_id} of {playlist.name!r} is not downloaded, skipping")
                continue
            item = await self.context.library.find_item_by_provider_id(
                PROVIDER_NAME, entry.youtube_id, user.id)
            if item is None:
                logger.warning(f"Video {entry.youtube_id} of {playlist.name!r} not found in the library")
                continue
            item_ids.append(item.id)
        return item_ids

    async def _delete_orphans(self, user: LibraryUser, playlists, listing: PlaylistListing,
                              result: SyncResult) -> None:
        if not listing.complete:
            logger.warning("Archive playlist listing is incomplete, not deleting orphaned playlists")
            return

        archive_ids = {p.id for p in listing.playlists}
        for playlist in playlists:
            playlist_id = playlist_id_from_display_name(playlist.name)
            if playlist_id and playlist_id not in archive_ids:
                await self.context.library.delete_playlist(playlist.id)
                logger.info(f"Deleted orphaned playlist {playlist.name!r} for {user.name}")
