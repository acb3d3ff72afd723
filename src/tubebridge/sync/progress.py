"""Playback progress and watched status sync between library and archive."""

import asyncio
import logging
from typing import Callable, List, Optional, Tuple

from tubebridge import TICKS_PER_SECOND
from tubebridge.context import SyncContext
from tubebridge.identifier.utils import MalformedPathError, channel_id_from_path, video_id_from_path
from tubebridge.library.base import LibraryError
from tubebridge.library.models import ItemKind, LibraryItem, LibraryUser, UserItemData
from tubebridge.sync.models import SyncResult

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]
ChannelEpisodes = List[Tuple[LibraryItem, List[LibraryItem]]]


def report_progress(callback: Optional[ProgressCallback], processed: int, total: int) -> None:
    """Report ``processed`` out of ``total`` as a whole percentage."""
    if callback is None:
        return
    percent = 100 if total <= 0 else min(100, processed * 100 // total)
    callback(percent)


def is_cancelled(cancel: Optional[asyncio.Event]) -> bool:
    return cancel is not None and cancel.is_set()


async def walk_collection(context: SyncContext, user_id: str) -> Optional[ChannelEpisodes]:
    """List every series in the archive collection together with its episodes.

    Returns:
        List of (series, episodes) pairs, None when the collection is missing
    """
    resolver = context.resolver
    collection_id = resolver.collection_id or await resolver.refresh()
    if not collection_id:
        logger.critical(f"Collection {resolver.collection_title!r} not found, nothing to sync")
        return None

    channels = []
    for series in await context.library.get_children(collection_id, ItemKind.SERIES, user_id):
        episodes = []
        for season in await context.library.get_children(series.id, ItemKind.SEASON, user_id):
            episodes.extend(await context.library.get_children(season.id, ItemKind.EPISODE, user_id))
        channels.append((series, episodes))
    return channels


class ProgressSync:
    """Pushes library playback state to the archive and pulls it back."""

    def __init__(self, context: SyncContext):
        self.context = context

    async def push(self, progress: Optional[ProgressCallback] = None,
                   cancel: Optional[asyncio.Event] = None) -> SyncResult:
        """Push progress and watched status of the source user to the archive.

        A fully played series is marked watched as a whole channel first; when
        that succeeds the per-video watched pushes for it are skipped.
        Progress is always pushed per video.

        Args:
            progress: Called with the percentage done
            cancel: Stops the pass between items once set

        Returns:
            Counters for the pass
        """
        self.context.ensure_started()
        config = self.context.config
        result = SyncResult(task="push-progress")

        if not config.push_sync_enabled:
            logger.info("Progress push is disabled")
            result.aborted = True
            return result.finish()

        user = None
        if config.push_username:
            user = await self.context.library.get_user_by_name(config.push_username)
        if user is None:
            logger.warning(f"Push source user {config.push_username!r} not found, skipping push")
            return result.abort(f"user {config.push_username!r} not found")

        try:
            channels = await walk_collection(self.context, user.id)
        except LibraryError as e:
            logger.error(f"Failed to walk the collection: {e}")
            return result.abort(str(e))
        if channels is None:
            return result.abort("collection not found")

        total = sum(len(episodes) for _, episodes in channels)
        processed = 0
        logger.info(f"Pushing progress of {total} videos in {len(channels)} channels for {user.name}")

        for series, episodes in channels:
            if is_cancelled(cancel):
                result.cancelled = True
                break

            try:
                channel_watched = await self._push_channel(user, series)
            except MalformedPathError as e:
                logger.error(f"Cannot mark channel {series.name!r} watched: {e}")
                channel_watched = False
            except LibraryError as e:
                logger.error(f"Failed to read watched state of {series.name!r}: {e}")
                channel_watched = False

            for episode in episodes:
                if is_cancelled(cancel):
                    result.cancelled = True
                    break
                await self._push_episode(user, episode, channel_watched, result)
                processed += 1
                report_progress(progress, processed, total)

        if result.cancelled:
            logger.info("Progress push cancelled")
        report_progress(progress, total, total)
        return result.finish()

    async def _push_channel(self, user: LibraryUser, series: LibraryItem) -> bool:
        """Mark the whole channel watched if the user finished the series."""
        if not await self.context.library.is_played(user.id, series.id):
            return False

        channel_id = channel_id_from_path(series.path)
        status = await self.context.archive.set_watched_status(channel_id, True)
        if status == 200:
            logger.debug(f"Channel {channel_id} marked as watched")
            return True
        return False

    async def _push_episode(self, user: LibraryUser, episode: LibraryItem,
                            channel_watched: bool, result: SyncResult) -> None:
        result.processed += 1
        try:
            video_id = video_id_from_path(episode.path)
        except MalformedPathError as e:
            logger.error(f"Skipping episode {episode.name!r}: {e}")
            result.skipped += 1
            return

        try:
            data = await self.context.library.get_user_data(user.id, episode.id)
        except LibraryError as e:
            logger.error(f"Failed to read user data of {video_id}: {e}")
            result.fail(video_id)
            return
        if data is None:
            result.skipped += 1
            return

        archive = self.context.archive
        ok = True
        if not channel_watched:
            ok = await archive.set_watched_status(video_id, data.played) == 200

        seconds = data.playback_position_ticks // TICKS_PER_SECOND
        ok = await archive.set_progress(video_id, seconds) == 200 and ok

        if ok:
            result.succeeded += 1
        else:
            result.fail(video_id)

    async def pull(self, progress: Optional[ProgressCallback] = None,
                   cancel: Optional[asyncio.Event] = None) -> SyncResult:
        """Pull progress and watched status from the archive for every destination user.

        Args:
            progress: Called with the percentage done
            cancel: Stops the pass between items once set

        Returns:
            Counters for the pass
        """
        self.context.ensure_started()
        config = self.context.config
        library = self.context.library
        result = SyncResult(task="pull-progress")

        if not config.pull_sync_enabled:
            logger.info("Progress pull is disabled")
            result.aborted = True
            return result.finish()

        work: List[Tuple[LibraryUser, ChannelEpisodes]] = []
        try:
            for username in sorted(config.pull_usernames):
                user = await library.get_user_by_name(username)
                if user is None:
                    logger.warning(f"Pull destination user {username!r} not found, skipping")
                    continue
                channels = await walk_collection(self.context, user.id)
                if channels is None:
                    return result.abort("collection not found")
                work.append((user, channels))
        except LibraryError as e:
            logger.error(f"Failed to walk the collection: {e}")
            return result.abort(str(e))

        total = sum(len(episodes) for _, channels in work for _, episodes in channels)
        processed = 0

        for user, channels in work:
            logger.info(f"Pulling progress for {user.name}")
            for _, episodes in channels:
                for episode in episodes:
                    if is_cancelled(cancel):
                        result.cancelled = True
                        logger.info("Progress pull cancelled")
                        return result.finish()
                    await self._pull_episode(user, episode, result)
                    processed += 1
                    report_progress(progress, processed, total)

        report_progress(progress, total, total)
        return result.finish()

    async def _pull_episode(self, user: LibraryUser, episode: LibraryItem,
                            result: SyncResult) -> None:
        result.processed += 1
        try:
            video_id = video_id_from_path(episode.path)
        except MalformedPathError as e:
            logger.error(f"Skipping episode {episode.name!r}: {e}")
            result.skipped += 1
            return

        # One request yields both position and watched flag
        video = await self.context.archive.get_video(video_id)
        if video is None:
            logger.info(f"Video {video_id} not found in the archive")
            result.skipped += 1
            return

        data = UserItemData(
            played=video.player.is_watched,
            playback_position_ticks=int(video.player.position * TICKS_PER_SECOND),
        )
        try:
            await self.context.library.save_user_data(user.id, episode.id, data)
        except LibraryError as e:
            logger.error(f"Failed to save user data of {video_id} for {user.name}: {e}")
            result.fail(video_id)
            return
        result.succeeded += 1
