"""Event-driven sync of single items as users watch them."""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Union

from tubebridge import TICKS_PER_SECOND
from tubebridge.context import SyncContext
from tubebridge.identifier.utils import channel_id_from_path, video_id_from_path
from tubebridge.library.models import ItemKind

logger = logging.getLogger(__name__)


@dataclass
class PlaybackProgressEvent:
    """A user's playback position changed."""
    item_id: str
    user_id: str
    username: str
    position_ticks: Optional[int] = None


@dataclass
class WatchedChangedEvent:
    """A user marked an item as played or unplayed."""
    item_id: str
    user_id: str
    username: str
    played: bool


SyncEvent = Union[PlaybackProgressEvent, WatchedChangedEvent]


class EventDispatcher:
    """Feeds library events through a bounded queue to a fixed pool of workers.

    Handler failures are logged and the event is dropped.
    """

    def __init__(self, context: SyncContext, workers: int = 4, queue_size: int = 1000):
        self.context = context
        self.workers = max(1, workers)
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._tasks: List[asyncio.Task] = []

    async def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [asyncio.create_task(self._worker(i)) for i in range(self.workers)]
        logger.info(f"Started {self.workers} event workers")

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

    def submit(self, event: SyncEvent) -> bool:
        """Queue an event; returns False when the queue is full and the event was dropped."""
        try:
            self.queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            logger.warning(f"Event queue full, dropping {event}")
            return False

    async def join(self) -> None:
        """Wait until every queued event has been handled."""
        await self.queue.join()

    async def _worker(self, number: int) -> None:
        while True:
            event = await self.queue.get()
            try:
                await self.handle(event)
            except Exception as e:
                logger.error(f"Worker {number} failed to handle {event}: {e}", exc_info=True)
            finally:
                self.queue.task_done()

    async def handle(self, event: SyncEvent) -> None:
        if isinstance(event, PlaybackProgressEvent):
            await self.handle_progress(event)
        elif isinstance(event, WatchedChangedEvent):
            await self.handle_watched(event)
        else:
            logger.debug(f"Ignoring unknown event {event!r}")

    async def handle_progress(self, event: PlaybackProgressEvent) -> bool:
        """Push the playback position of the source user to the archive.

        Returns:
            True if progress was pushed
        """
        config = self.context.config
        if not config.push_sync_enabled:
            return False
        if event.username != config.push_username:
            return False
        if event.position_ticks is None:
            return False

        item = await self.context.library.get_item(event.item_id)
        if not await self.context.resolver.is_member(item):
            return False

        video_id = video_id_from_path(item.path)
        seconds = event.position_ticks // TICKS_PER_SECOND
        status = await self.context.archive.set_progress(video_id, seconds)
        logger.debug(f"Pushed progress {seconds}s of {video_id}: {status}")
        return status == 200

    async def handle_watched(self, event: WatchedChangedEvent) -> bool:
        """Push a watched toggle to the archive.

        Series toggle the whole channel, episodes toggle the video and then
        push its current progress.

        Returns:
            True if the watched status was pushed
        """
        config = self.context.config
        if not config.push_sync_enabled:
            return False
        if event.username not in config.pull_usernames:
            return False

        item = await self.context.library.get_item(event.item_id)
        if item is None:
            return False

        archive = self.context.archive
        if item.kind == ItemKind.SERIES:
            if not await self.context.resolver.is_member(item, allow_series=True):
                return False
            channel_id = channel_id_from_path(item.path)
            return await archive.set_watched_status(channel_id, event.played) == 200

        if item.kind == ItemKind.EPISODE:
            if not await self.context.resolver.is_member(item):
                return False
            video_id = video_id_from_path(item.path)
            status = await archive.set_watched_status(video_id, event.played)

            data = await self.context.library.get_user_data(event.user_id, item.id)
            if data is not None:
                await archive.set_progress(video_id, data.playback_position_ticks // TICKS_PER_SECOND)
            return status == 200

        return False
