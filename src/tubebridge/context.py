"""Shared dependencies handed to every sync component."""

import asyncio
import logging
from typing import Optional

from tubebridge.archive.client import ArchiveClient
from tubebridge.config import Config
from tubebridge.identifier.service import CollectionMembershipResolver
from tubebridge.library.base import LibraryHost
from tubebridge.sync.history import SyncHistory

logger = logging.getLogger(__name__)

# Read once when serve starts
RESTART_REQUIRED = ('push_interval', 'pull_interval', 'webhook_host', 'webhook_port',
                    'event_workers', 'history_db_path')


class SyncContext:
    """Configuration, clients and the membership resolver for one running bridge."""

    def __init__(self, config: Config, archive: ArchiveClient, library: LibraryHost,
                 history: Optional[SyncHistory] = None,
                 resolver: Optional[CollectionMembershipResolver] = None):
        self.config = config
        self.archive = archive
        self.library = library
        self.history = history
        self.resolver = resolver or CollectionMembershipResolver(library, config.collection_title)
        self._started = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @classmethod
    def from_config(cls, config: Config) -> 'SyncContext':
        from tubebridge.library.jellyfin import JellyfinLibrary

        return cls(
            config=config,
            archive=ArchiveClient(config.archive_url, config.archive_api_key),
            library=JellyfinLibrary(config.library_url, config.library_api_key),
            history=SyncHistory(config.history_db_path),
        )

    @property
    def started(self) -> bool:
        return self._started

    def ensure_started(self) -> None:
        if not self._started:
            raise RuntimeError("SyncContext used before start()")

    async def start(self) -> 'SyncContext':
        """Prepare the history store and resolve the collection id."""
        self._loop = asyncio.get_running_loop()
        if self.history:
            await self.history.initialize()
        await self.resolver.refresh(self.config.collection_title)
        self._started = True
        return self

    async def close(self) -> None:
        await self.archive.close()
        await self.library.close()
        self._started = False

    async def __aenter__(self):
        return await self.start()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def apply_config(self, old: Config, new: Config) -> None:
        """Adopt a reloaded configuration."""
        self.config = new
        if new.archive_url != old.archive_url:
            logger.info(f"Archive URL changed to {new.archive_url}")
            self.archive.update_base_url(new.archive_url)
        if new.archive_api_key != old.archive_api_key:
            logger.info("Archive API key changed, updating client credentials")
            self.archive.update_api_key(new.archive_api_key)
        if new.library_url != old.library_url or new.library_api_key != old.library_api_key:
            logger.info(f"Library connection changed, reconnecting to {new.library_url}")
            await self.library.update_connection(new.library_url, new.library_api_key)

        for name in RESTART_REQUIRED:
            if getattr(new, name) != getattr(old, name):
                logger.warning(f"Changing {name} takes effect after a restart")

        if new.collection_title != old.collection_title:
            logger.info(f"Collection title changed to {new.collection_title!r}, refreshing")
            await self.resolver.refresh(new.collection_title)

    def on_config_changed(self, old: Config, new: Config) -> None:
        """Config watcher callback; runs on the watchdog thread."""
        if self._loop is None or self._loop.is_closed():
            logger.warning("Ignoring config change, event loop is not running")
            return
        asyncio.run_coroutine_threadsafe(self.apply_config(old, new), self._loop)
