"""Shared fixtures: an in-memory library host and a mocked archive client."""

from typing import Dict, List, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock

import pytest

from tubebridge.archive.client import ArchiveClient
from tubebridge.archive.models import PlaylistListing
from tubebridge.config import Config
from tubebridge.context import SyncContext
from tubebridge.library.base import LibraryHost
from tubebridge.library.models import (ItemKind, LibraryItem, LibraryPlaylist, LibraryUser,
                                       UserItemData)


class FakeLibrary(LibraryHost):
    """LibraryHost keeping everything in dictionaries."""

    def __init__(self):
        self.items: Dict[str, LibraryItem] = {}
        self.users: Dict[str, LibraryUser] = {}
        self.user_data: Dict[Tuple[str, str], UserItemData] = {}
        self.playlists: Dict[str, LibraryPlaylist] = {}
        self.playlist_owner: Dict[str, str] = {}
        self.saved: List[Tuple[str, str, UserItemData]] = []
        self.lookups = 0
        self._next_id = 0

    def add(self, item_id: str, kind: ItemKind, name: str = "",
            parent_id: Optional[str] = None, path: Optional[str] = None,
            provider_ids: Optional[Dict[str, str]] = None) -> LibraryItem:
        item = LibraryItem(id=item_id, kind=kind, name=name or item_id, parent_id=parent_id,
                           path=path, provider_ids=provider_ids or {})
        self.items[item_id] = item
        return item

    def add_user(self, user_id: str, name: str) -> LibraryUser:
        user = LibraryUser(id=user_id, name=name)
        self.users[user_id] = user
        return user

    def add_playlist(self, user_id: str, playlist_id: str, name: str,
                     item_ids: List[str]) -> LibraryPlaylist:
        playlist = LibraryPlaylist(id=playlist_id, name=name, item_ids=list(item_ids))
        self.playlists[playlist_id] = playlist
        self.playlist_owner[playlist_id] = user_id
        return playlist

    async def get_item(self, item_id):
        self.lookups += 1
        return self.items.get(item_id)

    async def get_children(self, parent_id, kind=None, user_id=None, recursive=False):
        return [item for item in self.items.values()
                if item.parent_id == parent_id and (kind is None or item.kind == kind)]

    async def find_top_level_folders(self, name=None):
        folders = [item for item in self.items.values()
                   if item.kind == ItemKind.COLLECTION and item.parent_id is None]
        if name is not None:
            folders = [f for f in folders if f.name.lower() == name.lower()]
        return folders

    async def find_item_by_provider_id(self, provider, value, user_id=None):
        for item in self.items.values():
            if item.provider_ids.get(provider) == value:
                return item
        return None

    async def get_user_by_name(self, name):
        for user in self.users.values():
            if user.name == name:
                return user
        return None

    async def get_user_by_id(self, user_id):
        return self.users.get(user_id)

    async def get_user_data(self, user_id, item_id):
        return self.user_data.get((user_id, item_id), UserItemData())

    async def save_user_data(self, user_id, item_id, data):
        self.user_data[(user_id, item_id)] = data
        self.saved.append((user_id, item_id, data))

    async def is_played(self, user_id, item_id):
        return self.user_data.get((user_id, item_id), UserItemData()).played

    async def get_playlists(self, user_id):
        return [p for pid, p in self.playlists.items() if self.playlist_owner[pid] == user_id]

    async def create_playlist(self, user_id, name, item_ids):
        self._next_id += 1
        return self.add_playlist(user_id, f"new-{self._next_id}", name, item_ids)

    async def update_playlist(self, playlist_id, name=None, item_ids=None):
        playlist = self.playlists[playlist_id]
        if name is not None:
            playlist.name = name
        if item_ids is not None:
            playlist.item_ids = list(item_ids)

    async def delete_playlist(self, playlist_id):
        del self.playlists[playlist_id]
        del self.playlist_owner[playlist_id]


@pytest.fixture
def library() -> FakeLibrary:
    """Library with a YouTube collection holding one channel and one video."""
    library = FakeLibrary()
    library.add("collection", ItemKind.COLLECTION, "YouTube")
    library.add("series-1", ItemKind.SERIES, "Channel One", "collection", "/data/Channel1")
    library.add("season-2024", ItemKind.SEASON, "2024", "series-1", "/data/Channel1")
    library.add("episode-1", ItemKind.EPISODE, "Video", "season-2024",
                "/data/Channel1/video123.mkv")
    library.add_user("user-1", "alice")
    library.add_user("user-2", "bob")
    return library


@pytest.fixture
def archive() -> MagicMock:
    """Archive client whose calls all succeed."""
    archive = MagicMock(spec=ArchiveClient)
    archive.set_watched_status = AsyncMock(return_value=200)
    archive.set_progress = AsyncMock(return_value=200)
    archive.get_video = AsyncMock(return_value=None)
    archive.fetch_playlists = AsyncMock(return_value=PlaylistListing(playlists=[]))
    archive.create_custom_playlist = AsyncMock(return_value=None)
    archive.apply_playlist_entry_action = AsyncMock(return_value=200)
    archive.close = AsyncMock()
    return archive


@pytest.fixture
def config() -> Config:
    return Config(
        archive_url="archive:8000",
        archive_api_key="secret",
        push_sync_enabled=True,
        pull_sync_enabled=True,
        push_username="alice",
        pull_usernames="alice, bob",
        playlist_push_enabled=True,
        playlist_pull_enabled=True,
    )


@pytest.fixture
async def context(config, archive, library) -> SyncContext:
    context = SyncContext(config=config, archive=archive, library=library)
    await context.start()
    return context
