from abc import ABC, abstractmethod
from typing import List, Optional

from tubebridge.library.models import (ItemKind, LibraryItem, LibraryPlaylist, LibraryUser,
                                       UserItemData)


class LibraryError(Exception):
    """Base class for library host errors"""
    pass


class LibraryHost(ABC):
    """Operations the sync engine needs from the media library server"""

    @abstractmethod
    async def get_item(self, item_id: str) -> Optional[LibraryItem]:
        """Look up an item by id, None if it does not exist"""
        pass

    @abstractmethod
    async def get_children(self, parent_id: str, kind: Optional[ItemKind] = None,
                           user_id: Optional[str] = None,
                           recursive: bool = False) -> List[LibraryItem]:
        """List items below ``parent_id``, optionally filtered by kind"""
        pass

    @abstractmethod
    async def find_top_level_folders(self, name: Optional[str] = None) -> List[LibraryItem]:
        """List top-level collection folders, optionally filtered by name"""
        pass

    @abstractmethod
    async def find_item_by_provider_id(self, provider: str, value: str,
                                       user_id: Optional[str] = None) -> Optional[LibraryItem]:
        """Find the item carrying ``value`` under the ``provider`` id key"""
        pass

    @abstractmethod
    async def get_user_by_name(self, name: str) -> Optional[LibraryUser]:
        pass

    @abstractmethod
    async def get_user_by_id(self, user_id: str) -> Optional[LibraryUser]:
        pass

    @abstractmethod
    async def get_user_data(self, user_id: str, item_id: str) -> Optional[UserItemData]:
        pass

    @abstractmethod
    async def save_user_data(self, user_id: str, item_id: str, data: UserItemData) -> None:
        pass

    @abstractmethod
    async def is_played(self, user_id: str, item_id: str) -> bool:
        """True when the user has played the item, or every episode of a series"""
        pass

    @abstractmethod
    async def get_playlists(self, user_id: str) -> List[LibraryPlaylist]:
        """List the user's playlists with their ordered item ids"""
        pass

    @abstractmethod
    async def create_playlist(self, user_id: str, name: str,
                              item_ids: List[str]) -> Optional[LibraryPlaylist]:
        pass

    @abstractmethod
    async def update_playlist(self, playlist_id: str, name: Optional[str] = None,
                              item_ids: Optional[List[str]] = None) -> None:
        """Rename a playlist and/or replace its item list wholesale"""
        pass

    @abstractmethod
    async def delete_playlist(self, playlist_id: str) -> None:
        pass

    async def update_connection(self, base_url: str, api_key: str) -> None:
        """Switch to another server address or API key for later requests"""
        pass

    async def close(self) -> None:
        pass
