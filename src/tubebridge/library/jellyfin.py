import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from tubebridge.archive.urls import ensure_scheme
from tubebridge.library.base import LibraryError, LibraryHost
from tubebridge.library.models import (ItemKind, LibraryItem, LibraryPlaylist, LibraryUser,
                                       UserItemData)

logger = logging.getLogger(__name__)

ITEM_FIELDS = "Path,ProviderIds,ParentId"

_KIND_BY_TYPE = {
    'CollectionFolder': ItemKind.COLLECTION,
    'Series': ItemKind.SERIES,
    'Season': ItemKind.SEASON,
    'Episode': ItemKind.EPISODE,
    'Playlist': ItemKind.PLAYLIST,
    'Folder': ItemKind.FOLDER,
}
_TYPE_BY_KIND = {kind: item_type for item_type, kind in _KIND_BY_TYPE.items()}


def item_from_dto(data: Dict[str, Any]) -> LibraryItem:
    """Convert a Jellyfin BaseItemDto into a LibraryItem."""
    return LibraryItem(
        id=data['Id'],
        kind=_KIND_BY_TYPE.get(data.get('Type'), ItemKind.OTHER),
        name=data.get('Name') or '',
        parent_id=data.get('ParentId'),
        path=data.get('Path'),
        provider_ids=dict(data.get('ProviderIds') or {}),
    )


class JellyfinLibrary(LibraryHost):
    """LibraryHost backed by the Jellyfin REST API."""

    def __init__(self, base_url: str, api_key: str, timeout: float = 30):
        self.base_url = ensure_scheme(base_url).rstrip('/')
        self.api_key = api_key
        self.timeout = timeout
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self):
        await self._init_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _init_session(self) -> None:
        if not self._session:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers={'X-Emby-Token': self.api_key, 'Accept': 'application/json'}
            )

    async def update_connection(self, base_url: str, api_key: str) -> None:
        """Reconnect with a new address or token; the session carries the token header."""
        self.base_url = ensure_scheme(base_url).rstrip('/')
        self.api_key = api_key
        await self.close()

    async def close(self) -> None:
        """Close the aiohttp session"""
        if self._session:
            await self._session.close()
            self._session = None

    async def _request(self, method: str, path: str, params: Optional[Dict[str, Any]] = None,
                       payload: Optional[Dict[str, Any]] = None,
                       allow_missing: bool = False) -> Any:
        await self._init_session()
        url = f"{self.base_url}/{path.lstrip('/')}"
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        try:
            async with self._session.request(method, url, params=params, json=payload) as response:
                if response.status == 404 and allow_missing:
                    return None
                if response.status >= 400:
                    text = await response.text()
                    raise LibraryError(f"{method} {path} failed with status {response.status}: {text[:200]}")
                if response.status == 204:
                    return None
                return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise LibraryError(f"{method} {path} failed: {e}") from e

    async def _query_items(self, **params) -> List[LibraryItem]:
        params.setdefault('Fields', ITEM_FIELDS)
        data = await self._request('GET', 'Items', params=params) or {}
        return [item_from_dto(item) for item in data.get('Items', [])]

    async def get_item(self, item_id: str) -> Optional[LibraryItem]:
        try:
            items = await self._query_items(ids=item_id)
        except LibraryError as e:
            logger.error(f"Failed to look up item {item_id}: {e}")
            return None
        return items[0] if items else None

    async def get_children(self, parent_id: str, kind: Optional[ItemKind] = None,
                           user_id: Optional[str] = None,
                           recursive: bool = False) -> List[LibraryItem]:
        return await self._query_items(
            parentId=parent_id,
            includeItemTypes=_TYPE_BY_KIND.get(kind) if kind else None,
            userId=user_id,
            recursive='true' if recursive else 'false',
        )

    async def find_top_level_folders(self, name: Optional[str] = None) -> List[LibraryItem]:
        data = await self._request('GET', 'Library/MediaFolders') or {}
        folders = [item_from_dto(item) for item in data.get('Items', [])]
        if name is not None:
            folders = [f for f in folders if f.name.lower() == name.lower()]
        return folders

    async def find_item_by_provider_id(self, provider: str, value: str,
                                       user_id: Optional[str] = None) -> Optional[LibraryItem]:
        items = await self._query_items(
            anyProviderIdEquals=f"{provider}.{value}",
            userId=user_id,
            recursive='true',
        )
        # Older servers ignore the provider filter
        for item in items:
            if item.provider_ids.get(provider) == value:
                return item
        return None

    async def _users(self) -> List[LibraryUser]:
        data = await self._request('GET', 'Users') or []
        return [LibraryUser(id=user['Id'], name=user.get('Name', '')) for user in data]

    async def get_user_by_name(self, name: str) -> Optional[LibraryUser]:
        for user in await self._users():
            if user.name.lower() == name.lower():
                return user
        return None

    async def get_user_by_id(self, user_id: str) -> Optional[LibraryUser]:
        data = await self._request('GET', f"Users/{user_id}", allow_missing=True)
        if not data:
            return None
        return LibraryUser(id=data['Id'], name=data.get('Name', ''))

    async def get_user_data(self, user_id: str, item_id: str) -> Optional[UserItemData]:
        data = await self._request('GET', f"UserItems/{item_id}/UserData",
                                   params={'userId': user_id}, allow_missing=True)
        if not data:
            return None
        return UserItemData(
            played=bool(data.get('Played', False)),
            playback_position_ticks=int(data.get('PlaybackPositionTicks') or 0),
        )

    async def save_user_data(self, user_id: str, item_id: str, data: UserItemData) -> None:
        await self._request('POST', f"UserItems/{item_id}/UserData", params={'userId': user_id},
                            payload={
                                'Played': data.played,
                                'PlaybackPositionTicks': data.playback_position_ticks,
                            })

    async def is_played(self, user_id: str, item_id: str) -> bool:
        data = await self.get_user_data(user_id, item_id)
        return bool(data and data.played)

    async def get_playlists(self, user_id: str) -> List[LibraryPlaylist]:
        playlists = []
        for item in await self._query_items(userId=user_id, includeItemTypes='Playlist',
                                            recursive='true'):
            data = await self._request('GET', f"Playlists/{item.id}/Items",
                                       params={'userId': user_id}) or {}
            item_ids = [entry['Id'] for entry in data.get('Items', [])]
            playlists.append(LibraryPlaylist(id=item.id, name=item.name, item_ids=item_ids))
        return playlists

    async def create_playlist(self, user_id: str, name: str,
                              item_ids: List[str]) -> Optional[LibraryPlaylist]:
        data = await self._request('POST', 'Playlists', payload={
            'Name': name,
            'Ids': item_ids,
            'UserId': user_id,
            'MediaType': 'Video',
        })
        if not data or 'Id' not in data:
            return None
        return LibraryPlaylist(id=data['Id'], name=name, item_ids=list(item_ids))

    async def update_playlist(self, playlist_id: str, name: Optional[str] = None,
                              item_ids: Optional[List[str]] = None) -> None:
        payload: Dict[str, Any] = {}
        if name is not None:
            payload['Name'] = name
        if item_ids is not None:
            payload['Ids'] = item_ids
        await self._request('POST', f"Playlists/{playlist_id}", payload=payload)

    async def delete_playlist(self, playlist_id: str) -> None:
        await self._request('DELETE', f"Items/{playlist_id}")
