import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urljoin

import aiohttp

from tubebridge.archive.models import (Channel, EntryAction, PaginationInfo, PingResponse,
                                       Playlist, PlaylistListing, Progress, Video)
from tubebridge.archive.urls import ensure_scheme, sanitize_url

logger = logging.getLogger(__name__)

MAX_REDIRECTS = 10


class ArchiveClient:
    """Async client for the TubeArchivist REST API.

    Failures never raise to callers: read operations return None and write
    operations return the HTTP status (0 when the request never completed).
    """

    def __init__(self, base_url: str, api_key: str, timeout: float = 30):
        self.base_url = ensure_scheme(base_url)
        self.timeout = timeout
        self._headers: Dict[str, str] = {}
        self._session: aiohttp.ClientSession | None = None
        self.update_api_key(api_key)

    @property
    def name(self) -> str:
        return "TubeArchivist"

    async def __aenter__(self):
        await self._init_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _init_session(self) -> None:
        if not self._session:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)

    async def close(self) -> None:
        """Close the aiohttp session"""
        if self._session:
            await self._session.close()
            self._session = None

    def update_api_key(self, api_key: str) -> None:
        """Swap the credentials used for subsequent requests."""
        if not api_key:
            logger.warning("TubeArchivist API key is empty, requests will be unauthenticated")
        self._headers = {
            'Authorization': f"Token {api_key}",
            'Accept': 'application/json',
        }

    def update_base_url(self, base_url: str) -> None:
        """Point subsequent requests at another archive host."""
        self.base_url = ensure_scheme(base_url)

    def _url(self, path: str) -> str:
        return sanitize_url(f"{self.base_url}/{path}")

    async def _request(self, method: str, path: str,
                       payload: Optional[Dict[str, Any]] = None) -> Tuple[int, Any]:
        """Send a request, following 301s by hand.

        Returns:
            Tuple of (status, decoded JSON body or None). Status is 0 when
            the request failed before a response arrived.
        """
        await self._init_session()
        url = self._url(path)

        try:
            for _ in range(MAX_REDIRECTS + 1):
                async with self._session.request(method, url, json=payload,
                                                 headers=self._headers,
                                                 allow_redirects=False) as response:
                    location = response.headers.get('Location')
                    if response.status == 301 and location:
                        logger.debug(f"{method} {url} moved to {location}")
                        url = urljoin(url, location)
                        continue

                    body = None
                    if 200 <= response.status < 300 and response.status != 204:
                        try:
                            body = await response.json(content_type=None)
                        except ValueError as e:
                            logger.error(f"Invalid JSON from {method} {url}: {e}")
                            return 0, None
                    return response.status, body

            logger.error(f"Too many redirects for {method} {path}")
            return 0, None

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"{method} {url} failed: {e}")
            return 0, None

    async def _get(self, path: str) -> Optional[Any]:
        status, body = await self._request('GET', path)
        if status != 200 or body is None:
            logger.info(f"GET {path} returned status {status}")
            return None
        return body

    def _log_write_failure(self, what: str, status: int) -> None:
        logger.critical(f"Failed to {what}: status {status}")

    async def get_channel(self, channel_id: str) -> Optional[Channel]:
        data = await self._get(f"api/channel/{channel_id}")
        if data is None:
            return None
        try:
            return Channel.from_dict(data.get('data', data))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Malformed channel {channel_id}: {e}")
            return None

    async def get_video(self, video_id: str) -> Optional[Video]:
        data = await self._get(f"api/video/{video_id}")
        if data is None:
            return None
        try:
            return Video.from_dict(data.get('data', data))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Malformed video {video_id}: {e}")
            return None

    async def ping(self) -> Optional[PingResponse]:
        """Check connectivity and credentials."""
        status, body = await self._request('GET', "api/ping")
        if status != 200 or not isinstance(body, dict):
            logger.info(f"Ping to {self.base_url} failed with status {status}")
            return None
        ping = PingResponse.from_dict(body)
        logger.debug(f"Ping response: {ping}")
        return ping

    async def set_progress(self, video_id: str, position_seconds: int) -> int:
        status, _ = await self._request('POST', f"api/video/{video_id}/progress",
                                        {'position': position_seconds})
        if status != 200:
            self._log_write_failure(f"set progress of {video_id} to {position_seconds}s", status)
        return status

    async def get_progress(self, video_id: str) -> Optional[Progress]:
        """Read playback progress, taken from the video's player block."""
        video = await self.get_video(video_id)
        if video is None:
            return None
        return Progress(position=video.player.position)

    async def set_watched_status(self, item_id: str, is_watched: bool) -> int:
        """Mark a video or a whole channel as watched or unwatched."""
        status, _ = await self._request('POST', "api/watched",
                                        {'id': item_id, 'is_watched': is_watched})
        if status != 200:
            self._log_write_failure(f"set watched status of {item_id} to {is_watched}", status)
        return status

    async def fetch_playlists(self) -> Optional[PlaylistListing]:
        """Fetch every playlist page.

        Pages are merged in order. A failing page stops pagination and the
        pages fetched so far are returned with ``complete`` set to False.

        Returns:
            The listing, or None if the first page failed
        """
        body = await self._get("api/playlist")
        if not isinstance(body, dict):
            logger.critical("Failed to fetch playlists")
            return None

        playlists = self._parse_playlists(body)
        pagination = PaginationInfo.from_dict(body.get('paginate'))
        page = pagination.current_page
        last_page = pagination.last_page
        pages = 1

        while page < last_page:
            page += 1
            body = await self._get(f"api/playlist/?page={page}")
            if not isinstance(body, dict):
                logger.critical(f"Failed to fetch playlists page {page} of {last_page}, "
                                f"returning {len(playlists)} playlists from earlier pages")
                return PlaylistListing(playlists=playlists, complete=False, pages=pages)

            playlists.extend(self._parse_playlists(body))
            last_page = PaginationInfo.from_dict(body.get('paginate')).last_page
            pages += 1

        return PlaylistListing(playlists=playlists, complete=True, pages=pages)

    async def list_playlists(self) -> Optional[List[Playlist]]:
        listing = await self.fetch_playlists()
        return listing.playlists if listing else None

    def _parse_playlists(self, body: Dict[str, Any]) -> List[Playlist]:
        playlists = []
        for data in body.get('data') or []:
            try:
                playlists.append(Playlist.from_dict(data))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.error(f"Skipping malformed playlist: {e}")
        return playlists

    async def create_custom_playlist(self, name: str) -> Optional[Playlist]:
        status, body = await self._request('POST', "api/playlist/custom",
                                           {'playlist_name': name})
        if status not in (200, 201) or not isinstance(body, dict):
            self._log_write_failure(f"create custom playlist {name!r}", status)
            return None
        try:
            return Playlist.from_dict(body.get('data', body))
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Malformed playlist returned for {name!r}: {e}")
            return None

    async def apply_playlist_entry_action(self, playlist_id: str, action: EntryAction,
                                          video_id: str) -> int:
        status, _ = await self._request('POST', f"api/playlist/custom/{playlist_id}",
                                        {'action': action.value, 'video_id': video_id})
        if status != 200:
            self._log_write_failure(f"{action.value} {video_id} in playlist {playlist_id}", status)
        return status

    async def delete_playlist(self, playlist_id: str) -> bool:
        status, _ = await self._request('DELETE', f"api/playlist/{playlist_id}")
        if status != 204:
            self._log_write_failure(f"delete playlist {playlist_id}", status)
            return False
        return True
