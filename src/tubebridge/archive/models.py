"""Data models for archive API payloads."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from tubebridge.identifier.utils import custom_display_name, regular_display_name


def _parse_tags(value: Any) -> List[str]:
    # The archive sometimes sends tags as a bare string or false
    if not isinstance(value, list):
        return []
    return [str(tag) for tag in value]


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value)
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


class PlaylistType(Enum):
    """Kind of archive playlist."""
    REGULAR = "regular"
    CUSTOM = "custom"


class EntryAction(Enum):
    """Mutations accepted by a custom playlist."""
    CREATE = "create"
    REMOVE = "remove"
    TOP = "top"
    BOTTOM = "bottom"
    UP = "up"
    DOWN = "down"


@dataclass
class Channel:
    id: str
    name: str
    description: str = ""
    thumb_url: Optional[str] = None
    banner_url: Optional[str] = None
    tvart_url: Optional[str] = None
    tags: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Channel':
        return cls(
            id=data['channel_id'],
            name=data.get('channel_name', ''),
            description=data.get('channel_description') or '',
            thumb_url=data.get('channel_thumb_url'),
            banner_url=data.get('channel_banner_url'),
            tvart_url=data.get('channel_tvart_url'),
            tags=_parse_tags(data.get('channel_tags')),
        )


@dataclass
class Player:
    duration: float = 0.0
    is_watched: bool = False
    position: float = 0.0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'Player':
        data = data or {}
        return cls(
            duration=float(data.get('duration') or 0),
            is_watched=bool(data.get('watched', False)),
            position=float(data.get('position') or 0),
        )


@dataclass
class Video:
    youtube_id: str
    title: str
    channel: Optional[Channel] = None
    description: str = ""
    published: Optional[datetime] = None
    thumb_url: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    player: Player = field(default_factory=Player)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Video':
        channel = data.get('channel')
        return cls(
            youtube_id=data['youtube_id'],
            title=data.get('title', ''),
            channel=Channel.from_dict(channel) if isinstance(channel, dict) else None,
            description=data.get('description') or '',
            published=_parse_datetime(data.get('published')),
            thumb_url=data.get('vid_thumb_url'),
            tags=_parse_tags(data.get('tags')),
            player=Player.from_dict(data.get('player')),
        )


@dataclass
class PlaylistEntry:
    youtube_id: str
    title: str = ""
    uploader: str = ""
    index: int = 0
    is_downloaded: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PlaylistEntry':
        return cls(
            youtube_id=data['youtube_id'],
            title=data.get('title') or '',
            uploader=data.get('uploader') or '',
            index=int(data.get('idx') or 0),
            is_downloaded=bool(data.get('downloaded', False)),
        )


@dataclass
class Playlist:
    """An archive playlist. ``entries`` are in playback order."""
    id: str
    name: str
    type: PlaylistType = PlaylistType.REGULAR
    channel: Optional[str] = None
    channel_id: Optional[str] = None
    description: str = ""
    thumbnail: Optional[str] = None
    is_active: bool = True
    entries: List[PlaylistEntry] = field(default_factory=list)

    @property
    def entry_ids(self) -> List[str]:
        return [entry.youtube_id for entry in self.entries]

    @property
    def display_name(self) -> str:
        """Name used for the mirrored library playlist."""
        if self.type == PlaylistType.CUSTOM:
            return custom_display_name(self.name, self.id)
        return regular_display_name(self.name, self.channel, self.id)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Playlist':
        playlist_type = (PlaylistType.CUSTOM if data.get('playlist_type') == 'custom'
                         else PlaylistType.REGULAR)
        return cls(
            id=data['playlist_id'],
            name=data.get('playlist_name', ''),
            type=playlist_type,
            channel=data.get('playlist_channel'),
            channel_id=data.get('playlist_channel_id'),
            description=data.get('playlist_description') or '',
            thumbnail=data.get('playlist_thumbnail'),
            is_active=bool(data.get('playlist_active', True)),
            entries=[PlaylistEntry.from_dict(e) for e in data.get('playlist_entries') or []],
        )


@dataclass
class PaginationInfo:
    page_size: int = 0
    page_from: int = 0
    prev_pages: Optional[List[int]] = None
    current_page: int = 1
    max_hits: bool = False
    params: Optional[str] = None
    last_page: int = 1
    next_pages: List[int] = field(default_factory=list)
    total_hits: int = 0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'PaginationInfo':
        data = data or {}
        return cls(
            page_size=int(data.get('page_size') or 0),
            page_from=int(data.get('page_from') or 0),
            prev_pages=data.get('prev_pages') or None,
            current_page=int(data.get('current_page') or 1),
            max_hits=bool(data.get('max_hits', False)),
            params=data.get('params'),
            last_page=int(data.get('last_page') or 1),
            next_pages=list(data.get('next_pages') or []),
            total_hits=int(data.get('total_hits') or 0),
        )


@dataclass
class PingResponse:
    response: str
    user: int
    version: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PingResponse':
        return cls(
            response=data.get('response', ''),
            user=int(data.get('user') or 0),
            version=data.get('version', ''),
        )


@dataclass
class Progress:
    position: float

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Progress':
        return cls(position=float(data.get('position') or 0))


@dataclass
class PlaylistListing:
    """Result of a paginated playlist listing.

    ``complete`` is False when a later page failed and only the pages
    before it were merged.
    """
    playlists: List[Playlist]
    complete: bool = True
    pages: int = 1
