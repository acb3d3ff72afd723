"""Data models for library host items."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from tubebridge import PROVIDER_NAME


class ItemKind(Enum):
    """Kinds of library items."""
    COLLECTION = "Collection"
    SERIES = "Series"
    SEASON = "Season"
    EPISODE = "Episode"
    PLAYLIST = "Playlist"
    FOLDER = "Folder"
    OTHER = "Other"


@dataclass
class LibraryItem:
    """An item in the library hierarchy (collection > series > season > episode)."""
    id: str
    kind: ItemKind
    name: str = ""
    parent_id: Optional[str] = None
    path: Optional[str] = None
    provider_ids: Dict[str, str] = field(default_factory=dict)

    @property
    def external_id(self) -> Optional[str]:
        return self.provider_ids.get(PROVIDER_NAME)


@dataclass
class LibraryUser:
    id: str
    name: str


@dataclass
class UserItemData:
    """Per-user playback state of an item."""
    played: bool = False
    playback_position_ticks: int = 0


@dataclass
class LibraryPlaylist:
    id: str
    name: str
    item_ids: List[str] = field(default_factory=list)
