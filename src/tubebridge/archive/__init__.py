from .client import ArchiveClient
from .models import (Channel, EntryAction, PaginationInfo, PingResponse, Playlist,
                     PlaylistEntry, PlaylistListing, PlaylistType, Progress, Video)

__all__ = ['ArchiveClient', 'Channel', 'EntryAction', 'PaginationInfo', 'PingResponse',
           'Playlist', 'PlaylistEntry', 'PlaylistListing', 'PlaylistType', 'Progress', 'Video']
