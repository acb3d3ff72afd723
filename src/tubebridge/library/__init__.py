from .base import LibraryError, LibraryHost
from .models import ItemKind, LibraryItem, LibraryPlaylist, LibraryUser, UserItemData

__all__ = ['LibraryError', 'LibraryHost', 'ItemKind', 'LibraryItem', 'LibraryPlaylist',
           'LibraryUser', 'UserItemData']
