import logging
from typing import Optional

from tubebridge.library.base import LibraryHost
from tubebridge.library.models import ItemKind, LibraryItem

logger = logging.getLogger(__name__)

MAX_ANCESTOR_HOPS = 10
# episode -> season -> series -> collection
EPISODE_COLLECTION_HOPS = 3
SERIES_COLLECTION_HOPS = 1


class CollectionMembershipResolver:
    """Decides whether library items belong to the configured archive collection.

    The collection id is looked up once by title and cached in
    ``collection_id``; the attribute is only ever replaced as a whole.
    """

    def __init__(self, library: LibraryHost, collection_title: str):
        self.library = library
        self.collection_title = collection_title
        self.collection_id: Optional[str] = None

    async def refresh(self, collection_title: Optional[str] = None) -> Optional[str]:
        """Look the collection up by title and replace the cached id.

        Args:
            collection_title: New title to use, keeps the current one when None

        Returns:
            The cached collection id, None when no collection matched
        """
        if collection_title is not None:
            self.collection_title = collection_title

        title = (self.collection_title or "").strip()
        if not title:
            logger.warning("Collection title is empty, membership checks fall back to name matching")
            self.collection_id = None
            return None

        try:
            folders = await self.library.find_top_level_folders()
        except Exception as e:
            logger.error(f"Failed to list library collections: {e}")
            self.collection_id = None
            return None

        for folder in folders:
            if folder.name.lower() == title.lower():
                self.collection_id = folder.id
                logger.info(f"Found collection {folder.name!r} with id {folder.id}")
                return folder.id

        logger.warning(f"No collection named {title!r} found")
        self.collection_id = None
        return None

    async def is_member(self, item: Optional[LibraryItem], allow_series: bool = False) -> bool:
        """Return True if ``item`` sits inside the archive collection.

        Only episodes qualify, plus series when ``allow_series`` is set. Any
        lookup failure counts as not a member.
        """
        if item is None:
            return False
        if item.kind != ItemKind.EPISODE and not (allow_series and item.kind == ItemKind.SERIES):
            return False

        try:
            collection_id = self.collection_id
            if collection_id:
                return await self._has_ancestor(item, collection_id)
            return await self._matches_title_by_depth(item)
        except Exception as e:
            logger.error(f"Failed to resolve collection membership of {item.id}: {e}")
            return False

    async def _has_ancestor(self, item: LibraryItem, collection_id: str) -> bool:
        if item.id == collection_id:
            return True

        current = item
        for _ in range(MAX_ANCESTOR_HOPS):
            if not current.parent_id:
                return False
            if current.parent_id == collection_id:
                return True
            current = await self.library.get_item(current.parent_id)
            if current is None:
                return False

        logger.debug(f"Item {item.id} is more than {MAX_ANCESTOR_HOPS} levels deep")
        return False

    async def _matches_title_by_depth(self, item: LibraryItem) -> bool:
        title = (self.collection_title or "").strip()
        if not title:
            return False

        hops = SERIES_COLLECTION_HOPS if item.kind == ItemKind.SERIES else EPISODE_COLLECTION_HOPS
        current = item
        for _ in range(hops):
            if not current.parent_id:
                return False
            current = await self.library.get_item(current.parent_id)
            if current is None:
                return False

        return current.name.lower() == title.lower()
