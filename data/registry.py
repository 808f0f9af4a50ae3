"""
Collection Registry Module

Maps a partition key (author id, parent murmur id, search query, ...) to
the PagedCollection for that partition. Collections are created on first
access. Singleton collections such as the timeline use the key None.
"""

from typing import Callable, Dict, Hashable, List, Optional

from data.paged_collection import PagedCollection, PageLoader
from data.resource_store import ResourceStore
from utils.logger import get_logger

logger = get_logger(__name__)

LoaderFactory = Callable[[Optional[Hashable]], PageLoader]


class CollectionRegistry:
    """Lazily built PagedCollections of one kind, all backed by the same store."""

    def __init__(self, name: str, store: ResourceStore, loader_factory: LoaderFactory):
        self.name = name
        self.store = store
        self._loader_factory = loader_factory
        self._collections: Dict[Optional[Hashable], PagedCollection] = {}

    def get_or_create(self, partition_key: Optional[Hashable] = None) -> PagedCollection:
        """
        Return the collection for a partition, creating an empty one if needed.

        A new collection starts with no ids, has_more=True and is_loading=False.
        """
        collection = self._collections.get(partition_key)
        if collection is None:
            collection = PagedCollection(
                self.name,
                self.store,
                self._loader_factory(partition_key),
                partition_key=partition_key,
            )
            self._collections[partition_key] = collection
            logger.debug(f"Created collection {collection.label}")
        return collection

    def get(self, partition_key: Optional[Hashable] = None) -> Optional[PagedCollection]:
        """Return the collection for a partition without creating it."""
        return self._collections.get(partition_key)

    def reset(self, partition_key: Optional[Hashable] = None) -> bool:
        """
        Discard one partition's collection so the next access starts clean.

        Returns:
            True if a collection was discarded.
        """
        removed = self._collections.pop(partition_key, None)
        if removed is not None:
            logger.debug(f"Reset collection {removed.label}")
        return removed is not None

    def reset_all(self) -> None:
        """Discard every partition."""
        count = len(self._collections)
        self._collections.clear()
        if count:
            logger.debug(f"Reset {count} {self.name} collection(s)")

    def partitions(self) -> List[Optional[Hashable]]:
        return list(self._collections)

    def collections(self) -> List[PagedCollection]:
        return list(self._collections.values())

    def referenced_ids(self) -> set:
        """Every id shown by any collection in this registry."""
        ids = set()
        for collection in self._collections.values():
            ids.update(collection.ordered_ids)
        return ids

    def __contains__(self, partition_key: object) -> bool:
        return partition_key in self._collections

    def __len__(self) -> int:
        return len(self._collections)
