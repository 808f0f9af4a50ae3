"""
Paged Collection Module

An ordered, paginated view over ids of one entity type. The entities
themselves live in a ResourceStore; the collection only records which
ids it shows and in what order, plus its pagination and view state.
"""

from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Hashable, List, Optional, TypeVar

from data.models import Page
from data.resource_store import ResourceStore
from utils.exceptions import ApiError
from utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Called with the cursor of the page to load (None for the first page)
PageLoader = Callable[[Any], Awaitable[Page]]


class FetchOutcome(str, Enum):
    FETCHED = "fetched"
    IN_FLIGHT = "in_flight"     # another fetch on this collection is running
    EXHAUSTED = "exhausted"     # has_more is False, nothing to load
    FAILED = "failed"           # see last_error
    STALE = "stale"             # store was cleared while the request was out


class PagedCollection(Generic[T]):
    """
    Id sequence plus pagination state for one (entity type, partition key) pair.

    At most one page request is in flight per collection. ``ordered_ids``
    never contains the same id twice; the first occurrence keeps its place.
    """

    def __init__(self, name: str, store: ResourceStore, loader: PageLoader,
                 partition_key: Optional[Hashable] = None):
        self.name = name
        self.partition_key = partition_key
        self.store = store
        self._loader = loader

        self._ids: List[str] = []
        self._id_set = set()
        self.cursor: Any = None
        self.pages_loaded = 0
        self.is_loading = False
        self.has_more = True
        self.last_error: Optional[Exception] = None

    def __repr__(self) -> str:
        return (f"PagedCollection({self.name!r}, key={self.partition_key!r}, "
                f"ids={len(self._ids)}, has_more={self.has_more})")

    @property
    def label(self) -> str:
        if self.partition_key is None:
            return self.name
        return f"{self.name}[{self.partition_key}]"

    @property
    def ordered_ids(self) -> List[str]:
        return list(self._ids)

    def items(self) -> List[T]:
        """Resolve ids against the store, skipping any the store does not know."""
        resolved = []
        for entity_id in self._ids:
            entity = self.store.get(entity_id)
            if entity is not None:
                resolved.append(entity)
        return resolved

    async def fetch_page(self, refresh: bool = False) -> FetchOutcome:
        """
        Load the first page (refresh) or the next page of this collection.

        A refresh replaces ``ordered_ids``; a normal fetch appends new ids,
        skipping any already present. Errors are recorded in ``last_error``
        and leave the ids and ``has_more`` untouched.

        Args:
            refresh: Start over from the first page.

        Returns:
            FetchOutcome describing what happened.
        """
        if self.is_loading:
            logger.debug(f"{self.label}: fetch rejected, a page request is already in flight")
            return FetchOutcome.IN_FLIGHT

        if not refresh and not self.has_more:
            logger.debug(f"{self.label}: fetch rejected, no more pages")
            return FetchOutcome.EXHAUSTED

        cursor = None if refresh else self.cursor
        generation = self.store.generation
        self.is_loading = True
        self.last_error = None

        try:
            page = await self._loader(cursor)
        except ApiError as e:
            logger.warning(f"{self.label}: page request failed: {e}")
            self.last_error = e
            return FetchOutcome.FAILED
        except Exception as e:
            logger.error(f"{self.label}: unexpected error loading page: {e}", exc_info=True)
            self.last_error = e
            return FetchOutcome.FAILED
        finally:
            self.is_loading = False

        if self.store.generation != generation:
            logger.info(f"{self.label}: dropping page that arrived after the store was cleared")
            return FetchOutcome.STALE

        page_ids = self.store.upsert_many(page.items)

        if refresh:
            self._ids = page_ids
            self._id_set = set(page_ids)
            self.pages_loaded = 1
        else:
            for entity_id in page_ids:
                if entity_id not in self._id_set:
                    self._id_set.add(entity_id)
                    self._ids.append(entity_id)
            self.pages_loaded += 1

        self.has_more = page.has_more
        self.cursor = page.next_cursor
        logger.debug(f"{self.label}: loaded {len(page_ids)} items, total {len(self._ids)}, "
                     f"has_more={self.has_more}")
        return FetchOutcome.FETCHED

    def prepend_id(self, entity_id: str) -> bool:
        """Insert an id at the front. Returns False if it was already present."""
        if entity_id in self._id_set:
            return False
        self._ids.insert(0, entity_id)
        self._id_set.add(entity_id)
        return True

    def remove_id(self, entity_id: str) -> bool:
        """Remove an id. Returns True if it was present."""
        if entity_id not in self._id_set:
            return False
        self._id_set.discard(entity_id)
        self._ids.remove(entity_id)
        return True

    def clear_error(self) -> None:
        self.last_error = None

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._id_set

    def __len__(self) -> int:
        return len(self._ids)
