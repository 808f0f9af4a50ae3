"""
Resource Store Module

Keyed-by-id storage for a single entity type (Post, Actor or Alert).
Collections hold ids, not copies, so an update made here is visible
through every collection that references the id.
"""

import dataclasses
from typing import Any, Dict, Generic, Iterable, Iterator, List, Optional, TypeVar

from utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ResourceStore(Generic[T]):
    """
    Normalized entity storage with CRUD-by-id semantics.

    Entries live until removed or until the whole store is cleared; there is
    no size-based eviction. ``generation`` is bumped on every clear so that
    work started before the clear can detect that its results are stale.
    """

    def __init__(self, name: str):
        self.name = name
        self.generation = 0
        self._entries: Dict[str, T] = {}

    def get(self, entity_id: str) -> Optional[T]:
        """Return the entity, or None if the id is unknown."""
        return self._entries.get(entity_id)

    def upsert(self, entity: T) -> T:
        """
        Insert an entity or merge it into the existing entry.

        Fields sent by the server overwrite what is stored. Optional fields
        the server left out (None) keep their current value.

        Args:
            entity: The incoming entity.

        Returns:
            The stored entity after the merge.
        """
        existing = self._entries.get(entity.id)
        if existing is None:
            self._entries[entity.id] = entity
            return entity

        incoming = {
            f.name: getattr(entity, f.name)
            for f in dataclasses.fields(entity)
            if getattr(entity, f.name) is not None
        }
        merged = dataclasses.replace(existing, **incoming)
        self._entries[entity.id] = merged
        return merged

    def upsert_many(self, entities: Iterable[T]) -> List[str]:
        """
        Upsert every entity in order.

        Returns:
            The ids in order of first occurrence, without duplicates.
        """
        seen = []
        seen_set = set()
        for entity in entities:
            self.upsert(entity)
            if entity.id not in seen_set:
                seen_set.add(entity.id)
                seen.append(entity.id)
        return seen

    def patch(self, entity_id: str, **fields: Any) -> Optional[T]:
        """
        Shallow-merge a partial update into an existing entry.

        Used for optimistic mutations. Unlike upsert, None values are applied.
        Patching an unknown id is a no-op.

        Returns:
            The patched entity, or None if the id is unknown.
        """
        existing = self._entries.get(entity_id)
        if existing is None:
            logger.debug(f"[{self.name}] patch ignored for unknown id {entity_id}")
            return None
        patched = dataclasses.replace(existing, **fields)
        self._entries[entity_id] = patched
        return patched

    def remove(self, entity_id: str) -> Optional[T]:
        """Delete an entry. Returns the removed entity, if any."""
        return self._entries.pop(entity_id, None)

    def retain(self, keep_ids: Iterable[str]) -> int:
        """
        Drop every entry whose id is not in keep_ids.

        Returns:
            The number of entries removed.
        """
        keep = set(keep_ids)
        doomed = [entity_id for entity_id in self._entries if entity_id not in keep]
        for entity_id in doomed:
            del self._entries[entity_id]
        return len(doomed)

    def clear(self) -> None:
        """Remove every entry and start a new generation."""
        self._entries.clear()
        self.generation += 1
        logger.debug(f"[{self.name}] cleared, generation {self.generation}")

    def ids(self) -> List[str]:
        return list(self._entries)

    def values(self) -> List[T]:
        return list(self._entries.values())

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._entries.values()))
