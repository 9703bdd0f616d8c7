"""
In-Memory Document Store.

Simple in-memory implementation for development and testing.
"""

import copy
from collections import defaultdict
from typing import Optional

from platformtrust.exceptions import DuplicateRecordError

from .provider import AbstractDocumentStore, Filter, Record, StorageConfig, matches


class MemoryDocumentStore(AbstractDocumentStore):
    """
    In-memory document store.

    Uses Python lists of dicts for storage. Data is lost on restart.
    Records are deep-copied on the way in and out so callers never share
    state with the store. Suitable for development and testing only.
    """

    def __init__(self, config: Optional[StorageConfig] = None):
        """Initialize in-memory storage."""
        super().__init__(config or StorageConfig())
        self._collections: dict[str, list[Record]] = defaultdict(list)
        self._unique_indexes: dict[str, list[tuple[str, ...]]] = defaultdict(list)
        self._connected = False

    async def connect(self) -> None:
        """Establish connection (no-op for memory)."""
        self._connected = True

    async def disconnect(self) -> None:
        """Close connection (no-op for memory)."""
        self._connected = False

    async def health_check(self) -> bool:
        """Check if storage is healthy."""
        return self._connected

    async def ensure_unique_index(self, collection: str, fields: tuple[str, ...]) -> None:
        """Declare a unique index. Re-declaring the same index is a no-op."""
        fields = tuple(fields)
        if fields not in self._unique_indexes[collection]:
            self._unique_indexes[collection].append(fields)

    # Reads

    async def get(self, collection: str, filter: Optional[Filter] = None) -> Optional[list[Record]]:
        """Get records matching filter."""
        found = [
            copy.deepcopy(record)
            for record in self._collections.get(collection, [])
            if matches(record, filter or {})
        ]
        return found or None

    # Writes

    async def replace(
        self,
        collection: str,
        filter: Filter,
        record: Record,
        upsert: bool = False,
    ) -> bool:
        """Replace first match, or insert when upserting."""
        records = self._collections[collection]
        for index, existing in enumerate(records):
            if matches(existing, filter):
                self._check_unique(collection, record, skip=index)
                records[index] = copy.deepcopy(record)
                return True

        if not upsert:
            return False

        document = {**copy.deepcopy(filter), **copy.deepcopy(record)}
        self._check_unique(collection, document)
        records.append(document)
        return True

    async def modify(self, collection: str, filter: Filter, patch: Record) -> int:
        """Merge patch into every match."""
        records = self._collections[collection]
        targets = [i for i, existing in enumerate(records) if matches(existing, filter)]
        updated = {i: {**records[i], **copy.deepcopy(patch)} for i in targets}

        # Validate every candidate before touching the collection.
        for i, candidate in updated.items():
            self._check_unique(collection, candidate, skip=i, pending=updated)

        for i, candidate in updated.items():
            records[i] = candidate
        return len(targets)

    async def delete(self, collection: str, filter: Filter) -> int:
        """Delete every match."""
        records = self._collections.get(collection, [])
        kept = [record for record in records if not matches(record, filter)]
        removed = len(records) - len(kept)
        self._collections[collection] = kept
        return removed

    def _check_unique(
        self,
        collection: str,
        candidate: Record,
        skip: Optional[int] = None,
        pending: Optional[dict[int, Record]] = None,
    ) -> None:
        """Raise DuplicateRecordError if *candidate* collides with another record."""
        for fields in self._unique_indexes.get(collection, []):
            if not all(field in candidate for field in fields):
                continue
            key = tuple(candidate[field] for field in fields)
            for i, existing in enumerate(self._collections[collection]):
                if i == skip:
                    continue
                other = pending.get(i, existing) if pending else existing
                if all(field in other for field in fields) and tuple(
                    other[field] for field in fields
                ) == key:
                    raise DuplicateRecordError(collection, fields)
