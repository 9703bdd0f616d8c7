"""
Abstract Document Store Interface.

Defines the contract that all persistence backends must implement.
Records are plain dicts grouped into named collections; filters are
field-equality predicates combined with AND.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import BaseModel, Field

Record = dict[str, Any]
Filter = dict[str, Any]


class StorageConfig(BaseModel):
    """Configuration for storage provider."""

    backend: str = Field(default="memory", description="Storage backend type")
    database: str = Field(default="platformtrust", description="Logical database name")
    connection_string: Optional[str] = Field(default=None, description="Connection string")


def matches(record: Record, filter: Filter) -> bool:
    """Return True if *record* satisfies every field of *filter*."""
    return all(field in record and record[field] == value for field, value in filter.items())


class AbstractDocumentStore(ABC):
    """
    Abstract document store.

    The platform registry only needs single-record semantics:
    - Lookup by conjunctive field-equality filter
    - Replace (optionally upsert) a record
    - Shallow-merge a patch into matching records
    - Delete by filter
    - Unique indexes, so concurrent creators cannot both win
    """

    def __init__(self, config: StorageConfig):
        """Initialize document store with configuration."""
        self.config = config

    @abstractmethod
    async def connect(self) -> None:
        """Establish connection to storage backend."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close connection to storage backend."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if storage backend is healthy."""
        pass

    @abstractmethod
    async def ensure_unique_index(self, collection: str, fields: tuple[str, ...]) -> None:
        """Declare that no two records in *collection* may agree on all *fields*."""
        pass

    @abstractmethod
    async def get(self, collection: str, filter: Optional[Filter] = None) -> Optional[list[Record]]:
        """Get records matching *filter*, or None if nothing matches."""
        pass

    @abstractmethod
    async def replace(
        self,
        collection: str,
        filter: Filter,
        record: Record,
        upsert: bool = False,
    ) -> bool:
        """
        Replace the first record matching *filter* with *record*.

        With ``upsert`` and no match, ``{**filter, **record}`` is inserted.
        Returns True if a record was written.
        """
        pass

    @abstractmethod
    async def modify(self, collection: str, filter: Filter, patch: Record) -> int:
        """Merge *patch* into every record matching *filter*. Returns match count."""
        pass

    @abstractmethod
    async def delete(self, collection: str, filter: Filter) -> int:
        """Delete every record matching *filter*. Returns deleted count."""
        pass
