"""
Platform Status Flags

Independent active/inactive flag per platform ``kid``. A platform with no
stored flag is active.
"""

import logging
from typing import Optional

from platformtrust.config import PlatformTrustConfig
from platformtrust.exceptions import StorageError, collaborator_errors
from platformtrust.storage.provider import AbstractDocumentStore

logger = logging.getLogger(__name__)

DEFAULT_ACTIVE = True


class StatusFlagStore:
    """Reads and writes the ``platformStatus`` collection.

    Args:
        store: Document store holding the status collection.
        config: Supplies the collection name.
    """

    def __init__(
        self,
        store: AbstractDocumentStore,
        config: Optional[PlatformTrustConfig] = None,
    ) -> None:
        self._store = store
        self._collection = (config or PlatformTrustConfig()).collections.platform_status

    async def is_active(self, kid: str) -> bool:
        """Return the stored flag, or ``DEFAULT_ACTIVE`` when none is stored."""
        with collaborator_errors(StorageError, "Reading platform status"):
            result = await self._store.get(self._collection, {"id": kid})
        if not result:
            return DEFAULT_ACTIVE
        return bool(result[0].get("active", DEFAULT_ACTIVE))

    async def set_active(self, kid: str, active: bool) -> bool:
        """Overwrite the flag for ``kid``. Returns the stored value."""
        with collaborator_errors(StorageError, "Writing platform status"):
            await self._store.replace(
                self._collection, {"id": kid}, {"id": kid, "active": bool(active)}, upsert=True
            )
        logger.info("Platform %s marked %s", kid, "active" if active else "inactive")
        return bool(active)

    async def clear(self, kid: str) -> None:
        """Remove the flag for ``kid``, restoring the default."""
        with collaborator_errors(StorageError, "Deleting platform status"):
            await self._store.delete(self._collection, {"id": kid})
