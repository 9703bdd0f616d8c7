"""
Compensating step log for multi-record writes.

The document store has no multi-record transactions, so a multi-step write
registers an undo for each side effect as it goes. If the block raises, the
undos run newest first and the original error propagates unchanged.

Example:
    >>> async with Saga("register platform") as saga:
    ...     await store.replace("publickey", {"kid": kid}, record, upsert=True)
    ...     saga.on_rollback("delete public key", lambda: store.delete("publickey", {"kid": kid}))
    ...     await store.replace("platform", {"kid": kid}, platform, upsert=True)
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional

from platformtrust.exceptions import PlatformTrustError

logger = logging.getLogger(__name__)

Undo = Callable[[], Awaitable[Any]]


class Saga:
    """Ordered list of applied side effects, each paired with its undo.

    Args:
        name: Human-readable operation name used in log messages.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._steps: list[tuple[str, Undo]] = []

    def on_rollback(self, description: str, undo: Undo) -> None:
        """Register *undo* to run if the saga fails.

        Register before the forward step when a failure may leave a partial
        write behind; undos must therefore tolerate nothing to undo.
        """
        self._steps.append((description, undo))

    @property
    def pending(self) -> list[str]:
        """Descriptions of the registered undos, oldest first."""
        return [description for description, _ in self._steps]

    async def compensate(self, error: Optional[BaseException] = None) -> list[Exception]:
        """Run every registered undo in reverse order.

        Undo failures are logged and collected rather than raised. When
        *error* is a PlatformTrustError they are also attached to it as
        ``compensation_failures``.

        Returns:
            The exceptions raised by failing undos.
        """
        failures: list[Exception] = []
        while self._steps:
            description, undo = self._steps.pop()
            try:
                await undo()
                logger.debug("Compensated %s: %s", self.name, description)
            except Exception as exc:
                logger.exception("Compensation failed for %s: %s", self.name, description)
                failures.append(exc)

        if isinstance(error, PlatformTrustError):
            error.compensation_failures.extend(failures)
        return failures

    async def __aenter__(self) -> "Saga":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if exc is not None:
            logger.warning("%s failed (%s), compensating %d step(s)", self.name, exc, len(self._steps))
            await self.compensate(exc)
        else:
            self._steps.clear()
        return False
