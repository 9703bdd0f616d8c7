"""
Access Token Cache

Caches access tokens issued by a platform, keyed by
``(platform url, client id, scopes)``. A cached token is served only while
``(now - created_at) / 1000 <= expires_in``; otherwise a new one is requested
from the token issuer and stored in its place. Expired entries are never
deleted, just overwritten on the next request.
"""

from __future__ import annotations

import abc
import logging
import time
from typing import Any, Callable, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from platformtrust.config import PlatformTrustConfig
from platformtrust.exceptions import (
    MissingArgumentError,
    StorageError,
    TokenIssuanceError,
    collaborator_errors,
)
from platformtrust.identity.platform import PlatformIdentity
from platformtrust.storage.provider import AbstractDocumentStore, Record

logger = logging.getLogger(__name__)


class AccessToken(BaseModel):
    """Token returned by a platform's token endpoint.

    Only ``token_type`` and ``expires_in`` are interpreted; any other fields
    (``access_token``, ``scope``, ...) are kept as-is.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    token_type: str = Field(..., min_length=1)
    expires_in: Union[int, float] = Field(..., ge=0, description="Lifetime in seconds")

    def normalized(self) -> "AccessToken":
        """Copy with the first letter of ``token_type`` upper-cased ("bearer" -> "Bearer")."""
        token_type = self.token_type[0].upper() + self.token_type[1:]
        return self.model_copy(update={"token_type": token_type})


class TokenIssuer(abc.ABC):
    """Exchanges platform credentials for a new access token."""

    @abc.abstractmethod
    async def issue(
        self, scopes: str, platform: PlatformIdentity
    ) -> Union[AccessToken, Mapping[str, Any]]:
        """Request a token for *scopes* from *platform*'s token endpoint."""


def is_fresh(token: AccessToken, created_at_ms: float, now_ms: float) -> bool:
    """Return True while the token's lifetime has not elapsed."""
    return (now_ms - created_at_ms) / 1000 <= token.expires_in


class TokenCache:
    """Serves cached platform access tokens, regenerating stale ones.

    Concurrent misses for the same key may each request a token; the last
    write wins and every returned token is valid.

    Args:
        store: Document store holding the token collection.
        issuer: Source of new tokens.
        config: Supplies the collection name.
        clock: Returns the current time in seconds since the epoch.
    """

    def __init__(
        self,
        store: AbstractDocumentStore,
        issuer: TokenIssuer,
        config: Optional[PlatformTrustConfig] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._issuer = issuer
        self._collection = (config or PlatformTrustConfig()).collections.access_token
        self._clock = clock

    def _now_ms(self) -> float:
        return self._clock() * 1000

    async def get_access_token(self, platform: PlatformIdentity, scopes: str) -> AccessToken:
        """Return a fresh token for *platform* and *scopes*.

        Args:
            platform: The platform to authenticate against.
            scopes: Space-delimited scope string, matched exactly.

        Returns:
            A token whose ``token_type`` starts with an upper-case letter.

        Raises:
            MissingArgumentError: If *platform* is absent.
            TokenIssuanceError: If a new token was needed and could not be issued.
            StorageError: If the cache cannot be read.
        """
        if platform is None:
            raise MissingArgumentError("MISSING_PLATFORM", "platform")

        key = {"platformUrl": platform.url, "clientId": platform.client_id, "scopes": scopes}
        with collaborator_errors(StorageError, "Reading access token cache"):
            result = await self._store.get(self._collection, key)

        cached = self._load(result[0]) if result else None
        if cached is not None:
            token, created_at = cached
            if is_fresh(token, created_at, self._now_ms()):
                logger.debug("Access token for %s found (scopes: %s)", platform.url, scopes)
                return token.normalized()

        logger.info(
            "Valid access token for %s not found, requesting a new one (scopes: %s)",
            platform.url,
            scopes,
        )
        token = await self._issue(platform, scopes)
        await self._save(key, token)
        return token.normalized()

    async def _issue(self, platform: PlatformIdentity, scopes: str) -> AccessToken:
        with collaborator_errors(TokenIssuanceError, "Access token request"):
            issued = await self._issuer.issue(scopes, platform)
        if isinstance(issued, AccessToken):
            return issued
        try:
            return AccessToken.model_validate(dict(issued))
        except (ValidationError, TypeError, ValueError) as exc:
            raise TokenIssuanceError(f"Issuer returned an unusable token: {exc}", cause=exc) from exc

    async def _save(self, key: Record, token: AccessToken) -> None:
        record = {**key, "token": token.model_dump(), "createdAt": self._now_ms()}
        try:
            with collaborator_errors(StorageError, "Writing access token cache"):
                await self._store.replace(self._collection, key, record, upsert=True)
        except StorageError as exc:
            # The token is still valid; only the next call pays for a new one.
            logger.warning("Could not cache access token for %s: %s", key["platformUrl"], exc)

    @staticmethod
    def _load(record: Record) -> Optional[tuple[AccessToken, float]]:
        try:
            return AccessToken.model_validate(record["token"]), float(record["createdAt"])
        except (KeyError, TypeError, ValueError, ValidationError):
            logger.warning("Discarding malformed cached access token")
            return None
