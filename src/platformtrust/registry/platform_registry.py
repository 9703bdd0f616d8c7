"""
Platform Registry Service

Owns the lifecycle of registered platforms. A platform is spread over several
single-record writes:
- The platform identity record
- Public and private key records sharing the platform ``kid``
- An optional status flag

The store cannot write these atomically, so every multi-step mutation runs in
a :class:`~platformtrust.saga.Saga` and undoes its applied steps on failure.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, TypeVar, Union

from pydantic import BaseModel, ValidationError

from platformtrust.config import PlatformTrustConfig
from platformtrust.exceptions import (
    DuplicateRecordError,
    DuplicateUrlClientIdError,
    InvalidArgumentError,
    MissingArgumentError,
    PlatformNotFoundError,
    PlatformTrustError,
    StorageError,
    collaborator_errors,
)
from platformtrust.identity.auth_config import AuthConfig, coerce_auth_config
from platformtrust.identity.keystore import CredentialStore, KeyPairGenerator
from platformtrust.identity.platform import PlatformIdentity, PlatformPatch
from platformtrust.identity.status import StatusFlagStore
from platformtrust.saga import Saga
from platformtrust.storage.provider import AbstractDocumentStore, Filter, Record

logger = logging.getLogger(__name__)

PatchLike = Union[PlatformPatch, Mapping[str, Any]]
ModelT = TypeVar("ModelT", bound=BaseModel)

# Stand-in until the keypair is issued; never persisted.
_PENDING_KID = "pending"


def _validated(model: type[ModelT], fields: Mapping[str, Any]) -> ModelT:
    """Build *model* from *fields*, reporting rejected input as InvalidArgumentError."""
    try:
        return model.model_validate(dict(fields))
    except ValidationError as exc:
        raise InvalidArgumentError(
            f"INVALID_PLATFORM_INFO: {exc}", code="INVALID_PLATFORM_INFO"
        ) from exc


class PlatformRegistry:
    """
    Platform Registry Service.

    Registers, looks up, updates and deletes platforms while keeping each
    platform's identity record, keypair and status flag consistent.
    ``(url, client_id)`` is unique across all platforms.

    Concurrent calls for different platforms need no coordination. Two
    concurrent registrations of the same new ``(url, client_id)`` can both
    pass the initial lookup; the unique index on the platform collection
    lets only one identity record be written, and the loser revokes its
    keypair and raises :class:`DuplicateUrlClientIdError`.

    Args:
        store: Document store for all platform collections.
        credentials: Key store. Built from *store* when omitted.
        status: Status flag store. Built from *store* when omitted.
        config: Collection names and key parameters.
        generator: Keypair source for the default key store.

    Example:
        >>> registry = PlatformRegistry(MemoryDocumentStore())
        >>> await registry.setup()
        >>> platform = await registry.register(
        ...     url="https://lms.example.com",
        ...     client_id="tool-1",
        ...     name="Example LMS",
        ...     authentication_endpoint="https://lms.example.com/auth",
        ...     access_token_endpoint="https://lms.example.com/token",
        ...     auth_config={"method": "JWK_SET", "key": "https://lms.example.com/jwks"},
        ... )
    """

    def __init__(
        self,
        store: AbstractDocumentStore,
        credentials: Optional[CredentialStore] = None,
        status: Optional[StatusFlagStore] = None,
        config: Optional[PlatformTrustConfig] = None,
        generator: Optional[KeyPairGenerator] = None,
    ) -> None:
        self._config = config or PlatformTrustConfig()
        self._store = store
        self._credentials = credentials or CredentialStore(store, generator, self._config)
        self._status = status or StatusFlagStore(store, self._config)
        self._collection = self._config.collections.platform

    async def setup(self) -> None:
        """Declare the unique indexes the registry relies on."""
        with collaborator_errors(StorageError, "Declaring platform indexes"):
            await self._store.ensure_unique_index(self._collection, ("platformUrl", "clientId"))
            await self._store.ensure_unique_index(self._collection, ("kid",))

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def register(
        self,
        url: str,
        client_id: str,
        name: Optional[str] = None,
        authentication_endpoint: Optional[str] = None,
        access_token_endpoint: Optional[str] = None,
        auth_config: Union[AuthConfig, Mapping[str, Any], None] = None,
    ) -> PlatformIdentity:
        """Register a platform, or merge into an existing registration.

        If ``(url, client_id)`` is already registered, the provided fields
        overwrite the stored ones and the existing platform (same ``kid``) is
        returned. Otherwise every field is required, a keypair is issued and
        the identity record is written.

        Raises:
            MissingArgumentError: If url/client_id, or any field needed for a
                new registration, is absent.
            InvalidArgumentError: If a field has the wrong type.
            InvalidAuthConfigError: If the auth config is invalid.
            DuplicateUrlClientIdError: If a concurrent registration won.
            CollaboratorError: If key generation or storage fails. Partial
                writes are removed before the error propagates.
        """
        if not url:
            raise MissingArgumentError("MISSING_PLATFORM_URL_OR_CLIENTID", "url")
        if not client_id:
            raise MissingArgumentError("MISSING_PLATFORM_URL_OR_CLIENTID", "client_id")

        existing = await self.get_by_url(url, client_id)
        if existing is not None:
            logger.info("Platform %s (client %s) already registered", url, client_id)
            patch = _validated(
                PlatformPatch,
                {
                    "name": name,
                    "authentication_endpoint": authentication_endpoint,
                    "access_token_endpoint": access_token_endpoint,
                    "auth_config": auth_config,
                },
            )
            if patch.is_empty():
                return existing
            return await self._apply_update(existing, patch)

        for argument, value in (
            ("name", name),
            ("authentication_endpoint", authentication_endpoint),
            ("access_token_endpoint", access_token_endpoint),
            ("auth_config", auth_config),
        ):
            if not value:
                raise MissingArgumentError("MISSING_PARAMS", argument)
        identity = _validated(
            PlatformIdentity,
            {
                "kid": _PENDING_KID,
                "name": name,
                "url": url,
                "client_id": client_id,
                "authentication_endpoint": authentication_endpoint,
                "access_token_endpoint": access_token_endpoint,
                "auth_config": coerce_auth_config(auth_config),
            },
        )

        logger.info("Registering new platform %s (client %s)", url, client_id)
        keypair = await self._credentials.issue(url, client_id)
        identity = identity.model_copy(update={"kid": keypair.kid})

        async with Saga(f"register platform {url}") as saga:
            saga.on_rollback("revoke keypair", lambda: self._credentials.revoke(identity.kid))

            # A concurrent registration may have landed since the first lookup.
            if await self._find_record(url, client_id) is not None:
                logger.warning("Concurrent registration of %s (client %s) detected", url, client_id)
                raise DuplicateUrlClientIdError(url, client_id)

            saga.on_rollback(
                "delete platform record", lambda: self._delete_records({"kid": identity.kid})
            )
            await self._write(identity, {"kid": identity.kid}, upsert=True)

        logger.info("Registered platform %s (client %s) as %s", url, client_id, identity.kid)
        return identity

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    async def get_by_url(
        self, url: str, client_id: Optional[str] = None
    ) -> Union[PlatformIdentity, list[PlatformIdentity], None]:
        """Look up platforms by URL.

        Returns:
            With *client_id*: the matching platform or None.
            Without: every platform registered under *url* (possibly empty).

        Raises:
            MissingArgumentError: If *url* is absent.
        """
        if not url:
            raise MissingArgumentError("MISSING_PLATFORM_URL", "url")
        if client_id:
            record = await self._find_record(url, client_id)
            return PlatformIdentity.from_record(record) if record is not None else None
        records = await self._query({"platformUrl": url})
        return [PlatformIdentity.from_record(record) for record in records]

    async def get_by_id(self, kid: str) -> Optional[PlatformIdentity]:
        """Return the platform with this ``kid``, or None.

        Raises:
            MissingArgumentError: If *kid* is absent.
        """
        if not kid:
            raise MissingArgumentError("MISSING_PLATFORM_ID", "kid")
        records = await self._query({"kid": kid})
        return PlatformIdentity.from_record(records[0]) if records else None

    async def list_all(self) -> list[PlatformIdentity]:
        """Return every registered platform."""
        return [PlatformIdentity.from_record(record) for record in await self._query({})]

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    async def update(self, kid: str, patch: Optional[PatchLike]) -> PlatformIdentity:
        """Update a platform by ``kid``.

        Fields present in *patch* overwrite the stored values; ``auth_config``
        is merged field by field. Changing ``url`` or ``client_id`` relocates
        the platform: the new pair must be free, and the keypair is re-tagged
        (not regenerated) before the identity record is written.

        Raises:
            MissingArgumentError: If *kid* or *patch* is absent.
            InvalidArgumentError: If *patch* names an unknown field or a field has
                the wrong type.
            PlatformNotFoundError: If no platform has this ``kid``.
            InvalidAuthConfigError: If the merged auth config is invalid.
            DuplicateUrlClientIdError: If relocating onto a registered pair.
            CollaboratorError: If storage fails. A relocated keypair is moved
                back before the error propagates.
        """
        if not kid:
            raise MissingArgumentError("MISSING_PLATFORM_ID", "kid")
        if patch is None:
            raise MissingArgumentError("MISSING_PLATFORM_INFO", "patch")
        if not isinstance(patch, PlatformPatch):
            patch = _validated(PlatformPatch, patch)

        current = await self.get_by_id(kid)
        if current is None:
            raise PlatformNotFoundError(kid)
        return await self._apply_update(current, patch)

    async def update_field(self, kid: str, field: str, value: Any) -> PlatformIdentity:
        """Update a single field, e.g. ``update_field(kid, "name", "New name")``.

        Raises:
            InvalidArgumentError: If *field* is not an updatable platform field.
        """
        if field not in PlatformPatch.model_fields:
            raise InvalidArgumentError(
                f"Unknown platform field: {field}", code="UNKNOWN_PLATFORM_FIELD"
            )
        if value is None:
            raise MissingArgumentError("MISSING_PLATFORM_INFO", field)
        return await self.update(kid, {field: value})

    async def _apply_update(self, current: PlatformIdentity, patch: PlatformPatch) -> PlatformIdentity:
        kid = current.kid
        updated = _validated(
            PlatformIdentity,
            {
                "kid": kid,
                "name": patch.name or current.name,
                "url": patch.url or current.url,
                "client_id": patch.client_id or current.client_id,
                "authentication_endpoint": (
                    patch.authentication_endpoint or current.authentication_endpoint
                ),
                "access_token_endpoint": patch.access_token_endpoint or current.access_token_endpoint,
                "auth_config": coerce_auth_config(patch.auth_config, current.auth_config),
            },
        )

        relocating = (updated.url, updated.client_id) != (current.url, current.client_id)
        if relocating and await self._find_record(updated.url, updated.client_id) is not None:
            raise DuplicateUrlClientIdError(updated.url, updated.client_id)

        async with Saga(f"update platform {kid}") as saga:
            if relocating:
                saga.on_rollback(
                    "relocate keypair back",
                    lambda: self._credentials.relocate(kid, current.url, current.client_id),
                )
                await self._credentials.relocate(kid, updated.url, updated.client_id)

            await self._write(updated, {"kid": kid})

        if relocating:
            logger.info(
                "Relocated platform %s from %s (client %s) to %s (client %s)",
                kid, current.url, current.client_id, updated.url, updated.client_id,
            )
        else:
            logger.info("Updated platform %s", kid)
        return updated

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    async def delete(self, url: str, client_id: str) -> bool:
        """Delete the platform registered as ``(url, client_id)``.

        Returns:
            True if a platform was deleted, False if none was registered.

        Raises:
            MissingArgumentError: If *url* or *client_id* is absent.
            StorageError: If any record could not be removed.
        """
        if not url:
            raise MissingArgumentError("MISSING_PARAM", "url")
        if not client_id:
            raise MissingArgumentError("MISSING_PARAM", "client_id")
        platform = await self.get_by_url(url, client_id)
        if platform is None:
            return False
        await self._remove(platform)
        return True

    async def delete_by_id(self, kid: str) -> bool:
        """Delete the platform with this ``kid``. See :meth:`delete`."""
        if not kid:
            raise MissingArgumentError("MISSING_PLATFORM_ID", "kid")
        platform = await self.get_by_id(kid)
        if platform is None:
            return False
        await self._remove(platform)
        return True

    async def _remove(self, platform: PlatformIdentity) -> None:
        """Remove identity, status flag and keypair.

        Every step is attempted even if an earlier one fails; failures are
        reported together and not retried.
        """
        kid = platform.kid
        steps = (
            ("platform record", lambda: self._delete_records({"kid": kid})),
            ("status flag", lambda: self._status.clear(kid)),
            ("keypair", lambda: self._credentials.revoke(kid)),
        )
        failures: list[tuple[str, PlatformTrustError]] = []
        for description, step in steps:
            try:
                await step()
            except PlatformTrustError as exc:
                logger.error("Failed to delete %s of platform %s: %s", description, kid, exc)
                failures.append((description, exc))

        if failures:
            incomplete = ", ".join(description for description, _ in failures)
            first = failures[0][1]
            raise StorageError(
                f"Deletion of platform {kid} incomplete: {incomplete}", cause=first
            ) from first
        logger.info("Deleted platform %s (%s, client %s)", kid, platform.url, platform.client_id)

    # ------------------------------------------------------------------
    # Status and keys
    # ------------------------------------------------------------------

    async def set_active(self, kid: str, active: bool) -> bool:
        """Mark a platform active or inactive. Returns the stored flag."""
        if not kid:
            raise MissingArgumentError("MISSING_PLATFORM_ID", "kid")
        return await self._status.set_active(kid, active)

    async def is_active(self, kid: str) -> bool:
        """Return whether the platform is active; platforms default to active."""
        if not kid:
            raise MissingArgumentError("MISSING_PLATFORM_ID", "kid")
        return await self._status.is_active(kid)

    async def get_public_key(self, kid: str) -> Optional[str]:
        """PEM public key of the local keypair bound to the platform."""
        return await self._credentials.get_public_key(kid)

    async def get_private_key(self, kid: str) -> Optional[str]:
        """PEM private key of the local keypair bound to the platform."""
        return await self._credentials.get_private_key(kid)

    async def to_json(self, platform: PlatformIdentity) -> dict[str, Any]:
        """Full JSON projection of a platform, including public key and status."""
        return {
            "id": platform.kid,
            "url": platform.url,
            "clientId": platform.client_id,
            "name": platform.name,
            "authenticationEndpoint": platform.authentication_endpoint,
            "accesstokenEndpoint": platform.access_token_endpoint,
            "authConfig": platform.auth_config.to_dict(),
            "publicKey": await self.get_public_key(platform.kid),
            "active": await self.is_active(platform.kid),
        }

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _query(self, filter: Filter) -> list[Record]:
        with collaborator_errors(StorageError, "Reading platforms"):
            result = await self._store.get(self._collection, filter)
        return result or []

    async def _find_record(self, url: str, client_id: str) -> Optional[Record]:
        records = await self._query({"platformUrl": url, "clientId": client_id})
        return records[0] if records else None

    async def _write(self, platform: PlatformIdentity, filter: Filter, upsert: bool = False) -> None:
        try:
            with collaborator_errors(StorageError, "Persisting platform"):
                written = await self._store.replace(
                    self._collection, filter, platform.to_record(), upsert=upsert
                )
        except DuplicateRecordError as exc:
            raise DuplicateUrlClientIdError(platform.url, platform.client_id) from exc
        if not written:
            # Deleted between lookup and write.
            raise PlatformNotFoundError(platform.kid)

    async def _delete_records(self, filter: Filter) -> None:
        with collaborator_errors(StorageError, "Deleting platform"):
            await self._store.delete(self._collection, filter)
