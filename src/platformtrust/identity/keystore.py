"""
Platform Key Store

Generates the local RSA keypair bound to a registered platform and persists
its public and private halves as two records sharing the same ``kid``.
All key operations are logged for audit; key material never is.
"""

from __future__ import annotations

import abc
import asyncio
import logging
import secrets
from typing import Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from pydantic import BaseModel, ConfigDict, Field

from platformtrust.config import PlatformTrustConfig
from platformtrust.exceptions import KeyGenerationError, StorageError, collaborator_errors
from platformtrust.saga import Saga
from platformtrust.storage.provider import AbstractDocumentStore

logger = logging.getLogger(__name__)


class KeyPair(BaseModel):
    """PEM-encoded asymmetric keypair identified by ``kid``."""

    model_config = ConfigDict(frozen=True)

    kid: str = Field(..., min_length=1)
    public_key: str
    private_key: str = Field(..., repr=False)


class KeyPairGenerator(abc.ABC):
    """Source of fresh keypairs.

    The ``kid`` on the returned pair is authoritative: it becomes the id of
    the platform the pair is issued for.
    """

    @abc.abstractmethod
    async def generate(self) -> KeyPair:
        """Generate a new keypair with a fresh, unique ``kid``."""


class RSAKeyPairGenerator(KeyPairGenerator):
    """RSA keypair generator (default backend).

    Keys are generated with the ``cryptography`` library in a worker thread
    so the event loop is not blocked. The public half is SubjectPublicKeyInfo
    PEM; the private half is PKCS#8 PEM, encrypted when a passphrase is
    configured.

    Example:
        >>> generator = RSAKeyPairGenerator(PlatformTrustConfig(rsa_key_size=2048))
        >>> pair = await generator.generate()  # doctest: +SKIP
        >>> pair.public_key.startswith("-----BEGIN PUBLIC KEY-----")  # doctest: +SKIP
        True
    """

    def __init__(self, config: Optional[PlatformTrustConfig] = None) -> None:
        self._config = config or PlatformTrustConfig()

    async def generate(self) -> KeyPair:
        return await asyncio.to_thread(self._generate_sync)

    def _generate_sync(self) -> KeyPair:
        private_key = rsa.generate_private_key(
            public_exponent=self._config.rsa_public_exponent,
            key_size=self._config.rsa_key_size,
        )

        passphrase = self._config.private_key_passphrase
        if passphrase is not None:
            encryption: serialization.KeySerializationEncryption = (
                serialization.BestAvailableEncryption(passphrase.get_secret_value().encode())
            )
        else:
            encryption = serialization.NoEncryption()

        private_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=encryption,
        )
        public_pem = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        return KeyPair(
            kid=secrets.token_hex(self._config.kid_bytes),
            public_key=public_pem.decode(),
            private_key=private_pem.decode(),
        )


class CredentialStore:
    """Persists platform keypairs in the document store.

    Each half is stored in its own collection, tagged with the ``kid`` and
    the ``(platformUrl, clientId)`` of the owning platform.

    Args:
        store: Document store holding the key collections.
        generator: Keypair source. Defaults to :class:`RSAKeyPairGenerator`.
        config: Collection names and key parameters.
    """

    def __init__(
        self,
        store: AbstractDocumentStore,
        generator: Optional[KeyPairGenerator] = None,
        config: Optional[PlatformTrustConfig] = None,
    ) -> None:
        self._config = config or PlatformTrustConfig()
        self._store = store
        self._generator = generator or RSAKeyPairGenerator(self._config)
        self._public = self._config.collections.public_key
        self._private = self._config.collections.private_key

    async def issue(self, url: str, client_id: str) -> KeyPair:
        """Generate a keypair and persist both halves.

        If the second half cannot be written, the first is removed again
        before the error propagates.

        Args:
            url: Platform URL the pair is issued for.
            client_id: Platform client id the pair is issued for.

        Returns:
            The generated KeyPair.

        Raises:
            KeyGenerationError: If the generator fails.
            StorageError: If either half cannot be persisted.
        """
        with collaborator_errors(KeyGenerationError, "Keypair generation"):
            keypair = await self._generator.generate()

        tags = {"kid": keypair.kid, "platformUrl": url, "clientId": client_id}
        async with Saga(f"issue keypair {keypair.kid}") as saga:
            saga.on_rollback("delete public key", lambda: self._delete(self._public, keypair.kid))
            with collaborator_errors(StorageError, "Persisting public key"):
                await self._store.replace(
                    self._public, {"kid": keypair.kid}, {**tags, "key": keypair.public_key}, upsert=True
                )
            saga.on_rollback("delete private key", lambda: self._delete(self._private, keypair.kid))
            with collaborator_errors(StorageError, "Persisting private key"):
                await self._store.replace(
                    self._private, {"kid": keypair.kid}, {**tags, "key": keypair.private_key}, upsert=True
                )

        logger.info("Issued keypair %s for platform %s (client %s)", keypair.kid, url, client_id)
        return keypair

    async def relocate(self, kid: str, url: str, client_id: str) -> None:
        """Re-tag both key records with a new ``(url, client_id)``.

        Key material is not regenerated.

        Raises:
            StorageError: If either record cannot be updated.
        """
        patch = {"platformUrl": url, "clientId": client_id}
        with collaborator_errors(StorageError, "Relocating public key"):
            await self._store.modify(self._public, {"kid": kid}, patch)
        with collaborator_errors(StorageError, "Relocating private key"):
            await self._store.modify(self._private, {"kid": kid}, patch)
        logger.info("Relocated keypair %s to platform %s (client %s)", kid, url, client_id)

    async def revoke(self, kid: str) -> None:
        """Delete both key records for ``kid``. Idempotent.

        Both deletes are attempted even if the first fails; the first failure
        is raised afterwards.
        """
        failures: list[StorageError] = []
        for collection in (self._public, self._private):
            try:
                await self._delete(collection, kid)
            except StorageError as exc:
                logger.error("Could not delete %s record for %s: %s", collection, kid, exc)
                failures.append(exc)
        if failures:
            raise failures[0]
        logger.info("Revoked keypair %s", kid)

    async def get_public_key(self, kid: str) -> Optional[str]:
        """Return the PEM public key for ``kid``, or None if absent."""
        return await self._get_key(self._public, kid)

    async def get_private_key(self, kid: str) -> Optional[str]:
        """Return the PEM private key for ``kid``, or None if absent."""
        return await self._get_key(self._private, kid)

    async def _get_key(self, collection: str, kid: str) -> Optional[str]:
        with collaborator_errors(StorageError, f"Reading {collection}"):
            result = await self._store.get(collection, {"kid": kid})
        if not result:
            return None
        return result[0]["key"]

    async def _delete(self, collection: str, kid: str) -> None:
        with collaborator_errors(StorageError, f"Deleting {collection}"):
            await self._store.delete(collection, {"kid": kid})
