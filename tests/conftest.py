"""Shared fixtures for platform-trust tests."""

import asyncio
import itertools

import pytest

from platformtrust.identity.keystore import KeyPair, KeyPairGenerator
from platformtrust.registry import PlatformRegistry
from platformtrust.storage import MemoryDocumentStore


class FakeKeyPairGenerator(KeyPairGenerator):
    """Deterministic generator: kid-1, kid-2, ... with placeholder key material."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.generated: list[KeyPair] = []

    async def generate(self) -> KeyPair:
        # Yield once so concurrent registrations can interleave.
        await asyncio.sleep(0)
        n = next(self._ids)
        pair = KeyPair(kid=f"kid-{n}", public_key=f"PUBLIC-{n}", private_key=f"PRIVATE-{n}")
        self.generated.append(pair)
        return pair


@pytest.fixture
async def store():
    """Create and connect an in-memory document store."""
    store = MemoryDocumentStore()
    await store.connect()
    yield store
    await store.disconnect()


@pytest.fixture
def generator():
    return FakeKeyPairGenerator()


@pytest.fixture
async def registry(store, generator):
    registry = PlatformRegistry(store, generator=generator)
    await registry.setup()
    return registry


@pytest.fixture
def platform_args():
    """Keyword arguments for a complete registration."""
    return {
        "url": "https://lms.example.com",
        "client_id": "tool-client-1",
        "name": "Example LMS",
        "authentication_endpoint": "https://lms.example.com/auth",
        "access_token_endpoint": "https://lms.example.com/token",
        "auth_config": {"method": "JWK_SET", "key": "https://lms.example.com/jwks"},
    }
