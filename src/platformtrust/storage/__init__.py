"""
Storage providers for platform-trust.

Provides the abstract document store interface and an in-memory implementation.
"""

from .provider import AbstractDocumentStore, StorageConfig
from .memory_provider import MemoryDocumentStore

__all__ = [
    "AbstractDocumentStore",
    "StorageConfig",
    "MemoryDocumentStore",
]
