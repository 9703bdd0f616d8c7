"""
Platform-Trust - Platform Credential & Token Lifecycle Manager

Registers external platforms (OIDC/OAuth-style identity providers) with
the tool, issues the local keypair bound to each platform, and caches the
access tokens the tool obtains from them.

Version: 0.1.0
"""

__version__ = "0.1.0"

from .config import CollectionNames, PlatformTrustConfig

from .identity import (
    AuthConfig,
    AuthMethod,
    CredentialStore,
    KeyPair,
    KeyPairGenerator,
    PlatformIdentity,
    PlatformPatch,
    RSAKeyPairGenerator,
    StatusFlagStore,
    validate_auth_config,
)

from .registry import PlatformRegistry
from .saga import Saga
from .storage import AbstractDocumentStore, MemoryDocumentStore, StorageConfig
from .tokens import AccessToken, TokenCache, TokenIssuer

# Exceptions
from .exceptions import (
    PlatformTrustError,
    InvalidArgumentError,
    MissingArgumentError,
    InvalidAuthConfigError,
    InvalidAuthMethodError,
    MissingAuthKeyError,
    DuplicateUrlClientIdError,
    PlatformNotFoundError,
    CollaboratorError,
    StorageError,
    DuplicateRecordError,
    KeyGenerationError,
    TokenIssuanceError,
)

__all__ = [
    "__version__",
    "CollectionNames",
    "PlatformTrustConfig",
    "AuthConfig",
    "AuthMethod",
    "CredentialStore",
    "KeyPair",
    "KeyPairGenerator",
    "PlatformIdentity",
    "PlatformPatch",
    "RSAKeyPairGenerator",
    "StatusFlagStore",
    "validate_auth_config",
    "PlatformRegistry",
    "Saga",
    "AbstractDocumentStore",
    "MemoryDocumentStore",
    "StorageConfig",
    "AccessToken",
    "TokenCache",
    "TokenIssuer",
    "PlatformTrustError",
    "InvalidArgumentError",
    "MissingArgumentError",
    "InvalidAuthConfigError",
    "InvalidAuthMethodError",
    "MissingAuthKeyError",
    "DuplicateUrlClientIdError",
    "PlatformNotFoundError",
    "CollaboratorError",
    "StorageError",
    "DuplicateRecordError",
    "KeyGenerationError",
    "TokenIssuanceError",
]
