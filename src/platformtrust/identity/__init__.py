"""
Platform identity, keys and status.

- Authentication configuration validation
- Immutable platform trust records
- RSA keypairs bound to a platform ``kid``
- Active/inactive flags
"""

from .auth_config import AuthConfig, AuthMethod, validate_auth_config, coerce_auth_config
from .platform import PlatformIdentity, PlatformPatch
from .keystore import KeyPair, KeyPairGenerator, RSAKeyPairGenerator, CredentialStore
from .status import StatusFlagStore, DEFAULT_ACTIVE

__all__ = [
    "AuthConfig",
    "AuthMethod",
    "validate_auth_config",
    "coerce_auth_config",
    "PlatformIdentity",
    "PlatformPatch",
    "KeyPair",
    "KeyPairGenerator",
    "RSAKeyPairGenerator",
    "CredentialStore",
    "StatusFlagStore",
    "DEFAULT_ACTIVE",
]
