"""
Configuration for platform-trust.

Collection names, key generation parameters and optional private key
encryption, validated with pydantic.
"""

from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field, SecretStr


class CollectionNames(BaseModel):
    """Names of the persistence collections used by the registry."""

    platform: str = Field(default="platform", description="Platform identity records")
    public_key: str = Field(default="publickey", description="Public key halves")
    private_key: str = Field(default="privatekey", description="Private key halves")
    platform_status: str = Field(default="platformStatus", description="Active flags")
    access_token: str = Field(default="accesstoken", description="Cached access tokens")


class PlatformTrustConfig(BaseModel):
    """Top-level configuration."""

    collections: CollectionNames = Field(default_factory=CollectionNames)

    # Key generation
    rsa_key_size: int = Field(default=4096, ge=2048, le=16384)
    rsa_public_exponent: int = Field(default=65537)
    kid_bytes: int = Field(default=16, ge=8, le=64, description="Random bytes per kid")
    private_key_passphrase: Optional[SecretStr] = Field(
        default=None, description="Encrypt private keys at rest when set"
    )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PlatformTrustConfig":
        """Build a config from a plain mapping, e.g. a parsed settings file."""
        return cls.model_validate(dict(data))
