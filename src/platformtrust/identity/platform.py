"""
Platform Identity

The trust record for a registered platform, plus the patch shape used to
update it. Identities are immutable; changes go through the registry.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from platformtrust.identity.auth_config import AuthConfig


class PlatformIdentity(BaseModel):
    """A registered platform.

    Attributes:
        kid: Key identifier of the local keypair bound to this platform.
            Generated once at registration and never changed.
        name: Display label.
        url: Platform base URL (the issuer).
        client_id: Client identifier issued by the platform.
        authentication_endpoint: OIDC login endpoint on the platform.
        access_token_endpoint: Token endpoint on the platform.
        auth_config: How messages from the platform are verified.
    """

    model_config = ConfigDict(frozen=True)

    kid: str = Field(..., min_length=1)
    name: str
    url: str
    client_id: str
    authentication_endpoint: str
    access_token_endpoint: str
    auth_config: AuthConfig

    @property
    def id(self) -> str:
        """Alias for :attr:`kid`; the platform id is its key id."""
        return self.kid

    def to_record(self) -> dict[str, Any]:
        """Serialize to the stored document shape."""
        return {
            "kid": self.kid,
            "platformName": self.name,
            "platformUrl": self.url,
            "clientId": self.client_id,
            "authEndpoint": self.authentication_endpoint,
            "accesstokenEndpoint": self.access_token_endpoint,
            "authConfig": self.auth_config.to_dict(),
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "PlatformIdentity":
        return cls(
            kid=record["kid"],
            name=record["platformName"],
            url=record["platformUrl"],
            client_id=record["clientId"],
            authentication_endpoint=record["authEndpoint"],
            access_token_endpoint=record["accesstokenEndpoint"],
            auth_config=AuthConfig.model_validate(record["authConfig"]),
        )


class PlatformPatch(BaseModel):
    """Fields to change on a platform. ``None`` means keep the current value.

    ``auth_config`` may carry only ``method`` or only ``key``; the missing
    half is taken from the stored configuration.
    """

    model_config = ConfigDict(extra="forbid")

    url: Optional[str] = None
    client_id: Optional[str] = None
    name: Optional[str] = None
    authentication_endpoint: Optional[str] = None
    access_token_endpoint: Optional[str] = None
    auth_config: Optional[Union[AuthConfig, dict[str, Any]]] = None

    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)
