"""
Platform Authentication Configuration

Declares how messages coming from a platform are verified: with a raw RSA
public key, a single JWK, or the URL of a JWK set.
"""

from __future__ import annotations

import enum
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict

from platformtrust.exceptions import InvalidAuthMethodError, MissingAuthKeyError

AuthKey = Union[str, dict[str, Any]]


class AuthMethod(str, enum.Enum):
    """Supported verification methods."""

    RSA_KEY = "RSA_KEY"
    JWK_KEY = "JWK_KEY"
    JWK_SET = "JWK_SET"


VALID_METHODS = ", ".join(f'"{m.value}"' for m in AuthMethod)


class AuthConfig(BaseModel):
    """Authentication method and key for verifying messages from a platform.

    Attributes:
        method: One of ``RSA_KEY``, ``JWK_KEY`` or ``JWK_SET``.
        key: The platform's RSA public key, its JWK, or its JWK set URL.
    """

    model_config = ConfigDict(frozen=True)

    method: AuthMethod
    key: AuthKey

    def to_dict(self) -> dict[str, Any]:
        return {"method": self.method.value, "key": self.key}


def _parse_method(method: Any) -> AuthMethod:
    # Matching is exact: "rsa_key" is not "RSA_KEY".
    if isinstance(method, AuthMethod):
        return method
    try:
        return AuthMethod(method)
    except ValueError:
        raise InvalidAuthMethodError(
            f"INVALID_AUTHCONFIG_METHOD: {method!r}. Valid methods are {VALID_METHODS}."
        ) from None


def validate_auth_config(
    method: Optional[Any] = None,
    key: Optional[AuthKey] = None,
    existing: Optional[AuthConfig] = None,
) -> AuthConfig:
    """Validate and normalize an auth method/key pair.

    Either value may be omitted when *existing* is given, in which case the
    previous value is kept. Pure function, no side effects.

    Args:
        method: Method name, or ``None`` to keep the existing one.
        key: Key material, or ``None`` to keep the existing one.
        existing: The currently stored configuration, if any.

    Returns:
        The merged and validated AuthConfig.

    Raises:
        InvalidAuthMethodError: If the method is not one of the supported values.
        MissingAuthKeyError: If the resulting config has no key material.
    """
    if method is None or method == "":
        if existing is None:
            raise InvalidAuthMethodError(
                f"INVALID_AUTHCONFIG_METHOD: method is required. Valid methods are {VALID_METHODS}."
            )
        resolved_method = existing.method
    else:
        resolved_method = _parse_method(method)

    resolved_key = key if key else (existing.key if existing is not None else None)
    if not resolved_key:
        raise MissingAuthKeyError(f"MISSING_AUTHCONFIG_KEY for method {resolved_method.value}")

    return AuthConfig(method=resolved_method, key=resolved_key)


def coerce_auth_config(
    value: Union[AuthConfig, Mapping[str, Any], None],
    existing: Optional[AuthConfig] = None,
) -> Optional[AuthConfig]:
    """Validate an auth config given as a model or a ``{method, key}`` mapping.

    Returns ``existing`` unchanged when *value* is None.
    """
    if value is None:
        return existing
    if isinstance(value, AuthConfig):
        return validate_auth_config(value.method, value.key, existing)
    return validate_auth_config(value.get("method"), value.get("key"), existing)
