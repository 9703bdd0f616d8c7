# Copyright (c) Platform-Trust Contributors. All rights reserved.
# Licensed under the MIT License.
"""Centralized exception hierarchy for platform-trust.

All exceptions inherit from PlatformTrustError and carry two stable,
machine-readable attributes so outer layers can map failures to protocol
responses without matching on message text:

- ``kind``: the broad failure category (``MISSING_ARGUMENT``,
  ``INVALID_ARGUMENT``, ``INVALID_AUTH_CONFIG``, ``DUPLICATE_URL_CLIENT_ID``, ``NOT_FOUND``,
  ``COLLABORATOR_FAILURE``).
- ``code``: a finer-grained reason within that category.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional


class PlatformTrustError(Exception):
    """Base exception for all platform-trust errors."""

    kind = "PLATFORM_TRUST_ERROR"
    code = "PLATFORM_TRUST_ERROR"

    def __init__(self, message: str = "", code: Optional[str] = None) -> None:
        if code is not None:
            self.code = code
        super().__init__(message or self.code)
        self.compensation_failures: list[Exception] = []


class MissingArgumentError(PlatformTrustError):
    """A required input was absent."""

    kind = "MISSING_ARGUMENT"
    code = "MISSING_ARGUMENT"

    def __init__(self, code: str, argument: str) -> None:
        super().__init__(f"{code}: missing required argument '{argument}'", code=code)
        self.argument = argument


class InvalidArgumentError(PlatformTrustError, ValueError):
    """An input was present but malformed (wrong type, unknown field)."""

    kind = "INVALID_ARGUMENT"
    code = "INVALID_ARGUMENT"


class InvalidAuthConfigError(PlatformTrustError):
    """Authentication configuration is malformed."""

    kind = "INVALID_AUTH_CONFIG"
    code = "INVALID_AUTH_CONFIG"


class InvalidAuthMethodError(InvalidAuthConfigError):
    """Auth method is not one of the supported values."""

    code = "INVALID_AUTHCONFIG_METHOD"


class MissingAuthKeyError(InvalidAuthConfigError):
    """An auth method was given without key material."""

    code = "MISSING_AUTHCONFIG_KEY"


class DuplicateUrlClientIdError(PlatformTrustError):
    """Another platform is already registered with this (url, client_id)."""

    kind = "DUPLICATE_URL_CLIENT_ID"
    code = "URL_CLIENT_ID_COMBINATION_ALREADY_EXISTS"

    def __init__(self, url: str, client_id: str) -> None:
        super().__init__(
            f"{self.code}: platform {url} with client id {client_id} is already registered"
        )
        self.url = url
        self.client_id = client_id


class PlatformNotFoundError(PlatformTrustError):
    """The operation targets a platform that does not exist."""

    kind = "NOT_FOUND"
    code = "PLATFORM_NOT_FOUND"

    def __init__(self, kid: str) -> None:
        super().__init__(f"{self.code}: no platform with kid {kid}")
        self.kid = kid


class CollaboratorError(PlatformTrustError):
    """An external collaborator (storage, key generator, token issuer) failed."""

    kind = "COLLABORATOR_FAILURE"
    code = "COLLABORATOR_FAILURE"

    def __init__(self, message: str = "", cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class StorageError(CollaboratorError):
    """Errors related to storage backend operations."""

    code = "STORAGE_FAILURE"


class DuplicateRecordError(StorageError):
    """A write would violate a unique index declared on a collection."""

    code = "DUPLICATE_RECORD"

    def __init__(self, collection: str, fields: tuple[str, ...]) -> None:
        super().__init__(
            f"{self.code}: unique index {collection}({', '.join(fields)}) violated"
        )
        self.collection = collection
        self.fields = fields


class KeyGenerationError(CollaboratorError):
    """The keypair generator failed."""

    code = "KEY_GENERATION_FAILURE"


class TokenIssuanceError(CollaboratorError):
    """The access token issuer failed or returned an unusable token."""

    code = "TOKEN_ISSUANCE_FAILURE"


@contextmanager
def collaborator_errors(error_cls: type[CollaboratorError], action: str) -> Iterator[None]:
    """Translate foreign exceptions raised inside the block into *error_cls*.

    Exceptions that are already part of this hierarchy pass through untouched.
    """
    try:
        yield
    except PlatformTrustError:
        raise
    except Exception as exc:
        raise error_cls(f"{action} failed: {exc}", cause=exc) from exc


__all__ = [
    "PlatformTrustError",
    "MissingArgumentError",
    "InvalidArgumentError",
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
    "collaborator_errors",
]
