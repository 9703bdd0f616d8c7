"""
Platform access tokens.

Caches tokens per platform and scope string, regenerating them through a
token issuer when missing or expired.
"""

from .cache import AccessToken, TokenCache, TokenIssuer, is_fresh

__all__ = [
    "AccessToken",
    "TokenCache",
    "TokenIssuer",
    "is_fresh",
]
