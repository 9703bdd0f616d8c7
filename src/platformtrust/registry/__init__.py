"""
Platform Registry

Registers platforms together with their keypairs and keeps identity, keys
and status consistent across single-record writes.
"""

from .platform_registry import PlatformRegistry

__all__ = ["PlatformRegistry"]
