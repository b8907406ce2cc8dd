"""
Discovery Module - Advertiser and Prober

Server and client roles of the handshake-filtered UDP discovery protocol,
plus the session lifecycle they share.
"""

from .advertiser import DEFAULT_DISCOVERY_PORT, Advertiser
from .lifecycle import (
    DiscoverySession,
    NullPermissionGuard,
    PermissionGuard,
    is_platform_supported,
)
from .messages import ServerRequest, ServerResponse
from .prober import DEFAULT_DISCOVERY_INTERVAL, Prober

__all__ = [
    'DEFAULT_DISCOVERY_PORT',
    'DEFAULT_DISCOVERY_INTERVAL',
    'Advertiser',
    'Prober',
    'DiscoverySession',
    'NullPermissionGuard',
    'PermissionGuard',
    'is_platform_supported',
    'ServerRequest',
    'ServerResponse',
]
