"""
LAN Discovery - Find Servers on the Local Network

Servers advertise themselves on a well-known UDP port; clients broadcast
requests and collect the answers. Every datagram starts with an 8-byte
application handshake so different applications (or incompatible versions)
sharing a network ignore each other.
"""

from .config import Config, load_config
from .discovery import (
    DEFAULT_DISCOVERY_INTERVAL,
    DEFAULT_DISCOVERY_PORT,
    Advertiser,
    NullPermissionGuard,
    PermissionGuard,
    Prober,
    ServerRequest,
    ServerResponse,
)
from .errors import (
    BindError,
    DiscoveryError,
    EncodingError,
    InvalidHandshake,
    MalformedEnvelope,
    PlatformUnsupported,
    SendFailure,
    SocketDisposed,
)
from .lan import LanDiscovery
from .wire import AppIdentity, JsonCodec, ModelCodec, derive_handshake

__version__ = '0.1.0'

__all__ = [
    'Config',
    'load_config',
    'DEFAULT_DISCOVERY_INTERVAL',
    'DEFAULT_DISCOVERY_PORT',
    'Advertiser',
    'Prober',
    'LanDiscovery',
    'NullPermissionGuard',
    'PermissionGuard',
    'ServerRequest',
    'ServerResponse',
    'AppIdentity',
    'JsonCodec',
    'ModelCodec',
    'derive_handshake',
    'BindError',
    'DiscoveryError',
    'EncodingError',
    'InvalidHandshake',
    'MalformedEnvelope',
    'PlatformUnsupported',
    'SendFailure',
    'SocketDisposed',
]
