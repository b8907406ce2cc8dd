"""
LAN Discovery - Ready-to-use Component

Ties the Advertiser and the Prober to concrete message types:
- Servers answer every request with their server id and URIs
- Clients collect answers into a registry keyed by server id

A server reachable through several network interfaces answers once per
interface. Every answer is passed to the on_server_found callbacks; the
registry keeps the latest one per server id.
"""

import asyncio
import logging
import secrets
from typing import Callable, Dict, List, Optional, Sequence
from urllib.parse import urlsplit, urlunsplit

from .config import Config
from .discovery import (
    Advertiser,
    PermissionGuard,
    Prober,
    ServerRequest,
    ServerResponse,
)
from .transport import Address, get_local_ip
from .wire import ModelCodec

logger = logging.getLogger(__name__)

# Callback type for server discovery events
ServerCallback = Callable[[ServerResponse], None]


def random_server_id() -> int:
    """Random signed 64-bit server id."""
    return secrets.randbits(64) - (1 << 63)


def rewrite_uri_host(uri: str, host: str) -> str:
    """
    Replace the host part of a URI with the given host.

    'udp://0.0.0.0:7777' -> 'udp://192.168.1.20:7777'
    A bare host (no scheme) is replaced entirely; a bare host:port keeps
    its port.
    """
    parts = urlsplit(uri)
    if not parts.netloc:
        _, sep, port = uri.rpartition(':')
        if sep and port.isdigit():
            return f"{host}:{port}"
        return host

    netloc = host if parts.port is None else f"{host}:{parts.port}"
    if parts.username:
        netloc = f"{parts.username}@{netloc}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


class LanDiscovery:
    """
    LAN server discovery with ServerRequest/ServerResponse messages.

    One instance can advertise and probe at the same time; the two roles use
    separate sockets.
    """

    def __init__(self, config: Optional[Config] = None,
                 uris: Optional[Sequence[str]] = None,
                 guard: Optional[PermissionGuard] = None,
                 server_id: Optional[int] = None):
        """
        Initialize LAN discovery.

        Args:
            config: Discovery configuration (defaults if not provided)
            uris: Endpoints to advertise (overrides config.uris)
            guard: Permission guard held while advertising
            server_id: Our server id (random if not provided)
        """
        self.config = config or Config()
        self.handshake = self.config.resolve_handshake()
        self.server_id = server_id if server_id is not None else random_server_id()
        self._uris = list(uris) if uris is not None else list(self.config.uris)

        self.advertiser = Advertiser(
            request_codec=ModelCodec(ServerRequest),
            response_codec=ModelCodec(ServerResponse),
            guard=guard,
        )
        self.prober = Prober(
            request_codec=ModelCodec(ServerRequest),
            response_codec=ModelCodec(ServerResponse),
        )

        self._servers: Dict[int, ServerResponse] = {}
        self._callbacks: List[ServerCallback] = []

    @property
    def uris(self) -> List[str]:
        """URIs we advertise; this host's LAN address if none configured."""
        if self._uris:
            return list(self._uris)
        return [get_local_ip()]

    def on_server_found(self, callback: ServerCallback):
        """Register a callback for every server response."""
        self._callbacks.append(callback)

    def get_servers(self) -> List[ServerResponse]:
        """Get discovered servers, one entry per server id."""
        return list(self._servers.values())

    def clear_servers(self):
        """Forget all discovered servers."""
        self._servers.clear()

    # === Server side ===

    async def start_advertising(self):
        """Start answering discovery requests on the configured port."""
        await self.advertiser.start_advertising(
            port=self.config.port,
            handshake=self.handshake,
            responder=self._process_request,
            host=self.config.host,
        )
        logger.info(f"Advertising server {self.server_id} with {self.uris}")

    async def stop_advertising(self):
        await self.advertiser.stop_advertising()

    def _process_request(self, request: ServerRequest, endpoint: Address) -> ServerResponse:
        """Answer a client. The request carries nothing we filter on."""
        return ServerResponse(server_id=self.server_id, uri=self.uris)

    # === Client side ===

    async def start_discovery(self):
        """Start broadcasting discovery requests."""
        await self.prober.start_discovery(
            port=self.config.port,
            handshake=self.handshake,
            request_factory=ServerRequest,
            on_found=self._process_response,
            interval=self.config.discovery_interval,
            broadcast_address=self.config.broadcast_address,
        )

    async def stop_discovery(self):
        await self.prober.stop_discovery()

    async def discover(self, timeout: float = 3.0) -> List[ServerResponse]:
        """
        Probe for a while and return what was found.

        Discovery keeps running afterwards if it was already running.

        Args:
            timeout: How long to listen for answers

        Returns:
            Discovered servers, one per server id
        """
        was_running = self.prober.is_discovering
        if not was_running:
            await self.start_discovery()

        logger.info(f"Discovering servers for {timeout}s...")
        try:
            await asyncio.sleep(timeout)
        finally:
            if not was_running:
                await self.stop_discovery()

        servers = self.get_servers()
        logger.info(f"Discovered {len(servers)} servers")
        return servers

    def _process_response(self, response: ServerResponse, endpoint: Address):
        """Record a server answer and notify callbacks."""
        response.endpoint = endpoint

        # The advertised host may not resolve from here, but the datagram
        # source is known to be reachable.
        host = endpoint[0]
        response.uri = [rewrite_uri_host(u, host) for u in response.uri] or [host]
        logger.debug(f"Received response from {host}: server {response.server_id}")

        is_new = response.server_id not in self._servers
        self._servers[response.server_id] = response

        if is_new:
            logger.info(f"Discovered server {response.server_id} at {response.uri[0]}")

        for callback in self._callbacks:
            try:
                callback(response)
            except Exception as e:
                logger.error(f"Callback error: {e}")

    # === Lifecycle ===

    async def shutdown(self):
        """Stop both roles."""
        await self.prober.stop_discovery()
        await self.advertiser.stop_advertising()

    async def __aenter__(self) -> 'LanDiscovery':
        return self

    async def __aexit__(self, *exc_info):
        await self.shutdown()

    def get_stats(self) -> dict:
        """Get discovery statistics."""
        return {
            'server_id': self.server_id,
            'handshake': self.handshake,
            'servers': len(self._servers),
            'advertiser': self.advertiser.get_stats(),
            'prober': self.prober.get_stats(),
        }
