"""
Discovery Prober (client role)

Broadcasts discovery requests on a timer and reports every valid response.

State machine:
    Idle --start_discovery()--> Probing --stop_discovery()--> Idle

Two tasks run per session:
- the receive loop, which decodes responses and calls on_found
- the broadcast timer, which fires immediately and then every interval

The prober does not de-duplicate: a server with several network interfaces
answers once per interface, and each answer is reported.
"""

import asyncio
import inspect
import logging
import math
from typing import Awaitable, Callable, Dict, Generic, Optional, TypeVar, Union

from ..errors import EncodingError, MalformedEnvelope, SocketDisposed
from ..transport import BROADCAST_ADDRESS, Address
from ..wire import PayloadCodec, decode_envelope, encode_envelope, peek_handshake, validate_handshake
from .advertiser import DROP_HANDSHAKE, DROP_MALFORMED, DropHook
from .lifecycle import (
    DiscoverySession,
    NullPermissionGuard,
    PermissionGuard,
    ensure_platform_supported,
    is_platform_supported,
    open_session,
)

logger = logging.getLogger(__name__)

# Seconds between discovery broadcasts
DEFAULT_DISCOVERY_INTERVAL = 3.0

TRequest = TypeVar("TRequest")
TResponse = TypeVar("TResponse")

RequestFactory = Callable[[], TRequest]

# on_found(response, server_address), may be async
FoundCallback = Callable[[TResponse, Address], Union[None, Awaitable[None]]]


class Prober(Generic[TRequest, TResponse]):
    """
    Client side of LAN discovery.
    """

    # Allowed broadcast interval range (seconds)
    MIN_INTERVAL = 1.0
    MAX_INTERVAL = 60.0

    def __init__(
        self,
        request_codec: PayloadCodec,
        response_codec: PayloadCodec,
        guard: Optional[PermissionGuard] = None,
        platform_check: Callable[[], bool] = is_platform_supported,
        on_drop: Optional[DropHook] = None,
    ):
        """
        Initialize the prober.

        Args:
            request_codec: Encodes our requests
            response_codec: Decodes server responses
            guard: Permission guard held while probing
            platform_check: Returns False where discovery cannot run
            on_drop: Optional diagnostic hook for dropped datagrams
        """
        self.request_codec = request_codec
        self.response_codec = response_codec
        self.guard = guard or NullPermissionGuard()
        self.platform_check = platform_check
        self.on_drop = on_drop

        self._session: Optional[DiscoverySession] = None
        self._handshake: Optional[int] = None
        self._request_factory: Optional[RequestFactory] = None
        self._on_found: Optional[FoundCallback] = None
        self._target: Optional[Address] = None

        self._stats: Dict[str, int] = {
            'broadcasts': 0,
            'broadcast_failures': 0,
            'responses': 0,
            'dropped_handshake': 0,
            'dropped_malformed': 0,
            'callback_errors': 0,
        }

    @property
    def is_discovering(self) -> bool:
        return self._session is not None

    @property
    def local_address(self) -> Optional[Address]:
        """Ephemeral address responses arrive on, or None when idle."""
        if self._session is None:
            return None
        return self._session.transport.local_address

    def clamp_interval(self, interval: float) -> float:
        """Keep the broadcast interval inside [MIN_INTERVAL, MAX_INTERVAL]."""
        if not math.isfinite(interval):
            logger.warning(
                f"Discovery interval {interval} is not a number of seconds, "
                f"using {DEFAULT_DISCOVERY_INTERVAL}s"
            )
            return DEFAULT_DISCOVERY_INTERVAL

        clamped = min(max(interval, self.MIN_INTERVAL), self.MAX_INTERVAL)
        if clamped != interval:
            logger.warning(f"Discovery interval {interval}s clamped to {clamped}s")
        return clamped

    async def start_discovery(
        self,
        port: int,
        handshake: int,
        request_factory: RequestFactory,
        on_found: FoundCallback,
        interval: float = DEFAULT_DISCOVERY_INTERVAL,
        broadcast_address: str = BROADCAST_ADDRESS,
        host: str = '',
    ):
        """
        Start looking for servers.

        Args:
            port: Server discovery port to broadcast to
            handshake: Our application handshake
            request_factory: Builds each request to broadcast
            on_found: Called for every valid response
            interval: Seconds between broadcasts
            broadcast_address: Where requests are sent
            host: Local address to bind ('' for all interfaces)

        Raises:
            PlatformUnsupported: If discovery cannot run here
            BindError: If no local port could be bound
        """
        ensure_platform_supported(self.platform_check)
        validate_handshake(handshake)
        interval = self.clamp_interval(interval)

        await self.stop_discovery()

        session = await open_session(0, host, self.guard)

        self._handshake = handshake
        self._request_factory = request_factory
        self._on_found = on_found
        self._target = (broadcast_address, port)
        self._session = session

        session.spawn(self._receive_loop(session), name="discovery-prober-receive")
        session.spawn(self._broadcast_loop(session, interval), name="discovery-prober-broadcast")

        logger.info(
            f"Started LAN discovery from {session.transport.local_address} "
            f"to {broadcast_address}:{port} every {interval}s"
        )

    async def stop_discovery(self):
        """Stop looking for servers. Does nothing when idle."""
        session = self._session
        if session is None:
            return

        self._session = None
        await session.shutdown()
        logger.info("Stopped LAN discovery")

    def broadcast_request(self) -> bool:
        """
        Broadcast one discovery request right now.

        Returns:
            False if idle or if the request could not be built or sent
        """
        session = self._session
        if session is None:
            return False

        try:
            request = self._request_factory()
            data = encode_envelope(self._handshake, request, self.request_codec)
        except EncodingError as e:
            self._stats['broadcast_failures'] += 1
            logger.error(f"Could not encode discovery request: {e}")
            return False
        except Exception as e:
            self._stats['broadcast_failures'] += 1
            logger.error(f"Request factory failed: {e}")
            return False

        if not session.transport.send_to(data, self._target):
            self._stats['broadcast_failures'] += 1
            return False

        self._stats['broadcasts'] += 1
        return True

    async def _broadcast_loop(self, session: DiscoverySession, interval: float):
        """Broadcast immediately, then once per interval."""
        loop = asyncio.get_running_loop()
        next_at = loop.time()

        while not session.cancelled:
            self.broadcast_request()

            # Schedule against the start time so sends don't drift
            next_at += interval
            await asyncio.sleep(max(0.0, next_at - loop.time()))

    async def _receive_loop(self, session: DiscoverySession):
        """Receive responses until the session is shut down."""
        while not session.cancelled:
            try:
                data, addr = await session.transport.receive_from()
            except SocketDisposed:
                break

            await self._handle_datagram(data, addr)

        logger.debug("Prober receive loop finished")

    async def _handle_datagram(self, data: bytes, addr: Address):
        """Validate one datagram and report it if it is a response for us."""
        try:
            handshake = peek_handshake(data)
            if handshake != self._handshake:
                self._drop(data, addr, DROP_HANDSHAKE)
                return
            _, response = decode_envelope(data, self.response_codec)
        except MalformedEnvelope as e:
            logger.debug(f"Malformed response from {addr}: {e}")
            self._drop(data, addr, DROP_MALFORMED)
            return

        self._stats['responses'] += 1
        logger.debug(f"Discovery response from {addr}")

        try:
            result = self._on_found(response, addr)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self._stats['callback_errors'] += 1
            logger.error(f"on_found callback failed for {addr}: {e}")

    def _drop(self, data: bytes, addr: Address, reason: str):
        self._stats[f'dropped_{reason}'] += 1
        if self.on_drop:
            try:
                self.on_drop(data, addr, reason)
            except Exception as e:
                logger.error(f"Drop hook error: {e}")

    def get_stats(self) -> dict:
        """Get prober statistics."""
        return {
            'discovering': self.is_discovering,
            **self._stats,
        }
