"""
Discovery Advertiser (server role)

Listens on the discovery port and answers every request that carries our
handshake.

State machine:
    Idle --start_advertising()--> Listening --stop_advertising()--> Idle

Calling start_advertising() while listening stops the previous session
first. Foreign or malformed datagrams are dropped silently; they are normal
on a shared broadcast domain.
"""

import inspect
import logging
from typing import Awaitable, Callable, Dict, Generic, Optional, TypeVar, Union

from ..errors import EncodingError, MalformedEnvelope, SocketDisposed
from ..transport import Address
from ..wire import PayloadCodec, decode_envelope, encode_envelope, peek_handshake, validate_handshake
from .lifecycle import (
    DiscoverySession,
    NullPermissionGuard,
    PermissionGuard,
    ensure_platform_supported,
    is_platform_supported,
    open_session,
)

logger = logging.getLogger(__name__)

# Well-known UDP port servers listen on
DEFAULT_DISCOVERY_PORT = 47777

TRequest = TypeVar("TRequest")
TResponse = TypeVar("TResponse")

# responder(request, requester_address) -> response or None (may be async)
Responder = Callable[[TRequest, Address], Union[Optional[TResponse], Awaitable[Optional[TResponse]]]]

# on_drop(datagram, sender_address, reason) with reason "handshake" or "malformed"
DropHook = Callable[[bytes, Address, str], None]

DROP_HANDSHAKE = "handshake"
DROP_MALFORMED = "malformed"


class Advertiser(Generic[TRequest, TResponse]):
    """
    Server side of LAN discovery.

    Holds the codecs for both directions; the responder decides what (if
    anything) to answer.
    """

    def __init__(
        self,
        request_codec: PayloadCodec,
        response_codec: PayloadCodec,
        guard: Optional[PermissionGuard] = None,
        platform_check: Callable[[], bool] = is_platform_supported,
        on_drop: Optional[DropHook] = None,
    ):
        """
        Initialize the advertiser.

        Args:
            request_codec: Decodes incoming requests
            response_codec: Encodes our responses
            guard: Permission guard held while listening
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
        self._responder: Optional[Responder] = None

        self._stats: Dict[str, int] = {
            'requests': 0,
            'responses': 0,
            'dropped_handshake': 0,
            'dropped_malformed': 0,
            'responder_errors': 0,
        }

    @property
    def is_advertising(self) -> bool:
        return self._session is not None

    @property
    def local_address(self) -> Optional[Address]:
        """Address we are listening on, or None when idle."""
        if self._session is None:
            return None
        return self._session.transport.local_address

    async def start_advertising(self, port: int, handshake: int, responder: Responder,
                                host: str = ''):
        """
        Start answering discovery requests.

        Args:
            port: UDP port to listen on (0 picks an ephemeral port)
            handshake: Our application handshake
            responder: Builds the response for a request, or returns None
            host: Local address to bind ('' for all interfaces)

        Raises:
            PlatformUnsupported: If discovery cannot run here
            BindError: If the port cannot be bound
        """
        ensure_platform_supported(self.platform_check)
        validate_handshake(handshake)

        await self.stop_advertising()

        session = await open_session(port, host, self.guard)

        self._handshake = handshake
        self._responder = responder
        self._session = session
        session.spawn(self._receive_loop(session), name="discovery-advertiser")

        logger.info(
            f"Listening for discovery requests on UDP {session.transport.local_address} "
            f"(handshake {handshake})"
        )

    async def stop_advertising(self):
        """Stop answering requests. Does nothing when idle."""
        session = self._session
        if session is None:
            return

        self._session = None
        await session.shutdown()
        logger.info("Stopped listening for discovery requests")

    async def _receive_loop(self, session: DiscoverySession):
        """Receive requests until the session is shut down."""
        while not session.cancelled:
            try:
                data, addr = await session.transport.receive_from()
            except SocketDisposed:
                break

            await self._handle_datagram(session, data, addr)

        logger.debug("Advertiser receive loop finished")

    async def _handle_datagram(self, session: DiscoverySession, data: bytes, addr: Address):
        """Validate one datagram and reply if it is a request for us."""
        try:
            handshake = peek_handshake(data)
            if handshake != self._handshake:
                self._drop(data, addr, DROP_HANDSHAKE)
                return
            _, request = decode_envelope(data, self.request_codec)
        except MalformedEnvelope as e:
            logger.debug(f"Malformed request from {addr}: {e}")
            self._drop(data, addr, DROP_MALFORMED)
            return

        self._stats['requests'] += 1
        logger.debug(f"Discovery request from {addr}")

        try:
            response = self._responder(request, addr)
            if inspect.isawaitable(response):
                response = await response
        except Exception as e:
            self._stats['responder_errors'] += 1
            logger.error(f"Responder failed for request from {addr}: {e}")
            return

        if response is None:
            return

        try:
            reply = encode_envelope(self._handshake, response, self.response_codec)
        except EncodingError as e:
            logger.error(f"Could not encode discovery response: {e}")
            return

        # Unicast straight back to whoever asked
        if session.transport.send_to(reply, addr):
            self._stats['responses'] += 1

    def _drop(self, data: bytes, addr: Address, reason: str):
        self._stats[f'dropped_{reason}'] += 1
        if self.on_drop:
            try:
                self.on_drop(data, addr, reason)
            except Exception as e:
                logger.error(f"Drop hook error: {e}")

    def get_stats(self) -> dict:
        """Get advertiser statistics."""
        return {
            'advertising': self.is_advertising,
            **self._stats,
        }
