"""
UDP Broadcast Transport

Design Decision: Socket Handling
================================

Options Considered:
1. Raw non-blocking socket + loop.sock_recvfrom()
   - Simple, but a close() racing a pending recv is platform dependent
2. asyncio DatagramProtocol feeding a queue
   - Receives are plain queue waits, cancellable at any point
   - Closing pushes a sentinel, so a pending receive wakes up cleanly

Decision: DatagramProtocol + asyncio.Queue
- The socket is created and configured by hand (broadcast on,
  multicast loopback off) and then handed to create_datagram_endpoint()
- receive_from() raises SocketDisposed once the transport is closed
- send_to() never raises: discovery must survive a bad destination
"""

import asyncio
import logging
import socket
from typing import Optional, Tuple

from ..errors import BindError, SendFailure, SocketDisposed

logger = logging.getLogger(__name__)

# Limited broadcast address (never forwarded by routers)
BROADCAST_ADDRESS = '255.255.255.255'

Address = Tuple[str, int]


class _DatagramQueueProtocol(asyncio.DatagramProtocol):
    """Pushes received datagrams into a queue for BroadcastTransport."""

    def __init__(self, owner: 'BroadcastTransport'):
        self.owner = owner

    def datagram_received(self, data: bytes, addr: Address):
        self.owner._on_datagram(data, addr)

    def error_received(self, exc: Exception):
        # Send errors surface here asynchronously (e.g. ICMP unreachable)
        self.owner._on_send_error(exc, None)

    def connection_lost(self, exc: Optional[Exception]):
        self.owner._on_connection_lost(exc)


class BroadcastTransport:
    """
    A UDP endpoint configured for broadcast.

    Owns its socket: nothing else reads from or closes it.
    Use BroadcastTransport.open() to create one.
    """

    def __init__(self, port: int, host: str = ''):
        self.port = port
        self.host = host

        self._transport: Optional[asyncio.DatagramTransport] = None
        self._sock: Optional[socket.socket] = None
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._lost: Optional[asyncio.Future] = None

        self._received = 0
        self._sent = 0
        self._send_failures = 0

    @classmethod
    async def open(cls, port: int, host: str = '') -> 'BroadcastTransport':
        """
        Bind a broadcast-enabled UDP endpoint.

        Args:
            port: UDP port to bind (0 lets the OS choose)
            host: Local address to bind ('' for all interfaces)

        Returns:
            An open transport

        Raises:
            BindError: If the socket cannot be created or bound
        """
        self = cls(port, host)
        sock = self._create_socket()

        loop = asyncio.get_running_loop()
        self._lost = loop.create_future()
        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _DatagramQueueProtocol(self),
                sock=sock,
            )
        except BaseException:
            sock.close()
            raise

        self._transport = transport
        self._sock = sock
        logger.debug(f"UDP transport open on {self.local_address}")
        return self

    def _create_socket(self) -> socket.socket:
        """Create, configure and bind the UDP socket."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)

            # We never want to hear our own multicast traffic
            try:
                sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_LOOP, 0)
            except (AttributeError, OSError) as e:
                logger.debug(f"Could not disable multicast loopback: {e}")

            sock.bind((self.host, self.port))
            sock.setblocking(False)
        except OSError as e:
            sock.close()
            raise BindError(self.port, e) from e

        return sock

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def local_address(self) -> Optional[Address]:
        """Address the socket is bound to, or None once closed."""
        if self._transport is None or self._closed:
            return None
        return self._transport.get_extra_info('sockname')

    def send_to(self, data: bytes, address: Address) -> bool:
        """
        Send a datagram (best effort).

        Failures are logged and counted, never raised.

        Returns:
            True if the datagram was handed to the OS
        """
        if self._closed or self._transport is None:
            self._on_send_error(SocketDisposed("Transport is closed"), address)
            return False

        # transport.sendto() errors only reach error_received()
        try:
            self._sock.sendto(data, address)
        except BlockingIOError:
            # Kernel buffer full: let the transport queue it
            self._transport.sendto(data, address)
        except (OSError, ValueError, TypeError, OverflowError) as e:
            self._on_send_error(e, address)
            return False

        self._sent += 1
        return True

    async def receive_from(self) -> Tuple[bytes, Address]:
        """
        Wait for the next datagram.

        Returns:
            (data, sender_address)

        Raises:
            SocketDisposed: If the transport is (or gets) closed
        """
        if self._closed:
            raise SocketDisposed("Transport is closed")

        item = await self._queue.get()
        if item is None:
            # Leave the sentinel for any other waiter
            self._queue.put_nowait(None)
            raise SocketDisposed("Transport was closed while receiving")
        return item

    def close(self):
        """Close the socket. Closing twice is a no-op."""
        if self._closed:
            return
        self._closed = True

        if self._transport is not None:
            self._transport.close()
        self._queue.put_nowait(None)

        logger.debug(f"UDP transport on port {self.port} closed")

    async def wait_closed(self):
        """Wait until the OS socket has actually been released."""
        if self._lost is not None and not self._lost.done():
            await asyncio.shield(self._lost)

    def get_stats(self) -> dict:
        """Get transport statistics."""
        return {
            'received': self._received,
            'sent': self._sent,
            'send_failures': self._send_failures,
        }

    # === Protocol callbacks ===

    def _on_datagram(self, data: bytes, addr: Address):
        if self._closed:
            return
        self._received += 1
        self._queue.put_nowait((data, addr))

    def _on_send_error(self, exc: Exception, address: Optional[Address]):
        self._send_failures += 1
        failure = exc if isinstance(exc, SendFailure) else SendFailure(address, exc)
        logger.warning(str(failure))

    def _on_connection_lost(self, exc: Optional[Exception]):
        if self._lost is not None and not self._lost.done():
            self._lost.set_result(None)
        if exc is not None:
            logger.debug(f"UDP transport lost: {exc}")
        self.close()

    def __repr__(self) -> str:
        state = 'closed' if self._closed else f"open on {self.local_address}"
        return f"<BroadcastTransport {state}>"


def get_local_ip() -> str:
    """
    Get the local IP address (best guess).

    Connecting a UDP socket sends nothing; it only makes the OS pick the
    outgoing interface.
    """
    try:
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            s.connect(("8.8.8.8", 80))
            return s.getsockname()[0]
        finally:
            s.close()
    except OSError:
        return "127.0.0.1"
