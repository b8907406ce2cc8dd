"""
Discovery Session Lifecycle

Shared start/stop discipline for the Advertiser and the Prober.

Shutdown order:
1. Cancel the loop/timer tasks
2. Release the permission guard
3. Close the transport (already closed counts as success)
4. Wait for the cancelled tasks to finish

Releasing the guard before the socket is fully quiet is fine: the guard
only affects OS-level multicast power state. A receive still in flight may
miss a packet, which UDP discovery tolerates anyway.
"""

import asyncio
import logging
import sys
from dataclasses import dataclass, field
from typing import Callable, List, Protocol

from ..errors import PlatformUnsupported
from ..transport import BroadcastTransport

logger = logging.getLogger(__name__)

# Python targets without real UDP sockets (Pyodide, WASI)
UNSUPPORTED_PLATFORMS = ('emscripten', 'wasi')


class PermissionGuard(Protocol):
    """
    Platform capability held while discovery sockets are open.

    Example: the Android multicast lock. acquire() and release() must both
    be idempotent.
    """

    def acquire(self) -> None:
        ...

    def release(self) -> None:
        ...


class NullPermissionGuard:
    """Guard for platforms that need no permission."""

    def __init__(self):
        self.held = False

    def acquire(self) -> None:
        self.held = True

    def release(self) -> None:
        self.held = False


def is_platform_supported() -> bool:
    """Whether UDP broadcast discovery can run on this interpreter."""
    return sys.platform not in UNSUPPORTED_PLATFORMS


def ensure_platform_supported(predicate: Callable[[], bool] = is_platform_supported):
    """Raise PlatformUnsupported if the predicate says no."""
    if not predicate():
        raise PlatformUnsupported(
            f"Network discovery is not supported on this platform ({sys.platform})"
        )


@dataclass
class DiscoverySession:
    """
    Resources owned by one running Advertiser or Prober session.

    Never shared between roles.
    """
    transport: BroadcastTransport
    guard: PermissionGuard
    tasks: List[asyncio.Task] = field(default_factory=list)
    cancelled: bool = False

    def spawn(self, coro, name: str) -> asyncio.Task:
        """Start a background task tied to this session."""
        task = asyncio.create_task(coro, name=name)
        self.tasks.append(task)
        return task

    async def shutdown(self):
        """Tear the session down. Safe to call more than once."""
        if self.cancelled:
            return
        self.cancelled = True

        # A callback running on one of our own loops may be the caller;
        # that loop ends by itself once the transport is closed.
        current = asyncio.current_task()
        pending = [t for t in self.tasks if t is not current]

        for task in pending:
            task.cancel()

        try:
            self.guard.release()
        except Exception as e:
            logger.error(f"Error releasing permission guard: {e}")

        self.transport.close()

        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await self.transport.wait_closed()


async def open_session(port: int, host: str, guard: PermissionGuard) -> DiscoverySession:
    """
    Open a transport and acquire the permission guard.

    Nothing is left open if either step fails.

    Raises:
        BindError: If the port cannot be bound
    """
    transport = await BroadcastTransport.open(port, host)
    try:
        guard.acquire()
    except BaseException:
        transport.close()
        await transport.wait_closed()
        raise
    return DiscoverySession(transport=transport, guard=guard)
