import asyncio
import socket

import pytest

from lan_discovery.transport import BroadcastTransport
from lan_discovery.wire import JsonCodec

HANDSHAKE = 0x1234_5678_9ABC_DEF0
FOREIGN_HANDSHAKE = -42


def free_udp_port() -> int:
    """Ask the OS for a UDP port nobody is using right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


async def wait_until(predicate, timeout: float = 2.0):
    """Poll until predicate() is true or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail("Condition not met in time")
        await asyncio.sleep(0.01)


class RecordingGuard:
    """Permission guard that remembers what happened to it."""

    def __init__(self, fail_acquire: bool = False):
        self.fail_acquire = fail_acquire
        self.held = False
        self.acquired = 0
        self.released = 0

    def acquire(self):
        self.acquired += 1
        if self.fail_acquire:
            raise RuntimeError("permission denied")
        self.held = True

    def release(self):
        self.released += 1
        self.held = False


@pytest.fixture
def codec():
    return JsonCodec()


@pytest.fixture
async def peer():
    """A plain transport on loopback used to talk to the role under test."""
    transport = await BroadcastTransport.open(0, '127.0.0.1')
    yield transport
    transport.close()
