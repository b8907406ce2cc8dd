"""
Transport Module - UDP Broadcast Endpoint

Thin asyncio wrapper around a broadcast-enabled UDP socket.
"""

from .broadcast import BROADCAST_ADDRESS, Address, BroadcastTransport, get_local_ip

__all__ = [
    'BROADCAST_ADDRESS',
    'Address',
    'BroadcastTransport',
    'get_local_ip',
]
