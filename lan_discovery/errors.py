"""
Discovery Errors

Every error raised by the package derives from DiscoveryError so callers
can catch the whole family at once.

Fatal (raised from start_*):
- PlatformUnsupported
- BindError

Non-fatal (handled inside the receive loops, never surfaced to callers):
- MalformedEnvelope
- SendFailure
- SocketDisposed
"""


class DiscoveryError(Exception):
    """Base class for all discovery errors."""


class PlatformUnsupported(DiscoveryError):
    """UDP discovery is not available on this platform."""


class BindError(DiscoveryError, OSError):
    """The discovery socket could not be bound (e.g. port already in use)."""

    def __init__(self, port: int, cause: OSError):
        self.port = port
        self.cause = cause
        super().__init__(f"Could not bind UDP port {port}: {cause}")


class EncodingError(DiscoveryError):
    """A payload could not be serialized into an envelope."""


class MalformedEnvelope(DiscoveryError):
    """A datagram is too short or its payload does not deserialize."""


class InvalidHandshake(DiscoveryError, ValueError):
    """A handshake value is not a signed 64-bit integer."""


class SendFailure(DiscoveryError):
    """A single datagram could not be sent."""

    def __init__(self, address, cause: Exception):
        self.address = address
        self.cause = cause
        target = f" to {address}" if address else ""
        super().__init__(f"Send{target} failed: {cause}")


class SocketDisposed(DiscoveryError):
    """The transport was closed while (or before) receiving."""
