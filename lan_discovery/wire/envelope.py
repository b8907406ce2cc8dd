"""
Discovery Envelope

Design Decision: Wire Format
============================

Options Considered:
1. JSON object with a "handshake" field
   - Foreign JSON traffic has to be parsed before it can be rejected
2. Magic number + type byte + length prefix
   - UDP already frames datagrams, a length field adds nothing
3. Fixed 8-byte handshake followed by the raw payload

Decision: Fixed 8-byte handshake + payload
- The handshake can be checked without touching the payload
- No length field: one datagram is one message

Message Format:
```
+---------------------+---------------------------+
| Handshake (8B, !q)  | Payload (codec-defined)   |
+---------------------+---------------------------+
```

The handshake is a signed 64-bit integer in network byte order (big-endian).
"""

import struct
from typing import Any, Tuple

from ..errors import EncodingError, MalformedEnvelope
from .identity import HANDSHAKE_MAX, HANDSHAKE_MIN
from .payload import PayloadCodec

HANDSHAKE_FORMAT = '!q'
HANDSHAKE_SIZE = struct.calcsize(HANDSHAKE_FORMAT)  # 8 bytes


def encode_envelope(handshake: int, payload: Any, codec: PayloadCodec) -> bytes:
    """
    Build a datagram from a handshake and a payload.

    Args:
        handshake: Application handshake (signed 64-bit)
        payload: Value to serialize with the codec
        codec: Payload serializer

    Returns:
        Handshake bytes followed by the serialized payload

    Raises:
        EncodingError: If the handshake is out of range or the codec fails
    """
    if not HANDSHAKE_MIN <= handshake <= HANDSHAKE_MAX:
        raise EncodingError(f"Handshake {handshake} out of 64-bit range")

    try:
        body = codec.encode(payload)
    except Exception as e:
        raise EncodingError(f"Could not serialize {type(payload).__name__}: {e}") from e

    return struct.pack(HANDSHAKE_FORMAT, handshake) + body


def peek_handshake(data: bytes) -> int:
    """
    Read only the handshake of a datagram.

    Raises:
        MalformedEnvelope: If the datagram is shorter than the handshake
    """
    if len(data) < HANDSHAKE_SIZE:
        raise MalformedEnvelope(
            f"Datagram too short: {len(data)} bytes, need at least {HANDSHAKE_SIZE}"
        )
    return struct.unpack_from(HANDSHAKE_FORMAT, data)[0]


def decode_envelope(data: bytes, codec: PayloadCodec) -> Tuple[int, Any]:
    """
    Split a datagram into (handshake, payload).

    Raises:
        MalformedEnvelope: If the datagram is too short or the payload
            does not deserialize
    """
    handshake = peek_handshake(data)
    try:
        payload = codec.decode(data[HANDSHAKE_SIZE:])
    except Exception as e:
        raise MalformedEnvelope(f"Could not deserialize payload: {e}") from e
    return handshake, payload
