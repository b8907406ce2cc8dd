"""
Wire Module - Envelope Format and Identity

Everything that ends up on the wire: the handshake-prefixed envelope,
the payload codecs and the handshake derivation.
"""

from .envelope import HANDSHAKE_SIZE, encode_envelope, decode_envelope, peek_handshake
from .identity import (
    AppIdentity,
    derive_handshake,
    format_handshake,
    parse_handshake,
    validate_handshake,
)
from .payload import JsonCodec, ModelCodec, PayloadCodec

__all__ = [
    'HANDSHAKE_SIZE',
    'encode_envelope',
    'decode_envelope',
    'peek_handshake',
    'AppIdentity',
    'derive_handshake',
    'format_handshake',
    'parse_handshake',
    'validate_handshake',
    'JsonCodec',
    'ModelCodec',
    'PayloadCodec',
]
