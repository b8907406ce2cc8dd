"""
Application Identity (Handshake)

Design Decision: Handshake Scheme
=================================

Options Considered:
1. Random 64-bit value picked once by the author and stored with the project
   - Stable, but has to be remembered and bumped by hand on breaking changes
2. Derived every run from build metadata (name, company, version)
   - Changes automatically with the version
   - Same build always yields the same value

Decision: Derived from metadata, with an explicit override
- derive_handshake() is the only generation scheme (no random values)
- A configured integer is taken as-is, so a project can pin a value
- Derivation is SHA-256 over length-prefixed UTF-8 fields, first 8 bytes,
  read as a signed big-endian integer

Length-prefixing keeps ("ab", "c") and ("a", "bc") apart.
"""

import hashlib
import struct
from dataclasses import dataclass
from typing import Optional

from ..errors import InvalidHandshake

HANDSHAKE_BITS = 64
HANDSHAKE_MIN = -(1 << (HANDSHAKE_BITS - 1))
HANDSHAKE_MAX = (1 << (HANDSHAKE_BITS - 1)) - 1


def validate_handshake(value) -> int:
    """
    Check that a value can be used as a handshake.

    Args:
        value: Candidate handshake

    Returns:
        The value, unchanged

    Raises:
        InvalidHandshake: If it is not an int in the signed 64-bit range
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidHandshake(f"Handshake must be an integer, got {type(value).__name__}")
    if not HANDSHAKE_MIN <= value <= HANDSHAKE_MAX:
        raise InvalidHandshake(f"Handshake {value} does not fit in a signed 64-bit integer")
    return value


def derive_handshake(product_name: str, company_name: str = "", version: str = "") -> int:
    """
    Derive a deterministic handshake from application identity metadata.

    Two builds agree on the handshake only if all three fields match.
    """
    if not product_name:
        raise InvalidHandshake("Product name is required to derive a handshake")

    digest = hashlib.sha256()
    for part in (version, company_name, product_name):
        encoded = part.encode('utf-8')
        digest.update(struct.pack('!I', len(encoded)))
        digest.update(encoded)

    return struct.unpack('!q', digest.digest()[:8])[0]


def parse_handshake(text: str) -> int:
    """Parse a handshake written in decimal or 0x-prefixed hex."""
    text = text.strip()
    try:
        if text.lower().startswith(('0x', '-0x')):
            value = int(text, 16)
        else:
            value = int(text)
    except ValueError:
        raise InvalidHandshake(f"Not a handshake value: {text!r}") from None
    return validate_handshake(value)


def format_handshake(value: int) -> str:
    """Render a handshake as 16 hex digits (two's complement)."""
    return f"0x{value & 0xFFFFFFFFFFFFFFFF:016x}"


@dataclass(frozen=True)
class AppIdentity:
    """
    Identity of an application build.

    Supplies the handshake either from an explicit value or from the
    name/company/version triple.
    """
    name: str
    company: str = ""
    version: str = ""
    handshake_override: Optional[int] = None

    @property
    def handshake(self) -> int:
        if self.handshake_override is not None:
            return validate_handshake(self.handshake_override)
        return derive_handshake(self.name, self.company, self.version)

    def __str__(self) -> str:
        parts = [self.name]
        if self.version:
            parts.append(self.version)
        if self.company:
            parts.append(f"({self.company})")
        return " ".join(parts)
