"""XBee API frame checksum.

The checksum covers the frame data only (frame type byte onward, not the
delimiter or length). Adding all frame data bytes and the checksum must
give 0xFF in the low byte.
"""

from __future__ import annotations


def checksum(data: bytes) -> int:
    """Compute the checksum byte for ``data``."""
    return 0xFF - (sum(data) & 0xFF)


def verify(data: bytes, value: int) -> bool:
    """Return True if ``value`` is the correct checksum for ``data``."""
    return (sum(data) + value) & 0xFF == 0xFF
