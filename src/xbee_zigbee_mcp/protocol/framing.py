"""API frame builder and stream reader for XBee transceivers (API mode 1).

Frame layout::

    +-----------+---------+--------------------------+----------+
    | Delimiter | Length  |        Frame data        | Checksum |
    | 0x7E      | 2 bytes | frame type + type fields |  1 byte  |
    +-----------+---------+--------------------------+----------+

- Length: big-endian count of frame data bytes
- Checksum: 0xFF minus the low byte of the sum of the frame data

API mode 1 does not escape bytes, so a 0x7E inside frame data is legal
and the reader relies on the length field to find the frame end.
"""

from __future__ import annotations

import logging

from ..utils.checksum import checksum, verify

logger = logging.getLogger(__name__)

START_DELIMITER = 0x7E
HEADER_SIZE = 3  # delimiter + 2 length bytes
MAX_FRAME_DATA = 0xFFFF


def build_api_frame(frame_data: bytes) -> bytes:
    """Wrap frame data in the API envelope.

    Args:
        frame_data: Frame type byte followed by the type-specific fields.

    Returns:
        The bytes to write to the transceiver.
    """
    if not frame_data:
        raise ValueError("Frame data must contain at least the frame type")
    if len(frame_data) > MAX_FRAME_DATA:
        raise ValueError(f"Frame data too long: {len(frame_data)} bytes")
    return (
        bytes([START_DELIMITER])
        + len(frame_data).to_bytes(2, "big")
        + frame_data
        + bytes([checksum(frame_data)])
    )


def parse_api_frame(data: bytes) -> bytes | None:
    """Extract the frame data from a single complete API frame.

    Returns:
        The frame data, or ``None`` if the delimiter, length or checksum
        is wrong.
    """
    if len(data) < HEADER_SIZE + 2 or data[0] != START_DELIMITER:
        return None
    length = int.from_bytes(data[1:3], "big")
    if length < 1 or len(data) != HEADER_SIZE + length + 1:
        return None
    frame_data = data[HEADER_SIZE : HEADER_SIZE + length]
    if not verify(frame_data, data[-1]):
        return None
    return frame_data


class FrameReader:
    """Reassembles API frames from an arbitrarily chunked byte stream.

    Usage::

        reader = FrameReader()
        for frame_data in reader.feed(chunk):
            handle(frame_data)
    """

    def __init__(self) -> None:
        self._buffer = bytearray()
        self.dropped = 0

    def feed(self, chunk: bytes) -> list[bytes]:
        """Add bytes and return the frame data of every complete frame."""
        self._buffer.extend(chunk)
        frames: list[bytes] = []

        while True:
            start = self._buffer.find(START_DELIMITER)
            if start < 0:
                if self._buffer:
                    logger.debug("Discarding %d bytes of line noise", len(self._buffer))
                self._buffer.clear()
                break
            if start > 0:
                logger.debug("Discarding %d bytes before start delimiter", start)
                del self._buffer[:start]

            if len(self._buffer) < HEADER_SIZE:
                break
            length = int.from_bytes(self._buffer[1:3], "big")
            total = HEADER_SIZE + length + 1
            if len(self._buffer) < total:
                break

            frame_data = bytes(self._buffer[HEADER_SIZE : HEADER_SIZE + length])
            received = self._buffer[total - 1]
            if length and verify(frame_data, received):
                frames.append(frame_data)
                del self._buffer[:total]
            else:
                # Resync on the next delimiter rather than trusting the length.
                self.dropped += 1
                logger.warning(
                    "Dropping API frame with bad checksum (length=%d, checksum=0x%02x)",
                    length,
                    received,
                )
                del self._buffer[:1]

        return frames

    def reset(self) -> None:
        self._buffer.clear()
