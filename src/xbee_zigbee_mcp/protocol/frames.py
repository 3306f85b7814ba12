"""Typed API frames and their binary encoding.

Every frame type the adapter sends or receives has its own frozen
dataclass. ``decode_frame`` turns the frame data produced by
:class:`~.framing.FrameReader` into one of them; ``encode_frame`` does
the reverse and wraps the result in the API envelope.

Addresses are carried as lowercase hex strings (big-endian, as printed
on the radio's label), cluster and profile ids as ints.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import ClassVar, Union

from ..errors import FrameDecodeError
from .at import AtCommand
from .framing import build_api_frame

BROADCAST_ADDR64 = "000000000000ffff"
UNKNOWN_ADDR16 = "fffe"

ZDO_PROFILE_ID = 0x0000
ZHA_PROFILE_ID = 0x0104


class FrameType(IntEnum):
    """API frame type identifiers."""

    AT_COMMAND = 0x08
    AT_COMMAND_RESPONSE = 0x88
    MODEM_STATUS = 0x8A
    ZIGBEE_TRANSMIT_STATUS = 0x8B
    EXPLICIT_ADDRESSING_COMMAND = 0x11
    ZIGBEE_EXPLICIT_RX = 0x91
    ROUTE_RECORD = 0xA1


def _addr(data: bytes) -> str:
    return data.hex()


def _addr_bytes(addr: str, width: int) -> bytes:
    raw = bytes.fromhex(addr)
    if len(raw) != width:
        raise ValueError(f"Address {addr!r} must be {width} bytes")
    return raw


def _require(data: bytes, size: int, name: str) -> None:
    if len(data) < size:
        raise FrameDecodeError(f"{name} frame too short: {len(data)} < {size} bytes")


def _mnemonic(command: AtCommand | str) -> bytes:
    text = command.value if isinstance(command, AtCommand) else command
    if len(text) != 2:
        raise ValueError(f"AT command mnemonic must be 2 characters, got {text!r}")
    return text.encode("ascii")


def _at_command(raw: bytes) -> AtCommand | str:
    text = raw.decode("ascii", errors="replace")
    try:
        return AtCommand(text)
    except ValueError:
        return text


@dataclass(frozen=True)
class AtCommandFrame:
    """Local AT command: query when ``parameter`` is empty, else set."""

    frame_type: ClassVar[FrameType] = FrameType.AT_COMMAND

    frame_id: int
    command: AtCommand | str
    parameter: bytes = b""

    def to_bytes(self) -> bytes:
        return (
            bytes([self.frame_type, self.frame_id])
            + _mnemonic(self.command)
            + self.parameter
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> AtCommandFrame:
        _require(data, 4, "AT command")
        return cls(frame_id=data[1], command=_at_command(data[2:4]), parameter=bytes(data[4:]))


@dataclass(frozen=True)
class AtCommandResponseFrame:
    """Response to a local AT command."""

    frame_type: ClassVar[FrameType] = FrameType.AT_COMMAND_RESPONSE

    frame_id: int
    command: AtCommand | str
    status: int
    data: bytes = b""

    def to_bytes(self) -> bytes:
        return (
            bytes([self.frame_type, self.frame_id])
            + _mnemonic(self.command)
            + bytes([self.status])
            + self.data
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> AtCommandResponseFrame:
        _require(data, 5, "AT command response")
        return cls(
            frame_id=data[1],
            command=_at_command(data[2:4]),
            status=data[4],
            data=bytes(data[5:]),
        )


@dataclass(frozen=True)
class ExplicitAddressingFrame:
    """Explicit addressing command: an application frame sent over the air."""

    frame_type: ClassVar[FrameType] = FrameType.EXPLICIT_ADDRESSING_COMMAND

    frame_id: int
    destination64: str
    destination16: str
    source_endpoint: int
    destination_endpoint: int
    cluster_id: int
    profile_id: int
    data: bytes = b""
    broadcast_radius: int = 0
    options: int = 0

    def to_bytes(self) -> bytes:
        return (
            bytes([self.frame_type, self.frame_id])
            + _addr_bytes(self.destination64, 8)
            + _addr_bytes(self.destination16, 2)
            + bytes([self.source_endpoint, self.destination_endpoint])
            + self.cluster_id.to_bytes(2, "big")
            + self.profile_id.to_bytes(2, "big")
            + bytes([self.broadcast_radius, self.options])
            + self.data
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> ExplicitAddressingFrame:
        _require(data, 20, "Explicit addressing")
        return cls(
            frame_id=data[1],
            destination64=_addr(data[2:10]),
            destination16=_addr(data[10:12]),
            source_endpoint=data[12],
            destination_endpoint=data[13],
            cluster_id=int.from_bytes(data[14:16], "big"),
            profile_id=int.from_bytes(data[16:18], "big"),
            broadcast_radius=data[18],
            options=data[19],
            data=bytes(data[20:]),
        )

    @property
    def zdo_seq(self) -> int | None:
        if self.profile_id != ZDO_PROFILE_ID or not self.data:
            return None
        return self.data[0]


@dataclass(frozen=True)
class ExplicitRxFrame:
    """Explicit receive indicator: an application frame from a remote node."""

    frame_type: ClassVar[FrameType] = FrameType.ZIGBEE_EXPLICIT_RX

    remote64: str
    remote16: str
    source_endpoint: int
    destination_endpoint: int
    cluster_id: int
    profile_id: int
    receive_options: int = 0
    data: bytes = b""

    def to_bytes(self) -> bytes:
        return (
            bytes([self.frame_type])
            + _addr_bytes(self.remote64, 8)
            + _addr_bytes(self.remote16, 2)
            + bytes([self.source_endpoint, self.destination_endpoint])
            + self.cluster_id.to_bytes(2, "big")
            + self.profile_id.to_bytes(2, "big")
            + bytes([self.receive_options])
            + self.data
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> ExplicitRxFrame:
        _require(data, 18, "Explicit RX")
        return cls(
            remote64=_addr(data[1:9]),
            remote16=_addr(data[9:11]),
            source_endpoint=data[11],
            destination_endpoint=data[12],
            cluster_id=int.from_bytes(data[13:15], "big"),
            profile_id=int.from_bytes(data[15:17], "big"),
            receive_options=data[17],
            data=bytes(data[18:]),
        )

    @property
    def zdo_seq(self) -> int | None:
        if self.profile_id != ZDO_PROFILE_ID or not self.data:
            return None
        return self.data[0]

    @property
    def is_zdo(self) -> bool:
        return self.profile_id == ZDO_PROFILE_ID

    @property
    def is_zha(self) -> bool:
        return self.profile_id == ZHA_PROFILE_ID


@dataclass(frozen=True)
class TransmitStatusFrame:
    """Delivery report for a previously sent frame."""

    frame_type: ClassVar[FrameType] = FrameType.ZIGBEE_TRANSMIT_STATUS

    frame_id: int
    remote16: str
    retry_count: int
    delivery_status: int
    discovery_status: int

    def to_bytes(self) -> bytes:
        return (
            bytes([self.frame_type, self.frame_id])
            + _addr_bytes(self.remote16, 2)
            + bytes([self.retry_count, self.delivery_status, self.discovery_status])
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> TransmitStatusFrame:
        _require(data, 7, "Transmit status")
        return cls(
            frame_id=data[1],
            remote16=_addr(data[2:4]),
            retry_count=data[4],
            delivery_status=data[5],
            discovery_status=data[6],
        )


@dataclass(frozen=True)
class ModemStatusFrame:
    frame_type: ClassVar[FrameType] = FrameType.MODEM_STATUS

    status: int

    def to_bytes(self) -> bytes:
        return bytes([self.frame_type, self.status])

    @classmethod
    def from_bytes(cls, data: bytes) -> ModemStatusFrame:
        _require(data, 2, "Modem status")
        return cls(status=data[1])


@dataclass(frozen=True)
class RouteRecordFrame:
    """Route record indicator: the hops a many-to-one routed frame took."""

    frame_type: ClassVar[FrameType] = FrameType.ROUTE_RECORD

    remote64: str
    remote16: str
    receive_options: int
    hops: tuple[str, ...] = ()

    def to_bytes(self) -> bytes:
        return (
            bytes([self.frame_type])
            + _addr_bytes(self.remote64, 8)
            + _addr_bytes(self.remote16, 2)
            + bytes([self.receive_options, len(self.hops)])
            + b"".join(_addr_bytes(hop, 2) for hop in self.hops)
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> RouteRecordFrame:
        _require(data, 13, "Route record")
        count = data[12]
        _require(data, 13 + 2 * count, "Route record")
        hops = tuple(_addr(data[13 + 2 * i : 15 + 2 * i]) for i in range(count))
        return cls(
            remote64=_addr(data[1:9]),
            remote16=_addr(data[9:11]),
            receive_options=data[11],
            hops=hops,
        )


@dataclass(frozen=True)
class UnknownFrame:
    """Any frame type the adapter does not interpret."""

    frame_type: int
    data: bytes = b""

    def to_bytes(self) -> bytes:
        return bytes([self.frame_type]) + self.data


Frame = Union[
    AtCommandFrame,
    AtCommandResponseFrame,
    ExplicitAddressingFrame,
    ExplicitRxFrame,
    TransmitStatusFrame,
    ModemStatusFrame,
    RouteRecordFrame,
    UnknownFrame,
]

FRAME_CLASSES = {
    FrameType.AT_COMMAND: AtCommandFrame,
    FrameType.AT_COMMAND_RESPONSE: AtCommandResponseFrame,
    FrameType.EXPLICIT_ADDRESSING_COMMAND: ExplicitAddressingFrame,
    FrameType.ZIGBEE_EXPLICIT_RX: ExplicitRxFrame,
    FrameType.ZIGBEE_TRANSMIT_STATUS: TransmitStatusFrame,
    FrameType.MODEM_STATUS: ModemStatusFrame,
    FrameType.ROUTE_RECORD: RouteRecordFrame,
}


def decode_frame(frame_data: bytes) -> Frame:
    """Decode API frame data into a typed frame.

    Raises:
        FrameDecodeError: If the data is empty or too short for its type.
    """
    if not frame_data:
        raise FrameDecodeError("Empty frame data")
    cls = FRAME_CLASSES.get(frame_data[0])
    if cls is None:
        return UnknownFrame(frame_type=frame_data[0], data=bytes(frame_data[1:]))
    return cls.from_bytes(frame_data)


def encode_frame(frame: Frame) -> bytes:
    """Encode a typed frame into a complete API frame."""
    return build_api_frame(frame.to_bytes())


class FrameIdCounter:
    """Hands out frame ids 1..255, wrapping. Id 0 disables the radio's
    status response, so it is never assigned."""

    def __init__(self, start: int = 0) -> None:
        self._last = start

    def next(self) -> int:
        self._last = self._last % 255 + 1
        return self._last

    @property
    def last(self) -> int:
        return self._last
