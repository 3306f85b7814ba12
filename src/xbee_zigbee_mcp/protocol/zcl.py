"""Zigbee Cluster Library (ZCL) frames for the Home Automation profile.

Only the general (foundation) commands the adapter relies on are
decoded: read/write attribute responses, attribute reports, default
responses and attribute discovery. Cluster-specific payloads are left
to the node that owns the cluster.

ZCL frame layout::

    +---------------+--------------------+-----+---------+---------+
    | Frame control | Manufacturer code  | Seq | Command | Payload |
    | 1 byte        | 2 bytes (optional) | 1 B | 1 byte  |         |
    +---------------+--------------------+-----+---------+---------+
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from enum import IntEnum

from ..errors import FrameDecodeError

FC_CLUSTER_SPECIFIC = 0x01
FC_MANUFACTURER_SPECIFIC = 0x04
FC_SERVER_TO_CLIENT = 0x08
FC_DISABLE_DEFAULT_RESPONSE = 0x10


class Foundation(IntEnum):
    """General command ids shared by every cluster."""

    READ_ATTRIBUTES = 0x00
    READ_ATTRIBUTES_RESPONSE = 0x01
    WRITE_ATTRIBUTES = 0x02
    WRITE_ATTRIBUTES_RESPONSE = 0x04
    CONFIGURE_REPORTING = 0x06
    CONFIGURE_REPORTING_RESPONSE = 0x07
    REPORT_ATTRIBUTES = 0x0A
    DEFAULT_RESPONSE = 0x0B
    DISCOVER_ATTRIBUTES = 0x0C
    DISCOVER_ATTRIBUTES_RESPONSE = 0x0D


class Cluster(IntEnum):
    BASIC = 0x0000
    POWER_CONFIGURATION = 0x0001
    IDENTIFY = 0x0003
    GROUPS = 0x0004
    SCENES = 0x0005
    ON_OFF = 0x0006
    LEVEL_CONTROL = 0x0008
    TIME = 0x000A
    OTA_UPGRADE = 0x0019
    COLOR_CONTROL = 0x0300
    ILLUMINANCE_MEASUREMENT = 0x0400
    TEMPERATURE_MEASUREMENT = 0x0402
    RELATIVE_HUMIDITY = 0x0405
    OCCUPANCY_SENSING = 0x0406
    IAS_ZONE = 0x0500
    METERING = 0x0702
    ELECTRICAL_MEASUREMENT = 0x0B04
    DIAGNOSTICS = 0x0B05


class OnOffCommand(IntEnum):
    OFF = 0x00
    ON = 0x01
    TOGGLE = 0x02


class LevelCommand(IntEnum):
    MOVE_TO_LEVEL = 0x00
    MOVE_TO_LEVEL_WITH_ON_OFF = 0x04


def cluster_name(cluster_id: int) -> str | None:
    try:
        return Cluster(cluster_id).name.lower()
    except ValueError:
        return None


# Fixed-size data types: type id -> struct format (little-endian).
_FIXED_TYPES: dict[int, str] = {
    0x10: "<B",  # boolean
    0x18: "<B",  # bitmap8
    0x19: "<H",  # bitmap16
    0x20: "<B",  # uint8
    0x21: "<H",  # uint16
    0x23: "<I",  # uint32
    0x28: "<b",  # int8
    0x29: "<h",  # int16
    0x2B: "<i",  # int32
    0x30: "<B",  # enum8
    0x31: "<H",  # enum16
    0x39: "<f",  # single precision
    0xE2: "<I",  # UTC time
}
TYPE_BOOLEAN = 0x10
TYPE_UINT8 = 0x20
TYPE_UINT24 = 0x22
TYPE_UINT48 = 0x25
TYPE_CHAR_STRING = 0x42
TYPE_EUI64 = 0xF0


@dataclass
class ZclFrame:
    frame_control: int
    seq: int
    command_id: int
    payload: bytes = b""
    manufacturer_code: int | None = None

    @property
    def is_cluster_specific(self) -> bool:
        return bool(self.frame_control & FC_CLUSTER_SPECIFIC)

    @property
    def is_server_to_client(self) -> bool:
        return bool(self.frame_control & FC_SERVER_TO_CLIENT)

    def __repr__(self) -> str:
        kind = "cluster" if self.is_cluster_specific else "general"
        return (
            f"ZclFrame({kind} cmd=0x{self.command_id:02X}, seq={self.seq}, "
            f"payload={self.payload.hex(' ') if self.payload else '(empty)'})"
        )


@dataclass
class AttributeRecord:
    """One attribute from a read response, report or write."""

    attr_id: int
    data_type: int | None = None
    value: object = None
    status: int = 0


@dataclass
class DiscoverAttributesResult:
    complete: bool
    attributes: list[tuple[int, int]] = field(default_factory=list)


def parse_zcl_frame(data: bytes) -> ZclFrame:
    """Split a ZCL payload into header fields and command payload."""
    if len(data) < 3:
        raise FrameDecodeError(f"ZCL frame too short: {len(data)} bytes")
    frame_control = data[0]
    offset = 1
    manufacturer_code = None
    if frame_control & FC_MANUFACTURER_SPECIFIC:
        if len(data) < 5:
            raise FrameDecodeError("ZCL frame too short for manufacturer code")
        manufacturer_code = int.from_bytes(data[1:3], "little")
        offset = 3
    return ZclFrame(
        frame_control=frame_control,
        manufacturer_code=manufacturer_code,
        seq=data[offset],
        command_id=data[offset + 1],
        payload=bytes(data[offset + 2 :]),
    )


def build_zcl_frame(
    seq: int,
    command_id: int,
    payload: bytes = b"",
    *,
    cluster_specific: bool = False,
    disable_default_response: bool = False,
) -> bytes:
    """Build a client-to-server ZCL payload."""
    frame_control = 0
    if cluster_specific:
        frame_control |= FC_CLUSTER_SPECIFIC
    if disable_default_response:
        frame_control |= FC_DISABLE_DEFAULT_RESPONSE
    return bytes([frame_control, seq & 0xFF, command_id]) + payload


def _read_value(data: bytes, offset: int, data_type: int) -> tuple[object, int]:
    """Decode one typed value; returns (value, new offset)."""
    if data_type in _FIXED_TYPES:
        fmt = _FIXED_TYPES[data_type]
        size = struct.calcsize(fmt)
        if offset + size > len(data):
            raise FrameDecodeError(f"Attribute value of type 0x{data_type:02x} truncated")
        (value,) = struct.unpack_from(fmt, data, offset)
        if data_type == TYPE_BOOLEAN:
            value = bool(value)
        return value, offset + size
    if data_type == TYPE_UINT24:
        if offset + 3 > len(data):
            raise FrameDecodeError("uint24 attribute value truncated")
        return int.from_bytes(data[offset : offset + 3], "little"), offset + 3
    if data_type == TYPE_UINT48:
        if offset + 6 > len(data):
            raise FrameDecodeError("uint48 attribute value truncated")
        return int.from_bytes(data[offset : offset + 6], "little"), offset + 6
    if data_type == TYPE_CHAR_STRING:
        if offset >= len(data):
            raise FrameDecodeError("String attribute length missing")
        length = data[offset]
        if length == 0xFF:
            return None, offset + 1
        end = offset + 1 + length
        if end > len(data):
            raise FrameDecodeError("String attribute truncated")
        return data[offset + 1 : end].decode("utf-8", errors="replace"), end
    if data_type == TYPE_EUI64:
        if offset + 8 > len(data):
            raise FrameDecodeError("EUI64 attribute truncated")
        return data[offset : offset + 8][::-1].hex(), offset + 8
    raise FrameDecodeError(f"Unsupported ZCL data type 0x{data_type:02x}")


def parse_read_attributes_response(payload: bytes) -> list[AttributeRecord]:
    """Records: attr id (2), status (1), and on success type (1) + value."""
    records = []
    offset = 0
    while offset < len(payload):
        if offset + 3 > len(payload):
            raise FrameDecodeError("Read attributes response record truncated")
        attr_id = int.from_bytes(payload[offset : offset + 2], "little")
        status = payload[offset + 2]
        offset += 3
        if status != 0:
            records.append(AttributeRecord(attr_id=attr_id, status=status))
            continue
        if offset >= len(payload):
            raise FrameDecodeError("Read attributes response missing data type")
        data_type = payload[offset]
        value, offset = _read_value(payload, offset + 1, data_type)
        records.append(AttributeRecord(attr_id=attr_id, data_type=data_type, value=value))
    return records


def parse_report_attributes(payload: bytes) -> list[AttributeRecord]:
    """Records: attr id (2), type (1), value."""
    records = []
    offset = 0
    while offset < len(payload):
        if offset + 3 > len(payload):
            raise FrameDecodeError("Attribute report record truncated")
        attr_id = int.from_bytes(payload[offset : offset + 2], "little")
        data_type = payload[offset + 2]
        value, offset = _read_value(payload, offset + 3, data_type)
        records.append(AttributeRecord(attr_id=attr_id, data_type=data_type, value=value))
    return records


def parse_discover_attributes_response(payload: bytes) -> DiscoverAttributesResult:
    if not payload:
        raise FrameDecodeError("Discover attributes response is empty")
    complete = bool(payload[0])
    body = payload[1:]
    if len(body) % 3:
        raise FrameDecodeError("Discover attributes response has a partial record")
    attributes = [
        (int.from_bytes(body[i : i + 2], "little"), body[i + 2])
        for i in range(0, len(body), 3)
    ]
    return DiscoverAttributesResult(complete=complete, attributes=attributes)


def parse_default_response(payload: bytes) -> tuple[int, int]:
    """Returns (command id being answered, status)."""
    if len(payload) < 2:
        raise FrameDecodeError("Default response truncated")
    return payload[0], payload[1]


def build_read_attributes(seq: int, attr_ids: list[int]) -> bytes:
    payload = b"".join(attr_id.to_bytes(2, "little") for attr_id in attr_ids)
    return build_zcl_frame(seq, Foundation.READ_ATTRIBUTES, payload)


def build_discover_attributes(seq: int, start_attr_id: int = 0, max_attrs: int = 0xFF) -> bytes:
    payload = start_attr_id.to_bytes(2, "little") + bytes([max_attrs])
    return build_zcl_frame(seq, Foundation.DISCOVER_ATTRIBUTES, payload)
