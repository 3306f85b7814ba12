"""Zigbee Device Object (ZDO) requests and response parsing.

ZDO frames travel on profile 0x0000 between endpoint 0 of each node.
The first payload byte is the transaction sequence number; requests
built here reuse the API frame id for it so that a response can be
matched to the request that caused it. All multi-byte ZDO fields are
little-endian on the wire.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum

from ..errors import FrameDecodeError
from .frames import (
    BROADCAST_ADDR64,
    UNKNOWN_ADDR16,
    ZDO_PROFILE_ID,
    ExplicitAddressingFrame,
)

ZDO_ENDPOINT = 0


class ZdoCluster(IntEnum):
    """ZDO cluster ids. Responses are the request id with bit 15 set."""

    NODE_DESCRIPTOR_REQUEST = 0x0002
    SIMPLE_DESCRIPTOR_REQUEST = 0x0004
    ACTIVE_ENDPOINTS_REQUEST = 0x0005
    END_DEVICE_ANNOUNCEMENT = 0x0013
    MANAGEMENT_LQI_REQUEST = 0x0031
    MANAGEMENT_RTG_REQUEST = 0x0032
    MANAGEMENT_LEAVE_REQUEST = 0x0034
    MANAGEMENT_PERMIT_JOIN_REQUEST = 0x0036

    NODE_DESCRIPTOR_RESPONSE = 0x8002
    SIMPLE_DESCRIPTOR_RESPONSE = 0x8004
    ACTIVE_ENDPOINTS_RESPONSE = 0x8005
    MANAGEMENT_LQI_RESPONSE = 0x8031
    MANAGEMENT_RTG_RESPONSE = 0x8032
    MANAGEMENT_LEAVE_RESPONSE = 0x8034
    MANAGEMENT_PERMIT_JOIN_RESPONSE = 0x8036


CLUSTER_DESCRIPTIONS: dict[int, str] = {
    ZdoCluster.NODE_DESCRIPTOR_REQUEST: "Node Descriptor Request",
    ZdoCluster.SIMPLE_DESCRIPTOR_REQUEST: "Simple Descriptor Request",
    ZdoCluster.ACTIVE_ENDPOINTS_REQUEST: "Active Endpoints Request",
    ZdoCluster.END_DEVICE_ANNOUNCEMENT: "End Device Announcement",
    ZdoCluster.MANAGEMENT_LQI_REQUEST: "Management LQI Request",
    ZdoCluster.MANAGEMENT_RTG_REQUEST: "Management Routing Request",
    ZdoCluster.MANAGEMENT_LEAVE_REQUEST: "Management Leave Request",
    ZdoCluster.MANAGEMENT_PERMIT_JOIN_REQUEST: "Management Permit Join Request",
    ZdoCluster.NODE_DESCRIPTOR_RESPONSE: "Node Descriptor Response",
    ZdoCluster.SIMPLE_DESCRIPTOR_RESPONSE: "Simple Descriptor Response",
    ZdoCluster.ACTIVE_ENDPOINTS_RESPONSE: "Active Endpoints Response",
    ZdoCluster.MANAGEMENT_LQI_RESPONSE: "Management LQI Response",
    ZdoCluster.MANAGEMENT_RTG_RESPONSE: "Management Routing Response",
    ZdoCluster.MANAGEMENT_LEAVE_RESPONSE: "Management Leave Response",
    ZdoCluster.MANAGEMENT_PERMIT_JOIN_RESPONSE: "Management Permit Join Response",
}


def describe_cluster(cluster_id: int) -> str:
    return CLUSTER_DESCRIPTIONS.get(cluster_id, f"Unknown ZDO cluster 0x{cluster_id:04x}")


class DeviceType(IntEnum):
    COORDINATOR = 0
    ROUTER = 1
    END_DEVICE = 2
    UNKNOWN = 3


class Relationship(IntEnum):
    PARENT = 0
    CHILD = 1
    SIBLING = 2
    NONE = 3
    PREVIOUS_CHILD = 4


# ─── TABLE RECORDS ───────────────────────────────────────────────────


@dataclass
class Neighbor:
    """One entry of a node's neighbor table (management LQI)."""

    addr64: str
    addr16: str
    device_type: int = DeviceType.UNKNOWN
    rx_on_when_idle: int = 2
    relationship: int = Relationship.NONE
    permit_joining: int = 2
    depth: int = 0
    lqi: int = 0
    extended_pan_id: str = "0000000000000000"

    def to_dict(self) -> dict:
        return {
            "addr64": self.addr64,
            "addr16": self.addr16,
            "device_type": _enum_name(DeviceType, self.device_type),
            "relationship": _enum_name(Relationship, self.relationship),
            "permit_joining": self.permit_joining,
            "depth": self.depth,
            "lqi": self.lqi,
        }


@dataclass
class RoutingEntry:
    """One entry of a node's routing table (management RTG)."""

    destination: str
    next_hop: str
    status: int = 0
    memory_constrained: bool = False
    many_to_one: bool = False
    route_record_required: bool = False

    def to_dict(self) -> dict:
        return {
            "destination": self.destination,
            "next_hop": self.next_hop,
            "status": self.status,
            "memory_constrained": self.memory_constrained,
            "many_to_one": self.many_to_one,
            "route_record_required": self.route_record_required,
        }


def _enum_name(enum_cls: type[IntEnum], value: int) -> str:
    try:
        return enum_cls(value).name.lower()
    except ValueError:
        return str(value)


# ─── RESPONSES ───────────────────────────────────────────────────────


@dataclass
class ActiveEndpointsResponse:
    seq: int
    status: int
    addr16: str
    endpoints: list[int] = field(default_factory=list)


@dataclass
class SimpleDescriptorResponse:
    seq: int
    status: int
    addr16: str
    endpoint: int = 0
    profile_id: int = 0
    device_id: int = 0
    device_version: int = 0
    input_clusters: list[int] = field(default_factory=list)
    output_clusters: list[int] = field(default_factory=list)


@dataclass
class ManagementLqiResponse:
    seq: int
    status: int
    num_entries: int = 0
    start_index: int = 0
    neighbors: list[Neighbor] = field(default_factory=list)

    @property
    def num_entries_this_response(self) -> int:
        return len(self.neighbors)


@dataclass
class ManagementRtgResponse:
    seq: int
    status: int
    num_entries: int = 0
    start_index: int = 0
    routes: list[RoutingEntry] = field(default_factory=list)

    @property
    def num_entries_this_response(self) -> int:
        return len(self.routes)


@dataclass
class ManagementLeaveResponse:
    seq: int
    status: int


@dataclass
class EndDeviceAnnouncement:
    seq: int
    addr16: str
    addr64: str
    capability: int


class _Cursor:
    """Sequential little-endian reader over a ZDO payload."""

    def __init__(self, data: bytes, what: str) -> None:
        self._data = data
        self._pos = 0
        self._what = what

    def _take(self, size: int) -> bytes:
        if self._pos + size > len(self._data):
            raise FrameDecodeError(
                f"{self._what} truncated at byte {self._pos} (need {size} more)"
            )
        chunk = self._data[self._pos : self._pos + size]
        self._pos += size
        return chunk

    def u8(self) -> int:
        return self._take(1)[0]

    def u16(self) -> int:
        return int.from_bytes(self._take(2), "little")

    def addr16(self) -> str:
        return self._take(2)[::-1].hex()

    def addr64(self) -> str:
        return self._take(8)[::-1].hex()

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos


def parse_active_endpoints_response(data: bytes) -> ActiveEndpointsResponse:
    cur = _Cursor(data, "Active endpoints response")
    seq, status = cur.u8(), cur.u8()
    if status != 0 and cur.remaining < 2:
        return ActiveEndpointsResponse(seq=seq, status=status, addr16=UNKNOWN_ADDR16)
    addr16 = cur.addr16()
    count = cur.u8() if cur.remaining else 0
    endpoints = [cur.u8() for _ in range(count)]
    return ActiveEndpointsResponse(seq=seq, status=status, addr16=addr16, endpoints=endpoints)


def parse_simple_descriptor_response(data: bytes) -> SimpleDescriptorResponse:
    cur = _Cursor(data, "Simple descriptor response")
    seq, status = cur.u8(), cur.u8()
    if status != 0 and cur.remaining < 2:
        return SimpleDescriptorResponse(seq=seq, status=status, addr16=UNKNOWN_ADDR16)
    addr16 = cur.addr16()
    length = cur.u8() if cur.remaining else 0
    if status != 0 or length == 0:
        return SimpleDescriptorResponse(seq=seq, status=status, addr16=addr16)
    endpoint = cur.u8()
    profile_id = cur.u16()
    device_id = cur.u16()
    device_version = cur.u8() & 0x0F
    input_clusters = [cur.u16() for _ in range(cur.u8())]
    output_clusters = [cur.u16() for _ in range(cur.u8())]
    return SimpleDescriptorResponse(
        seq=seq,
        status=status,
        addr16=addr16,
        endpoint=endpoint,
        profile_id=profile_id,
        device_id=device_id,
        device_version=device_version,
        input_clusters=input_clusters,
        output_clusters=output_clusters,
    )


def parse_management_lqi_response(data: bytes) -> ManagementLqiResponse:
    """Parse a neighbor table page.

    Each 22-byte entry: extended PAN id (8), IEEE address (8), network
    address (2), a byte packing device type (bits 0-1), receiver-on-when
    -idle (bits 2-3) and relationship (bits 4-6), a permit-joining byte
    (bits 0-1), depth and LQI.
    """
    cur = _Cursor(data, "Management LQI response")
    seq, status = cur.u8(), cur.u8()
    if status != 0:
        return ManagementLqiResponse(seq=seq, status=status)
    num_entries = cur.u8()
    start_index = cur.u8()
    count = cur.u8()
    neighbors = []
    for _ in range(count):
        extended_pan_id = cur.addr64()
        addr64 = cur.addr64()
        addr16 = cur.addr16()
        packed = cur.u8()
        permit = cur.u8()
        depth = cur.u8()
        lqi = cur.u8()
        neighbors.append(
            Neighbor(
                addr64=addr64,
                addr16=addr16,
                device_type=packed & 0x03,
                rx_on_when_idle=(packed >> 2) & 0x03,
                relationship=(packed >> 4) & 0x07,
                permit_joining=permit & 0x03,
                depth=depth,
                lqi=lqi,
                extended_pan_id=extended_pan_id,
            )
        )
    return ManagementLqiResponse(
        seq=seq,
        status=status,
        num_entries=num_entries,
        start_index=start_index,
        neighbors=neighbors,
    )


def parse_management_rtg_response(data: bytes) -> ManagementRtgResponse:
    cur = _Cursor(data, "Management RTG response")
    seq, status = cur.u8(), cur.u8()
    if status != 0:
        return ManagementRtgResponse(seq=seq, status=status)
    num_entries = cur.u8()
    start_index = cur.u8()
    count = cur.u8()
    routes = []
    for _ in range(count):
        destination = cur.addr16()
        flags = cur.u8()
        next_hop = cur.addr16()
        routes.append(
            RoutingEntry(
                destination=destination,
                next_hop=next_hop,
                status=flags & 0x07,
                memory_constrained=bool(flags & 0x08),
                many_to_one=bool(flags & 0x10),
                route_record_required=bool(flags & 0x20),
            )
        )
    return ManagementRtgResponse(
        seq=seq,
        status=status,
        num_entries=num_entries,
        start_index=start_index,
        routes=routes,
    )


def parse_management_leave_response(data: bytes) -> ManagementLeaveResponse:
    cur = _Cursor(data, "Management leave response")
    return ManagementLeaveResponse(seq=cur.u8(), status=cur.u8())


def parse_end_device_announcement(data: bytes) -> EndDeviceAnnouncement:
    cur = _Cursor(data, "End device announcement")
    seq = cur.u8()
    addr16 = cur.addr16()
    addr64 = cur.addr64()
    capability = cur.u8() if cur.remaining else 0
    return EndDeviceAnnouncement(seq=seq, addr16=addr16, addr64=addr64, capability=capability)


# ─── REQUESTS ────────────────────────────────────────────────────────


def _le16(addr16: str) -> bytes:
    return bytes.fromhex(addr16)[::-1]


def _le64(addr64: str) -> bytes:
    return bytes.fromhex(addr64)[::-1]


def build_zdo_frame(
    frame_id: int,
    destination64: str,
    destination16: str,
    cluster_id: int,
    payload: bytes = b"",
) -> ExplicitAddressingFrame:
    """Build a ZDO request; the frame id doubles as the ZDO sequence."""
    return ExplicitAddressingFrame(
        frame_id=frame_id,
        destination64=destination64,
        destination16=destination16,
        source_endpoint=ZDO_ENDPOINT,
        destination_endpoint=ZDO_ENDPOINT,
        cluster_id=cluster_id,
        profile_id=ZDO_PROFILE_ID,
        data=bytes([frame_id]) + payload,
    )


def build_active_endpoints_request(
    frame_id: int, destination64: str, destination16: str
) -> ExplicitAddressingFrame:
    return build_zdo_frame(
        frame_id,
        destination64,
        destination16,
        ZdoCluster.ACTIVE_ENDPOINTS_REQUEST,
        _le16(destination16),
    )


def build_simple_descriptor_request(
    frame_id: int, destination64: str, destination16: str, endpoint: int
) -> ExplicitAddressingFrame:
    if not 0 < endpoint <= 0xF0:
        raise ValueError(f"Endpoint must be 1-240, got {endpoint}")
    return build_zdo_frame(
        frame_id,
        destination64,
        destination16,
        ZdoCluster.SIMPLE_DESCRIPTOR_REQUEST,
        _le16(destination16) + bytes([endpoint]),
    )


def build_management_lqi_request(
    frame_id: int, destination64: str, destination16: str, start_index: int = 0
) -> ExplicitAddressingFrame:
    return build_zdo_frame(
        frame_id,
        destination64,
        destination16,
        ZdoCluster.MANAGEMENT_LQI_REQUEST,
        bytes([start_index & 0xFF]),
    )


def build_management_rtg_request(
    frame_id: int, destination64: str, destination16: str, start_index: int = 0
) -> ExplicitAddressingFrame:
    return build_zdo_frame(
        frame_id,
        destination64,
        destination16,
        ZdoCluster.MANAGEMENT_RTG_REQUEST,
        bytes([start_index & 0xFF]),
    )


def build_management_leave_request(
    frame_id: int, destination64: str, destination16: str, leave_options: int = 0
) -> ExplicitAddressingFrame:
    """Ask ``destination64`` to leave the network."""
    return build_zdo_frame(
        frame_id,
        destination64,
        destination16,
        ZdoCluster.MANAGEMENT_LEAVE_REQUEST,
        _le64(destination64) + bytes([leave_options]),
    )


def build_permit_join_request(
    frame_id: int,
    permit_duration: int,
    trust_center_significance: int = 0,
    destination64: str = BROADCAST_ADDR64,
    destination16: str = UNKNOWN_ADDR16,
) -> ExplicitAddressingFrame:
    """Open (or with 0, close) the join window; broadcast by default."""
    if not 0 <= permit_duration <= 255:
        raise ValueError(f"Permit duration must be 0-255, got {permit_duration}")
    return build_zdo_frame(
        frame_id,
        destination64,
        destination16,
        ZdoCluster.MANAGEMENT_PERMIT_JOIN_REQUEST,
        bytes([permit_duration, trust_center_significance]),
    )
