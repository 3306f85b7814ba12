"""Shared fixtures: a fake XBee radio sitting in front of a simulated mesh.

The fake decodes every frame the adapter writes and, when asked to
``settle()``, answers whatever the adapter is waiting for: AT queries
from its register table, transmit status for every transmission, and
ZDO requests and attribute reads from the simulated devices. Responses
are only fed back from ``settle()``, never from inside ``write()``, the
same way a real radio replies after the write has returned. A device's
response is fed before the transmit status unless ``status_first`` is
set.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field

import pytest

from xbee_zigbee_mcp.driver.adapter import ZigbeeAdapter
from xbee_zigbee_mcp.driver.manager import EventRecorder
from xbee_zigbee_mcp.protocol.at import AtCommand
from xbee_zigbee_mcp.protocol.frames import (
    BROADCAST_ADDR64,
    ZDO_PROFILE_ID,
    ZHA_PROFILE_ID,
    AtCommandFrame,
    AtCommandResponseFrame,
    ExplicitAddressingFrame,
    ExplicitRxFrame,
    FrameType,
    TransmitStatusFrame,
    decode_frame,
    encode_frame,
)
from xbee_zigbee_mcp.protocol.framing import parse_api_frame
from xbee_zigbee_mcp.protocol.zcl import (
    FC_SERVER_TO_CLIENT,
    TYPE_BOOLEAN,
    TYPE_UINT8,
    AttributeRecord,
    Foundation,
    parse_zcl_frame,
)
from xbee_zigbee_mcp.protocol.zdo import ZdoCluster

COORDINATOR_ADDR64 = "0013a20040a1b2c3"
PAN_ID64 = "00000000000a1b2c"

# A radio that already has every setting the adapter wants.
RADIO_DEFAULTS = {
    AtCommand.DEVICE_TYPE_IDENTIFIER: bytes.fromhex("0003000c"),
    AtCommand.CONFIGURED_64_BIT_PAN_ID: bytes.fromhex(PAN_ID64),
    AtCommand.SERIAL_NUMBER_HIGH: bytes.fromhex("0013a200"),
    AtCommand.SERIAL_NUMBER_LOW: bytes.fromhex("40a1b2c3"),
    AtCommand.NETWORK_ADDR_16_BIT: bytes.fromhex("0000"),
    AtCommand.OPERATING_64_BIT_PAN_ID: bytes.fromhex(PAN_ID64),
    AtCommand.OPERATING_16_BIT_PAN_ID: bytes.fromhex("5678"),
    AtCommand.OPERATING_CHANNEL: bytes([0x0F]),
    AtCommand.SCAN_CHANNELS: bytes.fromhex("1ffe"),
    AtCommand.NODE_IDENTIFIER: b"Gateway",
    AtCommand.NUM_REMAINING_CHILDREN: bytes([0x0E]),
    AtCommand.ZIGBEE_STACK_PROFILE: bytes([2]),
    AtCommand.API_OPTIONS: bytes([1]),
    AtCommand.ENCRYPTION_ENABLED: bytes([1]),
    AtCommand.ENCRYPTION_OPTIONS: bytes([2]),
}

# Packed LQI byte: device type (bits 0-1), rx on when idle (2-3), relationship (4-6).
ROUTER_CHILD = 0x01 | (1 << 2) | (1 << 4)
END_DEVICE_CHILD = 0x02 | (0 << 2) | (1 << 4)

# Delivery status the radio reports for an unreachable destination.
ADDRESS_NOT_FOUND = 0x24
# ZCL status for an attribute the device does not have.
UNSUPPORTED_ATTRIBUTE = 0x86

# ZCL data type -> struct format for the values simulated devices send.
ZCL_FORMATS = {TYPE_BOOLEAN: "<?", TYPE_UINT8: "<B", 0x21: "<H"}


# ─── PAYLOAD BUILDERS ─────────────────────────────────────────────────
# ZDO payloads without the leading sequence byte.


def le16(addr16: str) -> bytes:
    return bytes.fromhex(addr16)[::-1]


def le64(addr64: str) -> bytes:
    return bytes.fromhex(addr64)[::-1]


def lqi_payload(num_entries: int, start_index: int, entries: list[tuple[str, str, int]]) -> bytes:
    """entries: (addr64, addr16, packed device type/relationship byte)."""
    body = bytes([0, num_entries, start_index, len(entries)])
    for addr64, addr16, packed in entries:
        body += le64(PAN_ID64) + le64(addr64) + le16(addr16) + bytes([packed, 0x02, 1, 200])
    return body


def rtg_payload(num_entries: int, start_index: int, entries: list[tuple[str, int, str]]) -> bytes:
    """entries: (destination16, flags, next hop16)."""
    body = bytes([0, num_entries, start_index, len(entries)])
    for destination, flags, next_hop in entries:
        body += le16(destination) + bytes([flags]) + le16(next_hop)
    return body


def active_endpoints_payload(addr16: str, endpoints: list[int], status: int = 0) -> bytes:
    return bytes([status]) + le16(addr16) + bytes([len(endpoints)] + endpoints)


def simple_descriptor_payload(
    addr16: str,
    endpoint: int,
    profile_id: int,
    device_id: int,
    input_clusters: list[int],
    output_clusters: list[int],
) -> bytes:
    descriptor = (
        bytes([endpoint])
        + profile_id.to_bytes(2, "little")
        + device_id.to_bytes(2, "little")
        + bytes([0x01, len(input_clusters)])
        + b"".join(c.to_bytes(2, "little") for c in input_clusters)
        + bytes([len(output_clusters)])
        + b"".join(c.to_bytes(2, "little") for c in output_clusters)
    )
    return bytes([0]) + le16(addr16) + bytes([len(descriptor)]) + descriptor


def zdo_rx(remote64: str, remote16: str, cluster_id: int, data: bytes) -> ExplicitRxFrame:
    return ExplicitRxFrame(
        remote64=remote64,
        remote16=remote16,
        source_endpoint=0,
        destination_endpoint=0,
        cluster_id=cluster_id,
        profile_id=ZDO_PROFILE_ID,
        data=data,
    )


def encode_value(data_type: int, value: object) -> bytes:
    return struct.pack(ZCL_FORMATS[data_type], value)


def build_report_attributes(seq: int, records: list[AttributeRecord]) -> bytes:
    """A server-to-client attribute report, as a device sends it."""
    payload = b"".join(
        r.attr_id.to_bytes(2, "little") + bytes([r.data_type]) + encode_value(r.data_type, r.value)
        for r in records
    )
    return bytes([FC_SERVER_TO_CLIENT, seq & 0xFF, Foundation.REPORT_ATTRIBUTES]) + payload


# ─── SIMULATED MESH ──────────────────────────────────────────────────


@dataclass
class FakeDevice:
    """A node in the simulated mesh."""

    addr64: str
    addr16: str
    # (addr64, addr16, packed byte)
    neighbors: list[tuple[str, str, int]] = field(default_factory=list)
    # (destination16, flags, next hop16)
    routes: list[tuple[str, int, str]] = field(default_factory=list)
    # endpoint -> (profile id, device id, input clusters, output clusters)
    endpoints: dict[int, tuple[int, int, list[int], list[int]]] = field(default_factory=dict)
    page_size: int = 2
    answers_active_endpoints: bool = True
    # Request clusters whose delivery to this device fails.
    undeliverable: set[int] = field(default_factory=set)
    # (endpoint, cluster, attribute) -> (data type, value), for read attributes
    attributes: dict[tuple[int, int, int], tuple[int, object]] = field(default_factory=dict)


class FakeXBee:
    """A TransceiverPort that plays the local radio and the mesh behind it."""

    def __init__(self, values: dict | None = None) -> None:
        self.values = dict(RADIO_DEFAULTS if values is None else values)
        self.sent: list = []
        self.closed = False
        self.adapter: ZigbeeAdapter | None = None
        self.delivery_status = 0
        # Report transmit status before the response, as a real radio does.
        self.status_first = False
        self.devices: dict[str, FakeDevice] = {
            COORDINATOR_ADDR64: FakeDevice(COORDINATOR_ADDR64, "0000"),
        }

    # ─── TransceiverPort ────────────────────────────────────────────────

    def write(self, data: bytes) -> None:
        frame_data = parse_api_frame(data)
        assert frame_data is not None, f"Adapter wrote a malformed frame: {data.hex()}"
        self.sent.append(decode_frame(frame_data))

    def close(self) -> None:
        self.closed = True

    # ─── Inspection ─────────────────────────────────────────────────────

    @property
    def coordinator(self) -> FakeDevice:
        return self.devices[COORDINATOR_ADDR64]

    def add_device(self, device: FakeDevice) -> FakeDevice:
        self.devices[device.addr64] = device
        return device

    def requests(self, cluster_id: int, destination64: str | None = None) -> list[ExplicitAddressingFrame]:
        return [
            f
            for f in self.sent
            if isinstance(f, ExplicitAddressingFrame)
            and f.cluster_id == cluster_id
            and (destination64 is None or f.destination64 == destination64)
        ]

    def at_writes(self, start: int = 0) -> list[AtCommandFrame]:
        return [f for f in self.sent[start:] if isinstance(f, AtCommandFrame) and f.parameter]

    # ─── Replies ────────────────────────────────────────────────────────

    def receive(self, frame) -> None:
        self.adapter.on_bytes(encode_frame(frame))

    def settle(self, limit: int = 1000) -> None:
        """Answer outstanding waits until the adapter is idle or stuck."""
        for _ in range(limit):
            wait = self.adapter.run_loop.outstanding_wait
            if wait is None:
                return
            frame_type = wait.fields.get("frame_type")
            if frame_type == FrameType.AT_COMMAND_RESPONSE:
                self._answer_at(wait.fields["command"])
            elif frame_type == FrameType.ZIGBEE_TRANSMIT_STATUS:
                self._deliver(wait.fields["frame_id"])
            elif frame_type == FrameType.ZIGBEE_EXPLICIT_RX:
                request = self._zdo_request(wait.fields["zdo_seq"])
                if request is None or not self._answer_zdo(request):
                    return
            else:
                return
        raise AssertionError("Adapter never settled")

    def _answer_at(self, command: AtCommand) -> None:
        request = next(
            f for f in reversed(self.sent) if isinstance(f, AtCommandFrame) and f.command == command
        )
        data = b""
        if request.parameter:
            self.values[command] = request.parameter
        else:
            data = self.values.get(command, b"")
        self.receive(AtCommandResponseFrame(frame_id=request.frame_id, command=command, status=0, data=data))

    def _deliver(self, frame_id: int) -> None:
        request = next(
            (f for f in reversed(self.sent) if isinstance(f, ExplicitAddressingFrame) and f.frame_id == frame_id),
            None,
        )
        status = self._delivery_status(request)
        answer = request is not None and status == 0
        if answer and not self.status_first:
            self._answer(request)
        self.receive(
            TransmitStatusFrame(
                frame_id=frame_id,
                remote16=request.destination16 if request is not None else "fffe",
                retry_count=0,
                delivery_status=status,
                discovery_status=0,
            )
        )
        if answer and self.status_first:
            self._answer(request)

    def _delivery_status(self, request: ExplicitAddressingFrame | None) -> int:
        if self.delivery_status or request is None:
            return self.delivery_status
        device = self.devices.get(request.destination64)
        if device is None:
            return 0 if request.destination64 == BROADCAST_ADDR64 else ADDRESS_NOT_FOUND
        if request.cluster_id in device.undeliverable:
            return ADDRESS_NOT_FOUND
        return 0

    def _answer(self, request: ExplicitAddressingFrame) -> None:
        if request.profile_id == ZDO_PROFILE_ID:
            self._answer_zdo(request)
        elif request.profile_id == ZHA_PROFILE_ID:
            self._answer_zha(request)

    def _zdo_request(self, seq: int) -> ExplicitAddressingFrame | None:
        return next(
            (
                f
                for f in reversed(self.sent)
                if isinstance(f, ExplicitAddressingFrame) and f.profile_id == ZDO_PROFILE_ID and f.frame_id == seq
            ),
            None,
        )

    def _answer_zdo(self, request: ExplicitAddressingFrame) -> bool:
        payload = self._mesh_answer(request)
        if payload is None:
            return False
        self.receive(
            zdo_rx(
                request.destination64,
                request.destination16,
                request.cluster_id | 0x8000,
                bytes([request.frame_id]) + payload,
            )
        )
        return True

    def _answer_zha(self, request: ExplicitAddressingFrame) -> None:
        """Answer read attributes from the device's attribute table."""
        device = self.devices.get(request.destination64)
        zcl = parse_zcl_frame(request.data)
        if device is None or zcl.is_cluster_specific or zcl.command_id != Foundation.READ_ATTRIBUTES:
            return
        records = b""
        for i in range(0, len(zcl.payload), 2):
            attr_id = int.from_bytes(zcl.payload[i : i + 2], "little")
            key = (request.destination_endpoint, request.cluster_id, attr_id)
            if key not in device.attributes:
                records += attr_id.to_bytes(2, "little") + bytes([UNSUPPORTED_ATTRIBUTE])
                continue
            data_type, value = device.attributes[key]
            records += attr_id.to_bytes(2, "little") + bytes([0, data_type]) + encode_value(data_type, value)
        self.receive(
            ExplicitRxFrame(
                remote64=device.addr64,
                remote16=device.addr16,
                source_endpoint=request.destination_endpoint,
                destination_endpoint=request.source_endpoint,
                cluster_id=request.cluster_id,
                profile_id=ZHA_PROFILE_ID,
                data=bytes([FC_SERVER_TO_CLIENT, zcl.seq, Foundation.READ_ATTRIBUTES_RESPONSE]) + records,
            )
        )

    def _mesh_answer(self, request: ExplicitAddressingFrame) -> bytes | None:
        device = self.devices.get(request.destination64)
        if device is None:
            return None
        cluster = request.cluster_id
        if cluster == ZdoCluster.MANAGEMENT_LQI_REQUEST:
            start = request.data[1]
            page = device.neighbors[start : start + device.page_size]
            return lqi_payload(len(device.neighbors), start, page)
        if cluster == ZdoCluster.MANAGEMENT_RTG_REQUEST:
            start = request.data[1]
            page = device.routes[start : start + device.page_size]
            return rtg_payload(len(device.routes), start, page)
        if cluster == ZdoCluster.ACTIVE_ENDPOINTS_REQUEST:
            if not device.answers_active_endpoints:
                return None
            return active_endpoints_payload(device.addr16, sorted(device.endpoints))
        if cluster == ZdoCluster.SIMPLE_DESCRIPTOR_REQUEST:
            endpoint = request.data[3]
            profile_id, device_id, inputs, outputs = device.endpoints[endpoint]
            return simple_descriptor_payload(device.addr16, endpoint, profile_id, device_id, inputs, outputs)
        if cluster == ZdoCluster.MANAGEMENT_LEAVE_REQUEST:
            return bytes([0])
        return None


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ─── FIXTURES ────────────────────────────────────────────────────────


@pytest.fixture
def radio():
    return FakeXBee()


@pytest.fixture
def events():
    return EventRecorder()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def adapter(radio, events, clock):
    adapter = ZigbeeAdapter(radio, events, clock=clock)
    radio.adapter = adapter
    return adapter


@pytest.fixture
def started(adapter, radio):
    """An adapter that has read its settings and finished its first scan."""
    adapter.start()
    radio.settle()
    assert adapter.ready
    assert adapter.run_loop.idle
    return adapter


def event_names(events: EventRecorder, name: str) -> list[dict]:
    return [e for e in events.events if e["event"] == name]
