"""Tests for ZDO request building and response parsing."""

import pytest

from conftest import (
    END_DEVICE_CHILD,
    ROUTER_CHILD,
    active_endpoints_payload,
    lqi_payload,
    rtg_payload,
    simple_descriptor_payload,
)
from xbee_zigbee_mcp.errors import FrameDecodeError
from xbee_zigbee_mcp.protocol.frames import BROADCAST_ADDR64, UNKNOWN_ADDR16, ZDO_PROFILE_ID
from xbee_zigbee_mcp.protocol.zdo import (
    DeviceType,
    ManagementLqiResponse,
    Relationship,
    ZdoCluster,
    build_active_endpoints_request,
    build_management_leave_request,
    build_management_lqi_request,
    build_permit_join_request,
    build_simple_descriptor_request,
    describe_cluster,
    parse_active_endpoints_response,
    parse_end_device_announcement,
    parse_management_leave_response,
    parse_management_lqi_response,
    parse_management_rtg_response,
    parse_simple_descriptor_response,
)

NODE64 = "0013a20040b5c6d7"


def test_response_clusters_have_bit_15_set():
    """Each response cluster is its request with bit 15 set."""
    assert ZdoCluster.MANAGEMENT_LQI_RESPONSE == ZdoCluster.MANAGEMENT_LQI_REQUEST | 0x8000
    assert ZdoCluster.ACTIVE_ENDPOINTS_RESPONSE == ZdoCluster.ACTIVE_ENDPOINTS_REQUEST | 0x8000


def test_describe_cluster():
    """Clusters are described by name, unknown ones by number."""
    assert describe_cluster(0x8031) == "Management LQI Response"
    assert describe_cluster(0x1234) == "Unknown ZDO cluster 0x1234"


# ─── REQUESTS ────────────────────────────────────────────────────────


def test_active_endpoints_request():
    """The frame id doubles as the ZDO sequence; addr16 goes little-endian."""
    frame = build_active_endpoints_request(9, NODE64, "1234")
    assert frame.profile_id == ZDO_PROFILE_ID
    assert frame.cluster_id == ZdoCluster.ACTIVE_ENDPOINTS_REQUEST
    assert frame.source_endpoint == 0 and frame.destination_endpoint == 0
    assert frame.data == bytes([9, 0x34, 0x12])
    assert frame.zdo_seq == 9


def test_simple_descriptor_request():
    """Payload: sequence, addr16 little-endian, endpoint."""
    frame = build_simple_descriptor_request(3, NODE64, "1234", 0x0B)
    assert frame.data == bytes([3, 0x34, 0x12, 0x0B])


@pytest.mark.parametrize("endpoint", [0, 0xF1, 0xFF])
def test_simple_descriptor_request_reserved_endpoint(endpoint):
    """Endpoints 0 and 241-255 cannot be described."""
    with pytest.raises(ValueError):
        build_simple_descriptor_request(3, NODE64, "1234", endpoint)


def test_lqi_request_start_index():
    """The LQI request pages through the table from its start index."""
    frame = build_management_lqi_request(5, NODE64, "0000", start_index=4)
    assert frame.cluster_id == 0x0031
    assert frame.data == bytes([5, 4])


def test_leave_request():
    """Payload: sequence, the leaving node's address little-endian, options."""
    frame = build_management_leave_request(6, NODE64, "1234", leave_options=0)
    assert frame.cluster_id == ZdoCluster.MANAGEMENT_LEAVE_REQUEST
    assert frame.destination64 == NODE64
    assert frame.data == bytes([6]) + bytes.fromhex(NODE64)[::-1] + b"\x00"


def test_permit_join_request_is_broadcast():
    """Permit join goes to every router."""
    frame = build_permit_join_request(8, 60)
    assert frame.destination64 == BROADCAST_ADDR64
    assert frame.destination16 == UNKNOWN_ADDR16
    assert frame.cluster_id == ZdoCluster.MANAGEMENT_PERMIT_JOIN_REQUEST
    assert frame.data == bytes([8, 60, 0])


def test_permit_join_request_bounds():
    """The join window is a single byte."""
    with pytest.raises(ValueError):
        build_permit_join_request(1, 256)


# ─── RESPONSES ───────────────────────────────────────────────────────


def test_parse_active_endpoints():
    """The endpoint list follows the status and addr16."""
    resp = parse_active_endpoints_response(b"\x01" + active_endpoints_payload("1234", [1, 0xE8]))
    assert resp.seq == 1
    assert resp.status == 0
    assert resp.addr16 == "1234"
    assert resp.endpoints == [1, 0xE8]


def test_parse_active_endpoints_error_without_body():
    """An error response may stop after the status."""
    resp = parse_active_endpoints_response(bytes([1, 0x80]))
    assert resp.status == 0x80
    assert resp.endpoints == []


def test_parse_simple_descriptor():
    """The descriptor lists the endpoint's profile, device and clusters."""
    data = b"\x02" + simple_descriptor_payload("1234", 1, 0x0104, 0x0100, [0x0000, 0x0006], [0x0019])
    resp = parse_simple_descriptor_response(data)
    assert resp.endpoint == 1
    assert resp.profile_id == 0x0104
    assert resp.device_id == 0x0100
    assert resp.device_version == 1
    assert resp.input_clusters == [0x0000, 0x0006]
    assert resp.output_clusters == [0x0019]


def test_parse_simple_descriptor_truncated():
    """A descriptor shorter than its cluster counts is malformed."""
    data = b"\x02" + simple_descriptor_payload("1234", 1, 0x0104, 0x0100, [0x0006], [])
    with pytest.raises(FrameDecodeError):
        parse_simple_descriptor_response(data[:-3])


def test_parse_lqi_unpacks_neighbor_fields():
    """Neighbor table entries unpack their addresses and packed bit fields."""
    data = b"\x04" + lqi_payload(3, 1, [(NODE64, "1234", ROUTER_CHILD), ("0013a20040000001", "5678", END_DEVICE_CHILD)])
    resp = parse_management_lqi_response(data)
    assert isinstance(resp, ManagementLqiResponse)
    assert (resp.num_entries, resp.start_index, resp.num_entries_this_response) == (3, 1, 2)
    router, end_device = resp.neighbors
    assert router.addr64 == NODE64
    assert router.addr16 == "1234"
    assert router.device_type == DeviceType.ROUTER
    assert router.rx_on_when_idle == 1
    assert router.relationship == Relationship.CHILD
    assert router.permit_joining == 2
    assert router.depth == 1
    assert router.lqi == 200
    assert router.extended_pan_id == "00000000000a1b2c"
    assert end_device.device_type == DeviceType.END_DEVICE
    assert end_device.rx_on_when_idle == 0


def test_parse_lqi_truncated_entry():
    """Entries are fixed size, so a short last entry is malformed."""
    data = b"\x04" + lqi_payload(1, 0, [(NODE64, "1234", ROUTER_CHILD)])
    with pytest.raises(FrameDecodeError):
        parse_management_lqi_response(data[:-1])


def test_parse_lqi_error_status():
    """An LQI error response has no neighbors."""
    resp = parse_management_lqi_response(bytes([4, 0x84]))
    assert resp.status == 0x84
    assert resp.neighbors == []


def test_parse_rtg_flags():
    """Route status and flags share one byte."""
    # status 1 (discovery underway), memory constrained, many-to-one, route record required
    flags = 0x01 | 0x08 | 0x10 | 0x20
    resp = parse_management_rtg_response(b"\x05" + rtg_payload(1, 0, [("1234", flags, "5678")]))
    (route,) = resp.routes
    assert route.destination == "1234"
    assert route.next_hop == "5678"
    assert route.status == 1
    assert route.memory_constrained and route.many_to_one and route.route_record_required


def test_parse_leave_response():
    """A leave response is just sequence and status."""
    resp = parse_management_leave_response(bytes([7, 0]))
    assert (resp.seq, resp.status) == (7, 0)


def test_parse_end_device_announcement():
    """Announcements carry both addresses and the capability byte."""
    data = bytes([0x11]) + bytes.fromhex("1234")[::-1] + bytes.fromhex(NODE64)[::-1] + bytes([0x8E])
    ann = parse_end_device_announcement(data)
    assert ann.addr16 == "1234"
    assert ann.addr64 == NODE64
    assert ann.capability == 0x8E


def test_neighbor_to_dict_names_enums():
    """Neighbor summaries spell out enum values."""
    resp = parse_management_lqi_response(b"\x01" + lqi_payload(1, 0, [(NODE64, "1234", ROUTER_CHILD)]))
    info = resp.neighbors[0].to_dict()
    assert info["device_type"] == "router"
    assert info["relationship"] == "child"
