"""One-line human-readable summaries of frames for debug logging."""

from __future__ import annotations

from .at import AtCommand
from .frames import (
    AtCommandFrame,
    AtCommandResponseFrame,
    ExplicitAddressingFrame,
    ExplicitRxFrame,
    Frame,
    FrameType,
    ModemStatusFrame,
    RouteRecordFrame,
    TransmitStatusFrame,
    ZDO_PROFILE_ID,
    ZHA_PROFILE_ID,
)
from .zcl import cluster_name
from .zdo import describe_cluster

DELIVERY_STATUS: dict[int, str] = {
    0x00: "Success",
    0x01: "MAC ACK failure",
    0x02: "CCA failure",
    0x15: "Invalid destination endpoint",
    0x21: "Network ACK failure",
    0x22: "Not joined to network",
    0x23: "Self-addressed",
    0x24: "Address not found",
    0x25: "Route not found",
    0x26: "Broadcast source failed to hear a neighbor relay",
    0x2B: "Invalid binding table index",
    0x2C: "Resource error (lack of free buffers or timers)",
    0x2D: "Attempted broadcast with APS transmission",
    0x2E: "Attempted unicast with APS transmission, but EE=0",
    0x32: "Resource error (lack of free buffers or timers)",
    0x74: "Data payload too large",
    0x75: "Indirect message unrequested",
}

DISCOVERY_STATUS: dict[int, str] = {
    0x00: "No discovery overhead",
    0x01: "Address discovery",
    0x02: "Route discovery",
    0x03: "Address and route discovery",
    0x40: "Extended timeout discovery",
}

MODEM_STATUS: dict[int, str] = {
    0x00: "Hardware reset",
    0x01: "Watchdog timer reset",
    0x02: "Joined network",
    0x03: "Disassociated",
    0x06: "Coordinator started",
    0x07: "Network security key was updated",
    0x0D: "Voltage supply limit exceeded",
    0x11: "Modem configuration changed while join in progress",
}


def _lookup(table: dict[int, str], value: int) -> str:
    return table.get(value, f"??? 0x{value:02x} ???")


def delivery_status_str(status: int) -> str:
    return _lookup(DELIVERY_STATUS, status)


def discovery_status_str(status: int) -> str:
    return _lookup(DISCOVERY_STATUS, status)


def modem_status_str(status: int) -> str:
    return _lookup(MODEM_STATUS, status)


def _at_name(command: AtCommand | str) -> str:
    if isinstance(command, AtCommand):
        return f"{command.value} ({command.name})"
    return str(command)


def _application(profile_id: int, cluster_id: int) -> str:
    if profile_id == ZDO_PROFILE_ID:
        return f"ZDO {describe_cluster(cluster_id)}"
    if profile_id == ZHA_PROFILE_ID:
        return f"ZHA 0x{cluster_id:04x} {cluster_name(cluster_id) or '?'}"
    return f"profile 0x{profile_id:04x} cluster 0x{cluster_id:04x}"


def describe_frame(frame: Frame) -> str:
    """Summarize a frame on one line."""
    if isinstance(frame, AtCommandFrame):
        verb = "Set" if frame.parameter else "Get"
        return f"AT Command #{frame.frame_id} {verb} {_at_name(frame.command)}"
    if isinstance(frame, AtCommandResponseFrame):
        return (
            f"AT Response #{frame.frame_id} {_at_name(frame.command)} "
            f"status={frame.status} data={frame.data.hex() or '(empty)'}"
        )
    if isinstance(frame, ExplicitAddressingFrame):
        return (
            f"Explicit Tx #{frame.frame_id} {frame.destination64}/{frame.destination16} "
            f"{_application(frame.profile_id, frame.cluster_id)}"
        )
    if isinstance(frame, ExplicitRxFrame):
        return (
            f"Explicit Rx {frame.remote64}/{frame.remote16} "
            f"{_application(frame.profile_id, frame.cluster_id)}"
        )
    if isinstance(frame, TransmitStatusFrame):
        return (
            f"Transmit Status #{frame.frame_id} Remote16: {frame.remote16} "
            f"Retries: {frame.retry_count} "
            f"Delivery: {delivery_status_str(frame.delivery_status)} "
            f"Discovery: {discovery_status_str(frame.discovery_status)}"
        )
    if isinstance(frame, ModemStatusFrame):
        return f"Modem Status: {modem_status_str(frame.status)}"
    if isinstance(frame, RouteRecordFrame):
        return f"Route Record {frame.remote64}/{frame.remote16} via {', '.join(frame.hops) or 'direct'}"
    try:
        name = FrameType(frame.frame_type).name
    except ValueError:
        name = f"Unknown(0x{frame.frame_type:02x})"
    return name
