"""MCP server entry point for an XBee Zigbee adapter.

Exposes tools, resources, and prompts via the Model Context Protocol
using the official Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any

from mcp.server.fastmcp import FastMCP

from .config import load_config
from .driver.adapter import ZigbeeAdapter
from .driver.manager import EventRecorder
from .errors import AdapterStartError, TransportError
from .models.node import Node
from .transport.serial_connection import SerialConnection

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "xbee-zigbee",
    instructions="MCP server for a Zigbee mesh behind a Digi XBee radio",
)

SET_PROPERTY_TIMEOUT_S = 5.0

# Global connection state
_connection: SerialConnection | None = None
_adapter: ZigbeeAdapter | None = None
_events = EventRecorder()


def _get_adapter() -> ZigbeeAdapter:
    """Get the running adapter, raising if not connected."""
    if _adapter is None or _connection is None or not _connection.connected:
        raise RuntimeError("Not connected to an adapter. Use the 'connect' tool first.")
    return _adapter


def _get_node(adapter: ZigbeeAdapter, node_id: str) -> Node:
    node = adapter.find_node(node_id)
    if node is None:
        raise ValueError(f"Unknown node '{node_id}'")
    return node


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def connect(port: str | None = None) -> dict[str, Any]:
    """Open the XBee radio and start the adapter.

    Without a port, the configured port is used, or else the first
    attached Digi radio (FTDI 0403:6001, manufacturer "Digi"). The
    adapter then reads the radio's settings, configures it if needed
    and scans the network in the background.

    Args:
        port: Serial device path, e.g. /dev/ttyUSB0.
    """
    global _connection, _adapter
    if _connection is not None and _connection.connected:
        return {"connected": True, "message": "Already connected", "port": _connection.device}

    config = load_config()
    connection = SerialConnection(baud_rate=config.baud_rate)
    adapter = ZigbeeAdapter(connection, _events, config)
    connection.on_bytes = adapter.on_bytes
    connection.on_idle = adapter.poll
    device = connection.open(port or config.port)

    try:
        with connection.lock:
            adapter.start()
    except TransportError as e:
        connection.close()
        raise AdapterStartError(f"Adapter failed to start on {device}: {e}") from e

    _connection = connection
    _adapter = adapter
    return {"connected": True, "port": device, "baud_rate": config.baud_rate}


@mcp.tool()
def disconnect() -> dict[str, bool]:
    """Stop the adapter and close the serial port."""
    global _connection, _adapter
    if _adapter is not None:
        _adapter.close()
    elif _connection is not None:
        _connection.close()
    _connection = None
    _adapter = None
    return {"disconnected": True}


@mcp.tool()
def get_adapter_info() -> dict[str, Any]:
    """Adapter id, radio settings (PAN ids, channel, serial number) and queue state."""
    adapter = _get_adapter()
    with _connection.lock:
        return {**adapter.status(), "settings": adapter.settings.to_dict()}


# ─── NODE TOOLS ──────────────────────────────────────────────────────

@mcp.tool()
def list_nodes() -> dict[str, Any]:
    """List every node on the mesh with its addresses, endpoints and properties."""
    adapter = _get_adapter()
    with _connection.lock:
        nodes = [node.to_dict() for node in adapter.network]
    return {"nodes": nodes, "count": len(nodes)}


@mcp.tool()
def get_node(node_id: str) -> dict[str, Any]:
    """Full detail for one node: endpoint descriptors, neighbor and routing tables.

    Args:
        node_id: "zb-<addr64>" or the bare 64-bit address.
    """
    adapter = _get_adapter()
    with _connection.lock:
        return _get_node(adapter, node_id).to_dict(detail=True)


@mcp.tool()
def rescan() -> dict[str, Any]:
    """Re-read the coordinator's neighbor and routing tables and re-query every node."""
    adapter = _get_adapter()
    with _connection.lock:
        adapter.rescan()
    return {"rescan": "queued"}


@mcp.tool()
def set_property(node_id: str, name: str, value: Any) -> dict[str, Any]:
    """Set a node property ("on" or "level") and wait for delivery.

    Args:
        node_id: "zb-<addr64>" or the bare 64-bit address.
        name: Property name.
        value: true/false for "on", 0-254 for "level".
    """
    adapter = _get_adapter()
    with _connection.lock:
        pending = adapter.set_property(_get_node(adapter, node_id), name, value)
    try:
        result = pending.future.result(timeout=SET_PROPERTY_TIMEOUT_S)
    except FutureTimeoutError:
        return {"node": node_id, "name": name, "value": pending.value, "pending": True}
    except TransportError as e:
        return {"node": node_id, "name": name, "error": str(e)}
    return {"node": node_id, "name": name, "value": result, "pending": False}


# ─── PAIRING TOOLS ───────────────────────────────────────────────────

@mcp.tool()
def permit_join(seconds: int) -> dict[str, Any]:
    """Open the network to new devices for a number of seconds (0 closes it).

    Args:
        seconds: Join window length, 0-255.
    """
    if not 0 <= seconds <= 255:
        return {"error": "Join window must be 0-255 seconds"}
    adapter = _get_adapter()
    with _connection.lock:
        adapter.permit_join(seconds)
    return {"permit_join": seconds}


@mcp.tool()
def start_pairing(timeout_seconds: int = 60) -> dict[str, Any]:
    """Start pairing mode; it ends when a device announces itself or the window closes.

    Args:
        timeout_seconds: Join window length, 0-255 (default 60).
    """
    if not 0 <= timeout_seconds <= 255:
        return {"error": "Pairing timeout must be 0-255 seconds"}
    adapter = _get_adapter()
    with _connection.lock:
        adapter.start_pairing(timeout_seconds)
    return {"pairing": True, "timeout_seconds": timeout_seconds}


@mcp.tool()
def cancel_pairing() -> dict[str, Any]:
    """Close the join window and leave pairing mode."""
    adapter = _get_adapter()
    with _connection.lock:
        adapter.cancel_pairing()
    return {"pairing": False}


@mcp.tool()
def remove_node(node_id: str) -> dict[str, Any]:
    """Ask a node to leave the network. It disappears once it confirms.

    Args:
        node_id: "zb-<addr64>" or the bare 64-bit address.
    """
    adapter = _get_adapter()
    with _connection.lock:
        node = _get_node(adapter, node_id)
        if node.is_coordinator:
            return {"error": "The coordinator cannot be removed"}
        adapter.remove_node(node)
    return {"node": node.id, "leave_requested": True}


@mcp.tool()
def recent_events(limit: int = 50) -> dict[str, Any]:
    """Recent adapter events: adapter ready, devices added/removed, property changes.

    Args:
        limit: Maximum number of events, newest last (default 50).
    """
    events = _events.recent(limit)
    return {"events": events, "count": len(events)}


# ─── RESOURCES ───────────────────────────────────────────────────────

@mcp.resource("zigbee://nodes")
def resource_nodes() -> str:
    """Summary of every known node."""
    if _adapter is None or _connection is None or not _connection.connected:
        return json.dumps({"connected": False, "nodes": []})
    with _connection.lock:
        nodes = [node.to_dict() for node in _adapter.network]
    return json.dumps({"connected": True, "nodes": nodes})


@mcp.resource("zigbee://adapter/status")
def resource_adapter_status() -> str:
    """Connection state, adapter id and pairing state."""
    if _adapter is None or _connection is None or not _connection.connected:
        return json.dumps({"connected": False})
    with _connection.lock:
        return json.dumps({"connected": True, "port": _connection.device, **_adapter.status()})


# ─── PROMPTS ─────────────────────────────────────────────────────────

@mcp.prompt()
def pair_device() -> str:
    """Walk through adding a new Zigbee device."""
    return """Use start_pairing to open the network, then ask the user to reset
or power-cycle the device so it joins. Poll recent_events until a
device_added event appears, then show the new node with get_node.
Use cancel_pairing if the user gives up."""


@mcp.prompt()
def mesh_health() -> str:
    """Review the mesh topology and link quality."""
    return """Call list_nodes, then get_node for each router. Summarize each
node's neighbors and their LQI values, flag links below 50, and point out
end devices whose parent has a weak link to the coordinator."""


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
