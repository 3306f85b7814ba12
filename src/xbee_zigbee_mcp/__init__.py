"""Zigbee mesh adapter for Digi XBee transceivers, exposed over MCP."""

__version__ = "0.1.0"
