"""Adapter settings: the transceiver's AT values as last read back."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Any, Callable

from ..protocol.at import AtCommand
from ..protocol.frames import UNKNOWN_ADDR16

logger = logging.getLogger(__name__)

DEVICE_TYPE_NAMES = {
    0x30001: "ConnectPort X8 Gateway",
    0x30002: "ConnectPort X4 Gateway",
    0x30003: "ConnectPort X2 Gateway",
    0x30005: "RS-232 Adapter",
    0x30006: "RS-485 Adapter",
    0x30007: "XBee Sensor Adapter",
    0x30008: "Wall Router",
    0x3000A: "Digital I/O Adapter",
    0x3000B: "Analog I/O Adapter",
    0x3000C: "XStick",
    0x3000F: "Smart Plug",
    0x30011: "XBee Large Display",
    0x30012: "XBee Small Display",
}

UNSET_SERIAL = "0000000000000000"


@dataclass
class AdapterSettings:
    """Values reported by the local transceiver.

    ``None`` means the value has not been read yet.
    """

    device_type_identifier: int | None = None
    configured_pan_id64: str | None = None
    serial_number: str = UNSET_SERIAL
    network_addr16: str = UNKNOWN_ADDR16
    operating_pan_id64: str | None = None
    operating_pan_id16: str | None = None
    operating_channel: int | None = None
    scan_channels: int | None = None
    node_identifier: str | None = None
    network_join_time: int | None = None
    num_remaining_children: int | None = None
    zigbee_stack_profile: int | None = None
    api_options: int | None = None
    encryption_enabled: int | None = None
    encryption_options: int | None = None

    def apply_at_value(self, command: AtCommand | str, value) -> bool:
        """Store the value of an AT response.

        Returns:
            True if the command maps onto a setting, else False.
        """
        setter = AT_SETTERS.get(command)
        if setter is None:
            return False
        setter(self, value)
        return True

    def set_serial_number_high(self, value: str) -> None:
        self.serial_number = value.rjust(8, "0")[-8:] + self.serial_number[8:]

    def set_serial_number_low(self, value: str) -> None:
        self.serial_number = self.serial_number[:8] + value.rjust(8, "0")[-8:]

    @property
    def adapter_id(self) -> str:
        return f"zb-{self.serial_number}"

    @property
    def device_type_name(self) -> str:
        if self.device_type_identifier is None:
            return "??? Unknown ???"
        return DEVICE_TYPE_NAMES.get(self.device_type_identifier, "??? Unknown ???")

    def to_dict(self) -> dict:
        result = {f.name: getattr(self, f.name) for f in fields(self)}
        result["adapter_id"] = self.adapter_id
        result["device_type"] = self.device_type_name
        return result

    def dump(self) -> None:
        """Log the adapter settings at INFO level."""
        dtype = self.device_type_identifier
        scan = self.scan_channels
        logger.info(
            "       Device Type: %s - %s",
            f"0x{dtype:x}" if dtype is not None else "?",
            self.device_type_name,
        )
        logger.info("   Network Address: %s %s", self.serial_number, self.network_addr16)
        logger.info("   Node Identifier: %s", self.node_identifier)
        logger.info(" Configured PAN Id: %s", self.configured_pan_id64)
        logger.info("  Operating PAN Id: %s %s", self.operating_pan_id64, self.operating_pan_id16)
        logger.info(" Operating Channel: %s", self.operating_channel)
        logger.info(" Channel Scan Mask: %s", f"{scan:x}" if scan is not None else "?")
        logger.info("         Join Time: %s", self.network_join_time)
        logger.info("Remaining Children: %s", self.num_remaining_children)
        logger.info("     Stack Profile: %s", self.zigbee_stack_profile)
        logger.info("       API Options: %s", self.api_options)
        logger.info("Encryption Enabled: %s", self.encryption_enabled)
        logger.info("Encryption Options: %s", self.encryption_options)


def _set_api_options(settings: AdapterSettings, value: int) -> None:
    settings.api_options = value


def _set_configured_pan_id64(settings: AdapterSettings, value: str) -> None:
    settings.configured_pan_id64 = value


def _set_device_type_identifier(settings: AdapterSettings, value: int) -> None:
    settings.device_type_identifier = value


def _set_encryption_enabled(settings: AdapterSettings, value: int) -> None:
    settings.encryption_enabled = value


def _set_encryption_options(settings: AdapterSettings, value: int) -> None:
    settings.encryption_options = value


def _set_network_addr16(settings: AdapterSettings, value: str) -> None:
    settings.network_addr16 = value


def _set_node_identifier(settings: AdapterSettings, value: str) -> None:
    settings.node_identifier = value


def _set_network_join_time(settings: AdapterSettings, value: int) -> None:
    settings.network_join_time = value


def _set_num_remaining_children(settings: AdapterSettings, value: int) -> None:
    settings.num_remaining_children = value


def _set_operating_pan_id16(settings: AdapterSettings, value: str) -> None:
    settings.operating_pan_id16 = value


def _set_operating_pan_id64(settings: AdapterSettings, value: str) -> None:
    settings.operating_pan_id64 = value


def _set_operating_channel(settings: AdapterSettings, value: int) -> None:
    settings.operating_channel = value


def _set_scan_channels(settings: AdapterSettings, value: int) -> None:
    settings.scan_channels = value


def _set_zigbee_stack_profile(settings: AdapterSettings, value: int) -> None:
    settings.zigbee_stack_profile = value


AT_SETTERS: dict[AtCommand, Callable[[AdapterSettings, Any], None]] = {
    AtCommand.API_OPTIONS: _set_api_options,
    AtCommand.CONFIGURED_64_BIT_PAN_ID: _set_configured_pan_id64,
    AtCommand.DEVICE_TYPE_IDENTIFIER: _set_device_type_identifier,
    AtCommand.ENCRYPTION_ENABLED: _set_encryption_enabled,
    AtCommand.ENCRYPTION_OPTIONS: _set_encryption_options,
    AtCommand.NETWORK_ADDR_16_BIT: _set_network_addr16,
    AtCommand.NODE_IDENTIFIER: _set_node_identifier,
    AtCommand.NODE_JOIN_TIME: _set_network_join_time,
    AtCommand.NUM_REMAINING_CHILDREN: _set_num_remaining_children,
    AtCommand.OPERATING_16_BIT_PAN_ID: _set_operating_pan_id16,
    AtCommand.OPERATING_64_BIT_PAN_ID: _set_operating_pan_id64,
    AtCommand.OPERATING_CHANNEL: _set_operating_channel,
    AtCommand.SCAN_CHANNELS: _set_scan_channels,
    AtCommand.SERIAL_NUMBER_HIGH: AdapterSettings.set_serial_number_high,
    AtCommand.SERIAL_NUMBER_LOW: AdapterSettings.set_serial_number_low,
    AtCommand.ZIGBEE_STACK_PROFILE: _set_zigbee_stack_profile,
}
