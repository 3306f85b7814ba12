"""AT command mnemonics and parameter encoding.

AT commands are identified on the wire by two ASCII characters. Each
command's parameter has a fixed representation: addresses and PAN ids
are carried as hex strings, counters and flags as integers, and the
node identifier as text.
"""

from __future__ import annotations

from enum import Enum


class AtCommand(str, Enum):
    """AT command mnemonics used by the adapter."""

    API_OPTIONS = "AO"
    CONFIGURED_64_BIT_PAN_ID = "ID"
    DEVICE_TYPE_IDENTIFIER = "DD"
    ENCRYPTION_ENABLED = "EE"
    ENCRYPTION_OPTIONS = "EO"
    LINK_KEY = "KY"
    NETWORK_ADDR_16_BIT = "MY"
    NODE_IDENTIFIER = "NI"
    NODE_JOIN_TIME = "NJ"
    NUM_REMAINING_CHILDREN = "NC"
    OPERATING_16_BIT_PAN_ID = "OI"
    OPERATING_64_BIT_PAN_ID = "OP"
    OPERATING_CHANNEL = "CH"
    SCAN_CHANNELS = "SC"
    SERIAL_NUMBER_HIGH = "SH"
    SERIAL_NUMBER_LOW = "SL"
    WRITE_PARAMETERS = "WR"
    ZIGBEE_STACK_PROFILE = "ZS"


class AtStatus(int, Enum):
    OK = 0
    ERROR = 1
    INVALID_COMMAND = 2
    INVALID_PARAMETER = 3
    TX_FAILURE = 4


# Commands whose value is a fixed-width hex string (width in bytes).
HEX_COMMANDS: dict[AtCommand, int] = {
    AtCommand.CONFIGURED_64_BIT_PAN_ID: 8,
    AtCommand.OPERATING_64_BIT_PAN_ID: 8,
    AtCommand.SERIAL_NUMBER_HIGH: 4,
    AtCommand.SERIAL_NUMBER_LOW: 4,
    AtCommand.NETWORK_ADDR_16_BIT: 2,
    AtCommand.OPERATING_16_BIT_PAN_ID: 2,
}

# Commands carrying an unsigned integer (width used when writing).
INT_COMMANDS: dict[AtCommand, int] = {
    AtCommand.API_OPTIONS: 1,
    AtCommand.DEVICE_TYPE_IDENTIFIER: 4,
    AtCommand.ENCRYPTION_ENABLED: 1,
    AtCommand.ENCRYPTION_OPTIONS: 1,
    AtCommand.NODE_JOIN_TIME: 1,
    AtCommand.NUM_REMAINING_CHILDREN: 1,
    AtCommand.OPERATING_CHANNEL: 1,
    AtCommand.SCAN_CHANNELS: 2,
    AtCommand.ZIGBEE_STACK_PROFILE: 1,
}

TEXT_COMMANDS = frozenset({AtCommand.NODE_IDENTIFIER, AtCommand.LINK_KEY})


def parse_at_value(command: AtCommand, data: bytes) -> str | int | bytes:
    """Decode the data of an AT command response.

    Hex-valued commands are left-padded to their full width, so a short
    ``MY`` response of ``b"\\x12"`` becomes ``"0012"``. Unknown commands
    return the raw bytes.
    """
    if command in HEX_COMMANDS:
        width = HEX_COMMANDS[command]
        return data.hex().rjust(width * 2, "0")[-width * 2 :]
    if command in INT_COMMANDS:
        return int.from_bytes(data, "big")
    if command in TEXT_COMMANDS:
        return data.decode("ascii", errors="replace").rstrip("\x00")
    return bytes(data)


def encode_at_value(command: AtCommand, value: str | int | bytes | None) -> bytes:
    """Encode an AT command parameter for writing.

    ``None`` encodes to an empty parameter, which turns the command into
    a query.
    """
    if value is None:
        return b""
    if isinstance(value, bytes):
        return value
    if command in HEX_COMMANDS:
        width = HEX_COMMANDS[command]
        raw = bytes.fromhex(str(value).rjust(width * 2, "0"))
        if len(raw) != width:
            raise ValueError(f"{command.value} value must be {width} bytes, got {value!r}")
        return raw
    if command in INT_COMMANDS:
        width = INT_COMMANDS[command]
        if not 0 <= int(value) < 1 << (8 * width):
            raise ValueError(f"{command.value} value out of range: {value!r}")
        return int(value).to_bytes(width, "big")
    if command in TEXT_COMMANDS:
        return str(value).encode("ascii")
    raise ValueError(f"AT command {command.value} does not take a parameter")
