"""Tests for AT command value encoding."""

import pytest

from xbee_zigbee_mcp.protocol.at import AtCommand, encode_at_value, parse_at_value


def test_mnemonics():
    """Commands are identified by their two-letter mnemonic."""
    assert AtCommand.SERIAL_NUMBER_HIGH.value == "SH"
    assert AtCommand.SERIAL_NUMBER_LOW.value == "SL"
    assert AtCommand.LINK_KEY.value == "KY"
    assert AtCommand("NJ") is AtCommand.NODE_JOIN_TIME


def test_parse_hex_pads_to_width():
    """A short MY response still yields four hex digits."""
    assert parse_at_value(AtCommand.NETWORK_ADDR_16_BIT, b"\x12") == "0012"
    assert parse_at_value(AtCommand.SERIAL_NUMBER_LOW, bytes.fromhex("40a1b2c3")) == "40a1b2c3"
    assert parse_at_value(AtCommand.CONFIGURED_64_BIT_PAN_ID, b"\x00") == "0000000000000000"


def test_parse_int():
    """Numeric registers decode big-endian."""
    assert parse_at_value(AtCommand.SCAN_CHANNELS, bytes.fromhex("1ffe")) == 0x1FFE
    assert parse_at_value(AtCommand.DEVICE_TYPE_IDENTIFIER, bytes.fromhex("0003000c")) == 0x3000C


def test_parse_text():
    """Node identifier text drops its trailing NUL."""
    assert parse_at_value(AtCommand.NODE_IDENTIFIER, b"Gateway\x00") == "Gateway"


def test_parse_unknown_returns_bytes():
    """Commands without a known type come back as raw bytes."""
    assert parse_at_value(AtCommand.WRITE_PARAMETERS, b"\x01") == b"\x01"


def test_encode_none_is_query():
    """No value means the command reads the register."""
    assert encode_at_value(AtCommand.NODE_JOIN_TIME, None) == b""


def test_encode_int_width():
    """Integers are written at the register's width."""
    assert encode_at_value(AtCommand.NODE_JOIN_TIME, 60) == b"\x3c"
    assert encode_at_value(AtCommand.SCAN_CHANNELS, 0x1FFE) == b"\x1f\xfe"


def test_encode_int_out_of_range():
    """Values that do not fit the register are rejected."""
    with pytest.raises(ValueError):
        encode_at_value(AtCommand.NODE_JOIN_TIME, 256)
    with pytest.raises(ValueError):
        encode_at_value(AtCommand.API_OPTIONS, -1)


def test_encode_hex():
    """Hex registers are left-padded to width and overlong values rejected."""
    assert encode_at_value(AtCommand.CONFIGURED_64_BIT_PAN_ID, "a1b2") == bytes.fromhex("000000000000a1b2")
    with pytest.raises(ValueError):
        encode_at_value(AtCommand.NETWORK_ADDR_16_BIT, "0013a200")


def test_encode_text():
    """The link key is sent as its ASCII text."""
    assert encode_at_value(AtCommand.LINK_KEY, "ZigBeeAlliance09") == b"ZigBeeAlliance09"


def test_encode_no_parameter_command():
    """WR takes no parameter."""
    with pytest.raises(ValueError):
        encode_at_value(AtCommand.WRITE_PARAMETERS, 1)
