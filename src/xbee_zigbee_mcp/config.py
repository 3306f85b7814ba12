"""Adapter configuration.

Stored as JSON at ``~/.xbee-zigbee/config.json``, or wherever the
``XBEE_ZIGBEE_CONFIG`` environment variable points::

    {
      "port": "/dev/ttyUSB0",
      "baud_rate": 9600,
      "scan_channels": "0x0010",
      "discover_attributes": false,
      "wait_timeout": null
    }
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "XBEE_ZIGBEE_CONFIG"
DEFAULT_CONFIG_PATH = Path.home() / ".xbee-zigbee" / "config.json"

DEFAULT_BAUD_RATE = 9600
DEFAULT_SCAN_CHANNELS = 0x1FFE
MAX_SCAN_CHANNELS = 0xFFFF


@dataclass
class AdapterConfig:
    """Runtime settings for one adapter."""

    port: str | None = None  # None: first Digi port found
    baud_rate: int = DEFAULT_BAUD_RATE
    scan_channels: Any = None  # int mask, hex string, or None for the default
    discover_attributes: bool = False
    wait_timeout: float | None = None  # seconds; None waits forever

    def scan_channel_mask(self) -> int:
        """The scan channel mask to program into the radio.

        Strings are parsed as hex. Any value that does not give a mask
        in 0-0xffff falls back to ``0x1ffe``.
        """
        value = self.scan_channels
        if isinstance(value, bool) or value is None:
            return DEFAULT_SCAN_CHANNELS
        if isinstance(value, str):
            try:
                value = int(value, 16)
            except ValueError:
                value = None
        if not isinstance(value, int) or not 0 <= value <= MAX_SCAN_CHANNELS:
            logger.warning(
                "Invalid scan_channels %r, using 0x%04x", self.scan_channels, DEFAULT_SCAN_CHANNELS
            )
            return DEFAULT_SCAN_CHANNELS
        return value

    def to_dict(self) -> dict:
        return {
            "port": self.port,
            "baud_rate": self.baud_rate,
            "scan_channels": self.scan_channels,
            "discover_attributes": self.discover_attributes,
            "wait_timeout": self.wait_timeout,
        }

    @classmethod
    def from_dict(cls, data: dict) -> AdapterConfig:
        # Unknown keys are ignored so older files keep loading.
        known_fields = {"port", "baud_rate", "scan_channels", "discover_attributes", "wait_timeout"}
        filtered = {k: v for k, v in data.items() if k in known_fields}
        return cls(**filtered)


def config_path() -> Path:
    override = os.environ.get(CONFIG_ENV_VAR)
    return Path(override).expanduser() if override else DEFAULT_CONFIG_PATH


def load_config(path: Path | None = None) -> AdapterConfig:
    """Load the configuration, falling back to defaults if the file is absent.

    Raises:
        ValueError: If the file exists but is not a JSON object.
    """
    path = path or config_path()
    if not path.exists():
        logger.debug("No config at %s, using defaults", path)
        return AdapterConfig()
    with open(path, "r") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")
    logger.debug("Loaded config from %s", path)
    return AdapterConfig.from_dict(data)


def save_config(config: AdapterConfig, path: Path | None = None) -> Path:
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(config.to_dict(), f, indent=2)
    logger.debug("Config saved to %s", path)
    return path
