"""Serial connection to a Digi XBee radio.

The radio sits behind an FTDI USB-serial bridge. A background thread
reads whatever bytes arrive and hands them to a callback while holding
the connection's lock; callers that touch the adapter from other threads
take the same lock.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable

import serial
import serial.tools.list_ports

from ..errors import AdapterStartError, TransportError

logger = logging.getLogger(__name__)

# 0403:6001 is FTDI's default VID:PID, so the manufacturer string is checked too.
DIGI_VENDOR_ID = 0x0403
DIGI_PRODUCT_ID = 0x6001
DIGI_MANUFACTURER = "Digi"

DEFAULT_BAUD_RATE = 9600
READ_SIZE = 256
READ_TIMEOUT_S = 0.2


@dataclass
class PortInfo:
    """A candidate serial port as reported by the OS."""

    device: str
    vendor_id: int | None = None
    product_id: int | None = None
    manufacturer: str = ""
    serial_number: str = ""
    description: str = ""

    def to_dict(self) -> dict:
        return {
            "device": self.device,
            "vendor_id": f"{self.vendor_id:04x}" if self.vendor_id is not None else None,
            "product_id": f"{self.product_id:04x}" if self.product_id is not None else None,
            "manufacturer": self.manufacturer,
            "serial_number": self.serial_number,
            "description": self.description,
        }


def is_digi_port(port: PortInfo) -> bool:
    return (
        port.vendor_id == DIGI_VENDOR_ID
        and port.product_id == DIGI_PRODUCT_ID
        and port.manufacturer == DIGI_MANUFACTURER
    )


def normalize_device_path(device: str) -> str:
    """Use the macOS call-out device, which does not wait for DCD."""
    if device.startswith("/dev/tty.usb"):
        return device.replace("/dev/tty", "/dev/cu", 1)
    return device


def list_ports() -> list[PortInfo]:
    return [
        PortInfo(
            device=p.device,
            vendor_id=p.vid,
            product_id=p.pid,
            manufacturer=p.manufacturer or "",
            serial_number=p.serial_number or "",
            description=p.description or "",
        )
        for p in serial.tools.list_ports.comports()
    ]


def find_digi_ports() -> list[PortInfo]:
    """All attached Digi radios, with device paths normalized.

    Raises:
        AdapterStartError: If no Digi port is attached.
    """
    ports = [p for p in list_ports() if is_digi_port(p)]
    if not ports:
        raise AdapterStartError("No Digi port found")
    for p in ports:
        p.device = normalize_device_path(p.device)
    return ports


class SerialConnection:
    """Manages the serial link to the radio.

    Usage::

        conn = SerialConnection(on_bytes=adapter.on_bytes, on_idle=adapter.poll)
        conn.open("/dev/ttyUSB0")
        with conn.lock:
            adapter.start()
        ...
        conn.close()
    """

    def __init__(
        self,
        on_bytes: Callable[[bytes], None] | None = None,
        on_idle: Callable[[], None] | None = None,
        baud_rate: int = DEFAULT_BAUD_RATE,
    ) -> None:
        self.on_bytes = on_bytes
        self.on_idle = on_idle
        self._baud_rate = baud_rate
        self._serial: serial.Serial | None = None
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        # Re-entrant: writes happen from inside callbacks that already hold it.
        self.lock = threading.RLock()
        self.device = ""

    @property
    def connected(self) -> bool:
        return self._serial is not None and self._serial.is_open

    def open(self, device: str | None = None) -> str:
        """Open ``device`` (or the first Digi port) and start reading.

        Returns:
            The device path that was opened.

        Raises:
            AdapterStartError: If no port is found or it cannot be opened.
        """
        if device is None:
            device = find_digi_ports()[0].device
        device = normalize_device_path(device)
        try:
            self._serial = serial.Serial(port=device, baudrate=self._baud_rate, timeout=READ_TIMEOUT_S)
        except (serial.SerialException, ValueError) as e:
            raise AdapterStartError(f"Could not open {device}: {e}") from e

        self.device = device
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name="XBeeReader")
        self._thread.start()
        logger.info("Opened %s @ %d baud", device, self._baud_rate)
        return device

    def close(self) -> None:
        if self._serial is None:
            return
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=2)
        self._thread = None
        try:
            self._serial.close()
        except serial.SerialException as e:
            logger.warning("Error closing %s: %s", self.device, e)
        finally:
            self._serial = None
            logger.info("Disconnected")

    def write(self, data: bytes) -> None:
        """Write raw bytes to the radio.

        Raises:
            TransportError: If not connected or the write fails.
        """
        if self._serial is None:
            raise TransportError("Not connected to transceiver")
        try:
            with self.lock:
                self._serial.write(data)
        except serial.SerialException as e:
            raise TransportError(f"Write to {self.device} failed: {e}") from e

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                data = self._serial.read(READ_SIZE) if self._serial else b""
            except serial.SerialException as e:
                logger.error("Read from %s failed: %s", self.device, e)
                break
            try:
                with self.lock:
                    if data and self.on_bytes is not None:
                        self.on_bytes(data)
                    if self.on_idle is not None:
                        self.on_idle()
            except TransportError as e:
                logger.error("Stopping reader for %s: %s", self.device, e)
                break
            except Exception as e:
                logger.error("Error handling data from %s: %s", self.device, e, exc_info=True)
        logger.debug("Reader thread for %s stopped", self.device)
