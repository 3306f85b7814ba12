"""Domain-specific errors for the XBee Zigbee adapter."""


class XBeeError(Exception):
    """Base error for the adapter."""


class FrameDecodeError(XBeeError, ValueError):
    """Raised when an API frame cannot be decoded into a typed frame."""


class TransportError(XBeeError, ConnectionError):
    """Raised when the transceiver port cannot be opened or written."""


class AdapterStartError(TransportError):
    """Raised when the adapter fails to start on a transceiver."""


class WaitTimeoutError(XBeeError, TimeoutError):
    """Raised (or reported) when an outstanding frame wait expires."""
