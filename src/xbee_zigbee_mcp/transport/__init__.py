"""Physical transport to the transceiver."""
