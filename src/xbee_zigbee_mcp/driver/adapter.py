"""The Zigbee adapter: one XBee radio and the mesh behind it.

Bytes from the radio go in through :meth:`ZigbeeAdapter.on_bytes`; frames
to the radio come out through the :class:`TransceiverPort` write. The
adapter is not thread-safe: callers must serialize access (the serial
transport does so with its lock).

Usage::

    adapter = ZigbeeAdapter(port, EventRecorder())
    adapter.start()
    ...
    adapter.on_bytes(data)      # whenever the radio sends something
    adapter.poll()              # periodically
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from ..config import AdapterConfig
from ..errors import FrameDecodeError, TransportError, WaitTimeoutError
from ..models.network import Network
from ..models.node import Node
from ..models.property import PendingProperty
from ..models.settings import AdapterSettings
from ..protocol.at import AtCommand, encode_at_value
from ..protocol.describe import describe_frame
from ..protocol.frames import (
    ZHA_PROFILE_ID,
    AtCommandFrame,
    ExplicitAddressingFrame,
    Frame,
    FrameIdCounter,
    decode_frame,
    encode_frame,
)
from ..protocol.framing import FrameReader
from .discovery import TopologyDiscovery
from .dispatch import Dispatcher
from .lifecycle import Lifecycle
from .manager import DeviceManager, TransceiverPort
from .sequencer import Command, RunLoop, SendFrame, WaitFrame, WaitPredicate

logger = logging.getLogger(__name__)

# Endpoint the adapter sends application frames from.
ZHA_SOURCE_ENDPOINT = 0x01


class ZigbeeAdapter:
    def __init__(
        self,
        port: TransceiverPort,
        manager: DeviceManager,
        config: AdapterConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.port = port
        self.manager = manager
        self.config = config or AdapterConfig()
        self.clock = clock
        self.settings = AdapterSettings()
        self.network = Network()
        self.frame_ids = FrameIdCounter()
        self.reader = FrameReader()
        self.run_loop = RunLoop(
            self._send_frame,
            wait_timeout=self.config.wait_timeout,
            on_timeout=self._on_wait_timeout,
            clock=clock,
        )
        self.adapter_id: str | None = None
        self.ready = False
        self.last_timeout: WaitTimeoutError | None = None
        # frame id -> delivery status of its transmit status frame
        self.delivery_statuses: dict[int, int] = {}
        # ZDO sequence number -> response cluster received for it
        self.zdo_responses: dict[int, int] = {}

        self.discovery = TopologyDiscovery(self)
        self.lifecycle = Lifecycle(self)
        self.dispatcher = Dispatcher(self)

    # ─── LIFECYCLE ──────────────────────────────────────────────────────

    def start(self) -> None:
        """Begin reading the radio's settings; the rest follows from its replies."""
        logger.info("Starting Zigbee adapter")
        self.discovery.initialize()

    def close(self) -> None:
        self.run_loop.clear()
        self.reader.reset()
        self.ready = False
        self.port.close()

    # ─── INBOUND ────────────────────────────────────────────────────────

    def on_bytes(self, data: bytes) -> None:
        """Feed raw bytes from the radio."""
        for frame_data in self.reader.feed(data):
            try:
                frame = decode_frame(frame_data)
            except FrameDecodeError as e:
                logger.error("Dropping undecodable frame %s: %s", frame_data.hex(), e)
                continue
            self.handle_frame(frame)

    def handle_frame(self, frame: Frame) -> None:
        logger.debug("Rcvd: %s", describe_frame(frame))
        if not self.dispatcher.dispatch(frame):
            return
        self.run_loop.on_frame(frame)

    def poll(self, now: float | None = None) -> None:
        """Time-based housekeeping: expire a stale wait and the pairing flag."""
        self.run_loop.expire_wait(now)
        self.lifecycle.expire_pairing(now)

    def _on_wait_timeout(self, error: WaitTimeoutError) -> None:
        self.last_timeout = error

    # ─── OUTBOUND ───────────────────────────────────────────────────────

    def _send_frame(self, frame: Frame) -> None:
        logger.debug("Sent: %s", describe_frame(frame))
        frame_id = getattr(frame, "frame_id", 0)
        self.delivery_statuses.pop(frame_id, None)
        self.zdo_responses.pop(frame_id, None)
        try:
            self.port.write(encode_frame(frame))
        except TransportError as e:
            logger.error("Write to transceiver failed: %s", e)
            raise

    def next_frame_id(self) -> int:
        return self.frame_ids.next()

    def delivered(self, frame_id: int) -> bool:
        """Whether the last frame sent with ``frame_id`` was reported delivered."""
        return self.delivery_statuses.get(frame_id) == 0

    def zdo_response_received(self, zdo_seq: int, cluster_id: int) -> bool:
        return self.zdo_responses.get(zdo_seq) == cluster_id

    def at(self, command: AtCommand, value: Any = None) -> list[Command]:
        """Commands to send an AT command and wait for its response.

        With ``value`` the setting is written, otherwise it is queried.
        """
        frame = AtCommandFrame(
            frame_id=self.next_frame_id(),
            command=command,
            parameter=encode_at_value(command, value),
        )
        return [SendFrame(frame), WaitFrame(WaitPredicate.at_response(command))]

    def zha_frame(
        self,
        frame_id: int,
        node: Node,
        endpoint: int,
        cluster_id: int,
        payload: bytes,
        profile_id: int | None = None,
    ) -> ExplicitAddressingFrame:
        return ExplicitAddressingFrame(
            frame_id=frame_id,
            destination64=node.addr64,
            destination16=node.addr16,
            source_endpoint=ZHA_SOURCE_ENDPOINT,
            destination_endpoint=endpoint,
            cluster_id=cluster_id,
            profile_id=profile_id or ZHA_PROFILE_ID,
            data=payload,
        )

    # ─── OPERATIONS ─────────────────────────────────────────────────────

    def find_node(self, node_id: str) -> Node | None:
        """Look up a node by ``zb-<addr64>`` id or bare 64-bit address."""
        key = node_id.lower()
        if key.startswith("zb-"):
            key = key[3:]
        return self.network.get(key)

    def permit_join(self, seconds: int) -> None:
        self.lifecycle.permit_join(seconds)

    def start_pairing(self, timeout_seconds: int) -> None:
        self.lifecycle.start_pairing(timeout_seconds)

    def cancel_pairing(self) -> None:
        self.lifecycle.cancel_pairing()

    def remove_node(self, node: Node) -> None:
        self.lifecycle.remove_node(node)

    def cancel_remove(self, node: Node) -> None:
        self.lifecycle.cancel_remove(node)

    def set_property(self, node: Node, name: str, value: Any) -> PendingProperty:
        return self.lifecycle.set_property(node, name, value)

    def rescan(self) -> None:
        self.discovery.rescan()

    @property
    def is_pairing(self) -> bool:
        return self.lifecycle.is_pairing

    def status(self) -> dict:
        return {
            "adapter_id": self.adapter_id,
            "ready": self.ready,
            "pairing": self.lifecycle.is_pairing,
            "nodes": len(self.network),
            "queued_commands": len(self.run_loop),
            "waiting_for": repr(self.run_loop.outstanding_wait) if self.run_loop.outstanding_wait else None,
            "dropped_frames": self.reader.dropped,
            "last_timeout": str(self.last_timeout) if self.last_timeout else None,
        }
