"""Device lifecycle: the join window, pairing, announcements, removal and
property writes."""

from __future__ import annotations

import logging
from functools import partial
from typing import TYPE_CHECKING, Any

from ..models.node import Node
from ..models.property import PendingProperty
from ..protocol.at import AtCommand
from ..protocol.frames import ExplicitRxFrame
from ..protocol.zcl import Cluster, LevelCommand, OnOffCommand, build_zcl_frame
from ..protocol.zdo import (
    EndDeviceAnnouncement,
    ManagementLeaveResponse,
    build_management_leave_request,
    build_permit_join_request,
)
from .sequencer import Invoke, ResolveProperty, SendFrame, WaitFrame, WaitPredicate

if TYPE_CHECKING:
    from .adapter import ZigbeeAdapter

logger = logging.getLogger(__name__)

MAX_JOIN_SECONDS = 255
MAX_LEVEL = 254


def _check_join_seconds(seconds: int) -> int:
    seconds = int(seconds)
    if not 0 <= seconds <= MAX_JOIN_SECONDS:
        raise ValueError(f"Join window must be 0-{MAX_JOIN_SECONDS} seconds, got {seconds}")
    return seconds


class Lifecycle:
    def __init__(self, adapter: ZigbeeAdapter) -> None:
        self.adapter = adapter
        self.is_pairing = False
        self.pairing_started: float | None = None
        self.pairing_timeout = 0

    # ─── JOIN WINDOW ────────────────────────────────────────────────────

    def permit_join(self, seconds: int) -> None:
        """Open the join window for ``seconds`` (0 closes it) on every router.

        Raises:
            ValueError: If ``seconds`` is outside 0-255.
        """
        seconds = _check_join_seconds(seconds)
        adapter = self.adapter
        adapter.settings.network_join_time = seconds
        frame = build_permit_join_request(adapter.next_frame_id(), seconds, trust_center_significance=0)
        adapter.run_loop.enqueue_front(
            [
                adapter.at(AtCommand.NODE_JOIN_TIME, seconds),
                SendFrame(frame),
                WaitFrame(WaitPredicate.transmit_status(frame.frame_id)),
            ]
        )

    def start_pairing(self, timeout_seconds: int) -> None:
        timeout_seconds = _check_join_seconds(timeout_seconds)
        logger.info("Pairing mode started")
        self.is_pairing = True
        self.pairing_started = self.adapter.clock()
        self.pairing_timeout = timeout_seconds
        self.permit_join(timeout_seconds)

    def cancel_pairing(self) -> None:
        logger.info("Cancelling pairing mode")
        self.is_pairing = False
        self.pairing_started = None
        self.permit_join(0)

    def expire_pairing(self, now: float | None = None) -> bool:
        """Clear the pairing flag once the radio's join window has closed by itself."""
        if not self.is_pairing or self.pairing_started is None:
            return False
        if now is None:
            now = self.adapter.clock()
        if now - self.pairing_started < self.pairing_timeout:
            return False
        logger.info("Pairing window closed")
        self.is_pairing = False
        self.pairing_started = None
        return True

    def handle_end_device_announcement(self, frame: ExplicitRxFrame, announcement: EndDeviceAnnouncement) -> None:
        network = self.adapter.network
        node = network.get(announcement.addr64)
        if node is not None:
            node.addr16 = announcement.addr16
        else:
            node = network.get_or_create(announcement.addr64, announcement.addr16)
        logger.info("Device announced: %s %s", node.addr64, node.addr16)
        if self.is_pairing:
            self.cancel_pairing()
        self.adapter.discovery.populate_node_info(node)

    # ─── REMOVAL ────────────────────────────────────────────────────────

    def remove_node(self, node: Node) -> None:
        """Ask ``node`` to leave the network; it is dropped when it confirms."""
        logger.info("Removing %s", node.addr64)
        adapter = self.adapter
        frame = build_management_leave_request(
            adapter.next_frame_id(), node.addr64, node.addr16, leave_options=0
        )
        adapter.run_loop.enqueue_front(
            [SendFrame(frame), WaitFrame(WaitPredicate.transmit_status(frame.frame_id))]
        )

    def cancel_remove(self, node: Node) -> None:
        # The leave request has either been sent or not; nothing to undo.
        logger.debug("cancel_remove %s: nothing to do", node.addr64)

    def handle_management_leave(self, frame: ExplicitRxFrame, response: ManagementLeaveResponse) -> None:
        if response.status != 0:
            logger.warning("Leave request to %s failed: 0x%02x", frame.remote64, response.status)
            return
        node = self.adapter.network.remove(frame.remote64)
        if node is None:
            return
        logger.info("Device left: %s", node.addr64)
        self.adapter.manager.on_device_removed(node)

    # ─── PROPERTY WRITES ────────────────────────────────────────────────

    def set_property(self, node: Node, name: str, value: Any) -> PendingProperty:
        """Send the cluster command that sets a property.

        Returns:
            A pending write whose ``future`` completes with ``value`` once
            the radio reports the frame delivered, or fails with
            :class:`TransportError` if it reports a delivery error.

        Raises:
            ValueError: If the node has no such property or the value is
                out of range.
        """
        prop = node.properties.get(name)
        if prop is None:
            raise ValueError(f"{node.id} has no property {name!r}")

        adapter = self.adapter
        frame_id = adapter.next_frame_id()
        if prop.cluster_id == Cluster.ON_OFF:
            value = bool(value)
            command = OnOffCommand.ON if value else OnOffCommand.OFF
            payload = build_zcl_frame(frame_id, command, cluster_specific=True)
        elif prop.cluster_id == Cluster.LEVEL_CONTROL:
            value = int(value)
            if not 0 <= value <= MAX_LEVEL:
                raise ValueError(f"Level must be 0-{MAX_LEVEL}, got {value}")
            # level, then a transition time of 0 tenths of a second
            payload = build_zcl_frame(
                frame_id,
                LevelCommand.MOVE_TO_LEVEL_WITH_ON_OFF,
                bytes([value]) + (0).to_bytes(2, "little"),
                cluster_specific=True,
            )
        else:
            raise ValueError(f"Property {name!r} is not writable")

        frame = adapter.zha_frame(frame_id, node, prop.endpoint, prop.cluster_id, payload)
        pending = PendingProperty(prop=prop, value=value)
        adapter.run_loop.enqueue_back(
            [
                SendFrame(frame),
                WaitFrame(WaitPredicate.transmit_status(frame_id)),
                ResolveProperty(pending, partial(adapter.delivery_statuses.get, frame_id)),
                Invoke(self.property_written, (node, pending)),
            ]
        )
        return pending

    def property_written(self, node: Node, pending: PendingProperty) -> None:
        if pending.succeeded:
            self.adapter.manager.on_property_changed(node, pending.prop)
