"""Route each received frame to the handler for its type and cluster."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..errors import FrameDecodeError
from ..protocol.at import AtCommand, AtStatus, parse_at_value
from ..protocol.describe import delivery_status_str, describe_frame, modem_status_str
from ..protocol.frames import (
    AtCommandResponseFrame,
    ExplicitRxFrame,
    Frame,
    ModemStatusFrame,
    RouteRecordFrame,
    TransmitStatusFrame,
)
from ..protocol.zcl import parse_zcl_frame
from ..protocol.zdo import (
    ZdoCluster,
    describe_cluster,
    parse_active_endpoints_response,
    parse_end_device_announcement,
    parse_management_leave_response,
    parse_management_lqi_response,
    parse_management_rtg_response,
    parse_simple_descriptor_response,
)

if TYPE_CHECKING:
    from .adapter import ZigbeeAdapter

logger = logging.getLogger(__name__)

# Set on every ZDO response cluster id.
ZDO_RESPONSE_BIT = 0x8000


class Dispatcher:
    """Applies received frames to the adapter's state.

    Handlers only mutate the network and settings, or queue commands;
    matching the outstanding wait is left to the run loop.
    """

    def __init__(self, adapter: ZigbeeAdapter) -> None:
        self.adapter = adapter

    def dispatch(self, frame: Frame) -> bool:
        """Handle one frame.

        Returns:
            False if the frame's payload was malformed and it was dropped.
        """
        try:
            if isinstance(frame, AtCommandResponseFrame):
                self._handle_at_response(frame)
            elif isinstance(frame, ExplicitRxFrame):
                self._handle_explicit_rx(frame)
            elif isinstance(frame, TransmitStatusFrame):
                self._handle_transmit_status(frame)
            elif isinstance(frame, ModemStatusFrame):
                logger.info("Modem status: %s", modem_status_str(frame.status))
            elif isinstance(frame, RouteRecordFrame):
                logger.debug("Route record: %s", describe_frame(frame))
            else:
                logger.debug("Ignoring frame: %s", describe_frame(frame))
        except FrameDecodeError as e:
            logger.error("Dropping malformed frame (%s): %s", describe_frame(frame), e)
            return False
        return True

    # ─── AT ─────────────────────────────────────────────────────────────

    def _handle_at_response(self, frame: AtCommandResponseFrame) -> None:
        if frame.status != AtStatus.OK:
            try:
                status = AtStatus(frame.status).name
            except ValueError:
                status = f"0x{frame.status:02x}"
            logger.warning("AT %s failed: %s", frame.command, status)
            return
        if not frame.data:
            return
        if not isinstance(frame.command, AtCommand):
            logger.debug("Ignoring response to unknown AT command %r", frame.command)
            return
        value = parse_at_value(frame.command, frame.data)
        self.adapter.settings.apply_at_value(frame.command, value)

    # ─── APPLICATION FRAMES ─────────────────────────────────────────────

    def _handle_explicit_rx(self, frame: ExplicitRxFrame) -> None:
        if frame.is_zdo:
            self._handle_zdo(frame)
        elif frame.is_zha:
            self._handle_zha(frame)
        else:
            logger.debug("Ignoring frame for profile 0x%04x", frame.profile_id)

    def _handle_zdo(self, frame: ExplicitRxFrame) -> None:
        discovery = self.adapter.discovery
        lifecycle = self.adapter.lifecycle
        cluster_id = frame.cluster_id

        if cluster_id == ZdoCluster.ACTIVE_ENDPOINTS_RESPONSE:
            discovery.handle_active_endpoints(frame, parse_active_endpoints_response(frame.data))
        elif cluster_id == ZdoCluster.SIMPLE_DESCRIPTOR_RESPONSE:
            discovery.handle_simple_descriptor(frame, parse_simple_descriptor_response(frame.data))
        elif cluster_id == ZdoCluster.MANAGEMENT_LQI_RESPONSE:
            discovery.handle_management_lqi(frame, parse_management_lqi_response(frame.data))
        elif cluster_id == ZdoCluster.MANAGEMENT_RTG_RESPONSE:
            discovery.handle_management_rtg(frame, parse_management_rtg_response(frame.data))
        elif cluster_id == ZdoCluster.MANAGEMENT_LEAVE_RESPONSE:
            lifecycle.handle_management_leave(frame, parse_management_leave_response(frame.data))
        elif cluster_id == ZdoCluster.END_DEVICE_ANNOUNCEMENT:
            lifecycle.handle_end_device_announcement(frame, parse_end_device_announcement(frame.data))
        else:
            logger.debug("No handler for ZDO %s", describe_cluster(cluster_id))
        if cluster_id & ZDO_RESPONSE_BIT:
            self.adapter.zdo_responses[frame.zdo_seq] = cluster_id

    def _handle_zha(self, frame: ExplicitRxFrame) -> None:
        zcl = parse_zcl_frame(frame.data)
        node = self.adapter.network.get(frame.remote64)
        if node is None:
            logger.debug("ZHA frame from unknown node %s: %r", frame.remote64, zcl)
            return
        changed = node.handle_zha_response(frame.source_endpoint, frame.cluster_id, zcl)
        for prop in changed:
            self.adapter.manager.on_property_changed(node, prop)

    # ─── STATUS ─────────────────────────────────────────────────────────

    def _handle_transmit_status(self, frame: TransmitStatusFrame) -> None:
        self.adapter.delivery_statuses[frame.frame_id] = frame.delivery_status
        if frame.delivery_status != 0:
            logger.error(
                "Transmit status error for frame %d: %s",
                frame.frame_id,
                delivery_status_str(frame.delivery_status),
            )
