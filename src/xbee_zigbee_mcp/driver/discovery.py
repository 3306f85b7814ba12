"""Topology discovery: adapter start-up and learning the mesh.

Every step here only queues commands. Multi-round exchanges (paged
tables, endpoint retries, walking the node table) continue by queueing
their next step at the front of the run loop from an :class:`Invoke`
that runs once the previous step's wait is satisfied.

A ZDO request first waits for its transmit status, and only waits for
the response when the radio reports the request delivered.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING, Callable

from ..errors import XBeeError
from ..models.node import Node
from ..protocol.at import AtCommand
from ..protocol.frames import ExplicitAddressingFrame, ExplicitRxFrame
from ..protocol.zcl import build_discover_attributes, build_read_attributes, cluster_name
from ..protocol.zdo import (
    ActiveEndpointsResponse,
    ManagementLqiResponse,
    ManagementRtgResponse,
    SimpleDescriptorResponse,
    ZdoCluster,
    build_active_endpoints_request,
    build_management_lqi_request,
    build_management_rtg_request,
    build_simple_descriptor_request,
    describe_cluster,
)
from .sequencer import Command, Invoke, RunLoop, SendFrame, WaitFrame, WaitPredicate

if TYPE_CHECKING:
    from .adapter import ZigbeeAdapter

logger = logging.getLogger(__name__)

# Queried in this order when the adapter starts.
INITIAL_AT_QUERIES = (
    AtCommand.DEVICE_TYPE_IDENTIFIER,
    AtCommand.CONFIGURED_64_BIT_PAN_ID,
    AtCommand.SERIAL_NUMBER_HIGH,
    AtCommand.SERIAL_NUMBER_LOW,
    AtCommand.NETWORK_ADDR_16_BIT,
    AtCommand.OPERATING_64_BIT_PAN_ID,
    AtCommand.OPERATING_16_BIT_PAN_ID,
    AtCommand.OPERATING_CHANNEL,
    AtCommand.SCAN_CHANNELS,
    AtCommand.NODE_IDENTIFIER,
    AtCommand.NUM_REMAINING_CHILDREN,
    AtCommand.ZIGBEE_STACK_PROFILE,
    AtCommand.API_OPTIONS,
    AtCommand.ENCRYPTION_ENABLED,
    AtCommand.ENCRYPTION_OPTIONS,
)

UNSET_PAN_ID = "0000000000000000"
ZIGBEE_STACK_PROFILE = 2  # ZigBee PRO
API_OPTIONS = 1  # explicit receive indicators
ENCRYPTION_ENABLED = 1
ENCRYPTION_OPTIONS = 2  # act as trust center
LINK_KEY = "ZigBeeAlliance09"

ACTIVE_ENDPOINT_ATTEMPTS = 5


class NodeEnumerator:
    """Walks a snapshot of the node table, one node per step.

    The step that advances to the next node is queued at the front
    before the per-node callback runs, so whatever the callback queues
    at the front runs first.
    """

    def __init__(
        self,
        run_loop: RunLoop,
        nodes: list[Node],
        per_node: Callable[[Node], None],
        done: Callable[[], None] | None = None,
    ) -> None:
        self._run_loop = run_loop
        self._nodes = deque(nodes)
        self._per_node = per_node
        self._done = done

    @property
    def remaining(self) -> int:
        return len(self._nodes)

    def next(self) -> None:
        if not self._nodes:
            if self._done is not None:
                self._done()
            return
        node = self._nodes.popleft()
        self._run_loop.enqueue_front([Invoke(self.next)])
        self._per_node(node)


class TopologyDiscovery:
    def __init__(self, adapter: ZigbeeAdapter) -> None:
        self.adapter = adapter

    @property
    def run_loop(self) -> RunLoop:
        return self.adapter.run_loop

    # ─── START-UP ───────────────────────────────────────────────────────

    def initialize(self) -> None:
        """Read the radio's settings, configure it and scan the network."""
        commands: list = [self.adapter.at(command) for command in INITIAL_AT_QUERIES]
        commands.append(Invoke(self.configure_if_needed))
        commands.append(Invoke(self.adapter.lifecycle.permit_join, (0,)))
        commands.append(Invoke(self.adapter_initialized))
        self.run_loop.enqueue_back(commands)

    def configure_if_needed(self) -> None:
        """Write whichever settings differ from what the adapter needs.

        Each write is followed by a query so the stored settings reflect
        the radio. If anything is written, the link key is set and the
        settings are saved to non-volatile memory.
        """
        settings = self.adapter.settings
        at = self.adapter.at
        commands: list = []

        if settings.configured_pan_id64 == UNSET_PAN_ID:
            commands += [
                at(AtCommand.CONFIGURED_64_BIT_PAN_ID, settings.operating_pan_id64),
                at(AtCommand.CONFIGURED_64_BIT_PAN_ID),
            ]
        if settings.zigbee_stack_profile != ZIGBEE_STACK_PROFILE:
            commands += [
                at(AtCommand.ZIGBEE_STACK_PROFILE, ZIGBEE_STACK_PROFILE),
                at(AtCommand.ZIGBEE_STACK_PROFILE),
            ]
        if settings.api_options != API_OPTIONS:
            commands += [at(AtCommand.API_OPTIONS, API_OPTIONS), at(AtCommand.API_OPTIONS)]
        if settings.encryption_enabled != ENCRYPTION_ENABLED:
            commands += [
                at(AtCommand.ENCRYPTION_ENABLED, ENCRYPTION_ENABLED),
                at(AtCommand.ENCRYPTION_ENABLED),
            ]
        if settings.encryption_options != ENCRYPTION_OPTIONS:
            commands += [
                at(AtCommand.ENCRYPTION_OPTIONS, ENCRYPTION_OPTIONS),
                at(AtCommand.ENCRYPTION_OPTIONS),
            ]
        scan_channels = self.adapter.config.scan_channel_mask()
        if settings.scan_channels != scan_channels:
            commands += [
                at(AtCommand.SCAN_CHANNELS, scan_channels),
                at(AtCommand.SCAN_CHANNELS),
            ]

        if not commands:
            logger.info("No configuration required")
            return
        # The link key is write-only, so it is set whenever anything changes.
        commands += [at(AtCommand.LINK_KEY, LINK_KEY), at(AtCommand.WRITE_PARAMETERS)]
        logger.info("Configuring adapter (%d settings)", (len(commands) - 2) // 2)
        self.run_loop.enqueue_front(commands)

    def adapter_initialized(self) -> None:
        adapter = self.adapter
        settings = adapter.settings
        settings.dump()
        adapter.adapter_id = settings.adapter_id
        adapter.ready = True
        adapter.manager.on_adapter_ready(adapter.adapter_id)

        coordinator = adapter.network.get_or_create(settings.serial_number, settings.network_addr16)
        coordinator.is_coordinator = True
        coordinator.name = coordinator.default_name
        self.run_loop.enqueue_back(self.scan_commands(coordinator))

    def scan_commands(self, coordinator: Node) -> list:
        return [
            self.management_lqi_commands(coordinator),
            self.management_rtg_commands(coordinator),
            Invoke(self.enumerate_all_nodes, (self.populate_node_info,)),
            Invoke(self.dump_nodes),
            Invoke(self._scan_complete),
        ]

    def rescan(self) -> None:
        """Scan the coordinator's tables again and re-populate every node."""
        if not self.adapter.ready:
            raise XBeeError("Adapter is not initialized")
        coordinator = self.adapter.network.get(self.adapter.settings.serial_number)
        if coordinator is None:
            raise XBeeError("Coordinator node is missing")
        self.run_loop.enqueue_back(self.scan_commands(coordinator))

    def _scan_complete(self) -> None:
        logger.info("----- Scan Complete -----")

    def dump_nodes(self) -> None:
        self.adapter.network.dump()

    # ─── NODE ENUMERATION ───────────────────────────────────────────────

    def enumerate_all_nodes(
        self, per_node: Callable[[Node], None], done: Callable[[], None] | None = None
    ) -> NodeEnumerator:
        enumerator = NodeEnumerator(self.run_loop, self.adapter.network.snapshot(), per_node, done)
        enumerator.next()
        return enumerator

    def populate_node_info(self, node: Node) -> None:
        """Learn a node's endpoints and descriptors, then report it as added."""
        logger.debug("populate_node_info %s", node.addr64)
        node.active_endpoints_responses = 0
        node.active_endpoints_attempts = 0
        self.run_loop.enqueue_front(
            [
                self.active_endpoints_commands(node),
                Invoke(self.get_simple_descriptors, (node,)),
                Invoke(self.device_added, (node,)),
            ]
        )

    def device_added(self, node: Node) -> None:
        if node.is_coordinator:
            node.name = node.default_name
            return
        node.classify()
        self.read_properties(node)
        if node.added:
            logger.info("Device updated: %s", node.id)
            return
        node.added = True
        self.adapter.manager.on_device_added(node)

    def read_properties(self, node: Node) -> None:
        """Ask the node for the current value of each of its properties.

        The answers arrive as read attributes responses and update the
        properties like any attribute report.
        """
        adapter = self.adapter
        commands: list = []
        for prop in node.properties.values():
            frame_id = adapter.next_frame_id()
            payload = build_read_attributes(frame_id, [prop.attr_id])
            frame = adapter.zha_frame(frame_id, node, prop.endpoint, prop.cluster_id, payload)
            commands += [SendFrame(frame), WaitFrame(WaitPredicate.transmit_status(frame_id))]
        self.run_loop.enqueue_front(commands)

    # ─── ZDO EXCHANGES ──────────────────────────────────────────────────

    def zdo_request_commands(
        self,
        frame: ExplicitAddressingFrame,
        response_cluster: int,
        then: list[Command] | None = None,
        otherwise: list[Command] | None = None,
    ) -> list[Command]:
        """Send a ZDO request and, once it is delivered, wait for its response.

        ``then`` runs after the response. If the radio reports the request
        undelivered there is no response to wait for, so ``otherwise`` runs
        instead.
        """
        return [
            SendFrame(frame),
            WaitFrame(WaitPredicate.transmit_status(frame.frame_id)),
            Invoke(self.await_zdo_response, (frame, response_cluster, then or [], otherwise or [])),
        ]

    def await_zdo_response(
        self,
        frame: ExplicitAddressingFrame,
        response_cluster: int,
        then: list[Command],
        otherwise: list[Command],
    ) -> None:
        adapter = self.adapter
        if not adapter.delivered(frame.frame_id):
            logger.warning(
                "Not waiting for %s from %s: request was not delivered",
                describe_cluster(response_cluster),
                frame.destination64,
            )
            self.run_loop.enqueue_front(otherwise)
            return
        commands = list(then)
        # The response may already have arrived ahead of the transmit status.
        if not adapter.zdo_response_received(frame.frame_id, response_cluster):
            commands.insert(0, WaitFrame(WaitPredicate.zdo_response(response_cluster, frame.frame_id)))
        self.run_loop.enqueue_front(commands)

    # ─── ACTIVE ENDPOINTS ───────────────────────────────────────────────

    def active_endpoints_commands(self, node: Node) -> list[Command]:
        node.active_endpoints_attempts += 1
        frame = build_active_endpoints_request(self.adapter.next_frame_id(), node.addr64, node.addr16)
        retry = [Invoke(self.retry_active_endpoints_if_needed, (node,))]
        return self.zdo_request_commands(frame, ZdoCluster.ACTIVE_ENDPOINTS_RESPONSE, retry, retry)

    def retry_active_endpoints_if_needed(self, node: Node) -> None:
        if node.active_endpoints_responses > 0:
            return
        if node.active_endpoints_attempts < ACTIVE_ENDPOINT_ATTEMPTS:
            logger.debug(
                "No active endpoints from %s yet, attempt %d",
                node.addr64,
                node.active_endpoints_attempts + 1,
            )
            self.run_loop.enqueue_front(self.active_endpoints_commands(node))
        else:
            logger.warning(
                "No active endpoints response from %s after %d attempts",
                node.addr64,
                node.active_endpoints_attempts,
            )

    def handle_active_endpoints(self, frame: ExplicitRxFrame, response: ActiveEndpointsResponse) -> None:
        node = self.adapter.network.get(frame.remote64)
        if node is None:
            return
        node.active_endpoints_responses += 1
        if response.status != 0:
            logger.warning("Active endpoints request to %s failed: 0x%02x", node.addr64, response.status)
            return
        node.add_endpoints(response.endpoints)

    # ─── SIMPLE DESCRIPTORS ─────────────────────────────────────────────

    def get_simple_descriptors(self, node: Node) -> None:
        commands: list = []
        for endpoint in sorted(node.endpoints):
            if not 0 < endpoint <= 0xF0:
                logger.debug("Skipping reserved endpoint %d on %s", endpoint, node.addr64)
                continue
            commands.append(self.simple_descriptor_commands(node, endpoint))
        if self.adapter.config.discover_attributes:
            commands.append(Invoke(self.discover_attributes, (node,)))
        self.run_loop.enqueue_front(commands)

    def simple_descriptor_commands(self, node: Node, endpoint: int) -> list[Command]:
        frame = build_simple_descriptor_request(
            self.adapter.next_frame_id(), node.addr64, node.addr16, endpoint
        )
        return self.zdo_request_commands(frame, ZdoCluster.SIMPLE_DESCRIPTOR_RESPONSE)

    def handle_simple_descriptor(self, frame: ExplicitRxFrame, response: SimpleDescriptorResponse) -> None:
        node = self.adapter.network.get(frame.remote64)
        if node is None:
            return
        if response.status != 0:
            logger.warning("Simple descriptor request to %s failed: 0x%02x", node.addr64, response.status)
            return
        node.apply_simple_descriptor(response)

    # ─── ATTRIBUTE DISCOVERY ────────────────────────────────────────────

    def discover_attributes(self, node: Node) -> None:
        """Ask every cluster of every endpoint which attributes it has."""
        logger.info("Node: %s", node.id)
        commands: list = []
        for number in sorted(node.endpoints):
            endpoint = node.endpoints[number]
            for label, clusters in (("Input", endpoint.input_clusters), ("Output", endpoint.output_clusters)):
                logger.info("  %s clusters for endpoint %d: %s", label, number, _cluster_list(clusters))
                for cluster_id in clusters:
                    frame_id = self.adapter.next_frame_id()
                    frame = self.adapter.zha_frame(
                        frame_id,
                        node,
                        number,
                        cluster_id,
                        build_discover_attributes(frame_id),
                        profile_id=endpoint.profile_id or None,
                    )
                    commands += [SendFrame(frame), WaitFrame(WaitPredicate.transmit_status(frame_id))]
        self.run_loop.enqueue_front(commands)

    # ─── NEIGHBOR AND ROUTING TABLES ────────────────────────────────────

    def management_lqi_commands(self, node: Node, start_index: int = 0) -> list[Command]:
        frame = build_management_lqi_request(
            self.adapter.next_frame_id(), node.addr64, node.addr16, start_index
        )
        return self.zdo_request_commands(
            frame, ZdoCluster.MANAGEMENT_LQI_RESPONSE, [Invoke(self.management_lqi_next, (node,))]
        )

    def management_lqi_next(self, node: Node) -> None:
        next_index, node.lqi_next_index = node.lqi_next_index, None
        if next_index is not None:
            self.run_loop.enqueue_front(self.management_lqi_commands(node, next_index))

    def handle_management_lqi(self, frame: ExplicitRxFrame, response: ManagementLqiResponse) -> None:
        network = self.adapter.network
        node = network.get_or_create(frame.remote64, frame.remote16)
        if response.status != 0:
            logger.warning("Neighbor table request to %s failed: 0x%02x", node.addr64, response.status)
            node.lqi_next_index = None
            return
        node.apply_lqi_page(response)
        for neighbor in response.neighbors:
            network.get_or_create(neighbor.addr64, neighbor.addr16)
            logger.debug("Added neighbor %s to %s", neighbor.addr64, node.addr64)

    def management_rtg_commands(self, node: Node, start_index: int = 0) -> list[Command]:
        frame = build_management_rtg_request(
            self.adapter.next_frame_id(), node.addr64, node.addr16, start_index
        )
        return self.zdo_request_commands(
            frame, ZdoCluster.MANAGEMENT_RTG_RESPONSE, [Invoke(self.management_rtg_next, (node,))]
        )

    def management_rtg_next(self, node: Node) -> None:
        next_index, node.rtg_next_index = node.rtg_next_index, None
        if next_index is not None:
            self.run_loop.enqueue_front(self.management_rtg_commands(node, next_index))

    def handle_management_rtg(self, frame: ExplicitRxFrame, response: ManagementRtgResponse) -> None:
        node = self.adapter.network.get_or_create(frame.remote64, frame.remote16)
        if response.status != 0:
            logger.warning("Routing table request to %s failed: 0x%02x", node.addr64, response.status)
            node.rtg_next_index = None
            return
        node.apply_rtg_page(response)


def _cluster_list(clusters: list[int]) -> str:
    if not clusters:
        return "None"
    return ", ".join(
        f"0x{c:04x} - {cluster_name(c)}" if cluster_name(c) else f"0x{c:04x}" for c in clusters
    )
