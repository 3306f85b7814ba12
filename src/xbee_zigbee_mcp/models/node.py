"""Zigbee nodes, their endpoints and the properties classified from them."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..protocol.frames import UNKNOWN_ADDR16
from ..protocol.zcl import (
    TYPE_BOOLEAN,
    TYPE_UINT8,
    AttributeRecord,
    Cluster,
    Foundation,
    ZclFrame,
    cluster_name,
    parse_default_response,
    parse_discover_attributes_response,
    parse_read_attributes_response,
    parse_report_attributes,
)
from ..protocol.zdo import (
    ManagementLqiResponse,
    ManagementRtgResponse,
    Neighbor,
    RoutingEntry,
    SimpleDescriptorResponse,
)
from .property import Property

logger = logging.getLogger(__name__)


@dataclass
class Endpoint:
    """One application endpoint as learned from its simple descriptor."""

    endpoint: int
    profile_id: int = 0
    device_id: int = 0
    device_version: int = 0
    input_clusters: list[int] = field(default_factory=list)
    output_clusters: list[int] = field(default_factory=list)
    # cluster id -> [(attribute id, data type), ...] from attribute discovery
    attributes: dict[int, list[tuple[int, int]]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "endpoint": self.endpoint,
            "profile_id": f"0x{self.profile_id:04x}",
            "device_id": f"0x{self.device_id:04x}",
            "device_version": self.device_version,
            "input_clusters": [f"0x{c:04x}" for c in self.input_clusters],
            "output_clusters": [f"0x{c:04x}" for c in self.output_clusters],
            "attributes": {
                f"0x{cluster:04x}": [f"0x{attr_id:04x}" for attr_id, _ in attrs]
                for cluster, attrs in self.attributes.items()
            },
        }


def _store_page(table: list, start_index: int, entries: list) -> None:
    end = start_index + len(entries)
    if len(table) < end:
        table.extend([None] * (end - len(table)))
    table[start_index:end] = entries


def _next_page(table: list, start_index: int, count: int, num_entries: int) -> int | None:
    """Return the next page's start index, or None (truncating) when the scan is done."""
    next_index = start_index + count
    if count and next_index < num_entries:
        return next_index
    del table[num_entries:]
    return None


class Node:
    """A device on the mesh, keyed by its immutable 64-bit address."""

    def __init__(self, addr64: str, addr16: str = UNKNOWN_ADDR16, is_coordinator: bool = False):
        self._addr64 = addr64
        self.addr16 = addr16
        self.is_coordinator = is_coordinator
        self.name = ""
        self.endpoints: dict[int, Endpoint] = {}
        self.neighbors: list[Neighbor | None] = []
        self.routes: list[RoutingEntry | None] = []
        self.properties: dict[str, Property] = {}
        self.added = False

        # Discovery bookkeeping, written by response handlers and read by
        # the follow-up step queued behind the matching wait.
        self.active_endpoints_responses = 0
        self.active_endpoints_attempts = 0
        self.lqi_next_index: int | None = None
        self.rtg_next_index: int | None = None

    @property
    def addr64(self) -> str:
        return self._addr64

    @property
    def id(self) -> str:
        return f"zb-{self._addr64}"

    @property
    def default_name(self) -> str:
        return self.id

    def __repr__(self) -> str:
        return f"Node({self._addr64}, {self.addr16}, name={self.name!r})"

    # ─── TOPOLOGY ───────────────────────────────────────────────────────

    def apply_lqi_page(self, response: ManagementLqiResponse) -> int | None:
        """Store one neighbor table page.

        Returns:
            The start index of the next page to request, or None when the
            table is complete (it is then exactly ``num_entries`` long).
        """
        _store_page(self.neighbors, response.start_index, response.neighbors)
        self.lqi_next_index = _next_page(
            self.neighbors,
            response.start_index,
            response.num_entries_this_response,
            response.num_entries,
        )
        return self.lqi_next_index

    def apply_rtg_page(self, response: ManagementRtgResponse) -> int | None:
        """Store one routing table page; same contract as :meth:`apply_lqi_page`."""
        _store_page(self.routes, response.start_index, response.routes)
        self.rtg_next_index = _next_page(
            self.routes,
            response.start_index,
            response.num_entries_this_response,
            response.num_entries,
        )
        return self.rtg_next_index

    def remove_neighbor(self, addr64: str) -> bool:
        for index, neighbor in enumerate(self.neighbors):
            if neighbor is not None and neighbor.addr64 == addr64:
                del self.neighbors[index]
                return True
        return False

    # ─── ENDPOINTS ──────────────────────────────────────────────────────

    def add_endpoints(self, endpoints: list[int]) -> None:
        for number in endpoints:
            if number not in self.endpoints:
                self.endpoints[number] = Endpoint(endpoint=number)

    def apply_simple_descriptor(self, response: SimpleDescriptorResponse) -> bool:
        endpoint = self.endpoints.get(response.endpoint)
        if endpoint is None:
            return False
        endpoint.profile_id = response.profile_id
        endpoint.device_id = response.device_id
        endpoint.device_version = response.device_version
        endpoint.input_clusters = list(response.input_clusters)
        endpoint.output_clusters = list(response.output_clusters)
        return True

    # ─── PROPERTIES ─────────────────────────────────────────────────────

    def classify(self) -> None:
        """Register the properties this node's input clusters support.

        Only the on/off and level control clusters are recognized; the
        first endpoint offering a cluster wins.
        """
        for number in sorted(self.endpoints):
            clusters = self.endpoints[number].input_clusters
            if Cluster.ON_OFF in clusters and "on" not in self.properties:
                self.properties["on"] = Property(
                    name="on",
                    endpoint=number,
                    cluster_id=Cluster.ON_OFF,
                    attr_id=0x0000,
                    data_type=TYPE_BOOLEAN,
                    value=False,
                )
            if Cluster.LEVEL_CONTROL in clusters and "level" not in self.properties:
                self.properties["level"] = Property(
                    name="level",
                    endpoint=number,
                    cluster_id=Cluster.LEVEL_CONTROL,
                    attr_id=0x0000,
                    data_type=TYPE_UINT8,
                    value=0,
                )

    def find_property(self, endpoint: int, cluster_id: int, attr_id: int) -> Property | None:
        for prop in self.properties.values():
            if (prop.endpoint, prop.cluster_id, prop.attr_id) == (endpoint, cluster_id, attr_id):
                return prop
        return None

    def handle_zha_response(self, endpoint: int, cluster_id: int, zcl: ZclFrame) -> list[Property]:
        """Interpret a ZCL frame received from this node.

        Returns:
            The properties whose value changed.
        """
        if zcl.is_cluster_specific:
            logger.debug("%s: ignoring cluster command 0x%02x", self.id, zcl.command_id)
            return []

        if zcl.command_id == Foundation.DISCOVER_ATTRIBUTES_RESPONSE:
            result = parse_discover_attributes_response(zcl.payload)
            ep = self.endpoints.get(endpoint)
            if ep is not None:
                ep.attributes.setdefault(cluster_id, []).extend(result.attributes)
            logger.info(
                "%s endpoint %d cluster 0x%04x (%s) attributes: %s",
                self.id,
                endpoint,
                cluster_id,
                cluster_name(cluster_id) or "?",
                ", ".join(f"0x{attr_id:04x}" for attr_id, _ in result.attributes) or "None",
            )
            return []

        if zcl.command_id == Foundation.DEFAULT_RESPONSE:
            command_id, status = parse_default_response(zcl.payload)
            if status != 0:
                logger.warning(
                    "%s rejected command 0x%02x on cluster 0x%04x: status 0x%02x",
                    self.id,
                    command_id,
                    cluster_id,
                    status,
                )
            return []

        if zcl.command_id == Foundation.READ_ATTRIBUTES_RESPONSE:
            records = parse_read_attributes_response(zcl.payload)
        elif zcl.command_id == Foundation.REPORT_ATTRIBUTES:
            records = parse_report_attributes(zcl.payload)
        else:
            return []
        return self._apply_records(endpoint, cluster_id, records)

    def _apply_records(
        self, endpoint: int, cluster_id: int, records: list[AttributeRecord]
    ) -> list[Property]:
        changed = []
        for record in records:
            if record.status != 0:
                continue
            prop = self.find_property(endpoint, cluster_id, record.attr_id)
            if prop is None or prop.value == record.value:
                continue
            prop.value = record.value
            changed.append(prop)
        return changed

    # ─── OUTPUT ─────────────────────────────────────────────────────────

    def to_dict(self, detail: bool = False) -> dict:
        result = {
            "id": self.id,
            "addr64": self._addr64,
            "addr16": self.addr16,
            "name": self.name,
            "is_coordinator": self.is_coordinator,
            "endpoints": sorted(self.endpoints),
            "properties": {name: prop.value for name, prop in self.properties.items()},
        }
        if detail:
            result["endpoints"] = [self.endpoints[n].to_dict() for n in sorted(self.endpoints)]
            result["neighbors"] = [n.to_dict() if n else None for n in self.neighbors]
            result["routes"] = [r.to_dict() if r else None for r in self.routes]
            result["properties"] = {name: prop.to_dict() for name, prop in self.properties.items()}
        return result
