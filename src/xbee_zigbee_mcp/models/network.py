"""The node table: every node the adapter knows about, keyed by 64-bit address."""

from __future__ import annotations

import logging
from typing import Iterator

from ..protocol.frames import UNKNOWN_ADDR16
from ..protocol.zdo import DeviceType, Relationship
from .node import Node

logger = logging.getLogger(__name__)

_DEVICE_TYPE_LABELS = {
    DeviceType.COORDINATOR: "Coord ",
    DeviceType.ROUTER: "Router",
    DeviceType.END_DEVICE: "EndDev",
}
_RELATIONSHIP_LABELS = {
    Relationship.PARENT: "Parent  ",
    Relationship.CHILD: "Child   ",
    Relationship.SIBLING: "Sibling ",
    Relationship.NONE: "None    ",
    Relationship.PREVIOUS_CHILD: "Previous",
}
_PERMIT_JOIN_LABELS = {0: "Y", 1: "N"}


class Network:
    """Owns all Node records. Nodes reference each other by address only."""

    def __init__(self) -> None:
        self._nodes: dict[str, Node] = {}

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, addr64: str) -> bool:
        return addr64 in self._nodes

    def __iter__(self) -> Iterator[Node]:
        return iter(self._nodes.values())

    def get(self, addr64: str) -> Node | None:
        return self._nodes.get(addr64)

    def get_or_create(self, addr64: str, addr16: str = UNKNOWN_ADDR16) -> Node:
        """Return the node for ``addr64``, creating it if unseen.

        An existing node whose 16-bit address is still unknown picks up
        ``addr16``.
        """
        node = self._nodes.get(addr64)
        if node is None:
            node = Node(addr64, addr16)
            self._nodes[addr64] = node
            logger.debug("Created node %s %s", addr64, addr16)
        elif node.addr16 == UNKNOWN_ADDR16 and addr16 != UNKNOWN_ADDR16:
            node.addr16 = addr16
        return node

    def remove(self, addr64: str) -> Node | None:
        """Delete a node and prune it from every other node's neighbor table."""
        node = self._nodes.pop(addr64, None)
        if node is None:
            return None
        for other in self._nodes.values():
            other.remove_neighbor(addr64)
        return node

    def snapshot(self) -> list[Node]:
        """The current nodes in insertion order, safe to iterate while the table changes."""
        return list(self._nodes.values())

    def dump(self) -> None:
        """Log the node table with each node's neighbors at INFO level."""
        logger.info("----- Nodes -----")
        for node in self._nodes.values():
            logger.info(
                "Node: %s %s Name: %-32s endpoints: %s",
                node.addr64,
                node.addr16,
                node.name,
                sorted(node.endpoints),
            )
            for neighbor in node.neighbors:
                if neighbor is None:
                    continue
                logger.info(
                    "  Neighbor: %s %s DT: %s R: %s PJ: %s D: %3d LQI: %3d",
                    neighbor.addr64,
                    neighbor.addr16,
                    _DEVICE_TYPE_LABELS.get(neighbor.device_type, "???   "),
                    _RELATIONSHIP_LABELS.get(neighbor.relationship, "???     "),
                    _PERMIT_JOIN_LABELS.get(neighbor.permit_joining, "?"),
                    neighbor.depth,
                    neighbor.lqi,
                )
        logger.info("-----------------")
