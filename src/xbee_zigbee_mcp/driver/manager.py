"""Interfaces between the adapter and the outside world.

The adapter consumes a :class:`TransceiverPort` for outbound bytes and
reports structural facts to a :class:`DeviceManager`.
:class:`EventRecorder` is a device manager that keeps a bounded history
of those reports.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from ..models.node import Node
    from ..models.property import Property

logger = logging.getLogger(__name__)


class TransceiverPort(Protocol):
    def write(self, data: bytes) -> None: ...

    def close(self) -> None: ...


class DeviceManager(Protocol):
    def on_device_added(self, node: Node) -> None: ...

    def on_device_removed(self, node: Node) -> None: ...

    def on_property_changed(self, node: Node, prop: Property) -> None: ...

    def on_adapter_ready(self, adapter_id: str) -> None: ...


class EventRecorder:
    """Device manager that logs each event and keeps the most recent ones."""

    def __init__(self, maxlen: int = 200) -> None:
        self.events: deque[dict] = deque(maxlen=maxlen)
        self.adapter_id: str | None = None

    def _record(self, event: str, **details) -> None:
        self.events.append({"time": time.time(), "event": event, **details})

    def on_device_added(self, node: Node) -> None:
        logger.info("Device added: %s", node.id)
        self._record("device_added", node=node.id, addr16=node.addr16)

    def on_device_removed(self, node: Node) -> None:
        logger.info("Device removed: %s", node.id)
        self._record("device_removed", node=node.id)

    def on_property_changed(self, node: Node, prop: Property) -> None:
        logger.info("Property changed: %s %s = %r", node.id, prop.name, prop.value)
        self._record("property_changed", node=node.id, name=prop.name, value=prop.value)

    def on_adapter_ready(self, adapter_id: str) -> None:
        logger.info("Adapter ready: %s", adapter_id)
        self.adapter_id = adapter_id
        self._record("adapter_ready", adapter=adapter_id)

    def recent(self, limit: int = 50) -> list[dict]:
        if limit <= 0:
            return []
        return list(self.events)[-limit:]
