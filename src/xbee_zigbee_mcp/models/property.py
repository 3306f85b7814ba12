"""Node properties and pending property writes."""

from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any


@dataclass
class Property:
    """A value on a node bound to one (endpoint, cluster, attribute)."""

    name: str
    endpoint: int
    cluster_id: int
    attr_id: int
    data_type: int
    value: Any = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "endpoint": self.endpoint,
            "cluster_id": f"0x{self.cluster_id:04x}",
            "attr_id": f"0x{self.attr_id:04x}",
            "value": self.value,
        }


@dataclass
class PendingProperty:
    """A property write waiting for the radio to confirm delivery.

    ``future`` completes with the written value once the write has been
    delivered, or with an exception if it was not. Completion is
    consume-once: later calls to :meth:`resolve` or :meth:`fail` are
    ignored.
    """

    prop: Property
    value: Any
    future: Future = field(default_factory=Future)

    @property
    def resolved(self) -> bool:
        return self.future.done()

    def resolve(self) -> bool:
        """Apply the value to the property and complete the future.

        Returns:
            True on the first call, False if already resolved.
        """
        if self.future.done():
            return False
        self.prop.value = self.value
        self.future.set_result(self.value)
        return True

    def fail(self, error: BaseException) -> bool:
        """Complete the future with ``error``, leaving the property as it was."""
        if self.future.done():
            return False
        self.future.set_exception(error)
        return True

    @property
    def succeeded(self) -> bool:
        return self.future.done() and self.future.exception() is None
