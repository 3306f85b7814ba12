"""Data model: nodes, the node table, adapter settings and properties."""

from .network import Network
from .node import Endpoint, Node
from .property import PendingProperty, Property
from .settings import AdapterSettings
