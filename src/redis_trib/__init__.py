from ._version import __version__
from .allocator import SlotAllocator, allocate
from .broadcast import Broadcaster
from .config import TribConfig
from .errors import (
    ClusterStateError,
    NoSlotsError,
    ParseError,
    PreconditionError,
    RedisTribError,
    ServerError,
)
from .node import Node
from .reply import CallResult
from .resharder import Resharder, ReshardReport, compute_shares
from .structs import SLOT_COUNT, Address, NodeDescriptor, SlotSet
from .util import parse_cluster_node_line, parse_cluster_nodes
from .view import ClusterSnapshot, ClusterView

__all__ = [
    "__version__",
    "SLOT_COUNT",
    # Components
    "ClusterView",
    "SlotAllocator",
    "Resharder",
    "Broadcaster",
    "TribConfig",
    # functions
    "allocate",
    "compute_shares",
    "parse_cluster_node_line",
    "parse_cluster_nodes",
    # Errors
    "RedisTribError",
    "ParseError",
    "PreconditionError",
    "ServerError",
    "NoSlotsError",
    "ClusterStateError",
    # public structs
    "Address",
    "CallResult",
    "ClusterSnapshot",
    "Node",
    "NodeDescriptor",
    "ReshardReport",
    "SlotSet",
]
