import dataclasses
import types
from typing import FrozenSet, List, Mapping, NamedTuple, Optional


SLOT_COUNT = 16384


class Address(NamedTuple):
    host: str
    port: int

    def __str__(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


_EMPTY_MAP: Mapping[int, str] = types.MappingProxyType({})


@dataclasses.dataclass(frozen=True)
class SlotSet:
    """Slot ownership of one node split into disjoint pieces.

    `stable` holds slots owned outright, `migrating` maps a slot leaving the node
    to the destination node id and `importing` maps a slot arriving at the node
    to the source node id.
    """

    stable: FrozenSet[int] = frozenset()
    migrating: Mapping[int, str] = dataclasses.field(default_factory=lambda: _EMPTY_MAP)
    importing: Mapping[int, str] = dataclasses.field(default_factory=lambda: _EMPTY_MAP)

    def __len__(self) -> int:
        return len(self.stable)

    def owns(self, slot: int) -> bool:
        return slot in self.stable

    def lowest(self, count: int) -> List[int]:
        return sorted(self.stable)[: max(count, 0)]


@dataclasses.dataclass(frozen=True)
class NodeDescriptor:
    node_id: str
    addr: Address
    flags: FrozenSet[str]
    master_id: Optional[str]
    ping_sent: int
    pong_recv: int
    config_epoch: int
    link_state: str
    slots: SlotSet = dataclasses.field(default_factory=SlotSet, repr=False)
    bus_port: Optional[int] = None

    UNREACHABLE_FLAGS = frozenset(("disconnected", "fail", "noaddr"))

    @property
    def is_myself(self) -> bool:
        return "myself" in self.flags

    @property
    def is_master(self) -> bool:
        return "master" in self.flags

    def is_reachable(self) -> bool:
        return not (self.flags & self.UNREACHABLE_FLAGS)
