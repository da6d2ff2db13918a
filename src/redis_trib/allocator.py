from typing import List, Sequence, Tuple, TypeVar

from redis_trib.config import TribConfig
from redis_trib.errors import ClusterStateError, PreconditionError
from redis_trib.log import logger
from redis_trib.node import Node
from redis_trib.structs import SLOT_COUNT, Address
from redis_trib.typedef import Connector
from redis_trib.util import slots_ranges
from redis_trib.view import ClusterView


__all__ = (
    "allocate",
    "format_slots",
    "SlotAllocator",
)


_T = TypeVar("_T")


def allocate(nodes: Sequence[_T]) -> List[Tuple[_T, range]]:
    """Split whole slot space into contiguous chunks in nodes order.

    Every chunk has ceil(SLOT_COUNT / len(nodes)) slots except the last one,
    which takes the remainder.
    """

    if len(nodes) == 0:
        raise ValueError("no nodes to allocate slots")

    chunk_size = -(-SLOT_COUNT // len(nodes))
    chunks = []
    for i, node in enumerate(nodes):
        begin = min(i * chunk_size, SLOT_COUNT)
        end = min(begin + chunk_size, SLOT_COUNT)
        chunks.append((node, range(begin, end)))

    return chunks


def format_slots(slots) -> str:
    parts = []
    for begin, end in slots_ranges(slots):
        parts.append(str(begin) if begin == end else f"{begin}-{end}")
    return ",".join(parts)


class SlotAllocator:
    def __init__(self, config: TribConfig, *, connector: Connector = None) -> None:
        self._config = config
        self._connector = connector
        self._output = config.output

    async def assign_slots(self, node: Node, slots: Sequence[int]) -> None:
        if len(slots) == 0:
            logger.warning("Node %s gets no slots", node.addr)
            return

        logger.info("Assign %d slots to %s", len(slots), node.addr)
        (await node.cluster_add_slots(*slots)).unwrap()

    async def introduce(self, seed: Node, new_node: Node) -> None:
        # gossip convergence is not awaited
        logger.info("Introduce %s to %s", new_node.addr, seed.addr)
        (await seed.cluster_meet(new_node.addr.host, new_node.addr.port)).unwrap()

    async def forget(self, known: Node, target: Node) -> None:
        logger.info("Forget %s (%s) through %s", target.node_id, target.addr, known.addr)
        (await known.cluster_forget(target.node_id)).unwrap()

    async def create(self, addrs: Sequence[Address]) -> List[Tuple[Node, range]]:
        duplicates = sorted({addr for addr in addrs if list(addrs).count(addr) > 1})
        if duplicates:
            raise PreconditionError([(addr, "is given more than once") for addr in duplicates])

        view = ClusterView(addrs, self._config, connector=self._connector)
        try:
            nodes = view.nodes
            self._output(f">>> Creating cluster of {len(nodes)} nodes")
            await view.validate_for_creation(nodes)

            plan = allocate(nodes)
            for node, slots in plan:
                self._output(f"Node {node.addr}: slots {format_slots(slots)} ({len(slots)} slots)")

            for node, slots in plan:
                await self.assign_slots(node, slots)

            first = nodes[0]
            self._output(f">>> Introducing all nodes to {first.addr}")
            for node in nodes:
                await self.introduce(first, node)

            self._output("[OK] Slots assigned, cluster will converge through gossip")
        finally:
            await view.close()

        return plan

    async def add(self, existing_addr: Address, new_addr: Address) -> None:
        if existing_addr == new_addr:
            raise PreconditionError([(new_addr, "cannot be added through itself")])

        view = ClusterView([existing_addr, new_addr], self._config, connector=self._connector)
        try:
            existing, new_node = view.nodes
            self._output(f">>> Adding node {new_addr} to cluster through {existing_addr}")
            await view.validate_for_creation([new_node])
            await self.introduce(existing, new_node)
            self._output(f"[OK] Node {new_addr} introduced")
        finally:
            await view.close()

    async def remove(self, existing_addr: Address, node_id: str) -> None:
        view = ClusterView([existing_addr], self._config, connector=self._connector)
        try:
            snapshot = await view.discover_all()
            target = snapshot.find(node_id)
            if target is None:
                raise ClusterStateError(f"No such node ID {node_id}")

            if len(target.slots) > 0:
                logger.warning("Node %s still owns %d slots", node_id, len(target.slots))
                self._output(
                    f"[WARNING] Node {node_id} owns {len(target.slots)} slots, "
                    "they become unreachable after removal"
                )

            for known in snapshot:
                if known is not target and known.is_reachable():
                    break
            else:
                raise ClusterStateError(f"No other known node to forget {node_id} through")

            self._output(f">>> Removing node {node_id} ({target.addr}) through {known.addr}")
            await self.forget(known, target)
            self._output(f"[OK] Node {node_id} removed")
        finally:
            await view.close()
