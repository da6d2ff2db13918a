from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from redis_trib.config import TribConfig
from redis_trib.connection import connector_factory
from redis_trib.errors import ClusterStateError, PreconditionError
from redis_trib.log import logger
from redis_trib.node import Node
from redis_trib.reply import CallResult
from redis_trib.structs import Address, NodeDescriptor
from redis_trib.typedef import Connector


__all__ = (
    "ClusterSnapshot",
    "ClusterView",
)


class ClusterSnapshot:
    """Nodes as reported by one CLUSTER NODES query, in reply order"""

    def __init__(self, nodes: Sequence[Node], myself: Node) -> None:
        self._nodes = tuple(nodes)
        self._myself = myself

    def __repr__(self) -> str:
        return f"<{type(self).__name__} from:{self._myself.addr} nodes:{len(self._nodes)}>"

    def __iter__(self) -> Iterator[Node]:
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __getitem__(self, index: int) -> Node:
        return self._nodes[index]

    @property
    def myself(self) -> Node:
        return self._myself

    def find(self, node_id: str) -> Optional[Node]:
        for node in self._nodes:
            if node.node_id == node_id:
                return node
        return None

    def find_by_addr(self, addr: Address) -> Optional[Node]:
        for node in self._nodes:
            if node.addr == addr:
                return node
        return None

    def masters(self) -> List[Node]:
        return [node for node in self._nodes if node.is_master]


class ClusterView:
    def __init__(
        self,
        seeds: Sequence[Address],
        config: TribConfig,
        *,
        connector: Connector = None,
    ) -> None:
        if len(seeds) == 0:
            raise ValueError("no seed addresses")

        if connector is None:
            connector = connector_factory(config.connect_timeout)
        self._config = config
        self._connector = connector
        self._nodes: List[Node] = [Node(addr, connector) for addr in seeds]
        self._materialized: List[Node] = []
        self._myself: Optional[Node] = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} seeds:{[str(n.addr) for n in self._nodes]}>"

    @property
    def nodes(self) -> List[Node]:
        return list(self._nodes)

    @property
    def myself(self) -> Optional[Node]:
        return self._myself

    async def discover_all(self) -> ClusterSnapshot:
        """Get topology from first seed able to answer CLUSTER NODES"""

        last_failure: Optional[CallResult] = None
        for index, node in enumerate(self._nodes):
            if not node.is_reachable():
                continue

            logger.info("Obtain cluster nodes from %s", node.addr)
            result = await node.cluster_nodes()
            if not result.ok:
                last_failure = result
                logger.warning("Unable to get cluster nodes from %s: %r", node.addr, result.error)
                continue

            return self._build_snapshot(index, result.value)

        if last_failure is not None:
            last_failure.unwrap()
        raise ClusterStateError("No reachable nodes to discover cluster topology")

    async def describe(self, node: Node) -> ClusterSnapshot:
        """Get topology from exactly given seed node"""

        for index, seed in enumerate(self._nodes):
            if seed is node:
                break
        else:
            raise ValueError(f"{node!r} is not a node of this view")

        result = await node.cluster_nodes()
        return self._build_snapshot(index, result.unwrap())

    def _build_snapshot(self, index: int, descriptors: Sequence[NodeDescriptor]) -> ClusterSnapshot:
        seed = self._nodes[index]
        nodes: List[Node] = []
        myself: Optional[Node] = None
        for descriptor in descriptors:
            if descriptor.is_myself and myself is None:
                # reuse already opened connection instead of connecting to itself
                node = seed.bind(descriptor)
                myself = node
            else:
                node = Node(descriptor.addr, self._connector, descriptor=descriptor)
                self._materialized.append(node)
            nodes.append(node)

        if myself is None:
            raise ClusterStateError(f"CLUSTER NODES reply from {seed.addr} has no myself entry")

        self._nodes[index] = myself
        self._myself = myself
        logger.debug("Discovered %d nodes from %s", len(nodes), seed.addr)

        return ClusterSnapshot(nodes, myself)

    async def validate_for_creation(self, nodes: Sequence[Node] = None) -> None:
        """Check every node is an empty cluster-enabled node knowing only itself.

        All nodes are checked before raising PreconditionError with every
        found violation.
        """

        if nodes is None:
            nodes = self._nodes

        violations: List[Tuple[Address, str]] = []
        for node in nodes:
            violations.extend(await self._node_violations(node))

        if violations:
            raise PreconditionError(violations)

    async def _node_violations(self, node: Node) -> List[Tuple[Address, str]]:
        violations: List[Tuple[Address, str]] = []

        info = (await node.info("cluster")).unwrap()
        if info.get("cluster_enabled") != "1":
            violations.append((node.addr, "is not configured as a cluster node"))
            # CLUSTER commands are not available on such node
            return violations

        cluster_info = (await node.cluster_info()).unwrap()
        if int(cluster_info.get("cluster_known_nodes", "0")) != 1:
            violations.append((node.addr, "already knows other nodes"))

        keyspace = (await node.info("keyspace")).unwrap()
        for db_name, db_info in sorted(keyspace.items()):
            if db_name.startswith("db") and _keyspace_keys(db_info) > 0:
                violations.append((node.addr, f"contains some data in database {db_name[2:]}"))

        return violations

    async def close(self) -> None:
        nodes, self._materialized = self._nodes + self._materialized, []
        for node in nodes:
            await node.close()


def _keyspace_keys(db_info: str) -> int:
    # keys=1,expires=0,avg_ttl=0
    fields: Dict[str, str] = dict(
        part.split("=", 1) for part in db_info.split(",") if "=" in part
    )
    return int(fields.get("keys", "0"))
