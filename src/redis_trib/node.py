import asyncio
from typing import Any, FrozenSet, Optional

from redis.exceptions import RedisError

from redis_trib.abc import AbcConnection
from redis_trib.commands import NodeCommandsMixin
from redis_trib.errors import ClusterStateError
from redis_trib.log import logger
from redis_trib.reply import CallResult
from redis_trib.structs import Address, NodeDescriptor, SlotSet
from redis_trib.typedef import Connector


__all__ = ["Node"]


class Node(NodeCommandsMixin):
    """Cluster node with exclusively owned connection.

    Node created from seed address has no descriptor until the node itself
    is described by CLUSTER NODES. Descriptor is never changed in place,
    refreshed state is a new Node from a new snapshot.
    """

    def __init__(
        self,
        addr: Address,
        connector: Connector,
        *,
        descriptor: Optional[NodeDescriptor] = None,
        connection: Optional[AbcConnection] = None,
    ) -> None:
        self._addr = addr
        self._connector = connector
        self._descriptor = descriptor
        self._conn = connection

    def __repr__(self) -> str:
        if self._descriptor is None:
            return f"<{type(self).__name__} {self._addr} (unknown)>"
        return f"<{type(self).__name__} {self._addr} {self._descriptor.node_id}>"

    def __str__(self) -> str:
        return str(self._addr)

    @property
    def addr(self) -> Address:
        return self._addr

    @property
    def descriptor(self) -> NodeDescriptor:
        if self._descriptor is None:
            raise ClusterStateError(f"Topology of node {self._addr} is not known yet")
        return self._descriptor

    @property
    def has_descriptor(self) -> bool:
        return self._descriptor is not None

    @property
    def node_id(self) -> str:
        return self.descriptor.node_id

    @property
    def flags(self) -> FrozenSet[str]:
        return self.descriptor.flags

    @property
    def slots(self) -> SlotSet:
        return self.descriptor.slots

    @property
    def is_master(self) -> bool:
        return self.descriptor.is_master

    def is_reachable(self) -> bool:
        if self._descriptor is None:
            return True
        return self._descriptor.is_reachable()

    @property
    def connected(self) -> bool:
        return self._conn is not None

    async def call(self, *args: Any) -> CallResult:
        try:
            if self._conn is None:
                self._conn = await self._connector(self._addr)
            value = await self._conn.execute_command(*args)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            logger.debug("Command %r to %s failed: %r", args[:2], self._addr, e)
            return CallResult(self._addr, args, error=e)

        return CallResult(self._addr, args, value=value)

    def bind(self, descriptor: NodeDescriptor) -> "Node":
        """Create described Node which takes over this node connection"""

        conn, self._conn = self._conn, None
        return type(self)(
            self._addr,
            self._connector,
            descriptor=descriptor,
            connection=conn,
        )

    async def close(self) -> None:
        conn, self._conn = self._conn, None
        if conn is not None:
            await conn.aclose()
