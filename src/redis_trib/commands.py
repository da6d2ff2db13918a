import enum
from typing import Any, Awaitable, Callable, Union

from redis_trib.reply import CallResult
from redis_trib.util import ensure_str, parse_cluster_nodes, parse_info


__all__ = [
    "SetSlotMode",
    "NodeCommandsMixin",
]


@enum.unique
class SetSlotMode(enum.Enum):
    IMPORTING = "IMPORTING"
    MIGRATING = "MIGRATING"
    NODE = "NODE"


MIGRATE_NOKEY = "NOKEY"


class NodeCommandsMixin:
    """Commands consumed by cluster operations.

    For commands details see: http://redis.io/commands#cluster
    Every method returns CallResult, remote errors never raise from here.
    """

    call: Callable[..., Awaitable[CallResult]]

    async def info(self, section: str) -> CallResult:
        """Node INFO section as dict."""
        result = await self.call(b"INFO", section)
        return result.map(lambda reply: parse_info(ensure_str(reply)))

    async def cluster_info(self) -> CallResult:
        """Provides info about Redis Cluster node state."""
        result = await self.call(b"CLUSTER", b"INFO")
        return result.map(lambda reply: parse_info(ensure_str(reply)))

    async def cluster_nodes(self) -> CallResult:
        """Get Cluster config for the node."""
        result = await self.call(b"CLUSTER", b"NODES")
        return result.map(lambda reply: parse_cluster_nodes(ensure_str(reply)))

    async def cluster_add_slots(self, slot: int, *slots: int) -> CallResult:
        """Assign new hash slots to receiving node."""
        slots_list = (slot,) + slots
        if not all(isinstance(s, int) for s in slots_list):
            raise TypeError("All parameters must be of type int")

        result = await self.call(b"CLUSTER", b"ADDSLOTS", *slots_list)
        return result.expect_ok()

    async def cluster_meet(self, ip: str, port: int) -> CallResult:
        """Force a node cluster to handshake with another node."""
        result = await self.call(b"CLUSTER", b"MEET", ip, port)
        return result.expect_ok()

    async def cluster_forget(self, node_id: str) -> CallResult:
        """Remove a node from the nodes table."""
        result = await self.call(b"CLUSTER", b"FORGET", node_id)
        return result.expect_ok()

    async def cluster_setslot(
        self, slot: int, mode: Union[SetSlotMode, str], node_id: str
    ) -> CallResult:
        """Bind a hash slot to specified node."""
        mode = SetSlotMode(mode)
        result = await self.call(b"CLUSTER", b"SETSLOT", slot, mode.value, node_id)
        return result.expect_ok()

    async def cluster_count_keys_in_slot(self, slot: int) -> CallResult:
        """Return the number of local keys in the specified hash slot."""
        result = await self.call(b"CLUSTER", b"COUNTKEYSINSLOT", slot)
        return result.map(int)

    async def cluster_get_keys_in_slot(self, slot: int, count: int) -> CallResult:
        """Return local key names in the specified hash slot."""
        result = await self.call(b"CLUSTER", b"GETKEYSINSLOT", slot, count)
        return result.map(list)

    async def migrate(
        self, host: str, port: int, key: Any, db: int, timeout_ms: int
    ) -> CallResult:
        """Atomically transfer a key to destination instance.

        NOKEY reply means key was expired or deleted meanwhile,
        that is not an error for the caller.
        """
        result = await self.call(b"MIGRATE", host, port, key, db, timeout_ms)
        if result.ok and result.value in (MIGRATE_NOKEY, MIGRATE_NOKEY.encode()):
            return result.map(lambda reply: False)
        return result.expect_ok()
