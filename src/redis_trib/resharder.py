import dataclasses
from typing import Dict, List, Optional, Sequence, Tuple, TypeVar

from redis_trib.commands import SetSlotMode
from redis_trib.config import TribConfig
from redis_trib.errors import NoSlotsError, PreconditionError
from redis_trib.log import logger
from redis_trib.node import Node
from redis_trib.structs import SLOT_COUNT, Address
from redis_trib.typedef import Connector
from redis_trib.view import ClusterSnapshot, ClusterView


__all__ = (
    "MIGRATE_BATCH",
    "ReshardReport",
    "compute_shares",
    "Resharder",
)


# keys fetched from source per GETKEYSINSLOT
MIGRATE_BATCH = 10

_S = TypeVar("_S")


@dataclasses.dataclass
class ReshardReport:
    # source node id -> moved slots
    moved_slots: Dict[str, List[int]] = dataclasses.field(default_factory=dict)
    moved_keys: int = 0
    broadcast_failures: List[Tuple[int, Address, BaseException]] = dataclasses.field(
        default_factory=list
    )
    # nodes flagged unreachable, left out of ownership updates
    skipped_nodes: List[Address] = dataclasses.field(default_factory=list)

    @property
    def total_slots(self) -> int:
        return sum(len(slots) for slots in self.moved_slots.values())


def compute_shares(sources: Sequence[_S], count: int) -> List[Tuple[_S, int]]:
    """Proportional number of slots taken from every source.

    Sources are ordered by stable slots descending, ties keep given order.
    Shares are truncated, so their sum may be lower than `count`.
    """

    ordered = sorted(sources, key=lambda source: len(source.slots), reverse=True)  # type: ignore
    total = sum(len(source.slots) for source in ordered)  # type: ignore
    if total == 0:
        raise NoSlotsError("Source nodes do not own any slot")

    return [(source, count * len(source.slots) // total) for source in ordered]  # type: ignore


class Resharder:
    def __init__(self, config: TribConfig, *, connector: Connector = None) -> None:
        self._config = config
        self._connector = connector
        self._output = config.output

    async def reshard(
        self,
        target_addr: Address,
        count: int,
        source_addrs: Sequence[Address],
        *,
        timeout: Optional[int] = None,
        db: Optional[int] = None,
    ) -> ReshardReport:
        if not 0 < count <= SLOT_COUNT:
            raise ValueError(f"Number of slots must be between 1 and {SLOT_COUNT}")
        if len(source_addrs) == 0:
            raise ValueError("No source nodes")
        if target_addr in source_addrs:
            raise ValueError(f"Target {target_addr} cannot be a source node")
        if len(set(source_addrs)) != len(source_addrs):
            raise ValueError("Source nodes must be unique")

        if timeout is None:
            timeout = self._config.migrate_timeout
        if db is None:
            db = self._config.db

        views: List[ClusterView] = []
        try:
            target_snapshot = await self._resolve(target_addr, views)
            target = target_snapshot.myself
            sources = []
            for addr in source_addrs:
                sources.append((await self._resolve(addr, views)).myself)

            violations = [
                (node.addr, "is not a master")
                for node in [target] + sources
                if not node.is_master
            ]
            if violations:
                raise PreconditionError(violations)

            report = ReshardReport()
            shares = compute_shares(sources, count)
            peers = self._broadcast_peers(target_snapshot, report)
            self._output(f">>> Resharding {count} slots to {target.addr} ({target.node_id})")
            for source, share in shares:
                slots = source.slots.lowest(share)
                logger.info(
                    "Take %d of %d slots from %s", len(slots), len(source.slots), source.addr
                )
                for slot in slots:
                    await self.migrate_slot(
                        source,
                        target,
                        slot,
                        peers,
                        report,
                        timeout=timeout,
                        db=db,
                    )
            if report.total_slots < count:
                logger.info(
                    "Moved %d slots of requested %d after rounding", report.total_slots, count
                )

            self._output(f"[OK] {report.total_slots} slots moved, {report.moved_keys} keys")
        finally:
            for view in views:
                await view.close()

        return report

    async def _resolve(self, addr: Address, views: List[ClusterView]) -> ClusterSnapshot:
        view = ClusterView([addr], self._config, connector=self._connector)
        views.append(view)
        return await view.describe(view.nodes[0])

    async def migrate_slot(
        self,
        source: Node,
        target: Node,
        slot: int,
        peers: Sequence[Node],
        report: ReshardReport,
        *,
        timeout: int,
        db: int,
    ) -> None:
        keys_count = await source.cluster_count_keys_in_slot(slot)
        if keys_count.ok:
            self._output(
                f"Moving slot {slot} from {source.addr} to {target.addr}: {keys_count.value} keys"
            )
        else:
            logger.warning(
                "Unable to count keys in slot %d on %s: %r", slot, source.addr, keys_count.error
            )
            self._output(f"Moving slot {slot} from {source.addr} to {target.addr}")

        # target must accept slot before source starts to redirect clients
        (await target.cluster_setslot(slot, SetSlotMode.IMPORTING, source.node_id)).unwrap()
        (await source.cluster_setslot(slot, SetSlotMode.MIGRATING, target.node_id)).unwrap()

        report.moved_keys += await self._drain_slot(source, target, slot, timeout=timeout, db=db)
        report.moved_slots.setdefault(source.node_id, []).append(slot)

        await self._broadcast_owner(peers, slot, target, report)

    async def _drain_slot(
        self,
        source: Node,
        target: Node,
        slot: int,
        *,
        timeout: int,
        db: int,
    ) -> int:
        moved = 0
        while True:
            keys = (await source.cluster_get_keys_in_slot(slot, MIGRATE_BATCH)).unwrap()
            if not keys:
                break

            for key in keys:
                logger.debug("Migrate key %r of slot %d to %s", key, slot, target.addr)
                (
                    await source.migrate(target.addr.host, target.addr.port, key, db, timeout)
                ).unwrap()
                moved += 1

        return moved

    async def _broadcast_owner(
        self,
        peers: Sequence[Node],
        slot: int,
        target: Node,
        report: ReshardReport,
    ) -> None:
        for node in peers:
            result = await node.cluster_setslot(slot, SetSlotMode.NODE, target.node_id)
            if not result.ok:
                logger.error(
                    "Unable to set owner of slot %d on %s: %r", slot, node.addr, result.error
                )
                self._output(
                    f"[WARNING] Slot {slot} owner is not updated on {node.addr}: {result.error}"
                )
                report.broadcast_failures.append((slot, node.addr, result.error))

    def _broadcast_peers(self, snapshot: ClusterSnapshot, report: ReshardReport) -> List[Node]:
        peers = []
        for node in snapshot:
            if node.is_reachable():
                peers.append(node)
                continue

            logger.warning(
                "Node %s is flagged %s, slot owner is not updated there",
                node.addr,
                ",".join(sorted(node.flags)),
            )
            self._output(f"[WARNING] Node {node.addr} is unreachable, skip slot owner updates")
            report.skipped_nodes.append(node.addr)

        return peers
