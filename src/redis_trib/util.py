import re
import types
from typing import Dict, List, Optional, Set, Tuple

from redis_trib.errors import ParseError
from redis_trib.structs import SLOT_COUNT, Address, NodeDescriptor, SlotSet


__all__ = [
    "ensure_str",
    "parse_info",
    "parse_address",
    "parse_node_slots",
    "parse_cluster_node_line",
    "parse_cluster_nodes",
    "slots_ranges",
]


NODE_LINE_MIN_FIELDS = 8

# [93->-292f8b365bb7edb5e285caf0b7e6ddc7265d2f4f] or [93-<-292f8b...]
_MIGRATION_RE = re.compile(r"^\[(\d+)-([<>])-?([^\]]+)\]$")


def ensure_str(obj) -> str:
    if isinstance(obj, str):
        return obj
    return obj.decode("utf-8")


def parse_info(info: str) -> Dict[str, str]:
    ret: Dict[str, str] = {}
    for line in info.strip().splitlines():
        line = line.strip()
        # INFO sections are separated by "# Section" headers
        if not line or line.startswith("#"):
            continue
        key, value = line.split(":", 1)
        ret[key] = value
    return ret


def parse_address(raw: str) -> Address:
    """Parse `host:port`, `host:port@cport` or `[ipv6]:port` into Address."""

    addr = raw.split("@", 1)[0].split(",", 1)[0]
    host, sep, port = addr.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"Invalid node address {raw!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]

    return Address(host, int(port))


def _parse_slot(raw: str) -> int:
    slot = int(raw)
    if not 0 <= slot < SLOT_COUNT:
        raise ValueError(f"slot {slot} is out of range")
    return slot


def parse_node_slots(tokens: List[str]) -> SlotSet:
    """
    @see: https://redis.io/commands/cluster-nodes#serialization-format
    @see: https://redis.io/commands/cluster-nodes#special-slot-entries
    """

    stable: Set[int] = set()
    migrating: Dict[int, str] = {}
    importing: Dict[int, str] = {}

    for token in tokens:
        m = _MIGRATION_RE.match(token)
        if m:
            slot = _parse_slot(m.group(1))
            if m.group(2) == ">":
                migrating[slot] = m.group(3)
            else:
                importing[slot] = m.group(3)
        elif "-" in token:
            start, end = token.split("-", 1)
            begin_slot, end_slot = _parse_slot(start), _parse_slot(end)
            if begin_slot > end_slot:
                raise ValueError(f"slot range {token} is reversed")
            stable.update(range(begin_slot, end_slot + 1))
        else:
            stable.add(_parse_slot(token))

    # source node still reports migrating slot within its ranges
    stable.difference_update(migrating)
    stable.difference_update(importing)
    for slot in set(migrating) & set(importing):
        del importing[slot]

    return SlotSet(
        stable=frozenset(stable),
        migrating=types.MappingProxyType(migrating),
        importing=types.MappingProxyType(importing),
    )


def parse_cluster_node_line(line: str) -> NodeDescriptor:
    parts = line.split()
    if len(parts) < NODE_LINE_MIN_FIELDS:
        raise ParseError(line, f"expected at least {NODE_LINE_MIN_FIELDS} fields")

    node_id, raw_addr, flags, master_id, ping_sent, pong_recv, config_epoch, link_state = parts[
        :NODE_LINE_MIN_FIELDS
    ]

    bus_port: Optional[int] = None
    try:
        addr = parse_address(raw_addr)
        if "@" in raw_addr:
            # Since version 4.0.0 address has the format '192.1.2.3:7001@17001'
            bus_port = int(raw_addr.split("@", 1)[1].split(",", 1)[0])
        slots = parse_node_slots(parts[NODE_LINE_MIN_FIELDS:])
        return NodeDescriptor(
            node_id=node_id,
            addr=addr,
            flags=frozenset(f for f in flags.split(",") if f),
            master_id=master_id if master_id != "-" else None,
            ping_sent=int(ping_sent),
            pong_recv=int(pong_recv),
            config_epoch=int(config_epoch),
            link_state=link_state,
            slots=slots,
            bus_port=bus_port,
        )
    except ValueError as e:
        raise ParseError(line, str(e)) from e


def parse_cluster_nodes(resp: str) -> List[NodeDescriptor]:
    """
    @see: https://redis.io/commands/cluster-nodes
    """

    return [parse_cluster_node_line(line) for line in resp.strip().splitlines() if line.strip()]


def slots_ranges(slots) -> List[Tuple[int, int]]:
    """Collapse slot numbers into sorted inclusive ranges"""

    ranges: List[Tuple[int, int]] = []
    for slot in sorted(slots):
        if ranges and ranges[-1][1] == slot - 1:
            ranges[-1] = (ranges[-1][0], slot)
        else:
            ranges.append((slot, slot))
    return ranges
