import pytest
from redis.exceptions import ResponseError

from redis_trib.allocator import SlotAllocator, allocate, format_slots
from redis_trib.errors import ClusterStateError, PreconditionError, ServerError
from redis_trib.structs import SLOT_COUNT, Address


@pytest.mark.parametrize("num_nodes", [1, 2, 3, 5, 7, 16, 100, 128])
def test_allocate__partition(num_nodes):
    nodes = [f"node{i}" for i in range(num_nodes)]
    chunk_size = -(-SLOT_COUNT // num_nodes)

    chunks = allocate(nodes)

    assert [node for node, _ in chunks] == nodes
    covered = []
    for node, slots in chunks[:-1]:
        assert len(slots) == chunk_size
        covered.extend(slots)
    covered.extend(chunks[-1][1])
    assert covered == list(range(SLOT_COUNT))


def test_allocate__three_nodes():
    chunks = allocate(["a", "b", "c"])

    assert [(slots.start, slots.stop) for _, slots in chunks] == [
        (0, 5462),
        (5462, 10924),
        (10924, 16384),
    ]
    assert sum(len(slots) for _, slots in chunks) == SLOT_COUNT


def test_allocate__deterministic():
    nodes = ["a", "b", "c", "d"]

    assert allocate(nodes) == allocate(nodes)
    assert allocate(list(reversed(nodes)))[0][0] == "d"


def test_allocate__no_nodes():
    with pytest.raises(ValueError):
        allocate([])


def test_format_slots():
    assert format_slots(range(0, 5462)) == "0-5461"
    assert format_slots([1, 3, 4]) == "1,3-4"


@pytest.fixture
def empty_nodes(fake_cluster):
    return [fake_cluster.add(port) for port in (7000, 7001, 7002)]


async def test_create(fake_cluster, config, output, empty_nodes):
    allocator = SlotAllocator(config, connector=fake_cluster.connect)

    plan = await allocator.create([n.addr for n in empty_nodes])

    assert [len(slots) for _, slots in plan] == [5462, 5462, 5460]

    add_slots = fake_cluster.commands("CLUSTER", "ADDSLOTS")
    assert [addr for addr, _ in add_slots] == [n.addr for n in empty_nodes]
    assert [len(cmd) - 2 for _, cmd in add_slots] == [5462, 5462, 5460]
    assert add_slots[1][1][2] == "5462"

    meets = fake_cluster.commands("CLUSTER", "MEET")
    assert meets == [
        (empty_nodes[0].addr, ("CLUSTER", "MEET", "127.0.0.1", str(n.addr.port)))
        for n in empty_nodes
    ]
    # slots are claimed before nodes meet each other
    log_commands = [cmd[1] for _, cmd in fake_cluster.log if cmd[0] == "CLUSTER"]
    assert log_commands.index("MEET") > max(
        i for i, c in enumerate(log_commands) if c == "ADDSLOTS"
    )
    assert "Node 127.0.0.1:7001: slots 5462-10923 (5462 slots)" in output

    for node in empty_nodes:
        node.conn.aclose.assert_awaited_once_with()


async def test_create__precondition_failed(fake_cluster, config, empty_nodes):
    empty_nodes[2].on("INFO", "keyspace", reply=b"db0:keys=1,expires=0,avg_ttl=0\r\n")
    allocator = SlotAllocator(config, connector=fake_cluster.connect)

    with pytest.raises(PreconditionError):
        await allocator.create([n.addr for n in empty_nodes])

    assert fake_cluster.commands("CLUSTER", "ADDSLOTS") == []
    assert fake_cluster.commands("CLUSTER", "MEET") == []


async def test_create__duplicate_addresses(fake_cluster, config, empty_nodes):
    allocator = SlotAllocator(config, connector=fake_cluster.connect)
    addr = empty_nodes[0].addr

    with pytest.raises(PreconditionError):
        await allocator.create([addr, empty_nodes[1].addr, addr])

    assert fake_cluster.log == []


async def test_create__add_slots_error_aborts(fake_cluster, config, empty_nodes):
    empty_nodes[1].on("CLUSTER", "ADDSLOTS", reply=ResponseError("ERR Slot 5462 is already busy"))
    allocator = SlotAllocator(config, connector=fake_cluster.connect)

    with pytest.raises(ServerError) as exc_info:
        await allocator.create([n.addr for n in empty_nodes])

    assert exc_info.value.addr == empty_nodes[1].addr
    # no rollback of the first node slots
    assert empty_nodes[0].called("CLUSTER", "ADDSLOTS")
    assert empty_nodes[2].called("CLUSTER", "ADDSLOTS") == []
    assert fake_cluster.commands("CLUSTER", "MEET") == []


async def test_create__meet_error_aborts(fake_cluster, config, empty_nodes):
    empty_nodes[0].on("CLUSTER", "MEET", reply=ResponseError("ERR Invalid node address"))
    allocator = SlotAllocator(config, connector=fake_cluster.connect)

    with pytest.raises(ServerError):
        await allocator.create([n.addr for n in empty_nodes])

    assert len(fake_cluster.commands("CLUSTER", "MEET")) == 1


async def test_add(fake_cluster, config):
    existing = fake_cluster.add(7000, slots="0-16383")
    new = fake_cluster.add(7003)
    allocator = SlotAllocator(config, connector=fake_cluster.connect)

    await allocator.add(existing.addr, new.addr)

    assert existing.called("CLUSTER", "MEET") == [("CLUSTER", "MEET", "127.0.0.1", "7003")]
    assert new.called("INFO", "keyspace")
    assert existing.called("INFO") == []


async def test_add__not_empty_node(fake_cluster, config):
    existing = fake_cluster.add(7000, slots="0-16383")
    new = fake_cluster.add(7003)
    new.on("CLUSTER", "INFO", reply=b"cluster_known_nodes:2\r\n")
    allocator = SlotAllocator(config, connector=fake_cluster.connect)

    with pytest.raises(PreconditionError):
        await allocator.add(existing.addr, new.addr)

    assert existing.calls == []


async def test_remove(fake_cluster, config, output):
    master = fake_cluster.add(7000, slots="0-16383")
    empty = fake_cluster.add(7001)
    allocator = SlotAllocator(config, connector=fake_cluster.connect)

    await allocator.remove(master.addr, empty.node_id)

    assert master.called("CLUSTER", "FORGET") == [("CLUSTER", "FORGET", empty.node_id)]
    assert empty.calls == []
    assert not any("WARNING" in line for line in output)


async def test_remove__queried_node(fake_cluster, config):
    master = fake_cluster.add(7000, slots="0-16383")
    other = fake_cluster.add(7001)
    allocator = SlotAllocator(config, connector=fake_cluster.connect)

    await allocator.remove(other.addr, other.node_id)

    assert master.called("CLUSTER", "FORGET") == [("CLUSTER", "FORGET", other.node_id)]


async def test_remove__slot_owner_warning(fake_cluster, config, output):
    master = fake_cluster.add(7000, slots="0-8191")
    other = fake_cluster.add(7001, slots="8192-16383")
    allocator = SlotAllocator(config, connector=fake_cluster.connect)

    await allocator.remove(master.addr, other.node_id)

    assert any("owns 8192 slots" in line for line in output)
    assert master.called("CLUSTER", "FORGET")


async def test_remove__unknown_node(fake_cluster, config):
    master = fake_cluster.add(7000, slots="0-16383")
    allocator = SlotAllocator(config, connector=fake_cluster.connect)

    with pytest.raises(ClusterStateError):
        await allocator.remove(master.addr, "f" * 40)


async def test_remove__forget_error(fake_cluster, config):
    master = fake_cluster.add(7000, slots="0-16383")
    other = fake_cluster.add(7001)
    master.on("CLUSTER", "FORGET", reply=ResponseError("ERR Unknown node"))
    allocator = SlotAllocator(config, connector=fake_cluster.connect)

    with pytest.raises(ServerError):
        await allocator.remove(Address("127.0.0.1", 7000), other.node_id)
