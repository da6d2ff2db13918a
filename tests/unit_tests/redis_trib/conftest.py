import logging
from typing import Any, Dict, List, Tuple

import mock
import pytest
from redis.exceptions import ConnectionError

from redis_trib.config import TribConfig
from redis_trib.log import logger
from redis_trib.structs import Address


def norm_command(args) -> Tuple[str, ...]:
    normalized: List[str] = []
    for i, arg in enumerate(args):
        if isinstance(arg, (bytes, bytearray)):
            arg = arg.decode("utf-8")
        arg = str(arg)
        if i == 0 or (i == 1 and normalized[0] == "CLUSTER"):
            arg = arg.upper()
        normalized.append(arg)
    return tuple(normalized)


class Replies:
    """Replies returned one by one for the consecutive calls"""

    def __init__(self, *replies: Any) -> None:
        self._replies = list(replies)

    def __call__(self, *command):
        if not self._replies:
            raise AssertionError(f"No more replies for {command!r}")
        return self._replies.pop(0)


class FakeNode:
    def __init__(self, cluster: "FakeCluster", addr: Address, node_id: str) -> None:
        self.cluster = cluster
        self.addr = addr
        self.node_id = node_id
        self.flags = "master"
        self.master_id = "-"
        self.slots = ""
        self.down = False
        self.connects = 0
        self.calls: List[Tuple[str, ...]] = []
        self.handlers: Dict[Tuple[str, ...], Any] = {
            ("CLUSTER", "NODES"): lambda *cmd: cluster.nodes_reply(self).encode(),
            ("CLUSTER", "INFO"): b"cluster_state:ok\r\ncluster_known_nodes:1\r\n",
            ("CLUSTER", "COUNTKEYSINSLOT"): 0,
            ("CLUSTER", "GETKEYSINSLOT"): [],
            ("INFO", "cluster"): b"# Cluster\r\ncluster_enabled:1\r\n",
            ("INFO", "keyspace"): b"# Keyspace\r\n",
        }

        self.conn = mock.NonCallableMock()
        self.conn.execute_command = mock.AsyncMock(side_effect=self._execute)
        self.conn.aclose = mock.AsyncMock()

    def on(self, *command: Any, reply: Any) -> None:
        """Set reply for command prefix: value, exception instance or callable"""
        self.handlers[norm_command(command)] = reply

    def line(self, myself: bool = False) -> str:
        flags = ("myself," if myself else "") + self.flags
        parts = [
            self.node_id,
            f"{self.addr.host}:{self.addr.port}@{self.addr.port + 10000}",
            flags,
            self.master_id,
            "0",
            "1426238317239",
            "1",
            "connected",
        ]
        if self.slots:
            parts.append(self.slots)
        return " ".join(parts)

    def called(self, *prefix: Any) -> List[Tuple[str, ...]]:
        prefix = norm_command(prefix)
        return [cmd for cmd in self.calls if cmd[: len(prefix)] == prefix]

    async def _execute(self, *args):
        command = norm_command(args)
        self.calls.append(command)
        self.cluster.log.append((self.addr, command))

        for size in range(len(command), 0, -1):
            if command[:size] in self.handlers:
                reply = self.handlers[command[:size]]
                break
        else:
            reply = b"OK"

        if callable(reply) and not isinstance(reply, type):
            reply = reply(*command)
        if isinstance(reply, BaseException):
            raise reply
        return reply


class FakeCluster:
    def __init__(self) -> None:
        self.nodes: Dict[Address, FakeNode] = {}
        self.log: List[Tuple[Address, Tuple[str, ...]]] = []

    def add(self, port: int, node_id: str = None, *, slots: str = "", flags: str = "master"):
        addr = Address("127.0.0.1", port)
        if node_id is None:
            node_id = f"{port:040d}"
        node = FakeNode(self, addr, node_id)
        node.slots = slots
        node.flags = flags
        self.nodes[addr] = node
        return node

    def nodes_reply(self, myself: FakeNode) -> str:
        return "\n".join(node.line(node is myself) for node in self.nodes.values()) + "\n"

    async def connect(self, addr: Address):
        node = self.nodes.get(addr)
        if node is None or node.down:
            raise ConnectionError(f"Error connecting to {addr}")
        node.connects += 1
        return node.conn

    def commands(self, *prefix: Any) -> List[Tuple[Address, Tuple[str, ...]]]:
        prefix = norm_command(prefix)
        return [(addr, cmd) for addr, cmd in self.log if cmd[: len(prefix)] == prefix]


@pytest.fixture
def fake_cluster():
    return FakeCluster()


@pytest.fixture
def output():
    lines: List[str] = []
    return lines


@pytest.fixture
def config(output):
    return TribConfig(output=output.append)


@pytest.fixture
def replies():
    return Replies


@pytest.fixture(autouse=True)
def reset_logger():
    try:
        yield
    finally:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)
