from typing import List, Optional, Sequence, Tuple

from redis.exceptions import RedisError

from redis_trib.structs import Address


__all__ = [
    "RedisTribError",
    "ParseError",
    "PreconditionError",
    "ServerError",
    "NoSlotsError",
    "ClusterStateError",
]


class RedisTribError(RedisError):
    """Base class for every error raised by cluster operations"""


class ParseError(RedisTribError):
    """Raises than CLUSTER NODES row is malformed"""

    def __init__(self, line: str, reason: str) -> None:
        super().__init__(f"{reason}: {line!r}")

        self.line = line
        self.reason = reason


class PreconditionError(RedisTribError):
    """Raises than one or more nodes are not suitable for the operation"""

    def __init__(self, violations: Sequence[Tuple[Address, str]]) -> None:
        self.violations: List[Tuple[Address, str]] = list(violations)
        super().__init__(
            "; ".join(f"Node {addr} {condition}" for addr, condition in self.violations)
        )


class ServerError(RedisTribError):
    """Raises than remote call returns error reply or node is unreachable"""

    def __init__(self, addr: Optional[Address], command: Sequence, cause: BaseException) -> None:
        self.addr = addr
        self.command = tuple(command)
        self.cause = cause
        super().__init__(f"{addr}: {format_command(self.command)}: {cause}")


class NoSlotsError(RedisTribError):
    """Raises than reshard sources do not own any stable slot"""


class ClusterStateError(RedisTribError):
    """Raises while cluster topology is unknown or inconsistent"""


def format_command(command: Sequence) -> str:
    parts = []
    for arg in command:
        if isinstance(arg, (bytes, bytearray)):
            arg = arg.decode("utf-8", "backslashreplace")
        parts.append(str(arg))
    return " ".join(parts)
