from typing import Any, List, Tuple

from redis_trib.config import TribConfig
from redis_trib.log import logger
from redis_trib.node import Node
from redis_trib.reply import CallResult
from redis_trib.util import ensure_str
from redis_trib.view import ClusterSnapshot


__all__ = (
    "format_reply",
    "Broadcaster",
)


def format_reply(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8", "backslashreplace")
    if isinstance(value, (list, tuple)):
        return "\n".join(format_reply(item) for item in value)
    if value is None:
        return "(nil)"
    return str(value)


class Broadcaster:
    def __init__(self, config: TribConfig) -> None:
        self._config = config
        self._output = config.output

    async def each(
        self, snapshot: ClusterSnapshot, command: Any, *args: Any
    ) -> List[Tuple[Node, CallResult]]:
        """Execute the same command on every node, failures do not stop the loop"""

        if isinstance(command, str):
            # bytes command name keeps the reply raw
            command = command.encode()

        results = []
        for node in snapshot:
            result = await node.call(command, *args)
            if result.ok:
                self._output(f"{node.addr}: {format_reply(result.value)}")
            else:
                logger.warning(
                    "Command %s failed on %s: %r", ensure_str(command), node.addr, result.error
                )
                self._output(f"{node.addr}: ERR {result.error}")
            results.append((node, result))

        return results
