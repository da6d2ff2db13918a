import argparse
import asyncio
import sys
from typing import List, Optional

from redis.exceptions import RedisError

from redis_trib._version import __version__
from redis_trib.allocator import SlotAllocator
from redis_trib.broadcast import Broadcaster
from redis_trib.config import TribConfig
from redis_trib.log import logger, setup_logging
from redis_trib.resharder import Resharder
from redis_trib.structs import Address
from redis_trib.typedef import Connector
from redis_trib.util import parse_address
from redis_trib.view import ClusterView


__all__ = (
    "build_parser",
    "run",
    "main",
)


def address(value: str) -> Address:
    try:
        return parse_address(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="redis-trib",
        description="Create and reshape Redis Cluster",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="increase verbosity, repeat for debug output and tracebacks",
    )
    actions = parser.add_subparsers(dest="action", metavar="ACTION")
    actions.required = True

    create = actions.add_parser("create", help="create cluster from empty nodes")
    create.add_argument("nodes", nargs="+", type=address, metavar="HOST:PORT")

    add = actions.add_parser("add", help="add empty node to cluster")
    add.add_argument("existing", type=address, metavar="EXISTING_HOST:PORT")
    add.add_argument("new", type=address, metavar="NEW_HOST:PORT")

    remove = actions.add_parser("remove", help="remove node from cluster")
    remove.add_argument("existing", type=address, metavar="EXISTING_HOST:PORT")
    remove.add_argument("node_id", metavar="NODE_ID")

    each = actions.add_parser("each", help="execute command on every cluster node")
    each.add_argument("node", type=address, metavar="HOST:PORT")
    each.add_argument("command", metavar="COMMAND")
    each.add_argument("args", nargs=argparse.REMAINDER, metavar="ARG")

    reshard = actions.add_parser("reshard", help="move slots from source nodes to target")
    reshard.add_argument(
        "--timeout",
        type=int,
        default=TribConfig.MIGRATE_TIMEOUT,
        help="MIGRATE timeout in milliseconds (default: %(default)s)",
    )
    reshard.add_argument(
        "--db",
        type=int,
        default=0,
        help="destination database index (default: %(default)s)",
    )
    reshard.add_argument("target", type=address, metavar="TARGET_HOST:PORT")
    reshard.add_argument("slots", type=int, metavar="SLOTS")
    reshard.add_argument("sources", nargs="+", type=address, metavar="SOURCE_HOST:PORT")

    return parser


async def run(args: argparse.Namespace, config: TribConfig, connector: Connector = None) -> None:
    if args.action == "create":
        await SlotAllocator(config, connector=connector).create(args.nodes)
    elif args.action == "add":
        await SlotAllocator(config, connector=connector).add(args.existing, args.new)
    elif args.action == "remove":
        await SlotAllocator(config, connector=connector).remove(args.existing, args.node_id)
    elif args.action == "each":
        view = ClusterView([args.node], config, connector=connector)
        try:
            snapshot = await view.discover_all()
            await Broadcaster(config).each(snapshot, args.command, *args.args)
        finally:
            await view.close()
    elif args.action == "reshard":
        await Resharder(config, connector=connector).reshard(
            args.target,
            args.slots,
            args.sources,
            timeout=args.timeout,
            db=args.db,
        )
    else:
        raise ValueError(f"Unknown action {args.action!r}")


def main(argv: Optional[List[str]] = None, connector: Connector = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        config = TribConfig(
            verbosity=args.verbose,
            migrate_timeout=getattr(args, "timeout", TribConfig.MIGRATE_TIMEOUT),
            db=getattr(args, "db", 0),
        )
        asyncio.run(run(args, config, connector))
    except (RedisError, OSError, ValueError) as e:
        logger.debug("Action %s aborted", args.action, exc_info=True)
        sys.stderr.write(f"[ERR] {e}\n")
        return 1

    return 0
