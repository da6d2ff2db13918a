import functools
from typing import Optional

import async_timeout
from redis.asyncio import Redis

from redis_trib.abc import AbcConnection
from redis_trib.log import logger
from redis_trib.structs import Address
from redis_trib.typedef import Connector


__all__ = [
    "create_connection",
    "connector_factory",
]


AbcConnection.register(Redis)


async def create_connection(
    addr: Address,
    *,
    connect_timeout: Optional[float] = None,
) -> AbcConnection:
    """Opens single connection to node by address.

    Connection is verified by PING, the whole handshake is bounded by
    `connect_timeout` seconds. Commands executed on the returned connection
    are not bounded by any timeout.

    This function is a coroutine.
    """

    client = Redis(
        host=addr.host,
        port=addr.port,
        single_connection_client=True,
        socket_connect_timeout=connect_timeout,
    )
    logger.debug("Connecting to %s", addr)
    try:
        async with async_timeout.timeout(connect_timeout):
            await client.execute_command(b"PING")
    except BaseException:
        await client.aclose()
        raise

    return client


def connector_factory(connect_timeout: Optional[float] = None) -> Connector:
    return functools.partial(create_connection, connect_timeout=connect_timeout)
