from typing import Awaitable, Callable, Union

from redis_trib.abc import AbcConnection
from redis_trib.structs import Address


BytesOrStr = Union[bytes, str]
Connector = Callable[[Address], Awaitable[AbcConnection]]
OutputSink = Callable[[str], None]
