import dataclasses
from typing import Any, Callable, Optional, Tuple

from redis.exceptions import ResponseError

from redis_trib.errors import ServerError
from redis_trib.structs import Address


__all__ = ["CallResult"]


@dataclasses.dataclass(frozen=True)
class CallResult:
    """Outcome of one remote call: either a reply value or a failure cause"""

    addr: Optional[Address]
    command: Tuple
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        if self.error is not None:
            raise ServerError(self.addr, self.command, self.error) from self.error
        return self.value

    def map(self, fn: Callable[[Any], Any]) -> "CallResult":
        """Convert success value, failure passes through untouched"""

        if self.error is not None:
            return self
        return dataclasses.replace(self, value=fn(self.value))

    def expect_ok(self) -> "CallResult":
        if self.error is not None:
            return self
        if self.value in (b"OK", "OK", True):
            return dataclasses.replace(self, value=True)
        return dataclasses.replace(
            self,
            value=None,
            error=ResponseError(f"Unexpected reply {self.value!r}"),
        )
