from abc import ABC, abstractmethod
from typing import Any


__all__ = ["AbcConnection"]


class AbcConnection(ABC):
    """Single connection to one already addressed node"""

    @abstractmethod
    async def execute_command(self, *args: Any, **options: Any) -> Any:
        pass

    @abstractmethod
    async def aclose(self) -> None:
        pass
