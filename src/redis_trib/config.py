import dataclasses
import sys

from redis_trib.typedef import OutputSink


__all__ = ["TribConfig", "stdout_sink"]


def stdout_sink(message: str) -> None:
    sys.stdout.write(message + "\n")
    sys.stdout.flush()


@dataclasses.dataclass(frozen=True)
class TribConfig:
    CONNECT_TIMEOUT = 5.0
    MIGRATE_TIMEOUT = 1000

    verbosity: int = 0
    # seconds
    connect_timeout: float = CONNECT_TIMEOUT
    # milliseconds, passed to MIGRATE
    migrate_timeout: int = MIGRATE_TIMEOUT
    db: int = 0
    output: OutputSink = dataclasses.field(default=stdout_sink, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.connect_timeout <= 0:
            raise ValueError("connect_timeout must be positive")
        if self.migrate_timeout <= 0:
            raise ValueError("migrate_timeout must be positive")
        if self.db < 0:
            raise ValueError("db cannot be negative")
