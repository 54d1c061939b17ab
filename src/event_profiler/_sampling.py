"""Clock and memory primitives.

Records and snapshots never call ``time`` or ``psutil`` directly; they go
through a Sampler so hosts and tests can swap either primitive.
"""

import time
from collections.abc import Callable

import psutil
from beartype import beartype


def current_memory_bytes() -> int:
    """Return the resident set size of the current process in bytes."""
    return psutil.Process().memory_info().rss


class Sampler:
    """Pair of collaborators used to timestamp and memory-sample events.

    Args:
        clock: Returns wall-clock seconds (default: time.time)
        memory: Returns process memory in bytes (default: psutil RSS)

    Example:
        ticks = iter([10.0, 11.5])
        sampler = Sampler(clock=lambda: next(ticks), memory=lambda: 0)
    """

    @beartype
    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        memory: Callable[[], int] = current_memory_bytes,
    ) -> None:
        self._clock = clock
        self._memory = memory

    def now(self) -> float:
        return self._clock()

    def memory(self) -> int:
        value = self._memory()
        assert value >= 0, f"Memory sample cannot be negative: {value}"
        return value


DEFAULT_SAMPLER = Sampler()
