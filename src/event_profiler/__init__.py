"""event-profiler: Named, categorized timing and memory events.

Provides:
- Profiler: Registry resolving names/categories to Events, with enable/disable
- Event: One named unit of measurement made of timed periods and snapshots
- Record: One start/stop period (duration, memory samples, notes)
- Snapshot: One instantaneous sample (timestamp, memory, note)
- ProfilerSwitch: On/off switch shared between Profiler instances
- Sampler: Swappable clock and memory collaborators

Usage:
    from event_profiler import Profiler

    profiler = Profiler("pipeline")

    profiler.start("build")
    compile_assets()
    profiler.snapshot("build", note="midpoint")
    bundle_assets()
    profiler.stop("build")

    print(profiler.get_event("build"))  # pipeline/build: 91.20 MiB - 1532 ms
    profiler.close()

Diagnostics (double stops, queries on open periods) are emitted as loguru
warnings and never raise.
"""

from event_profiler._core import Event, Record, Snapshot
from event_profiler._profiler import (
    DEFAULT_CATEGORY,
    Profiler,
    ProfilerSwitch,
    TimingBackend,
)
from event_profiler._sampling import Sampler, current_memory_bytes

__all__ = [
    "DEFAULT_CATEGORY",
    "Event",
    "Profiler",
    "ProfilerSwitch",
    "Record",
    "Sampler",
    "Snapshot",
    "TimingBackend",
    "current_memory_bytes",
]

__version__ = "0.1.0"
