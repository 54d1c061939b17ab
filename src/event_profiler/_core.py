"""Core event bookkeeping: timed periods, snapshots and the events owning them.

Design by Contract:
- Event names and categories MUST be non-empty (crash if empty)
- A Record's stop_time and delta are set together, exactly once
- Recoverable misuse (double stop, stop with nothing started, querying
  open periods) MUST NOT raise: it is reported via loguru and degrades
  to a best-effort value

Public methods use beartype for runtime type enforcement.
"""

from dataclasses import dataclass

from beartype import BeartypeConf, beartype
from loguru import logger

from event_profiler._sampling import DEFAULT_SAMPLER, Sampler

BYTES_PER_MIB = 1024 * 1024

# Whole-number timestamps (start=10) are accepted wherever a float is expected.
_numeric_beartype = beartype(conf=BeartypeConf(is_pep484_tower=True))


class Record:
    """One timed period of an Event.

    Args:
        start: Start timestamp in seconds (default: sampled now)
        note: Free-text note attached to the start
        track_memory: If True, sample process memory at start and stop
        sampler: Clock/memory collaborators

    Attributes:
        start_time: Start timestamp, never changes
        stop_time: Stop timestamp, None until stopped
        delta: stop_time - start_time, None until stopped
        start_memory, stop_memory: Memory samples in bytes (None if untracked)
        start_note, stop_note: Optional notes

    Design by Contract:
        - stop_time and delta are both None or both set
        - stopping twice is a warned no-op, the first stop wins
    """

    @_numeric_beartype
    def __init__(
        self,
        start: float | None = None,
        note: str | None = None,
        track_memory: bool = False,
        sampler: Sampler = DEFAULT_SAMPLER,
    ) -> None:
        self._sampler = sampler
        self._track_memory = track_memory
        self.start_time: float = start if start is not None else sampler.now()
        self.start_note = note
        self.start_memory: int | None = sampler.memory() if track_memory else None
        self.stop_time: float | None = None
        self.delta: float | None = None
        self.stop_memory: int | None = None
        self.stop_note: str | None = None

    @_numeric_beartype
    def stop(self, timestamp: float | None = None, note: str | None = None) -> "Record":
        """Close this period and compute its delta. Returns self for chaining."""
        if self.stopped:
            logger.warning("Record.stop called on an already stopped entry.")
            return self

        if self._track_memory and self.stop_memory is None:
            self.stop_memory = self._sampler.memory()

        self.stop_time = timestamp if timestamp is not None else self._sampler.now()
        self.delta = self.stop_time - self.start_time
        self.stop_note = note
        return self

    def close(self) -> "Record":
        """Stop unless already stopped, without the double-stop warning."""
        return self if self.stopped else self.stop()

    @property
    def stopped(self) -> bool:
        return self.stop_time is not None

    def __repr__(self) -> str:
        return (
            f"Record(start_time={self.start_time!r}, "
            f"stop_time={self.stop_time!r}, delta={self.delta!r})"
        )


@dataclass(frozen=True)
class Snapshot:
    """Instantaneous sample belonging to an Event."""

    timestamp: float
    memory: int | None = None
    note: str | None = None

    @classmethod
    def take(
        cls,
        note: str | None = None,
        track_memory: bool = False,
        sampler: Sampler = DEFAULT_SAMPLER,
    ) -> "Snapshot":
        return cls(
            timestamp=sampler.now(),
            memory=sampler.memory() if track_memory else None,
            note=note,
        )


class Event:
    """Named, categorized unit of measurement made of Records and Snapshots.

    An Event may be started several times. Each start appends a new Record;
    stop() only ever closes the most recent one. Aggregate queries tolerate
    open Records so profiling never crashes the host application.

    Args:
        name: Event name (MUST be non-empty)
        category: Category the event is grouped under (MUST be non-empty)
        track_memory: Sample process memory on every start/stop/snapshot
        sampler: Clock/memory collaborators

    Example:
        event = Event("load", "pipeline", track_memory=True)
        event.start().snapshot("parsed").stop()
        print(event)  # pipeline/load: 84.12 MiB - 12 ms
    """

    @beartype
    def __init__(
        self,
        name: str,
        category: str,
        track_memory: bool = False,
        sampler: Sampler = DEFAULT_SAMPLER,
    ) -> None:
        assert name, "Event name must be non-empty"
        assert category, "Event category must be non-empty"
        self.name = name
        self.category = category
        self.track_memory = track_memory
        self._sampler = sampler
        self._records: list[Record] = []
        self._snapshots: list[Snapshot] = []

    @beartype
    def start(self, note: str | None = None) -> "Event":
        self._records.append(
            Record(note=note, track_memory=self.track_memory, sampler=self._sampler)
        )
        return self

    @beartype
    def stop(self, note: str | None = None) -> "Event":
        """Stop the most recently started Record.

        Earlier Records left open stay open; use stop_all() to close them.
        """
        if not self._records:
            logger.warning(f"Event.stop called with no started events ('{self._label}').")
        else:
            self._records[-1].stop(note=note)
        return self

    @beartype
    def lap(self, note: str | None = None) -> "Event":
        """Close the current period (if any) and open the next one.

        The note is attached to the closed period only.
        """
        if self.is_running():
            self.stop(note)
        return self.start()

    @beartype
    def snapshot(self, note: str | None = None) -> "Event":
        self._snapshots.append(Snapshot.take(note, self.track_memory, self._sampler))
        return self

    def is_running(self) -> bool:
        """True if the most recently started Record is still open."""
        return bool(self._records) and not self._records[-1].stopped

    def stop_all(self) -> "Event":
        for record in self._records:
            record.close()
        return self

    def get_records(self) -> list[Record]:
        return list(self._records)

    def get_last_record(self) -> Record | None:
        return self._records[-1] if self._records else None

    def get_snapshots(self) -> list[Snapshot]:
        return list(self._snapshots)

    def get_all(self) -> list[Record | Snapshot]:
        """Return every Record followed by every Snapshot."""
        return [*self._records, *self._snapshots]

    def get_start_time(self) -> float | None:
        """Start timestamp of the first Record, or None if never started."""
        return self._records[0].start_time if self._records else None

    def get_end_time(self) -> float | None:
        """Stop timestamp of the last Record, or None if it is still open."""
        return self._records[-1].stop_time if self._records else None

    def get_elapsed_time(self) -> float | None:
        """Wall-clock span from first start to last stop, gaps included."""
        start = self.get_start_time()
        end = self.get_end_time()
        if start is None or end is None:
            return None
        return end - start

    def get_duration(self) -> float:
        """Sum of every closed period in seconds. Open periods are skipped."""
        total = 0.0
        for record in self._records:
            if record.delta is None:
                self._warn_open("get_duration")
                continue
            total += record.delta
        return total

    def get_memory(self) -> int:
        """Peak stop-memory across closed periods in bytes (0 if none).

        Open periods are skipped with a warning. Closed periods without a
        memory sample (memory tracking disabled) are skipped silently.
        """
        memory = 0
        for record in self._records:
            if not record.stopped:
                self._warn_open("get_memory")
                continue
            if record.stop_memory is not None and record.stop_memory > memory:
                memory = record.stop_memory
        return memory

    @property
    def _label(self) -> str:
        return f"{self.category}::{self.name}"

    def _warn_open(self, method: str) -> None:
        logger.warning(f"Event.{method} called before closing the '{self._label}' event.")

    def __str__(self) -> str:
        return (
            f"{self.category}/{self.name}: "
            f"{self.get_memory() / BYTES_PER_MIB:.2f} MiB - "
            f"{int(self.get_duration() * 1000)} ms"
        )

    def __repr__(self) -> str:
        return (
            f"Event(name={self.name!r}, category={self.category!r}, "
            f"records={len(self._records)}, snapshots={len(self._snapshots)})"
        )
