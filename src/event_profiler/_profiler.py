"""Profiler registry: resolves names and categories to Events.

Design by Contract:
- Event names MUST be non-empty and use only word characters plus \\ / : . -
  (assertion, checked in development, never relied upon for untrusted input)
- The sticky default category is set at most once
- A disabled profiler creates no Events, but already open Records can
  still be stopped and closed
- close() is idempotent and never emits double-stop warnings

Not thread-safe: confine each Profiler to one thread or lock around it.
"""

import re
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any, Protocol, runtime_checkable

from beartype import beartype
from loguru import logger

from event_profiler._core import BYTES_PER_MIB, Event, Record
from event_profiler._sampling import DEFAULT_SAMPLER, Sampler

DEFAULT_CATEGORY = "_events"
NAMESPACE_SEPARATOR = "\\"

_NAME_PATTERN = re.compile(r"[\w\\/:.\-]+")


def _last_segment(raw: str | None) -> str | None:
    """Collapse a namespaced string ("App\\Jobs\\Sync") to "sync"."""
    if not raw:
        return None
    return raw.rsplit(NAMESPACE_SEPARATOR, 1)[-1].lower() or None


class ProfilerSwitch:
    """On/off cell shared by every Profiler it is injected into.

    Example:
        switch = ProfilerSwitch()
        api = Profiler("api", switch=switch)
        worker = Profiler("worker", switch=switch)
        switch.disable()  # neither creates new events from now on
    """

    @beartype
    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled

    def enable(self) -> None:
        self.enabled = True

    def disable(self) -> None:
        self.enabled = False


@runtime_checkable
class TimingBackend(Protocol):
    """Handle-based timing capability.

    begin() opens a period and returns an opaque handle (None when timing
    is off), end() closes exactly that period, elapsed() reads it back.
    """

    def begin(self, name: str, category: str | None = None) -> Any: ...

    def end(self, handle: Any, note: str | None = None) -> None: ...

    def elapsed(self, handle: Any) -> float | None: ...


class Profiler:
    """Registry of Events grouped by category.

    Args:
        category: Sticky default category for calls that omit one
        track_memory: Sample process memory for every Event created here
        enabled: Initial state of the private switch (ignored if switch given)
        switch: Shared ProfilerSwitch, to toggle several profilers at once
        sampler: Clock/memory collaborators (default: time.time + psutil RSS)

    Example:
        with Profiler("pipeline") as profiler:
            profiler.start("load")
            data = load()
            profiler.snapshot("load", note="loaded")
            profiler.stop("load")
        profiler.log_summary()
    """

    @beartype
    def __init__(
        self,
        category: str | None = None,
        *,
        track_memory: bool = True,
        enabled: bool = True,
        switch: ProfilerSwitch | None = None,
        sampler: Sampler | None = None,
    ) -> None:
        self.track_memory = track_memory
        self._switch = switch if switch is not None else ProfilerSwitch(enabled)
        self._sampler = sampler if sampler is not None else DEFAULT_SAMPLER
        self._events: dict[str, dict[str, Event]] = {DEFAULT_CATEGORY: {}}
        self._default_category: str | None = None
        self.created_at: float = self._sampler.now()
        self.closed_at: float | None = None
        if category is not None:
            self.set_category(category)
        self._closed = False

    # ------------------------------------------------------------------
    # Event resolution
    # ------------------------------------------------------------------

    @beartype
    def __call__(self, name: str, category: str | None = None) -> Event | None:
        return self.event(name, category)

    @beartype
    def event(self, name: str, category: str | None = None) -> Event | None:
        """Fetch or create the Event for (category, name). Never starts it.

        Returns None while the profiler is disabled.
        """
        if not self.is_enabled():
            return None

        category, name = self._resolve(name, category)
        events = self._events.setdefault(category, {})
        if name not in events:
            events[name] = Event(name, category, self.track_memory, self._sampler)
        return events[name]

    @beartype
    def get_event(self, name: str, category: str | None = None) -> Event | None:
        """Look up an existing Event without creating it."""
        category, name = self._resolve(name, category)
        return self._events.get(category, {}).get(name)

    @beartype
    def get_events(self, category: str | None = None) -> list[Event]:
        if category:
            return list(self._events.get(self._category(category), {}).values())
        return [event for events in self._events.values() for event in events.values()]

    @property
    def events(self) -> dict[str, dict[str, Event]]:
        return {category: dict(events) for category, events in self._events.items()}

    @property
    def category(self) -> str | None:
        return self._default_category

    # ------------------------------------------------------------------
    # Start / stop
    # ------------------------------------------------------------------

    @beartype
    def start(
        self, name: str, category: str | None = None, note: str | None = None
    ) -> Event | None:
        event = self.event(name, category)
        if event is None:
            return None
        if self._closed:
            logger.warning(
                f"Profiler.start called after close() for '{event.category}::{event.name}'; "
                f"the period will not be closed automatically."
            )
        return event.start(note)

    @beartype
    def stop(
        self,
        name: str | None = None,
        category: str | None = None,
        note: str | None = None,
    ) -> None:
        """Stop Events by name, by category, or both.

        - name and category: stop that Event
        - name only: stop every running Event with that name, in any category
        - category only: stop every running Event in the category
        - neither: no-op (use close() to stop everything)
        """
        if name and category:
            event = self.get_event(name, category)
            if event is None:
                logger.warning(
                    f"Profiler.stop called for unknown event '{self._category(category)}::{name}'."
                )
                return
            event.stop(note)
        elif name:
            name = self._name(name)
            matches = [
                events[name]
                for events in self._events.values()
                if name in events and events[name].is_running()
            ]
            if not matches:
                logger.warning(f"Profiler.stop found no running event named '{name}'.")
            for event in matches:
                event.stop(note)
        elif category:
            for event in self._events.get(self._category(category), {}).values():
                if event.is_running():
                    event.stop(note)

    @beartype
    def lap(
        self, name: str, category: str | None = None, note: str | None = None
    ) -> Event | None:
        event = self.event(name, category)
        return event.lap(note) if event is not None else None

    @beartype
    def snapshot(
        self, name: str, category: str | None = None, note: str | None = None
    ) -> Event | None:
        event = self.event(name, category)
        return event.snapshot(note) if event is not None else None

    # ------------------------------------------------------------------
    # Handle-based timing (TimingBackend)
    # ------------------------------------------------------------------

    @beartype
    def begin(
        self, name: str, category: str | None = None, note: str | None = None
    ) -> Record | None:
        """Start the Event and return the new Record as a handle."""
        event = self.start(name, category, note)
        return event.get_last_record() if event is not None else None

    @beartype
    def end(self, handle: Record | None, note: str | None = None) -> None:
        """Stop exactly the period opened by begin(), even if others are open."""
        if handle is not None:
            handle.stop(note=note)

    @beartype
    def elapsed(self, handle: Record | None) -> float | None:
        return handle.delta if handle is not None else None

    @contextmanager
    @beartype
    def measure(
        self, name: str, category: str | None = None, note: str | None = None
    ) -> Generator[Event | None, None, None]:
        """Time the enclosed block as one period of the named Event.

        While disabled the block still runs and None is yielded. The period
        is closed by handle, so nested or re-entrant use of the same name
        closes the right Record.

        Yields:
            The Event being measured, or None when disabled
        """
        event = self.event(name, category)
        if event is None:
            yield None
            return

        record = event.start(note).get_last_record()
        try:
            yield event
        finally:
            record.close()

    # ------------------------------------------------------------------
    # Switch
    # ------------------------------------------------------------------

    @property
    def switch(self) -> ProfilerSwitch:
        return self._switch

    def is_enabled(self) -> bool:
        return self._switch.enabled

    def enable(self) -> None:
        self._switch.enable()

    def disable(self) -> None:
        """Stop creating Events. Existing Events and Records are kept."""
        self._switch.disable()

    # ------------------------------------------------------------------
    # Categories and names
    # ------------------------------------------------------------------

    @beartype
    def set_category(self, category: str | None) -> "Profiler":
        """Set the sticky default category once. Later changes are rejected."""
        resolved = _last_segment(category)
        if resolved is None:
            logger.warning("Profiler.set_category called with an empty category; ignored.")
        elif self._default_category is None:
            self._default_category = resolved
        elif self._default_category != resolved:
            logger.warning(
                f"Profiler.set_category cannot change the category from "
                f"'{self._default_category}' to '{resolved}'; keeping '{self._default_category}'."
            )
        return self

    def _resolve(self, name: str, category: str | None) -> tuple[str, str]:
        resolved_name = self._name(name)
        if not category and NAMESPACE_SEPARATOR in name:
            category = name
        return self._category(category), resolved_name

    def _name(self, raw: str) -> str:
        assert raw, "Event name must not be empty."
        assert _NAME_PATTERN.fullmatch(raw), f"Event name contains invalid characters: {raw!r}"
        name = raw.rsplit(NAMESPACE_SEPARATOR, 1)[-1]
        assert name, f"Event name must not end with a namespace separator: {raw!r}"
        return name

    def _category(self, raw: str | None) -> str:
        return _last_segment(raw) or self._default_category or DEFAULT_CATEGORY

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close every open Record in every Event. Only the first call acts.

        Periods started after the first close() are not closed by later
        close() calls or by garbage collection; start() warns about them.
        """
        if self._closed:
            return
        self._closed = True

        for events in self._events.values():
            for event in events.values():
                event.stop_all()

        if self.closed_at is None:
            self.closed_at = self._sampler.now()
        logger.debug(f"Profiler closed with {len(self.get_events())} events.")

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> "Profiler":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __del__(self) -> None:
        if not getattr(self, "_closed", True):
            self.close()

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    @beartype
    def get_results(self) -> dict[str, dict[str, float | int | None]]:
        """Get per-event aggregates keyed by "category/name".

        Returns:
            Dictionary mapping labels to metrics dict with keys:
            duration (s), elapsed (s or None), memory (peak bytes),
            records, snapshots.
        """
        results: dict[str, dict[str, float | int | None]] = {}
        for event in self.get_events():
            results[f"{event.category}/{event.name}"] = {
                "duration": event.get_duration(),
                "elapsed": event.get_elapsed_time(),
                "memory": event.get_memory(),
                "records": len(event.get_records()),
                "snapshots": len(event.get_snapshots()),
            }
        return results

    @beartype
    def log_summary(self, title: str = "PROFILER EVENTS") -> None:
        """Log a formatted table of every Event via loguru.

        Args:
            title: Header title for the summary table
        """
        results = self.get_results()
        width = 100

        logger.info("")
        logger.info("=" * width)
        logger.info(f"{title:^{width}}")
        logger.info("=" * width)
        logger.info(
            f"{'Event':<40} {'Duration':>12} {'Elapsed':>12} "
            f"{'Peak':>12} {'Periods':>10} {'Snaps':>8}"
        )
        logger.info("-" * width)

        total = 0.0
        for label, metrics in results.items():
            total += metrics["duration"]

            elapsed = metrics["elapsed"]
            elapsed_str = f"{elapsed * 1000:>10.1f}ms" if elapsed is not None else f"{'-':>12}"
            memory = metrics["memory"]
            memory_str = f"{memory / BYTES_PER_MIB:>9.2f}MiB" if memory else f"{'-':>12}"

            logger.info(
                f"{label:<40} "
                f"{metrics['duration'] * 1000:>10.1f}ms "
                f"{elapsed_str} "
                f"{memory_str} "
                f"{metrics['records']:>10} "
                f"{metrics['snapshots']:>8}"
            )

        logger.info("=" * width)
        logger.info(f"{'TOTAL':^40} {total * 1000:>10.1f}ms")
        logger.info("=" * width)
        logger.info("")
