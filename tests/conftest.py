"""Shared fixtures: deterministic clock/memory collaborators and a loguru sink."""

import pytest
from loguru import logger

from event_profiler import Sampler


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMemory:
    def __init__(self, value: int = 0) -> None:
        self.value = value

    def __call__(self) -> int:
        return self.value


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory() -> FakeMemory:
    return FakeMemory()


@pytest.fixture
def sampler(clock: FakeClock, memory: FakeMemory) -> Sampler:
    return Sampler(clock=clock, memory=memory)


@pytest.fixture
def warnings_log():
    """Collect every loguru WARNING message emitted during the test."""
    messages: list[str] = []
    handler_id = logger.add(
        lambda message: messages.append(message.record["message"]),
        level="WARNING",
    )
    yield messages
    logger.remove(handler_id)
