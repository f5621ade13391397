from __future__ import annotations

import pytest

from db_profiler import Ledger, ProfilerRecorder, TaskContextStore


class FakeClock:
    """Deterministic wall clock (epoch seconds) that only moves when told to."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> TaskContextStore:
    return TaskContextStore(ledger=Ledger(), clock=clock)


@pytest.fixture
def recorder(store: TaskContextStore) -> ProfilerRecorder:
    """A recorder whose ambient task id is fixed to 1 unless overridden per call."""
    return ProfilerRecorder(store, task_id_provider=lambda: 1)
