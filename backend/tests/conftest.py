"""
Pytest configuration and fixtures for Shaping Lab tests.
"""
import sys
from concurrent.futures import Future
from pathlib import Path

# Add backend to path for imports
BACKEND_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(BACKEND_DIR))

import pytest

from shaping.config import ShapingConfig
from shaping.experience import ExperienceWindow, PerceptionState
from shaping.learner import Learner
from shaping.scheduling import ManualClock, ManualScheduler


class ManualExecutor:
    """Executor that only runs submitted work when run_pending() is called."""

    def __init__(self):
        self.queue = []

    def submit(self, fn, *args, **kwargs):
        future = Future()
        self.queue.append((future, fn, args, kwargs))
        return future

    def run_pending(self) -> int:
        ran = 0
        while self.queue:
            future, fn, args, kwargs = self.queue.pop(0)
            try:
                future.set_result(fn(*args, **kwargs))
            except Exception as e:
                future.set_exception(e)
            ran += 1
        return ran

    def shutdown(self, wait=True, cancel_futures=False):
        self.queue.clear()


def make_state(i: float, timestamp: float = 0.0, width: int = 7) -> PerceptionState:
    """PerceptionState whose features all equal i (easy to trace)."""
    return PerceptionState.capture([float(i)] * width, timestamp)


# ============================================================
# Timing Fixtures
# ============================================================

@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture
def executor():
    return ManualExecutor()


# ============================================================
# Trainer Fixtures
# ============================================================

@pytest.fixture
def config():
    """Deterministic config: no exploration noise, no prediction cache."""
    return ShapingConfig(exploration_rate=0.0, prediction_cache_ms=0.0)


@pytest.fixture
def window(config):
    return ExperienceWindow(config.max_buffer_size)


@pytest.fixture
def learner(config, clock, executor):
    learner = Learner(config, clock=clock, executor=executor, seed=7)
    yield learner
    learner.close()
