"""Pytest configuration and fixtures."""

import numpy as np
import pytest

from charsim.config import SimulationConfig
from charsim.engine import SimulationEngine
from charsim.simulation.defaults import build_profile
from charsim.store.memory import InMemoryStateStore

NOW = 1_700_000_000_000
MINUTE = 60_000
HOUR = 3_600_000


class FakeClock:
    """Settable millisecond clock."""

    def __init__(self, now: int = NOW):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def profile():
    """A freshly seeded profile for one character."""
    return build_profile("char-1", NOW)


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def config():
    return SimulationConfig()


@pytest.fixture
def quiet_config():
    """Config with every noise source silenced."""
    return SimulationConfig().deterministic()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryStateStore()


@pytest.fixture
def engine(store, clock):
    return SimulationEngine(store, clock=clock)
