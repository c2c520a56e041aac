"""charsim: continuous psychological state simulation for AI characters."""

from charsim.engine import SimulationEngine
from charsim.errors import (
    SimulationError,
    NotInitializedError,
    StoreUnavailableError,
    InvalidConfigurationError,
    MalformedStateError,
)

__all__ = [
    "SimulationEngine",
    "SimulationError",
    "NotInitializedError",
    "StoreUnavailableError",
    "InvalidConfigurationError",
    "MalformedStateError",
]
