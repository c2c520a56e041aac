"""Engine-wide configuration, validated once at construction."""

from __future__ import annotations

from pydantic import BaseModel, Field

from charsim.emergence.schemas import EmergenceConfig
from charsim.simulation.schemas import (
    AllostasisConfig,
    HomeostasisConfig,
    StabilityBounds,
    StochasticConfig,
    TemporalDriftConfig,
)


class SimulationConfig(BaseModel):
    """Settings shared by every character an engine simulates.

    The bound and regulation configs seed new profiles; existing profiles
    keep the values they were created with. The *_enabled switches and the
    stochastic settings apply on every tick.
    """
    tick_interval_ms: int = Field(default=60000, gt=0)
    max_tick_history: int = Field(default=100, ge=1)

    bounds: StabilityBounds = Field(default_factory=StabilityBounds)
    homeostasis: HomeostasisConfig = Field(default_factory=HomeostasisConfig)
    allostasis: AllostasisConfig = Field(default_factory=AllostasisConfig)
    drift: TemporalDriftConfig = Field(default_factory=TemporalDriftConfig)
    stochastic: StochasticConfig = Field(default_factory=StochasticConfig)

    homeostasis_enabled: bool = True
    allostasis_enabled: bool = True
    temporal_drift_enabled: bool = True
    identity_patterns_enabled: bool = True

    emergence: EmergenceConfig = Field(default_factory=EmergenceConfig)

    def deterministic(self) -> "SimulationConfig":
        """Copy with all noise sources silenced."""
        return self.model_copy(update={"stochastic": self.stochastic.silenced()})
