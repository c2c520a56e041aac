"""Continuous state engine: regulation, fatigue, modulators, drift and noise."""

from charsim.simulation.schemas import (
    StateName,
    FatigueDimension,
    ModulatorName,
    ExternalInput,
    ProfileTraits,
    StabilityBounds,
    StochasticConfig,
    BehavioralOutput,
    ConversationalMode,
)
from charsim.simulation.state import (
    ContinuousState,
    DualRegulation,
    MultiFatigue,
    GlobalModulator,
    TemporalDriftState,
    IdentityTemporalPattern,
    StochasticEngine,
    StateTransition,
    TransitionCause,
    SimulationProfile,
)
from charsim.simulation.defaults import (
    FEMININE_RHYTHM_ID,
    build_profile,
    seed_from_character_id,
)
from charsim.simulation.behavioral_output import compute_behavioral_output
from charsim.simulation.stochastic import tick_rng

__all__ = [
    "StateName",
    "FatigueDimension",
    "ModulatorName",
    "ExternalInput",
    "ProfileTraits",
    "StabilityBounds",
    "StochasticConfig",
    "BehavioralOutput",
    "ConversationalMode",
    "ContinuousState",
    "DualRegulation",
    "MultiFatigue",
    "GlobalModulator",
    "TemporalDriftState",
    "IdentityTemporalPattern",
    "StochasticEngine",
    "StateTransition",
    "TransitionCause",
    "SimulationProfile",
    "FEMININE_RHYTHM_ID",
    "build_profile",
    "seed_from_character_id",
    "compute_behavioral_output",
    "tick_rng",
]
