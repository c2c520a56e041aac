"""Pydantic schemas and enums for the continuous state engine.

This module defines:
- StateName, FatigueDimension, ModulatorName: the fixed simulation vocabulary
- Regulation and drift configs validated once at construction
- ExternalInput: events fed into a tick by collaborators
- BehavioralOutput: the guidance contract consumed by the dialogue layer
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class StateName(str, Enum):
    """The 15 continuous internal variables."""
    ENERGY = "energy"
    FATIGUE_COGNITIVE = "fatigue_cognitive"
    FATIGUE_EMOTIONAL = "fatigue_emotional"
    FATIGUE_SOCIAL = "fatigue_social"
    FATIGUE_MOTIVATIONAL = "fatigue_motivational"
    STRESS = "stress"
    AROUSAL = "arousal"
    BOREDOM = "boredom"
    CURIOSITY = "curiosity"
    EMOTIONAL_VALENCE = "emotional_valence"
    EMOTIONAL_AROUSAL = "emotional_arousal"
    SOCIAL_CHARGE = "social_charge"
    CREATIVE_POTENTIAL = "creative_potential"
    FOCUS_CAPACITY = "focus_capacity"
    REST_PRESSURE = "rest_pressure"


class FatigueDimension(str, Enum):
    """Independent fatigue pools."""
    COGNITIVE = "cognitive"
    EMOTIONAL = "emotional"
    SOCIAL = "social"
    MOTIVATIONAL = "motivational"


class ModulatorName(str, Enum):
    """Slow global modulators that bias many states at once."""
    AROUSAL_LEVEL = "arousal_level"
    ATTACHMENT_SENSITIVITY = "attachment_sensitivity"
    THREAT_PERCEPTION = "threat_perception"
    REWARD_EXPECTATION = "reward_expectation"
    SOCIAL_APPROACH = "social_approach"
    NOVELTY_SEEKING = "novelty_seeking"
    RISK_TOLERANCE = "risk_tolerance"
    EMOTIONAL_PERMEABILITY = "emotional_permeability"


class InfluenceType(str, Enum):
    """How a modulator acts on a target state."""
    ADDITIVE = "additive"
    MULTIPLICATIVE = "multiplicative"
    THRESHOLD = "threshold"
    GATE = "gate"               # Reserved, currently no effect


class RecoveryCurve(str, Enum):
    """Shape of fatigue recovery as a function of level."""
    LINEAR = "linear"
    EXPONENTIAL = "exponential"
    SIGMOID = "sigmoid"
    LOGARITHMIC = "logarithmic"


class FatiguePhase(str, Enum):
    ACTIVE = "active"
    ACCUMULATING = "accumulating"
    RECOVERING = "recovering"
    DEPLETED = "depleted"


class AdaptationPhase(str, Enum):
    """Allostatic adaptation lifecycle: stable -> adapting -> stable."""
    STABLE = "stable"
    ADAPTING = "adapting"


class RegulationMode(str, Enum):
    HOMEOSTATIC = "homeostatic"
    ALLOSTATIC = "allostatic"
    TRANSITION = "transition"
    CRISIS = "crisis"


class TransitionType(str, Enum):
    """Shape of a single state transition."""
    GRADUAL = "gradual"
    SUDDEN = "sudden"
    OSCILLATING = "oscillating"
    PLATEAU = "plateau"


class CauseType(str, Enum):
    """Source category of a contribution to a state delta."""
    TIME_DECAY = "time_decay"
    INTERACTION = "interaction"
    MEMORY = "memory"
    CYCLE = "cycle"
    MODULATOR = "modulator"
    HOMEOSTASIS = "homeostasis"
    ALLOSTASIS = "allostasis"
    STOCHASTIC = "stochastic"
    EXTERNAL = "external"


class Mood(str, Enum):
    EXHAUSTED = "exhausted"
    STRESSED = "stressed"
    HAPPY = "happy"
    MELANCHOLIC = "melancholic"
    EXCITED = "excited"
    CALM = "calm"
    NEUTRAL = "neutral"


class TrendDirection(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"
    VOLATILE = "volatile"


# =============================================================================
# Configuration
# =============================================================================


class StabilityBounds(BaseModel):
    """Hard and soft limits for a single state."""
    min: float = 0.0
    max: float = 100.0
    soft_min: float = 10.0
    soft_max: float = 90.0
    critical_low: float = 5.0
    critical_high: float = 95.0
    elasticity: float = Field(default=0.3, ge=0.0, le=1.0)
    damping_factor: float = Field(default=0.15, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def validate_ordering(self) -> "StabilityBounds":
        """Ensure min <= soft_min <= soft_max <= max and a non-empty span."""
        if not (self.min <= self.soft_min <= self.soft_max <= self.max):
            raise ValueError("bounds must satisfy min <= soft_min <= soft_max <= max")
        if self.max - self.min <= 0:
            raise ValueError("bounds span must be positive")
        return self

    def clamp(self, value: float) -> float:
        return max(self.min, min(self.max, value))


class HomeostasisConfig(BaseModel):
    """Fast return-to-baseline regulation."""
    target_baseline: float = 50.0
    return_rate: float = Field(default=0.05, ge=0.0)
    resistance_threshold: float = Field(default=15.0, ge=0.0)
    overshoot_damping: float = Field(default=0.2, ge=0.0)
    activation_delay_ms: int = Field(default=60000, ge=0)
    max_correction_per_tick: float = Field(default=5.0, gt=0.0)


class AllostasisConfig(BaseModel):
    """Slow baseline adaptation after sustained deviation."""
    adaptation_rate: float = Field(default=0.001, ge=0.0)
    persistence_threshold_ms: int = Field(default=3600000, ge=0)
    baseline_shift_cap: float = Field(default=20.0, ge=0.0)
    hysteresis_window_ms: int = Field(default=7200000, ge=0)
    stress_memory_decay: float = Field(default=0.0001, ge=0.0)
    plasticity_factor: float = Field(default=0.5, ge=0.0, le=1.0)
    consolidation_period_ms: int = Field(default=86400000, ge=0)


class TemporalDriftConfig(BaseModel):
    """Memory-coupled drift process parameters."""
    drift_rate: float = Field(default=0.02, ge=0.0)
    momentum_factor: float = Field(default=0.7, ge=0.0, lt=1.0)
    friction_coefficient: float = Field(default=0.1, ge=0.0, le=1.0)
    noise_amplitude: float = Field(default=0.05, ge=0.0)
    memory_influence_weight: float = Field(default=0.3, ge=0.0)
    recency_bias: float = Field(default=0.8, ge=0.0, le=1.0)
    emotional_weight_multiplier: float = Field(default=1.5, ge=0.0)


DEFAULT_STATE_AMPLITUDES = {
    StateName.ENERGY.value: 1.5,
    StateName.EMOTIONAL_VALENCE.value: 2.5,
    StateName.AROUSAL.value: 2.0,
    StateName.CURIOSITY.value: 1.8,
    StateName.BOREDOM.value: 1.2,
}


class StochasticConfig(BaseModel):
    """Gaussian noise applied to states and modulators each tick."""
    enabled: bool = True
    base_amplitude: float = Field(default=2.0, ge=0.0)
    state_amplitudes: dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_STATE_AMPLITUDES))
    temporal_smoothing: float = Field(default=0.6, ge=0.0, lt=1.0)
    modulator_noise: float = Field(default=0.5, ge=0.0)

    @field_validator("state_amplitudes")
    @classmethod
    def validate_amplitudes(cls, value: dict[str, float]) -> dict[str, float]:
        """Amplitudes must name real states and be non-negative."""
        known = {s.value for s in StateName}
        for name, amplitude in value.items():
            if name not in known:
                raise ValueError(f"unknown state '{name}'")
            if amplitude < 0:
                raise ValueError(f"amplitude for '{name}' must be non-negative")
        return value

    def amplitude_for(self, state: StateName) -> float:
        return self.state_amplitudes.get(state.value, self.base_amplitude)

    def silenced(self) -> "StochasticConfig":
        """Copy with every noise source set to zero."""
        return self.model_copy(
            update={
                "base_amplitude": 0.0,
                "state_amplitudes": {name: 0.0 for name in self.state_amplitudes},
                "modulator_noise": 0.0,
            }
        )


# =============================================================================
# Inputs
# =============================================================================


class ExternalInput(BaseModel):
    """An event from outside the simulation, e.g. an intense user message."""
    source: str
    magnitude: float
    affected_states: list[StateName] = Field(default_factory=list)
    description: str = ""
    fatigue_trigger: Optional[FatigueDimension] = None
    fatigue_type: Optional[str] = None
    activate_accelerators: list[str] = Field(default_factory=list)
    deactivate_accelerators: list[str] = Field(default_factory=list)
    context_hint: Optional[str] = None
    signals: dict[str, float] = Field(default_factory=dict)


class ProfileTraits(BaseModel):
    """Character traits consulted when seeding a simulation profile."""
    gender_expression: Optional[str] = None


# =============================================================================
# Behavioral output
# =============================================================================


class ResponseLength(str, Enum):
    MINIMAL = "minimal"
    BRIEF = "brief"
    MODERATE = "moderate"
    DETAILED = "detailed"
    ELABORATE = "elaborate"


class Tempo(str, Enum):
    RUSHED = "rushed"
    QUICK = "quick"
    MODERATE = "moderate"
    RELAXED = "relaxed"
    SLOW = "slow"
    HESITANT = "hesitant"


class TurnTakingStyle(str, Enum):
    DOMINANT = "dominant"
    BALANCED = "balanced"
    DEFERENTIAL = "deferential"
    WITHDRAWN = "withdrawn"


class EmotionalDepth(str, Enum):
    SURFACE = "surface"
    MODERATE = "moderate"
    DEEP = "deep"
    PROFOUND = "profound"


class ConversationalMode(str, Enum):
    ENGAGED = "engaged"
    CURIOUS = "curious"
    SUPPORTIVE = "supportive"
    PLAYFUL = "playful"
    ANALYTICAL = "analytical"
    RESERVED = "reserved"
    TIRED = "tired"
    DISTRACTED = "distracted"
    OVERWHELMED = "overwhelmed"
    WITHDRAWN = "withdrawn"
    SEEKING_CONNECTION = "seeking_connection"
    NEEDING_SPACE = "needing_space"


class ResponseLengthGuidance(BaseModel):
    suggested: ResponseLength
    modifier: float
    reasoning: list[str] = Field(default_factory=list)
    constraints: list[str] = Field(default_factory=list)


class PacingGuidance(BaseModel):
    tempo: Tempo
    pause_tendency: float
    interruption_tolerance: float
    turn_taking_style: TurnTakingStyle


class EmotionalDepthGuidance(BaseModel):
    depth: EmotionalDepth
    expressiveness: float
    guardedness: float
    authenticity_level: float
    topics_to_avoid: list[str] = Field(default_factory=list)
    topics_to_seek: list[str] = Field(default_factory=list)


class BehavioralOutput(BaseModel):
    """Guidance for the downstream dialogue generator.

    Derived purely from post-tick state values by fixed threshold rules.
    """
    response_length: ResponseLengthGuidance
    pacing: PacingGuidance
    emotional_depth: EmotionalDepthGuidance
    engagement_willingness: float
    conversational_mode: ConversationalMode
    cognitive_capacity: float
    creativity_level: float
    social_warmth: float
    vulnerability_openness: float
    assertiveness: float
