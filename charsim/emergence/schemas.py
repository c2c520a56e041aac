"""Enums and validated configuration for the emergence layer.

Covers the behavior field vocabulary, latent tendencies, pattern and
emergence types, governance actions and the phenomenon lifecycle.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, model_validator


class BehaviorClass(str, Enum):
    """The fixed vocabulary of selectable behaviors."""
    ENGAGE_DEEPLY = "engage_deeply"
    ENGAGE_LIGHTLY = "engage_lightly"
    MAINTAIN_DISTANCE = "maintain_distance"
    WITHDRAW_GENTLY = "withdraw_gently"
    WITHDRAW_FIRMLY = "withdraw_firmly"
    EXPLORE_CURIOUSLY = "explore_curiously"
    RESPOND_DEFENSIVELY = "respond_defensively"
    OPEN_VULNERABLY = "open_vulnerably"
    ASSERT_BOUNDARY = "assert_boundary"
    SEEK_CONNECTION = "seek_connection"
    OFFER_SUPPORT = "offer_support"
    REQUEST_SUPPORT = "request_support"
    CHALLENGE_PLAYFULLY = "challenge_playfully"
    CHALLENGE_SERIOUSLY = "challenge_seriously"
    DEFLECT_TOPIC = "deflect_topic"
    DEEPEN_TOPIC = "deepen_topic"


class BehaviorFieldDimension(str, Enum):
    APPROACH_WITHDRAWAL = "approach_withdrawal"
    CURIOSITY_BIAS = "curiosity_bias"
    EMOTIONAL_OPENNESS = "emotional_openness"
    RESISTANCE_DEFENSIVENESS = "resistance_defensiveness"
    ENGAGEMENT_INTENSITY = "engagement_intensity"
    VULNERABILITY_EXPOSURE = "vulnerability_exposure"
    ASSERTIVENESS_DEFERENCE = "assertiveness_deference"
    NOVELTY_FAMILIARITY = "novelty_familiarity"


class LatentTendencyName(str, Enum):
    """Slow second-order relational drift variables."""
    ATTACHMENT_DRIFT = "attachment_drift"
    AVOIDANCE_GRADIENT = "avoidance_gradient"
    TRUST_INERTIA = "trust_inertia"
    INTIMACY_MOMENTUM = "intimacy_momentum"
    CONFLICT_AVERSION = "conflict_aversion"
    NOVELTY_ADAPTATION = "novelty_adaptation"
    VULNERABILITY_RESISTANCE = "vulnerability_resistance"
    CONNECTION_SEEKING = "connection_seeking"
    AUTONOMY_PRESERVATION = "autonomy_preservation"
    EMOTIONAL_DAMPENING = "emotional_dampening"


class PatternType(str, Enum):
    INTERACTION_REPETITION = "interaction_repetition"
    EMOTIONAL_CONTEXT_SIMILARITY = "emotional_context_similarity"
    RESPONSE_BIAS_PERSISTENCE = "response_bias_persistence"
    STATE_SEQUENCE = "state_sequence"
    TRIGGER_RESPONSE_PAIR = "trigger_response_pair"
    CYCLICAL_BEHAVIOR = "cyclical_behavior"
    ESCALATION_PATTERN = "escalation_pattern"
    DE_ESCALATION_PATTERN = "de_escalation_pattern"
    AVOIDANCE_PATTERN = "avoidance_pattern"
    APPROACH_PATTERN = "approach_pattern"


class EmergenceType(str, Enum):
    """Higher-order phenomena watched by one monitor each."""
    NOVEL_BEHAVIOR_PATTERN = "novel_behavior_pattern"
    FEEDBACK_LOOP_POSITIVE = "feedback_loop_positive"
    FEEDBACK_LOOP_NEGATIVE = "feedback_loop_negative"
    OVER_ENGAGEMENT = "over_engagement"
    WITHDRAWAL_SPIRAL = "withdrawal_spiral"
    PERSONALITY_DRIFT = "personality_drift"
    ATTACHMENT_SHIFT = "attachment_shift"
    DEFENSE_ESCALATION = "defense_escalation"
    TRUST_COLLAPSE = "trust_collapse"
    TRUST_BREAKTHROUGH = "trust_breakthrough"
    EMOTIONAL_FLOODING = "emotional_flooding"
    EMOTIONAL_NUMBING = "emotional_numbing"
    PATTERN_CRYSTALLIZATION = "pattern_crystallization"
    PATTERN_DISSOLUTION = "pattern_dissolution"


class GovernanceAction(str, Enum):
    BIAS_REBALANCING = "bias_rebalancing"
    RECOVERY_PRESSURE_INCREASE = "recovery_pressure_increase"
    RECOVERY_PRESSURE_DECREASE = "recovery_pressure_decrease"
    RESISTANCE_MODULATION = "resistance_modulation"
    DRIFT_DAMPENING = "drift_dampening"
    PATTERN_WEAKENING = "pattern_weakening"
    TENDENCY_CORRECTION = "tendency_correction"
    FIELD_STABILIZATION = "field_stabilization"
    COOLDOWN_ENFORCEMENT = "cooldown_enforcement"
    GRADUAL_RESET = "gradual_reset"


class TargetSystem(str, Enum):
    BEHAVIOR_FIELD = "behavior_field"
    PATTERN = "pattern"
    TENDENCY = "tendency"
    STATE = "state"
    MODULATOR = "modulator"
    ALL = "all"


class Severity(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def from_confidence(cls, confidence: float) -> "Severity":
        if confidence >= 0.9:
            return cls.CRITICAL
        if confidence >= 0.75:
            return cls.HIGH
        if confidence >= 0.5:
            return cls.MODERATE
        return cls.LOW

    @property
    def multiplier(self) -> float:
        """Governance intensity and duration scale."""
        return SEVERITY_MULTIPLIERS[self]


SEVERITY_MULTIPLIERS = {
    Severity.CRITICAL: 1.0,
    Severity.HIGH: 0.7,
    Severity.MODERATE: 0.5,
    Severity.LOW: 0.3,
}


class RiskLevel(str, Enum):
    NONE = "none"
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    SEVERE = "severe"


class PhenomenonStatus(str, Enum):
    """Phenomenon lifecycle: detected -> governed -> resolved, forward only."""
    DETECTED = "detected"
    GOVERNED = "governed"
    RESOLVED = "resolved"


VALID_TRANSITIONS = {
    PhenomenonStatus.DETECTED: {PhenomenonStatus.GOVERNED, PhenomenonStatus.RESOLVED},
    PhenomenonStatus.GOVERNED: {PhenomenonStatus.RESOLVED},
    PhenomenonStatus.RESOLVED: set(),
}


class LogType(str, Enum):
    DETECTION = "detection"
    GOVERNANCE = "governance"
    PATTERN = "pattern"


# =============================================================================
# Configuration
# =============================================================================


class PatternThresholds(BaseModel):
    """Matching and retention limits for pattern signatures."""
    min_observations: int = Field(default=3, ge=1)
    similarity_threshold: float = Field(default=0.75, ge=0.0, le=1.0)
    novelty_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    decay_rate: float = Field(default=0.001, ge=0.0)
    max_signatures: int = Field(default=100, ge=1)
    compaction_interval_ms: int = Field(default=86400000, ge=0)


class GovernancePhilosophy(BaseModel):
    """Which corrections the soft governor may apply, and how often."""
    prefer_gradual_change: bool = True
    allowed_actions: list[GovernanceAction] = Field(
        default_factory=lambda: [a for a in GovernanceAction if a != GovernanceAction.GRADUAL_RESET]
    )
    forbidden_actions: list[GovernanceAction] = Field(
        default_factory=lambda: [GovernanceAction.GRADUAL_RESET]
    )
    max_simultaneous_actions: int = Field(default=3, ge=1)
    min_time_between_actions_ms: int = Field(default=300000, ge=0)
    emergency_override_threshold: float = Field(default=0.9, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def validate_disjoint(self) -> "GovernancePhilosophy":
        """An action cannot be both allowed and forbidden."""
        overlap = set(self.allowed_actions) & set(self.forbidden_actions)
        if overlap:
            names = ", ".join(sorted(a.value for a in overlap))
            raise ValueError(f"actions both allowed and forbidden: {names}")
        return self


class EmergenceConfig(BaseModel):
    """Emergence layer settings."""
    enabled: bool = True
    rebalancing_rate: float = Field(default=0.1, ge=0.0)
    max_correction_per_tick: float = Field(default=0.5, gt=0.0, le=1.0)
    personality_drift_threshold: float = Field(default=25.0, gt=0.0)
    phenomenon_history: int = Field(default=50, ge=1)
    governance_history: int = Field(default=50, ge=1)
    event_log_limit: int = Field(default=50, ge=1)
    pattern_thresholds: PatternThresholds = Field(default_factory=PatternThresholds)
    philosophy: GovernancePhilosophy = Field(default_factory=GovernancePhilosophy)
