"""Soft governor: bounded, decaying corrections for emergent phenomena.

Each accepted phenomenon maps to one governance action with an intensity
scaled by severity. The action's effect is applied once on acceptance and
then on every governance tick with linearly fading strength until its
duration elapses, at which point the linked phenomenon resolves.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, ClassVar, Mapping, Optional

from charsim.emergence.behavior_field import DEFAULT_FIELD_VECTORS, BehaviorField
from charsim.emergence.monitor import EmergentPhenomenon
from charsim.emergence.patterns import PatternAccumulator
from charsim.emergence.schemas import (
    BehaviorFieldDimension,
    EmergenceConfig,
    EmergenceType,
    GovernanceAction,
    GovernancePhilosophy,
    LatentTendencyName,
    Severity,
    TargetSystem,
)
from charsim.emergence.tendencies import LatentTendency
from charsim.simulation.schemas import StateName
from charsim.simulation.state import ContinuousState

logger = logging.getLogger(__name__)

ALL_TARGETS = "all"
UNKNOWN_TARGET = "unknown"

STABILIZATION_MOMENTUM_DAMPING = 0.5
STABILIZATION_UNCERTAINTY_GAIN = 0.2
MAX_UNCERTAINTY = 100.0
ENGAGEMENT_FLOOR = 30.0
ENGAGEMENT_REDUCTION = 20.0
RESISTANCE_REDUCTION = 10.0
PATTERN_STRENGTH_FLOOR = 0.3
PATTERN_REDUCTION = 0.1
RECOVERY_PULL = 0.1
STATE_RECOVERY_THRESHOLD = 10.0

ACTION_MAP: dict[EmergenceType, GovernanceAction] = {
    EmergenceType.OVER_ENGAGEMENT: GovernanceAction.COOLDOWN_ENFORCEMENT,
    EmergenceType.WITHDRAWAL_SPIRAL: GovernanceAction.BIAS_REBALANCING,
    EmergenceType.PERSONALITY_DRIFT: GovernanceAction.DRIFT_DAMPENING,
    EmergenceType.DEFENSE_ESCALATION: GovernanceAction.RESISTANCE_MODULATION,
    EmergenceType.TRUST_COLLAPSE: GovernanceAction.RECOVERY_PRESSURE_INCREASE,
    EmergenceType.EMOTIONAL_FLOODING: GovernanceAction.FIELD_STABILIZATION,
    EmergenceType.PATTERN_CRYSTALLIZATION: GovernanceAction.PATTERN_WEAKENING,
    EmergenceType.FEEDBACK_LOOP_POSITIVE: GovernanceAction.BIAS_REBALANCING,
    EmergenceType.FEEDBACK_LOOP_NEGATIVE: GovernanceAction.RECOVERY_PRESSURE_DECREASE,
}


@dataclass(frozen=True)
class ActionProfile:
    target_system: TargetSystem
    default_target: str
    expected_effect: str
    base_duration_ms: int


ACTION_PROFILES: dict[GovernanceAction, ActionProfile] = {
    GovernanceAction.BIAS_REBALANCING: ActionProfile(
        TargetSystem.BEHAVIOR_FIELD, ALL_TARGETS, "Rebalance field vectors toward baseline", 7200000),
    GovernanceAction.RECOVERY_PRESSURE_INCREASE: ActionProfile(
        TargetSystem.TENDENCY, LatentTendencyName.TRUST_INERTIA.value, "Increase recovery pressure", 3600000),
    GovernanceAction.RECOVERY_PRESSURE_DECREASE: ActionProfile(
        TargetSystem.TENDENCY, LatentTendencyName.AVOIDANCE_GRADIENT.value, "Decrease recovery pressure", 3600000),
    GovernanceAction.RESISTANCE_MODULATION: ActionProfile(
        TargetSystem.BEHAVIOR_FIELD, BehaviorFieldDimension.RESISTANCE_DEFENSIVENESS.value,
        "Modulate defensive resistance", 5400000),
    GovernanceAction.DRIFT_DAMPENING: ActionProfile(
        TargetSystem.TENDENCY, ALL_TARGETS, "Dampen overall drift velocity", 14400000),
    GovernanceAction.PATTERN_WEAKENING: ActionProfile(
        TargetSystem.PATTERN, UNKNOWN_TARGET, "Reduce pattern strength", 86400000),
    GovernanceAction.TENDENCY_CORRECTION: ActionProfile(
        TargetSystem.TENDENCY, LatentTendencyName.ATTACHMENT_DRIFT.value,
        "Correct tendency value toward baseline", 7200000),
    GovernanceAction.FIELD_STABILIZATION: ActionProfile(
        TargetSystem.BEHAVIOR_FIELD, ALL_TARGETS, "Stabilize behavior field", 3600000),
    GovernanceAction.COOLDOWN_ENFORCEMENT: ActionProfile(
        TargetSystem.BEHAVIOR_FIELD, BehaviorFieldDimension.ENGAGEMENT_INTENSITY.value,
        "Enforce engagement cooldown", 1800000),
    GovernanceAction.GRADUAL_RESET: ActionProfile(
        TargetSystem.ALL, ALL_TARGETS, "Gradual system reset", 86400000),
}


@dataclass
class GovernanceResponse:
    """One applied correction and its lifetime."""
    id: str
    phenomenon_id: str
    action: GovernanceAction
    intensity: float
    target_system: TargetSystem
    target_id: str
    applied_at: int
    duration_ms: int
    expected_effect: str
    actual_effect: Optional[str] = None
    is_active: bool = True
    completed_at: Optional[int] = None

    def elapsed(self, now_ms: int) -> int:
        return now_ms - self.applied_at

    def expired(self, now_ms: int) -> bool:
        return self.elapsed(now_ms) >= self.duration_ms

    def strength_at(self, now_ms: int) -> float:
        """Intensity faded linearly over the duration."""
        if self.duration_ms <= 0:
            return 0.0
        progress = min(1.0, max(0.0, self.elapsed(now_ms) / self.duration_ms))
        return self.intensity * (1.0 - progress)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "phenomenon_id": self.phenomenon_id,
            "action": self.action.value,
            "intensity": self.intensity,
            "target_system": self.target_system.value,
            "target_id": self.target_id,
            "applied_at": self.applied_at,
            "duration_ms": self.duration_ms,
            "expected_effect": self.expected_effect,
            "actual_effect": self.actual_effect,
            "is_active": self.is_active,
            "completed_at": self.completed_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GovernanceResponse":
        return cls(
            id=data["id"],
            phenomenon_id=data["phenomenon_id"],
            action=GovernanceAction(data["action"]),
            intensity=float(data["intensity"]),
            target_system=TargetSystem(data["target_system"]),
            target_id=data["target_id"],
            applied_at=int(data["applied_at"]),
            duration_ms=int(data["duration_ms"]),
            expected_effect=data["expected_effect"],
            actual_effect=data.get("actual_effect"),
            is_active=bool(data.get("is_active", True)),
            completed_at=data.get("completed_at"),
        )


@dataclass
class SoftGovernor:
    philosophy: GovernancePhilosophy = field(default_factory=GovernancePhilosophy)
    rebalancing_rate: float = 0.1
    max_correction_per_tick: float = 0.5
    history_limit: int = 50
    active_responses: list[GovernanceResponse] = field(default_factory=list)
    history: list[GovernanceResponse] = field(default_factory=list)
    last_governance_at: Optional[int] = None

    DEFAULT_HISTORY: ClassVar[int] = 50

    @classmethod
    def from_config(cls, config: EmergenceConfig) -> "SoftGovernor":
        return cls(
            philosophy=config.philosophy.model_copy(deep=True),
            rebalancing_rate=config.rebalancing_rate,
            max_correction_per_tick=config.max_correction_per_tick,
            history_limit=config.governance_history,
        )

    def archive(self, response: GovernanceResponse) -> None:
        self.history.append(response)
        if len(self.history) > self.history_limit:
            self.history = self.history[-self.history_limit:]

    def to_dict(self) -> dict:
        return {
            "philosophy": self.philosophy.model_dump(mode="json"),
            "rebalancing_rate": self.rebalancing_rate,
            "max_correction_per_tick": self.max_correction_per_tick,
            "history_limit": self.history_limit,
            "active_responses": [r.to_dict() for r in self.active_responses],
            "history": [r.to_dict() for r in self.history],
            "last_governance_at": self.last_governance_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SoftGovernor":
        return cls(
            philosophy=GovernancePhilosophy.model_validate(data.get("philosophy", {})),
            rebalancing_rate=float(data.get("rebalancing_rate", 0.1)),
            max_correction_per_tick=float(data.get("max_correction_per_tick", 0.5)),
            history_limit=int(data.get("history_limit", cls.DEFAULT_HISTORY)),
            active_responses=[GovernanceResponse.from_dict(r) for r in data.get("active_responses", [])],
            history=[GovernanceResponse.from_dict(r) for r in data.get("history", [])],
            last_governance_at=data.get("last_governance_at"),
        )


@dataclass
class GovernedSystems:
    """The mutable systems governance effects write into."""
    behavior_field: BehaviorField
    tendencies: Mapping[LatentTendencyName, LatentTendency]
    accumulator: PatternAccumulator
    states: Mapping[StateName, ContinuousState]


# =============================================================================
# Selection and application
# =============================================================================


def select_action(phenomenon: EmergentPhenomenon, philosophy: GovernancePhilosophy) -> Optional[GovernanceAction]:
    action = ACTION_MAP.get(phenomenon.emergence_type)
    if action is not None and action in philosophy.allowed_actions:
        return action
    if (phenomenon.severity == Severity.CRITICAL
            and phenomenon.confidence >= philosophy.emergency_override_threshold):
        return GovernanceAction.FIELD_STABILIZATION
    return None


def _target_for(action: GovernanceAction, phenomenon: EmergentPhenomenon) -> str:
    profile = ACTION_PROFILES[action]
    if profile.target_system == TargetSystem.TENDENCY and profile.default_target != ALL_TARGETS:
        if phenomenon.contributing_tendencies:
            return phenomenon.contributing_tendencies[0].name
    if profile.target_system == TargetSystem.PATTERN and phenomenon.contributing_patterns:
        return phenomenon.contributing_patterns[0].name
    return profile.default_target


def apply_governance(
    governor: SoftGovernor,
    phenomenon: EmergentPhenomenon,
    systems: GovernedSystems,
    now_ms: int,
    next_id: Callable[[], str],
) -> Optional[GovernanceResponse]:
    """Respond to a phenomenon, or return None when governance declines.

    Declines inside the global cooldown, at the concurrency cap, and when
    no allowed action fits. On acceptance the phenomenon becomes governed
    and the effect is applied at full intensity.
    """
    philosophy = governor.philosophy
    label = phenomenon.emergence_type.value

    if (governor.last_governance_at is not None
            and now_ms - governor.last_governance_at < philosophy.min_time_between_actions_ms):
        logger.warning(f"Governance declined for {label}: inside global cooldown")
        return None
    if len(governor.active_responses) >= philosophy.max_simultaneous_actions:
        logger.warning(f"Governance declined for {label}: {len(governor.active_responses)} actions already active")
        return None

    action = select_action(phenomenon, philosophy)
    if action is None or action in philosophy.forbidden_actions:
        logger.warning(f"Governance declined for {label}: no permitted action")
        return None

    profile = ACTION_PROFILES[action]
    multiplier = phenomenon.severity.multiplier
    intensity = min(governor.max_correction_per_tick, multiplier * governor.max_correction_per_tick)
    response = GovernanceResponse(
        id=next_id(),
        phenomenon_id=phenomenon.id,
        action=action,
        intensity=intensity,
        target_system=profile.target_system,
        target_id=_target_for(action, phenomenon),
        applied_at=now_ms,
        duration_ms=int(profile.base_duration_ms * (1 + multiplier)),
        expected_effect=profile.expected_effect,
    )

    phenomenon.govern(response.id, now_ms)
    governor.active_responses.append(response)
    governor.last_governance_at = now_ms
    apply_effect(response, intensity, systems, governor.rebalancing_rate, now_ms)
    logger.info(f"Applied {action.value} with intensity {intensity:.2f} for {label}")
    return response


def tick_governance(
    governor: SoftGovernor,
    systems: GovernedSystems,
    phenomena: Mapping[str, EmergentPhenomenon],
    now_ms: int,
) -> list[GovernanceResponse]:
    """Expire finished responses and reapply the rest at fading strength.

    Returns:
        Responses completed on this tick.
    """
    completed = []
    still_active = []
    for response in governor.active_responses:
        if response.expired(now_ms):
            response.is_active = False
            response.completed_at = now_ms
            response.actual_effect = "Completed"
            linked = phenomena.get(response.phenomenon_id)
            if linked is not None:
                linked.resolve(now_ms)
            governor.archive(response)
            completed.append(response)
            logger.debug(f"Governance response {response.id} ({response.action.value}) completed")
        else:
            apply_effect(response, response.strength_at(now_ms), systems, governor.rebalancing_rate, now_ms)
            still_active.append(response)
    governor.active_responses = still_active
    return completed


# =============================================================================
# Effects
# =============================================================================


def apply_effect(
    response: GovernanceResponse,
    strength: float,
    systems: GovernedSystems,
    rebalancing_rate: float,
    now_ms: int,
) -> None:
    """Write one response's effect into the governed systems.

    Unknown targets leave everything untouched.
    """
    if strength <= 0:
        return
    action = response.action
    if action == GovernanceAction.BIAS_REBALANCING:
        _rebalance_field(systems.behavior_field, strength * rebalancing_rate, now_ms)
    elif action == GovernanceAction.FIELD_STABILIZATION:
        _stabilize_field(systems.behavior_field, strength)
    elif action == GovernanceAction.COOLDOWN_ENFORCEMENT:
        _enforce_cooldown(systems.behavior_field, strength, now_ms)
    elif action == GovernanceAction.RESISTANCE_MODULATION:
        vector = systems.behavior_field.vectors.get(BehaviorFieldDimension.RESISTANCE_DEFENSIVENESS)
        if vector is not None:
            vector.value = vector.clamp(vector.value - strength * RESISTANCE_REDUCTION)
            vector.last_updated_at = now_ms
    elif action == GovernanceAction.DRIFT_DAMPENING:
        for tendency in _tendency_targets(systems, response.target_id):
            tendency.velocity *= 1.0 - strength
            tendency.acceleration *= 1.0 - strength
    elif action == GovernanceAction.PATTERN_WEAKENING:
        signature = systems.accumulator.signatures.get(response.target_id)
        if signature is not None and signature.strength > PATTERN_STRENGTH_FLOOR:
            signature.weaken(strength * PATTERN_REDUCTION, now_ms, floor=PATTERN_STRENGTH_FLOOR)
    elif action == GovernanceAction.TENDENCY_CORRECTION:
        for tendency in _tendency_targets(systems, response.target_id):
            _pull_tendency(tendency, strength)
    elif action == GovernanceAction.RECOVERY_PRESSURE_INCREASE:
        for tendency in _tendency_targets(systems, response.target_id):
            _pull_tendency(tendency, strength)
        _pull_states(systems.states, strength)
    elif action == GovernanceAction.RECOVERY_PRESSURE_DECREASE:
        for tendency in _tendency_targets(systems, response.target_id):
            tendency.velocity *= 1.0 - strength
    elif action == GovernanceAction.GRADUAL_RESET:
        _rebalance_field(systems.behavior_field, strength * rebalancing_rate, now_ms)
        for tendency in systems.tendencies.values():
            _pull_tendency(tendency, strength)
        _pull_states(systems.states, strength)

    if response.target_system in (TargetSystem.BEHAVIOR_FIELD, TargetSystem.ALL):
        systems.behavior_field.recompute_metrics()


def _tendency_targets(systems: GovernedSystems, target_id: str) -> list[LatentTendency]:
    if target_id == ALL_TARGETS:
        return list(systems.tendencies.values())
    return [t for name, t in systems.tendencies.items() if name.value == target_id]


def _pull_tendency(tendency: LatentTendency, strength: float) -> None:
    pulled = tendency.current_value + (tendency.baseline - tendency.current_value) * strength * RECOVERY_PULL
    tendency.current_value = max(tendency.min_value, min(tendency.max_value, pulled))


def _pull_states(states: Mapping[StateName, ContinuousState], strength: float) -> None:
    for state in states.values():
        if abs(state.deviation) > STATE_RECOVERY_THRESHOLD:
            state.current_value = state.bounds.clamp(state.current_value - state.deviation * strength * RECOVERY_PULL)


def _rebalance_field(behavior_field: BehaviorField, pull: float, now_ms: int) -> None:
    for dimension, vector in behavior_field.vectors.items():
        baseline = DEFAULT_FIELD_VECTORS.get(dimension, (0.0,))[0]
        vector.value = vector.clamp(vector.value + (baseline - vector.value) * pull)
        vector.last_updated_at = now_ms


def _stabilize_field(behavior_field: BehaviorField, strength: float) -> None:
    for vector in behavior_field.vectors.values():
        vector.momentum *= 1.0 - strength * STABILIZATION_MOMENTUM_DAMPING
        vector.uncertainty = min(MAX_UNCERTAINTY, vector.uncertainty * (1.0 + strength * STABILIZATION_UNCERTAINTY_GAIN))


def _enforce_cooldown(behavior_field: BehaviorField, strength: float, now_ms: int) -> None:
    vector = behavior_field.vectors.get(BehaviorFieldDimension.ENGAGEMENT_INTENSITY)
    if vector is None:
        return
    lowered = max(ENGAGEMENT_FLOOR, vector.value - strength * ENGAGEMENT_REDUCTION)
    vector.value = min(vector.value, lowered)
    vector.momentum = 0.0
    vector.last_updated_at = now_ms
