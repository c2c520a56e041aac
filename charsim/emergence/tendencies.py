"""Latent tendencies: slow, bounded, second-order relational drift.

Each tendency integrates weighted influences from states, modulators,
pattern strength and interaction signals into an acceleration, which feeds
a velocity damped by the tendency's inertia.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Iterable, Mapping, Optional

from charsim.conditions import Comparator, Condition, self_is
from charsim.emergence.schemas import (
    BehaviorClass,
    BehaviorFieldDimension,
    LatentTendencyName,
    PatternType,
)
from charsim.simulation.schemas import ModulatorName, StateName
from charsim.simulation.state import ContinuousState, GlobalModulator

logger = logging.getLogger(__name__)

# Source value for interaction and time influencers with no signal
NEUTRAL_SIGNAL = 50.0
ACCELERATION_SCALE = 0.01


class InfluencerSource(str, Enum):
    PATTERN = "pattern"
    STATE = "state"
    MODULATOR = "modulator"
    INTERACTION = "interaction"
    TIME = "time"


class TargetType(str, Enum):
    BEHAVIOR_FIELD = "behavior_field"
    STATE = "state"
    MODULATOR = "modulator"
    PATTERN_SENSITIVITY = "pattern_sensitivity"


class ProjectionType(str, Enum):
    ADDITIVE = "additive"
    MULTIPLICATIVE = "multiplicative"
    THRESHOLD = "threshold"


@dataclass
class TendencyInfluencer:
    source: InfluencerSource
    source_id: str
    weight: float
    positive: bool = True
    condition: Optional[Condition] = None

    @property
    def sign(self) -> float:
        return 1.0 if self.positive else -1.0

    def to_dict(self) -> dict:
        return {
            "source": self.source.value,
            "source_id": self.source_id,
            "weight": self.weight,
            "positive": self.positive,
            "condition": self.condition.to_dict() if self.condition else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TendencyInfluencer":
        condition = data.get("condition")
        return cls(
            source=InfluencerSource(data["source"]),
            source_id=data["source_id"],
            weight=float(data["weight"]),
            positive=bool(data.get("positive", True)),
            condition=Condition.from_dict(condition) if condition else None,
        )


@dataclass
class TendencyTarget:
    """Where a tendency projects. Only behavior-field targets are applied."""
    target_type: TargetType
    target_id: str
    strength: float
    projection: ProjectionType = ProjectionType.ADDITIVE

    def to_dict(self) -> dict:
        return {
            "target_type": self.target_type.value,
            "target_id": self.target_id,
            "strength": self.strength,
            "projection": self.projection.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TendencyTarget":
        return cls(
            target_type=TargetType(data["target_type"]),
            target_id=data["target_id"],
            strength=float(data["strength"]),
            projection=ProjectionType(data.get("projection", "additive")),
        )


@dataclass
class TendencySnapshot:
    timestamp: int
    value: float
    velocity: float
    trigger: str = "tick_update"

    def to_dict(self) -> dict:
        return {"timestamp": self.timestamp, "value": self.value, "velocity": self.velocity, "trigger": self.trigger}

    @classmethod
    def from_dict(cls, data: dict) -> "TendencySnapshot":
        return cls(
            timestamp=int(data["timestamp"]),
            value=float(data["value"]),
            velocity=float(data["velocity"]),
            trigger=data.get("trigger", "tick_update"),
        )


@dataclass
class LatentTendency:
    """A slow drift variable with velocity damped by inertia.

    Attributes:
        current_value: Clamped to [min_value, max_value].
        baseline: Value the tendency relaxes toward.
        inertia: Velocity retention per tick, also slows the baseline return.
        influenced_by: Condition-gated sources that push the tendency.
        influences: Projections of the tendency onto other systems.
        history: Rolling record of recent values.
    """
    name: LatentTendencyName
    current_value: float
    baseline: float
    inertia: float
    min_value: float
    max_value: float
    influenced_by: list[TendencyInfluencer] = field(default_factory=list)
    influences: list[TendencyTarget] = field(default_factory=list)
    velocity: float = 0.0
    acceleration: float = 0.0
    last_updated_at: int = 0
    history: list[TendencySnapshot] = field(default_factory=list)

    HISTORY_LIMIT: ClassVar[int] = 20

    @property
    def drift(self) -> float:
        return self.current_value - self.baseline

    def value_at(self, timestamp: int) -> float:
        """Recorded value at or before timestamp, else the oldest known."""
        if not self.history:
            return self.current_value
        value = self.history[0].value
        for snapshot in self.history:
            if snapshot.timestamp <= timestamp:
                value = snapshot.value
        return value

    def record(self, now_ms: int, trigger: str = "tick_update") -> None:
        self.history.append(TendencySnapshot(now_ms, self.current_value, self.velocity, trigger))
        if len(self.history) > self.HISTORY_LIMIT:
            self.history = self.history[-self.HISTORY_LIMIT:]

    def to_dict(self) -> dict:
        return {
            "name": self.name.value,
            "current_value": self.current_value,
            "baseline": self.baseline,
            "inertia": self.inertia,
            "min_value": self.min_value,
            "max_value": self.max_value,
            "influenced_by": [i.to_dict() for i in self.influenced_by],
            "influences": [t.to_dict() for t in self.influences],
            "velocity": self.velocity,
            "acceleration": self.acceleration,
            "last_updated_at": self.last_updated_at,
            "history": [s.to_dict() for s in self.history],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LatentTendency":
        return cls(
            name=LatentTendencyName(data["name"]),
            current_value=float(data["current_value"]),
            baseline=float(data["baseline"]),
            inertia=float(data["inertia"]),
            min_value=float(data["min_value"]),
            max_value=float(data["max_value"]),
            influenced_by=[TendencyInfluencer.from_dict(i) for i in data.get("influenced_by", [])],
            influences=[TendencyTarget.from_dict(t) for t in data.get("influences", [])],
            velocity=float(data.get("velocity", 0.0)),
            acceleration=float(data.get("acceleration", 0.0)),
            last_updated_at=int(data.get("last_updated_at", 0)),
            history=[TendencySnapshot.from_dict(s) for s in data.get("history", [])],
        )


# =============================================================================
# Defaults
# =============================================================================


def _infl(source, source_id, weight, positive=True, condition=None) -> TendencyInfluencer:
    return TendencyInfluencer(source, source_id, weight, positive, condition)


def _field(dimension: BehaviorFieldDimension, strength: float, projection=ProjectionType.ADDITIVE) -> TendencyTarget:
    return TendencyTarget(TargetType.BEHAVIOR_FIELD, dimension.value, strength, projection)


def default_tendencies(now_ms: int = 0) -> dict[LatentTendencyName, LatentTendency]:
    T, P, S, M = LatentTendencyName, InfluencerSource.PATTERN, InfluencerSource.STATE, InfluencerSource.MODULATOR
    D, MULT = BehaviorFieldDimension, ProjectionType.MULTIPLICATIVE
    GT, LT = Comparator.GT, Comparator.LT

    table = [
        (T.ATTACHMENT_DRIFT, 0, 0.9, -50, 50, [
            _infl(P, PatternType.APPROACH_PATTERN.value, 0.3),
            _infl(P, PatternType.AVOIDANCE_PATTERN.value, 0.3, positive=False),
            _infl(S, StateName.SOCIAL_CHARGE.value, 0.2, condition=self_is(GT, 60)),
        ], [
            _field(D.APPROACH_WITHDRAWAL, 0.4),
            TendencyTarget(TargetType.MODULATOR, ModulatorName.ATTACHMENT_SENSITIVITY.value, 0.3),
        ]),
        (T.AVOIDANCE_GRADIENT, 0, 0.85, 0, 100, [
            _infl(S, StateName.STRESS.value, 0.4, condition=self_is(GT, 50)),
            _infl(P, PatternType.AVOIDANCE_PATTERN.value, 0.3),
            _infl(M, ModulatorName.THREAT_PERCEPTION.value, 0.3),
        ], [
            _field(D.APPROACH_WITHDRAWAL, -0.5),
            _field(D.RESISTANCE_DEFENSIVENESS, 0.3),
        ]),
        (T.TRUST_INERTIA, 50, 0.95, 0, 100, [
            _infl(InfluencerSource.INTERACTION, "positive_exchange", 0.2),
            _infl(InfluencerSource.INTERACTION, "negative_exchange", 0.4, positive=False),
            _infl(InfluencerSource.TIME, "consistency", 0.1),
        ], [
            _field(D.EMOTIONAL_OPENNESS, 0.5, MULT),
            _field(D.VULNERABILITY_EXPOSURE, 0.4, MULT),
        ]),
        (T.INTIMACY_MOMENTUM, 0, 0.88, -100, 100, [
            _infl(P, PatternType.APPROACH_PATTERN.value, 0.35),
            _infl(S, StateName.EMOTIONAL_VALENCE.value, 0.25, condition=self_is(GT, 55)),
        ], [
            _field(D.VULNERABILITY_EXPOSURE, 0.4),
            _field(D.EMOTIONAL_OPENNESS, 0.3),
        ]),
        (T.CONFLICT_AVERSION, 40, 0.92, 0, 100, [
            _infl(P, PatternType.DE_ESCALATION_PATTERN.value, 0.3),
            _infl(S, StateName.STRESS.value, 0.3),
        ], [
            _field(D.ASSERTIVENESS_DEFERENCE, -0.3),
            TendencyTarget(TargetType.PATTERN_SENSITIVITY, PatternType.ESCALATION_PATTERN.value, -0.4, MULT),
        ]),
        (T.NOVELTY_ADAPTATION, 50, 0.8, 0, 100, [
            _infl(M, ModulatorName.NOVELTY_SEEKING.value, 0.4),
            _infl(S, StateName.BOREDOM.value, 0.3, condition=self_is(GT, 50)),
        ], [
            _field(D.NOVELTY_FAMILIARITY, 0.5),
            _field(D.CURIOSITY_BIAS, 0.3),
        ]),
        (T.VULNERABILITY_RESISTANCE, 30, 0.9, 0, 100, [
            _infl(P, PatternType.AVOIDANCE_PATTERN.value, 0.35),
            _infl(S, StateName.STRESS.value, 0.25, condition=self_is(GT, 40)),
        ], [
            _field(D.VULNERABILITY_EXPOSURE, -0.6, MULT),
            _field(D.RESISTANCE_DEFENSIVENESS, 0.3),
        ]),
        (T.CONNECTION_SEEKING, 50, 0.85, 0, 100, [
            _infl(S, StateName.SOCIAL_CHARGE.value, 0.3, positive=False, condition=self_is(LT, 40)),
            _infl(M, ModulatorName.SOCIAL_APPROACH.value, 0.35),
        ], [
            _field(D.APPROACH_WITHDRAWAL, 0.4),
            _field(D.ENGAGEMENT_INTENSITY, 0.3),
        ]),
        (T.AUTONOMY_PRESERVATION, 50, 0.92, 0, 100, [
            _infl(P, PatternType.AVOIDANCE_PATTERN.value, 0.25),
            _infl(S, StateName.FATIGUE_SOCIAL.value, 0.3, condition=self_is(GT, 50)),
        ], [
            _field(D.APPROACH_WITHDRAWAL, -0.3),
            _field(D.ASSERTIVENESS_DEFERENCE, 0.25),
        ]),
        (T.EMOTIONAL_DAMPENING, 20, 0.88, 0, 100, [
            _infl(S, StateName.FATIGUE_EMOTIONAL.value, 0.4, condition=self_is(GT, 60)),
            _infl(S, StateName.STRESS.value, 0.3, condition=self_is(GT, 70)),
        ], [
            _field(D.EMOTIONAL_OPENNESS, -0.5, MULT),
            TendencyTarget(TargetType.STATE, StateName.EMOTIONAL_AROUSAL.value, -0.3, MULT),
        ]),
    ]
    return {
        name: LatentTendency(
            name=name,
            current_value=float(value),
            baseline=float(value),
            inertia=inertia,
            min_value=float(low),
            max_value=float(high),
            influenced_by=influencers,
            influences=targets,
            last_updated_at=now_ms,
        )
        for name, value, inertia, low, high, influencers, targets in table
    }


# How strongly each tendency (value/100) pushes each behavior class
TENDENCY_BEHAVIOR_INFLUENCE: dict[LatentTendencyName, dict[BehaviorClass, float]] = {
    LatentTendencyName.ATTACHMENT_DRIFT: {
        BehaviorClass.ENGAGE_DEEPLY: 0.3, BehaviorClass.SEEK_CONNECTION: 0.4, BehaviorClass.WITHDRAW_FIRMLY: -0.3,
    },
    LatentTendencyName.AVOIDANCE_GRADIENT: {
        BehaviorClass.WITHDRAW_GENTLY: 0.4, BehaviorClass.WITHDRAW_FIRMLY: 0.5,
        BehaviorClass.ENGAGE_DEEPLY: -0.3, BehaviorClass.SEEK_CONNECTION: -0.4,
    },
    LatentTendencyName.TRUST_INERTIA: {
        BehaviorClass.OPEN_VULNERABLY: 0.5, BehaviorClass.ENGAGE_DEEPLY: 0.3, BehaviorClass.RESPOND_DEFENSIVELY: -0.4,
    },
    LatentTendencyName.INTIMACY_MOMENTUM: {
        BehaviorClass.OPEN_VULNERABLY: 0.4, BehaviorClass.SEEK_CONNECTION: 0.3, BehaviorClass.MAINTAIN_DISTANCE: -0.3,
    },
    LatentTendencyName.CONFLICT_AVERSION: {
        BehaviorClass.DEFLECT_TOPIC: 0.3, BehaviorClass.CHALLENGE_SERIOUSLY: -0.4, BehaviorClass.ASSERT_BOUNDARY: -0.2,
    },
    LatentTendencyName.NOVELTY_ADAPTATION: {
        BehaviorClass.EXPLORE_CURIOUSLY: 0.5, BehaviorClass.DEEPEN_TOPIC: 0.3,
    },
    LatentTendencyName.VULNERABILITY_RESISTANCE: {
        BehaviorClass.OPEN_VULNERABLY: -0.5, BehaviorClass.RESPOND_DEFENSIVELY: 0.3, BehaviorClass.MAINTAIN_DISTANCE: 0.2,
    },
    LatentTendencyName.CONNECTION_SEEKING: {
        BehaviorClass.SEEK_CONNECTION: 0.5, BehaviorClass.ENGAGE_DEEPLY: 0.3, BehaviorClass.WITHDRAW_FIRMLY: -0.4,
    },
    LatentTendencyName.AUTONOMY_PRESERVATION: {
        BehaviorClass.ASSERT_BOUNDARY: 0.4, BehaviorClass.WITHDRAW_GENTLY: 0.2, BehaviorClass.ENGAGE_DEEPLY: -0.2,
    },
    LatentTendencyName.EMOTIONAL_DAMPENING: {
        BehaviorClass.ENGAGE_LIGHTLY: 0.3, BehaviorClass.ENGAGE_DEEPLY: -0.3, BehaviorClass.OPEN_VULNERABLY: -0.4,
    },
}


def tendency_influence_on(name: LatentTendencyName, behavior: BehaviorClass) -> float:
    return TENDENCY_BEHAVIOR_INFLUENCE.get(name, {}).get(behavior, 0.0)


# =============================================================================
# Update
# =============================================================================


def _lookup(values: Mapping, key: str):
    for name, value in values.items():
        if getattr(name, "value", name) == key:
            return value
    return None


def source_signal(
    influencer: TendencyInfluencer,
    states: Mapping[StateName, ContinuousState],
    modulators: Mapping[ModulatorName, GlobalModulator],
    pattern_strengths: Mapping[PatternType, float],
    signals: Mapping[str, float],
) -> Optional[tuple[float, float]]:
    """(raw value, push) for an influencer's source, None when unavailable.

    States and modulators push by their deviation from baseline, interaction
    and time signals by their distance from neutral, patterns by their full
    strength.
    """
    if influencer.source == InfluencerSource.STATE:
        state = _lookup(states, influencer.source_id)
        return None if state is None else (state.current_value, state.deviation)
    if influencer.source == InfluencerSource.MODULATOR:
        modulator = _lookup(modulators, influencer.source_id)
        if modulator is None:
            return None
        return modulator.current_value, modulator.current_value - modulator.baseline
    if influencer.source == InfluencerSource.PATTERN:
        strength = _lookup(pattern_strengths, influencer.source_id)
        return None if strength is None else (strength * 100.0, strength * 100.0)
    value = float(signals.get(influencer.source_id, NEUTRAL_SIGNAL))
    return value, value - NEUTRAL_SIGNAL


def update_tendency(
    tendency: LatentTendency,
    states: Mapping[StateName, ContinuousState],
    modulators: Mapping[ModulatorName, GlobalModulator],
    pattern_strengths: Mapping[PatternType, float],
    signals: Mapping[str, float],
    delta_ms: float,
    now_ms: int,
) -> float:
    """Integrate one tendency over delta_ms and return its new value."""
    total = 0.0
    for influencer in tendency.influenced_by:
        signal = source_signal(influencer, states, modulators, pattern_strengths, signals)
        if signal is None:
            continue
        value, push = signal
        if influencer.condition is not None and not influencer.condition.evaluate(self_value=value):
            continue
        total += push / 100.0 * influencer.weight * influencer.sign

    dt_ms = max(delta_ms, 0.0)
    total += (tendency.baseline - tendency.current_value) * (1.0 - tendency.inertia) * (dt_ms / 3600000.0)

    tendency.acceleration = total * ACCELERATION_SCALE
    tendency.velocity = tendency.velocity * tendency.inertia + tendency.acceleration
    value = tendency.current_value + tendency.velocity * (dt_ms / 60000.0)
    tendency.current_value = max(tendency.min_value, min(tendency.max_value, value))
    tendency.last_updated_at = now_ms
    tendency.record(now_ms)
    return tendency.current_value


def update_latent_tendencies(
    tendencies: Mapping[LatentTendencyName, LatentTendency],
    states: Mapping[StateName, ContinuousState],
    modulators: Mapping[ModulatorName, GlobalModulator],
    pattern_strengths: Mapping[PatternType, float],
    signals: Mapping[str, float],
    delta_ms: float,
    now_ms: int,
) -> dict[LatentTendencyName, float]:
    """Update every tendency; returns the new values by name.

    Args:
        tendencies: Tendencies to update in place.
        states: Post-tick states.
        modulators: Post-tick modulators.
        pattern_strengths: Strongest signature strength per pattern type.
        signals: Interaction and time signals (0-100, neutral 50) by source id.
        delta_ms: Elapsed time since the previous tick.
        now_ms: Tick timestamp.
    """
    updates = {}
    for name, tendency in tendencies.items():
        updates[name] = update_tendency(tendency, states, modulators, pattern_strengths, signals, delta_ms, now_ms)
    return updates


def strongest_by_type(signatures: Iterable) -> dict[PatternType, float]:
    """Strongest signature strength for each pattern type present."""
    strengths: dict[PatternType, float] = {}
    for signature in signatures:
        current = strengths.get(signature.signature_type)
        if current is None or signature.strength > current:
            strengths[signature.signature_type] = signature.strength
    return strengths
