"""Behavior field: an 8-dimensional continuous disposition space.

Behaviors are selected probabilistically from the field, and each selected
behavior feeds back into the field through per-class dimension weights.
Latent tendencies project onto the field between selections.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import ClassVar, Mapping, Optional

import numpy as np

from charsim.emergence.schemas import BehaviorClass, BehaviorFieldDimension, LatentTendencyName
from charsim.emergence.tendencies import (
    LatentTendency,
    ProjectionType,
    TargetType,
    tendency_influence_on,
)
from charsim.simulation.schemas import StateName

logger = logging.getLogger(__name__)

BASE_PROBABILITY = 0.5
FIELD_WEIGHT = 0.3
TENDENCY_WEIGHT = 0.2
STATE_WEIGHT = 0.15
NOISE_SPAN = 0.1
MIN_PROBABILITY = 0.01
MAX_PROBABILITY = 0.99
FACTOR_THRESHOLD = 0.05
TENDENCY_RELEVANCE = 0.01

FIELD_CHANGE_SCALE = 0.1
MOMENTUM_RETENTION = 0.8
MIN_UNCERTAINTY = 5.0
MULTIPLICATIVE_PROJECTION_SCALE = 0.1


@dataclass
class BehaviorFieldVector:
    """One field dimension with its confidence and momentum."""
    dimension: BehaviorFieldDimension
    value: float
    uncertainty: float
    min_value: float
    max_value: float
    momentum: float = 0.0
    last_updated_at: int = 0

    def clamp(self, value: float) -> float:
        return max(self.min_value, min(self.max_value, value))

    @property
    def normalized(self) -> float:
        span = self.max_value - self.min_value
        return (self.value - self.min_value) / span if span > 0 else 0.0

    def to_dict(self) -> dict:
        return {
            "dimension": self.dimension.value,
            "value": self.value,
            "uncertainty": self.uncertainty,
            "min_value": self.min_value,
            "max_value": self.max_value,
            "momentum": self.momentum,
            "last_updated_at": self.last_updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BehaviorFieldVector":
        return cls(
            dimension=BehaviorFieldDimension(data["dimension"]),
            value=float(data["value"]),
            uncertainty=float(data["uncertainty"]),
            min_value=float(data["min_value"]),
            max_value=float(data["max_value"]),
            momentum=float(data.get("momentum", 0.0)),
            last_updated_at=int(data.get("last_updated_at", 0)),
        )


@dataclass
class FieldSnapshot:
    timestamp: int
    values: dict[BehaviorFieldDimension, float]
    coherence: float

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "values": {d.value: v for d, v in self.values.items()},
            "coherence": self.coherence,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FieldSnapshot":
        return cls(
            timestamp=int(data["timestamp"]),
            values={BehaviorFieldDimension(d): float(v) for d, v in data["values"].items()},
            coherence=float(data["coherence"]),
        )


@dataclass
class BehaviorField:
    """The full field with aggregate metrics.

    Attributes:
        vectors: One vector per dimension.
        field_strength: Mean absolute dimension value.
        coherence: 100 minus the population standard deviation of values.
        entropy: Mean uncertainty across dimensions.
        history: Value snapshots after each update, most recent last.
    """
    vectors: dict[BehaviorFieldDimension, BehaviorFieldVector]
    field_strength: float = 0.0
    coherence: float = 100.0
    entropy: float = 0.0
    last_computed_at: int = 0
    history: list[FieldSnapshot] = field(default_factory=list)

    HISTORY_LIMIT: ClassVar[int] = 20

    def value(self, dimension: BehaviorFieldDimension) -> float:
        return self.vectors[dimension].value

    def values(self) -> dict[BehaviorFieldDimension, float]:
        return {d: v.value for d, v in self.vectors.items()}

    def value_at(self, dimension: BehaviorFieldDimension, timestamp: int) -> float:
        """Snapshot value at or before timestamp, else the oldest known."""
        value = None
        for snapshot in self.history:
            if dimension not in snapshot.values:
                continue
            if value is None or snapshot.timestamp <= timestamp:
                value = snapshot.values[dimension]
        return self.value(dimension) if value is None else value

    def recompute_metrics(self) -> None:
        values = np.array([v.value for v in self.vectors.values()], dtype=float)
        uncertainties = np.array([v.uncertainty for v in self.vectors.values()], dtype=float)
        if values.size == 0:
            return
        self.coherence = float(max(0.0, 100.0 - np.std(values)))
        self.entropy = float(np.mean(uncertainties))
        self.field_strength = float(np.mean(np.abs(values)))

    def snapshot(self, now_ms: int) -> None:
        self.last_computed_at = now_ms
        self.history.append(FieldSnapshot(now_ms, self.values(), self.coherence))
        if len(self.history) > self.HISTORY_LIMIT:
            self.history = self.history[-self.HISTORY_LIMIT:]

    def to_dict(self) -> dict:
        return {
            "vectors": {d.value: v.to_dict() for d, v in self.vectors.items()},
            "field_strength": self.field_strength,
            "coherence": self.coherence,
            "entropy": self.entropy,
            "last_computed_at": self.last_computed_at,
            "history": [s.to_dict() for s in self.history],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BehaviorField":
        return cls(
            vectors={
                BehaviorFieldDimension(d): BehaviorFieldVector.from_dict(v)
                for d, v in data["vectors"].items()
            },
            field_strength=float(data.get("field_strength", 0.0)),
            coherence=float(data.get("coherence", 100.0)),
            entropy=float(data.get("entropy", 0.0)),
            last_computed_at=int(data.get("last_computed_at", 0)),
            history=[FieldSnapshot.from_dict(s) for s in data.get("history", [])],
        )


# (value, uncertainty, min, max)
DEFAULT_FIELD_VECTORS: dict[BehaviorFieldDimension, tuple[float, float, float, float]] = {
    BehaviorFieldDimension.APPROACH_WITHDRAWAL: (0.0, 20.0, -100.0, 100.0),
    BehaviorFieldDimension.CURIOSITY_BIAS: (20.0, 15.0, -50.0, 100.0),
    BehaviorFieldDimension.EMOTIONAL_OPENNESS: (30.0, 25.0, 0.0, 100.0),
    BehaviorFieldDimension.RESISTANCE_DEFENSIVENESS: (20.0, 20.0, 0.0, 100.0),
    BehaviorFieldDimension.ENGAGEMENT_INTENSITY: (50.0, 15.0, 0.0, 100.0),
    BehaviorFieldDimension.VULNERABILITY_EXPOSURE: (25.0, 30.0, 0.0, 100.0),
    BehaviorFieldDimension.ASSERTIVENESS_DEFERENCE: (0.0, 20.0, -100.0, 100.0),
    BehaviorFieldDimension.NOVELTY_FAMILIARITY: (10.0, 25.0, -100.0, 100.0),
}


def default_behavior_field(now_ms: int = 0) -> BehaviorField:
    behavior_field = BehaviorField(
        vectors={
            dim: BehaviorFieldVector(dim, value, uncertainty, low, high, last_updated_at=now_ms)
            for dim, (value, uncertainty, low, high) in DEFAULT_FIELD_VECTORS.items()
        },
        last_computed_at=now_ms,
    )
    behavior_field.recompute_metrics()
    return behavior_field


_D = BehaviorFieldDimension

# Per-class weights of the dimensions a behavior draws on and reinforces
FIELD_MAPPINGS: dict[BehaviorClass, dict[BehaviorFieldDimension, float]] = {
    BehaviorClass.ENGAGE_DEEPLY: {_D.APPROACH_WITHDRAWAL: 0.8, _D.ENGAGEMENT_INTENSITY: 0.9, _D.EMOTIONAL_OPENNESS: 0.6},
    BehaviorClass.ENGAGE_LIGHTLY: {_D.APPROACH_WITHDRAWAL: 0.4, _D.ENGAGEMENT_INTENSITY: 0.5},
    BehaviorClass.MAINTAIN_DISTANCE: {_D.APPROACH_WITHDRAWAL: -0.2, _D.RESISTANCE_DEFENSIVENESS: 0.3},
    BehaviorClass.WITHDRAW_GENTLY: {_D.APPROACH_WITHDRAWAL: -0.5, _D.ENGAGEMENT_INTENSITY: -0.4},
    BehaviorClass.WITHDRAW_FIRMLY: {_D.APPROACH_WITHDRAWAL: -0.9, _D.RESISTANCE_DEFENSIVENESS: 0.7},
    BehaviorClass.EXPLORE_CURIOUSLY: {_D.CURIOSITY_BIAS: 0.9, _D.NOVELTY_FAMILIARITY: 0.7},
    BehaviorClass.RESPOND_DEFENSIVELY: {_D.RESISTANCE_DEFENSIVENESS: 0.9, _D.APPROACH_WITHDRAWAL: -0.4},
    BehaviorClass.OPEN_VULNERABLY: {_D.VULNERABILITY_EXPOSURE: 0.9, _D.EMOTIONAL_OPENNESS: 0.8},
    BehaviorClass.ASSERT_BOUNDARY: {_D.ASSERTIVENESS_DEFERENCE: 0.8, _D.RESISTANCE_DEFENSIVENESS: 0.4},
    BehaviorClass.SEEK_CONNECTION: {_D.APPROACH_WITHDRAWAL: 0.7, _D.EMOTIONAL_OPENNESS: 0.6},
    BehaviorClass.OFFER_SUPPORT: {_D.APPROACH_WITHDRAWAL: 0.5, _D.EMOTIONAL_OPENNESS: 0.7, _D.ENGAGEMENT_INTENSITY: 0.6},
    BehaviorClass.REQUEST_SUPPORT: {_D.VULNERABILITY_EXPOSURE: 0.6, _D.APPROACH_WITHDRAWAL: 0.4},
    BehaviorClass.CHALLENGE_PLAYFULLY: {_D.ASSERTIVENESS_DEFERENCE: 0.4, _D.CURIOSITY_BIAS: 0.5, _D.ENGAGEMENT_INTENSITY: 0.6},
    BehaviorClass.CHALLENGE_SERIOUSLY: {_D.ASSERTIVENESS_DEFERENCE: 0.8, _D.ENGAGEMENT_INTENSITY: 0.7},
    BehaviorClass.DEFLECT_TOPIC: {_D.RESISTANCE_DEFENSIVENESS: 0.5, _D.ENGAGEMENT_INTENSITY: -0.3},
    BehaviorClass.DEEPEN_TOPIC: {_D.CURIOSITY_BIAS: 0.6, _D.ENGAGEMENT_INTENSITY: 0.7, _D.EMOTIONAL_OPENNESS: 0.4},
}


# =============================================================================
# Probabilities and selection
# =============================================================================


@dataclass
class ProbabilityFactor:
    source: str
    name: str
    contribution: float

    @property
    def direction(self) -> str:
        return "increase" if self.contribution > 0 else "decrease"

    def to_dict(self) -> dict:
        return {"source": self.source, "name": self.name, "contribution": self.contribution}

    @classmethod
    def from_dict(cls, data: dict) -> "ProbabilityFactor":
        return cls(data["source"], data["name"], float(data["contribution"]))


@dataclass
class BehaviorProbability:
    behavior_class: BehaviorClass
    base_probability: float
    field_modified_probability: float
    context_modifier: float
    final_probability: float
    contributing_factors: list[ProbabilityFactor] = field(default_factory=list)


@dataclass
class BehaviorSelection:
    selected: BehaviorClass
    probability: float
    reasoning: list[str] = field(default_factory=list)

    @property
    def intensity(self) -> float:
        """Field reinforcement intensity for the selected behavior."""
        return self.probability * 5.0

    def to_dict(self) -> dict:
        return {"selected": self.selected.value, "probability": self.probability, "reasoning": list(self.reasoning)}

    @classmethod
    def from_dict(cls, data: dict) -> "BehaviorSelection":
        return cls(
            selected=BehaviorClass(data["selected"]),
            probability=float(data["probability"]),
            reasoning=list(data.get("reasoning", [])),
        )


def context_modifier(behavior: BehaviorClass, context: str) -> float:
    """Keyword adjustment for conflict, support and intimacy contexts."""
    modifier = 0.0
    text = context.lower()
    if "conflict" in text or "argument" in text:
        if behavior in (BehaviorClass.RESPOND_DEFENSIVELY, BehaviorClass.ASSERT_BOUNDARY):
            modifier += 0.2
        if behavior == BehaviorClass.OPEN_VULNERABLY:
            modifier -= 0.3
    if "support" in text or "help" in text:
        if behavior in (BehaviorClass.OFFER_SUPPORT, BehaviorClass.SEEK_CONNECTION):
            modifier += 0.2
    if "intimate" in text or "personal" in text:
        if behavior == BehaviorClass.OPEN_VULNERABLY:
            modifier += 0.15
        if behavior == BehaviorClass.DEFLECT_TOPIC:
            modifier += 0.1
    return modifier


def state_influence(behavior: BehaviorClass, states: Mapping[StateName, float]) -> float:
    energy = states.get(StateName.ENERGY, 50.0)
    stress = states.get(StateName.STRESS, 30.0)
    social_charge = states.get(StateName.SOCIAL_CHARGE, 60.0)

    influence = 0.0
    if behavior in (BehaviorClass.ENGAGE_DEEPLY, BehaviorClass.EXPLORE_CURIOUSLY):
        influence += (energy - 50) / 100
        influence -= (stress - 30) / 150
    if behavior in (BehaviorClass.WITHDRAW_GENTLY, BehaviorClass.WITHDRAW_FIRMLY):
        influence -= (energy - 50) / 100
        influence += (stress - 30) / 100
        influence -= (social_charge - 50) / 150
    if behavior in (BehaviorClass.SEEK_CONNECTION, BehaviorClass.OFFER_SUPPORT):
        influence += (social_charge - 50) / 80
    return influence


def compute_behavior_probabilities(
    behavior_field: BehaviorField,
    tendencies: Mapping[LatentTendencyName, LatentTendency],
    states: Mapping[StateName, float],
    context_hint: Optional[str],
    rng: np.random.Generator,
) -> list[BehaviorProbability]:
    """Score every behavior class, most probable first.

    Each class starts at 0.5 and is pushed by the mapped field dimensions,
    the tendencies that favour or oppose it, the context hint and a few
    state heuristics. Noise shrinks as field coherence rises. One uniform
    draw per class is taken from rng in enum order.
    """
    noise_scale = NOISE_SPAN * (1.0 - behavior_field.coherence / 100.0)
    probabilities = []

    for behavior in BehaviorClass:
        probability = BASE_PROBABILITY
        factors: list[ProbabilityFactor] = []

        for dimension, weight in FIELD_MAPPINGS[behavior].items():
            vector = behavior_field.vectors.get(dimension)
            if vector is None:
                continue
            contribution = vector.normalized * weight
            probability += contribution * FIELD_WEIGHT
            if abs(contribution) > FACTOR_THRESHOLD:
                factors.append(ProbabilityFactor("behavior_field", dimension.value, contribution))

        for name, tendency in tendencies.items():
            influence = tendency_influence_on(name, behavior)
            if abs(influence) <= TENDENCY_RELEVANCE:
                continue
            effect = tendency.current_value / 100.0 * influence
            probability += effect * TENDENCY_WEIGHT
            factors.append(ProbabilityFactor("latent_tendency", name.value, effect))

        modifier = context_modifier(behavior, context_hint) if context_hint else 0.0
        probability += state_influence(behavior, states) * STATE_WEIGHT

        noise = (rng.random() - 0.5) * noise_scale
        final = max(MIN_PROBABILITY, min(MAX_PROBABILITY, probability + modifier + noise))
        probabilities.append(BehaviorProbability(
            behavior_class=behavior,
            base_probability=BASE_PROBABILITY,
            field_modified_probability=probability,
            context_modifier=modifier,
            final_probability=final,
            contributing_factors=factors,
        ))

    probabilities.sort(key=lambda p: p.final_probability, reverse=True)
    return probabilities


def select_behavior(
    probabilities: list[BehaviorProbability],
    rng: np.random.Generator,
) -> BehaviorSelection:
    """Sample a behavior with weight proportional to probability squared."""
    weights = [p.final_probability ** 2 for p in probabilities]
    remaining = rng.random() * sum(weights)

    chosen = probabilities[0]
    for candidate, weight in zip(probabilities, weights):
        remaining -= weight
        if remaining <= 0:
            chosen = candidate
            break

    reasoning = [
        f"{f.name}: {'+' if f.contribution > 0 else ''}{f.contribution * 100:.1f}%"
        for f in chosen.contributing_factors
        if abs(f.contribution) > FACTOR_THRESHOLD
    ]
    return BehaviorSelection(chosen.behavior_class, chosen.final_probability, reasoning)


# =============================================================================
# Field updates
# =============================================================================


def update_behavior_field(
    behavior_field: BehaviorField,
    behavior: BehaviorClass,
    intensity: float,
    now_ms: int,
) -> None:
    """Reinforce the dimensions mapped to the selected behavior."""
    for dimension, weight in FIELD_MAPPINGS[behavior].items():
        vector = behavior_field.vectors.get(dimension)
        if vector is None:
            continue
        change = weight * intensity * FIELD_CHANGE_SCALE
        vector.momentum = vector.momentum * MOMENTUM_RETENTION + change * (1.0 - MOMENTUM_RETENTION)
        vector.value = vector.clamp(vector.value + change + vector.momentum)
        vector.uncertainty = max(MIN_UNCERTAINTY, vector.uncertainty - abs(change) * 0.5)
        vector.last_updated_at = now_ms

    behavior_field.recompute_metrics()
    behavior_field.snapshot(now_ms)


def project_tendencies(
    behavior_field: BehaviorField,
    tendencies: Mapping[LatentTendencyName, LatentTendency],
    now_ms: int,
) -> dict[BehaviorFieldDimension, float]:
    """Push tendency deviations from baseline onto their field targets.

    Returns:
        Net change per touched dimension.
    """
    changes: dict[BehaviorFieldDimension, float] = {}
    for tendency in tendencies.values():
        deviation = (tendency.current_value - tendency.baseline) / 100.0
        if deviation == 0:
            continue
        for target in tendency.influences:
            if target.target_type != TargetType.BEHAVIOR_FIELD:
                continue
            try:
                dimension = BehaviorFieldDimension(target.target_id)
            except ValueError:
                continue
            vector = behavior_field.vectors.get(dimension)
            if vector is None:
                continue

            if target.projection == ProjectionType.MULTIPLICATIVE:
                delta = vector.value * target.strength * deviation * MULTIPLICATIVE_PROJECTION_SCALE
            else:
                delta = deviation * target.strength
            before = vector.value
            vector.value = vector.clamp(vector.value + delta)
            vector.last_updated_at = now_ms
            changes[dimension] = changes.get(dimension, 0.0) + (vector.value - before)

    if changes:
        behavior_field.recompute_metrics()
    return changes
