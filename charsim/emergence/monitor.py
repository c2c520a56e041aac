"""Emergence monitors: weighted typed triggers over the whole system.

One monitor watches each emergence type. A scan evaluates every active
monitor outside its cooldown; confidence is the weighted fraction of its
trigger conditions that hold, and a phenomenon is raised when confidence
reaches the monitor's sensitivity.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional, Union

from charsim.conditions import Comparator, Condition, OperandKind, check
from charsim.emergence.behavior_field import BehaviorField
from charsim.emergence.patterns import PatternAccumulator, PatternSignature
from charsim.emergence.schemas import (
    VALID_TRANSITIONS,
    BehaviorFieldDimension,
    EmergenceType,
    LatentTendencyName,
    PatternType,
    PhenomenonStatus,
    RiskLevel,
    Severity,
)
from charsim.emergence.tendencies import LatentTendency
from charsim.errors import InvalidTransitionError
from charsim.simulation.schemas import StateName
from charsim.simulation.state import ContinuousState

logger = logging.getLogger(__name__)

MS_PER_HOUR = 3600000
MS_PER_DAY = 86400000

STATE_CONTRIBUTION_THRESHOLD = 10.0
TENDENCY_CONTRIBUTION_THRESHOLD = 0.1
PATTERN_CONTRIBUTION_THRESHOLD = 0.5
MAX_CONTRIBUTING_PATTERNS = 5

# Derived metrics available to threshold checks
METRIC_TOTAL_DRIFT = "total_tendency_drift"
METRIC_NOVELTY = "recurring_novelty"


class RateSource(str, Enum):
    TENDENCY = "tendency"
    FIELD = "field"
    PATTERN = "pattern"


@dataclass
class EmergenceContext:
    """Everything a scan reads, captured after the tick's updates."""
    states: Mapping[StateName, ContinuousState]
    tendencies: Mapping[LatentTendencyName, LatentTendency]
    behavior_field: BehaviorField
    accumulator: PatternAccumulator
    now_ms: int

    def metrics(self) -> dict[str, float]:
        min_observations = self.accumulator.thresholds.min_observations
        recurring = [
            s.novelty_score for s in self.accumulator.signatures.values()
            if s.observation_count >= min_observations
        ]
        return {
            METRIC_TOTAL_DRIFT: sum(abs(t.drift) for t in self.tendencies.values()),
            METRIC_NOVELTY: max(recurring, default=0.0),
        }

    def resolver(self):
        metrics = self.metrics()

        def resolve(kind: OperandKind, name: str) -> Optional[float]:
            if kind == OperandKind.STATE:
                state = _find(self.states, name)
                return state.current_value if state is not None else None
            if kind == OperandKind.TENDENCY:
                tendency = _find(self.tendencies, name)
                return tendency.current_value if tendency is not None else None
            if kind == OperandKind.FIELD:
                vector = _find(self.behavior_field.vectors, name)
                return vector.value if vector is not None else None
            if kind == OperandKind.METRIC:
                return metrics.get(name)
            return None

        return resolve


def _find(mapping: Mapping, name: str):
    for key, value in mapping.items():
        if key.value == name:
            return value
    return None


# =============================================================================
# Trigger conditions
# =============================================================================


@dataclass
class ThresholdCondition:
    """Holds when every check holds."""
    checks: list[Condition]
    weight: float = 1.0

    condition_type = "threshold"

    def holds(self, context: EmergenceContext, resolver=None) -> bool:
        resolver = resolver or context.resolver()
        return all(c.evaluate(resolver) for c in self.checks)

    def to_dict(self) -> dict:
        return {
            "condition_type": self.condition_type,
            "checks": [c.to_dict() for c in self.checks],
            "weight": self.weight,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ThresholdCondition":
        return cls([Condition.from_dict(c) for c in data["checks"]], float(data.get("weight", 1.0)))


@dataclass
class RateOfChangeCondition:
    """Holds when the signed change over period_ms reaches rate.

    For pattern sources an empty name means any signature.
    """
    source: RateSource
    name: str
    rate: float
    period_ms: int
    weight: float = 1.0

    condition_type = "rate_of_change"

    def change(self, context: EmergenceContext) -> Optional[float]:
        since = context.now_ms - self.period_ms
        if self.source == RateSource.TENDENCY:
            tendency = _find(context.tendencies, self.name)
            if tendency is None:
                return None
            return tendency.current_value - tendency.value_at(since)
        if self.source == RateSource.FIELD:
            try:
                dimension = BehaviorFieldDimension(self.name)
            except ValueError:
                return None
            if dimension not in context.behavior_field.vectors:
                return None
            return context.behavior_field.value(dimension) - context.behavior_field.value_at(dimension, since)

        signatures = [
            s for s in context.accumulator.signatures.values()
            if not self.name or s.id == self.name
        ]
        changes = [s.strength - s.strength_at(since) for s in signatures]
        if not changes:
            return None
        return min(changes) if self.rate < 0 else max(changes)

    def holds(self, context: EmergenceContext, resolver=None) -> bool:
        change = self.change(context)
        if change is None:
            return False
        if self.rate < 0:
            return change <= self.rate
        return change >= self.rate

    def to_dict(self) -> dict:
        return {
            "condition_type": self.condition_type,
            "source": self.source.value,
            "name": self.name,
            "rate": self.rate,
            "period_ms": self.period_ms,
            "weight": self.weight,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RateOfChangeCondition":
        return cls(
            source=RateSource(data["source"]),
            name=data.get("name", ""),
            rate=float(data["rate"]),
            period_ms=int(data["period_ms"]),
            weight=float(data.get("weight", 1.0)),
        )


@dataclass
class PatternMatchCondition:
    """Holds when some signature (of pattern_type, if given) is strong enough."""
    pattern_type: Optional[PatternType] = None
    min_strength: float = 0.5
    min_observations: int = 0
    weight: float = 1.0

    condition_type = "pattern_match"

    def matches(self, signature: PatternSignature) -> bool:
        if self.pattern_type is not None and signature.signature_type != self.pattern_type:
            return False
        return signature.strength >= self.min_strength and signature.observation_count >= self.min_observations

    def holds(self, context: EmergenceContext, resolver=None) -> bool:
        return any(self.matches(s) for s in context.accumulator.signatures.values())

    def to_dict(self) -> dict:
        return {
            "condition_type": self.condition_type,
            "pattern_type": self.pattern_type.value if self.pattern_type else None,
            "min_strength": self.min_strength,
            "min_observations": self.min_observations,
            "weight": self.weight,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PatternMatchCondition":
        pattern_type = data.get("pattern_type")
        return cls(
            pattern_type=PatternType(pattern_type) if pattern_type else None,
            min_strength=float(data.get("min_strength", 0.5)),
            min_observations=int(data.get("min_observations", 0)),
            weight=float(data.get("weight", 1.0)),
        )


TriggerCondition = Union[ThresholdCondition, RateOfChangeCondition, PatternMatchCondition]

_CONDITION_TYPES = {
    ThresholdCondition.condition_type: ThresholdCondition,
    RateOfChangeCondition.condition_type: RateOfChangeCondition,
    PatternMatchCondition.condition_type: PatternMatchCondition,
}


def trigger_from_dict(data: dict) -> TriggerCondition:
    condition_type = data["condition_type"]
    if condition_type not in _CONDITION_TYPES:
        raise ValueError(f"unknown trigger condition type: {condition_type}")
    return _CONDITION_TYPES[condition_type].from_dict(data)


# =============================================================================
# Monitors
# =============================================================================


@dataclass
class EmergenceMonitor:
    monitor_type: EmergenceType
    sensitivity: float
    cooldown_ms: int
    trigger_conditions: list[TriggerCondition] = field(default_factory=list)
    is_active: bool = True
    last_triggered_at: Optional[int] = None

    def cooling_down(self, now_ms: int) -> bool:
        return self.last_triggered_at is not None and now_ms - self.last_triggered_at < self.cooldown_ms

    def confidence(self, context: EmergenceContext) -> float:
        total_weight = sum(c.weight for c in self.trigger_conditions)
        if total_weight <= 0:
            return 0.0
        resolver = context.resolver()
        score = sum(c.weight for c in self.trigger_conditions if c.holds(context, resolver))
        return score / total_weight

    def to_dict(self) -> dict:
        return {
            "monitor_type": self.monitor_type.value,
            "sensitivity": self.sensitivity,
            "cooldown_ms": self.cooldown_ms,
            "trigger_conditions": [c.to_dict() for c in self.trigger_conditions],
            "is_active": self.is_active,
            "last_triggered_at": self.last_triggered_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EmergenceMonitor":
        last = data.get("last_triggered_at")
        return cls(
            monitor_type=EmergenceType(data["monitor_type"]),
            sensitivity=float(data["sensitivity"]),
            cooldown_ms=int(data["cooldown_ms"]),
            trigger_conditions=[trigger_from_dict(c) for c in data.get("trigger_conditions", [])],
            is_active=bool(data.get("is_active", True)),
            last_triggered_at=int(last) if last is not None else None,
        )


def default_monitors(personality_drift_threshold: float = 25.0) -> dict[EmergenceType, EmergenceMonitor]:
    E, S, T, F = EmergenceType, OperandKind.STATE, OperandKind.TENDENCY, OperandKind.FIELD
    GTE, LTE = Comparator.GTE, Comparator.LTE
    D, L = BehaviorFieldDimension, LatentTendencyName

    table = {
        E.NOVEL_BEHAVIOR_PATTERN: (0.7, 3600000, [
            ThresholdCondition([check(OperandKind.METRIC, METRIC_NOVELTY, GTE, 0.7)]),
        ]),
        E.FEEDBACK_LOOP_POSITIVE: (0.6, 7200000, [
            PatternMatchCondition(PatternType.ESCALATION_PATTERN, min_strength=0.6),
        ]),
        E.FEEDBACK_LOOP_NEGATIVE: (0.6, 7200000, [
            PatternMatchCondition(PatternType.DE_ESCALATION_PATTERN, min_strength=0.6),
        ]),
        E.OVER_ENGAGEMENT: (0.75, 1800000, [
            ThresholdCondition([check(F, D.ENGAGEMENT_INTENSITY.value, GTE, 85)]),
        ]),
        E.WITHDRAWAL_SPIRAL: (0.7, 3600000, [
            ThresholdCondition([check(F, D.APPROACH_WITHDRAWAL.value, LTE, -60)], weight=0.6),
            RateOfChangeCondition(RateSource.FIELD, D.APPROACH_WITHDRAWAL.value, -5, MS_PER_HOUR, weight=0.4),
        ]),
        E.PERSONALITY_DRIFT: (0.8, MS_PER_DAY, [
            ThresholdCondition([check(OperandKind.METRIC, METRIC_TOTAL_DRIFT, GTE, personality_drift_threshold)]),
        ]),
        E.ATTACHMENT_SHIFT: (0.75, 43200000, [
            RateOfChangeCondition(RateSource.TENDENCY, L.ATTACHMENT_DRIFT.value, 10, MS_PER_DAY),
        ]),
        E.DEFENSE_ESCALATION: (0.7, 3600000, [
            ThresholdCondition([check(F, D.RESISTANCE_DEFENSIVENESS.value, GTE, 75)]),
        ]),
        E.TRUST_COLLAPSE: (0.9, 7200000, [
            RateOfChangeCondition(RateSource.TENDENCY, L.TRUST_INERTIA.value, -20, MS_PER_HOUR),
        ]),
        E.TRUST_BREAKTHROUGH: (0.8, 7200000, [
            RateOfChangeCondition(RateSource.TENDENCY, L.TRUST_INERTIA.value, 15, MS_PER_HOUR),
        ]),
        E.EMOTIONAL_FLOODING: (0.85, 1800000, [
            ThresholdCondition([check(S, StateName.EMOTIONAL_AROUSAL.value, GTE, 85)], weight=0.5),
            ThresholdCondition([check(S, StateName.FATIGUE_EMOTIONAL.value, GTE, 70)], weight=0.5),
        ]),
        E.EMOTIONAL_NUMBING: (0.75, 7200000, [
            ThresholdCondition([check(T, L.EMOTIONAL_DAMPENING.value, GTE, 70)], weight=0.5),
            ThresholdCondition([check(F, D.EMOTIONAL_OPENNESS.value, LTE, 15)], weight=0.5),
        ]),
        E.PATTERN_CRYSTALLIZATION: (0.7, MS_PER_DAY, [
            PatternMatchCondition(None, min_strength=0.9, min_observations=10),
        ]),
        E.PATTERN_DISSOLUTION: (0.65, MS_PER_DAY, [
            RateOfChangeCondition(RateSource.PATTERN, "", -0.3, 7 * MS_PER_DAY),
        ]),
    }
    return {
        monitor_type: EmergenceMonitor(monitor_type, sensitivity, cooldown, conditions)
        for monitor_type, (sensitivity, cooldown, conditions) in table.items()
    }


# =============================================================================
# Phenomena
# =============================================================================


@dataclass
class Contribution:
    """A state, tendency or pattern implicated in a phenomenon."""
    kind: str
    name: str
    value: float
    signal: float
    weight: float

    def to_dict(self) -> dict:
        return {"kind": self.kind, "name": self.name, "value": self.value, "signal": self.signal, "weight": self.weight}

    @classmethod
    def from_dict(cls, data: dict) -> "Contribution":
        return cls(data["kind"], data["name"], float(data["value"]), float(data["signal"]), float(data["weight"]))


@dataclass
class TrajectoryPrediction:
    predicted_outcome: str
    timeframe_hours: int
    confidence: float
    risk_level: RiskLevel
    recommended_action: str

    def to_dict(self) -> dict:
        return {
            "predicted_outcome": self.predicted_outcome,
            "timeframe_hours": self.timeframe_hours,
            "confidence": self.confidence,
            "risk_level": self.risk_level.value,
            "recommended_action": self.recommended_action,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TrajectoryPrediction":
        return cls(
            predicted_outcome=data["predicted_outcome"],
            timeframe_hours=int(data["timeframe_hours"]),
            confidence=float(data["confidence"]),
            risk_level=RiskLevel(data["risk_level"]),
            recommended_action=data["recommended_action"],
        )


PREDICTED_OUTCOMES = {
    EmergenceType.NOVEL_BEHAVIOR_PATTERN: "New behavioral tendency may stabilize",
    EmergenceType.FEEDBACK_LOOP_POSITIVE: "Escalating engagement pattern",
    EmergenceType.FEEDBACK_LOOP_NEGATIVE: "De-escalating engagement pattern",
    EmergenceType.OVER_ENGAGEMENT: "Potential burnout or boundary issues",
    EmergenceType.WITHDRAWAL_SPIRAL: "Increasing social withdrawal",
    EmergenceType.PERSONALITY_DRIFT: "Gradual personality shift",
    EmergenceType.ATTACHMENT_SHIFT: "Changing attachment dynamics",
    EmergenceType.DEFENSE_ESCALATION: "Increasing defensive behavior",
    EmergenceType.TRUST_COLLAPSE: "Rapid trust deterioration",
    EmergenceType.TRUST_BREAKTHROUGH: "Significant trust increase",
    EmergenceType.EMOTIONAL_FLOODING: "Emotional overwhelm risk",
    EmergenceType.EMOTIONAL_NUMBING: "Emotional disengagement",
    EmergenceType.PATTERN_CRYSTALLIZATION: "Behavior becoming rigid",
    EmergenceType.PATTERN_DISSOLUTION: "Previous pattern weakening",
}

_TIMEFRAME_HOURS = {Severity.CRITICAL: 2, Severity.HIGH: 6, Severity.MODERATE: 12, Severity.LOW: 24}
_RISK = {
    Severity.CRITICAL: RiskLevel.SEVERE,
    Severity.HIGH: RiskLevel.HIGH,
    Severity.MODERATE: RiskLevel.MODERATE,
    Severity.LOW: RiskLevel.LOW,
}
_RECOMMENDED = {
    Severity.CRITICAL: "Immediate soft governance intervention",
    Severity.HIGH: "Monitor closely and prepare intervention",
    Severity.MODERATE: "Continue observation",
    Severity.LOW: "Log and track",
}


def predict_trajectory(emergence_type: EmergenceType, severity: Severity, confidence: float) -> TrajectoryPrediction:
    return TrajectoryPrediction(
        predicted_outcome=PREDICTED_OUTCOMES[emergence_type],
        timeframe_hours=_TIMEFRAME_HOURS[severity],
        confidence=confidence * 0.8,
        risk_level=_RISK[severity],
        recommended_action=_RECOMMENDED[severity],
    )


@dataclass
class EmergentPhenomenon:
    """A detected higher-order phenomenon and its lifecycle.

    Status only moves forward (detected, governed, resolved) and each
    lifecycle timestamp is set once.
    """
    id: str
    emergence_type: EmergenceType
    severity: Severity
    confidence: float
    detected_at: int
    trajectory: TrajectoryPrediction
    contributing_states: list[Contribution] = field(default_factory=list)
    contributing_tendencies: list[Contribution] = field(default_factory=list)
    contributing_patterns: list[Contribution] = field(default_factory=list)
    reasoning: list[str] = field(default_factory=list)
    status: PhenomenonStatus = PhenomenonStatus.DETECTED
    governed_at: Optional[int] = None
    resolved_at: Optional[int] = None
    governance_response_id: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status != PhenomenonStatus.RESOLVED

    @property
    def expires_at(self) -> int:
        return self.detected_at + self.trajectory.timeframe_hours * MS_PER_HOUR

    def transition(self, status: PhenomenonStatus, now_ms: int) -> None:
        if status not in VALID_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"phenomenon {self.id} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status
        if status == PhenomenonStatus.GOVERNED:
            self.governed_at = now_ms
        elif status == PhenomenonStatus.RESOLVED:
            self.resolved_at = now_ms

    def govern(self, response_id: str, now_ms: int) -> None:
        self.transition(PhenomenonStatus.GOVERNED, now_ms)
        self.governance_response_id = response_id

    def resolve(self, now_ms: int) -> None:
        if self.status != PhenomenonStatus.RESOLVED:
            self.transition(PhenomenonStatus.RESOLVED, now_ms)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "emergence_type": self.emergence_type.value,
            "severity": self.severity.value,
            "confidence": self.confidence,
            "detected_at": self.detected_at,
            "trajectory": self.trajectory.to_dict(),
            "contributing_states": [c.to_dict() for c in self.contributing_states],
            "contributing_tendencies": [c.to_dict() for c in self.contributing_tendencies],
            "contributing_patterns": [c.to_dict() for c in self.contributing_patterns],
            "reasoning": list(self.reasoning),
            "status": self.status.value,
            "governed_at": self.governed_at,
            "resolved_at": self.resolved_at,
            "governance_response_id": self.governance_response_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EmergentPhenomenon":
        return cls(
            id=data["id"],
            emergence_type=EmergenceType(data["emergence_type"]),
            severity=Severity(data["severity"]),
            confidence=float(data["confidence"]),
            detected_at=int(data["detected_at"]),
            trajectory=TrajectoryPrediction.from_dict(data["trajectory"]),
            contributing_states=[Contribution.from_dict(c) for c in data.get("contributing_states", [])],
            contributing_tendencies=[Contribution.from_dict(c) for c in data.get("contributing_tendencies", [])],
            contributing_patterns=[Contribution.from_dict(c) for c in data.get("contributing_patterns", [])],
            reasoning=list(data.get("reasoning", [])),
            status=PhenomenonStatus(data.get("status", "detected")),
            governed_at=data.get("governed_at"),
            resolved_at=data.get("resolved_at"),
            governance_response_id=data.get("governance_response_id"),
        )


def _contributions(context: EmergenceContext) -> tuple[list[Contribution], list[Contribution], list[Contribution]]:
    states = [
        Contribution("state", name.value, state.current_value, state.deviation, abs(state.deviation) / 50)
        for name, state in context.states.items()
        if abs(state.deviation) > STATE_CONTRIBUTION_THRESHOLD
    ]
    tendencies = [
        Contribution("tendency", name.value, t.current_value, t.velocity, abs(t.velocity) * 5)
        for name, t in context.tendencies.items()
        if abs(t.velocity) > TENDENCY_CONTRIBUTION_THRESHOLD
    ]
    strong = sorted(
        (s for s in context.accumulator.signatures.values() if s.strength > PATTERN_CONTRIBUTION_THRESHOLD),
        key=lambda s: s.strength,
        reverse=True,
    )[:MAX_CONTRIBUTING_PATTERNS]
    patterns = [
        Contribution("pattern", s.id, s.strength, s.frequency, s.strength)
        for s in strong
    ]
    return states, tendencies, patterns


def scan_for_emergence(
    monitors: Mapping[EmergenceType, EmergenceMonitor],
    context: EmergenceContext,
    next_id,
) -> list[EmergentPhenomenon]:
    """Evaluate active monitors and raise phenomena for those that trigger.

    Args:
        monitors: Monitors keyed by type; triggered ones get last_triggered_at.
        context: Post-tick system view.
        next_id: Callable returning a fresh phenomenon id.
    """
    detected = []
    now_ms = context.now_ms
    for monitor in monitors.values():
        if not monitor.is_active or monitor.cooling_down(now_ms):
            continue
        confidence = monitor.confidence(context)
        if confidence < monitor.sensitivity:
            continue

        severity = Severity.from_confidence(confidence)
        states, tendencies, patterns = _contributions(context)
        phenomenon = EmergentPhenomenon(
            id=next_id(),
            emergence_type=monitor.monitor_type,
            severity=severity,
            confidence=confidence,
            detected_at=now_ms,
            trajectory=predict_trajectory(monitor.monitor_type, severity, confidence),
            contributing_states=states,
            contributing_tendencies=tendencies,
            contributing_patterns=patterns,
            reasoning=[
                f"Detected {monitor.monitor_type.value} with {confidence * 100:.0f}% confidence",
                f"{len(states)} states showing significant deviation",
                f"{len(tendencies)} tendencies with active velocity",
                f"{len(patterns)} strong patterns contributing",
            ],
        )
        monitor.last_triggered_at = now_ms
        detected.append(phenomenon)
        logger.info(
            f"Emergence detected: {monitor.monitor_type.value} "
            f"(confidence {confidence:.2f}, severity {severity.value})"
        )
    return detected


def expire_phenomena(phenomena: list[EmergentPhenomenon], now_ms: int) -> list[EmergentPhenomenon]:
    """Resolve ungoverned phenomena whose predicted timeframe has passed."""
    expired = []
    for phenomenon in phenomena:
        if phenomenon.status == PhenomenonStatus.DETECTED and now_ms >= phenomenon.expires_at:
            phenomenon.resolve(now_ms)
            expired.append(phenomenon)
    return expired
