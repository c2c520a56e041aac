"""Runtime state for the continuous state engine.

Every entity serialises with to_dict()/from_dict() so the state store can
persist it without knowing its structure. Times are epoch milliseconds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, ClassVar, Optional

from charsim.conditions import Condition
from charsim.simulation.schemas import (
    AdaptationPhase,
    AllostasisConfig,
    CauseType,
    FatigueDimension,
    FatiguePhase,
    HomeostasisConfig,
    InfluenceType,
    ModulatorName,
    Mood,
    RecoveryCurve,
    RegulationMode,
    StabilityBounds,
    StateName,
    TemporalDriftConfig,
    TransitionType,
    TrendDirection,
)

# Floor for denominators derived from bounds and time deltas
EPSILON = 1e-9


def _state_map(data: dict) -> dict[StateName, float]:
    return {StateName(k): float(v) for k, v in data.items()}


def _dump_state_map(values: dict[StateName, float]) -> dict[str, float]:
    return {k.value: v for k, v in values.items()}


def _modulator_map(data: dict) -> dict[ModulatorName, float]:
    return {ModulatorName(k): float(v) for k, v in data.items()}


def _complete_map(data: dict, key: str, enum_cls: type[Enum], decoder: Callable[[dict], Any]) -> dict:
    """Decode data[key] into a map with exactly one entry per enum member.

    Raises:
        TypeError: If the stored value is not a mapping.
        ValueError: If a member is missing or a key is unknown.
    """
    raw = data[key]
    if not isinstance(raw, dict):
        raise TypeError(f"{key}: expected a mapping, got {type(raw).__name__}")
    decoded = {enum_cls(k): decoder(v) for k, v in raw.items()}
    missing = [member.value for member in enum_cls if member not in decoded]
    if missing:
        raise ValueError(f"{key}: missing {', '.join(missing)}")
    return decoded


# =============================================================================
# States
# =============================================================================


@dataclass
class ContinuousState:
    """One continuous internal variable of a character.

    Invariants: bounds.min <= current_value <= bounds.max and
    deviation == current_value - baseline.
    """
    name: StateName
    baseline: float
    current_value: float
    bounds: StabilityBounds = field(default_factory=StabilityBounds)
    velocity: float = 0.0
    acceleration: float = 0.0
    recovery_pressure: float = 0.0
    stochastic_variation: float = 0.0
    last_updated_at: int = 0

    @property
    def deviation(self) -> float:
        return self.current_value - self.baseline

    @property
    def in_critical_band(self) -> bool:
        return (
            self.current_value < self.bounds.critical_low
            or self.current_value > self.bounds.critical_high
        )

    def to_dict(self) -> dict:
        return {
            "name": self.name.value,
            "baseline": self.baseline,
            "current_value": self.current_value,
            "deviation": self.deviation,
            "bounds": self.bounds.model_dump(),
            "velocity": self.velocity,
            "acceleration": self.acceleration,
            "recovery_pressure": self.recovery_pressure,
            "stochastic_variation": self.stochastic_variation,
            "last_updated_at": self.last_updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ContinuousState":
        return cls(
            name=StateName(data["name"]),
            baseline=float(data["baseline"]),
            current_value=float(data["current_value"]),
            bounds=StabilityBounds.model_validate(data["bounds"]),
            velocity=float(data.get("velocity", 0.0)),
            acceleration=float(data.get("acceleration", 0.0)),
            recovery_pressure=float(data.get("recovery_pressure", 0.0)),
            stochastic_variation=float(data.get("stochastic_variation", 0.0)),
            last_updated_at=int(data.get("last_updated_at", 0)),
        )


# =============================================================================
# Dual regulation
# =============================================================================


@dataclass
class BaselineShift:
    """A single allostatic move of a state's baseline."""
    timestamp: int
    previous_baseline: float
    new_baseline: float
    cause: str
    magnitude: float
    is_permanent: bool = False

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "previous_baseline": self.previous_baseline,
            "new_baseline": self.new_baseline,
            "cause": self.cause,
            "magnitude": self.magnitude,
            "is_permanent": self.is_permanent,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BaselineShift":
        return cls(
            timestamp=int(data["timestamp"]),
            previous_baseline=float(data["previous_baseline"]),
            new_baseline=float(data["new_baseline"]),
            cause=data["cause"],
            magnitude=float(data["magnitude"]),
            is_permanent=bool(data.get("is_permanent", False)),
        )


@dataclass
class HomeostasisState:
    config: HomeostasisConfig = field(default_factory=HomeostasisConfig)
    active_correction: float = 0.0
    deviation_onset_ms: Optional[int] = None
    correction_history: list[float] = field(default_factory=list)

    HISTORY_LIMIT: ClassVar[int] = 10

    def record(self, correction: float) -> None:
        self.active_correction = correction
        self.correction_history.append(correction)
        if len(self.correction_history) > self.HISTORY_LIMIT:
            self.correction_history = self.correction_history[-self.HISTORY_LIMIT:]

    def to_dict(self) -> dict:
        return {
            "config": self.config.model_dump(),
            "active_correction": self.active_correction,
            "deviation_onset_ms": self.deviation_onset_ms,
            "correction_history": list(self.correction_history),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HomeostasisState":
        return cls(
            config=HomeostasisConfig.model_validate(data["config"]),
            active_correction=float(data.get("active_correction", 0.0)),
            deviation_onset_ms=data.get("deviation_onset_ms"),
            correction_history=[float(c) for c in data.get("correction_history", [])],
        )


@dataclass
class AllostasisState:
    """Slow baseline adaptation bookkeeping.

    total_baseline_shift is signed and never exceeds the configured cap in
    magnitude. deviation_onset_ms marks when the state first left the
    significant-deviation band, None while inside it.
    """
    original_baseline: float
    current_baseline: float
    config: AllostasisConfig = field(default_factory=AllostasisConfig)
    total_baseline_shift: float = 0.0
    adaptation_phase: AdaptationPhase = AdaptationPhase.STABLE
    deviation_onset_ms: Optional[int] = None
    last_shift_at: Optional[int] = None
    baseline_history: list[BaselineShift] = field(default_factory=list)

    HISTORY_LIMIT: ClassVar[int] = 10

    def record_shift(self, shift: BaselineShift) -> None:
        self.baseline_history.append(shift)
        if len(self.baseline_history) > self.HISTORY_LIMIT:
            self.baseline_history = self.baseline_history[-self.HISTORY_LIMIT:]

    def to_dict(self) -> dict:
        return {
            "original_baseline": self.original_baseline,
            "current_baseline": self.current_baseline,
            "config": self.config.model_dump(),
            "total_baseline_shift": self.total_baseline_shift,
            "adaptation_phase": self.adaptation_phase.value,
            "deviation_onset_ms": self.deviation_onset_ms,
            "last_shift_at": self.last_shift_at,
            "baseline_history": [s.to_dict() for s in self.baseline_history],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AllostasisState":
        return cls(
            original_baseline=float(data["original_baseline"]),
            current_baseline=float(data["current_baseline"]),
            config=AllostasisConfig.model_validate(data["config"]),
            total_baseline_shift=float(data.get("total_baseline_shift", 0.0)),
            adaptation_phase=AdaptationPhase(data.get("adaptation_phase", "stable")),
            deviation_onset_ms=data.get("deviation_onset_ms"),
            last_shift_at=data.get("last_shift_at"),
            baseline_history=[BaselineShift.from_dict(s) for s in data.get("baseline_history", [])],
        )


@dataclass
class DualRegulation:
    """Fast homeostasis paired with slow allostasis for one state."""
    state_name: StateName
    homeostasis: HomeostasisState
    allostasis: AllostasisState
    regulation_mode: RegulationMode = RegulationMode.HOMEOSTATIC
    last_regulation_at: int = 0

    def to_dict(self) -> dict:
        return {
            "state_name": self.state_name.value,
            "homeostasis": self.homeostasis.to_dict(),
            "allostasis": self.allostasis.to_dict(),
            "regulation_mode": self.regulation_mode.value,
            "last_regulation_at": self.last_regulation_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DualRegulation":
        return cls(
            state_name=StateName(data["state_name"]),
            homeostasis=HomeostasisState.from_dict(data["homeostasis"]),
            allostasis=AllostasisState.from_dict(data["allostasis"]),
            regulation_mode=RegulationMode(data.get("regulation_mode", "homeostatic")),
            last_regulation_at=int(data.get("last_regulation_at", 0)),
        )


# =============================================================================
# Fatigue
# =============================================================================


@dataclass
class FatigueTrigger:
    type: str
    weight: float
    threshold: float
    cooldown_ms: int
    last_triggered_at: Optional[int] = None
    accumulated_triggers: int = 0

    def ready(self, now_ms: int) -> bool:
        if self.last_triggered_at is None:
            return True
        return now_ms - self.last_triggered_at >= self.cooldown_ms

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "weight": self.weight,
            "threshold": self.threshold,
            "cooldown_ms": self.cooldown_ms,
            "last_triggered_at": self.last_triggered_at,
            "accumulated_triggers": self.accumulated_triggers,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FatigueTrigger":
        return cls(
            type=data["type"],
            weight=float(data["weight"]),
            threshold=float(data["threshold"]),
            cooldown_ms=int(data["cooldown_ms"]),
            last_triggered_at=data.get("last_triggered_at"),
            accumulated_triggers=int(data.get("accumulated_triggers", 0)),
        )


@dataclass
class RecoveryAccelerator:
    type: str
    multiplier: float
    condition: str
    is_active: bool = False

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "multiplier": self.multiplier,
            "condition": self.condition,
            "is_active": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RecoveryAccelerator":
        return cls(
            type=data["type"],
            multiplier=float(data["multiplier"]),
            condition=data.get("condition", ""),
            is_active=bool(data.get("is_active", False)),
        )


@dataclass
class RecoveryConfig:
    base_rate: float
    curve: RecoveryCurve
    accelerators: list[RecoveryAccelerator] = field(default_factory=list)
    minimum_rest_period_ms: int = 0
    full_recovery_time_ms: int = 0
    recovery_blockers: list[str] = field(default_factory=list)

    @property
    def active_multiplier(self) -> float:
        multiplier = 1.0
        for accelerator in self.accelerators:
            if accelerator.is_active:
                multiplier *= accelerator.multiplier
        return multiplier

    @property
    def any_accelerator_active(self) -> bool:
        return any(a.is_active for a in self.accelerators)

    def to_dict(self) -> dict:
        return {
            "base_rate": self.base_rate,
            "curve": self.curve.value,
            "accelerators": [a.to_dict() for a in self.accelerators],
            "minimum_rest_period_ms": self.minimum_rest_period_ms,
            "full_recovery_time_ms": self.full_recovery_time_ms,
            "recovery_blockers": list(self.recovery_blockers),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RecoveryConfig":
        return cls(
            base_rate=float(data["base_rate"]),
            curve=RecoveryCurve(data["curve"]),
            accelerators=[RecoveryAccelerator.from_dict(a) for a in data.get("accelerators", [])],
            minimum_rest_period_ms=int(data.get("minimum_rest_period_ms", 0)),
            full_recovery_time_ms=int(data.get("full_recovery_time_ms", 0)),
            recovery_blockers=list(data.get("recovery_blockers", [])),
        )


@dataclass
class MultiFatigue:
    """A single fatigue pool with its own triggers and recovery curve."""
    dimension: FatigueDimension
    level: float
    baseline: float
    triggers: list[FatigueTrigger]
    recovery: RecoveryConfig
    current_phase: FatiguePhase = FatiguePhase.ACTIVE

    def find_trigger(self, trigger_type: Optional[str]) -> Optional[FatigueTrigger]:
        for trigger in self.triggers:
            if trigger.type == trigger_type:
                return trigger
        return None

    def to_dict(self) -> dict:
        return {
            "dimension": self.dimension.value,
            "level": self.level,
            "baseline": self.baseline,
            "triggers": [t.to_dict() for t in self.triggers],
            "recovery": self.recovery.to_dict(),
            "current_phase": self.current_phase.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MultiFatigue":
        return cls(
            dimension=FatigueDimension(data["dimension"]),
            level=float(data["level"]),
            baseline=float(data["baseline"]),
            triggers=[FatigueTrigger.from_dict(t) for t in data.get("triggers", [])],
            recovery=RecoveryConfig.from_dict(data["recovery"]),
            current_phase=FatiguePhase(data.get("current_phase", "active")),
        )


# =============================================================================
# Modulators
# =============================================================================


@dataclass
class ModulatorInfluence:
    target_state: StateName
    influence_type: InfluenceType
    coefficient: float
    condition: Optional[Condition] = None
    is_active: bool = True

    def to_dict(self) -> dict:
        return {
            "target_state": self.target_state.value,
            "influence_type": self.influence_type.value,
            "coefficient": self.coefficient,
            "condition": self.condition.to_dict() if self.condition else None,
            "is_active": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ModulatorInfluence":
        condition = data.get("condition")
        return cls(
            target_state=StateName(data["target_state"]),
            influence_type=InfluenceType(data["influence_type"]),
            coefficient=float(data["coefficient"]),
            condition=Condition.from_dict(condition) if condition else None,
            is_active=bool(data.get("is_active", True)),
        )


@dataclass
class GlobalModulator:
    """Slow scalar with a baseline-return force and typed state influences."""
    name: ModulatorName
    current_value: float
    baseline: float
    change_rate: float
    min_value: float
    max_value: float
    inertia: float
    influences: list[ModulatorInfluence] = field(default_factory=list)

    @property
    def normalized_deviation(self) -> float:
        return (self.current_value - self.baseline) / 50.0

    def to_dict(self) -> dict:
        return {
            "name": self.name.value,
            "current_value": self.current_value,
            "baseline": self.baseline,
            "change_rate": self.change_rate,
            "min_value": self.min_value,
            "max_value": self.max_value,
            "inertia": self.inertia,
            "influences": [i.to_dict() for i in self.influences],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GlobalModulator":
        return cls(
            name=ModulatorName(data["name"]),
            current_value=float(data["current_value"]),
            baseline=float(data["baseline"]),
            change_rate=float(data["change_rate"]),
            min_value=float(data["min_value"]),
            max_value=float(data["max_value"]),
            inertia=float(data["inertia"]),
            influences=[ModulatorInfluence.from_dict(i) for i in data.get("influences", [])],
        )


# =============================================================================
# Temporal drift
# =============================================================================


@dataclass
class MemoryBias:
    """An emotionally tagged memory that pulls specific states."""
    memory_id: str
    emotional_weight: float
    recency_weight: float
    combined_influence: float
    last_activated_at: int
    activation_count: int
    state_influences: dict[StateName, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "memory_id": self.memory_id,
            "emotional_weight": self.emotional_weight,
            "recency_weight": self.recency_weight,
            "combined_influence": self.combined_influence,
            "last_activated_at": self.last_activated_at,
            "activation_count": self.activation_count,
            "state_influences": _dump_state_map(self.state_influences),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MemoryBias":
        return cls(
            memory_id=data["memory_id"],
            emotional_weight=float(data["emotional_weight"]),
            recency_weight=float(data.get("recency_weight", 1.0)),
            combined_influence=float(data["combined_influence"]),
            last_activated_at=int(data["last_activated_at"]),
            activation_count=int(data["activation_count"]),
            state_influences=_state_map(data.get("state_influences", {})),
        )


@dataclass
class DriftEvent:
    timestamp: int
    magnitude: float
    direction: float
    cause: str

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "magnitude": self.magnitude,
            "direction": self.direction,
            "cause": self.cause,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DriftEvent":
        return cls(
            timestamp=int(data["timestamp"]),
            magnitude=float(data["magnitude"]),
            direction=float(data["direction"]),
            cause=data["cause"],
        )


@dataclass
class StateSnapshot:
    timestamp: int
    values: dict[StateName, float]
    mood: Mood

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "values": _dump_state_map(self.values),
            "mood": self.mood.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StateSnapshot":
        return cls(
            timestamp=int(data["timestamp"]),
            values=_state_map(data["values"]),
            mood=Mood(data["mood"]),
        )


@dataclass
class TemporalDriftState:
    """Per-character momentum-and-friction drift plus memory biases."""
    config: TemporalDriftConfig = field(default_factory=TemporalDriftConfig)
    current_drift: float = 0.0
    drift_momentum: float = 0.0
    drift_history: list[DriftEvent] = field(default_factory=list)
    memory_biases: list[MemoryBias] = field(default_factory=list)
    recent_states: list[StateSnapshot] = field(default_factory=list)
    dominant_mood: Mood = Mood.NEUTRAL
    trend_direction: TrendDirection = TrendDirection.STABLE

    MAX_MEMORY_BIASES: ClassVar[int] = 20
    DRIFT_HISTORY_LIMIT: ClassVar[int] = 20
    STATE_WINDOW: ClassVar[int] = 10

    def to_dict(self) -> dict:
        return {
            "config": self.config.model_dump(),
            "current_drift": self.current_drift,
            "drift_momentum": self.drift_momentum,
            "drift_history": [e.to_dict() for e in self.drift_history],
            "memory_biases": [b.to_dict() for b in self.memory_biases],
            "recent_states": [s.to_dict() for s in self.recent_states],
            "dominant_mood": self.dominant_mood.value,
            "trend_direction": self.trend_direction.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TemporalDriftState":
        return cls(
            config=TemporalDriftConfig.model_validate(data["config"]),
            current_drift=float(data.get("current_drift", 0.0)),
            drift_momentum=float(data.get("drift_momentum", 0.0)),
            drift_history=[DriftEvent.from_dict(e) for e in data.get("drift_history", [])],
            memory_biases=[MemoryBias.from_dict(b) for b in data.get("memory_biases", [])],
            recent_states=[StateSnapshot.from_dict(s) for s in data.get("recent_states", [])],
            dominant_mood=Mood(data.get("dominant_mood", "neutral")),
            trend_direction=TrendDirection(data.get("trend_direction", "stable")),
        )


# =============================================================================
# Identity temporal patterns
# =============================================================================


@dataclass
class IdentityPhase:
    index: int
    name: str
    duration_days: float
    state_modifiers: dict[StateName, float] = field(default_factory=dict)
    modulator_modifiers: dict[ModulatorName, float] = field(default_factory=dict)
    behavioral_notes: list[str] = field(default_factory=list)
    energy_pattern: str = "stable"
    emotional_tendency: str = ""

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "name": self.name,
            "duration_days": self.duration_days,
            "state_modifiers": _dump_state_map(self.state_modifiers),
            "modulator_modifiers": {k.value: v for k, v in self.modulator_modifiers.items()},
            "behavioral_notes": list(self.behavioral_notes),
            "energy_pattern": self.energy_pattern,
            "emotional_tendency": self.emotional_tendency,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "IdentityPhase":
        return cls(
            index=int(data["index"]),
            name=data["name"],
            duration_days=float(data["duration_days"]),
            state_modifiers=_state_map(data.get("state_modifiers", {})),
            modulator_modifiers=_modulator_map(data.get("modulator_modifiers", {})),
            behavioral_notes=list(data.get("behavioral_notes", [])),
            energy_pattern=data.get("energy_pattern", "stable"),
            emotional_tendency=data.get("emotional_tendency", ""),
        )


@dataclass
class IdentityTemporalPattern:
    """A cyclical, phase-based modifier attached to a character identity."""
    pattern_id: str
    name: str
    description: str
    cycle_period_days: float
    phases: list[IdentityPhase]
    associated_identity: Optional[str] = None
    current_phase: int = 0
    phase_progress: float = 0.0
    affected_modulators: list[ModulatorName] = field(default_factory=list)
    affected_states: list[StateName] = field(default_factory=list)
    safety_disclaimer: str = ""
    is_enabled: bool = False

    @property
    def active_phase(self) -> Optional[IdentityPhase]:
        if 0 <= self.current_phase < len(self.phases):
            return self.phases[self.current_phase]
        return None

    def to_dict(self) -> dict:
        return {
            "pattern_id": self.pattern_id,
            "name": self.name,
            "description": self.description,
            "cycle_period_days": self.cycle_period_days,
            "phases": [p.to_dict() for p in self.phases],
            "associated_identity": self.associated_identity,
            "current_phase": self.current_phase,
            "phase_progress": self.phase_progress,
            "affected_modulators": [m.value for m in self.affected_modulators],
            "affected_states": [s.value for s in self.affected_states],
            "safety_disclaimer": self.safety_disclaimer,
            "is_enabled": self.is_enabled,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "IdentityTemporalPattern":
        return cls(
            pattern_id=data["pattern_id"],
            name=data["name"],
            description=data.get("description", ""),
            cycle_period_days=float(data["cycle_period_days"]),
            phases=[IdentityPhase.from_dict(p) for p in data["phases"]],
            associated_identity=data.get("associated_identity"),
            current_phase=int(data.get("current_phase", 0)),
            phase_progress=float(data.get("phase_progress", 0.0)),
            affected_modulators=[ModulatorName(m) for m in data.get("affected_modulators", [])],
            affected_states=[StateName(s) for s in data.get("affected_states", [])],
            safety_disclaimer=data.get("safety_disclaimer", ""),
            is_enabled=bool(data.get("is_enabled", False)),
        )


# =============================================================================
# Stochastic engine
# =============================================================================


@dataclass
class NoiseSnapshot:
    timestamp: int
    values: dict[StateName, float]

    def to_dict(self) -> dict:
        return {"timestamp": self.timestamp, "values": _dump_state_map(self.values)}

    @classmethod
    def from_dict(cls, data: dict) -> "NoiseSnapshot":
        return cls(timestamp=int(data["timestamp"]), values=_state_map(data["values"]))


@dataclass
class StochasticEngine:
    """Seeded, temporally correlated noise source.

    Draws for a tick come from (seed, sequence); sequence advances only on a
    committed tick, so recomputing a failed tick repeats the same draws.
    """
    seed: int
    sequence: int = 0
    last_noise: dict[StateName, float] = field(default_factory=dict)
    noise_history: list[NoiseSnapshot] = field(default_factory=list)

    HISTORY_LIMIT: ClassVar[int] = 20

    def to_dict(self) -> dict:
        return {
            "seed": self.seed,
            "sequence": self.sequence,
            "last_noise": _dump_state_map(self.last_noise),
            "noise_history": [n.to_dict() for n in self.noise_history],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StochasticEngine":
        return cls(
            seed=int(data["seed"]),
            sequence=int(data.get("sequence", 0)),
            last_noise=_state_map(data.get("last_noise", {})),
            noise_history=[NoiseSnapshot.from_dict(n) for n in data.get("noise_history", [])],
        )


# =============================================================================
# Tick records
# =============================================================================


@dataclass
class TransitionCause:
    type: CauseType
    source: str
    contribution: float
    reasoning: str

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "source": self.source,
            "contribution": self.contribution,
            "reasoning": self.reasoning,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TransitionCause":
        return cls(
            type=CauseType(data["type"]),
            source=data["source"],
            contribution=float(data["contribution"]),
            reasoning=data.get("reasoning", ""),
        )


@dataclass
class StateTransition:
    state_name: StateName
    previous_value: float
    new_value: float
    causes: list[TransitionCause]
    is_non_linear: bool
    transition_type: TransitionType

    @property
    def delta(self) -> float:
        return self.new_value - self.previous_value

    def cause_of(self, cause_type: CauseType) -> list[TransitionCause]:
        return [c for c in self.causes if c.type == cause_type]

    def to_dict(self) -> dict:
        return {
            "state_name": self.state_name.value,
            "previous_value": self.previous_value,
            "new_value": self.new_value,
            "delta": self.delta,
            "causes": [c.to_dict() for c in self.causes],
            "is_non_linear": self.is_non_linear,
            "transition_type": self.transition_type.value,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StateTransition":
        return cls(
            state_name=StateName(data["state_name"]),
            previous_value=float(data["previous_value"]),
            new_value=float(data["new_value"]),
            causes=[TransitionCause.from_dict(c) for c in data.get("causes", [])],
            is_non_linear=bool(data.get("is_non_linear", False)),
            transition_type=TransitionType(data["transition_type"]),
        )


@dataclass
class RegulationEvent:
    type: str                   # "homeostatic" or "allostatic"
    state_name: StateName
    correction: float
    trigger: str
    success: bool = True

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "state_name": self.state_name.value,
            "correction": self.correction,
            "trigger": self.trigger,
            "success": self.success,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RegulationEvent":
        return cls(
            type=data["type"],
            state_name=StateName(data["state_name"]),
            correction=float(data["correction"]),
            trigger=data["trigger"],
            success=bool(data.get("success", True)),
        )


@dataclass
class ModulatorChange:
    modulator_name: ModulatorName
    previous_value: float
    new_value: float
    cause: str
    affected_states: list[StateName] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "modulator_name": self.modulator_name.value,
            "previous_value": self.previous_value,
            "new_value": self.new_value,
            "cause": self.cause,
            "affected_states": [s.value for s in self.affected_states],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ModulatorChange":
        return cls(
            modulator_name=ModulatorName(data["modulator_name"]),
            previous_value=float(data["previous_value"]),
            new_value=float(data["new_value"]),
            cause=data["cause"],
            affected_states=[StateName(s) for s in data.get("affected_states", [])],
        )


@dataclass
class FatigueUpdate:
    dimension: FatigueDimension
    previous_level: float
    new_level: float
    trigger: Optional[str]
    is_recovering: bool

    def to_dict(self) -> dict:
        return {
            "dimension": self.dimension.value,
            "previous_level": self.previous_level,
            "new_level": self.new_level,
            "trigger": self.trigger,
            "is_recovering": self.is_recovering,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "FatigueUpdate":
        return cls(
            dimension=FatigueDimension(data["dimension"]),
            previous_level=float(data["previous_level"]),
            new_level=float(data["new_level"]),
            trigger=data.get("trigger"),
            is_recovering=bool(data.get("is_recovering", False)),
        )


@dataclass
class TickReasoning:
    summary: str = ""
    primary_factors: list[str] = field(default_factory=list)
    cycle_influences: list[str] = field(default_factory=list)
    memory_influences: list[str] = field(default_factory=list)
    stochastic_contribution: float = 0.0
    confidence_level: float = 0.8
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "summary": self.summary,
            "primary_factors": list(self.primary_factors),
            "cycle_influences": list(self.cycle_influences),
            "memory_influences": list(self.memory_influences),
            "stochastic_contribution": self.stochastic_contribution,
            "confidence_level": self.confidence_level,
            "warnings": list(self.warnings),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TickReasoning":
        return cls(
            summary=data.get("summary", ""),
            primary_factors=list(data.get("primary_factors", [])),
            cycle_influences=list(data.get("cycle_influences", [])),
            memory_influences=list(data.get("memory_influences", [])),
            stochastic_contribution=float(data.get("stochastic_contribution", 0.0)),
            confidence_level=float(data.get("confidence_level", 0.8)),
            warnings=list(data.get("warnings", [])),
        )


# =============================================================================
# Profile
# =============================================================================


@dataclass
class SimulationProfile:
    """Everything the continuous state engine owns for one character."""
    character_id: str
    states: dict[StateName, ContinuousState]
    regulations: dict[StateName, DualRegulation]
    fatigues: dict[FatigueDimension, MultiFatigue]
    modulators: dict[ModulatorName, GlobalModulator]
    drift: TemporalDriftState
    stochastic: StochasticEngine
    identity_patterns: list[IdentityTemporalPattern] = field(default_factory=list)
    last_tick_at: Optional[int] = None
    created_at: int = 0
    updated_at: int = 0

    def state_values(self) -> dict[StateName, float]:
        return {name: state.current_value for name, state in self.states.items()}

    def find_pattern(self, pattern_id: str) -> Optional[IdentityTemporalPattern]:
        for pattern in self.identity_patterns:
            if pattern.pattern_id == pattern_id:
                return pattern
        return None

    def to_dict(self) -> dict:
        return {
            "character_id": self.character_id,
            "states": {k.value: v.to_dict() for k, v in self.states.items()},
            "regulations": {k.value: v.to_dict() for k, v in self.regulations.items()},
            "fatigues": {k.value: v.to_dict() for k, v in self.fatigues.items()},
            "modulators": {k.value: v.to_dict() for k, v in self.modulators.items()},
            "drift": self.drift.to_dict(),
            "stochastic": self.stochastic.to_dict(),
            "identity_patterns": [p.to_dict() for p in self.identity_patterns],
            "last_tick_at": self.last_tick_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SimulationProfile":
        """Decode a stored profile.

        Every state, regulation, fatigue dimension and modulator must be
        present; a partial profile is rejected rather than ticked.
        """
        return cls(
            character_id=data["character_id"],
            states=_complete_map(data, "states", StateName, ContinuousState.from_dict),
            regulations=_complete_map(data, "regulations", StateName, DualRegulation.from_dict),
            fatigues=_complete_map(data, "fatigues", FatigueDimension, MultiFatigue.from_dict),
            modulators=_complete_map(data, "modulators", ModulatorName, GlobalModulator.from_dict),
            drift=TemporalDriftState.from_dict(data["drift"]),
            stochastic=StochasticEngine.from_dict(data["stochastic"]),
            identity_patterns=[IdentityTemporalPattern.from_dict(p) for p in data.get("identity_patterns", [])],
            last_tick_at=data.get("last_tick_at"),
            created_at=int(data.get("created_at", 0)),
            updated_at=int(data.get("updated_at", 0)),
        )
