"""Per-character emergence aggregate and its per-tick advance.

One tick of the emergence layer runs after the continuous state engine:
tendencies integrate, project onto the field, a behavior is selected and
reinforced, the observation is fingerprinted, governance ticks, monitors
scan, and newly detected phenomena are offered to the governor.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Optional

import numpy as np

from charsim.emergence.behavior_field import (
    BehaviorField,
    BehaviorSelection,
    compute_behavior_probabilities,
    default_behavior_field,
    project_tendencies,
    select_behavior,
    update_behavior_field,
)
from charsim.emergence.governor import GovernanceResponse, GovernedSystems, SoftGovernor, apply_governance, tick_governance
from charsim.emergence.monitor import (
    EmergenceContext,
    EmergenceMonitor,
    EmergentPhenomenon,
    default_monitors,
    expire_phenomena,
    scan_for_emergence,
)
from charsim.emergence.patterns import (
    PatternAccumulator,
    PatternObservation,
    PatternRawData,
    ResponseCharacteristics,
    decay_signatures,
    maybe_compact,
    record_pattern_observation,
)
from charsim.emergence.schemas import EmergenceConfig, EmergenceType, LatentTendencyName, LogType
from charsim.emergence.tendencies import LatentTendency, default_tendencies, strongest_by_type, update_latent_tendencies
from charsim.simulation.behavioral_output import compute_behavioral_output
from charsim.simulation.schemas import ExternalInput, StateName
from charsim.simulation.state import SimulationProfile

if TYPE_CHECKING:
    from charsim.simulation.tick import StateAdvance

logger = logging.getLogger(__name__)

NEUTRAL_SIGNAL = 50.0
_TONE_POSITIVE = (StateName.EMOTIONAL_VALENCE, StateName.SOCIAL_CHARGE)
_TONE_NEGATIVE = (StateName.STRESS,)


@dataclass
class EmergenceLogEntry:
    timestamp: int
    log_type: LogType
    description: str
    snapshot: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "log_type": self.log_type.value,
            "description": self.description,
            "snapshot": self.snapshot,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EmergenceLogEntry":
        return cls(
            timestamp=int(data["timestamp"]),
            log_type=LogType(data["log_type"]),
            description=data["description"],
            snapshot=dict(data.get("snapshot", {})),
        )


@dataclass
class EmergenceState:
    """Everything the emergence layer persists for one character.

    Attributes:
        behavior_field: Current disposition field.
        tendencies: The ten latent tendencies.
        accumulator: Pattern signatures and recent observations.
        monitors: One monitor per emergence type.
        governor: Active and archived governance responses.
        phenomena: Detected phenomena, active ones always retained.
        event_log: Detection, governance and pattern events, most recent last.
    """
    character_id: str
    behavior_field: BehaviorField
    tendencies: dict[LatentTendencyName, LatentTendency]
    accumulator: PatternAccumulator
    monitors: dict[EmergenceType, EmergenceMonitor]
    governor: SoftGovernor
    phenomena: list[EmergentPhenomenon] = field(default_factory=list)
    event_log: list[EmergenceLogEntry] = field(default_factory=list)
    last_selection: Optional[BehaviorSelection] = None
    phenomenon_history: int = 50
    event_log_limit: int = 50
    next_phenomenon_number: int = 1
    next_response_number: int = 1
    created_at: int = 0
    updated_at: int = 0

    def new_phenomenon_id(self) -> str:
        number = self.next_phenomenon_number
        self.next_phenomenon_number += 1
        return f"phen_{number:05d}"

    def new_response_id(self) -> str:
        number = self.next_response_number
        self.next_response_number += 1
        return f"gov_{number:05d}"

    def phenomena_by_id(self) -> dict[str, EmergentPhenomenon]:
        return {p.id: p for p in self.phenomena}

    def active_phenomena(self) -> list[EmergentPhenomenon]:
        return [p for p in self.phenomena if p.is_active]

    def systems(self, profile: SimulationProfile) -> GovernedSystems:
        return GovernedSystems(self.behavior_field, self.tendencies, self.accumulator, profile.states)

    def log(self, now_ms: int, log_type: LogType, description: str, snapshot: Optional[dict] = None) -> None:
        self.event_log.append(EmergenceLogEntry(now_ms, log_type, description, snapshot or {}))
        if len(self.event_log) > self.event_log_limit:
            self.event_log = self.event_log[-self.event_log_limit:]

    def snapshot(self) -> dict:
        return {
            "behavior_field": {d.value: round(v, 3) for d, v in self.behavior_field.values().items()},
            "tendencies": {n.value: round(t.current_value, 3) for n, t in self.tendencies.items()},
            "active_patterns": sorted(self.accumulator.signatures),
            "emergent_phenomena": [p.id for p in self.active_phenomena()],
            "governance_actions": [r.id for r in self.governor.active_responses],
        }

    def trim_phenomena(self) -> None:
        """Drop the oldest resolved phenomena beyond the history limit."""
        excess = len(self.phenomena) - self.phenomenon_history
        if excess <= 0:
            return
        kept = []
        for phenomenon in self.phenomena:
            if excess > 0 and not phenomenon.is_active:
                excess -= 1
                continue
            kept.append(phenomenon)
        self.phenomena = kept

    def to_dict(self) -> dict:
        return {
            "character_id": self.character_id,
            "behavior_field": self.behavior_field.to_dict(),
            "tendencies": {n.value: t.to_dict() for n, t in self.tendencies.items()},
            "accumulator": self.accumulator.to_dict(),
            "monitors": {t.value: m.to_dict() for t, m in self.monitors.items()},
            "governor": self.governor.to_dict(),
            "phenomena": [p.to_dict() for p in self.phenomena],
            "event_log": [e.to_dict() for e in self.event_log],
            "last_selection": self.last_selection.to_dict() if self.last_selection else None,
            "phenomenon_history": self.phenomenon_history,
            "event_log_limit": self.event_log_limit,
            "next_phenomenon_number": self.next_phenomenon_number,
            "next_response_number": self.next_response_number,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EmergenceState":
        selection = data.get("last_selection")
        return cls(
            character_id=data["character_id"],
            behavior_field=BehaviorField.from_dict(data["behavior_field"]),
            tendencies={
                LatentTendencyName(n): LatentTendency.from_dict(t) for n, t in data["tendencies"].items()
            },
            accumulator=PatternAccumulator.from_dict(data["accumulator"]),
            monitors={EmergenceType(t): EmergenceMonitor.from_dict(m) for t, m in data["monitors"].items()},
            governor=SoftGovernor.from_dict(data["governor"]),
            phenomena=[EmergentPhenomenon.from_dict(p) for p in data.get("phenomena", [])],
            event_log=[EmergenceLogEntry.from_dict(e) for e in data.get("event_log", [])],
            last_selection=BehaviorSelection.from_dict(selection) if selection else None,
            phenomenon_history=int(data.get("phenomenon_history", 50)),
            event_log_limit=int(data.get("event_log_limit", 50)),
            next_phenomenon_number=int(data.get("next_phenomenon_number", 1)),
            next_response_number=int(data.get("next_response_number", 1)),
            created_at=int(data.get("created_at", 0)),
            updated_at=int(data.get("updated_at", 0)),
        )


def new_emergence_state(character_id: str, config: EmergenceConfig, now_ms: int) -> EmergenceState:
    return EmergenceState(
        character_id=character_id,
        behavior_field=default_behavior_field(now_ms),
        tendencies=default_tendencies(now_ms),
        accumulator=PatternAccumulator(
            thresholds=config.pattern_thresholds.model_copy(),
            last_compaction_at=now_ms,
        ),
        monitors=default_monitors(config.personality_drift_threshold),
        governor=SoftGovernor.from_config(config),
        phenomenon_history=config.phenomenon_history,
        event_log_limit=config.event_log_limit,
        created_at=now_ms,
        updated_at=now_ms,
    )


def interaction_signals(inputs: Iterable[ExternalInput]) -> dict[str, float]:
    """Exchange tone from the tick's inputs, neutral 50 when nothing happened.

    Inputs raising valence or social charge count as positive, inputs
    raising stress as negative.
    """
    positive = negative = 0.0
    for item in inputs:
        tone = 0.0
        for state in item.affected_states:
            if state in _TONE_POSITIVE:
                tone += item.magnitude
            elif state in _TONE_NEGATIVE:
                tone -= item.magnitude
        if tone > 0:
            positive += tone
        else:
            negative -= tone
    return {
        "positive_exchange": min(100.0, NEUTRAL_SIGNAL + positive),
        "negative_exchange": min(100.0, NEUTRAL_SIGNAL + negative),
        "consistency": NEUTRAL_SIGNAL,
    }


def context_hint(inputs: Iterable[ExternalInput]) -> Optional[str]:
    hints = [i.context_hint or i.description for i in inputs if i.context_hint or i.description]
    return " ".join(hints) if hints else None


@dataclass
class EmergenceStep:
    """What the emergence layer did on one tick."""
    selection: BehaviorSelection
    observation: PatternObservation
    detected: list[EmergentPhenomenon] = field(default_factory=list)
    governance_applied: list[GovernanceResponse] = field(default_factory=list)
    governance_completed: list[GovernanceResponse] = field(default_factory=list)
    resolved: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "selection": self.selection.to_dict(),
            "observation": self.observation.to_dict(),
            "detected": [p.to_dict() for p in self.detected],
            "governance_applied": [r.to_dict() for r in self.governance_applied],
            "governance_completed": [r.to_dict() for r in self.governance_completed],
            "resolved": list(self.resolved),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "EmergenceStep":
        return cls(
            selection=BehaviorSelection.from_dict(data["selection"]),
            observation=PatternObservation.from_dict(data["observation"]),
            detected=[EmergentPhenomenon.from_dict(p) for p in data.get("detected", [])],
            governance_applied=[GovernanceResponse.from_dict(r) for r in data.get("governance_applied", [])],
            governance_completed=[GovernanceResponse.from_dict(r) for r in data.get("governance_completed", [])],
            resolved=list(data.get("resolved", [])),
        )


def advance_emergence(
    emergence: EmergenceState,
    profile: SimulationProfile,
    advance: StateAdvance,
    inputs: list[ExternalInput],
    rng: np.random.Generator,
) -> EmergenceStep:
    """Advance the emergence layer in place against a post-tick profile.

    Governance effects on states are written into profile, which must be
    the next profile that will be committed alongside emergence. When they
    move any state, advance.current_states and advance.behavioral_output are
    refreshed to match; transitions keep describing the continuous engine's
    own step.
    """
    states = profile.states
    values = profile.state_values()
    now_ms, delta_ms = advance.timestamp, advance.delta_ms
    output = advance.behavioral_output
    signals = interaction_signals(inputs)
    for item in inputs:
        signals.update(item.signals)

    update_latent_tendencies(
        emergence.tendencies,
        states,
        profile.modulators,
        strongest_by_type(emergence.accumulator.signatures.values()),
        signals,
        delta_ms,
        now_ms,
    )
    project_tendencies(emergence.behavior_field, emergence.tendencies, now_ms)

    hint = context_hint(inputs)
    probabilities = compute_behavior_probabilities(
        emergence.behavior_field, emergence.tendencies, values, hint, rng
    )
    selection = select_behavior(probabilities, rng)
    update_behavior_field(emergence.behavior_field, selection.selected, selection.intensity, now_ms)
    emergence.last_selection = selection

    raw = PatternRawData(
        behavior_class=selection.selected,
        trigger_context=hint or "",
        emotional_state=values.get(StateName.EMOTIONAL_VALENCE, 50.0),
        state_snapshot=dict(values),
        response=ResponseCharacteristics(
            engagement_level=output.engagement_willingness,
            assertiveness=output.assertiveness,
            emotional_expression=values.get(StateName.EMOTIONAL_AROUSAL, 50.0),
        ),
    )
    observation = record_pattern_observation(emergence.accumulator, raw, now_ms)
    if observation.is_new_pattern:
        emergence.log(now_ms, LogType.PATTERN, f"New pattern detected: {observation.pattern_type.value}",
                      {"active_patterns": [observation.signature_id]})
    decay_signatures(emergence.accumulator, delta_ms)
    maybe_compact(emergence.accumulator, now_ms)

    systems = emergence.systems(profile)
    completed = tick_governance(emergence.governor, systems, emergence.phenomena_by_id(), now_ms)
    resolved = [r.phenomenon_id for r in completed]
    resolved.extend(p.id for p in expire_phenomena(emergence.phenomena, now_ms))

    context = EmergenceContext(states, emergence.tendencies, emergence.behavior_field, emergence.accumulator, now_ms)
    detected = scan_for_emergence(emergence.monitors, context, emergence.new_phenomenon_id)
    applied = []
    for phenomenon in detected:
        emergence.phenomena.append(phenomenon)
        emergence.log(now_ms, LogType.DETECTION, f"Emergence detected: {phenomenon.emergence_type.value}",
                      emergence.snapshot())
        response = apply_governance(emergence.governor, phenomenon, systems, now_ms, emergence.new_response_id)
        if response is not None:
            applied.append(response)
            emergence.log(now_ms, LogType.GOVERNANCE,
                          f"Applied {response.action.value} with intensity {response.intensity}",
                          {"emergent_phenomena": [phenomenon.id], "governance_actions": [response.id]})

    emergence.trim_phenomena()
    emergence.updated_at = now_ms
    _sync_advance(advance, profile)
    return EmergenceStep(selection, observation, detected, applied, completed, resolved)


def _sync_advance(advance: StateAdvance, profile: SimulationProfile) -> None:
    """Carry governance pulls on states into the advance's reported output."""
    values = profile.state_values()
    if all(advance.current_states[name].current_value == value for name, value in values.items()):
        return
    advance.current_states = {name: copy.deepcopy(state) for name, state in profile.states.items()}
    advance.behavioral_output = compute_behavioral_output(
        values, {dimension: pool.level for dimension, pool in profile.fatigues.items()}
    )
