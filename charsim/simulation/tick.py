"""One pure advance of the continuous state engine.

advance_simulation() takes a committed profile and returns a new profile plus
the causal record of the step. The input profile is never mutated, so a tick
whose commit fails can simply be recomputed from the last committed state.
"""

from __future__ import annotations

import copy
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np

from charsim.config import SimulationConfig
from charsim.simulation import cycles, drift, fatigue, modulators, regulation, stochastic
from charsim.simulation.behavioral_output import compute_behavioral_output
from charsim.simulation.schemas import (
    BehavioralOutput,
    CauseType,
    ExternalInput,
    StateName,
)
from charsim.simulation.state import (
    ContinuousState,
    FatigueUpdate,
    ModulatorChange,
    RegulationEvent,
    SimulationProfile,
    StateTransition,
    TickReasoning,
    TransitionCause,
)

logger = logging.getLogger(__name__)

# Causes at or below this magnitude are applied but not recorded
CAUSE_RECORD_THRESHOLD = 0.01
# Modulator contributions above this make a transition non-linear
NON_LINEAR_MODULATOR = 3.0
# |delta| above which a transition is named in the tick summary
SUMMARY_DELTA = 2.0
REASONING_CONFIDENCE = 0.8


@dataclass
class StateAdvance:
    """Everything the continuous state engine produced in one tick."""
    timestamp: int
    delta_ms: int
    previous_states: dict[StateName, ContinuousState]
    current_states: dict[StateName, ContinuousState]
    transitions: list[StateTransition]
    regulation_events: list[RegulationEvent]
    modulator_changes: list[ModulatorChange]
    fatigue_updates: list[FatigueUpdate]
    stochastic_noise: dict[StateName, float]
    behavioral_output: BehavioralOutput
    reasoning: TickReasoning = field(default_factory=TickReasoning)

    def transition_for(self, state_name: StateName) -> Optional[StateTransition]:
        for transition in self.transitions:
            if transition.state_name == state_name:
                return transition
        return None

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "delta_ms": self.delta_ms,
            "previous_states": {k.value: v.to_dict() for k, v in self.previous_states.items()},
            "current_states": {k.value: v.to_dict() for k, v in self.current_states.items()},
            "transitions": [t.to_dict() for t in self.transitions],
            "regulation_events": [e.to_dict() for e in self.regulation_events],
            "modulator_changes": [c.to_dict() for c in self.modulator_changes],
            "fatigue_updates": [u.to_dict() for u in self.fatigue_updates],
            "stochastic_noise": {k.value: v for k, v in self.stochastic_noise.items()},
            "behavioral_output": self.behavioral_output.model_dump(mode="json"),
            "reasoning": self.reasoning.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StateAdvance":
        return cls(
            timestamp=int(data["timestamp"]),
            delta_ms=int(data["delta_ms"]),
            previous_states={StateName(k): ContinuousState.from_dict(v) for k, v in data["previous_states"].items()},
            current_states={StateName(k): ContinuousState.from_dict(v) for k, v in data["current_states"].items()},
            transitions=[StateTransition.from_dict(t) for t in data.get("transitions", [])],
            regulation_events=[RegulationEvent.from_dict(e) for e in data.get("regulation_events", [])],
            modulator_changes=[ModulatorChange.from_dict(c) for c in data.get("modulator_changes", [])],
            fatigue_updates=[FatigueUpdate.from_dict(u) for u in data.get("fatigue_updates", [])],
            stochastic_noise={StateName(k): float(v) for k, v in data.get("stochastic_noise", {}).items()},
            behavioral_output=BehavioralOutput.model_validate(data["behavioral_output"]),
            reasoning=TickReasoning.from_dict(data.get("reasoning", {})),
        )


def _cause(causes: list[TransitionCause], cause_type: CauseType, source: str, contribution: float, reasoning: str) -> None:
    if abs(contribution) > CAUSE_RECORD_THRESHOLD:
        causes.append(TransitionCause(type=cause_type, source=source, contribution=contribution, reasoning=reasoning))


def _is_non_linear(causes: Sequence[TransitionCause]) -> bool:
    for cause in causes:
        if cause.type in (CauseType.ALLOSTASIS, CauseType.CYCLE):
            return True
        if cause.type == CauseType.MODULATOR and abs(cause.contribution) > NON_LINEAR_MODULATOR:
            return True
    return False


def summarize(
    transitions: Sequence[StateTransition],
    regulation_events: Sequence[RegulationEvent],
    output: BehavioralOutput,
) -> str:
    parts = []
    significant = [t for t in transitions if abs(t.delta) > SUMMARY_DELTA]
    if significant:
        changes = ", ".join(f"{t.state_name.value} {t.delta:+.1f}" for t in significant)
        parts.append(f"State changes: {changes}")
    if regulation_events:
        parts.append(f"{len(regulation_events)} regulation events")
    parts.append(f"Mode: {output.conversational_mode.value}, engagement: {output.engagement_willingness:.0f}%")
    return ". ".join(parts)


def primary_factors(transitions: Sequence[StateTransition], limit: int = 3) -> list[str]:
    """Cause types ranked by total absolute contribution."""
    totals: dict[CauseType, float] = defaultdict(float)
    for transition in transitions:
        for cause in transition.causes:
            totals[cause.type] += abs(cause.contribution)
    ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
    return [f"{cause_type.value}: {total:.2f} total contribution" for cause_type, total in ranked[:limit]]


def _advance_state(
    state: ContinuousState,
    profile: SimulationProfile,
    previous_values: dict[StateName, float],
    resolver,
    effects: list[cycles.PhaseEffect],
    noise: dict[StateName, float],
    inputs: Sequence[ExternalInput],
    delta_ms: int,
    now_ms: int,
    config: SimulationConfig,
    regulation_events: list[RegulationEvent],
) -> StateTransition:
    name = state.name
    dual = profile.regulations[name]
    causes: list[TransitionCause] = []
    previous_value = state.current_value
    previous_velocity = state.velocity
    deviation = state.deviation
    total = 0.0

    # (a) time decay
    decay = regulation.time_decay(state, delta_ms)
    total += decay
    _cause(causes, CauseType.TIME_DECAY, "time", decay, "Natural return toward baseline")
    residual = max(abs(deviation) - abs(decay), 0.0)

    # (b) homeostasis
    homeostasis_fired = False
    if config.homeostasis_enabled:
        correction = regulation.homeostatic_correction(state, dual, delta_ms, now_ms, residual)
        dual.homeostasis.active_correction = correction
        if correction != 0.0:
            homeostasis_fired = True
            dual.homeostasis.record(correction)
            total += correction
            residual = max(residual - abs(correction), 0.0)
            _cause(causes, CauseType.HOMEOSTASIS, "homeostasis", correction,
                   f"Deviation {deviation:+.1f} beyond resistance threshold")
            regulation_events.append(RegulationEvent(
                type="homeostatic",
                state_name=name,
                correction=correction,
                trigger=f"deviation {deviation:+.1f}",
            ))

    # (c) allostasis moves the baseline, not the value
    if config.allostasis_enabled:
        regulation.settle_adaptation(dual, now_ms)
        shift = regulation.allostatic_shift(state, dual, delta_ms, now_ms, residual)
        if shift is not None:
            _cause(causes, CauseType.ALLOSTASIS, "allostasis", shift.magnitude,
                   f"Baseline adapted to persistent deviation ({shift.previous_baseline:.1f} -> {shift.new_baseline:.1f})")
            regulation_events.append(RegulationEvent(
                type="allostatic",
                state_name=name,
                correction=shift.magnitude,
                trigger="persistent_deviation",
            ))

    # (d) modulators
    for modulator in profile.modulators.values():
        contribution = modulators.modulator_influence(name, modulator, previous_values, resolver)
        total += contribution
        _cause(causes, CauseType.MODULATOR, modulator.name.value, contribution,
               f"{modulator.name.value} at {modulator.current_value:.1f}")

    # (e) identity patterns
    hours = max(delta_ms, 0) / 3600000.0
    for effect in effects:
        modifier = effect.state_modifiers.get(name)
        if modifier is None:
            continue
        contribution = modifier * hours
        total += contribution
        _cause(causes, CauseType.CYCLE, effect.pattern_id, contribution, effect.describe())

    # (f) memory drift
    if config.temporal_drift_enabled:
        contribution = drift.drift_influence(name, profile.drift, delta_ms)
        total += contribution
        _cause(causes, CauseType.MEMORY, "temporal_drift", contribution, "Memory-coupled drift")

    # (g) noise
    sample = noise.get(name, 0.0)
    total += sample
    _cause(causes, CauseType.STOCHASTIC, "stochastic", sample, "Correlated noise")

    # (h) external inputs
    for external in inputs:
        if name in external.affected_states:
            total += external.magnitude
            _cause(causes, CauseType.EXTERNAL, external.source, external.magnitude,
                   external.description or f"External input from {external.source}")

    new_value = regulation.apply_boundaries(previous_value + total, state.bounds)
    velocity = regulation.finite_difference(previous_value, new_value, delta_ms)

    state.current_value = new_value
    state.acceleration = regulation.finite_difference(previous_velocity, velocity, delta_ms)
    state.velocity = velocity
    state.stochastic_variation = sample
    state.recovery_pressure = regulation.recovery_pressure(new_value, state.baseline, state.bounds)
    state.last_updated_at = now_ms

    regulation.track_deviation_onset(state, dual, now_ms)
    dual.regulation_mode = regulation.classify_mode(state, dual, homeostasis_fired)
    dual.last_regulation_at = now_ms

    return StateTransition(
        state_name=name,
        previous_value=previous_value,
        new_value=new_value,
        causes=causes,
        is_non_linear=_is_non_linear(causes),
        transition_type=regulation.classify_transition(previous_velocity, velocity),
    )


def advance_simulation(
    profile: SimulationProfile,
    delta_ms: int,
    inputs: Sequence[ExternalInput],
    now_ms: int,
    rng: np.random.Generator,
    config: Optional[SimulationConfig] = None,
) -> tuple[SimulationProfile, StateAdvance]:
    """Advance every state, modulator, fatigue pool and drift by one tick.

    Args:
        profile: Last committed profile; left untouched.
        delta_ms: Elapsed time since the last tick.
        inputs: External events for this tick.
        now_ms: Tick timestamp.
        rng: Generator for every random draw of this tick.
        config: Engine configuration; defaults when omitted.

    Returns:
        (next_profile, StateAdvance)
    """
    config = config or SimulationConfig()
    delta_ms = max(int(delta_ms), 0)
    nxt = copy.deepcopy(profile)

    previous_states = {name: copy.deepcopy(state) for name, state in profile.states.items()}
    previous_values = profile.state_values()
    resolver = modulators.profile_resolver(previous_values, profile.modulators)
    effects = cycles.active_effects(nxt.identity_patterns) if config.identity_patterns_enabled else []

    noise = stochastic.generate_noise(nxt.stochastic, config.stochastic, rng, now_ms)

    regulation_events: list[RegulationEvent] = []
    transitions = []
    for name in StateName:
        transitions.append(_advance_state(
            nxt.states[name], nxt, previous_values, resolver, effects, noise, inputs,
            delta_ms, now_ms, config, regulation_events,
        ))

    modulator_changes = []
    for modulator in nxt.modulators.values():
        pattern_push = sum(e.modulator_modifiers.get(modulator.name, 0.0) for e in effects)
        sample = stochastic.modulator_noise(config.stochastic, rng)
        change = modulators.update_modulator(modulator, delta_ms, pattern_push, sample)
        if change is not None:
            modulator_changes.append(change)

    fatigue_updates = []
    for pool in nxt.fatigues.values():
        update = fatigue.update_fatigue(pool, delta_ms, now_ms, inputs)
        if update is not None:
            fatigue_updates.append(update)

    current_values = nxt.state_values()
    if config.temporal_drift_enabled:
        drift.update_drift(nxt.drift, current_values, now_ms)
    if config.identity_patterns_enabled:
        cycles.advance_patterns(nxt.identity_patterns, delta_ms)

    output = compute_behavioral_output(
        current_values, {dimension: pool.level for dimension, pool in nxt.fatigues.items()}
    )

    warnings = []
    for state in nxt.states.values():
        if state.in_critical_band:
            warnings.append(f"{state.name.value} in critical band ({state.current_value:.1f})")
    for message in warnings:
        logger.warning(f"{profile.character_id}: {message}")

    reasoning = TickReasoning(
        summary=summarize(transitions, regulation_events, output),
        primary_factors=primary_factors(transitions),
        cycle_influences=[e.describe() for e in effects],
        memory_influences=[
            f"{b.memory_id}: {b.combined_influence:.2f}" for b in nxt.drift.memory_biases
        ] if config.temporal_drift_enabled else [],
        stochastic_contribution=float(np.mean([abs(v) for v in noise.values()])) if noise else 0.0,
        confidence_level=REASONING_CONFIDENCE,
        warnings=warnings,
    )

    nxt.stochastic.sequence += 1
    nxt.last_tick_at = now_ms
    nxt.updated_at = now_ms

    advance = StateAdvance(
        timestamp=now_ms,
        delta_ms=delta_ms,
        previous_states=previous_states,
        current_states={name: copy.deepcopy(state) for name, state in nxt.states.items()},
        transitions=transitions,
        regulation_events=regulation_events,
        modulator_changes=modulator_changes,
        fatigue_updates=fatigue_updates,
        stochastic_noise=noise,
        behavioral_output=output,
        reasoning=reasoning,
    )
    logger.debug(f"{profile.character_id} tick @{now_ms} (+{delta_ms}ms): {reasoning.summary}")
    return nxt, advance
