"""Global modulators: slow scalars that bias many states at once."""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from charsim.conditions import OperandKind, Resolver
from charsim.simulation.schemas import InfluenceType, ModulatorName, StateName
from charsim.simulation.state import GlobalModulator, ModulatorChange

logger = logging.getLogger(__name__)

INFLUENCE_SCALE = 0.1       # Summed influences are scaled before application
RECORD_THRESHOLD = 0.5      # Smaller modulator moves are not recorded
DEFAULT_STATE_VALUE = 50.0


def profile_resolver(
    states: Mapping[StateName, float],
    modulators: Mapping[ModulatorName, GlobalModulator],
) -> Resolver:
    """Resolve STATE and MODULATOR operands against a profile snapshot."""

    def resolve(kind: OperandKind, name: str) -> Optional[float]:
        if kind == OperandKind.STATE:
            for state_name, value in states.items():
                if state_name.value == name:
                    return value
            return None
        if kind == OperandKind.MODULATOR:
            for modulator_name, modulator in modulators.items():
                if modulator_name.value == name:
                    return modulator.current_value
            return None
        return None

    return resolve


def modulator_influence(
    state_name: StateName,
    modulator: GlobalModulator,
    states: Mapping[StateName, float],
    resolver: Optional[Resolver] = None,
) -> float:
    """Total influence of one modulator on one state for this tick.

    Args:
        state_name: Target state.
        modulator: Modulator whose influences are evaluated.
        states: State values before this tick; multiplicative influences
            scale with the target's previous value.
        resolver: Operand resolver for influence conditions.

    Returns:
        Sum of the applicable influences times INFLUENCE_SCALE.
    """
    total = 0.0
    for influence in modulator.influences:
        if influence.target_state != state_name or not influence.is_active:
            continue
        if influence.condition is not None and not influence.condition.evaluate(
            resolver, self_value=modulator.current_value
        ):
            continue

        if influence.influence_type == InfluenceType.ADDITIVE:
            total += influence.coefficient * modulator.normalized_deviation
        elif influence.influence_type == InfluenceType.MULTIPLICATIVE:
            current = states.get(state_name, DEFAULT_STATE_VALUE)
            total += current * influence.coefficient * modulator.normalized_deviation
        elif influence.influence_type == InfluenceType.THRESHOLD:
            total += influence.coefficient
        # GATE is reserved

    return total * INFLUENCE_SCALE


def update_modulator(
    modulator: GlobalModulator,
    delta_ms: float,
    pattern_modifier: float = 0.0,
    noise: float = 0.0,
) -> Optional[ModulatorChange]:
    """Baseline return, identity-pattern push and noise, clamped to bounds.

    Args:
        modulator: Modulator to update in place.
        delta_ms: Elapsed time since the previous tick.
        pattern_modifier: Sum of enabled pattern modifiers for this modulator,
            in units per hour.
        noise: Gaussian sample drawn by the caller.

    Returns:
        ModulatorChange when the value moved by more than RECORD_THRESHOLD.
    """
    previous = modulator.current_value
    dt_min = max(delta_ms, 0.0) / 60000.0

    value = previous
    value += (modulator.baseline - previous) * modulator.change_rate * dt_min * (1.0 - modulator.inertia)
    value += pattern_modifier * max(delta_ms, 0.0) / 3600000.0
    value += noise
    value = max(modulator.min_value, min(modulator.max_value, value))
    modulator.current_value = value

    if abs(value - previous) <= RECORD_THRESHOLD:
        return None

    if pattern_modifier:
        cause = "identity_pattern"
    elif abs(noise) > abs(value - previous) / 2:
        cause = "stochastic"
    else:
        cause = "baseline_return"
    return ModulatorChange(
        modulator_name=modulator.name,
        previous_value=previous,
        new_value=value,
        cause=cause,
        affected_states=sorted({i.target_state for i in modulator.influences}, key=lambda s: s.value),
    )
