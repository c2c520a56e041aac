"""Dual regulation: time decay, homeostasis, allostasis and boundary handling.

All functions are total. Denominators come from positive bound spans or are
floored at EPSILON, and corrections are capped so regulation alone never
carries a state past its baseline.
"""

from __future__ import annotations

import logging
import math
from typing import Optional

from charsim.simulation.schemas import (
    AdaptationPhase,
    RegulationMode,
    StabilityBounds,
    TransitionType,
)
from charsim.simulation.state import (
    EPSILON,
    BaselineShift,
    ContinuousState,
    DualRegulation,
)

logger = logging.getLogger(__name__)

# Fraction of deviation removed per second of elapsed time
DECAY_FACTOR = 0.0001
# Deviations smaller than this settle exactly on the baseline
SETTLE_TOLERANCE = 0.05
# |deviation| above which allostatic adaptation is considered
SIGNIFICANT_DEVIATION = 15.0
# Minimum baseline move worth recording
MIN_SHIFT = 0.01


def _sign(value: float) -> float:
    return 1.0 if value > 0 else -1.0 if value < 0 else 0.0


def time_decay(state: ContinuousState, delta_ms: float) -> float:
    """Pull toward baseline proportional to elapsed time and elasticity.

    Never larger than the deviation itself. Once the remaining deviation is
    within SETTLE_TOLERANCE the state settles exactly on its baseline.
    """
    deviation = state.deviation
    if deviation == 0.0:
        return 0.0
    dt_s = max(delta_ms, 0.0) / 1000.0
    factor = min(1.0, DECAY_FACTOR * dt_s * (1.0 + state.bounds.elasticity))
    decay = -deviation * factor
    if abs(deviation + decay) < SETTLE_TOLERANCE:
        return -deviation
    return decay


def homeostatic_correction(
    state: ContinuousState,
    regulation: DualRegulation,
    delta_ms: float,
    now_ms: int,
    residual: float,
) -> float:
    """Bounded correction toward baseline with overshoot damping.

    Args:
        state: State before this tick.
        regulation: The state's dual regulation.
        delta_ms: Elapsed time since the previous tick.
        now_ms: Current tick time.
        residual: |deviation| left after time decay; the correction never
            exceeds it.

    Returns:
        Signed correction, zero inside the resistance threshold or before
        the activation delay has passed since the deviation began.
    """
    config = regulation.homeostasis.config
    deviation = state.deviation
    if abs(deviation) < config.resistance_threshold:
        return 0.0

    onset = regulation.homeostasis.deviation_onset_ms
    if onset is None or now_ms - onset < config.activation_delay_ms:
        return 0.0

    dt_s = max(delta_ms, 0.0) / 1000.0
    correction = -_sign(deviation) * config.return_rate * dt_s * (abs(deviation) / 50.0)
    correction = max(-config.max_correction_per_tick, min(config.max_correction_per_tick, correction))

    # Damp when the state is already moving the way we're pushing
    if correction * state.velocity > 0:
        overshoot = abs(state.velocity) * config.overshoot_damping
        correction *= min(1.0, max(0.0, 1.0 - overshoot))

    if abs(correction) > residual:
        correction = _sign(correction) * residual
    return correction


def allostatic_shift(
    state: ContinuousState,
    regulation: DualRegulation,
    delta_ms: float,
    now_ms: int,
    residual: float,
) -> Optional[BaselineShift]:
    """Move the baseline after sustained significant deviation.

    Fires only when |deviation| > SIGNIFICANT_DEVIATION, the deviation has
    persisted past the persistence threshold, and the regulation is stable.
    The cumulative shift stays within baseline_shift_cap and a single step
    never exceeds the deviation left after value regulation.

    Mutates state.baseline and the allostasis bookkeeping when it fires.
    """
    allostasis = regulation.allostasis
    config = allostasis.config
    deviation = state.deviation

    if abs(deviation) <= SIGNIFICANT_DEVIATION:
        return None
    if allostasis.adaptation_phase != AdaptationPhase.STABLE:
        return None
    onset = allostasis.deviation_onset_ms
    if onset is None or now_ms - onset <= config.persistence_threshold_ms:
        return None

    dt_s = max(delta_ms, 0.0) / 1000.0
    raw = deviation * config.adaptation_rate * dt_s
    cap = config.baseline_shift_cap
    target_total = max(-cap, min(cap, allostasis.total_baseline_shift + raw))
    step = target_total - allostasis.total_baseline_shift
    if abs(step) > residual:
        step = _sign(step) * residual
    if abs(step) <= MIN_SHIFT:
        return None

    previous = state.baseline
    state.baseline = previous + step
    allostasis.current_baseline = state.baseline
    allostasis.total_baseline_shift += step
    allostasis.adaptation_phase = AdaptationPhase.ADAPTING
    allostasis.last_shift_at = now_ms

    shift = BaselineShift(
        timestamp=now_ms,
        previous_baseline=previous,
        new_baseline=state.baseline,
        cause="persistent_deviation",
        magnitude=step,
    )
    allostasis.record_shift(shift)
    logger.debug(
        f"Allostatic shift on {state.name.value}: {previous:.2f} -> {state.baseline:.2f} "
        f"(total {allostasis.total_baseline_shift:+.2f})"
    )
    return shift


def settle_adaptation(regulation: DualRegulation, now_ms: int) -> None:
    """Return an adapting regulation to stable after the hysteresis window."""
    allostasis = regulation.allostasis
    if allostasis.adaptation_phase != AdaptationPhase.ADAPTING:
        return
    last = allostasis.last_shift_at
    if last is None or now_ms - last >= allostasis.config.hysteresis_window_ms:
        allostasis.adaptation_phase = AdaptationPhase.STABLE


def track_deviation_onset(state: ContinuousState, regulation: DualRegulation, now_ms: int) -> None:
    """Record when the post-tick deviation entered each regulation band."""
    deviation = abs(state.deviation)

    if deviation >= regulation.homeostasis.config.resistance_threshold:
        if regulation.homeostasis.deviation_onset_ms is None:
            regulation.homeostasis.deviation_onset_ms = now_ms
    else:
        regulation.homeostasis.deviation_onset_ms = None

    allostasis = regulation.allostasis
    if deviation > SIGNIFICANT_DEVIATION:
        if allostasis.deviation_onset_ms is None:
            allostasis.deviation_onset_ms = now_ms
    else:
        allostasis.deviation_onset_ms = None


def classify_mode(state: ContinuousState, regulation: DualRegulation, homeostasis_fired: bool) -> RegulationMode:
    if state.in_critical_band:
        return RegulationMode.CRISIS
    if regulation.allostasis.adaptation_phase == AdaptationPhase.ADAPTING:
        return RegulationMode.ALLOSTATIC
    if homeostasis_fired:
        return RegulationMode.TRANSITION
    return RegulationMode.HOMEOSTATIC


def apply_boundaries(value: float, bounds: StabilityBounds) -> float:
    """Elastic reflection past the soft bounds, then a hard clamp."""
    if value < bounds.soft_min:
        overshoot = bounds.soft_min - value
        value = bounds.soft_min - overshoot * bounds.elasticity
    elif value > bounds.soft_max:
        overshoot = value - bounds.soft_max
        value = bounds.soft_max + overshoot * bounds.elasticity
    return max(bounds.min, min(bounds.max, value))


def recovery_pressure(value: float, baseline: float, bounds: StabilityBounds) -> float:
    """Deviation as a percentage of the largest possible excursion."""
    span = max(baseline - bounds.min, bounds.max - baseline, EPSILON)
    return abs(value - baseline) / span * 100.0


def classify_transition(previous_velocity: float, new_velocity: float) -> TransitionType:
    change = new_velocity - previous_velocity
    same_direction = (previous_velocity >= 0) == (new_velocity >= 0)

    if abs(change) > 1:
        return TransitionType.SUDDEN
    if not same_direction and abs(previous_velocity) > 0.1 and abs(new_velocity) > 0.1:
        return TransitionType.OSCILLATING
    if abs(new_velocity) < 0.05 and abs(previous_velocity) < 0.05:
        return TransitionType.PLATEAU
    return TransitionType.GRADUAL


def finite_difference(previous: float, current: float, delta_ms: float) -> float:
    """Rate of change per second, zero for a non-positive interval."""
    dt_s = delta_ms / 1000.0
    if dt_s <= EPSILON or not math.isfinite(dt_s):
        return 0.0
    return (current - previous) / dt_s
