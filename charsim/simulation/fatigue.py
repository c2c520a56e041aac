"""Multi-dimensional fatigue: trigger accumulation and curve-shaped recovery."""

from __future__ import annotations

import logging
import math
from typing import Optional, Sequence

from charsim.simulation.schemas import ExternalInput, FatiguePhase, RecoveryCurve
from charsim.simulation.state import FatigueUpdate, MultiFatigue, RecoveryConfig

logger = logging.getLogger(__name__)

FATIGUE_MIN = 0.0
FATIGUE_MAX = 100.0
DEPLETION_LEVEL = 80.0          # Above this the pool is depleted
PASSIVE_GAIN_PER_HOUR = 2.0     # Accumulation while not recovering
TRIGGER_SCALE = 0.1             # weight * magnitude * scale per trigger
REPORT_THRESHOLD = 0.01         # Smaller level changes are not reported


def curve_factor(curve: RecoveryCurve, level: float) -> float:
    """Recovery shape as a function of current level (0-100)."""
    level = max(FATIGUE_MIN, level)
    if curve == RecoveryCurve.EXPONENTIAL:
        return level / 50.0
    if curve == RecoveryCurve.SIGMOID:
        return 1.0 / (1.0 + math.exp(-(level - 50.0) / 20.0))
    if curve == RecoveryCurve.LOGARITHMIC:
        return math.log(level + 1.0) / math.log(101.0)
    return 1.0


def recovery_amount(recovery: RecoveryConfig, level: float, delta_ms: float) -> float:
    """Level removed over delta_ms, scaled by active accelerators."""
    base = recovery.base_rate * (max(delta_ms, 0.0) / 60000.0)
    return base * recovery.active_multiplier * curve_factor(recovery.curve, level)


def apply_accelerator_inputs(fatigue: MultiFatigue, inputs: Sequence[ExternalInput]) -> None:
    """Switch recovery accelerators on or off as requested by inputs."""
    for external in inputs:
        for accelerator in fatigue.recovery.accelerators:
            if accelerator.type in external.activate_accelerators:
                accelerator.is_active = True
            if accelerator.type in external.deactivate_accelerators:
                accelerator.is_active = False


def update_fatigue(
    fatigue: MultiFatigue,
    delta_ms: float,
    now_ms: int,
    inputs: Sequence[ExternalInput] = (),
) -> Optional[FatigueUpdate]:
    """Advance one fatigue pool by one tick.

    A matching external trigger outside its cooldown adds load. The pool then
    either recovers (phase recovering or any accelerator active) or
    accumulates passively. The phase is re-derived from the level change.

    Returns:
        FatigueUpdate when the level moved by more than REPORT_THRESHOLD.
    """
    apply_accelerator_inputs(fatigue, inputs)

    previous = fatigue.level
    level = previous
    trigger_source = None

    for external in inputs:
        if external.fatigue_trigger != fatigue.dimension:
            continue
        trigger = fatigue.find_trigger(external.fatigue_type)
        if trigger is None or not trigger.ready(now_ms):
            continue
        level += trigger.weight * external.magnitude * TRIGGER_SCALE
        trigger.last_triggered_at = now_ms
        trigger.accumulated_triggers += 1
        trigger_source = external.source

    if fatigue.current_phase == FatiguePhase.RECOVERING or fatigue.recovery.any_accelerator_active:
        level -= recovery_amount(fatigue.recovery, previous, delta_ms)
    else:
        level += max(delta_ms, 0.0) / 3600000.0 * PASSIVE_GAIN_PER_HOUR

    level = max(FATIGUE_MIN, min(FATIGUE_MAX, level))

    if level > DEPLETION_LEVEL:
        phase = FatiguePhase.DEPLETED
    elif level > previous:
        phase = FatiguePhase.ACCUMULATING
    elif level < previous:
        phase = FatiguePhase.RECOVERING
    else:
        phase = FatiguePhase.ACTIVE

    if phase != fatigue.current_phase:
        logger.debug(f"Fatigue {fatigue.dimension.value}: {fatigue.current_phase.value} -> {phase.value}")

    fatigue.level = level
    fatigue.current_phase = phase

    if abs(level - previous) <= REPORT_THRESHOLD:
        return None
    return FatigueUpdate(
        dimension=fatigue.dimension,
        previous_level=previous,
        new_level=level,
        trigger=trigger_source,
        is_recovering=level < previous,
    )
