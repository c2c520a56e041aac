"""Identity temporal patterns: phase progression and active modifiers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from charsim.simulation.schemas import ModulatorName, StateName
from charsim.simulation.state import IdentityTemporalPattern

logger = logging.getLogger(__name__)

MS_PER_DAY = 86400000.0
# Bound on phase rollovers per tick for very long gaps
MAX_ROLLOVERS = 1000


@dataclass
class PhaseEffect:
    """Modifiers contributed by an enabled pattern's current phase."""
    pattern_id: str
    phase_name: str
    state_modifiers: dict[StateName, float] = field(default_factory=dict)
    modulator_modifiers: dict[ModulatorName, float] = field(default_factory=dict)

    def describe(self) -> str:
        return f"{self.phase_name} ({self.pattern_id})"


def active_effects(patterns: Sequence[IdentityTemporalPattern]) -> list[PhaseEffect]:
    effects = []
    for pattern in patterns:
        if not pattern.is_enabled:
            continue
        phase = pattern.active_phase
        if phase is None:
            continue
        effects.append(
            PhaseEffect(
                pattern_id=pattern.pattern_id,
                phase_name=phase.name,
                state_modifiers=dict(phase.state_modifiers),
                modulator_modifiers=dict(phase.modulator_modifiers),
            )
        )
    return effects


def advance_pattern(pattern: IdentityTemporalPattern, delta_ms: float) -> bool:
    """Advance phase progress, rolling into the next phase when it reaches 1.

    Returns:
        True when the pattern changed phase.
    """
    if not pattern.phases:
        return False

    start_phase = pattern.current_phase % len(pattern.phases)
    pattern.current_phase = start_phase
    dt_days = max(delta_ms, 0.0) / MS_PER_DAY

    phase = pattern.phases[pattern.current_phase]
    if phase.duration_days <= 0:
        progress = 1.0
    else:
        progress = pattern.phase_progress + dt_days / phase.duration_days

    rollovers = 0
    while progress >= 1.0 and rollovers < MAX_ROLLOVERS:
        previous = pattern.phases[pattern.current_phase]
        pattern.current_phase = (pattern.current_phase + 1) % len(pattern.phases)
        following = pattern.phases[pattern.current_phase]
        if previous.duration_days <= 0 or following.duration_days <= 0:
            progress = 0.0
            break
        # Carry leftover time into the next phase in its own units
        progress = (progress - 1.0) * previous.duration_days / following.duration_days
        rollovers += 1

    pattern.phase_progress = min(max(progress, 0.0), 1.0 - 1e-12)

    changed = pattern.current_phase != start_phase or rollovers > 0
    if changed:
        logger.debug(f"Pattern {pattern.pattern_id} entered {pattern.phases[pattern.current_phase].name}")
    return changed


def advance_patterns(patterns: Sequence[IdentityTemporalPattern], delta_ms: float) -> None:
    """Advance every enabled pattern; disabled patterns hold their phase."""
    for pattern in patterns:
        if pattern.is_enabled:
            advance_pattern(pattern, delta_ms)
