"""Temporal drift: memory-coupled momentum, mood and valence trend."""

from __future__ import annotations

import logging
import math
from typing import Mapping, Optional

import numpy as np

from charsim.simulation.schemas import Mood, StateName, TrendDirection
from charsim.simulation.state import DriftEvent, MemoryBias, StateSnapshot, TemporalDriftState

logger = logging.getLogger(__name__)

ACTIVATION_DECAY = 0.1          # exp(-count * decay) per memory bias
DRIFT_RECORD_THRESHOLD = 0.01
TREND_MIN_SNAPSHOTS = 3
TREND_VARIANCE_VOLATILE = 25.0
TREND_SLOPE = 2.0


def drift_influence(state_name: StateName, drift: TemporalDriftState, delta_ms: float) -> float:
    """Pull on one state from memory biases and the current drift."""
    config = drift.config
    total = 0.0
    for bias in drift.memory_biases:
        influence = bias.state_influences.get(state_name)
        if influence is None:
            continue
        total += influence * bias.combined_influence * math.exp(-bias.activation_count * ACTIVATION_DECAY)

    total += drift.current_drift * config.noise_amplitude
    dt_min = max(delta_ms, 0.0) / 60000.0
    return total * dt_min * config.memory_influence_weight


def add_memory_bias(
    drift: TemporalDriftState,
    memory_id: str,
    emotional_weight: float,
    state_influences: Mapping[StateName, float],
    now_ms: int,
) -> MemoryBias:
    """Register or re-activate a memory bias and push drift momentum.

    Re-adding an existing memory increments its activation count, which
    weakens its future pull. The oldest biases are evicted past
    MAX_MEMORY_BIASES.
    """
    config = drift.config
    existing = next((b for b in drift.memory_biases if b.memory_id == memory_id), None)
    if existing is not None:
        existing.emotional_weight = emotional_weight
        existing.recency_weight = 1.0
        existing.combined_influence = emotional_weight
        existing.last_activated_at = now_ms
        existing.activation_count += 1
        existing.state_influences = dict(state_influences)
        bias = existing
    else:
        bias = MemoryBias(
            memory_id=memory_id,
            emotional_weight=emotional_weight,
            recency_weight=1.0,
            combined_influence=emotional_weight,
            last_activated_at=now_ms,
            activation_count=0,
            state_influences=dict(state_influences),
        )
        drift.memory_biases.append(bias)
        if len(drift.memory_biases) > drift.MAX_MEMORY_BIASES:
            drift.memory_biases = drift.memory_biases[-drift.MAX_MEMORY_BIASES:]

    drift.drift_momentum += emotional_weight * config.drift_rate * config.emotional_weight_multiplier
    logger.debug(f"Memory bias {memory_id} (weight {emotional_weight:.2f}), momentum {drift.drift_momentum:.4f}")
    return bias


def refresh_recency(drift: TemporalDriftState, now_ms: int) -> None:
    """Fade each bias by recency_bias per hour since its last activation."""
    for bias in drift.memory_biases:
        hours = max(now_ms - bias.last_activated_at, 0) / 3600000.0
        bias.recency_weight = drift.config.recency_bias ** hours
        bias.combined_influence = bias.emotional_weight * bias.recency_weight


def derive_mood(values: Mapping[StateName, float]) -> Mood:
    energy = values.get(StateName.ENERGY, 50.0)
    stress = values.get(StateName.STRESS, 30.0)
    valence = values.get(StateName.EMOTIONAL_VALENCE, 50.0)
    arousal = values.get(StateName.AROUSAL, 50.0)
    fatigue = values.get(StateName.FATIGUE_COGNITIVE, 20.0)

    if fatigue > 70 or energy < 25:
        return Mood.EXHAUSTED
    if stress > 70:
        return Mood.STRESSED
    if valence > 70 and energy > 60:
        return Mood.HAPPY
    if valence < 30 and energy < 40:
        return Mood.MELANCHOLIC
    if arousal > 70 and valence > 50:
        return Mood.EXCITED
    if arousal < 30:
        return Mood.CALM
    return Mood.NEUTRAL


def valence_trend(window: list[StateSnapshot]) -> TrendDirection:
    """Trend of emotional valence across the recent-state window."""
    if len(window) < TREND_MIN_SNAPSHOTS:
        return TrendDirection.STABLE

    valences = np.array([s.values.get(StateName.EMOTIONAL_VALENCE, 50.0) for s in window])
    deltas = np.diff(valences)
    if float(np.var(deltas)) > TREND_VARIANCE_VOLATILE:
        return TrendDirection.VOLATILE

    average = float(np.mean(deltas))
    if average > TREND_SLOPE:
        return TrendDirection.IMPROVING
    if average < -TREND_SLOPE:
        return TrendDirection.DECLINING
    return TrendDirection.STABLE


def update_drift(
    drift: TemporalDriftState,
    values: Mapping[StateName, float],
    now_ms: int,
) -> Optional[DriftEvent]:
    """Advance momentum and friction, then record mood and trend.

    Returns:
        The DriftEvent appended to history, if drift is non-negligible.
    """
    config = drift.config
    refresh_recency(drift, now_ms)

    drift.current_drift = drift.current_drift * config.momentum_factor + drift.drift_momentum
    drift.drift_momentum -= drift.drift_momentum * config.friction_coefficient

    mood = derive_mood(values)
    drift.recent_states.append(StateSnapshot(timestamp=now_ms, values=dict(values), mood=mood))
    if len(drift.recent_states) > drift.STATE_WINDOW:
        drift.recent_states = drift.recent_states[-drift.STATE_WINDOW:]

    if mood != drift.dominant_mood:
        logger.debug(f"Dominant mood {drift.dominant_mood.value} -> {mood.value}")
    drift.dominant_mood = mood
    drift.trend_direction = valence_trend(drift.recent_states)

    if abs(drift.current_drift) <= DRIFT_RECORD_THRESHOLD:
        return None
    event = DriftEvent(
        timestamp=now_ms,
        magnitude=abs(drift.current_drift),
        direction=1.0 if drift.current_drift > 0 else -1.0,
        cause="memory_momentum",
    )
    drift.drift_history.append(event)
    if len(drift.drift_history) > drift.DRIFT_HISTORY_LIMIT:
        drift.drift_history = drift.drift_history[-drift.DRIFT_HISTORY_LIMIT:]
    return event
