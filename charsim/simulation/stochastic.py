"""Seeded, temporally correlated Gaussian noise."""

from __future__ import annotations

import numpy as np

from charsim.simulation.schemas import StateName, StochasticConfig
from charsim.simulation.state import NoiseSnapshot, StochasticEngine

# Noise is kept inside [-REFLECT_SPAN * amp, REFLECT_SPAN * amp]
REFLECT_SPAN = 2.0


def tick_rng(engine: StochasticEngine) -> np.random.Generator:
    """Generator for the engine's current sequence number.

    The same (seed, sequence) pair always yields the same draws, so a tick
    that is recomputed after a failed commit is reproduced exactly.
    """
    return np.random.default_rng([engine.seed, engine.sequence])


def reflect_boundary(value: float, low: float, high: float) -> float:
    """Fold value back into [low, high] by mirror reflection."""
    span = high - low
    if span <= 0:
        return low
    period = 2.0 * span
    offset = (value - low) % period
    if offset > span:
        offset = period - offset
    return low + offset


def generate_noise(
    engine: StochasticEngine,
    config: StochasticConfig,
    rng: np.random.Generator,
    now_ms: int,
) -> dict[StateName, float]:
    """One smoothed sample per state, in StateName order.

    Always draws exactly one sample per state so the stream position does
    not depend on amplitudes. Updates last_noise and the bounded history.
    """
    if not config.enabled:
        return {}

    correlation = config.temporal_smoothing
    noise = {}
    for state in StateName:
        amplitude = config.amplitude_for(state)
        raw = float(rng.normal(0.0, amplitude))
        smoothed = engine.last_noise.get(state, 0.0) * correlation + raw * (1.0 - correlation)
        noise[state] = reflect_boundary(smoothed, -REFLECT_SPAN * amplitude, REFLECT_SPAN * amplitude)

    engine.last_noise = dict(noise)
    engine.noise_history.append(NoiseSnapshot(timestamp=now_ms, values=dict(noise)))
    if len(engine.noise_history) > engine.HISTORY_LIMIT:
        engine.noise_history = engine.noise_history[-engine.HISTORY_LIMIT:]
    return noise


def modulator_noise(config: StochasticConfig, rng: np.random.Generator) -> float:
    if not config.enabled:
        return 0.0
    return float(rng.normal(0.0, config.modulator_noise))
