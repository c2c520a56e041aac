"""Tests for identity patterns and memory-coupled drift."""

import pytest

from charsim.simulation import cycles, drift
from charsim.simulation.defaults import FEMININE_RHYTHM_ID, feminine_monthly_rhythm
from charsim.simulation.schemas import Mood, StateName, TrendDirection
from charsim.simulation.state import StateSnapshot, TemporalDriftState

NOW = 1_700_000_000_000
DAY = 86_400_000
HOUR = 3_600_000


# =============================================================================
# Identity patterns
# =============================================================================


class TestIdentityPattern:
    """Tests for the built-in monthly rhythm pattern."""

    def test_seeded_disabled(self):
        """The pattern ships disabled with a safety disclaimer."""
        pattern = feminine_monthly_rhythm()
        assert pattern.pattern_id == FEMININE_RHYTHM_ID
        assert not pattern.is_enabled
        assert pattern.safety_disclaimer
        assert sum(p.duration_days for p in pattern.phases) == pattern.cycle_period_days

    def test_disabled_has_no_effects(self):
        """Disabled patterns contribute nothing."""
        assert cycles.active_effects([feminine_monthly_rhythm()]) == []

    def test_enabled_effects_follow_phase(self):
        """Enabled patterns expose the current phase's modifiers."""
        pattern = feminine_monthly_rhythm()
        pattern.is_enabled = True
        (effect,) = cycles.active_effects([pattern])
        assert effect.phase_name == "Reflective Phase"
        assert effect.state_modifiers[StateName.ENERGY] == -12

    def test_phase_rollover(self):
        """Progress past the phase duration enters the next phase."""
        pattern = feminine_monthly_rhythm()
        assert cycles.advance_pattern(pattern, 6 * DAY)
        assert pattern.current_phase == 1
        assert pattern.phase_progress == pytest.approx(1 / 7)

    def test_full_cycle_wraps(self):
        """A whole cycle returns to the first phase."""
        pattern = feminine_monthly_rhythm()
        cycles.advance_pattern(pattern, 28 * DAY + HOUR)
        assert pattern.current_phase == 0
        assert 0.0 <= pattern.phase_progress < 1.0

    def test_disabled_patterns_hold(self):
        """advance_patterns leaves disabled patterns untouched."""
        pattern = feminine_monthly_rhythm()
        cycles.advance_patterns([pattern], 10 * DAY)
        assert pattern.current_phase == 0
        assert pattern.phase_progress == 0.0


# =============================================================================
# Drift
# =============================================================================


class TestMemoryBias:
    """Tests for registering memory biases."""

    def test_new_bias_pushes_momentum(self):
        """Adding a bias increases drift momentum."""
        state = TemporalDriftState()
        bias = drift.add_memory_bias(state, "m1", 0.8, {StateName.EMOTIONAL_VALENCE: 5.0}, NOW)
        assert bias.activation_count == 0
        assert state.drift_momentum == pytest.approx(0.8 * 0.02 * 1.5)

    def test_reactivation_counts(self):
        """Re-adding the same memory increments its activation count."""
        state = TemporalDriftState()
        drift.add_memory_bias(state, "m1", 0.8, {}, NOW)
        bias = drift.add_memory_bias(state, "m1", 0.5, {}, NOW + 1)
        assert len(state.memory_biases) == 1
        assert bias.activation_count == 1
        assert bias.emotional_weight == 0.5

    def test_biases_bounded(self):
        """Only the most recent biases are kept."""
        state = TemporalDriftState()
        for i in range(25):
            drift.add_memory_bias(state, f"m{i}", 0.1, {}, NOW + i)
        assert len(state.memory_biases) == TemporalDriftState.MAX_MEMORY_BIASES
        assert state.memory_biases[-1].memory_id == "m24"

    def test_bias_pulls_state(self):
        """A bias with a state influence pulls that state over time."""
        state = TemporalDriftState()
        drift.add_memory_bias(state, "m1", 1.0, {StateName.EMOTIONAL_VALENCE: 2.0}, NOW)
        assert drift.drift_influence(StateName.EMOTIONAL_VALENCE, state, 60_000) == pytest.approx(2.0 * 0.3)
        assert drift.drift_influence(StateName.ENERGY, state, 60_000) == 0.0


class TestUpdateDrift:
    """Tests for drift momentum, mood and trend."""

    def test_momentum_decays_with_friction(self):
        """Friction bleeds momentum into drift."""
        state = TemporalDriftState(drift_momentum=1.0)
        event = drift.update_drift(state, {}, NOW)
        assert state.current_drift == pytest.approx(1.0)
        assert state.drift_momentum == pytest.approx(0.9)
        assert event is not None and event.direction == 1.0

    def test_recency_fades_bias(self):
        """Combined influence fades by recency_bias per hour."""
        state = TemporalDriftState()
        drift.add_memory_bias(state, "m1", 1.0, {}, NOW)
        drift.update_drift(state, {}, NOW + HOUR)
        assert state.memory_biases[0].combined_influence == pytest.approx(0.8)

    def test_window_bounded(self):
        """Recent state snapshots are bounded."""
        state = TemporalDriftState()
        for i in range(15):
            drift.update_drift(state, {StateName.ENERGY: 50.0}, NOW + i)
        assert len(state.recent_states) == TemporalDriftState.STATE_WINDOW

    @pytest.mark.parametrize(
        "values,mood",
        [
            ({StateName.ENERGY: 20.0}, Mood.EXHAUSTED),
            ({StateName.STRESS: 80.0}, Mood.STRESSED),
            ({StateName.EMOTIONAL_VALENCE: 80.0, StateName.ENERGY: 70.0}, Mood.HAPPY),
            ({StateName.AROUSAL: 20.0}, Mood.CALM),
            ({}, Mood.NEUTRAL),
        ],
    )
    def test_derive_mood(self, values, mood):
        """Mood follows fixed thresholds in precedence order."""
        assert drift.derive_mood(values) == mood

    def test_valence_trend(self):
        """Steadily rising valence is an improving trend."""
        window = [
            StateSnapshot(timestamp=NOW + i, values={StateName.EMOTIONAL_VALENCE: 40.0 + 3 * i}, mood=Mood.NEUTRAL)
            for i in range(5)
        ]
        assert drift.valence_trend(window) == TrendDirection.IMPROVING
        assert drift.valence_trend(window[:2]) == TrendDirection.STABLE
