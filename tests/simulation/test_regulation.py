"""Tests for time decay, homeostasis, allostasis and boundary handling."""

import pytest

from charsim.simulation import regulation
from charsim.simulation.schemas import (
    AdaptationPhase,
    AllostasisConfig,
    HomeostasisConfig,
    RegulationMode,
    StabilityBounds,
    StateName,
    TransitionType,
)
from charsim.simulation.state import (
    AllostasisState,
    ContinuousState,
    DualRegulation,
    HomeostasisState,
)

NOW = 1_700_000_000_000
HOUR = 3_600_000


def make_state(value: float, baseline: float = 50.0, velocity: float = 0.0) -> ContinuousState:
    return ContinuousState(
        name=StateName.STRESS,
        baseline=baseline,
        current_value=value,
        velocity=velocity,
    )


def make_regulation(baseline: float = 50.0, **allostasis) -> DualRegulation:
    return DualRegulation(
        state_name=StateName.STRESS,
        homeostasis=HomeostasisState(config=HomeostasisConfig()),
        allostasis=AllostasisState(
            original_baseline=baseline,
            current_baseline=baseline,
            config=AllostasisConfig(**allostasis),
        ),
    )


# =============================================================================
# Time decay
# =============================================================================


class TestTimeDecay:
    """Tests for the natural pull toward baseline."""

    def test_zero_at_baseline(self):
        """A state sitting on its baseline does not decay."""
        assert regulation.time_decay(make_state(50.0), HOUR) == 0.0

    def test_pulls_toward_baseline(self):
        """Decay has the opposite sign of the deviation."""
        assert regulation.time_decay(make_state(70.0), 60_000) < 0
        assert regulation.time_decay(make_state(30.0), 60_000) > 0

    def test_never_overshoots(self):
        """Even a huge interval removes at most the whole deviation."""
        decay = regulation.time_decay(make_state(80.0), 1000 * HOUR)
        assert decay == pytest.approx(-30.0)

    def test_settles_small_deviation(self):
        """A residual inside the settle tolerance snaps onto the baseline."""
        state = make_state(50.04)
        assert regulation.time_decay(state, 1000) == pytest.approx(-0.04)


# =============================================================================
# Homeostasis
# =============================================================================


class TestHomeostaticCorrection:
    """Tests for bounded fast regulation."""

    def test_inside_resistance_threshold(self):
        """Small deviations are left to time decay."""
        state = make_state(60.0)
        dual = make_regulation()
        dual.homeostasis.deviation_onset_ms = NOW - HOUR
        assert regulation.homeostatic_correction(state, dual, HOUR, NOW, 10.0) == 0.0

    def test_waits_for_activation_delay(self):
        """No correction until the deviation has lasted activation_delay_ms."""
        state = make_state(80.0)
        dual = make_regulation()
        dual.homeostasis.deviation_onset_ms = NOW - 1000
        assert regulation.homeostatic_correction(state, dual, 60_000, NOW, 30.0) == 0.0

    def test_capped_per_tick(self):
        """Corrections never exceed max_correction_per_tick."""
        state = make_state(90.0)
        dual = make_regulation()
        dual.homeostasis.deviation_onset_ms = NOW - HOUR
        correction = regulation.homeostatic_correction(state, dual, HOUR, NOW, 40.0)
        assert correction == pytest.approx(-5.0)

    def test_capped_by_residual(self):
        """Correction never carries the state past its baseline."""
        state = make_state(90.0)
        dual = make_regulation()
        dual.homeostasis.deviation_onset_ms = NOW - HOUR
        correction = regulation.homeostatic_correction(state, dual, HOUR, NOW, 1.5)
        assert correction == pytest.approx(-1.5)

    def test_damped_when_already_returning(self):
        """Velocity in the correction's direction damps the correction."""
        dual = make_regulation()
        dual.homeostasis.deviation_onset_ms = NOW - HOUR
        still = regulation.homeostatic_correction(make_state(70.0), dual, 60_000, NOW, 20.0)
        moving = regulation.homeostatic_correction(make_state(70.0, velocity=-2.0), dual, 60_000, NOW, 20.0)
        assert abs(moving) < abs(still)


# =============================================================================
# Allostasis
# =============================================================================


class TestAllostaticShift:
    """Tests for slow baseline adaptation."""

    def test_requires_persistence(self):
        """A fresh deviation does not move the baseline."""
        state = make_state(90.0)
        dual = make_regulation()
        dual.allostasis.deviation_onset_ms = NOW - 1000
        assert regulation.allostatic_shift(state, dual, HOUR, NOW, 40.0) is None

    def test_shifts_toward_value(self):
        """Sustained deviation pulls the baseline toward the current value."""
        state = make_state(90.0)
        dual = make_regulation()
        dual.allostasis.deviation_onset_ms = NOW - 2 * HOUR
        shift = regulation.allostatic_shift(state, dual, 60_000, NOW, 40.0)
        assert shift is not None
        assert state.baseline > 50.0
        assert dual.allostasis.adaptation_phase == AdaptationPhase.ADAPTING
        assert dual.allostasis.current_baseline == state.baseline

    def test_total_shift_never_exceeds_cap(self):
        """Repeated shifts saturate at baseline_shift_cap."""
        state = make_state(100.0)
        dual = make_regulation(adaptation_rate=1.0, hysteresis_window_ms=0)
        dual.allostasis.deviation_onset_ms = NOW - 10 * HOUR
        for i in range(50):
            regulation.settle_adaptation(dual, NOW + i)
            regulation.allostatic_shift(state, dual, HOUR, NOW + i, 100.0)
            assert abs(dual.allostasis.total_baseline_shift) <= 20.0 + 1e-9
        assert dual.allostasis.total_baseline_shift == pytest.approx(20.0)
        assert state.baseline == pytest.approx(70.0)

    def test_blocked_while_adapting(self):
        """A second shift waits for the hysteresis window."""
        state = make_state(90.0)
        dual = make_regulation()
        dual.allostasis.deviation_onset_ms = NOW - 2 * HOUR
        assert regulation.allostatic_shift(state, dual, 60_000, NOW, 40.0) is not None
        assert regulation.allostatic_shift(state, dual, 60_000, NOW + 1, 40.0) is None

    def test_settles_after_hysteresis_window(self):
        """Adapting returns to stable once the window has elapsed."""
        dual = make_regulation()
        dual.allostasis.adaptation_phase = AdaptationPhase.ADAPTING
        dual.allostasis.last_shift_at = NOW
        regulation.settle_adaptation(dual, NOW + HOUR)
        assert dual.allostasis.adaptation_phase == AdaptationPhase.ADAPTING
        regulation.settle_adaptation(dual, NOW + 2 * HOUR)
        assert dual.allostasis.adaptation_phase == AdaptationPhase.STABLE


# =============================================================================
# Onset tracking and modes
# =============================================================================


class TestDeviationOnset:
    """Tests for deviation onset bookkeeping."""

    def test_sets_and_clears_onsets(self):
        """Onsets are stamped on entry and cleared on return."""
        dual = make_regulation()
        regulation.track_deviation_onset(make_state(80.0), dual, NOW)
        assert dual.homeostasis.deviation_onset_ms == NOW
        assert dual.allostasis.deviation_onset_ms == NOW

        regulation.track_deviation_onset(make_state(85.0), dual, NOW + 1000)
        assert dual.homeostasis.deviation_onset_ms == NOW

        regulation.track_deviation_onset(make_state(52.0), dual, NOW + 2000)
        assert dual.homeostasis.deviation_onset_ms is None
        assert dual.allostasis.deviation_onset_ms is None


class TestClassifyMode:
    """Tests for regulation mode classification."""

    def test_crisis_in_critical_band(self):
        """Critical values win over every other mode."""
        assert regulation.classify_mode(make_state(97.0), make_regulation(), True) == RegulationMode.CRISIS

    def test_transition_when_homeostasis_fired(self):
        """A fired correction marks the regulation as transitioning."""
        assert regulation.classify_mode(make_state(70.0), make_regulation(), True) == RegulationMode.TRANSITION

    def test_homeostatic_by_default(self):
        """Quiet states are homeostatic."""
        assert regulation.classify_mode(make_state(50.0), make_regulation(), False) == RegulationMode.HOMEOSTATIC


# =============================================================================
# Boundaries and derived quantities
# =============================================================================


class TestApplyBoundaries:
    """Tests for elastic soft bounds and hard clamping."""

    def test_inside_soft_band_untouched(self):
        """Values between the soft bounds pass through."""
        assert regulation.apply_boundaries(42.0, StabilityBounds()) == 42.0

    def test_soft_overshoot_is_elastic(self):
        """Overshoot past soft_max is scaled by elasticity."""
        assert regulation.apply_boundaries(100.0, StabilityBounds()) == pytest.approx(93.0)

    def test_hard_clamp(self):
        """Nothing escapes [min, max]."""
        bounds = StabilityBounds()
        assert regulation.apply_boundaries(-500.0, bounds) >= bounds.min
        assert regulation.apply_boundaries(500.0, bounds) <= bounds.max


class TestDerivedQuantities:
    """Tests for recovery pressure, transition type and rates."""

    def test_recovery_pressure_percentage(self):
        """Pressure is the deviation as a share of the largest excursion."""
        assert regulation.recovery_pressure(75.0, 50.0, StabilityBounds()) == pytest.approx(50.0)

    def test_sudden_transition(self):
        """A large velocity change is sudden."""
        assert regulation.classify_transition(0.0, 2.0) == TransitionType.SUDDEN

    def test_plateau_transition(self):
        """Near-zero velocities form a plateau."""
        assert regulation.classify_transition(0.01, 0.02) == TransitionType.PLATEAU

    def test_oscillating_transition(self):
        """A direction flip above the noise floor oscillates."""
        assert regulation.classify_transition(0.5, -0.3) == TransitionType.OSCILLATING

    def test_finite_difference_zero_interval(self):
        """A zero interval yields zero rate instead of dividing by zero."""
        assert regulation.finite_difference(10.0, 20.0, 0) == 0.0
        assert regulation.finite_difference(10.0, 20.0, 1000) == pytest.approx(10.0)
