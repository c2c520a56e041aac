"""Tests for fatigue pools: triggers, cooldowns and recovery."""

import math

import pytest

from charsim.simulation import fatigue
from charsim.simulation.defaults import default_fatigues
from charsim.simulation.schemas import ExternalInput, FatigueDimension, FatiguePhase, RecoveryCurve

NOW = 1_700_000_000_000
MINUTE = 60_000
HOUR = 3_600_000


@pytest.fixture
def cognitive():
    return default_fatigues()[FatigueDimension.COGNITIVE]


def trigger_input(magnitude: float = 10.0, fatigue_type: str = "complex_reasoning") -> ExternalInput:
    return ExternalInput(
        source="puzzle",
        magnitude=magnitude,
        fatigue_trigger=FatigueDimension.COGNITIVE,
        fatigue_type=fatigue_type,
    )


class TestCurveFactor:
    """Tests for recovery curve shapes."""

    def test_linear_is_flat(self):
        """Linear recovery does not depend on the level."""
        assert fatigue.curve_factor(RecoveryCurve.LINEAR, 10) == fatigue.curve_factor(RecoveryCurve.LINEAR, 90)

    def test_exponential_scales_with_level(self):
        """Exponential recovery is faster for deeper fatigue."""
        assert fatigue.curve_factor(RecoveryCurve.EXPONENTIAL, 50) == pytest.approx(1.0)
        assert fatigue.curve_factor(RecoveryCurve.EXPONENTIAL, 80) > fatigue.curve_factor(RecoveryCurve.EXPONENTIAL, 20)

    def test_sigmoid_midpoint(self):
        """Sigmoid recovery is one half at level 50."""
        assert fatigue.curve_factor(RecoveryCurve.SIGMOID, 50) == pytest.approx(0.5)

    def test_logarithmic_full_at_100(self):
        """Logarithmic recovery reaches one at level 100."""
        assert fatigue.curve_factor(RecoveryCurve.LOGARITHMIC, 100) == pytest.approx(1.0)
        assert fatigue.curve_factor(RecoveryCurve.LOGARITHMIC, 0) == pytest.approx(math.log(1) / math.log(101))


class TestUpdateFatigue:
    """Tests for one tick of a fatigue pool."""

    def test_passive_accumulation(self, cognitive):
        """An idle pool gains two points per hour."""
        update = fatigue.update_fatigue(cognitive, HOUR, NOW)
        assert cognitive.level == pytest.approx(22.0)
        assert cognitive.current_phase == FatiguePhase.ACCUMULATING
        assert update is not None and not update.is_recovering

    def test_trigger_adds_load(self, cognitive):
        """A matching trigger adds weight * magnitude * 0.1."""
        update = fatigue.update_fatigue(cognitive, 0, NOW, [trigger_input(10.0)])
        assert cognitive.level == pytest.approx(22.0)
        assert update.trigger == "puzzle"
        assert cognitive.find_trigger("complex_reasoning").accumulated_triggers == 1

    def test_trigger_cooldown(self, cognitive):
        """A trigger inside its cooldown is ignored."""
        fatigue.update_fatigue(cognitive, 0, NOW, [trigger_input()])
        level = cognitive.level
        fatigue.update_fatigue(cognitive, 0, NOW + MINUTE, [trigger_input()])
        assert cognitive.level == pytest.approx(level)
        fatigue.update_fatigue(cognitive, 0, NOW + 5 * MINUTE, [trigger_input()])
        assert cognitive.level > level

    def test_unknown_trigger_type_ignored(self, cognitive):
        """Inputs naming no known trigger add nothing."""
        fatigue.update_fatigue(cognitive, 0, NOW, [trigger_input(fatigue_type="juggling")])
        assert cognitive.level == pytest.approx(20.0)

    def test_recovering_pool_decreases(self, cognitive):
        """A recovering pool loses level."""
        cognitive.level = 60.0
        cognitive.current_phase = FatiguePhase.RECOVERING
        update = fatigue.update_fatigue(cognitive, 10 * MINUTE, NOW)
        assert cognitive.level < 60.0
        assert update.is_recovering

    def test_accelerators_strictly_speed_recovery(self):
        """Active accelerators recover strictly more than the base rate."""
        plain = default_fatigues()[FatigueDimension.COGNITIVE]
        boosted = default_fatigues()[FatigueDimension.COGNITIVE]
        for pool in (plain, boosted):
            pool.level = 60.0
            pool.current_phase = FatiguePhase.RECOVERING

        fatigue.update_fatigue(plain, 10 * MINUTE, NOW)
        fatigue.update_fatigue(
            boosted, 10 * MINUTE, NOW,
            [ExternalInput(source="nap", magnitude=0, activate_accelerators=["sleep"])],
        )
        assert boosted.level < plain.level < 60.0

    def test_accelerator_starts_recovery(self, cognitive):
        """Activating an accelerator switches an accumulating pool to recovery."""
        cognitive.level = 40.0
        fatigue.update_fatigue(
            cognitive, 10 * MINUTE, NOW,
            [ExternalInput(source="nap", magnitude=0, activate_accelerators=["sleep"])],
        )
        assert cognitive.level < 40.0
        assert cognitive.current_phase == FatiguePhase.RECOVERING

    def test_deactivate_accelerator(self, cognitive):
        """Inputs can switch accelerators back off."""
        fatigue.apply_accelerator_inputs(
            cognitive, [ExternalInput(source="a", magnitude=0, activate_accelerators=["sleep"])]
        )
        assert cognitive.recovery.any_accelerator_active
        fatigue.apply_accelerator_inputs(
            cognitive, [ExternalInput(source="b", magnitude=0, deactivate_accelerators=["sleep"])]
        )
        assert not cognitive.recovery.any_accelerator_active

    def test_level_stays_bounded(self, cognitive):
        """Levels never leave [0, 100]."""
        cognitive.level = 99.0
        fatigue.update_fatigue(cognitive, 100 * HOUR, NOW, [trigger_input(1000.0)])
        assert cognitive.level == 100.0
        assert cognitive.current_phase == FatiguePhase.DEPLETED

        cognitive.level = 1.0
        cognitive.current_phase = FatiguePhase.RECOVERING
        fatigue.update_fatigue(cognitive, 100 * HOUR, NOW + HOUR)
        assert cognitive.level == 0.0

    def test_unchanged_level_not_reported(self, cognitive):
        """No update is reported for a zero-length idle tick."""
        assert fatigue.update_fatigue(cognitive, 0, NOW) is None
