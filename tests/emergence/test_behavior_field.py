"""Tests for the behavior field, probabilities and selection."""

import numpy as np
import pytest

from charsim.emergence.behavior_field import (
    FIELD_MAPPINGS,
    MAX_PROBABILITY,
    MIN_PROBABILITY,
    BehaviorField,
    BehaviorProbability,
    ProbabilityFactor,
    compute_behavior_probabilities,
    context_modifier,
    default_behavior_field,
    project_tendencies,
    select_behavior,
    state_influence,
    update_behavior_field,
)
from charsim.emergence.schemas import BehaviorClass, BehaviorFieldDimension, LatentTendencyName
from charsim.emergence.tendencies import default_tendencies
from charsim.simulation.defaults import STATE_DEFAULTS
from charsim.simulation.schemas import StateName

NOW = 1_700_000_000_000
D = BehaviorFieldDimension


class FixedRng:
    """Stands in for a Generator whose uniform draws are known."""

    def __init__(self, value: float):
        self.value = value

    def random(self) -> float:
        return self.value


def probability(behavior: BehaviorClass, final: float, factors=()) -> BehaviorProbability:
    return BehaviorProbability(behavior, 0.5, final, 0.0, final, list(factors))


# =============================================================================
# Field
# =============================================================================


class TestBehaviorField:
    """Tests for the field aggregate."""

    def test_default_metrics(self):
        """Metrics are computed from the default vectors."""
        field = default_behavior_field(NOW)
        values = np.array([v.value for v in field.vectors.values()])
        assert len(field.vectors) == len(BehaviorFieldDimension)
        assert field.coherence == pytest.approx(100 - np.std(values))
        assert field.field_strength == pytest.approx(np.mean(np.abs(values)))
        assert field.entropy == pytest.approx(np.mean([v.uncertainty for v in field.vectors.values()]))

    def test_every_behavior_mapped(self):
        """Every behavior class draws on at least one dimension."""
        assert set(FIELD_MAPPINGS) == set(BehaviorClass)

    def test_value_at_falls_back_to_oldest(self):
        """Lookups before the first snapshot return the oldest snapshot."""
        field = default_behavior_field(NOW)
        field.snapshot(NOW + 1000)
        field.vectors[D.APPROACH_WITHDRAWAL].value = 40.0
        field.snapshot(NOW + 2000)
        assert field.value_at(D.APPROACH_WITHDRAWAL, NOW) == 0.0
        assert field.value_at(D.APPROACH_WITHDRAWAL, NOW + 1500) == 0.0
        assert field.value_at(D.APPROACH_WITHDRAWAL, NOW + 5000) == 40.0

    def test_history_bounded(self):
        """Field history keeps the most recent snapshots."""
        field = default_behavior_field(NOW)
        for i in range(30):
            field.snapshot(NOW + i)
        assert len(field.history) == BehaviorField.HISTORY_LIMIT

    def test_round_trip(self):
        """The field survives serialization."""
        field = default_behavior_field(NOW)
        update_behavior_field(field, BehaviorClass.ENGAGE_DEEPLY, 2.0, NOW)
        assert BehaviorField.from_dict(field.to_dict()).to_dict() == field.to_dict()


# =============================================================================
# Probabilities
# =============================================================================


class TestComputeBehaviorProbabilities:
    """Tests for per-class probability scoring."""

    def test_one_bounded_probability_per_class(self):
        """Every class is scored once within [0.01, 0.99], most probable first."""
        probabilities = compute_behavior_probabilities(
            default_behavior_field(NOW), default_tendencies(NOW), STATE_DEFAULTS, None, np.random.default_rng(0)
        )
        assert {p.behavior_class for p in probabilities} == set(BehaviorClass)
        finals = [p.final_probability for p in probabilities]
        assert all(MIN_PROBABILITY <= f <= MAX_PROBABILITY for f in finals)
        assert finals == sorted(finals, reverse=True)

    def test_deterministic_for_same_draws(self):
        """Equal generators give equal probabilities."""
        args = (default_behavior_field(NOW), default_tendencies(NOW), STATE_DEFAULTS, "casual chat")
        first = compute_behavior_probabilities(*args, np.random.default_rng(9))
        second = compute_behavior_probabilities(*args, np.random.default_rng(9))
        assert [(p.behavior_class, p.final_probability) for p in first] == [
            (p.behavior_class, p.final_probability) for p in second
        ]

    def test_conflict_context_favors_defense(self):
        """A conflict hint lifts defensive behaviors and lowers vulnerability."""
        field, tendencies = default_behavior_field(NOW), default_tendencies(NOW)
        probabilities = {
            p.behavior_class: p
            for p in compute_behavior_probabilities(field, tendencies, STATE_DEFAULTS, "an argument", FixedRng(0.5))
        }
        assert probabilities[BehaviorClass.RESPOND_DEFENSIVELY].context_modifier == pytest.approx(0.2)
        assert probabilities[BehaviorClass.OPEN_VULNERABLY].context_modifier == pytest.approx(-0.3)

    def test_field_factors_recorded(self):
        """Strong field contributions appear as factors."""
        probabilities = compute_behavior_probabilities(
            default_behavior_field(NOW), default_tendencies(NOW), STATE_DEFAULTS, None, FixedRng(0.5)
        )
        engage = next(p for p in probabilities if p.behavior_class == BehaviorClass.ENGAGE_DEEPLY)
        assert any(f.source == "behavior_field" and f.name == "engagement_intensity" for f in engage.contributing_factors)


class TestHeuristics:
    """Tests for context and state heuristics."""

    def test_support_context(self):
        """Support hints favour offering support."""
        assert context_modifier(BehaviorClass.OFFER_SUPPORT, "Need HELP") == pytest.approx(0.2)
        assert context_modifier(BehaviorClass.ENGAGE_LIGHTLY, "Need help") == 0.0

    def test_stress_favours_withdrawal(self):
        """Stress pushes toward withdrawal and away from deep engagement."""
        stressed = {StateName.ENERGY: 50.0, StateName.STRESS: 90.0, StateName.SOCIAL_CHARGE: 50.0}
        assert state_influence(BehaviorClass.WITHDRAW_GENTLY, stressed) > 0
        assert state_influence(BehaviorClass.ENGAGE_DEEPLY, stressed) < 0


# =============================================================================
# Selection
# =============================================================================


class TestSelectBehavior:
    """Tests for squared-weight sampling."""

    def test_low_draw_picks_first(self):
        """A zero draw picks the most probable class."""
        probabilities = [probability(BehaviorClass.ENGAGE_DEEPLY, 0.99), probability(BehaviorClass.WITHDRAW_FIRMLY, 0.01)]
        assert select_behavior(probabilities, FixedRng(0.0)).selected == BehaviorClass.ENGAGE_DEEPLY

    def test_high_draw_reaches_tail(self):
        """A draw beyond the first weight reaches later classes."""
        probabilities = [probability(BehaviorClass.ENGAGE_DEEPLY, 0.99), probability(BehaviorClass.WITHDRAW_FIRMLY, 0.01)]
        assert select_behavior(probabilities, FixedRng(0.99995)).selected == BehaviorClass.WITHDRAW_FIRMLY

    def test_reasoning_lists_significant_factors(self):
        """Reasoning names factors above the significance threshold."""
        factors = [ProbabilityFactor("behavior_field", "engagement_intensity", 0.45),
                   ProbabilityFactor("latent_tendency", "trust_inertia", -0.02)]
        selection = select_behavior([probability(BehaviorClass.ENGAGE_DEEPLY, 0.8, factors)], FixedRng(0.1))
        assert selection.reasoning == ["engagement_intensity: +45.0%"]
        assert selection.intensity == pytest.approx(4.0)

    def test_squared_weights_favor_likely(self):
        """Over many draws the likelier class is chosen more than proportionally."""
        rng = np.random.default_rng(42)
        probabilities = [probability(BehaviorClass.ENGAGE_LIGHTLY, 0.8), probability(BehaviorClass.DEFLECT_TOPIC, 0.4)]
        picks = [select_behavior(probabilities, rng).selected for _ in range(2000)]
        share = picks.count(BehaviorClass.ENGAGE_LIGHTLY) / len(picks)
        assert share == pytest.approx(0.8, abs=0.05)


# =============================================================================
# Field updates
# =============================================================================


class TestUpdateBehaviorField:
    """Tests for reinforcement of the selected behavior."""

    def test_reinforces_mapped_dimensions(self):
        """Mapped dimensions move by weight * intensity * 0.1 plus momentum."""
        field = default_behavior_field(NOW)
        update_behavior_field(field, BehaviorClass.ENGAGE_DEEPLY, 2.5, NOW + 1)
        vector = field.vectors[D.APPROACH_WITHDRAWAL]
        assert vector.value == pytest.approx(0.24)
        assert vector.momentum == pytest.approx(0.04)
        assert vector.uncertainty == pytest.approx(19.9)
        assert field.vectors[D.CURIOSITY_BIAS].value == 20.0
        assert len(field.history) == 1

    def test_values_clamped(self):
        """Reinforcement never leaves a dimension's bounds."""
        field = default_behavior_field(NOW)
        for i in range(500):
            update_behavior_field(field, BehaviorClass.WITHDRAW_FIRMLY, 5.0, NOW + i)
        assert field.vectors[D.APPROACH_WITHDRAWAL].value == -100.0
        assert field.vectors[D.RESISTANCE_DEFENSIVENESS].value == 100.0


class TestProjectTendencies:
    """Tests for tendency projection onto the field."""

    def test_tendencies_at_baseline_do_nothing(self):
        """Undrifted tendencies leave the field alone."""
        assert project_tendencies(default_behavior_field(NOW), default_tendencies(NOW), NOW) == {}

    def test_additive_projection(self):
        """Additive targets move by deviation * strength."""
        tendencies = default_tendencies(NOW)
        tendencies[LatentTendencyName.ATTACHMENT_DRIFT].current_value = 20.0
        field = default_behavior_field(NOW)
        changes = project_tendencies(field, {LatentTendencyName.ATTACHMENT_DRIFT: tendencies[LatentTendencyName.ATTACHMENT_DRIFT]}, NOW)
        assert changes == {D.APPROACH_WITHDRAWAL: pytest.approx(0.08)}

    def test_multiplicative_projection(self):
        """Multiplicative targets scale with the current dimension value."""
        tendencies = default_tendencies(NOW)
        trust = tendencies[LatentTendencyName.TRUST_INERTIA]
        trust.current_value = 70.0
        field = default_behavior_field(NOW)
        changes = project_tendencies(field, {LatentTendencyName.TRUST_INERTIA: trust}, NOW)
        assert changes[D.EMOTIONAL_OPENNESS] == pytest.approx(30.0 * 0.5 * 0.2 * 0.1)
        assert changes[D.VULNERABILITY_EXPOSURE] == pytest.approx(25.0 * 0.4 * 0.2 * 0.1)
