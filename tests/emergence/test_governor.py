"""Tests for the soft governor."""

import pytest

from charsim.emergence.behavior_field import default_behavior_field
from charsim.emergence.governor import (
    ACTION_MAP,
    UNKNOWN_TARGET,
    GovernanceResponse,
    GovernedSystems,
    SoftGovernor,
    apply_effect,
    apply_governance,
    select_action,
    tick_governance,
)
from charsim.emergence.monitor import Contribution, EmergentPhenomenon, predict_trajectory
from charsim.emergence.patterns import PatternAccumulator, PatternSignature
from charsim.emergence.schemas import (
    BehaviorFieldDimension,
    EmergenceConfig,
    EmergenceType,
    GovernanceAction,
    GovernancePhilosophy,
    LatentTendencyName,
    PatternType,
    PhenomenonStatus,
    Severity,
    TargetSystem,
)
from charsim.emergence.tendencies import default_tendencies
from charsim.simulation.schemas import StateName

NOW = 1_700_000_000_000
MINUTE = 60_000
HOUR = 3_600_000
E = EmergenceType
A = GovernanceAction
D = BehaviorFieldDimension


class Counter:
    def __init__(self):
        self.n = 0

    def __call__(self) -> str:
        self.n += 1
        return f"gov_{self.n:05d}"


@pytest.fixture
def systems(profile):
    return GovernedSystems(
        behavior_field=default_behavior_field(NOW),
        tendencies=default_tendencies(NOW),
        accumulator=PatternAccumulator(),
        states=profile.states,
    )


def phenomenon(emergence_type=E.OVER_ENGAGEMENT, severity=Severity.CRITICAL, confidence=1.0, **contributions):
    return EmergentPhenomenon(
        id="phen_00001",
        emergence_type=emergence_type,
        severity=severity,
        confidence=confidence,
        detected_at=NOW,
        trajectory=predict_trajectory(emergence_type, severity, confidence),
        **contributions,
    )


def response(action, intensity=0.5, target_system=TargetSystem.BEHAVIOR_FIELD, target_id="all", duration_ms=HOUR):
    return GovernanceResponse(
        id="gov_00001",
        phenomenon_id="phen_00001",
        action=action,
        intensity=intensity,
        target_system=target_system,
        target_id=target_id,
        applied_at=NOW,
        duration_ms=duration_ms,
        expected_effect="test",
    )


# =============================================================================
# Selection
# =============================================================================


class TestSelectAction:
    """Tests for mapping phenomena to actions."""

    def test_mapped_action(self):
        """Mapped phenomena get their action when allowed."""
        assert select_action(phenomenon(), GovernancePhilosophy()) == A.COOLDOWN_ENFORCEMENT

    def test_unmapped_moderate_declined(self):
        """Unmapped, non-critical phenomena get no action."""
        item = phenomenon(E.ATTACHMENT_SHIFT, Severity.MODERATE, 0.6)
        assert select_action(item, GovernancePhilosophy()) is None

    def test_emergency_override(self):
        """Critical, confident phenomena fall back to field stabilization."""
        item = phenomenon(E.ATTACHMENT_SHIFT, Severity.CRITICAL, 0.95)
        assert select_action(item, GovernancePhilosophy()) == A.FIELD_STABILIZATION

    def test_map_only_uses_known_types(self):
        """The action map covers a subset of emergence types."""
        assert set(ACTION_MAP) <= set(EmergenceType)

    def test_philosophy_rejects_overlap(self):
        """An action cannot be both allowed and forbidden."""
        with pytest.raises(ValueError):
            GovernancePhilosophy(allowed_actions=[A.GRADUAL_RESET], forbidden_actions=[A.GRADUAL_RESET])


# =============================================================================
# Applying governance
# =============================================================================


class TestApplyGovernance:
    """Tests for accepting and declining phenomena."""

    def test_accepts_and_governs(self, systems):
        """An accepted phenomenon is governed and the effect applied once."""
        systems.behavior_field.vectors[D.ENGAGEMENT_INTENSITY].value = 90.0
        governor = SoftGovernor()
        item = phenomenon()
        result = apply_governance(governor, item, systems, NOW, Counter())

        assert result.id == "gov_00001"
        assert result.action == A.COOLDOWN_ENFORCEMENT
        assert result.intensity == pytest.approx(0.5)
        assert result.duration_ms == 2 * 1_800_000
        assert result.target_id == D.ENGAGEMENT_INTENSITY.value
        assert item.status == PhenomenonStatus.GOVERNED
        assert item.governance_response_id == "gov_00001"
        assert governor.active_responses == [result]
        assert governor.last_governance_at == NOW
        assert systems.behavior_field.vectors[D.ENGAGEMENT_INTENSITY].value == pytest.approx(80.0)

    def test_severity_scales(self, systems):
        """Lower severity means weaker, shorter corrections."""
        result = apply_governance(SoftGovernor(), phenomenon(severity=Severity.HIGH), systems, NOW, Counter())
        assert result.intensity == pytest.approx(0.35)
        assert result.duration_ms == int(1_800_000 * 1.7)

    def test_declines_inside_cooldown(self, systems):
        """A second action inside the global cooldown is declined."""
        governor = SoftGovernor()
        apply_governance(governor, phenomenon(), systems, NOW, Counter())
        second = phenomenon(E.DEFENSE_ESCALATION)
        assert apply_governance(governor, second, systems, NOW + MINUTE, Counter()) is None
        assert second.status == PhenomenonStatus.DETECTED

    def test_declines_at_capacity(self, systems):
        """No new action while the concurrency cap is reached."""
        governor = SoftGovernor(active_responses=[response(A.FIELD_STABILIZATION) for _ in range(3)])
        assert apply_governance(governor, phenomenon(), systems, NOW, Counter()) is None

    def test_declines_forbidden(self, systems):
        """Forbidden fallbacks are declined."""
        philosophy = GovernancePhilosophy(
            allowed_actions=[A.BIAS_REBALANCING],
            forbidden_actions=[A.FIELD_STABILIZATION, A.GRADUAL_RESET],
        )
        governor = SoftGovernor(philosophy=philosophy)
        item = phenomenon()
        assert apply_governance(governor, item, systems, NOW, Counter()) is None
        assert item.status == PhenomenonStatus.DETECTED
        assert governor.last_governance_at is None

    def test_pattern_target_from_contributions(self, systems):
        """Pattern actions target the strongest contributing signature."""
        item = phenomenon(
            E.PATTERN_CRYSTALLIZATION,
            contributing_patterns=[Contribution("pattern", "sig_00007", 0.95, 1.0, 0.95)],
        )
        result = apply_governance(SoftGovernor(), item, systems, NOW, Counter())
        assert result.target_system == TargetSystem.PATTERN
        assert result.target_id == "sig_00007"

    def test_tendency_target_from_contributions(self, systems):
        """Tendency actions prefer the first contributing tendency."""
        item = phenomenon(
            E.TRUST_COLLAPSE,
            contributing_tendencies=[Contribution("tendency", "attachment_drift", -10.0, -0.5, 2.5)],
        )
        result = apply_governance(SoftGovernor(), item, systems, NOW, Counter())
        assert result.action == A.RECOVERY_PRESSURE_INCREASE
        assert result.target_id == "attachment_drift"


# =============================================================================
# Ticking governance
# =============================================================================


class TestTickGovernance:
    """Tests for fading and expiry."""

    def test_strength_fades_linearly(self):
        """Halfway through, a response acts at half intensity."""
        item = response(A.FIELD_STABILIZATION, intensity=0.5, duration_ms=HOUR)
        assert item.strength_at(NOW + HOUR // 2) == pytest.approx(0.25)
        assert item.strength_at(NOW + 2 * HOUR) == 0.0

    def test_expires_exactly_at_duration(self, systems):
        """Responses complete once elapsed time reaches the duration."""
        governor = SoftGovernor()
        item = phenomenon()
        result = apply_governance(governor, item, systems, NOW, Counter())
        phenomena = {item.id: item}

        assert tick_governance(governor, systems, phenomena, NOW + result.duration_ms - 1) == []
        assert governor.active_responses == [result]

        completed = tick_governance(governor, systems, phenomena, NOW + result.duration_ms)
        assert completed == [result]
        assert governor.active_responses == []
        assert governor.history == [result]
        assert not result.is_active
        assert result.completed_at == NOW + result.duration_ms
        assert result.actual_effect == "Completed"
        assert item.status == PhenomenonStatus.RESOLVED
        assert item.resolved_at == NOW + result.duration_ms

    def test_reapplies_while_active(self, systems):
        """Active responses keep acting on each tick."""
        systems.behavior_field.vectors[D.RESISTANCE_DEFENSIVENESS].value = 80.0
        governor = SoftGovernor(active_responses=[response(A.RESISTANCE_MODULATION, duration_ms=HOUR)])
        tick_governance(governor, systems, {}, NOW + HOUR // 2)
        assert systems.behavior_field.vectors[D.RESISTANCE_DEFENSIVENESS].value == pytest.approx(77.5)

    def test_history_bounded(self, systems):
        """Completed responses are archived up to the history limit."""
        governor = SoftGovernor(history_limit=2)
        governor.active_responses = [response(A.FIELD_STABILIZATION, duration_ms=1) for _ in range(3)]
        tick_governance(governor, systems, {}, NOW + 1)
        assert len(governor.history) == 2


# =============================================================================
# Effects
# =============================================================================


class TestEffects:
    """Tests for individual governance effects."""

    def test_zero_strength_noop(self, systems):
        """No strength, no change."""
        before = systems.behavior_field.to_dict()
        apply_effect(response(A.BIAS_REBALANCING), 0.0, systems, 0.1, NOW)
        assert systems.behavior_field.to_dict() == before

    def test_bias_rebalancing(self, systems):
        """Rebalancing pulls every dimension toward its default."""
        systems.behavior_field.vectors[D.APPROACH_WITHDRAWAL].value = -50.0
        apply_effect(response(A.BIAS_REBALANCING), 0.5, systems, 0.1, NOW)
        assert systems.behavior_field.vectors[D.APPROACH_WITHDRAWAL].value == pytest.approx(-47.5)
        assert systems.behavior_field.vectors[D.CURIOSITY_BIAS].value == pytest.approx(20.0)

    def test_field_stabilization(self, systems):
        """Stabilization damps momentum and raises uncertainty."""
        vector = systems.behavior_field.vectors[D.APPROACH_WITHDRAWAL]
        vector.momentum = 1.0
        apply_effect(response(A.FIELD_STABILIZATION), 0.5, systems, 0.1, NOW)
        assert vector.momentum == pytest.approx(0.75)
        assert vector.uncertainty == pytest.approx(22.0)

    def test_cooldown_floor(self, systems):
        """Cooldown never pushes engagement below its floor."""
        vector = systems.behavior_field.vectors[D.ENGAGEMENT_INTENSITY]
        vector.value = 32.0
        apply_effect(response(A.COOLDOWN_ENFORCEMENT), 0.5, systems, 0.1, NOW)
        assert vector.value == pytest.approx(30.0)

    def test_drift_dampening(self, systems):
        """Dampening scales every tendency's velocity."""
        for tendency in systems.tendencies.values():
            tendency.velocity = 2.0
        apply_effect(response(A.DRIFT_DAMPENING, target_system=TargetSystem.TENDENCY), 0.5, systems, 0.1, NOW)
        assert all(t.velocity == pytest.approx(1.0) for t in systems.tendencies.values())

    def test_pattern_weakening_floor(self, systems):
        """Weakening stops at the strength floor."""
        strong = PatternSignature("sig_00001", PatternType.APPROACH_PATTERN, "fp1", 0.9, NOW, NOW)
        weak = PatternSignature("sig_00002", PatternType.APPROACH_PATTERN, "fp2", 0.32, NOW, NOW)
        systems.accumulator.signatures = {strong.id: strong, weak.id: weak}
        for target in (strong.id, weak.id):
            apply_effect(response(A.PATTERN_WEAKENING, target_system=TargetSystem.PATTERN, target_id=target),
                         0.5, systems, 0.1, NOW)
        assert strong.strength == pytest.approx(0.85)
        assert weak.strength == pytest.approx(0.3)

    def test_unknown_pattern_target(self, systems):
        """An unknown target leaves patterns untouched."""
        signature = PatternSignature("sig_00001", PatternType.APPROACH_PATTERN, "fp", 0.9, NOW, NOW)
        systems.accumulator.signatures = {signature.id: signature}
        apply_effect(response(A.PATTERN_WEAKENING, target_system=TargetSystem.PATTERN, target_id=UNKNOWN_TARGET),
                     0.5, systems, 0.1, NOW)
        assert signature.strength == 0.9

    def test_recovery_pressure_increase(self, systems):
        """Recovery pulls the target tendency and deviating states back."""
        trust = systems.tendencies[LatentTendencyName.TRUST_INERTIA]
        trust.current_value = 20.0
        systems.states[StateName.STRESS].current_value = 60.0
        apply_effect(
            response(A.RECOVERY_PRESSURE_INCREASE, target_system=TargetSystem.TENDENCY, target_id="trust_inertia"),
            0.5, systems, 0.1, NOW,
        )
        assert trust.current_value == pytest.approx(21.5)
        assert systems.states[StateName.STRESS].current_value == pytest.approx(58.25)
        assert systems.states[StateName.ENERGY].current_value == 70.0


class TestSoftGovernor:
    """Tests for governor construction and persistence."""

    def test_from_config(self):
        """Config settings carry into the governor."""
        governor = SoftGovernor.from_config(EmergenceConfig(rebalancing_rate=0.2, governance_history=5))
        assert governor.rebalancing_rate == 0.2
        assert governor.history_limit == 5

    def test_round_trip(self, systems):
        """Governor state survives serialization."""
        governor = SoftGovernor()
        apply_governance(governor, phenomenon(), systems, NOW, Counter())
        assert SoftGovernor.from_dict(governor.to_dict()).to_dict() == governor.to_dict()
