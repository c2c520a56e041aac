"""Tests for emergence monitors and the phenomenon lifecycle."""

import pytest

from charsim.conditions import Comparator, OperandKind, check
from charsim.emergence.behavior_field import default_behavior_field
from charsim.emergence.monitor import (
    METRIC_NOVELTY,
    METRIC_TOTAL_DRIFT,
    EmergenceContext,
    EmergenceMonitor,
    EmergentPhenomenon,
    PatternMatchCondition,
    RateOfChangeCondition,
    RateSource,
    ThresholdCondition,
    default_monitors,
    expire_phenomena,
    predict_trajectory,
    scan_for_emergence,
    trigger_from_dict,
)
from charsim.emergence.patterns import PatternAccumulator, PatternSignature
from charsim.emergence.schemas import (
    BehaviorFieldDimension,
    EmergenceType,
    LatentTendencyName,
    PatternType,
    PhenomenonStatus,
    RiskLevel,
    Severity,
)
from charsim.emergence.tendencies import default_tendencies
from charsim.errors import InvalidTransitionError
from charsim.simulation.schemas import StateName

NOW = 1_700_000_000_000
HOUR = 3_600_000
E = EmergenceType
D = BehaviorFieldDimension


class Counter:
    def __init__(self):
        self.n = 0

    def __call__(self) -> str:
        self.n += 1
        return f"phen_{self.n:05d}"


@pytest.fixture
def context(profile):
    return EmergenceContext(
        states=profile.states,
        tendencies=default_tendencies(NOW),
        behavior_field=default_behavior_field(NOW),
        accumulator=PatternAccumulator(),
        now_ms=NOW,
    )


def signature(sig_id="sig_00001", pattern_type=PatternType.APPROACH_PATTERN, strength=0.5, count=1, novelty=1.0):
    return PatternSignature(
        id=sig_id,
        signature_type=pattern_type,
        fingerprint=f"{pattern_type.value}:{sig_id}",
        strength=strength,
        first_observed_at=NOW,
        last_observed_at=NOW,
        observation_count=count,
        novelty_score=novelty,
    )


def phenomenon(severity=Severity.CRITICAL, detected_at=NOW) -> EmergentPhenomenon:
    return EmergentPhenomenon(
        id="phen_00001",
        emergence_type=E.OVER_ENGAGEMENT,
        severity=severity,
        confidence=1.0,
        detected_at=detected_at,
        trajectory=predict_trajectory(E.OVER_ENGAGEMENT, severity, 1.0),
    )


# =============================================================================
# Context and conditions
# =============================================================================


class TestContext:
    """Tests for the scan's view of the system."""

    def test_metrics_at_rest(self, context):
        """A fresh system has no drift and no recurring novelty."""
        assert context.metrics() == {METRIC_TOTAL_DRIFT: 0.0, METRIC_NOVELTY: 0.0}

    def test_total_drift(self, context):
        """Total drift sums absolute tendency deviations."""
        context.tendencies[LatentTendencyName.TRUST_INERTIA].current_value = 40.0
        context.tendencies[LatentTendencyName.ATTACHMENT_DRIFT].current_value = 5.0
        assert context.metrics()[METRIC_TOTAL_DRIFT] == pytest.approx(15.0)

    def test_novelty_only_counts_recurring(self, context):
        """Signatures below min_observations do not count toward novelty."""
        context.accumulator.signatures["a"] = signature("a", count=1, novelty=1.0)
        context.accumulator.signatures["b"] = signature("b", count=3, novelty=0.8)
        assert context.metrics()[METRIC_NOVELTY] == pytest.approx(0.8)

    def test_resolver(self, context):
        """The resolver reads states, tendencies and field dimensions by name."""
        resolve = context.resolver()
        assert resolve(OperandKind.STATE, "energy") == 70.0
        assert resolve(OperandKind.TENDENCY, "trust_inertia") == 50.0
        assert resolve(OperandKind.FIELD, "curiosity_bias") == 20.0
        assert resolve(OperandKind.STATE, "mana") is None


class TestTriggerConditions:
    """Tests for the three trigger condition kinds."""

    def test_threshold_requires_all_checks(self, context):
        """Threshold conditions hold only when every check holds."""
        condition = ThresholdCondition([
            check(OperandKind.STATE, "energy", Comparator.GTE, 60),
            check(OperandKind.STATE, "stress", Comparator.GTE, 60),
        ])
        assert not condition.holds(context)
        context.states[StateName.STRESS].current_value = 70.0
        assert condition.holds(context)

    def test_field_rate_of_change(self, context):
        """Field rates compare against the snapshot one period ago."""
        field = context.behavior_field
        field.snapshot(NOW - HOUR)
        field.vectors[D.APPROACH_WITHDRAWAL].value = -10.0
        condition = RateOfChangeCondition(RateSource.FIELD, D.APPROACH_WITHDRAWAL.value, -5, HOUR)
        assert condition.change(context) == pytest.approx(-10.0)
        assert condition.holds(context)

    def test_tendency_rate_without_history(self, context):
        """A tendency with no history has not changed."""
        condition = RateOfChangeCondition(RateSource.TENDENCY, LatentTendencyName.TRUST_INERTIA.value, 15, HOUR)
        assert condition.change(context) == 0.0
        assert not condition.holds(context)

    def test_unknown_source_name_never_holds(self, context):
        """Unknown names resolve to no change."""
        assert not RateOfChangeCondition(RateSource.FIELD, "charisma", 1, HOUR).holds(context)
        assert not RateOfChangeCondition(RateSource.PATTERN, "", -0.3, HOUR).holds(context)

    def test_pattern_rate_uses_weakest_for_drops(self, context):
        """Falling pattern rates look at the largest drop."""
        weakened = signature("a", strength=0.9)
        weakened.record_strength(NOW - 2 * HOUR)
        weakened.strength = 0.4
        context.accumulator.signatures["a"] = weakened
        context.accumulator.signatures["b"] = signature("b", strength=0.6)
        condition = RateOfChangeCondition(RateSource.PATTERN, "", -0.3, HOUR)
        assert condition.change(context) == pytest.approx(-0.5)
        assert condition.holds(context)

    def test_pattern_match(self, context):
        """Pattern matches filter by type, strength and observations."""
        context.accumulator.signatures["a"] = signature("a", PatternType.ESCALATION_PATTERN, strength=0.7, count=4)
        assert PatternMatchCondition(PatternType.ESCALATION_PATTERN, min_strength=0.6).holds(context)
        assert not PatternMatchCondition(PatternType.AVOIDANCE_PATTERN, min_strength=0.6).holds(context)
        assert not PatternMatchCondition(None, min_strength=0.6, min_observations=10).holds(context)

    def test_unknown_condition_type(self):
        """Unknown condition types are rejected."""
        with pytest.raises(ValueError):
            trigger_from_dict({"condition_type": "vibes"})


# =============================================================================
# Scanning
# =============================================================================


class TestScan:
    """Tests for scan_for_emergence."""

    def test_one_monitor_per_type(self):
        """Every emergence type has a monitor."""
        assert set(default_monitors()) == set(EmergenceType)

    def test_quiet_system(self, context):
        """A system at rest raises nothing."""
        assert scan_for_emergence(default_monitors(), context, Counter()) == []

    def test_over_engagement_detected(self, context):
        """Saturated engagement raises an over-engagement phenomenon."""
        context.behavior_field.vectors[D.ENGAGEMENT_INTENSITY].value = 90.0
        monitors = default_monitors()
        (detected,) = scan_for_emergence(monitors, context, Counter())

        assert detected.id == "phen_00001"
        assert detected.emergence_type == E.OVER_ENGAGEMENT
        assert detected.confidence == 1.0
        assert detected.severity == Severity.CRITICAL
        assert detected.status == PhenomenonStatus.DETECTED
        assert detected.trajectory.timeframe_hours == 2
        assert detected.trajectory.risk_level == RiskLevel.SEVERE
        assert detected.trajectory.confidence == pytest.approx(0.8)
        assert detected.reasoning[0] == "Detected over_engagement with 100% confidence"
        assert monitors[E.OVER_ENGAGEMENT].last_triggered_at == NOW

    def test_cooldown(self, context):
        """A triggered monitor stays quiet until its cooldown passes."""
        context.behavior_field.vectors[D.ENGAGEMENT_INTENSITY].value = 90.0
        monitors = default_monitors()
        scan_for_emergence(monitors, context, Counter())
        context.now_ms = NOW + HOUR // 4
        assert scan_for_emergence(monitors, context, Counter()) == []
        context.now_ms = NOW + HOUR // 2
        assert len(scan_for_emergence(monitors, context, Counter())) == 1

    def test_inactive_monitor_skipped(self, context):
        """Inactive monitors are never evaluated."""
        context.behavior_field.vectors[D.ENGAGEMENT_INTENSITY].value = 90.0
        monitors = default_monitors()
        monitors[E.OVER_ENGAGEMENT].is_active = False
        assert scan_for_emergence(monitors, context, Counter()) == []

    def test_weighted_confidence(self, context):
        """Confidence is the weighted share of holding conditions."""
        context.states[StateName.EMOTIONAL_AROUSAL].current_value = 90.0
        monitors = default_monitors()
        assert monitors[E.EMOTIONAL_FLOODING].confidence(context) == pytest.approx(0.5)
        assert scan_for_emergence(monitors, context, Counter()) == []

        context.states[StateName.FATIGUE_EMOTIONAL].current_value = 75.0
        (detected,) = scan_for_emergence(monitors, context, Counter())
        assert detected.emergence_type == E.EMOTIONAL_FLOODING

    def test_withdrawal_spiral_needs_both(self, context):
        """Deep withdrawal alone is below sensitivity; a fast drop completes it."""
        field = context.behavior_field
        field.vectors[D.APPROACH_WITHDRAWAL].value = -70.0
        monitor = default_monitors()[E.WITHDRAWAL_SPIRAL]
        assert monitor.confidence(context) == pytest.approx(0.6)

        field.vectors[D.APPROACH_WITHDRAWAL].value = 0.0
        field.snapshot(NOW - HOUR)
        field.vectors[D.APPROACH_WITHDRAWAL].value = -70.0
        assert monitor.confidence(context) == pytest.approx(1.0)

    def test_contributions_recorded(self, context):
        """Deviating states and strong patterns are attached to phenomena."""
        context.behavior_field.vectors[D.ENGAGEMENT_INTENSITY].value = 90.0
        context.states[StateName.STRESS].current_value = 60.0
        context.accumulator.signatures["sig_00001"] = signature(strength=0.8)
        (detected,) = scan_for_emergence(default_monitors(), context, Counter())

        (state,) = detected.contributing_states
        assert state.name == "stress"
        assert state.signal == pytest.approx(35.0)
        assert state.weight == pytest.approx(0.7)
        assert [p.name for p in detected.contributing_patterns] == ["sig_00001"]
        assert detected.contributing_tendencies == []

    def test_monitor_round_trip(self):
        """Monitors survive serialization with every condition kind."""
        for monitor in default_monitors().values():
            assert EmergenceMonitor.from_dict(monitor.to_dict()).to_dict() == monitor.to_dict()


# =============================================================================
# Lifecycle
# =============================================================================


class TestPhenomenonLifecycle:
    """Tests for forward-only status transitions."""

    def test_govern_then_resolve(self):
        """Phenomena move detected, governed, resolved with timestamps."""
        item = phenomenon()
        item.govern("gov_00001", NOW + 1)
        assert item.status == PhenomenonStatus.GOVERNED
        assert item.governed_at == NOW + 1
        assert item.governance_response_id == "gov_00001"
        item.resolve(NOW + 2)
        assert item.resolved_at == NOW + 2
        assert not item.is_active

    def test_cannot_govern_twice(self):
        """Governed phenomena cannot be governed again."""
        item = phenomenon()
        item.govern("gov_00001", NOW)
        with pytest.raises(InvalidTransitionError):
            item.govern("gov_00002", NOW)

    def test_cannot_reopen(self):
        """Resolved phenomena never move backwards."""
        item = phenomenon()
        item.resolve(NOW)
        with pytest.raises(InvalidTransitionError):
            item.transition(PhenomenonStatus.DETECTED, NOW)
        with pytest.raises(InvalidTransitionError):
            item.govern("gov_00001", NOW)

    def test_resolve_is_idempotent(self):
        """Resolving twice keeps the first resolution time."""
        item = phenomenon()
        item.resolve(NOW)
        item.resolve(NOW + 5)
        assert item.resolved_at == NOW

    def test_round_trip(self):
        """Phenomena survive serialization."""
        item = phenomenon()
        item.govern("gov_00001", NOW + 1)
        assert EmergentPhenomenon.from_dict(item.to_dict()).to_dict() == item.to_dict()


class TestExpirePhenomena:
    """Tests for timeframe expiry."""

    def test_expires_at_timeframe(self):
        """Detected phenomena resolve once their predicted timeframe passes."""
        item = phenomenon(Severity.CRITICAL)
        assert expire_phenomena([item], NOW + 2 * HOUR - 1) == []
        assert expire_phenomena([item], NOW + 2 * HOUR) == [item]
        assert item.status == PhenomenonStatus.RESOLVED

    def test_governed_not_expired(self):
        """Governed phenomena are resolved by their governance, not expiry."""
        item = phenomenon(Severity.LOW)
        item.govern("gov_00001", NOW)
        assert expire_phenomena([item], NOW + 48 * HOUR) == []
        assert item.status == PhenomenonStatus.GOVERNED

    @pytest.mark.parametrize(
        "confidence,severity",
        [(0.95, Severity.CRITICAL), (0.8, Severity.HIGH), (0.6, Severity.MODERATE), (0.3, Severity.LOW)],
    )
    def test_severity_from_confidence(self, confidence, severity):
        """Severity bands follow confidence."""
        assert Severity.from_confidence(confidence) == severity
