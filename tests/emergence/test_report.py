"""Tests for the explainability report."""

import pytest

from charsim.emergence.governor import GovernanceResponse
from charsim.emergence.monitor import EmergentPhenomenon, predict_trajectory
from charsim.emergence.patterns import PatternSignature
from charsim.emergence.report import (
    analyze_emergence,
    analyze_field,
    analyze_governance,
    analyze_patterns,
    analyze_tendencies,
    generate_explainability_report,
)
from charsim.emergence.schemas import (
    BehaviorFieldDimension,
    EmergenceConfig,
    EmergenceType,
    GovernanceAction,
    LatentTendencyName,
    PatternType,
    RiskLevel,
    Severity,
    TargetSystem,
)
from charsim.emergence.system import new_emergence_state
from charsim.emergence.tendencies import default_tendencies

NOW = 1_700_000_000_000
HOUR = 3_600_000


@pytest.fixture
def emergence():
    return new_emergence_state("char-1", EmergenceConfig(), NOW)


def phenomenon(phen_id, severity=Severity.LOW, detected_at=NOW):
    return EmergentPhenomenon(
        id=phen_id,
        emergence_type=EmergenceType.DEFENSE_ESCALATION,
        severity=severity,
        confidence=0.7,
        detected_at=detected_at,
        trajectory=predict_trajectory(EmergenceType.DEFENSE_ESCALATION, severity, 0.7),
    )


def governance(gov_id, action=GovernanceAction.FIELD_STABILIZATION, applied_at=NOW, actual_effect=None):
    return GovernanceResponse(
        id=gov_id,
        phenomenon_id="phen_00001",
        action=action,
        intensity=0.5,
        target_system=TargetSystem.BEHAVIOR_FIELD,
        target_id="all",
        applied_at=applied_at,
        duration_ms=HOUR,
        expected_effect="test",
        actual_effect=actual_effect,
    )


def signature(sig_id, pattern_type, novel=True):
    return PatternSignature(
        id=sig_id,
        signature_type=pattern_type,
        fingerprint=sig_id,
        strength=0.5,
        first_observed_at=NOW,
        last_observed_at=NOW,
        is_novel=novel,
    )


class TestGenerateReport:
    """Tests for the full report."""

    def test_fresh_character(self, emergence):
        """A fresh character reports a calm, stable system."""
        report = generate_explainability_report(emergence, NOW + HOUR)
        assert report.character_id == "char-1"
        assert report.timeframe_end == NOW + HOUR
        assert report.timeframe_start == NOW + HOUR - 24 * HOUR
        assert report.behavior_field.stability_trend == "stable"
        assert report.behavior_field.dominant_dimension == BehaviorFieldDimension.ENGAGEMENT_INTENSITY
        assert report.patterns.total_patterns == 0
        assert report.tendencies.stability_score == 100.0
        assert report.emergence.overall_risk_level == RiskLevel.LOW
        assert report.governance.actions_applied == 0
        assert report.recommendations == ["System operating within normal parameters"]
        assert "0 patterns tracked (0 novel)." in report.summary

    def test_timeframe_filters_history(self, emergence):
        """Only phenomena and responses inside the timeframe are counted."""
        emergence.phenomena = [
            phenomenon("old", Severity.CRITICAL, detected_at=NOW - 48 * HOUR),
            phenomenon("new", Severity.HIGH),
        ]
        emergence.governor.history = [governance("g1", applied_at=NOW - 48 * HOUR, actual_effect="Completed")]
        recent = governance("g2", GovernanceAction.BIAS_REBALANCING)
        emergence.governor.active_responses = [recent]

        report = generate_explainability_report(emergence, NOW + HOUR, timeframe_hours=24)
        assert report.emergence.active_emergences == 1
        assert report.emergence.critical_events == 1
        assert report.emergence.overall_risk_level == RiskLevel.HIGH
        assert report.governance.actions_applied == 1
        assert report.governance.most_common_action == GovernanceAction.BIAS_REBALANCING
        assert "High emergence risk - active governance recommended" in report.recommendations
        assert "1 active emergent phenomena detected." in report.summary

    def test_responses_deduplicated(self, emergence):
        """A response in both history and active lists is counted once."""
        response = governance("g1")
        emergence.governor.history = [response]
        emergence.governor.active_responses = [response]
        report = generate_explainability_report(emergence, NOW)
        assert report.governance.actions_applied == 1

    def test_serializable(self, emergence):
        """Reports dump to plain JSON-compatible data."""
        data = generate_explainability_report(emergence, NOW).model_dump(mode="json")
        assert data["behavior_field"]["dominant_dimension"] == "engagement_intensity"
        assert len(data["behavior_field"]["dimension_breakdown"]) == len(BehaviorFieldDimension)


class TestAnalyses:
    """Tests for the individual analyses."""

    def test_field_trends(self, emergence):
        """Momentum sign sets each dimension's trend."""
        field = emergence.behavior_field
        field.vectors[BehaviorFieldDimension.CURIOSITY_BIAS].momentum = 0.5
        field.vectors[BehaviorFieldDimension.NOVELTY_FAMILIARITY].momentum = -0.5
        trends = {b.dimension: b.trend for b in analyze_field(field).dimension_breakdown}
        assert trends[BehaviorFieldDimension.CURIOSITY_BIAS] == "increasing"
        assert trends[BehaviorFieldDimension.NOVELTY_FAMILIARITY] == "decreasing"
        assert trends[BehaviorFieldDimension.APPROACH_WITHDRAWAL] == "stable"

    def test_volatile_field(self, emergence):
        """Low coherence reads as volatile."""
        field = emergence.behavior_field
        field.vectors[BehaviorFieldDimension.APPROACH_WITHDRAWAL].value = -100.0
        field.vectors[BehaviorFieldDimension.ENGAGEMENT_INTENSITY].value = 100.0
        field.recompute_metrics()
        assert analyze_field(field).stability_trend == "volatile"

    def test_patterns(self):
        """Pattern counts, novelty and diversity."""
        analysis = analyze_patterns([
            signature("a", PatternType.APPROACH_PATTERN),
            signature("b", PatternType.APPROACH_PATTERN, novel=False),
            signature("c", PatternType.AVOIDANCE_PATTERN),
        ])
        assert analysis.total_patterns == 3
        assert analysis.novel_patterns == 2
        assert analysis.dominant_pattern_type == PatternType.APPROACH_PATTERN
        assert analysis.pattern_diversity == pytest.approx(2 / len(PatternType))
        assert analysis.recent_pattern_trend == "stable"

    def test_tendencies(self):
        """Drifting tendencies lower stability and are flagged."""
        tendencies = default_tendencies(NOW)
        tendencies[LatentTendencyName.TRUST_INERTIA].current_value = 80.0
        tendencies[LatentTendencyName.AVOIDANCE_GRADIENT].velocity = 0.6
        analysis = analyze_tendencies(tendencies)
        assert analysis.overall_drift == pytest.approx(3.0)
        assert analysis.stability_score == pytest.approx(94.0)
        assert analysis.most_active_tendency == LatentTendencyName.AVOIDANCE_GRADIENT
        assert analysis.concerning_tendencies == [
            LatentTendencyName.AVOIDANCE_GRADIENT, LatentTendencyName.TRUST_INERTIA,
        ]

    def test_emergence_risk(self):
        """Many active, mild phenomena are a moderate risk."""
        analysis = analyze_emergence([phenomenon(str(i)) for i in range(3)])
        assert analysis.overall_risk_level == RiskLevel.MODERATE
        assert analysis.resolved_emergences == 0

    def test_governance_effectiveness(self):
        """Effectiveness is the share of responses with a recorded effect."""
        analysis = analyze_governance([governance("a", actual_effect="Completed"), governance("b")])
        assert analysis.average_effectiveness == pytest.approx(0.5)
        assert analysis.governance_load == 2
