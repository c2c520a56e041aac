"""Explainability report over a character's emergence state."""

from __future__ import annotations

from collections import Counter

from pydantic import BaseModel, Field

from charsim.emergence.behavior_field import BehaviorField
from charsim.emergence.governor import GovernanceResponse
from charsim.emergence.monitor import EmergentPhenomenon
from charsim.emergence.patterns import PatternSignature
from charsim.emergence.schemas import (
    BehaviorFieldDimension,
    GovernanceAction,
    LatentTendencyName,
    PatternType,
    RiskLevel,
    Severity,
)
from charsim.emergence.system import EmergenceState
from charsim.emergence.tendencies import LatentTendency

MS_PER_HOUR = 3600000
MOMENTUM_TREND_THRESHOLD = 0.1
CONCERNING_VELOCITY = 0.5
CONCERNING_DRIFT = 20.0


class DimensionBreakdown(BaseModel):
    dimension: BehaviorFieldDimension
    value: float
    trend: str


class FieldAnalysis(BaseModel):
    dominant_dimension: BehaviorFieldDimension = BehaviorFieldDimension.APPROACH_WITHDRAWAL
    coherence: float
    entropy: float
    stability_trend: str
    dimension_breakdown: list[DimensionBreakdown] = Field(default_factory=list)


class PatternAnalysis(BaseModel):
    total_patterns: int
    novel_patterns: int
    dominant_pattern_type: PatternType = PatternType.RESPONSE_BIAS_PERSISTENCE
    pattern_diversity: float
    recent_pattern_trend: str


class TendencyAnalysis(BaseModel):
    overall_drift: float
    most_active_tendency: LatentTendencyName = LatentTendencyName.ATTACHMENT_DRIFT
    stability_score: float
    concerning_tendencies: list[LatentTendencyName] = Field(default_factory=list)


class EmergenceAnalysis(BaseModel):
    active_emergences: int
    resolved_emergences: int
    critical_events: int
    overall_risk_level: RiskLevel


class GovernanceAnalysis(BaseModel):
    actions_applied: int
    average_effectiveness: float
    most_common_action: GovernanceAction = GovernanceAction.BIAS_REBALANCING
    governance_load: int


class ExplainabilityReport(BaseModel):
    """Human-readable account of why the character behaves as it does."""
    character_id: str
    generated_at: int
    timeframe_start: int
    timeframe_end: int
    summary: str
    behavior_field: FieldAnalysis
    patterns: PatternAnalysis
    tendencies: TendencyAnalysis
    emergence: EmergenceAnalysis
    governance: GovernanceAnalysis
    recommendations: list[str] = Field(default_factory=list)


def analyze_field(behavior_field: BehaviorField) -> FieldAnalysis:
    breakdown = []
    dominant, strongest = BehaviorFieldDimension.APPROACH_WITHDRAWAL, -1.0
    for dimension, vector in behavior_field.vectors.items():
        if abs(vector.value) > strongest:
            dominant, strongest = dimension, abs(vector.value)
        if vector.momentum > MOMENTUM_TREND_THRESHOLD:
            trend = "increasing"
        elif vector.momentum < -MOMENTUM_TREND_THRESHOLD:
            trend = "decreasing"
        else:
            trend = "stable"
        breakdown.append(DimensionBreakdown(dimension=dimension, value=vector.value, trend=trend))

    coherence = behavior_field.coherence
    if coherence > 70:
        stability = "stable"
    elif coherence > 50:
        stability = "decreasing"
    else:
        stability = "volatile"
    return FieldAnalysis(
        dominant_dimension=dominant,
        coherence=coherence,
        entropy=behavior_field.entropy,
        stability_trend=stability,
        dimension_breakdown=breakdown,
    )


def analyze_patterns(signatures: list[PatternSignature]) -> PatternAnalysis:
    novel = sum(1 for s in signatures if s.is_novel)
    counts = Counter(s.signature_type for s in signatures)
    analysis = PatternAnalysis(
        total_patterns=len(signatures),
        novel_patterns=novel,
        pattern_diversity=len(counts) / len(PatternType),
        recent_pattern_trend="high novelty" if novel > 2 else "stable",
    )
    if counts:
        analysis.dominant_pattern_type = counts.most_common(1)[0][0]
    return analysis


def analyze_tendencies(tendencies: dict[LatentTendencyName, LatentTendency]) -> TendencyAnalysis:
    if not tendencies:
        return TendencyAnalysis(overall_drift=0.0, stability_score=100.0)
    total_drift = 0.0
    most_active, top_velocity = LatentTendencyName.ATTACHMENT_DRIFT, 0.0
    concerning = []
    for name, tendency in tendencies.items():
        total_drift += abs(tendency.drift)
        if abs(tendency.velocity) > top_velocity:
            most_active, top_velocity = name, abs(tendency.velocity)
        if abs(tendency.velocity) > CONCERNING_VELOCITY or abs(tendency.drift) > CONCERNING_DRIFT:
            concerning.append(name)
    mean_drift = total_drift / len(tendencies)
    return TendencyAnalysis(
        overall_drift=mean_drift,
        most_active_tendency=most_active,
        stability_score=max(0.0, 100.0 - mean_drift * 2),
        concerning_tendencies=concerning,
    )


def analyze_emergence(phenomena: list[EmergentPhenomenon]) -> EmergenceAnalysis:
    active = sum(1 for p in phenomena if p.is_active)
    critical = sum(1 for p in phenomena if p.severity in (Severity.CRITICAL, Severity.HIGH))
    if critical > 0:
        risk = RiskLevel.HIGH
    elif active > 2:
        risk = RiskLevel.MODERATE
    else:
        risk = RiskLevel.LOW
    return EmergenceAnalysis(
        active_emergences=active,
        resolved_emergences=len(phenomena) - active,
        critical_events=critical,
        overall_risk_level=risk,
    )


def analyze_governance(responses: list[GovernanceResponse]) -> GovernanceAnalysis:
    counts = Counter(r.action for r in responses)
    effective = sum(1 for r in responses if r.actual_effect)
    analysis = GovernanceAnalysis(
        actions_applied=len(responses),
        average_effectiveness=effective / len(responses) if responses else 0.0,
        governance_load=sum(1 for r in responses if r.is_active),
    )
    if counts:
        analysis.most_common_action = counts.most_common(1)[0][0]
    return analysis


def summarize(field: FieldAnalysis, patterns: PatternAnalysis, tendencies: TendencyAnalysis,
              emergence: EmergenceAnalysis) -> str:
    parts = [
        f"Behavior field is {field.stability_trend} with {field.coherence:.0f}% coherence.",
        f"{patterns.total_patterns} patterns tracked ({patterns.novel_patterns} novel).",
        f"Tendency stability: {tendencies.stability_score:.0f}%.",
    ]
    if emergence.active_emergences > 0:
        parts.append(f"{emergence.active_emergences} active emergent phenomena detected.")
    return " ".join(parts)


def recommend(field: FieldAnalysis, tendencies: TendencyAnalysis, emergence: EmergenceAnalysis) -> list[str]:
    recommendations = []
    if field.stability_trend == "volatile":
        recommendations.append("Consider field stabilization to reduce volatility")
    if tendencies.concerning_tendencies:
        names = ", ".join(t.value for t in tendencies.concerning_tendencies)
        recommendations.append(f"Monitor concerning tendencies: {names}")
    if emergence.overall_risk_level == RiskLevel.HIGH:
        recommendations.append("High emergence risk - active governance recommended")
    if not recommendations:
        recommendations.append("System operating within normal parameters")
    return recommendations


def generate_explainability_report(
    emergence: EmergenceState,
    now_ms: int,
    timeframe_hours: float = 24,
) -> ExplainabilityReport:
    """Analyze the field, patterns and tendencies as they stand, plus the
    phenomena detected and governance applied within the timeframe."""
    start = int(now_ms - timeframe_hours * MS_PER_HOUR)
    phenomena = [p for p in emergence.phenomena if p.detected_at >= start]
    seen = set()
    responses = []
    for response in emergence.governor.history + emergence.governor.active_responses:
        if response.applied_at >= start and response.id not in seen:
            seen.add(response.id)
            responses.append(response)

    field = analyze_field(emergence.behavior_field)
    patterns = analyze_patterns(list(emergence.accumulator.signatures.values()))
    tendencies = analyze_tendencies(emergence.tendencies)
    emergence_analysis = analyze_emergence(phenomena)
    return ExplainabilityReport(
        character_id=emergence.character_id,
        generated_at=now_ms,
        timeframe_start=start,
        timeframe_end=now_ms,
        summary=summarize(field, patterns, tendencies, emergence_analysis),
        behavior_field=field,
        patterns=patterns,
        tendencies=tendencies,
        emergence=emergence_analysis,
        governance=analyze_governance(responses),
        recommendations=recommend(field, tendencies, emergence_analysis),
    )
