"""Guidance for the dialogue layer derived from post-tick state values.

Every rule is a fixed threshold on current values. Missing states fall back
to neutral defaults so the mapping is total.
"""

from __future__ import annotations

from typing import Mapping

from charsim.simulation.schemas import (
    BehavioralOutput,
    ConversationalMode,
    EmotionalDepth,
    EmotionalDepthGuidance,
    FatigueDimension,
    PacingGuidance,
    ResponseLength,
    ResponseLengthGuidance,
    StateName,
    Tempo,
    TurnTakingStyle,
)

LENGTH_MODIFIERS = {
    ResponseLength.MINIMAL: 0.3,
    ResponseLength.BRIEF: 0.6,
    ResponseLength.MODERATE: 1.0,
    ResponseLength.DETAILED: 1.3,
    ResponseLength.ELABORATE: 1.6,
}

STATE_FALLBACKS = {
    StateName.ENERGY: 50.0,
    StateName.STRESS: 30.0,
    StateName.AROUSAL: 50.0,
    StateName.EMOTIONAL_VALENCE: 50.0,
    StateName.SOCIAL_CHARGE: 60.0,
    StateName.CREATIVE_POTENTIAL: 50.0,
    StateName.CURIOSITY: 50.0,
    StateName.BOREDOM: 20.0,
}
FATIGUE_FALLBACK = 20.0


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def response_length(energy: float, fatigue: float, creativity: float) -> ResponseLengthGuidance:
    reasoning = []
    constraints = []
    if energy < 25 or fatigue > 75:
        suggested = ResponseLength.MINIMAL
        reasoning.append("Low energy or high fatigue limiting response capacity")
        constraints.append("Keep responses brief")
    elif energy < 45 or fatigue > 55:
        suggested = ResponseLength.BRIEF
        reasoning.append("Moderate fatigue suggests shorter responses")
    elif energy > 70 and fatigue < 30 and creativity > 60:
        suggested = ResponseLength.ELABORATE
        reasoning.append("High energy and creativity enable detailed responses")
    elif energy > 55 and fatigue < 45:
        suggested = ResponseLength.DETAILED
        reasoning.append("Good energy levels support fuller engagement")
    else:
        suggested = ResponseLength.MODERATE

    return ResponseLengthGuidance(
        suggested=suggested,
        modifier=LENGTH_MODIFIERS[suggested],
        reasoning=reasoning,
        constraints=constraints,
    )


def pacing(arousal: float, stress: float, energy: float, fatigue: float, social: float) -> PacingGuidance:
    if arousal > 75 and stress > 65:
        tempo = Tempo.RUSHED
    elif arousal > 60 and energy > 55:
        tempo = Tempo.QUICK
    elif arousal < 40 and stress < 35:
        tempo = Tempo.RELAXED
    elif fatigue > 65 or energy < 35:
        tempo = Tempo.SLOW
    elif stress > 55 and social < 35:
        tempo = Tempo.HESITANT
    else:
        tempo = Tempo.MODERATE

    if energy > 70 and arousal > 60:
        style = TurnTakingStyle.DOMINANT
    elif stress > 60 or social < 30:
        style = TurnTakingStyle.WITHDRAWN
    elif fatigue > 50 or energy < 40:
        style = TurnTakingStyle.DEFERENTIAL
    else:
        style = TurnTakingStyle.BALANCED

    return PacingGuidance(
        tempo=tempo,
        pause_tendency=max(0.0, fatigue * 0.5 + (100 - arousal) * 0.3),
        interruption_tolerance=max(0.0, 100 - stress * 0.5 - fatigue * 0.3),
        turn_taking_style=style,
    )


def emotional_depth(emotional_fatigue: float, stress: float, valence: float) -> EmotionalDepthGuidance:
    avoid = []
    seek = []
    guardedness = min(100.0, stress * 0.5 + emotional_fatigue * 0.4)

    if guardedness > 70 or emotional_fatigue > 65:
        depth = EmotionalDepth.SURFACE
        avoid.extend(["emotionally heavy subjects", "personal vulnerabilities"])
    elif guardedness < 35 and valence > 55:
        depth = EmotionalDepth.DEEP
        seek.extend(["meaningful connections", "authentic sharing"])
    elif guardedness < 20 and valence > 65 and emotional_fatigue < 30:
        # Shadowed by the deep branch; kept for ordering parity
        depth = EmotionalDepth.PROFOUND
        seek.extend(["deep emotional exchange", "vulnerability sharing"])
    else:
        depth = EmotionalDepth.MODERATE

    if stress > 60:
        avoid.append("high-pressure topics")
    if valence < 40:
        avoid.append("overly positive demands")

    return EmotionalDepthGuidance(
        depth=depth,
        expressiveness=max(0.0, 100 - guardedness),
        guardedness=guardedness,
        authenticity_level=max(0.0, 100 - stress * 0.3 - emotional_fatigue * 0.2),
        topics_to_avoid=avoid,
        topics_to_seek=seek,
    )


def conversational_mode(
    values: Mapping[StateName, float],
    fatigue_levels: Mapping[FatigueDimension, float],
) -> ConversationalMode:
    """First matching mode in fixed precedence order."""
    energy = values.get(StateName.ENERGY, STATE_FALLBACKS[StateName.ENERGY])
    valence = values.get(StateName.EMOTIONAL_VALENCE, STATE_FALLBACKS[StateName.EMOTIONAL_VALENCE])
    curiosity = values.get(StateName.CURIOSITY, STATE_FALLBACKS[StateName.CURIOSITY])
    social = values.get(StateName.SOCIAL_CHARGE, STATE_FALLBACKS[StateName.SOCIAL_CHARGE])
    stress = values.get(StateName.STRESS, STATE_FALLBACKS[StateName.STRESS])
    creative = values.get(StateName.CREATIVE_POTENTIAL, STATE_FALLBACKS[StateName.CREATIVE_POTENTIAL])
    boredom = values.get(StateName.BOREDOM, STATE_FALLBACKS[StateName.BOREDOM])
    fatigue_cognitive = fatigue_levels.get(FatigueDimension.COGNITIVE, FATIGUE_FALLBACK)
    fatigue_social = fatigue_levels.get(FatigueDimension.SOCIAL, FATIGUE_FALLBACK)
    fatigue_emotional = fatigue_levels.get(FatigueDimension.EMOTIONAL, FATIGUE_FALLBACK)

    if fatigue_cognitive > 80 or energy < 20:
        return ConversationalMode.TIRED
    if stress > 75:
        return ConversationalMode.OVERWHELMED
    if fatigue_social > 70 or social < 20:
        return ConversationalMode.NEEDING_SPACE
    if social < 35 and fatigue_emotional > 50:
        return ConversationalMode.WITHDRAWN
    if boredom > 70:
        return ConversationalMode.DISTRACTED
    if curiosity > 70 and energy > 50:
        return ConversationalMode.CURIOUS
    if creative > 70 and valence > 55:
        return ConversationalMode.PLAYFUL
    if valence > 65 and fatigue_social < 40:
        return ConversationalMode.SUPPORTIVE
    if fatigue_cognitive > 50 and stress < 40:
        return ConversationalMode.ANALYTICAL
    if social > 70 and energy > 60:
        return ConversationalMode.SEEKING_CONNECTION
    if energy > 60 and stress < 40:
        return ConversationalMode.ENGAGED
    return ConversationalMode.RESERVED


def compute_behavioral_output(
    values: Mapping[StateName, float],
    fatigue_levels: Mapping[FatigueDimension, float],
) -> BehavioralOutput:
    """Map state values and fatigue pool levels to dialogue guidance."""
    energy = values.get(StateName.ENERGY, STATE_FALLBACKS[StateName.ENERGY])
    stress = values.get(StateName.STRESS, STATE_FALLBACKS[StateName.STRESS])
    arousal = values.get(StateName.AROUSAL, STATE_FALLBACKS[StateName.AROUSAL])
    valence = values.get(StateName.EMOTIONAL_VALENCE, STATE_FALLBACKS[StateName.EMOTIONAL_VALENCE])
    social = values.get(StateName.SOCIAL_CHARGE, STATE_FALLBACKS[StateName.SOCIAL_CHARGE])
    creative = values.get(StateName.CREATIVE_POTENTIAL, STATE_FALLBACKS[StateName.CREATIVE_POTENTIAL])
    fatigue_cognitive = fatigue_levels.get(FatigueDimension.COGNITIVE, FATIGUE_FALLBACK)
    fatigue_emotional = fatigue_levels.get(FatigueDimension.EMOTIONAL, FATIGUE_FALLBACK)
    fatigue_social = fatigue_levels.get(FatigueDimension.SOCIAL, FATIGUE_FALLBACK)

    return BehavioralOutput(
        response_length=response_length(energy, fatigue_cognitive, creative),
        pacing=pacing(arousal, stress, energy, fatigue_cognitive, social),
        emotional_depth=emotional_depth(fatigue_emotional, stress, valence),
        engagement_willingness=_clamp(100 - fatigue_social * 0.5 - stress * 0.3 + energy * 0.2),
        conversational_mode=conversational_mode(values, fatigue_levels),
        cognitive_capacity=max(0.0, 100 - fatigue_cognitive),
        creativity_level=creative,
        social_warmth=max(0.0, social - fatigue_social * 0.3),
        vulnerability_openness=max(0.0, 50 - stress * 0.5 - fatigue_emotional * 0.3 + valence * 0.2),
        assertiveness=_clamp(energy * 0.3 + arousal * 0.2 - stress * 0.2),
    )
