"""Fixed defaults used to seed a character's simulation profile."""

from __future__ import annotations

import hashlib
from typing import Optional

from charsim.conditions import Comparator, self_is
from charsim.simulation.schemas import (
    AllostasisConfig,
    FatigueDimension,
    HomeostasisConfig,
    InfluenceType,
    ModulatorName,
    ProfileTraits,
    RecoveryCurve,
    StabilityBounds,
    StateName,
    TemporalDriftConfig,
)
from charsim.simulation.state import (
    AllostasisState,
    ContinuousState,
    DualRegulation,
    FatigueTrigger,
    GlobalModulator,
    HomeostasisState,
    IdentityPhase,
    IdentityTemporalPattern,
    ModulatorInfluence,
    MultiFatigue,
    RecoveryAccelerator,
    RecoveryConfig,
    SimulationProfile,
    StochasticEngine,
    TemporalDriftState,
)

# Baseline and starting value for every state
STATE_DEFAULTS: dict[StateName, float] = {
    StateName.ENERGY: 70.0,
    StateName.FATIGUE_COGNITIVE: 20.0,
    StateName.FATIGUE_EMOTIONAL: 20.0,
    StateName.FATIGUE_SOCIAL: 20.0,
    StateName.FATIGUE_MOTIVATIONAL: 15.0,
    StateName.STRESS: 25.0,
    StateName.AROUSAL: 50.0,
    StateName.BOREDOM: 20.0,
    StateName.CURIOSITY: 55.0,
    StateName.EMOTIONAL_VALENCE: 60.0,
    StateName.EMOTIONAL_AROUSAL: 45.0,
    StateName.SOCIAL_CHARGE: 65.0,
    StateName.CREATIVE_POTENTIAL: 50.0,
    StateName.FOCUS_CAPACITY: 70.0,
    StateName.REST_PRESSURE: 20.0,
}

# (type, weight, threshold, cooldown_ms)
FATIGUE_TRIGGERS: dict[FatigueDimension, list[tuple[str, float, float, int]]] = {
    FatigueDimension.COGNITIVE: [
        ("complex_reasoning", 2.0, 30, 300000),
        ("sustained_attention", 1.5, 20, 180000),
        ("decision_making", 1.8, 25, 240000),
        ("learning_new_info", 1.3, 15, 120000),
    ],
    FatigueDimension.EMOTIONAL: [
        ("emotional_labor", 2.5, 35, 600000),
        ("empathic_engagement", 2.0, 30, 480000),
        ("conflict_processing", 3.0, 40, 900000),
        ("vulnerability_exposure", 2.2, 25, 720000),
    ],
    FatigueDimension.SOCIAL: [
        ("active_conversation", 1.5, 20, 120000),
        ("group_interaction", 2.0, 30, 300000),
        ("impression_management", 1.8, 25, 240000),
        ("boundary_negotiation", 2.5, 35, 600000),
    ],
    FatigueDimension.MOTIVATIONAL: [
        ("goal_pursuit", 1.2, 15, 180000),
        ("setback_processing", 2.5, 40, 720000),
        ("delayed_gratification", 1.8, 25, 300000),
        ("uncertainty_tolerance", 2.0, 30, 480000),
    ],
}

# base_rate, curve, [(accelerator, multiplier, condition)], min rest, full recovery, blockers
RECOVERY_CONFIGS: dict[FatigueDimension, tuple] = {
    FatigueDimension.COGNITIVE: (
        0.08, RecoveryCurve.EXPONENTIAL,
        [("sleep", 3.0, "rest_period"), ("novelty_break", 1.5, "topic_change"), ("passive_mode", 1.2, "low_demand")],
        300000, 28800000, ["ongoing_complex_task", "high_stress"],
    ),
    FatigueDimension.EMOTIONAL: (
        0.05, RecoveryCurve.SIGMOID,
        [("positive_interaction", 2.0, "supportive_context"), ("solitude", 1.8, "alone_time"),
         ("creative_expression", 1.5, "creative_activity")],
        600000, 43200000, ["ongoing_conflict", "unresolved_emotions"],
    ),
    FatigueDimension.SOCIAL: (
        0.06, RecoveryCurve.LINEAR,
        [("solitude", 2.5, "alone_time"), ("trusted_company", 1.3, "safe_social"),
         ("nature_exposure", 1.4, "calm_environment")],
        1800000, 36000000, ["social_obligation", "crowded_environment"],
    ),
    FatigueDimension.MOTIVATIONAL: (
        0.04, RecoveryCurve.LOGARITHMIC,
        [("achievement", 3.0, "goal_completion"), ("recognition", 2.0, "positive_feedback"),
         ("meaningful_progress", 1.8, "visible_progress")],
        900000, 72000000, ["repeated_failure", "goal_ambiguity"],
    ),
}

# Fatigue pools start at the matching state's default
FATIGUE_STATE = {
    FatigueDimension.COGNITIVE: StateName.FATIGUE_COGNITIVE,
    FatigueDimension.EMOTIONAL: StateName.FATIGUE_EMOTIONAL,
    FatigueDimension.SOCIAL: StateName.FATIGUE_SOCIAL,
    FatigueDimension.MOTIVATIONAL: StateName.FATIGUE_MOTIVATIONAL,
}


def _influence(target, kind, coefficient, condition=None) -> ModulatorInfluence:
    return ModulatorInfluence(
        target_state=target,
        influence_type=kind,
        coefficient=coefficient,
        condition=condition,
    )


def default_modulators() -> dict[ModulatorName, GlobalModulator]:
    """The eight global modulators with their state influences."""
    S, I, GT = StateName, InfluenceType, Comparator.GT
    table = [
        (ModulatorName.AROUSAL_LEVEL, 50, 0.1, 10, 90, 0.7, [
            _influence(S.ENERGY, I.MULTIPLICATIVE, 0.3),
            _influence(S.FOCUS_CAPACITY, I.THRESHOLD, -0.2, self_is(GT, 70)),
            _influence(S.CURIOSITY, I.ADDITIVE, 5),
        ]),
        (ModulatorName.ATTACHMENT_SENSITIVITY, 50, 0.03, 20, 80, 0.9, [
            _influence(S.SOCIAL_CHARGE, I.MULTIPLICATIVE, 0.4),
            _influence(S.EMOTIONAL_VALENCE, I.ADDITIVE, 3),
            _influence(S.STRESS, I.ADDITIVE, 5),
        ]),
        (ModulatorName.THREAT_PERCEPTION, 30, 0.15, 5, 95, 0.5, [
            _influence(S.STRESS, I.MULTIPLICATIVE, 0.5),
            _influence(S.AROUSAL, I.ADDITIVE, 10, self_is(GT, 50)),
            _influence(S.SOCIAL_CHARGE, I.ADDITIVE, -8, self_is(GT, 60)),
        ]),
        (ModulatorName.REWARD_EXPECTATION, 50, 0.08, 15, 85, 0.6, [
            _influence(S.ENERGY, I.ADDITIVE, 8),
            _influence(S.CURIOSITY, I.MULTIPLICATIVE, 0.3),
            _influence(S.FATIGUE_MOTIVATIONAL, I.ADDITIVE, -5, self_is(GT, 60)),
        ]),
        (ModulatorName.SOCIAL_APPROACH, 50, 0.05, 10, 90, 0.75, [
            _influence(S.SOCIAL_CHARGE, I.ADDITIVE, 10),
            _influence(S.FATIGUE_SOCIAL, I.MULTIPLICATIVE, -0.2, self_is(GT, 60)),
        ]),
        (ModulatorName.NOVELTY_SEEKING, 50, 0.06, 20, 80, 0.65, [
            _influence(S.CURIOSITY, I.MULTIPLICATIVE, 0.4),
            _influence(S.BOREDOM, I.ADDITIVE, -8, self_is(GT, 60)),
            _influence(S.CREATIVE_POTENTIAL, I.ADDITIVE, 6),
        ]),
        (ModulatorName.RISK_TOLERANCE, 50, 0.04, 15, 85, 0.8, [
            _influence(S.STRESS, I.MULTIPLICATIVE, -0.2, self_is(GT, 60)),
            _influence(S.CREATIVE_POTENTIAL, I.ADDITIVE, 5),
        ]),
        (ModulatorName.EMOTIONAL_PERMEABILITY, 50, 0.07, 10, 90, 0.55, [
            _influence(S.EMOTIONAL_VALENCE, I.MULTIPLICATIVE, 0.3),
            _influence(S.EMOTIONAL_AROUSAL, I.MULTIPLICATIVE, 0.25),
            _influence(S.FATIGUE_EMOTIONAL, I.ADDITIVE, 3, self_is(GT, 70)),
        ]),
    ]
    return {
        name: GlobalModulator(
            name=name,
            current_value=float(value),
            baseline=float(value),
            change_rate=rate,
            min_value=float(low),
            max_value=float(high),
            inertia=inertia,
            influences=influences,
        )
        for name, value, rate, low, high, inertia, influences in table
    }


FEMININE_RHYTHM_ID = "feminine_monthly_rhythm"

SAFETY_DISCLAIMER = (
    "This is a behavioral simulation for fictional characters. It does not "
    "represent, diagnose, or simulate any medical or biological conditions."
)


def feminine_monthly_rhythm() -> IdentityTemporalPattern:
    """28-day cyclical pattern with energy and sensitivity variations."""
    S, M = StateName, ModulatorName
    phases = [
        IdentityPhase(
            index=0,
            name="Reflective Phase",
            duration_days=5,
            state_modifiers={S.ENERGY: -12, S.EMOTIONAL_VALENCE: -8, S.STRESS: 8, S.SOCIAL_CHARGE: -10},
            modulator_modifiers={M.EMOTIONAL_PERMEABILITY: 15, M.SOCIAL_APPROACH: -12},
            behavioral_notes=["Increased introspection", "Preference for quieter interactions", "Self-care focused"],
            energy_pattern="low",
            emotional_tendency="introspective",
        ),
        IdentityPhase(
            index=1,
            name="Rising Phase",
            duration_days=7,
            state_modifiers={S.ENERGY: 10, S.EMOTIONAL_VALENCE: 12, S.CREATIVE_POTENTIAL: 8, S.CURIOSITY: 10},
            modulator_modifiers={M.SOCIAL_APPROACH: 10, M.NOVELTY_SEEKING: 8},
            behavioral_notes=["Growing enthusiasm", "More social energy", "Creative ideas flowing"],
            energy_pattern="rising",
            emotional_tendency="optimistic",
        ),
        IdentityPhase(
            index=2,
            name="Peak Phase",
            duration_days=5,
            state_modifiers={S.ENERGY: 18, S.EMOTIONAL_VALENCE: 15, S.SOCIAL_CHARGE: 15, S.CREATIVE_POTENTIAL: 12},
            modulator_modifiers={M.SOCIAL_APPROACH: 15, M.REWARD_EXPECTATION: 10},
            behavioral_notes=["Highest energy", "Most outgoing", "Peak creativity", "Seeks connection"],
            energy_pattern="high",
            emotional_tendency="confident",
        ),
        IdentityPhase(
            index=3,
            name="Transition Phase",
            duration_days=11,
            state_modifiers={S.ENERGY: -5, S.EMOTIONAL_VALENCE: -6, S.STRESS: 12},
            modulator_modifiers={M.EMOTIONAL_PERMEABILITY: 12, M.THREAT_PERCEPTION: 8},
            behavioral_notes=["Variable moods", "Increased sensitivity", "Comfort-seeking"],
            energy_pattern="variable",
            emotional_tendency="sensitive",
        ),
    ]
    return IdentityTemporalPattern(
        pattern_id=FEMININE_RHYTHM_ID,
        name="Monthly Rhythm Pattern",
        description="Cyclical behavioral pattern with energy and sensitivity variations",
        cycle_period_days=28,
        phases=phases,
        associated_identity="feminine",
        affected_modulators=[M.EMOTIONAL_PERMEABILITY, M.SOCIAL_APPROACH, M.AROUSAL_LEVEL],
        affected_states=[S.ENERGY, S.EMOTIONAL_VALENCE, S.STRESS, S.SOCIAL_CHARGE, S.CREATIVE_POTENTIAL],
        safety_disclaimer=SAFETY_DISCLAIMER,
        is_enabled=False,
    )


def seed_from_character_id(character_id: str) -> int:
    """Stable 32-bit seed derived from the character identifier."""
    return int(hashlib.sha256(character_id.encode()).hexdigest()[:8], 16)


def default_fatigues() -> dict[FatigueDimension, MultiFatigue]:
    fatigues = {}
    for dimension in FatigueDimension:
        base_rate, curve, accelerators, min_rest, full_recovery, blockers = RECOVERY_CONFIGS[dimension]
        level = STATE_DEFAULTS[FATIGUE_STATE[dimension]]
        fatigues[dimension] = MultiFatigue(
            dimension=dimension,
            level=level,
            baseline=level,
            triggers=[
                FatigueTrigger(type=t, weight=w, threshold=th, cooldown_ms=cd)
                for t, w, th, cd in FATIGUE_TRIGGERS[dimension]
            ],
            recovery=RecoveryConfig(
                base_rate=base_rate,
                curve=curve,
                accelerators=[RecoveryAccelerator(type=t, multiplier=m, condition=c) for t, m, c in accelerators],
                minimum_rest_period_ms=min_rest,
                full_recovery_time_ms=full_recovery,
                recovery_blockers=list(blockers),
            ),
        )
    return fatigues


def build_profile(
    character_id: str,
    now_ms: int,
    traits: Optional[ProfileTraits] = None,
    bounds: Optional[StabilityBounds] = None,
    homeostasis: Optional[HomeostasisConfig] = None,
    allostasis: Optional[AllostasisConfig] = None,
    drift: Optional[TemporalDriftConfig] = None,
) -> SimulationProfile:
    """Seed every state, regulation, fatigue pool and modulator with defaults.

    A feminine gender expression attaches the monthly rhythm pattern, disabled
    until toggled on.
    """
    bounds = bounds or StabilityBounds()
    homeostasis = homeostasis or HomeostasisConfig()
    allostasis = allostasis or AllostasisConfig()

    states = {}
    regulations = {}
    for name, value in STATE_DEFAULTS.items():
        states[name] = ContinuousState(
            name=name,
            baseline=value,
            current_value=value,
            bounds=bounds.model_copy(),
            last_updated_at=now_ms,
        )
        regulations[name] = DualRegulation(
            state_name=name,
            homeostasis=HomeostasisState(config=homeostasis.model_copy()),
            allostasis=AllostasisState(
                original_baseline=value,
                current_baseline=value,
                config=allostasis.model_copy(),
            ),
            last_regulation_at=now_ms,
        )

    patterns = []
    if traits is not None and traits.gender_expression == "feminine":
        patterns.append(feminine_monthly_rhythm())

    return SimulationProfile(
        character_id=character_id,
        states=states,
        regulations=regulations,
        fatigues=default_fatigues(),
        modulators=default_modulators(),
        drift=TemporalDriftState(config=(drift or TemporalDriftConfig()).model_copy()),
        stochastic=StochasticEngine(seed=seed_from_character_id(character_id)),
        identity_patterns=patterns,
        created_at=now_ms,
        updated_at=now_ms,
    )
