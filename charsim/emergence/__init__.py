"""Emergence layer: behavior field, latent tendencies, patterns, monitors
and soft governance."""

from charsim.emergence.schemas import (
    BehaviorClass,
    BehaviorFieldDimension,
    LatentTendencyName,
    PatternType,
    EmergenceType,
    GovernanceAction,
    Severity,
    PhenomenonStatus,
    EmergenceConfig,
    GovernancePhilosophy,
    PatternThresholds,
)
from charsim.emergence.behavior_field import (
    BehaviorField,
    BehaviorSelection,
    compute_behavior_probabilities,
    select_behavior,
    update_behavior_field,
)
from charsim.emergence.tendencies import LatentTendency, update_latent_tendencies
from charsim.emergence.patterns import (
    PatternAccumulator,
    PatternRawData,
    PatternSignature,
    record_pattern_observation,
)
from charsim.emergence.monitor import EmergentPhenomenon, EmergenceMonitor, scan_for_emergence
from charsim.emergence.governor import GovernanceResponse, SoftGovernor, apply_governance, tick_governance
from charsim.emergence.system import EmergenceState, EmergenceStep, advance_emergence, new_emergence_state
from charsim.emergence.report import ExplainabilityReport, generate_explainability_report

__all__ = [
    "BehaviorClass",
    "BehaviorFieldDimension",
    "LatentTendencyName",
    "PatternType",
    "EmergenceType",
    "GovernanceAction",
    "Severity",
    "PhenomenonStatus",
    "EmergenceConfig",
    "GovernancePhilosophy",
    "PatternThresholds",
    "BehaviorField",
    "BehaviorSelection",
    "compute_behavior_probabilities",
    "select_behavior",
    "update_behavior_field",
    "LatentTendency",
    "update_latent_tendencies",
    "PatternAccumulator",
    "PatternRawData",
    "PatternSignature",
    "record_pattern_observation",
    "EmergentPhenomenon",
    "EmergenceMonitor",
    "scan_for_emergence",
    "GovernanceResponse",
    "SoftGovernor",
    "apply_governance",
    "tick_governance",
    "EmergenceState",
    "EmergenceStep",
    "advance_emergence",
    "new_emergence_state",
    "ExplainabilityReport",
    "generate_explainability_report",
]
