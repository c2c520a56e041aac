"""Pattern accumulator: fingerprints behavior observations into signatures.

Observations are classified into a pattern type, reduced to a coarse
fingerprint and matched against known signatures, exact fingerprint first,
then best same-type similarity. Unmatched observations become new, fully
novel signatures. Signature strength decays with time and the population is
capped by evicting the weakest.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from typing import ClassVar, Optional

from charsim.emergence.schemas import BehaviorClass, PatternThresholds, PatternType
from charsim.simulation.schemas import StateName

logger = logging.getLogger(__name__)

MS_PER_HOUR = 3600000.0
MS_PER_DAY = 86400000.0

EXACT_REINFORCEMENT = 0.05
SIMILAR_REINFORCEMENT = 0.03
NOVELTY_DECAY = 0.1
INITIAL_STRENGTH = 0.3

CONTEXT_KEYWORDS = ("conflict", "support", "personal", "casual", "serious", "playful", "emotional", "intellectual")


@dataclass
class ResponseCharacteristics:
    engagement_level: float = 50.0
    assertiveness: float = 50.0
    emotional_expression: float = 50.0

    def to_dict(self) -> dict:
        return {
            "engagement_level": self.engagement_level,
            "assertiveness": self.assertiveness,
            "emotional_expression": self.emotional_expression,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ResponseCharacteristics":
        return cls(
            engagement_level=float(data.get("engagement_level", 50.0)),
            assertiveness=float(data.get("assertiveness", 50.0)),
            emotional_expression=float(data.get("emotional_expression", 50.0)),
        )


@dataclass
class PatternRawData:
    """One observed behavior with the context it occurred in."""
    behavior_class: BehaviorClass
    trigger_context: str
    emotional_state: float
    state_snapshot: dict[StateName, float] = field(default_factory=dict)
    response: ResponseCharacteristics = field(default_factory=ResponseCharacteristics)

    @property
    def valence(self) -> int:
        if self.emotional_state > 60:
            return 1
        if self.emotional_state < 40:
            return -1
        return 0


@dataclass
class StrengthPoint:
    timestamp: int
    strength: float


@dataclass
class PatternSignature:
    """A reinforcing record of a recurring behavioral combination.

    Attributes:
        fingerprint: Coarse key of type, behavior, emotion and context.
        strength: Reinforcement level in [0, 1].
        frequency: Observations per day since first observed.
        emotional_valence: -1, 0 or 1 at creation.
        state_correlations: State values captured when first observed.
        novelty_score: 1.0 at creation, lowered by each exact repeat.
    """
    id: str
    signature_type: PatternType
    fingerprint: str
    strength: float
    first_observed_at: int
    last_observed_at: int
    observation_count: int = 1
    frequency: float = 0.0
    context_tags: list[str] = field(default_factory=list)
    emotional_valence: int = 0
    behavior_classes: list[BehaviorClass] = field(default_factory=list)
    state_correlations: dict[StateName, float] = field(default_factory=dict)
    is_novel: bool = True
    novelty_score: float = 1.0
    strength_history: list[StrengthPoint] = field(default_factory=list)

    HISTORY_LIMIT: ClassVar[int] = 20

    def record_strength(self, now_ms: int) -> None:
        self.strength_history.append(StrengthPoint(now_ms, self.strength))
        if len(self.strength_history) > self.HISTORY_LIMIT:
            self.strength_history = self.strength_history[-self.HISTORY_LIMIT:]

    def strength_at(self, timestamp: int) -> float:
        """Recorded strength at or before timestamp, else the oldest known."""
        if not self.strength_history:
            return self.strength
        value = self.strength_history[0].strength
        for point in self.strength_history:
            if point.timestamp <= timestamp:
                value = point.strength
        return value

    def weaken(self, amount: float, now_ms: int, floor: float = 0.0) -> None:
        """Lower strength by amount, never below floor, and record it."""
        self.strength = max(floor, self.strength - amount)
        self.record_strength(now_ms)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "signature_type": self.signature_type.value,
            "fingerprint": self.fingerprint,
            "strength": self.strength,
            "first_observed_at": self.first_observed_at,
            "last_observed_at": self.last_observed_at,
            "observation_count": self.observation_count,
            "frequency": self.frequency,
            "context_tags": list(self.context_tags),
            "emotional_valence": self.emotional_valence,
            "behavior_classes": [b.value for b in self.behavior_classes],
            "state_correlations": {s.value: v for s, v in self.state_correlations.items()},
            "is_novel": self.is_novel,
            "novelty_score": self.novelty_score,
            "strength_history": [[p.timestamp, p.strength] for p in self.strength_history],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PatternSignature":
        return cls(
            id=data["id"],
            signature_type=PatternType(data["signature_type"]),
            fingerprint=data["fingerprint"],
            strength=float(data["strength"]),
            first_observed_at=int(data["first_observed_at"]),
            last_observed_at=int(data["last_observed_at"]),
            observation_count=int(data.get("observation_count", 1)),
            frequency=float(data.get("frequency", 0.0)),
            context_tags=list(data.get("context_tags", [])),
            emotional_valence=int(data.get("emotional_valence", 0)),
            behavior_classes=[BehaviorClass(b) for b in data.get("behavior_classes", [])],
            state_correlations={StateName(s): float(v) for s, v in data.get("state_correlations", {}).items()},
            is_novel=bool(data.get("is_novel", True)),
            novelty_score=float(data.get("novelty_score", 1.0)),
            strength_history=[StrengthPoint(int(t), float(s)) for t, s in data.get("strength_history", [])],
        )


@dataclass
class PatternObservation:
    timestamp: int
    pattern_type: PatternType
    behavior_class: BehaviorClass
    signature_id: str
    match_score: float
    is_new_pattern: bool

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "pattern_type": self.pattern_type.value,
            "behavior_class": self.behavior_class.value,
            "signature_id": self.signature_id,
            "match_score": self.match_score,
            "is_new_pattern": self.is_new_pattern,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PatternObservation":
        return cls(
            timestamp=int(data["timestamp"]),
            pattern_type=PatternType(data["pattern_type"]),
            behavior_class=BehaviorClass(data["behavior_class"]),
            signature_id=data["signature_id"],
            match_score=float(data["match_score"]),
            is_new_pattern=bool(data["is_new_pattern"]),
        )


@dataclass
class PatternAccumulator:
    thresholds: PatternThresholds = field(default_factory=PatternThresholds)
    signatures: dict[str, PatternSignature] = field(default_factory=dict)
    recent_observations: list[PatternObservation] = field(default_factory=list)
    last_compaction_at: int = 0
    next_signature_number: int = 1

    OBSERVATION_LIMIT: ClassVar[int] = 20

    def by_fingerprint(self, fingerprint: str) -> Optional[PatternSignature]:
        for signature in self.signatures.values():
            if signature.fingerprint == fingerprint:
                return signature
        return None

    def strongest(self, pattern_type: Optional[PatternType] = None) -> Optional[PatternSignature]:
        candidates = [
            s for s in self.signatures.values()
            if pattern_type is None or s.signature_type == pattern_type
        ]
        return max(candidates, key=lambda s: s.strength, default=None)

    def to_dict(self) -> dict:
        return {
            "thresholds": self.thresholds.model_dump(),
            "signatures": [s.to_dict() for s in self.signatures.values()],
            "recent_observations": [o.to_dict() for o in self.recent_observations],
            "last_compaction_at": self.last_compaction_at,
            "next_signature_number": self.next_signature_number,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PatternAccumulator":
        signatures = [PatternSignature.from_dict(s) for s in data.get("signatures", [])]
        return cls(
            thresholds=PatternThresholds.model_validate(data.get("thresholds", {})),
            signatures={s.id: s for s in signatures},
            recent_observations=[PatternObservation.from_dict(o) for o in data.get("recent_observations", [])],
            last_compaction_at=int(data.get("last_compaction_at", 0)),
            next_signature_number=int(data.get("next_signature_number", len(signatures) + 1)),
        )


# =============================================================================
# Classification and matching
# =============================================================================


def infer_pattern_type(raw: PatternRawData, recent: list[PatternObservation]) -> PatternType:
    """Classify an observation by precedence over behavior, context and emotion."""
    behavior = raw.behavior_class
    context = raw.trigger_context.lower()

    if behavior.value.startswith("withdraw"):
        return PatternType.AVOIDANCE_PATTERN
    if behavior in (BehaviorClass.ENGAGE_DEEPLY, BehaviorClass.SEEK_CONNECTION):
        return PatternType.APPROACH_PATTERN
    if behavior == BehaviorClass.RESPOND_DEFENSIVELY:
        return PatternType.TRIGGER_RESPONSE_PAIR
    if (behavior in (BehaviorClass.CHALLENGE_SERIOUSLY, BehaviorClass.ASSERT_BOUNDARY)
            and raw.response.assertiveness > 60):
        return PatternType.ESCALATION_PATTERN
    if (behavior in (BehaviorClass.OFFER_SUPPORT, BehaviorClass.DEFLECT_TOPIC)
            and raw.response.engagement_level < 40):
        return PatternType.DE_ESCALATION_PATTERN
    if "repeat" in context or "again" in context:
        return PatternType.INTERACTION_REPETITION
    if raw.emotional_state > 70 or raw.emotional_state < 30:
        return PatternType.EMOTIONAL_CONTEXT_SIMILARITY
    if (len(recent) >= 2 and recent[-2].behavior_class == behavior
            and recent[-1].behavior_class != behavior):
        return PatternType.CYCLICAL_BEHAVIOR
    if behavior in (BehaviorClass.EXPLORE_CURIOUSLY, BehaviorClass.DEEPEN_TOPIC):
        return PatternType.STATE_SEQUENCE
    return PatternType.RESPONSE_BIAS_PERSISTENCE


def fingerprint(raw: PatternRawData, pattern_type: PatternType) -> str:
    """type:code:emotion-bucket:engagement-bucket:context-hash."""
    code = raw.behavior_class.value[:3]
    emotion_bucket = int(raw.emotional_state // 20)
    engagement_bucket = int(raw.response.engagement_level // 20)
    context_hash = hashlib.sha256(raw.trigger_context.lower()[:20].encode("utf-8")).hexdigest()[:6]
    return f"{pattern_type.value}:{code}:{emotion_bucket}:{engagement_bucket}:{context_hash}"


def match_score(raw: PatternRawData, signature: PatternSignature) -> float:
    score = 0.0
    if raw.behavior_class in signature.behavior_classes:
        score += 0.4
    score += (1 - abs(raw.valence - signature.emotional_valence) / 2) * 0.3
    score += (1 - abs(raw.response.engagement_level / 100 - 0.5)) * 0.3
    return score


def signature_similarity(raw: PatternRawData, pattern_type: PatternType, signature: PatternSignature) -> float:
    """Similarity in [0, 1]; zero across pattern types."""
    if signature.signature_type != pattern_type:
        return 0.0
    similarity = 0.0
    if raw.behavior_class in signature.behavior_classes:
        similarity += 0.35
    emotional_diff = abs((raw.emotional_state - 50) / 50 - signature.emotional_valence)
    similarity += (1 - emotional_diff) * 0.25
    for state, value in raw.state_snapshot.items():
        correlated = signature.state_correlations.get(state)
        if correlated is not None:
            similarity += (1 - abs(value - correlated) / 100) * 0.05
    return min(1.0, similarity)


def context_tags(context: str) -> list[str]:
    text = context.lower()
    return [keyword for keyword in CONTEXT_KEYWORDS if keyword in text]


# =============================================================================
# Recording, decay and compaction
# =============================================================================


def record_pattern_observation(
    accumulator: PatternAccumulator,
    raw: PatternRawData,
    now_ms: int,
) -> PatternObservation:
    """Match an observation against known signatures, or create a new one."""
    thresholds = accumulator.thresholds
    pattern_type = infer_pattern_type(raw, accumulator.recent_observations)
    key = fingerprint(raw, pattern_type)
    is_new = False

    signature = accumulator.by_fingerprint(key)
    if signature is not None:
        score = match_score(raw, signature)
        signature.observation_count += 1
        signature.strength = min(1.0, signature.strength + EXACT_REINFORCEMENT)
        days = max(now_ms - signature.first_observed_at, MS_PER_HOUR) / MS_PER_DAY
        signature.frequency = signature.observation_count / days
        signature.novelty_score = max(0.0, signature.novelty_score - NOVELTY_DECAY)
        signature.is_novel = signature.novelty_score > thresholds.novelty_threshold
        logger.debug(f"Exact pattern match {signature.id} ({pattern_type.value}), strength {signature.strength:.2f}")
    else:
        best, score = None, 0.0
        for candidate in accumulator.signatures.values():
            similarity = signature_similarity(raw, pattern_type, candidate)
            if similarity > thresholds.similarity_threshold and similarity > score:
                best, score = candidate, similarity
        if best is not None:
            signature = best
            signature.observation_count += 1
            signature.strength = min(1.0, signature.strength + SIMILAR_REINFORCEMENT)
            if raw.behavior_class not in signature.behavior_classes:
                signature.behavior_classes.append(raw.behavior_class)
            logger.debug(f"Similar pattern match {signature.id} at {score:.2f}")
        else:
            is_new = True
            score = 1.0
            signature = PatternSignature(
                id=f"sig_{accumulator.next_signature_number:05d}",
                signature_type=pattern_type,
                fingerprint=key,
                strength=INITIAL_STRENGTH,
                first_observed_at=now_ms,
                last_observed_at=now_ms,
                context_tags=context_tags(raw.trigger_context),
                emotional_valence=raw.valence,
                behavior_classes=[raw.behavior_class],
                state_correlations=dict(raw.state_snapshot),
            )
            accumulator.next_signature_number += 1
            accumulator.signatures[signature.id] = signature

    signature.last_observed_at = now_ms
    signature.record_strength(now_ms)

    observation = PatternObservation(now_ms, pattern_type, raw.behavior_class, signature.id, score, is_new)
    accumulator.recent_observations.append(observation)
    if len(accumulator.recent_observations) > accumulator.OBSERVATION_LIMIT:
        accumulator.recent_observations = accumulator.recent_observations[-accumulator.OBSERVATION_LIMIT:]

    if len(accumulator.signatures) > thresholds.max_signatures:
        compact_signatures(accumulator, now_ms)
    return observation


def decay_signatures(accumulator: PatternAccumulator, delta_ms: float) -> None:
    amount = accumulator.thresholds.decay_rate * max(delta_ms, 0.0) / MS_PER_HOUR
    if amount <= 0:
        return
    for signature in accumulator.signatures.values():
        signature.strength = max(0.0, signature.strength - amount)


def compact_signatures(accumulator: PatternAccumulator, now_ms: int) -> list[str]:
    """Evict the weakest signatures until the cap holds.

    Returns:
        Ids of the evicted signatures.
    """
    limit = accumulator.thresholds.max_signatures
    ranked = sorted(
        accumulator.signatures.values(),
        key=lambda s: (s.strength, s.last_observed_at),
        reverse=True,
    )
    evicted = [s.id for s in ranked[limit:]]
    for signature_id in evicted:
        del accumulator.signatures[signature_id]
    accumulator.last_compaction_at = now_ms
    if evicted:
        logger.debug(f"Compacted {len(evicted)} pattern signatures")
    return evicted


def maybe_compact(accumulator: PatternAccumulator, now_ms: int) -> list[str]:
    """Run compaction when the configured interval has elapsed."""
    interval = accumulator.thresholds.compaction_interval_ms
    if now_ms - accumulator.last_compaction_at < interval:
        return []
    return compact_signatures(accumulator, now_ms)
