"""Engine facade: profile lifecycle, ticks, memory bias and reporting.

Every operation loads the committed state from the injected store, computes
on private copies and writes back in one batch. Ticks for the same character
are serialized by a per-character lock; different characters never contend.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict
from typing import Any, Callable, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from charsim.config import SimulationConfig
from charsim.emergence.report import ExplainabilityReport, generate_explainability_report
from charsim.emergence.system import EmergenceState, advance_emergence, new_emergence_state
from charsim.errors import (
    InvalidConfigurationError,
    MalformedStateError,
    NotInitializedError,
    StoreUnavailableError,
)
from charsim.records import SimulationTick, TickHistory
from charsim.simulation import drift, stochastic
from charsim.simulation.defaults import build_profile
from charsim.simulation.schemas import BehavioralOutput, ExternalInput, ProfileTraits, StateName
from charsim.simulation.state import MemoryBias, SimulationProfile
from charsim.simulation.tick import advance_simulation
from charsim.store.base import EntityKind, StateStore

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def system_clock() -> int:
    return int(time.time() * 1000)


def _validate_config(config: Union[SimulationConfig, Mapping[str, Any], None]) -> SimulationConfig:
    """Validate once, surfacing pydantic failures as InvalidConfigurationError."""
    if config is None:
        return SimulationConfig()
    try:
        if isinstance(config, SimulationConfig):
            # Re-validate so assignments made after construction are checked too
            return SimulationConfig.model_validate(config.model_dump())
        return SimulationConfig.model_validate(dict(config))
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ())) or "config"
        raise InvalidConfigurationError(location, first.get("msg", str(e))) from e


class SimulationEngine:
    """Per-character simulation engine over an injected state store.

    Args:
        store: StateStore implementation holding every character's state.
        config: SimulationConfig or a mapping of its fields.
        clock: Zero-argument callable returning epoch milliseconds.

    Raises:
        InvalidConfigurationError: If config violates its declared bounds.
    """

    def __init__(
        self,
        store: StateStore,
        config: Union[SimulationConfig, Mapping[str, Any], None] = None,
        clock: Optional[Clock] = None,
    ):
        self.store = store
        self.config = _validate_config(config)
        self.clock = clock or system_clock
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # =========================================================================
    # Store access
    # =========================================================================

    async def _get(self, character_id: str, kind: EntityKind) -> Optional[dict]:
        try:
            return await self.store.get(character_id, kind)
        except Exception as e:
            logger.error(f"Store get {kind.value} failed for {character_id}: {e}")
            raise StoreUnavailableError(f"get {kind.value}", e) from e

    async def _commit(self, character_id: str, values: dict[EntityKind, dict]) -> None:
        try:
            await self.store.put_many(character_id, values)
        except Exception as e:
            logger.error(f"Store commit failed for {character_id}: {e}")
            raise StoreUnavailableError("put_many", e) from e

    def _decode(self, character_id: str, kind: EntityKind, data: Any, decoder: Callable[[dict], Any]) -> Any:
        try:
            if not isinstance(data, dict):
                raise TypeError(f"expected a mapping, got {type(data).__name__}")
            return decoder(data)
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            raise MalformedStateError(character_id, f"{kind.value}: {e!r}") from e

    async def _load_profile(self, character_id: str) -> SimulationProfile:
        data = await self._get(character_id, EntityKind.PROFILE)
        if data is None:
            raise NotInitializedError(character_id)
        return self._decode(character_id, EntityKind.PROFILE, data, SimulationProfile.from_dict)

    async def _load_emergence(self, character_id: str, now_ms: int) -> EmergenceState:
        data = await self._get(character_id, EntityKind.EMERGENCE)
        if data is None:
            return new_emergence_state(character_id, self.config.emergence, now_ms)
        return self._decode(character_id, EntityKind.EMERGENCE, data, EmergenceState.from_dict)

    async def _load_history(self, character_id: str) -> TickHistory:
        data = await self._get(character_id, EntityKind.TICK_HISTORY)
        if data is None:
            return TickHistory(character_id=character_id, limit=self.config.max_tick_history)
        history = self._decode(character_id, EntityKind.TICK_HISTORY, data, TickHistory.from_dict)
        history.limit = self.config.max_tick_history
        return history

    # =========================================================================
    # Profile lifecycle
    # =========================================================================

    async def initialize_profile(
        self,
        character_id: str,
        traits: Optional[ProfileTraits] = None,
    ) -> SimulationProfile:
        """Create the character's profile, or return the existing one.

        A feminine gender expression seeds the monthly rhythm pattern,
        disabled until toggled on.
        """
        async with self._locks[character_id]:
            existing = await self._get(character_id, EntityKind.PROFILE)
            if existing is not None:
                return self._decode(character_id, EntityKind.PROFILE, existing, SimulationProfile.from_dict)

            now_ms = self.clock()
            config = self.config
            profile = build_profile(
                character_id,
                now_ms,
                traits=traits,
                bounds=config.bounds,
                homeostasis=config.homeostasis,
                allostasis=config.allostasis,
                drift=config.drift,
            )
            emergence = new_emergence_state(character_id, config.emergence, now_ms)
            history = TickHistory(character_id=character_id, limit=config.max_tick_history)
            await self._commit(character_id, {
                EntityKind.PROFILE: profile.to_dict(),
                EntityKind.EMERGENCE: emergence.to_dict(),
                EntityKind.TICK_HISTORY: history.to_dict(),
            })
            patterns = ", ".join(p.pattern_id for p in profile.identity_patterns) or "none"
            logger.info(f"Initialized simulation profile for {character_id} (identity patterns: {patterns})")
            return profile

    # =========================================================================
    # Ticks
    # =========================================================================

    async def tick(
        self,
        character_id: str,
        external_inputs: Optional[Sequence[ExternalInput]] = None,
        now_ms: Optional[int] = None,
    ) -> SimulationTick:
        """Advance the character by one tick and commit the result.

        The elapsed time is measured from the last committed tick, or is
        tick_interval_ms on the first tick. Nothing is written unless the
        whole tick computes, and a tick retried after a failed commit
        reproduces the same draws.

        Raises:
            NotInitializedError: If the character has no profile.
            StoreUnavailableError: If loading or committing fails.
            MalformedStateError: If persisted state cannot be decoded.
        """
        inputs = list(external_inputs or [])
        async with self._locks[character_id]:
            now_ms = self.clock() if now_ms is None else int(now_ms)
            profile = await self._load_profile(character_id)
            emergence = await self._load_emergence(character_id, now_ms)
            stored_history = await self._get(character_id, EntityKind.TICK_HISTORY)

            if profile.last_tick_at is None:
                delta_ms = self.config.tick_interval_ms
            else:
                delta_ms = max(now_ms - profile.last_tick_at, 0)

            sequence = profile.stochastic.sequence
            rng = stochastic.tick_rng(profile.stochastic)
            next_profile, advance = advance_simulation(profile, delta_ms, inputs, now_ms, rng, self.config)

            step = None
            if self.config.emergence.enabled:
                step = advance_emergence(emergence, next_profile, advance, inputs, rng)

            record = SimulationTick(character_id=character_id, sequence=sequence, state=advance, emergence=step)
            limit = self.config.max_tick_history
            if stored_history is None:
                history = TickHistory.append_stored(None, record, limit)
            else:
                # Earlier ticks pass through as stored; only the new one is encoded
                history = self._decode(
                    character_id, EntityKind.TICK_HISTORY, stored_history,
                    lambda data: TickHistory.append_stored(data, record, limit),
                )

            await self._commit(character_id, {
                EntityKind.PROFILE: next_profile.to_dict(),
                EntityKind.EMERGENCE: emergence.to_dict(),
                EntityKind.TICK_HISTORY: history,
            })
            logger.debug(f"{character_id} committed tick {sequence} @{now_ms}")
            return record

    async def get_behavioral_output(self, character_id: str) -> BehavioralOutput:
        """Latest behavioral guidance, ticking once if none exists yet."""
        await self._load_profile(character_id)
        history = await self._load_history(character_id)
        if history.last is not None:
            return history.last.behavioral_output
        record = await self.tick(character_id)
        return record.behavioral_output

    async def get_tick_history(self, character_id: str) -> TickHistory:
        await self._load_profile(character_id)
        return await self._load_history(character_id)

    # =========================================================================
    # Memory and identity patterns
    # =========================================================================

    async def add_memory_bias(
        self,
        character_id: str,
        memory_id: str,
        emotional_weight: float,
        state_influences: Mapping[Union[StateName, str], float],
    ) -> MemoryBias:
        """Register a memory that biases future drift toward its state influences."""
        try:
            influences = {StateName(name): float(value) for name, value in state_influences.items()}
        except ValueError as e:
            raise InvalidConfigurationError("state_influences", str(e)) from e

        async with self._locks[character_id]:
            profile = await self._load_profile(character_id)
            now_ms = self.clock()
            bias = drift.add_memory_bias(profile.drift, memory_id, emotional_weight, influences, now_ms)
            profile.updated_at = now_ms
            await self._commit(character_id, {EntityKind.PROFILE: profile.to_dict()})
            logger.info(f"Added memory bias {memory_id} for {character_id} (weight {emotional_weight:.2f})")
            return bias

    async def toggle_identity_pattern(self, character_id: str, pattern_id: str, enabled: bool) -> bool:
        """Enable or disable an identity pattern.

        Returns:
            False when the character has no such pattern, True otherwise.
        """
        async with self._locks[character_id]:
            profile = await self._load_profile(character_id)
            pattern = profile.find_pattern(pattern_id)
            if pattern is None:
                logger.warning(f"{character_id} has no identity pattern {pattern_id}")
                return False
            pattern.is_enabled = enabled
            profile.updated_at = self.clock()
            await self._commit(character_id, {EntityKind.PROFILE: profile.to_dict()})
            logger.info(f"Identity pattern {pattern_id} {'enabled' if enabled else 'disabled'} for {character_id}")
            return True

    # =========================================================================
    # Reporting
    # =========================================================================

    async def generate_explainability_report(
        self,
        character_id: str,
        timeframe_hours: float = 24,
    ) -> ExplainabilityReport:
        """Explain the character's behavior field, patterns, tendencies and
        the emergence and governance activity of the last timeframe_hours."""
        await self._load_profile(character_id)
        now_ms = self.clock()
        emergence = await self._load_emergence(character_id, now_ms)
        return generate_explainability_report(emergence, now_ms, timeframe_hours)
