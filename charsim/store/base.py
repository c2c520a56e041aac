"""Persistence protocol for per-character simulation state."""

from __future__ import annotations

from enum import Enum
from typing import Mapping, Optional, Protocol


class EntityKind(str, Enum):
    """Independently stored pieces of a character's state."""
    PROFILE = "simulation_profile"
    EMERGENCE = "emergence_state"
    TICK_HISTORY = "tick_history"


class StateStore(Protocol):
    """Protocol for character state storage.

    Values are JSON-compatible dicts. Implementations must make put_many
    atomic: either every entity is written or none is.
    """

    async def get(self, character_id: str, kind: EntityKind) -> Optional[dict]:
        """Load one entity, None when it was never written."""
        ...

    async def put(self, character_id: str, kind: EntityKind, value: dict) -> None:
        """Write one entity."""
        ...

    async def put_many(self, character_id: str, values: Mapping[EntityKind, dict]) -> None:
        """Write several entities in a single commit."""
        ...
