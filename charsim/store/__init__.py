"""State persistence."""

from charsim.store.base import EntityKind, StateStore
from charsim.store.memory import InMemoryStateStore

__all__ = ["EntityKind", "StateStore", "InMemoryStateStore"]
