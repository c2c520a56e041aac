"""Error taxonomy for the simulation engine."""

from __future__ import annotations

from typing import Optional


class SimulationError(Exception):
    """Base class for all simulation engine errors."""


class NotInitializedError(SimulationError):
    """Raised when a character has no simulation profile.

    Fatal for the caller: initialize_profile must run before ticking.
    """

    def __init__(self, character_id: str):
        super().__init__(f"Character '{character_id}' has no simulation profile")
        self.character_id = character_id


class StoreUnavailableError(SimulationError):
    """Raised when the state store cannot complete a round trip.

    Transient. The caller retries the whole operation, which recomputes
    from the last committed state.
    """

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        message = f"State store unavailable during {operation}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.operation = operation
        self.cause = cause


class InvalidConfigurationError(SimulationError):
    """Raised when a configuration violates its own declared bounds."""

    def __init__(self, field: str, reason: str):
        super().__init__(f"Invalid configuration for '{field}': {reason}")
        self.field = field
        self.reason = reason


class MalformedStateError(SimulationError):
    """Raised when persisted state cannot be decoded.

    Surfaced instead of patched so data corruption is never masked.
    """

    def __init__(self, character_id: str, detail: str):
        super().__init__(f"Malformed persisted state for '{character_id}': {detail}")
        self.character_id = character_id
        self.detail = detail


class InvalidTransitionError(SimulationError):
    """Raised when an emergent phenomenon's status would move backwards."""
