"""Per-tick records returned to callers and kept as bounded history."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar, Optional

from charsim.emergence.system import EmergenceStep
from charsim.simulation.schemas import BehavioralOutput
from charsim.simulation.tick import StateAdvance


@dataclass
class SimulationTick:
    """The full outcome of one tick for one character.

    Attributes:
        character_id: Character the tick belongs to.
        sequence: RNG sequence the tick's draws came from.
        state: Continuous state engine result.
        emergence: Emergence layer result, None when emergence is disabled.
    """
    character_id: str
    sequence: int
    state: StateAdvance
    emergence: Optional[EmergenceStep] = None

    @property
    def timestamp(self) -> int:
        return self.state.timestamp

    @property
    def behavioral_output(self) -> BehavioralOutput:
        return self.state.behavioral_output

    def to_dict(self) -> dict:
        return {
            "character_id": self.character_id,
            "sequence": self.sequence,
            "state": self.state.to_dict(),
            "emergence": self.emergence.to_dict() if self.emergence else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SimulationTick":
        emergence = data.get("emergence")
        return cls(
            character_id=data["character_id"],
            sequence=int(data["sequence"]),
            state=StateAdvance.from_dict(data["state"]),
            emergence=EmergenceStep.from_dict(emergence) if emergence else None,
        )


@dataclass
class TickHistory:
    """Most recent ticks for a character, oldest first."""
    character_id: str
    limit: int = 100
    ticks: list[SimulationTick] = field(default_factory=list)

    DEFAULT_LIMIT: ClassVar[int] = 100

    @property
    def last(self) -> Optional[SimulationTick]:
        return self.ticks[-1] if self.ticks else None

    def append(self, tick: SimulationTick) -> None:
        self.ticks.append(tick)
        if len(self.ticks) > self.limit:
            self.ticks = self.ticks[-self.limit:]

    def to_dict(self) -> dict:
        return {
            "character_id": self.character_id,
            "limit": self.limit,
            "ticks": [t.to_dict() for t in self.ticks],
        }

    @staticmethod
    def append_stored(data: Optional[dict], tick: SimulationTick, limit: int) -> dict:
        """Append one tick to a stored history without decoding earlier ticks.

        Raises:
            TypeError: If the stored ticks are not a list.
        """
        if data is None:
            data = {"character_id": tick.character_id, "ticks": []}
        ticks = data.get("ticks", [])
        if not isinstance(ticks, list):
            raise TypeError(f"ticks: expected a list, got {type(ticks).__name__}")
        ticks = ticks + [tick.to_dict()]
        return {"character_id": data["character_id"], "limit": limit, "ticks": ticks[-limit:]}

    @classmethod
    def from_dict(cls, data: dict) -> "TickHistory":
        return cls(
            character_id=data["character_id"],
            limit=int(data.get("limit", cls.DEFAULT_LIMIT)),
            ticks=[SimulationTick.from_dict(t) for t in data.get("ticks", [])],
        )
