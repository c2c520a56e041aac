"""Tests for tick records and bounded tick history."""

import numpy as np
import pytest

from charsim.records import SimulationTick, TickHistory
from charsim.simulation.tick import advance_simulation

NOW = 1_700_000_000_000
MINUTE = 60_000


@pytest.fixture
def record(profile):
    _, advance = advance_simulation(profile, MINUTE, [], NOW + MINUTE, np.random.default_rng(0))
    return SimulationTick(character_id="char-1", sequence=0, state=advance)


class TestAppendStored:
    """Tests for appending to a stored history."""

    def test_starts_empty_history(self, record):
        """No stored history starts one with the new tick."""
        data = TickHistory.append_stored(None, record, limit=5)
        assert data == {"character_id": "char-1", "limit": 5, "ticks": [record.to_dict()]}

    def test_earlier_ticks_untouched(self, record):
        """Stored ticks are carried over as they are, not re-encoded."""
        earlier = {"sequence": -1, "opaque": object()}
        data = TickHistory.append_stored({"character_id": "char-1", "ticks": [earlier]}, record, limit=5)
        assert data["ticks"][0] is earlier
        assert data["ticks"][1] == record.to_dict()

    def test_trims_to_limit(self, record):
        """Only the most recent limit ticks are kept."""
        stored = {"character_id": "char-1", "ticks": [{"sequence": i} for i in range(3)]}
        data = TickHistory.append_stored(stored, record, limit=2)
        assert [t["sequence"] for t in data["ticks"]] == [2, 0]
        assert len(stored["ticks"]) == 3

    def test_non_list_ticks_rejected(self, record):
        """A stored ticks value that is not a list is malformed."""
        with pytest.raises(TypeError):
            TickHistory.append_stored({"character_id": "char-1", "ticks": {"0": {}}}, record, limit=5)

    def test_decodes_to_same_history(self, record):
        """A history built by appending decodes like one built in memory."""
        history = TickHistory(character_id="char-1", limit=5)
        history.append(record)
        data = TickHistory.append_stored(None, record, limit=5)
        assert TickHistory.from_dict(data).to_dict() == history.to_dict()
