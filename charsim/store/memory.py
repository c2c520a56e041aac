"""In-process state store."""

from __future__ import annotations

import asyncio
import copy
import logging
from collections import defaultdict
from typing import Mapping, Optional

from charsim.store.base import EntityKind

logger = logging.getLogger(__name__)


class InMemoryStateStore:
    """Dict-backed StateStore.

    Values are deep-copied on the way in and out so callers never share
    mutable state with the store. Failures can be injected per operation
    to exercise the engine's error paths.
    """

    def __init__(self):
        self._data: dict[str, dict[EntityKind, dict]] = defaultdict(dict)
        self._failures: dict[str, list[Exception]] = defaultdict(list)
        self._lock = asyncio.Lock()
        self.commits = 0

    def inject_failure(self, operation: str, error: Optional[Exception] = None, times: int = 1) -> None:
        """Make the next `times` calls to operation raise error.

        Args:
            operation: "get", "put" or "put_many".
            error: Exception to raise; ConnectionError by default.
            times: Number of consecutive calls that fail.
        """
        for _ in range(times):
            self._failures[operation].append(error or ConnectionError(f"injected {operation} failure"))

    def _maybe_fail(self, operation: str) -> None:
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)

    async def get(self, character_id: str, kind: EntityKind) -> Optional[dict]:
        self._maybe_fail("get")
        value = self._data.get(character_id, {}).get(kind)
        return copy.deepcopy(value) if value is not None else None

    async def put(self, character_id: str, kind: EntityKind, value: dict) -> None:
        await self.put_many(character_id, {kind: value}, operation="put")

    async def put_many(self, character_id: str, values: Mapping[EntityKind, dict], operation: str = "put_many") -> None:
        self._maybe_fail(operation)
        staged = {kind: copy.deepcopy(value) for kind, value in values.items()}
        async with self._lock:
            self._data[character_id].update(staged)
            self.commits += 1
        logger.debug(f"Committed {', '.join(k.value for k in staged)} for {character_id}")

    def character_ids(self) -> list[str]:
        return sorted(self._data)
