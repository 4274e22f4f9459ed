"""Key-value storage the core reads and writes whole collections through."""
from __future__ import annotations

import copy
from typing import Protocol


class Collection:
    SCHEDULES = "doctorSchedules"
    APPOINTMENTS = "appointments"
    CONSULTATIONS = "consultations"
    NOTIFICATIONS = "notifications"
    BLOCKED_DATES = "blockedDates"


class Storage(Protocol):
    async def read(self, collection: str) -> list[dict]: ...

    async def write(self, collection: str, records: list[dict]) -> None: ...


class InMemoryStorage:
    """Process-local storage, used in offline mode and tests."""

    def __init__(self, seed: dict[str, list[dict]] | None = None):
        self._data: dict[str, list[dict]] = copy.deepcopy(seed or {})

    async def read(self, collection: str) -> list[dict]:
        return copy.deepcopy(self._data.get(collection, []))

    async def write(self, collection: str, records: list[dict]) -> None:
        self._data[collection] = copy.deepcopy(list(records))
