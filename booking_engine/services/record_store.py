"""Record store contract and the process-local implementation.

Records are plain dictionaries keyed by ``id`` inside named collections.
Filters follow a small document-store dialect: a bare value means equality,
and a mapping of operators (``$ne``, ``$gt``, ``$gte``, ``$lt``, ``$lte``,
``$in``) applies every operator to the field.
"""

from __future__ import annotations

import asyncio
import copy
import operator
from collections import defaultdict
from typing import Any, Callable, DefaultDict, Dict, List, Mapping, Optional, Protocol

from booking_engine.services.exceptions import RecordNotFound

SERVICES = "services"
SLOT_LOCKS = "slot_locks"
BOOKINGS = "bookings"
REMINDERS = "booking_reminders"
NOTIFICATIONS = "notifications"
ENTITIES = "entities"

Record = Dict[str, Any]
Filter = Mapping[str, Any]


class RecordStore(Protocol):
    async def create(self, collection: str, record: Mapping[str, Any]) -> Record:
        ...

    async def find_by_id(self, collection: str, record_id: str) -> Optional[Record]:
        ...

    async def find_many(self, collection: str, filter: Filter | None = None) -> List[Record]:
        ...

    async def find_one(self, collection: str, filter: Filter | None = None) -> Optional[Record]:
        ...

    async def update(self, collection: str, record_id: str, changes: Mapping[str, Any]) -> Record:
        ...

    async def delete(self, collection: str, record_id: str) -> None:
        ...


def _membership(value: Any, operand: Any) -> bool:
    return value in operand


_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "$ne": operator.ne,
    "$gt": operator.gt,
    "$gte": operator.ge,
    "$lt": operator.lt,
    "$lte": operator.le,
    "$in": _membership,
}

_ORDERING = {"$gt", "$gte", "$lt", "$lte"}


def _is_operator_clause(condition: Any) -> bool:
    return (
        isinstance(condition, Mapping)
        and bool(condition)
        and all(isinstance(key, str) and key.startswith("$") for key in condition)
    )


def matches(record: Mapping[str, Any], filter: Filter | None) -> bool:
    """Return True when ``record`` satisfies every clause of ``filter``."""

    if not filter:
        return True
    for field, condition in filter.items():
        value = record.get(field)
        if not _is_operator_clause(condition):
            if value != condition:
                return False
            continue
        for op, operand in condition.items():
            check = _OPERATORS.get(op)
            if check is None:
                raise ValueError(f"Unsupported filter operator '{op}'")
            if op in _ORDERING and value is None:
                return False
            if not check(value, operand):
                return False
    return True


class InMemoryRecordStore:
    """Process-local record store.

    Every call yields to the event loop once so concurrent callers interleave
    the way they would against a remote store.
    """

    def __init__(self) -> None:
        self._collections: DefaultDict[str, Dict[str, Record]] = defaultdict(dict)

    async def _yield(self) -> None:
        await asyncio.sleep(0)

    async def create(self, collection: str, record: Mapping[str, Any]) -> Record:
        await self._yield()
        record_id = record.get("id")
        if not record_id:
            raise ValueError("Records must carry an 'id'")
        records = self._collections[collection]
        if record_id in records:
            raise ValueError(f"Duplicate id '{record_id}' in collection '{collection}'")
        records[record_id] = copy.deepcopy(dict(record))
        return copy.deepcopy(records[record_id])

    async def find_by_id(self, collection: str, record_id: str) -> Optional[Record]:
        await self._yield()
        record = self._collections[collection].get(record_id)
        return copy.deepcopy(record) if record is not None else None

    async def find_many(self, collection: str, filter: Filter | None = None) -> List[Record]:
        await self._yield()
        return [
            copy.deepcopy(record)
            for record in self._collections[collection].values()
            if matches(record, filter)
        ]

    async def find_one(self, collection: str, filter: Filter | None = None) -> Optional[Record]:
        found = await self.find_many(collection, filter)
        return found[0] if found else None

    async def update(self, collection: str, record_id: str, changes: Mapping[str, Any]) -> Record:
        await self._yield()
        record = self._collections[collection].get(record_id)
        if record is None:
            raise RecordNotFound(record_id)
        record.update(copy.deepcopy(dict(changes)))
        record["id"] = record_id
        return copy.deepcopy(record)

    async def delete(self, collection: str, record_id: str) -> None:
        await self._yield()
        if self._collections[collection].pop(record_id, None) is None:
            raise RecordNotFound(record_id)

    def count(self, collection: str) -> int:
        return len(self._collections[collection])


_memory_store: Optional[InMemoryRecordStore] = None


def get_memory_store() -> InMemoryRecordStore:
    global _memory_store
    if _memory_store is None:
        _memory_store = InMemoryRecordStore()
    return _memory_store


def reset_memory_store() -> None:
    global _memory_store
    _memory_store = None
